"""AI request adapter: prompts built from ledger snapshots, sent to Claude.

Every public function returns an Outcome and never raises. On any failure
the Outcome carries a safe fallback value and a failure category used for
diagnostics (and by routes to choose a status code).
"""

import json
import re
from dataclasses import dataclass
from typing import Any, List, Optional, Type

import anthropic
from aws_lambda_powertools import Logger
from pydantic import AliasChoices, BaseModel, Field, TypeAdapter, ValidationError

from ledgerly.models.entities import ExpenseCategory
from ledgerly.services import categorizer
from ledgerly.utils.config import get_config

logger = Logger(service="ledgerly-advisor")

# Failure categories
AUTH = 'auth'
RATE_LIMIT = 'rate_limit'
UNKNOWN = 'unknown'
NOT_CONFIGURED = 'not_configured'
EMPTY = 'empty'
PARSE = 'parse'
INVALID_INPUT = 'invalid_input'

JSON_PATTERN = re.compile(r'[\[{][\s\S]*[\]}]')

_client: Optional[anthropic.Anthropic] = None


class AdvisorNotConfigured(Exception):
    """No API key is configured."""


# Response schemas

class Insight(BaseModel):
    type: str = 'Financial Insight'
    description: str = 'No description provided'
    impact: str = 'Impact not calculated'


class HealthReport(BaseModel):
    score: int = Field(default=50, ge=0, le=100)
    feedback: str = 'Analysis complete.'


class GoalPriority(BaseModel):
    goal_id: int = Field(validation_alias=AliasChoices('goal_id', 'goalId'))
    priority_score: int = Field(ge=1, le=10, validation_alias=AliasChoices('priority_score', 'priorityScore'))
    reasoning: str = ''


class GoalAdvice(BaseModel):
    description: str
    potential_impact: str = Field(
        default='Medium', validation_alias=AliasChoices('potential_impact', 'potentialImpact'))
    estimated_time_reduction: str = Field(
        default='', validation_alias=AliasChoices('estimated_time_reduction', 'estimatedTimeReduction'))
    required_actions: List[str] = Field(
        default_factory=list, validation_alias=AliasChoices('required_actions', 'requiredActions'))


class GoalAdviceSet(BaseModel):
    goal_id: Optional[int] = Field(default=None, validation_alias=AliasChoices('goal_id', 'goalId'))
    recommendations: List[GoalAdvice] = Field(default_factory=list)


class OptimizationArea(BaseModel):
    category: str
    current_spending: float = Field(
        default=0.0, validation_alias=AliasChoices('current_spending', 'currentSpending'))
    recommended_reduction: float = Field(
        default=0.0, validation_alias=AliasChoices('recommended_reduction', 'recommendedReduction'))
    potential_savings: float = Field(
        default=0.0, validation_alias=AliasChoices('potential_savings', 'potentialSavings'))
    specific_suggestions: List[str] = Field(
        default_factory=list, validation_alias=AliasChoices('specific_suggestions', 'specificSuggestions'))


class ProjectedImpact(BaseModel):
    new_savings_rate: float = Field(default=0.0, validation_alias=AliasChoices('new_savings_rate', 'newSavingsRate'))
    monthly_increase: float = Field(default=0.0, validation_alias=AliasChoices('monthly_increase', 'monthlyIncrease'))
    yearly_increase: float = Field(default=0.0, validation_alias=AliasChoices('yearly_increase', 'yearlyIncrease'))


class SpendingReport(BaseModel):
    optimization_areas: List[OptimizationArea] = Field(
        default_factory=list, validation_alias=AliasChoices('optimization_areas', 'optimizationAreas'))
    projected_impact: ProjectedImpact = Field(
        default_factory=ProjectedImpact, validation_alias=AliasChoices('projected_impact', 'projectedImpact'))


# Request schemas (caller payloads, checked before a prompt is built)

class CategoryAmount(BaseModel):
    category: str = ''
    amount: float = 0.0
    percent_of_total_expenses: float = 0.0
    is_reducible: bool = False


class SnapshotInput(BaseModel):
    total_income: float = 0.0
    total_expenses: float = 0.0
    net_cashflow: float = 0.0
    savings_rate: float = 0.0
    top_expense_categories: List[CategoryAmount] = Field(default_factory=list)
    over_budget_categories: List[str] = Field(default_factory=list)
    debt_total: float = 0.0
    average_interest_rate: float = 0.0


class HealthInput(BaseModel):
    income: float = 0.0
    expenses: float = 0.0
    debt: float = 0.0
    savings_rate: float = 0.0


class GoalInput(BaseModel):
    id: Optional[int] = None
    name: Optional[str] = None
    type: Optional[str] = None
    target_amount: float = 0.0
    current_amount: float = 0.0
    target_date: Optional[str] = None
    priority: Optional[int] = None
    description: Optional[str] = None


class IncomeLine(BaseModel):
    source: Optional[str] = None
    amount: float = 0.0


class ExpenseLine(BaseModel):
    category: str = ''
    amount: float = 0.0
    date: Optional[str] = None
    description: Optional[str] = None


class CashflowPoint(BaseModel):
    month: str = ''
    net_amount: float = 0.0


class FinancialDataInput(BaseModel):
    income: List[IncomeLine] = Field(default_factory=list)
    expenses: List[ExpenseLine] = Field(default_factory=list)
    savings_rate: float = 0.0
    cashflow_trend: List[CashflowPoint] = Field(default_factory=list)


class SpendingInsightsInput(BaseModel):
    non_essential_spending: float = 0.0
    top_expense_categories: List[CategoryAmount] = Field(default_factory=list)


class SpendingInput(BaseModel):
    expenses: List[ExpenseLine]
    income: float = 0.0
    target_savings_rate: float = 20.0


@dataclass
class Decoded:
    """Result of decoding a model response: payload when ok, reason otherwise."""
    ok: bool
    payload: Any = None
    reason: str = ''


@dataclass
class Outcome:
    """Adapter result. value is always usable; failure is set when it is a fallback."""
    value: Any
    failure: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.failure is None


# Fallback values

def error_insights(failure: str) -> List[dict]:
    descriptions = {
        AUTH: 'The AI service is not configured correctly. Please check the API key.',
        NOT_CONFIGURED: 'The AI service is not configured. Please provide an API key.',
        RATE_LIMIT: 'The AI service is busy right now. Please try again later.',
    }
    return [{
        'type': 'Error',
        'description': descriptions.get(failure, 'Unable to generate recommendations at this time.'),
        'impact': 'No impact calculated'
    }]


GENERAL_ADVICE = [{
    'type': 'General Advice',
    'description': "We couldn't generate personalized recommendations based on your current data. "
                   "Try adding more transactions and budget information.",
    'impact': "Impact can't be calculated with limited data"
}]

HEALTH_FALLBACK = {'score': 50, 'feedback': 'Unable to analyze financial health at this time.'}

ANSWER_FALLBACK = "I'm sorry, I can't answer that right now. Please try again later."


def empty_spending_report() -> dict:
    return SpendingReport().model_dump()


# Client and transport

def get_client() -> anthropic.Anthropic:
    """Get or create the Anthropic client."""
    global _client
    config = get_config()
    if not config.ai_enabled:
        raise AdvisorNotConfigured('ANTHROPIC_API_KEY is not set')
    if _client is None:
        _client = anthropic.Anthropic(api_key=config.anthropic_api_key, timeout=30.0, max_retries=1)
    return _client


def reset_client() -> None:
    global _client
    _client = None


def classify_failure(error: Exception) -> str:
    """Map an exception to a diagnostic failure category."""
    if isinstance(error, AdvisorNotConfigured):
        return NOT_CONFIGURED
    if isinstance(error, (anthropic.AuthenticationError, anthropic.PermissionDeniedError)):
        return AUTH
    if isinstance(error, anthropic.RateLimitError):
        return RATE_LIMIT
    return UNKNOWN


def complete(prompt: str, max_tokens: int = 1024, temperature: float = 0.7) -> str:
    """Send a single-turn prompt and return the text of the reply.

    Raises:
        AdvisorNotConfigured: no API key
        anthropic.APIError: any transport or API failure
    """
    model = get_config().ai_model
    message = get_client().messages.create(
        model=model,
        max_tokens=max_tokens,
        temperature=temperature,
        messages=[{"role": "user", "content": prompt}]
    )
    return ''.join(block.text for block in message.content if getattr(block, 'type', 'text') == 'text')


def _call(operation: str, prompt: str, max_tokens: int, temperature: float) -> Decoded:
    """Run complete() and turn every failure into a Decoded with a reason."""
    try:
        text = complete(prompt, max_tokens=max_tokens, temperature=temperature)
    except Exception as e:
        failure = classify_failure(e)
        logger.error(
            "AI request failed",
            extra={"operation": operation, "failure_category": failure,
                   "error_type": type(e).__name__, "error": str(e)}
        )
        return Decoded(ok=False, reason=failure)

    if not text.strip():
        logger.warning("AI response empty", extra={"operation": operation, "failure_category": EMPTY})
        return Decoded(ok=False, reason=EMPTY)

    return Decoded(ok=True, payload=text)


# Decoding

def extract_json(text: str) -> Decoded:
    """Parse the JSON value in text, tolerating surrounding prose."""
    try:
        return Decoded(ok=True, payload=json.loads(text))
    except (TypeError, ValueError):
        pass

    match = JSON_PATTERN.search(text or '')
    if not match:
        return Decoded(ok=False, reason='no JSON found')
    try:
        return Decoded(ok=True, payload=json.loads(match.group()))
    except ValueError as e:
        return Decoded(ok=False, reason=f'invalid JSON: {e}')


def _unwrap_list(payload: Any) -> Any:
    """Objects holding a single list value ({"priorities": [...]}) yield that list."""
    if isinstance(payload, dict):
        lists = [v for v in payload.values() if isinstance(v, list)]
        if len(lists) == 1:
            return lists[0]
        return [payload]
    return payload


def decode(text: str, schema: Type[BaseModel], many: bool = False) -> Decoded:
    """Decode model output into validated dicts.

    Args:
        text: Raw model output
        schema: Pydantic model for one item
        many: Expect a list of items

    Returns:
        Decoded with a dict (or list of dicts) payload, or the failure reason
    """
    parsed = extract_json(text)
    if not parsed.ok:
        return parsed

    try:
        if many:
            items = TypeAdapter(List[schema]).validate_python(_unwrap_list(parsed.payload))
            return Decoded(ok=True, payload=[item.model_dump() for item in items])
        return Decoded(ok=True, payload=schema.model_validate(parsed.payload).model_dump())
    except ValidationError as e:
        return Decoded(ok=False, reason=f'schema mismatch: {e.error_count()} errors')


def _validate_request(operation: str, schema: Any, data: Any) -> Decoded:
    """Check a caller payload against a request schema.

    Args:
        operation: Operation name for logging
        schema: Pydantic model, or a type such as List[model]
        data: Caller payload

    Returns:
        Decoded with the validated value, or the failure reason
    """
    try:
        return Decoded(ok=True, payload=TypeAdapter(schema).validate_python(data))
    except ValidationError as e:
        reason = f'invalid input: {e.error_count()} errors'
        logger.warning(
            "AI request rejected",
            extra={"operation": operation, "failure_category": INVALID_INPUT, "reason": reason}
        )
        return Decoded(ok=False, reason=reason)


def _decode_or_log(operation: str, text: str, schema: Type[BaseModel], many: bool = False) -> Decoded:
    decoded = decode(text, schema, many=many)
    if not decoded.ok:
        logger.warning(
            "AI response rejected",
            extra={"operation": operation, "failure_category": PARSE, "reason": decoded.reason}
        )
    return decoded


# Operations

def generate_insights(snapshot: dict) -> Outcome:
    """Personalized recommendations for a month snapshot.

    Returns:
        Outcome with a list of {type, description, impact}
    """
    checked = _validate_request('generate_insights', SnapshotInput, snapshot)
    if not checked.ok:
        return Outcome(value=error_insights(INVALID_INPUT), failure=INVALID_INPUT)
    data: SnapshotInput = checked.payload

    top = ', '.join(f"{c.category} (${c.amount:.2f})" for c in data.top_expense_categories) or 'None'
    over = ', '.join(data.over_budget_categories) or 'None'

    prompt = f"""You are a financial advisor assistant. Based on the following financial data,
generate specific, personalized recommendations.

Financial Summary:
- Total Monthly Income: ${data.total_income:.2f}
- Total Monthly Expenses: ${data.total_expenses:.2f}
- Net Cashflow: ${data.net_cashflow:.2f}
- Savings Rate: {data.savings_rate:.1f}%
- Top Expense Categories: {top}
- Over Budget Categories: {over}
- Total Debt: ${data.debt_total:.2f}
- Average Interest Rate: {data.average_interest_rate:.1f}%

Generate 3-5 recommendations. Respond with a JSON array of objects with
"type", "description" and "impact" fields and nothing else.
"""

    called = _call('generate_insights', prompt, max_tokens=1500, temperature=0.7)
    if not called.ok:
        return Outcome(value=error_insights(called.reason), failure=called.reason)

    decoded = _decode_or_log('generate_insights', called.payload, Insight, many=True)
    if not decoded.ok:
        return Outcome(value=error_insights(PARSE), failure=PARSE)
    if not decoded.payload:
        return Outcome(value=list(GENERAL_ADVICE), failure=EMPTY)

    logger.info("AI insights generated", extra={"operation": "generate_insights",
                                                "insight_count": len(decoded.payload)})
    return Outcome(value=decoded.payload)


def categorize(description: str) -> Outcome:
    """Ask the model for an expense category.

    Returns:
        Outcome with an ExpenseCategory; keyword result on failure
    """
    if not isinstance(description, str) or not description.strip():
        return Outcome(value=ExpenseCategory.MISCELLANEOUS, failure=INVALID_INPUT)

    fallback = categorizer.categorize_expense(description)
    category_list = '\n'.join(f'- {c.value}' for c in ExpenseCategory)

    prompt = f"""Categorize this transaction into exactly one of these categories:
{category_list}

Transaction: "{description}"

Respond with ONLY the category name.
"""

    called = _call('categorize', prompt, max_tokens=20, temperature=0.0)
    if not called.ok:
        return Outcome(value=fallback, failure=called.reason)

    category = categorizer.match_category_name(called.payload)
    if category is None:
        logger.warning("AI category not recognized",
                       extra={"operation": "categorize", "failure_category": PARSE,
                              "response_preview": called.payload[:50]})
        return Outcome(value=fallback, failure=PARSE)

    return Outcome(value=category)


def analyze_health(data: dict) -> Outcome:
    """Financial health score (0-100) with short feedback.

    Args:
        data: {income, expenses, debt, savings_rate}
    """
    checked = _validate_request('analyze_health', HealthInput, data)
    if not checked.ok:
        return Outcome(value=dict(HEALTH_FALLBACK), failure=INVALID_INPUT)
    health: HealthInput = checked.payload

    prompt = f"""Based on this financial data, provide a financial health score (0-100)
and brief feedback (1-2 sentences).

- Monthly Income: ${health.income:.2f}
- Monthly Expenses: ${health.expenses:.2f}
- Total Debt: ${health.debt:.2f}
- Savings Rate: {health.savings_rate:.1f}%

Respond in JSON with "score" and "feedback" properties.
"""

    called = _call('analyze_health', prompt, max_tokens=300, temperature=0.3)
    if not called.ok:
        return Outcome(value=dict(HEALTH_FALLBACK), failure=called.reason)

    decoded = _decode_or_log('analyze_health', called.payload, HealthReport)
    if not decoded.ok:
        return Outcome(value=dict(HEALTH_FALLBACK), failure=PARSE)
    return Outcome(value=decoded.payload)


def prioritize_goals(goals: List[dict], snapshot: dict, expense_breakdown: List[dict]) -> Outcome:
    """Priority score (1-10) and reasoning per goal.

    Returns:
        Outcome with a list of {goal_id, priority_score, reasoning}
    """
    if not goals:
        return Outcome(value=[], failure=INVALID_INPUT)

    checked = [
        _validate_request('prioritize_goals', List[GoalInput], goals),
        _validate_request('prioritize_goals', SnapshotInput, snapshot or {}),
        _validate_request('prioritize_goals', List[CategoryAmount], expense_breakdown or []),
    ]
    if not all(c.ok for c in checked):
        return Outcome(value=[], failure=INVALID_INPUT)
    goal_inputs, data, breakdown = (c.payload for c in checked)

    goal_lines = '\n'.join(
        f"- id {g.id}: {g.name} ({g.type}), target ${g.target_amount:.2f}, "
        f"progress ${g.current_amount:.2f}, due {g.target_date or ''}. {g.description or ''}"
        for g in goal_inputs
    )
    expense_lines = '\n'.join(
        f"- {e.category}: ${e.amount:.2f} ({e.percent_of_total_expenses}% of expenses)"
        for e in breakdown
    ) or '- none recorded'

    prompt = f"""As a financial advisor, prioritize these financial goals. Assign each goal a
priority score from 1-10 (10 highest) and give brief reasoning.

GOALS:
{goal_lines}

FINANCIAL SNAPSHOT:
- Total Income: ${data.total_income:.2f}
- Total Expenses: ${data.total_expenses:.2f}
- Savings Rate: {data.savings_rate:.1f}%
- Total Debt: ${data.debt_total:.2f}
- Monthly Net Cashflow: ${data.net_cashflow:.2f}

EXPENSE BREAKDOWN:
{expense_lines}

Prioritize significant debt and inadequate emergency funds, consider deadlines
and current progress. Respond with a JSON array of objects with "goal_id",
"priority_score" and "reasoning".
"""

    called = _call('prioritize_goals', prompt, max_tokens=1000, temperature=0.2)
    if not called.ok:
        return Outcome(value=[], failure=called.reason)

    decoded = _decode_or_log('prioritize_goals', called.payload, GoalPriority, many=True)
    if not decoded.ok:
        return Outcome(value=[], failure=PARSE)
    return Outcome(value=decoded.payload)


def goal_recommendations(goal: dict, financial_data: dict, spending_insights: dict) -> Outcome:
    """Actions that would reach a goal faster.

    Returns:
        Outcome with a list of {goal_id, recommendations: [...]}
    """
    if not goal:
        return Outcome(value=[], failure=INVALID_INPUT)

    checked = [
        _validate_request('goal_recommendations', GoalInput, goal),
        _validate_request('goal_recommendations', FinancialDataInput, financial_data or {}),
        _validate_request('goal_recommendations', SpendingInsightsInput, spending_insights or {}),
    ]
    if not all(c.ok for c in checked):
        return Outcome(value=[], failure=INVALID_INPUT)
    target_goal, data, insights = (c.payload for c in checked)

    target = target_goal.target_amount
    current = target_goal.current_amount
    progress = (current / target * 100) if target else 0.0

    income_lines = '\n'.join(f"- {i.source}: ${i.amount:.2f}" for i in data.income) or '- none recorded'
    expense_lines = '\n'.join(f"- {e.category}: ${e.amount:.2f}" for e in data.expenses) or '- none recorded'
    trend_lines = '\n'.join(f"- {c.month}: ${c.net_amount:.2f}" for c in data.cashflow_trend) or '- no history'
    category_lines = '\n'.join(
        f"- {c.category}: ${c.amount:.2f} ({'Reducible' if c.is_reducible else 'Non-reducible'})"
        for c in insights.top_expense_categories
    ) or '- none'

    prompt = f"""As a financial advisor, recommend specific actions to reach this goal faster.

GOAL:
- Id: {target_goal.id}
- Name: {target_goal.name}
- Type: {target_goal.type}
- Target Amount: ${target:.2f}
- Current Progress: ${current:.2f} ({progress:.1f}%)
- Target Date: {target_goal.target_date or ''}
- Priority: {target_goal.priority if target_goal.priority is not None else ''}/10

Income Sources:
{income_lines}

Expenses:
{expense_lines}

Savings Rate: {data.savings_rate:.1f}%

Cashflow Trend:
{trend_lines}

Non-essential Spending: ${insights.non_essential_spending:.2f}
Top Expense Categories:
{category_lines}

Give 3-5 recommendations. Respond with a JSON object with "goal_id" and
"recommendations", an array of objects with "description", "potential_impact"
(High/Medium/Low), "estimated_time_reduction" and "required_actions" (array).
"""

    called = _call('goal_recommendations', prompt, max_tokens=1500, temperature=0.3)
    if not called.ok:
        return Outcome(value=[], failure=called.reason)

    parsed = extract_json(called.payload)
    payload = parsed.payload if parsed.ok else None
    sets = payload if isinstance(payload, list) else [payload]
    try:
        validated = TypeAdapter(List[GoalAdviceSet]).validate_python(sets)
    except ValidationError as e:
        logger.warning("AI response rejected",
                       extra={"operation": "goal_recommendations", "failure_category": PARSE,
                              "reason": f'schema mismatch: {e.error_count()} errors'})
        return Outcome(value=[], failure=PARSE)

    result = []
    for advice_set in validated:
        dumped = advice_set.model_dump()
        if dumped['goal_id'] is None:
            dumped['goal_id'] = target_goal.id
        result.append(dumped)
    return Outcome(value=result)


def analyze_spending(expenses: List[dict], income: float, target_savings_rate: float) -> Outcome:
    """Where spending could be cut to reach a target savings rate.

    Returns:
        Outcome with {optimization_areas: [...], projected_impact: {...}}
    """
    if not expenses:
        return Outcome(value=empty_spending_report(), failure=INVALID_INPUT)

    checked = _validate_request('analyze_spending', SpendingInput, {
        'expenses': expenses, 'income': income, 'target_savings_rate': target_savings_rate
    })
    if not checked.ok:
        return Outcome(value=empty_spending_report(), failure=INVALID_INPUT)
    request: SpendingInput = checked.payload

    total_spending = sum(e.amount for e in request.expenses)
    income = request.income
    current_rate = ((income - total_spending) / income * 100) if income > 0 else 0.0

    expense_lines = '\n'.join(
        f"- {e.category}: ${e.amount:.2f} ({e.date or ''})"
        + (f" - {e.description}" if e.description else '')
        for e in request.expenses
    )

    prompt = f"""As a financial analyst, find spending optimizations to reach a target savings rate.

- Monthly Income: ${income:.2f}
- Total Monthly Expenses: ${total_spending:.2f}
- Current Savings Rate: {current_rate:.1f}%
- Target Savings Rate: {request.target_savings_rate:.1f}%

EXPENSES:
{expense_lines}

Respond with a JSON object containing "optimization_areas" (array of objects
with "category", "current_spending", "recommended_reduction",
"potential_savings", "specific_suggestions") and "projected_impact" (object
with "new_savings_rate", "monthly_increase", "yearly_increase").
"""

    called = _call('analyze_spending', prompt, max_tokens=1500, temperature=0.2)
    if not called.ok:
        return Outcome(value=empty_spending_report(), failure=called.reason)

    decoded = _decode_or_log('analyze_spending', called.payload, SpendingReport)
    if not decoded.ok:
        return Outcome(value=empty_spending_report(), failure=PARSE)
    return Outcome(value=decoded.payload)


def ask(question: str) -> Outcome:
    """Free-text answer to a personal finance question."""
    if not isinstance(question, str) or not question.strip():
        return Outcome(value=ANSWER_FALLBACK, failure=INVALID_INPUT)

    prompt = f"""You are a friendly personal finance educator. Answer the question below clearly
and concisely in plain language. Do not give individualized investment advice.

Question: {question}
"""

    called = _call('ask', prompt, max_tokens=800, temperature=0.5)
    if not called.ok:
        return Outcome(value=ANSWER_FALLBACK, failure=called.reason)
    return Outcome(value=called.payload.strip())
