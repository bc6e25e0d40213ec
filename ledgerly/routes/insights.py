"""AI advisor routes."""

from aws_lambda_powertools import Logger

from ledgerly.services import advisor, ledger
from ledgerly.services.advisor import Outcome
from ledgerly.utils.http import error_response, make_response

logger = Logger(service="ledgerly-insights")


SERVICE_FAILURES = {
    advisor.AUTH: 'The AI service rejected the configured API key.',
    advisor.NOT_CONFIGURED: 'The AI service is not configured.',
    advisor.UNKNOWN: 'The AI service request failed. Please try again later.',
}


def _respond(outcome: Outcome, body, invalid_message: str = 'Invalid request') -> dict:
    """Map an adapter outcome to a response.

    Bad input is a 400, rate limiting a 429 and service failures a 500.
    Empty or unparsable model replies still return the fallback with 200.
    """
    if outcome.failure:
        logger.info("Advisor fallback", extra={"failure_category": outcome.failure})
    if outcome.failure == advisor.INVALID_INPUT:
        return error_response(400, 'bad_request', invalid_message)
    if outcome.failure == advisor.RATE_LIMIT:
        return error_response(429, 'rate_limited', 'The AI service is busy. Please try again later.')
    if outcome.failure in SERVICE_FAILURES:
        return error_response(500, 'ai_unavailable', SERVICE_FAILURES[outcome.failure])
    return make_response(200, body)


def handle_generate_insights(body: dict) -> dict:
    """Recommendations for a month snapshot (see LedgerStore.snapshot)."""
    outcome = advisor.generate_insights(body)
    return _respond(outcome, outcome.value, 'Financial snapshot fields are missing or not numbers')


def handle_categorize(body: dict) -> dict:
    description = body.get('description')
    if not isinstance(description, str) or not description.strip():
        return error_response(400, 'bad_request', 'description is required')
    outcome = advisor.categorize(description.strip())
    return _respond(outcome, {'category': outcome.value.value, 'source': 'keywords' if outcome.failure else 'ai'})


def handle_analyze_health(body: dict) -> dict:
    try:
        data = {
            'income': float(body.get('income', 0)),
            'expenses': float(body.get('expenses', 0)),
            'debt': float(body.get('debt', 0)),
            'savings_rate': float(body.get('savings_rate', 0)),
        }
    except (TypeError, ValueError):
        return error_response(400, 'bad_request', 'income, expenses, debt and savings_rate must be numbers')
    outcome = advisor.analyze_health(data)
    return _respond(outcome, outcome.value)


def handle_prioritize_goals(body: dict) -> dict:
    outcome = advisor.prioritize_goals(
        body.get('goals') or [],
        body.get('financial_snapshot') or {},
        body.get('expense_breakdown') or []
    )
    return _respond(outcome, outcome.value, 'Goals are missing or malformed')


def handle_goal_recommendations(body: dict) -> dict:
    outcome = advisor.goal_recommendations(
        body.get('goal') or {},
        body.get('financial_data') or {},
        body.get('spending_insights') or {}
    )
    return _respond(outcome, outcome.value, 'Goal or financial data is missing or malformed')


def handle_analyze_spending(body: dict) -> dict:
    expenses = body.get('expenses')
    if not isinstance(expenses, list):
        expenses = []
    try:
        income = float(body.get('income', 0))
        target = float(body.get('target_savings_rate', ledger.TARGET_SAVINGS_RATE))
    except (TypeError, ValueError):
        return error_response(400, 'bad_request', 'income and target_savings_rate must be numbers')
    outcome = advisor.analyze_spending(expenses, income, target)
    return _respond(outcome, outcome.value, 'Expense data is missing or malformed')


def handle_ask(body: dict) -> dict:
    outcome = advisor.ask(body.get('question', ''))
    return _respond(outcome, {'answer': outcome.value}, 'question is required')
