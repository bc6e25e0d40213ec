"""Pure ledger reducers and derived metrics.

Every function here takes entity collections and returns new collections or
values. Nothing touches persistence; see store.py for the stateful wrapper.
"""

import re
import time
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from typing import Callable, Dict, List, Optional, Sequence, TypeVar

from ledgerly.models.entities import (
    Alert,
    Budget,
    Debt,
    Expense,
    ExpenseCategory,
    FinancialSummary,
    Goal,
    GoalType,
    Income,
    MonthComparison,
    MonthData,
    Recommendation,
    Scenario,
    UserProfile,
    ValidationError,
)

# Fraction of a budget limit at which an alert is raised
BUDGET_ALERT_RATIO = 0.8

# Savings rate below which a savings tip is generated
TARGET_SAVINGS_RATE = 20.0

MONTH_ID_PATTERN = re.compile(r'^(\d{4})-(\d{2})')

T = TypeVar('T')


class IdGenerator:
    """Timestamp-based ids that never repeat within a process."""

    def __init__(self, clock: Optional[Callable[[], float]] = None, last: int = 0):
        self._clock = clock or time.time
        self._last = last

    def __call__(self) -> int:
        candidate = int(self._clock() * 1000)
        if candidate <= self._last:
            candidate = self._last + 1
        self._last = candidate
        return candidate


@dataclass
class LedgerState:
    """All ledger collections. Month-scoped collections are keyed by YYYY-MM."""
    profile: UserProfile = field(default_factory=UserProfile)
    months: List[MonthData] = field(default_factory=list)
    incomes: Dict[str, List[Income]] = field(default_factory=dict)
    expenses: Dict[str, List[Expense]] = field(default_factory=dict)
    budgets: Dict[str, List[Budget]] = field(default_factory=dict)
    goals: List[Goal] = field(default_factory=list)
    debts: List[Debt] = field(default_factory=list)
    scenarios: List[Scenario] = field(default_factory=list)
    recommendations: List[Recommendation] = field(default_factory=list)
    alerts: List[Alert] = field(default_factory=list)


# Generic collection reducers

def append_record(records: Sequence[T], record: T) -> List[T]:
    return [*records, record]


def replace_record(records: Sequence[T], record: T) -> List[T]:
    """Replace the record with the same id; unknown ids leave the list unchanged."""
    return [record if r.id == record.id else r for r in records]


def remove_record(records: Sequence[T], record_id) -> List[T]:
    return [r for r in records if r.id != record_id]


def find_record(records: Sequence[T], record_id) -> Optional[T]:
    return next((r for r in records if r.id == record_id), None)


# Validation at the input boundary

def require_positive(value, field_name: str) -> float:
    """Coerce to float and reject missing, non-numeric or non-positive values."""
    if value is None or value == '':
        raise ValidationError(f'{field_name} is required')
    try:
        amount = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{field_name} must be a number')
    if amount <= 0:
        raise ValidationError(f'{field_name} must be greater than 0')
    return amount


def require_non_negative(value, field_name: str) -> float:
    if value is None or value == '':
        raise ValidationError(f'{field_name} is required')
    try:
        amount = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{field_name} must be a number')
    if amount < 0:
        raise ValidationError(f'{field_name} must not be negative')
    return amount


def require_date(value, field_name: str = 'date') -> str:
    """Validate an ISO date string and normalize it to YYYY-MM-DD."""
    if not value:
        raise ValidationError(f'{field_name} is required')
    try:
        return date.fromisoformat(str(value)[:10]).isoformat()
    except ValueError:
        raise ValidationError(f'{field_name} must be an ISO date')


# Months

def month_id_from_date(value: str) -> str:
    """YYYY-MM of an ISO date or timestamp."""
    return require_date(value)[:7]


def month_id_from_label(label: str) -> str:
    """Derive the canonical YYYY-MM id from a month label.

    Accepts 'YYYY-MM', ISO dates and timestamps, and names like 'March 2024'
    or 'Mar 2024'.

    Args:
        label: Month label

    Returns:
        Month id

    Raises:
        ValidationError: label is not a recognizable month
    """
    text = (label or '').strip()
    match = MONTH_ID_PATTERN.match(text)
    if match:
        year, month = int(match.group(1)), int(match.group(2))
        if 1 <= month <= 12:
            return f'{year:04d}-{month:02d}'
        raise ValidationError(f'Invalid month: {label}')

    for fmt in ('%B %Y', '%b %Y'):
        try:
            parsed = datetime.strptime(text, fmt)
            return f'{parsed.year:04d}-{parsed.month:02d}'
        except ValueError:
            continue

    raise ValidationError(f'Invalid month: {label}')


def month_name(month_id: str) -> str:
    """'2024-03' -> 'March 2024'."""
    year, month = month_id.split('-')
    return date(int(year), int(month), 1).strftime('%B %Y')


def previous_month_id(month_id: str) -> str:
    """Calendar month before month_id, rolling over the year."""
    year, month = (int(part) for part in month_id.split('-'))
    if month == 1:
        return f'{year - 1:04d}-12'
    return f'{year:04d}-{month - 1:02d}'


def latest_prior_month(months: Sequence[MonthData], month_id: str) -> Optional[str]:
    """Most recent existing month id strictly before month_id."""
    prior = [m.id for m in months if m.id < month_id]
    return max(prior) if prior else None


def activate_month(months: Sequence[MonthData], month_id: str) -> List[MonthData]:
    """Mark exactly one month active."""
    return [replace(m, is_active=(m.id == month_id)) for m in months]


def seed_budgets(prior_budgets: Sequence[Budget]) -> List[Budget]:
    """Clone a month's budgets with spent reset to 0."""
    return [Budget(category=b.category, limit=b.limit, spent=0.0) for b in prior_budgets]


# Budgets

def recompute_budget_spending(budgets: Sequence[Budget], expenses: Sequence[Expense]) -> List[Budget]:
    """Set each budget's spent to the sum of same-category expenses."""
    totals: Dict[ExpenseCategory, float] = {}
    for expense in expenses:
        totals[expense.category] = totals.get(expense.category, 0.0) + expense.amount

    return [replace(b, spent=totals.get(b.category, 0.0)) for b in budgets]


def upsert_budget(budgets: Sequence[Budget], category: ExpenseCategory, limit: float) -> List[Budget]:
    """Set the limit for a category, adding the budget if missing."""
    if any(b.category == category for b in budgets):
        return [replace(b, limit=limit) if b.category == category else b for b in budgets]
    return [*budgets, Budget(category=category, limit=limit, spent=0.0)]


def replace_budget(budgets: Sequence[Budget], budget: Budget) -> List[Budget]:
    return [budget if b.category == budget.category else b for b in budgets]


def remove_budget(budgets: Sequence[Budget], category: ExpenseCategory) -> List[Budget]:
    return [b for b in budgets if b.category != category]


def budget_alerts(
    budgets: Sequence[Budget],
    next_id: Callable[[], int],
    now: datetime,
    warning_threshold: Optional[int] = None
) -> List[Alert]:
    """Alerts for every budget at or above 80% of its limit.

    No de-duplication: a budget still over the threshold produces a new
    alert on every call.

    Args:
        budgets: Budgets of one month
        next_id: Id generator
        now: Alert timestamp
        warning_threshold: User's preferred warning percent, shown in the
            message only. The trigger stays at 80%.
    """
    suffix = f" (alert set at {warning_threshold}%)" if warning_threshold is not None else ''
    alerts = []
    for budget in budgets:
        if budget.spent >= budget.limit * BUDGET_ALERT_RATIO:
            percent = round(budget.spent / budget.limit * 100) if budget.limit > 0 else 100
            alerts.append(Alert(
                id=next_id(),
                type='Budget Warning',
                message=f"You've spent {percent}% of your {budget.category.value} budget{suffix}",
                date=now.isoformat(),
                is_read=False
            ))
    return alerts


# Derived metrics

def summarize(incomes: Sequence[Income], expenses: Sequence[Expense]) -> FinancialSummary:
    """Totals, net cashflow and savings rate for one month."""
    total_income = sum(i.amount for i in incomes)
    total_expenses = sum(e.amount for e in expenses)
    net_cashflow = total_income - total_expenses
    savings_rate = (net_cashflow / total_income) * 100 if total_income > 0 else 0.0

    return FinancialSummary(
        total_income=total_income,
        total_expenses=total_expenses,
        net_cashflow=net_cashflow,
        savings_rate=savings_rate
    )


def compare_with_previous(state: LedgerState, month_id: str) -> MonthComparison:
    """Deltas of month_id versus the calendar month before it.

    Returns zeros when the previous month has no income or expenses.
    """
    prior_id = previous_month_id(month_id)
    prior_incomes = state.incomes.get(prior_id, [])
    prior_expenses = state.expenses.get(prior_id, [])

    if not prior_incomes and not prior_expenses:
        return MonthComparison(income_change=0.0, expense_change=0.0, savings_change=0.0)

    current = summarize(state.incomes.get(month_id, []), state.expenses.get(month_id, []))
    previous = summarize(prior_incomes, prior_expenses)

    return MonthComparison(
        income_change=current.total_income - previous.total_income,
        expense_change=current.total_expenses - previous.total_expenses,
        savings_change=current.net_cashflow - previous.net_cashflow
    )


def expense_breakdown(expenses: Sequence[Expense]) -> List[dict]:
    """Spending per category, largest first."""
    totals: Dict[str, float] = {}
    for expense in expenses:
        totals[expense.category.value] = totals.get(expense.category.value, 0.0) + expense.amount

    grand_total = sum(totals.values())
    breakdown = [
        {
            'category': category,
            'amount': round(amount, 2),
            'percent_of_total_expenses': round(amount / grand_total * 100, 1) if grand_total else 0.0
        }
        for category, amount in totals.items()
    ]
    return sorted(breakdown, key=lambda row: row['amount'], reverse=True)


def rule_based_recommendations(
    summary: FinancialSummary,
    expense_count: int,
    next_id: Callable[[], int],
    now: datetime
) -> List[Recommendation]:
    """Local heuristic recommendations."""
    recommendations = []

    if summary.total_expenses > summary.total_income and expense_count > 0:
        recommendations.append(Recommendation(
            id=next_id(),
            type='Budget Alert',
            description='Your expenses exceed your income. Consider reducing spending in non-essential categories.',
            impact=f'Improve cashflow by ${summary.total_expenses - summary.total_income:.2f} monthly',
            date_generated=now.isoformat(),
            is_read=False
        ))

    if summary.savings_rate < TARGET_SAVINGS_RATE and summary.total_income > 0:
        recommendations.append(Recommendation(
            id=next_id(),
            type='Savings Tip',
            description='Your current savings rate is below the recommended 20%. '
                        'Try to increase income or reduce expenses.',
            impact=f'Reaching a 20% savings rate would mean saving ${summary.total_income * 0.2:.2f} monthly',
            date_generated=now.isoformat(),
            is_read=False
        ))

    return recommendations


# Goals and debts

def apply_goal_contribution(goal: Goal, month_id: str, amount: float) -> Goal:
    """Add amount to the goal's progress for month_id. Progress is not capped."""
    progress = dict(goal.monthly_progress)
    progress[month_id] = progress.get(month_id, 0.0) + amount
    return replace(goal, monthly_progress=progress)


def apply_debt_payment(debt: Debt, month_id: str, amount: float) -> Debt:
    """Record a payment and recompute balance from the total paid."""
    payments = dict(debt.monthly_payments)
    payments[month_id] = payments.get(month_id, 0.0) + amount

    balance = max(0.0, debt.original_principal - sum(payments.values()))
    balances = dict(debt.monthly_balances)
    balances[month_id] = balance

    return replace(
        debt,
        balance=balance,
        monthly_payments=payments,
        monthly_balances=balances,
        is_paid_off=balance <= 0
    )


def find_debt_goal(goals: Sequence[Goal], debt_id: int) -> Optional[Goal]:
    """DebtPayoff goal linked to a debt, if any."""
    return next(
        (g for g in goals if g.type == GoalType.DEBT_PAYOFF and g.associated_debt_id == debt_id),
        None
    )


def build_snapshot(state: LedgerState, month_id: str) -> dict:
    """Plain-data snapshot of a month for the AI adapter."""
    incomes = state.incomes.get(month_id, [])
    expenses = state.expenses.get(month_id, [])
    summary = summarize(incomes, expenses)
    breakdown = expense_breakdown(expenses)
    open_debts = [d for d in state.debts if not d.is_paid_off]
    debt_total = sum(d.balance for d in open_debts)
    average_rate = (
        sum(d.interest_rate for d in open_debts) / len(open_debts) if open_debts else 0.0
    )

    return {
        'month_id': month_id,
        'total_income': summary.total_income,
        'total_expenses': summary.total_expenses,
        'net_cashflow': summary.net_cashflow,
        'savings_rate': summary.savings_rate,
        'top_expense_categories': [
            {'category': row['category'], 'amount': row['amount']} for row in breakdown[:5]
        ],
        'expense_breakdown': breakdown,
        'over_budget_categories': [
            b.category.value for b in state.budgets.get(month_id, []) if b.spent > b.limit
        ],
        'debt_total': debt_total,
        'average_interest_rate': average_rate,
    }
