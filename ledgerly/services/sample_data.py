"""Sample ledger data for demos and first-run exploration."""

import calendar
from typing import List, Tuple

from ledgerly.models.entities import ExpenseCategory, GoalType, IncomeType

SAMPLE_INCOMES: List[Tuple[IncomeType, float, int, str]] = [
    (IncomeType.SALARY, 4800.00, 1, 'Monthly salary'),
    (IncomeType.FREELANCE, 950.00, 12, 'Freelance project payment'),
    (IncomeType.INVESTMENT, 210.50, 20, 'Investment returns'),
]

SAMPLE_EXPENSES: List[Tuple[ExpenseCategory, float, int, str]] = [
    (ExpenseCategory.RENT_OR_MORTGAGE, 1650.00, 1, 'Monthly rent'),
    (ExpenseCategory.UTILITIES, 142.35, 5, 'Electric bill'),
    (ExpenseCategory.INTERNET_AND_PHONE, 89.99, 6, 'Internet service'),
    (ExpenseCategory.GROCERIES, 126.40, 3, 'Grocery shopping'),
    (ExpenseCategory.GROCERIES, 98.15, 17, 'Grocery shopping'),
    (ExpenseCategory.TRANSPORTATION, 64.20, 9, 'Gas'),
    (ExpenseCategory.INSURANCE, 180.00, 10, 'Insurance premium'),
    (ExpenseCategory.DEBT_PAYMENTS, 350.00, 15, 'Student loan payment'),
    (ExpenseCategory.ENTERTAINMENT_AND_DINING, 72.80, 14, 'Restaurant meal'),
    (ExpenseCategory.SUBSCRIPTIONS, 15.99, 18, 'Streaming subscription'),
    (ExpenseCategory.MEDICAL, 45.00, 22, 'Pharmacy'),
    (ExpenseCategory.PERSONAL_CARE, 60.00, 25, 'Haircut'),
]

# Budget limits as a multiple of sample spending; below 1.0 is over budget
SAMPLE_BUDGET_FACTORS = {
    ExpenseCategory.RENT_OR_MORTGAGE: 1.0,
    ExpenseCategory.GROCERIES: 1.2,
    ExpenseCategory.TRANSPORTATION: 1.5,
    ExpenseCategory.ENTERTAINMENT_AND_DINING: 0.8,
    ExpenseCategory.UTILITIES: 1.2,
}

SAMPLE_GOALS = [
    (GoalType.EMERGENCY_FUND, 'Emergency Fund', 10000.0, 'Build a 6-month emergency fund', 9),
    (GoalType.TRAVEL, 'Vacation', 3000.0, 'Summer vacation', 4),
    (GoalType.MAJOR_PURCHASE, 'New Laptop', 1500.0, 'Save for a new work laptop', 5),
]


def _day(month_id: str, day: int) -> str:
    year, month = (int(part) for part in month_id.split('-'))
    day = min(day, calendar.monthrange(year, month)[1])
    return f'{year:04d}-{month:02d}-{day:02d}'


def sample_incomes(month_id: str) -> List[dict]:
    """Income fields (without ids) dated inside month_id."""
    return [
        {'type': income_type, 'amount': amount, 'date': _day(month_id, day), 'description': description}
        for income_type, amount, day, description in SAMPLE_INCOMES
    ]


def sample_expenses(month_id: str) -> List[dict]:
    """Expense fields (without ids) dated inside month_id."""
    return [
        {'category': category, 'amount': amount, 'date': _day(month_id, day), 'description': description}
        for category, amount, day, description in SAMPLE_EXPENSES
    ]


def sample_budget_limits() -> List[Tuple[ExpenseCategory, float]]:
    """(category, limit) pairs derived from sample spending."""
    spent = {}
    for category, amount, _, _ in SAMPLE_EXPENSES:
        spent[category] = spent.get(category, 0.0) + amount
    return [
        (category, float(round(spent[category] * factor)))
        for category, factor in SAMPLE_BUDGET_FACTORS.items()
    ]


def sample_goals(year: int) -> List[dict]:
    """Goal fields (without ids) with target dates at the end of year."""
    return [
        {
            'type': goal_type,
            'name': name,
            'target_amount': target,
            'target_date': f'{year}-12-31',
            'description': description,
            'priority': priority,
        }
        for goal_type, name, target, description, priority in SAMPLE_GOALS
    ]
