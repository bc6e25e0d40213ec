"""Data model entities."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional


class LedgerError(Exception):
    """Base error for ledger operations."""


class ValidationError(LedgerError):
    """Input rejected at the boundary (bad amount, missing field, bad month)."""


class DuplicateMonthError(LedgerError):
    """Month already exists in the ledger."""

    def __init__(self, month_id: str):
        super().__init__(f'Month {month_id} already exists')
        self.month_id = month_id


class PersistenceError(LedgerError):
    """Backend failed to read or write a key."""


class ExpenseCategory(Enum):
    """Expense categories."""
    RENT_OR_MORTGAGE = "Rent or Mortgage"
    UTILITIES = "Utilities"
    INTERNET_AND_PHONE = "Internet and Phone Bill"
    INSURANCE = "Insurance"
    GROCERIES = "Groceries"
    TRANSPORTATION = "Transportation"
    DEBT_PAYMENTS = "Debt Payments"
    SUBSCRIPTIONS = "Subscriptions and Memberships"
    CHILDCARE_OR_TUITION = "Childcare or Tuition"
    MEDICAL = "Medical and Health Expenses"
    PERSONAL_CARE = "Personal Care and Clothing"
    SAVINGS_AND_INVESTMENTS = "Savings and Investments"
    ENTERTAINMENT_AND_DINING = "Entertainment and Dining Out"
    PET_EXPENSES = "Pet Expenses"
    MISCELLANEOUS = "Miscellaneous or Emergency Fund"
    SAVINGS = "Savings"


class IncomeType(Enum):
    """Income types."""
    SALARY = "Salary"
    FREELANCE = "Freelance"
    INVESTMENT = "Investment"
    GIFT = "Gift"
    OTHER = "Other"


class GoalType(Enum):
    """Financial goal types."""
    SAVING = "Saving"
    DEBT_PAYOFF = "DebtPayoff"
    EMERGENCY_FUND = "EmergencyFund"
    RETIREMENT = "Retirement"
    EDUCATION = "Education"
    HOME_DOWN_PAYMENT = "HomeDownPayment"
    TRAVEL = "Travel"
    MAJOR_PURCHASE = "MajorPurchase"
    OTHER = "Other"


def _enum_value(enum_cls, value, default):
    """Coerce a stored value to an enum member, falling back to default."""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        return default


def _float_map(d: Optional[dict]) -> Dict[str, float]:
    return {str(k): float(v) for k, v in (d or {}).items()}


@dataclass
class MonthData:
    """A month partition (id is YYYY-MM)."""
    id: str
    name: str
    is_active: bool = False

    @classmethod
    def from_dict(cls, d: dict) -> 'MonthData':
        return cls(id=d['id'], name=d.get('name', d['id']), is_active=bool(d.get('is_active', False)))

    def to_dict(self) -> dict:
        return {'id': self.id, 'name': self.name, 'is_active': self.is_active}


@dataclass
class Income:
    """Income entry."""
    id: int
    amount: float
    date: str
    type: IncomeType = IncomeType.OTHER
    description: Optional[str] = None

    @classmethod
    def from_dict(cls, d: dict) -> 'Income':
        """Create from persisted dict."""
        return cls(
            id=d['id'],
            amount=float(d['amount']),
            date=d['date'],
            type=_enum_value(IncomeType, d.get('type'), IncomeType.OTHER),
            description=d.get('description')
        )

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'amount': self.amount,
            'date': self.date,
            'type': self.type.value,
            'description': self.description
        }


@dataclass
class Expense:
    """Expense entry."""
    id: int
    amount: float
    date: str
    category: ExpenseCategory = ExpenseCategory.MISCELLANEOUS
    description: Optional[str] = None
    # Set when the expense records a debt payment
    associated_debt_id: Optional[int] = None

    @classmethod
    def from_dict(cls, d: dict) -> 'Expense':
        """Create from persisted dict."""
        return cls(
            id=d['id'],
            amount=float(d['amount']),
            date=d['date'],
            category=_enum_value(ExpenseCategory, d.get('category'), ExpenseCategory.MISCELLANEOUS),
            description=d.get('description'),
            associated_debt_id=d.get('associated_debt_id')
        )

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'amount': self.amount,
            'date': self.date,
            'category': self.category.value,
            'description': self.description,
            'associated_debt_id': self.associated_debt_id
        }


@dataclass
class Budget:
    """Budget for one category in one month. spent is derived from expenses."""
    category: ExpenseCategory
    limit: float
    spent: float = 0.0

    @classmethod
    def from_dict(cls, d: dict) -> 'Budget':
        return cls(
            category=_enum_value(ExpenseCategory, d.get('category'), ExpenseCategory.MISCELLANEOUS),
            limit=float(d.get('limit', 0)),
            spent=float(d.get('spent', 0))
        )

    def to_dict(self) -> dict:
        return {'category': self.category.value, 'limit': self.limit, 'spent': self.spent}


@dataclass
class GoalRecommendation:
    """AI-generated suggestion for reaching a goal faster."""
    id: int
    description: str
    potential_impact: str
    estimated_time_reduction: str
    required_actions: List[str] = field(default_factory=list)
    applied_date: Optional[str] = None

    @classmethod
    def from_dict(cls, d: dict) -> 'GoalRecommendation':
        return cls(
            id=d['id'],
            description=d.get('description', ''),
            potential_impact=d.get('potential_impact', ''),
            estimated_time_reduction=d.get('estimated_time_reduction', ''),
            required_actions=list(d.get('required_actions') or []),
            applied_date=d.get('applied_date')
        )

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'description': self.description,
            'potential_impact': self.potential_impact,
            'estimated_time_reduction': self.estimated_time_reduction,
            'required_actions': list(self.required_actions),
            'applied_date': self.applied_date
        }


@dataclass
class Goal:
    """Financial goal, shared across months."""
    id: int
    type: GoalType
    name: str
    target_amount: float
    target_date: str
    description: str = ''
    priority: int = 5
    associated_debt_id: Optional[int] = None
    monthly_progress: Dict[str, float] = field(default_factory=dict)
    ai_recommendations: List[GoalRecommendation] = field(default_factory=list)

    @property
    def current_amount(self) -> float:
        """Sum of monthly progress. Not capped at target_amount."""
        return sum(self.monthly_progress.values())

    @property
    def completed(self) -> bool:
        return self.current_amount >= self.target_amount

    @classmethod
    def from_dict(cls, d: dict) -> 'Goal':
        """Create from persisted dict."""
        return cls(
            id=d['id'],
            type=_enum_value(GoalType, d.get('type'), GoalType.OTHER),
            name=d['name'],
            target_amount=float(d['target_amount']),
            target_date=d.get('target_date', ''),
            description=d.get('description', ''),
            priority=int(d.get('priority', 5)),
            associated_debt_id=d.get('associated_debt_id'),
            monthly_progress=_float_map(d.get('monthly_progress')),
            ai_recommendations=[
                GoalRecommendation.from_dict(r) for r in d.get('ai_recommendations') or []
            ]
        )

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'type': self.type.value,
            'name': self.name,
            'target_amount': self.target_amount,
            'current_amount': self.current_amount,
            'target_date': self.target_date,
            'description': self.description,
            'priority': self.priority,
            'associated_debt_id': self.associated_debt_id,
            'monthly_progress': dict(self.monthly_progress),
            'ai_recommendations': [r.to_dict() for r in self.ai_recommendations],
            'completed': self.completed
        }


@dataclass
class Debt:
    """Debt, shared across months with per-month payment records."""
    id: int
    name: str
    balance: float
    original_principal: float
    interest_rate: float = 0.0
    minimum_payment: float = 0.0
    due_date: str = ''
    priority: int = 0
    monthly_payments: Dict[str, float] = field(default_factory=dict)
    monthly_balances: Dict[str, float] = field(default_factory=dict)
    is_paid_off: bool = False

    @property
    def total_paid(self) -> float:
        return sum(self.monthly_payments.values())

    @classmethod
    def from_dict(cls, d: dict) -> 'Debt':
        """Create from persisted dict."""
        balance = float(d.get('balance', 0))
        return cls(
            id=d['id'],
            name=d['name'],
            balance=balance,
            original_principal=float(d.get('original_principal', balance)),
            interest_rate=float(d.get('interest_rate', 0)),
            minimum_payment=float(d.get('minimum_payment', 0)),
            due_date=d.get('due_date', ''),
            priority=int(d.get('priority', 0)),
            monthly_payments=_float_map(d.get('monthly_payments')),
            monthly_balances=_float_map(d.get('monthly_balances')),
            is_paid_off=bool(d.get('is_paid_off', False))
        )

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'name': self.name,
            'balance': self.balance,
            'original_principal': self.original_principal,
            'total_paid': self.total_paid,
            'interest_rate': self.interest_rate,
            'minimum_payment': self.minimum_payment,
            'due_date': self.due_date,
            'priority': self.priority,
            'monthly_payments': dict(self.monthly_payments),
            'monthly_balances': dict(self.monthly_balances),
            'is_paid_off': self.is_paid_off
        }


@dataclass
class Recommendation:
    """Advisory record, rule-based or AI-generated."""
    id: int
    type: str
    description: str
    impact: str
    date_generated: str
    is_read: bool = False

    @classmethod
    def from_dict(cls, d: dict) -> 'Recommendation':
        return cls(
            id=d['id'],
            type=d.get('type', ''),
            description=d.get('description', ''),
            impact=d.get('impact', ''),
            date_generated=d.get('date_generated', ''),
            is_read=bool(d.get('is_read', False))
        )

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'type': self.type,
            'description': self.description,
            'impact': self.impact,
            'date_generated': self.date_generated,
            'is_read': self.is_read
        }


@dataclass
class Alert:
    """Budget alert."""
    id: int
    type: str
    message: str
    date: str
    is_read: bool = False

    @classmethod
    def from_dict(cls, d: dict) -> 'Alert':
        return cls(
            id=d['id'],
            type=d.get('type', ''),
            message=d.get('message', ''),
            date=d.get('date', ''),
            is_read=bool(d.get('is_read', False))
        )

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'type': self.type,
            'message': self.message,
            'date': self.date,
            'is_read': self.is_read
        }


@dataclass
class ScenarioChange:
    """One category adjustment in a what-if scenario."""
    category: ExpenseCategory
    adjustment: float


@dataclass
class Scenario:
    """What-if scenario."""
    id: int
    name: str
    changes: List[ScenarioChange] = field(default_factory=list)
    projected_savings: float = 0.0
    projected_timeframe: str = ''

    @classmethod
    def from_dict(cls, d: dict) -> 'Scenario':
        return cls(
            id=d['id'],
            name=d['name'],
            changes=[
                ScenarioChange(
                    category=_enum_value(ExpenseCategory, c.get('category'), ExpenseCategory.MISCELLANEOUS),
                    adjustment=float(c.get('adjustment', 0))
                )
                for c in d.get('changes') or []
            ],
            projected_savings=float(d.get('projected_savings', 0)),
            projected_timeframe=d.get('projected_timeframe', '')
        )

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'name': self.name,
            'changes': [
                {'category': c.category.value, 'adjustment': c.adjustment} for c in self.changes
            ],
            'projected_savings': self.projected_savings,
            'projected_timeframe': self.projected_timeframe
        }


@dataclass
class EmailNotifications:
    budget_alerts: bool = True
    payment_reminders: bool = True
    goal_progress: bool = True
    monthly_reports: bool = False


@dataclass
class AlertPreferences:
    # Percentage of limit (1-100)
    budget_warning_threshold: int = 80
    low_balance_threshold: float = 100.0
    # Days before due date (1-30)
    upcoming_payment_days: int = 3
    instant_alerts: bool = True


@dataclass
class UserProfile:
    """Singleton user profile."""
    name: str = ''
    email: str = ''
    preferred_currency: str = 'USD'
    goal_preference: GoalType = GoalType.SAVING
    notifications_enabled: bool = True
    email_notifications: EmailNotifications = field(default_factory=EmailNotifications)
    alert_preferences: AlertPreferences = field(default_factory=AlertPreferences)

    @classmethod
    def from_dict(cls, d: dict) -> 'UserProfile':
        """Create from persisted dict, filling gaps with defaults."""
        email = d.get('email_notifications')
        prefs = d.get('alert_preferences')
        email = email if isinstance(email, dict) else {}
        prefs = prefs if isinstance(prefs, dict) else {}
        defaults = AlertPreferences()
        return cls(
            name=d.get('name', ''),
            email=d.get('email', ''),
            preferred_currency=d.get('preferred_currency', 'USD'),
            goal_preference=_enum_value(GoalType, d.get('goal_preference'), GoalType.SAVING),
            notifications_enabled=bool(d.get('notifications_enabled', True)),
            email_notifications=EmailNotifications(
                budget_alerts=bool(email.get('budget_alerts', True)),
                payment_reminders=bool(email.get('payment_reminders', True)),
                goal_progress=bool(email.get('goal_progress', True)),
                monthly_reports=bool(email.get('monthly_reports', False))
            ),
            alert_preferences=AlertPreferences(
                budget_warning_threshold=int(prefs.get('budget_warning_threshold', defaults.budget_warning_threshold)),
                low_balance_threshold=float(prefs.get('low_balance_threshold', defaults.low_balance_threshold)),
                upcoming_payment_days=int(prefs.get('upcoming_payment_days', defaults.upcoming_payment_days)),
                instant_alerts=bool(prefs.get('instant_alerts', defaults.instant_alerts))
            )
        )

    def to_dict(self) -> dict:
        return {
            'name': self.name,
            'email': self.email,
            'preferred_currency': self.preferred_currency,
            'goal_preference': self.goal_preference.value,
            'notifications_enabled': self.notifications_enabled,
            'email_notifications': {
                'budget_alerts': self.email_notifications.budget_alerts,
                'payment_reminders': self.email_notifications.payment_reminders,
                'goal_progress': self.email_notifications.goal_progress,
                'monthly_reports': self.email_notifications.monthly_reports
            },
            'alert_preferences': {
                'budget_warning_threshold': self.alert_preferences.budget_warning_threshold,
                'low_balance_threshold': self.alert_preferences.low_balance_threshold,
                'upcoming_payment_days': self.alert_preferences.upcoming_payment_days,
                'instant_alerts': self.alert_preferences.instant_alerts
            }
        }


@dataclass
class FinancialSummary:
    """Derived totals for one month."""
    total_income: float
    total_expenses: float
    net_cashflow: float
    savings_rate: float


@dataclass
class MonthComparison:
    """Deltas versus the previous calendar month."""
    income_change: float
    expense_change: float
    savings_change: float


@dataclass
class LoanDetails:
    """Single tracked loan."""
    principal: float = 0.0
    interest_rate: float = 0.0
    monthly_payment: float = 0.0

    @classmethod
    def from_dict(cls, d: dict) -> 'LoanDetails':
        return cls(
            principal=float(d.get('principal', 0)),
            interest_rate=float(d.get('interest_rate', 0)),
            monthly_payment=float(d.get('monthly_payment', 0))
        )

    def to_dict(self) -> dict:
        return {
            'principal': self.principal,
            'interest_rate': self.interest_rate,
            'monthly_payment': self.monthly_payment
        }


@dataclass
class Payment:
    """Loan payment."""
    id: int
    amount: float
    date: str

    @classmethod
    def from_dict(cls, d: dict) -> 'Payment':
        return cls(id=d['id'], amount=float(d['amount']), date=d['date'])

    def to_dict(self) -> dict:
        return {'id': self.id, 'amount': self.amount, 'date': self.date}


@dataclass
class PayoffProjection:
    """Result of a payoff projection."""
    months: int
    date: str
    time_remaining: str


@dataclass
class BalancePoint:
    """Point in a loan balance history."""
    label: str
    balance: float


@dataclass
class MilestoneNotification:
    milestone: int
    message: str
