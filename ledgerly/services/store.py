"""Ledger store: owns ledger state and mirrors it to a key/value backend.

State transitions go through the pure reducers in ledger.py; this module
decides which persistence keys each transition touches and writes them.
Write failures are logged and recorded, never raised to callers.
"""

import copy
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional

from aws_lambda_powertools import Logger

from ledgerly.models.entities import (
    Alert,
    Budget,
    Debt,
    DuplicateMonthError,
    Expense,
    ExpenseCategory,
    FinancialSummary,
    Goal,
    GoalRecommendation,
    GoalType,
    Income,
    IncomeType,
    MonthComparison,
    MonthData,
    PersistenceError,
    Recommendation,
    Scenario,
    ScenarioChange,
    UserProfile,
)
from ledgerly.services import categorizer, ledger, sample_data
from ledgerly.services.ledger import IdGenerator, LedgerState
from ledgerly.services.persistence import KeyValueStore, load_json, save_json

logger = Logger(service="ledgerly-store")

PROFILE_KEY = 'userProfile'
MONTHS_KEY = 'months'
GOALS_KEY = 'goals'
DEBTS_KEY = 'debts'
SCENARIOS_KEY = 'scenarios'
GLOBAL_KEYS = (PROFILE_KEY, MONTHS_KEY, GOALS_KEY, DEBTS_KEY, SCENARIOS_KEY)
MONTH_KEY_PREFIXES = ('incomes_', 'expenses_', 'budgets_')


def incomes_key(month_id: str) -> str:
    return f'incomes_{month_id}'


def expenses_key(month_id: str) -> str:
    return f'expenses_{month_id}'


def budgets_key(month_id: str) -> str:
    return f'budgets_{month_id}'


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LedgerStore:
    """Authoritative in-memory ledger with write-through persistence.

    Income, expenses and budgets are partitioned by month; goals, debts,
    scenarios and the profile are shared across months. Read accessors
    return copies.

    A read_only store never writes back, so defaults created while loading
    (the first month, a re-activated month) stay in memory only.
    """

    def __init__(
        self,
        persistence: KeyValueStore,
        clock: Optional[Callable[[], datetime]] = None,
        id_generator: Optional[Callable[[], int]] = None,
        read_only: bool = False
    ):
        self._persistence = persistence
        self._read_only = read_only
        self._clock = clock or _utcnow
        self._next_id = id_generator or IdGenerator()
        self._state = LedgerState()
        self.persistence_failures: List[str] = []
        self._load()

    # Loading

    def _load_list(self, key: str, factory: Callable[[dict], Any]) -> list:
        raw = load_json(self._persistence, key, default=[])
        if not isinstance(raw, list):
            logger.warning("Persisted value is not a list", extra={"key": key})
            return []
        try:
            return [factory(item) for item in raw]
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            logger.warning("Malformed persisted records ignored", extra={"key": key, "error": str(e)})
            return []

    def _load(self) -> None:
        state = self._state

        profile = load_json(self._persistence, PROFILE_KEY, default=None)
        if isinstance(profile, dict):
            try:
                state.profile = UserProfile.from_dict(profile)
            except (TypeError, ValueError, AttributeError) as e:
                logger.warning("Malformed profile ignored", extra={"error": str(e)})

        state.months = self._load_list(MONTHS_KEY, MonthData.from_dict)
        state.goals = self._load_list(GOALS_KEY, Goal.from_dict)
        state.debts = self._load_list(DEBTS_KEY, Debt.from_dict)
        state.scenarios = self._load_list(SCENARIOS_KEY, Scenario.from_dict)

        for month in state.months:
            state.incomes[month.id] = self._load_list(incomes_key(month.id), Income.from_dict)
            state.expenses[month.id] = self._load_list(expenses_key(month.id), Expense.from_dict)
            budgets = self._load_list(budgets_key(month.id), Budget.from_dict)
            state.budgets[month.id] = ledger.recompute_budget_spending(budgets, state.expenses[month.id])

        if not state.months:
            current = self._clock().strftime('%Y-%m')
            self._create_month(current)

        if not any(m.is_active for m in state.months):
            latest = max(m.id for m in state.months)
            state.months = ledger.activate_month(state.months, latest)
            self._write(MONTHS_KEY, [m.to_dict() for m in state.months])

        logger.info(
            "Ledger loaded",
            extra={
                "month_count": len(state.months),
                "active_month": self.active_month_id,
                "goal_count": len(state.goals),
                "debt_count": len(state.debts)
            }
        )

    # Persistence sync

    def _write(self, key: str, value: Any) -> None:
        if self._read_only:
            return
        try:
            save_json(self._persistence, key, value)
        except (PersistenceError, OSError) as e:
            self.persistence_failures.append(key)
            logger.warning("Persistence write failed", extra={"key": key, "error": str(e)})

    def _persist_months(self) -> None:
        self._write(MONTHS_KEY, [m.to_dict() for m in self._state.months])

    def _persist_incomes(self, month_id: str) -> None:
        self._write(incomes_key(month_id), [i.to_dict() for i in self._state.incomes.get(month_id, [])])

    def _persist_expenses(self, month_id: str) -> None:
        self._write(expenses_key(month_id), [e.to_dict() for e in self._state.expenses.get(month_id, [])])

    def _persist_budgets(self, month_id: str) -> None:
        self._write(budgets_key(month_id), [b.to_dict() for b in self._state.budgets.get(month_id, [])])

    def _persist_goals(self) -> None:
        self._write(GOALS_KEY, [g.to_dict() for g in self._state.goals])

    def _persist_debts(self) -> None:
        self._write(DEBTS_KEY, [d.to_dict() for d in self._state.debts])

    def _persist_scenarios(self) -> None:
        self._write(SCENARIOS_KEY, [s.to_dict() for s in self._state.scenarios])

    # Months

    @property
    def active_month_id(self) -> str:
        return next(m.id for m in self._state.months if m.is_active)

    @property
    def months(self) -> List[MonthData]:
        return copy.deepcopy(sorted(self._state.months, key=lambda m: m.id))

    def _create_month(self, month_id: str) -> MonthData:
        state = self._state
        month = MonthData(id=month_id, name=ledger.month_name(month_id), is_active=not state.months)

        prior_id = ledger.latest_prior_month(state.months, month_id)
        seeded = ledger.seed_budgets(state.budgets.get(prior_id, [])) if prior_id else []

        state.months = ledger.append_record(state.months, month)
        state.incomes.setdefault(month_id, [])
        state.expenses.setdefault(month_id, [])
        state.budgets[month_id] = ledger.recompute_budget_spending(seeded, state.expenses[month_id])

        self._persist_months()
        self._persist_budgets(month_id)
        logger.info("Month created", extra={"month_id": month_id, "seeded_from": prior_id,
                                            "budget_count": len(seeded)})
        return month

    def _ensure_month(self, month_id: str) -> None:
        if ledger.find_record(self._state.months, month_id) is None:
            self._create_month(month_id)

    def add_month(self, label: str) -> MonthData:
        """Create a month from a label such as '2024-03' or 'March 2024'.

        Budgets are cloned from the most recent earlier month with spent reset.

        Raises:
            ValidationError: label is not a month
            DuplicateMonthError: the month already exists
        """
        month_id = ledger.month_id_from_label(label)
        if ledger.find_record(self._state.months, month_id) is not None:
            logger.info("Duplicate month ignored", extra={"month_id": month_id})
            raise DuplicateMonthError(month_id)
        return copy.deepcopy(self._create_month(month_id))

    def set_active_month(self, month_id: str) -> None:
        """Switch the month exposed by incomes/expenses/budgets, creating it on first use."""
        month_id = ledger.month_id_from_label(month_id)
        self._ensure_month(month_id)
        self._state.months = ledger.activate_month(self._state.months, month_id)
        self._persist_months()

    # Month-scoped reads

    def incomes_for(self, month_id: str) -> List[Income]:
        return copy.deepcopy(self._state.incomes.get(month_id, []))

    def expenses_for(self, month_id: str) -> List[Expense]:
        return copy.deepcopy(self._state.expenses.get(month_id, []))

    def budgets_for(self, month_id: str) -> List[Budget]:
        return copy.deepcopy(self._state.budgets.get(month_id, []))

    def summary_for(self, month_id: str) -> FinancialSummary:
        return ledger.summarize(self._state.incomes.get(month_id, []), self._state.expenses.get(month_id, []))

    @property
    def incomes(self) -> List[Income]:
        return self.incomes_for(self.active_month_id)

    @property
    def expenses(self) -> List[Expense]:
        return self.expenses_for(self.active_month_id)

    @property
    def budgets(self) -> List[Budget]:
        return self.budgets_for(self.active_month_id)

    @property
    def summary(self) -> FinancialSummary:
        return self.summary_for(self.active_month_id)

    @property
    def total_income(self) -> float:
        return self.summary.total_income

    @property
    def total_expenses(self) -> float:
        return self.summary.total_expenses

    @property
    def net_cashflow(self) -> float:
        return self.summary.net_cashflow

    @property
    def savings_rate(self) -> float:
        return self.summary.savings_rate

    # Shared reads

    @property
    def goals(self) -> List[Goal]:
        return copy.deepcopy(self._state.goals)

    @property
    def debts(self) -> List[Debt]:
        return copy.deepcopy(self._state.debts)

    @property
    def scenarios(self) -> List[Scenario]:
        return copy.deepcopy(self._state.scenarios)

    @property
    def recommendations(self) -> List[Recommendation]:
        return copy.deepcopy(self._state.recommendations)

    @property
    def alerts(self) -> List[Alert]:
        return copy.deepcopy(self._state.alerts)

    @property
    def profile(self) -> UserProfile:
        return copy.deepcopy(self._state.profile)

    # Income

    def _month_holding(self, collection: Dict[str, list], record_id: int) -> Optional[str]:
        for month_id, records in collection.items():
            if ledger.find_record(records, record_id) is not None:
                return month_id
        return None

    def add_income(
        self,
        amount: float,
        date: str,
        type: IncomeType = IncomeType.OTHER,
        description: Optional[str] = None
    ) -> Income:
        """Record income in the month of its date."""
        month_id = ledger.month_id_from_date(date)
        self._ensure_month(month_id)

        income = Income(id=self._next_id(), amount=amount, date=date, type=type, description=description)
        self._state.incomes[month_id] = ledger.append_record(self._state.incomes[month_id], income)
        self._persist_incomes(month_id)
        return copy.deepcopy(income)

    def update_income(self, income: Income) -> None:
        """Replace an income, moving it if its date changed month. Unknown ids are ignored."""
        old_month = self._month_holding(self._state.incomes, income.id)
        if old_month is None:
            return

        new_month = ledger.month_id_from_date(income.date)
        if new_month == old_month:
            self._state.incomes[old_month] = ledger.replace_record(self._state.incomes[old_month], income)
        else:
            self._ensure_month(new_month)
            self._state.incomes[old_month] = ledger.remove_record(self._state.incomes[old_month], income.id)
            self._state.incomes[new_month] = ledger.append_record(self._state.incomes[new_month], income)
            self._persist_incomes(new_month)
        self._persist_incomes(old_month)

    def delete_income(self, income_id: int) -> None:
        month_id = self._month_holding(self._state.incomes, income_id)
        if month_id is None:
            return
        self._state.incomes[month_id] = ledger.remove_record(self._state.incomes[month_id], income_id)
        self._persist_incomes(month_id)

    # Expenses

    def _refresh_budgets(self, month_id: str) -> None:
        self._state.budgets[month_id] = ledger.recompute_budget_spending(
            self._state.budgets.get(month_id, []),
            self._state.expenses.get(month_id, [])
        )
        self._persist_budgets(month_id)

    def add_expense(
        self,
        amount: float,
        date: str,
        category: ExpenseCategory = ExpenseCategory.MISCELLANEOUS,
        description: Optional[str] = None,
        associated_debt_id: Optional[int] = None
    ) -> Expense:
        """Record an expense, recompute that month's budgets and check alerts."""
        month_id = ledger.month_id_from_date(date)
        self._ensure_month(month_id)

        expense = Expense(
            id=self._next_id(),
            amount=amount,
            date=date,
            category=category,
            description=description,
            associated_debt_id=associated_debt_id
        )
        self._state.expenses[month_id] = ledger.append_record(self._state.expenses[month_id], expense)
        self._persist_expenses(month_id)
        self._refresh_budgets(month_id)
        self.check_budget_alerts()
        return copy.deepcopy(expense)

    def update_expense(self, expense: Expense) -> None:
        """Replace an expense. Unknown ids are ignored."""
        old_month = self._month_holding(self._state.expenses, expense.id)
        if old_month is None:
            return

        new_month = ledger.month_id_from_date(expense.date)
        if new_month == old_month:
            self._state.expenses[old_month] = ledger.replace_record(self._state.expenses[old_month], expense)
        else:
            self._ensure_month(new_month)
            self._state.expenses[old_month] = ledger.remove_record(self._state.expenses[old_month], expense.id)
            self._state.expenses[new_month] = ledger.append_record(self._state.expenses[new_month], expense)
            self._persist_expenses(new_month)
            self._refresh_budgets(new_month)

        self._persist_expenses(old_month)
        self._refresh_budgets(old_month)
        self.check_budget_alerts()

    def delete_expense(self, expense_id: int) -> None:
        """Remove an expense. A linked debt payment is not reversed."""
        month_id = self._month_holding(self._state.expenses, expense_id)
        if month_id is None:
            return
        self._state.expenses[month_id] = ledger.remove_record(self._state.expenses[month_id], expense_id)
        self._persist_expenses(month_id)
        self._refresh_budgets(month_id)

    def categorize_expense(self, description: str) -> ExpenseCategory:
        return categorizer.categorize_expense(description)

    # Budgets

    def set_budget(self, category: ExpenseCategory, limit: float) -> None:
        """Create or update the active month's budget for a category."""
        month_id = self.active_month_id
        self._state.budgets[month_id] = ledger.upsert_budget(self._state.budgets.get(month_id, []), category, limit)
        self._refresh_budgets(month_id)
        self.check_budget_alerts()

    def update_budget(self, budget: Budget) -> None:
        """Replace a budget's limit; spent stays derived from expenses."""
        month_id = self.active_month_id
        self._state.budgets[month_id] = ledger.replace_budget(self._state.budgets.get(month_id, []), budget)
        self._refresh_budgets(month_id)
        self.check_budget_alerts()

    def delete_budget(self, category: ExpenseCategory) -> None:
        month_id = self.active_month_id
        self._state.budgets[month_id] = ledger.remove_budget(self._state.budgets.get(month_id, []), category)
        self._persist_budgets(month_id)

    def check_budget_alerts(self) -> List[Alert]:
        """Append an alert for each active-month budget at or above 80% of its limit.

        Repeated calls repeat alerts for budgets still over the threshold.

        Returns:
            Newly created alerts
        """
        new_alerts = ledger.budget_alerts(
            self._state.budgets.get(self.active_month_id, []),
            self._next_id,
            self._clock(),
            self._state.profile.alert_preferences.budget_warning_threshold
        )
        if new_alerts:
            self._state.alerts = [*self._state.alerts, *new_alerts]
            logger.info(
                "Budget alerts raised",
                extra={"month_id": self.active_month_id, "alert_count": len(new_alerts)}
            )
        return copy.deepcopy(new_alerts)

    def compare_with_previous_month(self) -> MonthComparison:
        return ledger.compare_with_previous(self._state, self.active_month_id)

    # Goals

    def add_goal(
        self,
        type: GoalType,
        name: str,
        target_amount: float,
        target_date: str,
        description: str = '',
        priority: int = 5,
        associated_debt_id: Optional[int] = None,
        monthly_progress: Optional[Dict[str, float]] = None
    ) -> Goal:
        goal = Goal(
            id=self._next_id(),
            type=type,
            name=name,
            target_amount=target_amount,
            target_date=target_date,
            description=description,
            priority=priority,
            associated_debt_id=associated_debt_id,
            monthly_progress=dict(monthly_progress or {})
        )
        self._state.goals = ledger.append_record(self._state.goals, goal)
        self._persist_goals()
        return copy.deepcopy(goal)

    def update_goal(self, goal: Goal) -> None:
        if ledger.find_record(self._state.goals, goal.id) is None:
            return
        self._state.goals = ledger.replace_record(self._state.goals, goal)
        self._persist_goals()

    def delete_goal(self, goal_id: int) -> None:
        if ledger.find_record(self._state.goals, goal_id) is None:
            return
        self._state.goals = ledger.remove_record(self._state.goals, goal_id)
        self._persist_goals()

    def add_goal_contribution(self, goal_id: int, amount: float, date: str, notes: str = '') -> bool:
        """Add a contribution to a goal's progress for the month of date.

        Returns:
            False when the goal does not exist
        """
        goal = ledger.find_record(self._state.goals, goal_id)
        if goal is None:
            return False

        month_id = ledger.month_id_from_date(date)
        updated = ledger.apply_goal_contribution(goal, month_id, amount)
        self._state.goals = ledger.replace_record(self._state.goals, updated)
        self._persist_goals()
        logger.info(
            "Goal contribution",
            extra={"goal_id": goal_id, "month_id": month_id, "amount": amount,
                   "completed": updated.completed, "notes": notes[:50]}
        )
        return True

    def attach_goal_recommendations(self, goal_id: int, items: Iterable[dict]) -> List[GoalRecommendation]:
        """Replace a goal's AI recommendations with items from the advisor."""
        goal = ledger.find_record(self._state.goals, goal_id)
        if goal is None:
            return []

        recommendations = [
            GoalRecommendation.from_dict({**item, 'id': self._next_id(), 'applied_date': None})
            for item in items
        ]
        self._state.goals = ledger.replace_record(
            self._state.goals, replace(goal, ai_recommendations=recommendations)
        )
        self._persist_goals()
        return copy.deepcopy(recommendations)

    # Debts

    def add_debt(
        self,
        name: str,
        balance: float,
        original_principal: Optional[float] = None,
        interest_rate: float = 0.0,
        minimum_payment: float = 0.0,
        due_date: str = '',
        priority: int = 0,
        monthly_payments: Optional[Dict[str, float]] = None,
        monthly_balances: Optional[Dict[str, float]] = None,
        is_paid_off: bool = False
    ) -> Debt:
        debt = Debt(
            id=self._next_id(),
            name=name,
            balance=balance,
            original_principal=balance if original_principal is None else original_principal,
            interest_rate=interest_rate,
            minimum_payment=minimum_payment,
            due_date=due_date,
            priority=priority,
            monthly_payments=dict(monthly_payments or {}),
            monthly_balances=dict(monthly_balances or {}),
            is_paid_off=is_paid_off
        )
        self._state.debts = ledger.append_record(self._state.debts, debt)
        self._persist_debts()
        return copy.deepcopy(debt)

    def update_debt(self, debt: Debt) -> None:
        if ledger.find_record(self._state.debts, debt.id) is None:
            return
        self._state.debts = ledger.replace_record(self._state.debts, debt)
        self._persist_debts()

    def delete_debt(self, debt_id: int) -> None:
        if ledger.find_record(self._state.debts, debt_id) is None:
            return
        self._state.debts = ledger.remove_record(self._state.debts, debt_id)
        self._persist_debts()

    def record_debt_payment(self, debt_id: int, amount: float, date: str) -> bool:
        """Pay toward a debt.

        Writes, in order and without atomicity: a Debt Payments expense, the
        linked DebtPayoff goal's progress, then the debt itself.

        Returns:
            False when the debt does not exist
        """
        debt = ledger.find_record(self._state.debts, debt_id)
        if debt is None:
            return False

        month_id = ledger.month_id_from_date(date)

        self.add_expense(
            amount=amount,
            date=date,
            category=ExpenseCategory.DEBT_PAYMENTS,
            description=f'Payment for {debt.name}',
            associated_debt_id=debt_id
        )

        goal = ledger.find_debt_goal(self._state.goals, debt_id)
        if goal is not None:
            self.add_goal_contribution(goal.id, amount, date)

        self.update_debt(ledger.apply_debt_payment(debt, month_id, amount))
        return True

    # Scenarios

    def add_scenario(
        self,
        name: str,
        changes: Iterable[ScenarioChange] = (),
        projected_savings: float = 0.0,
        projected_timeframe: str = ''
    ) -> Scenario:
        scenario = Scenario(
            id=self._next_id(),
            name=name,
            changes=list(changes),
            projected_savings=projected_savings,
            projected_timeframe=projected_timeframe
        )
        self._state.scenarios = ledger.append_record(self._state.scenarios, scenario)
        self._persist_scenarios()
        return copy.deepcopy(scenario)

    def update_scenario(self, scenario: Scenario) -> None:
        if ledger.find_record(self._state.scenarios, scenario.id) is None:
            return
        self._state.scenarios = ledger.replace_record(self._state.scenarios, scenario)
        self._persist_scenarios()

    def delete_scenario(self, scenario_id: int) -> None:
        if ledger.find_record(self._state.scenarios, scenario_id) is None:
            return
        self._state.scenarios = ledger.remove_record(self._state.scenarios, scenario_id)
        self._persist_scenarios()

    # Recommendations and alerts

    def generate_recommendations(self) -> List[Recommendation]:
        """Append rule-based recommendations for the active month."""
        new_recommendations = ledger.rule_based_recommendations(
            self.summary,
            len(self._state.expenses.get(self.active_month_id, [])),
            self._next_id,
            self._clock()
        )
        self._state.recommendations = [*self._state.recommendations, *new_recommendations]
        return copy.deepcopy(new_recommendations)

    def add_recommendations(self, items: Iterable[dict]) -> List[Recommendation]:
        """Append externally produced recommendations ({type, description, impact})."""
        now = self._clock().isoformat()
        new_recommendations = [
            Recommendation(
                id=self._next_id(),
                type=item.get('type', 'Financial Insight'),
                description=item.get('description', ''),
                impact=item.get('impact', ''),
                date_generated=now,
                is_read=False
            )
            for item in items
        ]
        self._state.recommendations = [*self._state.recommendations, *new_recommendations]
        return copy.deepcopy(new_recommendations)

    def mark_recommendation_read(self, recommendation_id: int) -> None:
        self._state.recommendations = [
            replace(r, is_read=True) if r.id == recommendation_id else r
            for r in self._state.recommendations
        ]

    def mark_alert_read(self, alert_id: int) -> None:
        self._state.alerts = [
            replace(a, is_read=True) if a.id == alert_id else a
            for a in self._state.alerts
        ]

    def clear_all_alerts(self) -> None:
        self._state.alerts = []

    # Profile

    def update_user_profile(self, profile: UserProfile) -> None:
        self._state.profile = copy.deepcopy(profile)
        self._write(PROFILE_KEY, profile.to_dict())

    # Snapshots and bulk data

    def snapshot(self) -> dict:
        """Plain-data view of the active month for the AI adapter."""
        return ledger.build_snapshot(self._state, self.active_month_id)

    def load_sample_data(self) -> None:
        """Seed the active month with sample income, expenses, budgets and goals."""
        month_id = self.active_month_id
        for fields in sample_data.sample_incomes(month_id):
            self.add_income(**fields)
        for fields in sample_data.sample_expenses(month_id):
            self.add_expense(**fields)
        for category, limit in sample_data.sample_budget_limits():
            self.set_budget(category, limit)
        for fields in sample_data.sample_goals(int(month_id[:4])):
            self.add_goal(**fields)
        logger.info("Sample data loaded", extra={"month_id": month_id})

    def export_data(self) -> Dict[str, Any]:
        """Every persistence key with its current value."""
        state = self._state
        data: Dict[str, Any] = {
            PROFILE_KEY: state.profile.to_dict(),
            MONTHS_KEY: [m.to_dict() for m in state.months],
            GOALS_KEY: [g.to_dict() for g in state.goals],
            DEBTS_KEY: [d.to_dict() for d in state.debts],
            SCENARIOS_KEY: [s.to_dict() for s in state.scenarios],
        }
        for month in state.months:
            data[incomes_key(month.id)] = [i.to_dict() for i in state.incomes.get(month.id, [])]
            data[expenses_key(month.id)] = [e.to_dict() for e in state.expenses.get(month.id, [])]
            data[budgets_key(month.id)] = [b.to_dict() for b in state.budgets.get(month.id, [])]
        return data

    def import_data(self, data: Dict[str, Any]) -> None:
        """Replace persisted ledger keys with data and reload.

        Keys that are not ledger keys are ignored.
        """
        for key, value in data.items():
            if key in GLOBAL_KEYS or key.startswith(MONTH_KEY_PREFIXES):
                self._write(key, value)
        self._state = LedgerState()
        self._load()
