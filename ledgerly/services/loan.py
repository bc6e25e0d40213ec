"""Single-loan payoff tracker with milestone notifications."""

from datetime import date
from typing import Callable, List, Optional

from aws_lambda_powertools import Logger

from ledgerly.models.entities import (
    BalancePoint,
    LoanDetails,
    MilestoneNotification,
    PayoffProjection,
    Payment,
    PersistenceError,
)
from ledgerly.services import calculations, ledger
from ledgerly.services.ledger import IdGenerator
from ledgerly.services.persistence import KeyValueStore, load_json, save_json

logger = Logger(service="ledgerly-loan")

DETAILS_KEY = 'loanDetails'
PAYMENTS_KEY = 'payments'
MILESTONE_KEY = 'lastMilestoneReached'

MILESTONES = (25, 50, 75, 100)


def reached_milestone(percent: int) -> int:
    """Highest milestone at or below percent, or 0."""
    return max((m for m in MILESTONES if percent >= m), default=0)


class LoanTracker:
    """Tracks one loan's details and payments.

    Every change writes through to the backend. Write failures are logged
    and the in-memory state is kept.
    """

    def __init__(self, persistence: KeyValueStore, id_generator: Optional[Callable[[], int]] = None):
        self._persistence = persistence

        details = load_json(persistence, DETAILS_KEY, default=None)
        try:
            self.details = LoanDetails.from_dict(details) if isinstance(details, dict) else LoanDetails()
        except (TypeError, ValueError):
            logger.warning("Malformed loan details ignored")
            self.details = LoanDetails()

        raw_payments = load_json(persistence, PAYMENTS_KEY, default=[])
        try:
            self._payments = [Payment.from_dict(p) for p in raw_payments] if isinstance(raw_payments, list) else []
        except (KeyError, TypeError, ValueError):
            logger.warning("Malformed loan payments ignored")
            self._payments = []

        last = load_json(persistence, MILESTONE_KEY, default=0)
        self.last_milestone = last if isinstance(last, int) else 0

        # Ids stay above stored payments when a tracker is rebuilt per request
        self._next_id = id_generator or IdGenerator(last=max((p.id for p in self._payments), default=0))

    def _write(self, key: str, value) -> None:
        try:
            save_json(self._persistence, key, value)
        except (PersistenceError, OSError) as e:
            logger.warning("Persistence write failed", extra={"key": key, "error": str(e)})

    def _persist_payments(self) -> None:
        self._write(PAYMENTS_KEY, [p.to_dict() for p in self._payments])

    @property
    def payments(self) -> List[Payment]:
        return sorted(self._payments, key=lambda p: calculations.parse_date(p.date))

    def save_details(self, principal: float, interest_rate: float, monthly_payment: float) -> LoanDetails:
        """Replace the loan terms.

        Raises:
            ValidationError: negative amounts
        """
        self.details = LoanDetails(
            principal=ledger.require_non_negative(principal, 'principal'),
            interest_rate=ledger.require_non_negative(interest_rate, 'interest_rate'),
            monthly_payment=ledger.require_non_negative(monthly_payment, 'monthly_payment')
        )
        self._write(DETAILS_KEY, self.details.to_dict())
        return self.details

    def add_payment(self, amount: float, date: str) -> Optional[MilestoneNotification]:
        """Record a payment and report a newly reached milestone.

        Args:
            amount: Payment amount, must be positive
            date: ISO date of the payment

        Returns:
            MilestoneNotification when a higher milestone was crossed, else None
        """
        payment = Payment(
            id=self._next_id(),
            amount=ledger.require_positive(amount, 'amount'),
            date=ledger.require_date(date)
        )
        self._payments = ledger.append_record(self._payments, payment)
        self._persist_payments()
        logger.info("Loan payment added", extra={"payment_id": payment.id, "amount": payment.amount})
        return self.check_milestone()

    def update_payment(self, payment: Payment) -> Optional[MilestoneNotification]:
        if ledger.find_record(self._payments, payment.id) is None:
            return None
        ledger.require_positive(payment.amount, 'amount')
        ledger.require_date(payment.date)
        self._payments = ledger.replace_record(self._payments, payment)
        self._persist_payments()
        return self.check_milestone()

    def delete_payment(self, payment_id: int) -> None:
        self._payments = ledger.remove_record(self._payments, payment_id)
        self._persist_payments()

    @property
    def current_balance(self) -> float:
        return calculations.remaining_balance(
            self.details.principal, self.details.interest_rate, self._payments
        )

    @property
    def percent_paid(self) -> int:
        return calculations.percent_paid(self.details.principal, self.current_balance)

    def payoff(self, today: Optional[date] = None) -> PayoffProjection:
        return calculations.payoff_projection(
            self.current_balance, self.details.monthly_payment, self.details.interest_rate, today
        )

    def balance_history(self) -> List[BalancePoint]:
        return calculations.balance_history(
            self.details.principal,
            self.details.interest_rate,
            self._payments,
            self.details.monthly_payment
        )

    def check_milestone(self) -> Optional[MilestoneNotification]:
        """Record and return the highest milestone reached if it is new.

        Milestones only move up; paying less later never re-fires a lower one.
        """
        milestone = reached_milestone(self.percent_paid)
        if milestone <= self.last_milestone:
            return None

        self.last_milestone = milestone
        self._write(MILESTONE_KEY, milestone)
        logger.info("Loan milestone reached", extra={"milestone": milestone})
        return MilestoneNotification(
            milestone=milestone,
            message=f"Congratulations! You've paid off {milestone}% of your loan!"
        )
