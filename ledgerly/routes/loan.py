"""Loan tracker routes over the hosted store."""

from dataclasses import asdict

from aws_lambda_powertools import Logger

from ledgerly.models.entities import Payment
from ledgerly.routes import hosted
from ledgerly.services import ledger
from ledgerly.services.loan import LoanTracker
from ledgerly.utils.http import error_response, make_response

logger = Logger(service="ledgerly-loan-routes")


def get_tracker() -> LoanTracker:
    return LoanTracker(hosted.get_store().store)


def _find_payment(tracker: LoanTracker, payment_id: int):
    return next((p for p in tracker.payments if p.id == payment_id), None)


def _summary(tracker: LoanTracker) -> dict:
    return {
        'details': tracker.details.to_dict(),
        'payments': [p.to_dict() for p in tracker.payments],
        'current_balance': tracker.current_balance,
        'percent_paid': tracker.percent_paid,
        'payoff': asdict(tracker.payoff()),
        'balance_history': [asdict(point) for point in tracker.balance_history()],
        'last_milestone': tracker.last_milestone,
    }


def handle_get_loan() -> dict:
    """Loan terms, payments, balance, payoff projection and balance history."""
    return make_response(200, _summary(get_tracker()))


def handle_save_details(body: dict) -> dict:
    tracker = get_tracker()
    tracker.save_details(body.get('principal'), body.get('interest_rate'), body.get('monthly_payment'))
    logger.info("Loan details saved", extra={"principal": tracker.details.principal})
    return make_response(200, _summary(tracker))


def handle_add_payment(body: dict) -> dict:
    """Record a payment.

    Returns:
        Response (201) with the loan summary and any milestone just reached
    """
    tracker = get_tracker()
    milestone = tracker.add_payment(body.get('amount'), body.get('date'))
    result = _summary(tracker)
    result['milestone'] = asdict(milestone) if milestone else None
    return make_response(201, result)


def handle_update_payment(payment_id: int, body: dict) -> dict:
    tracker = get_tracker()
    existing = _find_payment(tracker, payment_id)
    if existing is None:
        return error_response(404, 'not_found', f'payment {payment_id} not found')

    payment = Payment(
        id=payment_id,
        amount=ledger.require_positive(body.get('amount', existing.amount), 'amount'),
        date=ledger.require_date(body.get('date', existing.date))
    )
    milestone = tracker.update_payment(payment)
    result = _summary(tracker)
    result['milestone'] = asdict(milestone) if milestone else None
    return make_response(200, result)


def handle_delete_payment(payment_id: int) -> dict:
    tracker = get_tracker()
    if _find_payment(tracker, payment_id) is None:
        return error_response(404, 'not_found', f'payment {payment_id} not found')
    tracker.delete_payment(payment_id)
    logger.info("Loan payment deleted", extra={"payment_id": payment_id})
    return make_response(200, {'success': True})
