"""Loan amortization and formatting calculations."""

import calendar
import math
from datetime import date
from typing import Iterable, List, Optional

from ledgerly.models.entities import BalancePoint, Payment, PayoffProjection

# Number of months projected ahead in a balance history
PROJECTION_MONTHS = 6

CURRENCY_SYMBOLS = {
    'USD': '$',
    'CAD': 'CA$',
    'AUD': 'A$',
    'EUR': '€',
    'GBP': '£',
    'JPY': '¥',
    'INR': '₹',
}


def parse_date(value: str) -> date:
    """Parse an ISO date or datetime string to a date.

    Args:
        value: 'YYYY-MM-DD' or a full ISO timestamp

    Returns:
        Calendar date
    """
    return date.fromisoformat(value[:10])


def months_between(start: date, end: date) -> int:
    """Whole calendar months from start to end, ignoring the day of month.

    Args:
        start: Earlier date
        end: Later date

    Returns:
        Month difference, never negative
    """
    return max(0, (end.year - start.year) * 12 + (end.month - start.month))


def add_months(value: date, months: int) -> date:
    """Shift a date by a number of months, clamping the day to the month length."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def _monthly_rate(interest_rate: float) -> float:
    return interest_rate / 100 / 12


def _sorted_payments(payments: Iterable[Payment]) -> List[Payment]:
    return sorted(payments, key=lambda p: parse_date(p.date))


def remaining_balance(principal: float, interest_rate: float, payments: Iterable[Payment]) -> float:
    """Calculate the balance left after applying payments.

    Interest compounds once per calendar month elapsed between successive
    payments. The first payment is applied to the principal without interest.

    Args:
        principal: Original loan amount
        interest_rate: Annual rate in percent
        payments: Payment records, any order

    Returns:
        Remaining balance, floored at 0
    """
    ordered = _sorted_payments(payments)
    if not ordered:
        return principal
    if principal == 0:
        return 0.0

    rate = _monthly_rate(interest_rate)
    balance = max(0.0, principal - ordered[0].amount)
    last_date = parse_date(ordered[0].date)

    for payment in ordered[1:]:
        current_date = parse_date(payment.date)
        for _ in range(months_between(last_date, current_date)):
            balance += balance * rate
        balance = max(0.0, balance - payment.amount)
        last_date = current_date

    return max(0.0, balance)


def percent_paid(principal: float, current_balance: float) -> int:
    """Percent of principal paid off, rounded half up.

    Args:
        principal: Original amount
        current_balance: Current balance

    Returns:
        Whole percent, 0 when principal is 0
    """
    if principal == 0:
        return 0
    return math.floor(100 - (current_balance / principal * 100) + 0.5)


def _time_remaining_text(remaining_months: int) -> str:
    years, months = divmod(remaining_months, 12)
    year_text = f"{years} {'year' if years == 1 else 'years'}"
    month_text = f"{months} {'month' if months == 1 else 'months'}"

    if years > 0 and months > 0:
        return f"{year_text} and {month_text} remaining"
    if years > 0:
        return f"{year_text} remaining"
    if months > 0:
        return f"{month_text} remaining"
    return "Loan fully paid!"


def payoff_projection(
    current_balance: float,
    monthly_payment: float,
    interest_rate: float,
    today: Optional[date] = None
) -> PayoffProjection:
    """Project how many months remain until a balance is paid off.

    Uses the closed-form amortization count when the rate is positive and
    plain division otherwise. Non-finite or negative counts clamp to 0.

    Args:
        current_balance: Outstanding balance
        monthly_payment: Planned monthly payment
        interest_rate: Annual rate in percent
        today: Reference date for the payoff date (defaults to today)

    Returns:
        PayoffProjection with month count, 'Month YYYY' date and remaining text
    """
    if current_balance == 0 or monthly_payment == 0:
        return PayoffProjection(months=0, date='-', time_remaining='-')

    rate = _monthly_rate(interest_rate)
    try:
        if rate > 0:
            remaining = math.ceil(
                math.log(monthly_payment / (monthly_payment - current_balance * rate))
                / math.log(1 + rate)
            )
        else:
            remaining = math.ceil(current_balance / monthly_payment)
    except (ValueError, ZeroDivisionError, OverflowError):
        # Payment never covers the interest
        remaining = 0

    if remaining < 0:
        remaining = 0

    payoff_date = add_months(today or date.today(), remaining)

    return PayoffProjection(
        months=remaining,
        date=payoff_date.strftime('%B %Y'),
        time_remaining=_time_remaining_text(remaining)
    )


def balance_history(
    principal: float,
    interest_rate: float,
    payments: Iterable[Payment],
    monthly_payment: float = 0.0
) -> List[BalancePoint]:
    """Build chart points for a loan balance over time.

    Starts one month before the first payment, so every payment accrues at
    least one month of interest. Adds a projected point six months after the
    last payment while a balance remains.

    Args:
        principal: Original loan amount
        interest_rate: Annual rate in percent
        payments: Payment records, any order
        monthly_payment: Planned payment used for the projection

    Returns:
        Ordered balance points, empty when there are no payments
    """
    ordered = _sorted_payments(payments)
    if not ordered:
        return []

    rate = _monthly_rate(interest_rate)
    balance = principal
    points = [BalancePoint(label='Initial Balance', balance=balance)]

    last_date = add_months(parse_date(ordered[0].date), -1)

    for payment in ordered:
        current_date = parse_date(payment.date)
        for _ in range(months_between(last_date, current_date)):
            balance += balance * rate
        balance = max(0.0, balance - payment.amount)
        points.append(BalancePoint(label=format_date(payment.date), balance=balance))
        last_date = current_date

    if balance > 0 and monthly_payment > 0:
        projection_date = add_months(last_date, PROJECTION_MONTHS)
        projected = balance
        for _ in range(PROJECTION_MONTHS):
            projected += projected * rate
            projected -= monthly_payment
            if projected < 0:
                projected = 0.0
                break
        points.append(BalancePoint(
            label=f"{format_date(projection_date.isoformat())} (projected)",
            balance=projected
        ))

    return points


def format_currency(value: float, currency: str = 'USD') -> str:
    """Format amount as currency string, e.g. '-$1,234.50'."""
    symbol = CURRENCY_SYMBOLS.get(currency, f'{currency} ')
    sign = '-' if value < 0 else ''
    return f"{sign}{symbol}{abs(value):,.2f}"


def format_date(value: str) -> str:
    """Format an ISO date string as 'Jan 5, 2024'."""
    d = parse_date(value)
    return f"{d:%b} {d.day}, {d.year}"
