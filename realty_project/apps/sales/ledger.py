"""
Booking ledger arithmetic.

A booking stores a deposit figure (`amount_paid`) and may also have itemized
payment rows. Older bookings keep the deposit outside the itemized rows, newer
ones keep `amount_paid` equal to their sum. `normalize` reconciles the two so
the deposit is never counted twice, then adds extra payments on top.

Every function here is pure: callers pass already-fetched rows, either model
instances or plain dicts with the same field names.
"""
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, List, Optional

from apps.core.amounts import ZERO, coerce_amount, nearly_equal, sum_amounts
from apps.core.scope import same_id
from apps.core.utils import as_date, record_value

DEPOSIT = 'deposit'
PAYMENT = 'payment'
EXTRA = 'extra'

KIND_ORDER = {DEPOSIT: 0, PAYMENT: 1, EXTRA: 2}


@dataclass(frozen=True)
class LedgerEntry:
    date: Optional[date]
    amount: Decimal
    kind: str
    source_id: Any = None
    description: str = ''


@dataclass
class NormalizedLedger:
    payments_sum: Decimal
    base_amount: Decimal
    extra_amount: Decimal
    total_paid: Decimal
    deposit_counted: bool
    entries: List[LedgerEntry] = field(default_factory=list)


@dataclass(frozen=True)
class Balance:
    remaining: Decimal
    is_fully_paid: bool


@dataclass(frozen=True)
class StatementLine:
    entry: LedgerEntry
    cumulative_paid: Decimal
    remaining: Decimal


@dataclass
class BookingStatement:
    booking: Any
    unit_price: Decimal
    ledger: NormalizedLedger
    balance: Balance
    lines: List[StatementLine]


@dataclass
class BookingSummary:
    booking: Any
    total_paid: Decimal
    remaining: Decimal
    is_fully_paid: bool
    payment_count: int
    last_payment_date: Optional[date]


def deposit_is_separate(amount_paid, payments_sum, deposit_reconciled=None):
    """
    Whether the stored deposit must be added to the itemized payments.

    An explicit `deposit_reconciled` flag decides. Without one, a deposit
    within 0.01 of the itemized sum is taken to mirror it.
    """
    if deposit_reconciled is True:
        return False
    if deposit_reconciled is False:
        return True
    return not nearly_equal(amount_paid, payments_sum)


def _rows_for(booking_id, rows):
    if booking_id is None:
        return list(rows)
    matched = []
    for row in rows:
        row_booking = record_value(row, 'booking_id')
        if same_id(row_booking, booking_id):
            matched.append(row)
    return matched


def _entry_sort_key(entry):
    return (
        entry.date is None,
        entry.date or date.min,
        KIND_ORDER.get(entry.kind, len(KIND_ORDER)),
    )


def normalize(booking, payments=(), extra_payments=()):
    """
    Total paid against a booking.

        base  = payments_sum                 if amount_paid ~= payments_sum
              = amount_paid + payments_sum   otherwise
        total = base + sum(extra payments)
    """
    booking_id = record_value(booking, 'id')
    payments = _rows_for(booking_id, payments)
    extra_payments = _rows_for(booking_id, extra_payments)

    amount_paid = coerce_amount(record_value(booking, 'amount_paid'))
    payments_sum = sum_amounts(record_value(p, 'amount') for p in payments)
    extra_sum = sum_amounts(record_value(e, 'amount') for e in extra_payments)

    separate = deposit_is_separate(
        amount_paid, payments_sum, record_value(booking, 'deposit_reconciled')
    )
    base = amount_paid + payments_sum if separate else payments_sum

    entries = []
    if separate and amount_paid:
        entries.append(LedgerEntry(
            date=as_date(record_value(booking, 'booking_date')),
            amount=amount_paid,
            kind=DEPOSIT,
            source_id=booking_id,
            description='Deposit',
        ))
    for payment in payments:
        entries.append(LedgerEntry(
            date=as_date(record_value(payment, 'payment_date')),
            amount=coerce_amount(record_value(payment, 'amount')),
            kind=PAYMENT,
            source_id=record_value(payment, 'id'),
            description=record_value(payment, 'notes') or '',
        ))
    for extra in extra_payments:
        entries.append(LedgerEntry(
            date=as_date(record_value(extra, 'payment_date')),
            amount=coerce_amount(record_value(extra, 'amount')),
            kind=EXTRA,
            source_id=record_value(extra, 'id'),
            description=record_value(extra, 'description') or '',
        ))
    entries.sort(key=_entry_sort_key)

    return NormalizedLedger(
        payments_sum=payments_sum,
        base_amount=base,
        extra_amount=extra_sum,
        total_paid=base + extra_sum,
        deposit_counted=separate,
        entries=entries,
    )


def unit_price(unit):
    return coerce_amount(record_value(unit, 'price'))


def compute_balance(unit, total_paid):
    """Remaining = price - paid. Not clamped: overpayment gives a negative remainder."""
    remaining = unit_price(unit) - coerce_amount(total_paid)
    return Balance(remaining=remaining, is_fully_paid=remaining <= ZERO)


def running_balance(price, entries, opening=ZERO):
    """Cumulative paid and remaining balance after each entry, in order."""
    price = coerce_amount(price)
    cumulative = coerce_amount(opening)
    lines = []
    for entry in entries:
        cumulative += coerce_amount(entry.amount)
        lines.append(StatementLine(entry=entry, cumulative_paid=cumulative, remaining=price - cumulative))
    return lines


def booking_statement(booking, payments=(), extra_payments=(), unit=None):
    unit = unit if unit is not None else record_value(booking, 'unit')
    ledger = normalize(booking, payments, extra_payments)
    price = unit_price(unit)
    return BookingStatement(
        booking=booking,
        unit_price=price,
        ledger=ledger,
        balance=compute_balance(unit, ledger.total_paid),
        lines=running_balance(price, ledger.entries),
    )


def _group_by_booking(rows):
    grouped = {}
    for row in rows:
        grouped.setdefault(str(record_value(row, 'booking_id')), []).append(row)
    return grouped


def summarize_bookings(bookings, payments=(), extra_payments=(), units=None):
    """
    One BookingSummary per booking.

    `units` optionally maps unit id to unit; otherwise `booking.unit` is used.
    """
    payments_by_booking = _group_by_booking(payments)
    extras_by_booking = _group_by_booking(extra_payments)

    summaries = []
    for booking in bookings:
        key = str(record_value(booking, 'id'))
        booking_payments = payments_by_booking.get(key, [])
        booking_extras = extras_by_booking.get(key, [])
        if units is not None:
            unit = units.get(record_value(booking, 'unit_id'))
        else:
            unit = record_value(booking, 'unit')

        ledger = normalize(booking, booking_payments, booking_extras)
        balance = compute_balance(unit, ledger.total_paid)
        dates = [entry.date for entry in ledger.entries if entry.date is not None]
        summaries.append(BookingSummary(
            booking=booking,
            total_paid=ledger.total_paid,
            remaining=balance.remaining,
            is_fully_paid=balance.is_fully_paid,
            payment_count=len(booking_payments) + len(booking_extras),
            last_payment_date=max(dates) if dates else None,
        ))
    return summaries
