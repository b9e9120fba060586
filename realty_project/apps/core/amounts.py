"""
Money arithmetic helpers.

All totals are computed with Decimal so sums do not depend on input order.
Values that are missing or not numbers (None, '', 'abc', NaN, infinities)
count as zero; callers that care can ask `is_valid_amount` first.
"""
import math
from decimal import Decimal, InvalidOperation

ZERO = Decimal('0')
EPSILON = Decimal('0.01')


def to_amount(value):
    """
    Convert a raw amount to Decimal.

    Returns None when the value cannot be read as a finite number.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, int):
        return Decimal(value)
    elif isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            return None
        amount = Decimal(str(value))
    else:
        text = str(value).strip().replace(',', '')
        if not text:
            return None
        try:
            amount = Decimal(text)
        except InvalidOperation:
            return None
    if amount.is_nan() or amount.is_infinite():
        return None
    return amount


def is_valid_amount(value):
    return to_amount(value) is not None


def coerce_amount(value):
    """Like to_amount, but invalid values become zero."""
    amount = to_amount(value)
    return ZERO if amount is None else amount


def sum_amounts(values):
    total = ZERO
    for value in values:
        total += coerce_amount(value)
    return total


def nearly_equal(a, b, epsilon=EPSILON):
    """|a - b| < epsilon"""
    return abs(coerce_amount(a) - coerce_amount(b)) < to_amount(epsilon)
