"""
Presentation formatting for money and dates.

Amounts render in the company's currency and decimal places (CompanySettings)
unless a caller passes its own; without a company row the DEFAULT_CURRENCY and
DEFAULT_DECIMAL_PLACES settings apply.

Nothing here raises on bad input: an unreadable amount renders as zero and an
unknown or malformed currency code renders with the default currency.
"""
import re
from decimal import Decimal, ROUND_HALF_UP

from django.conf import settings
from django.utils import formats

from apps.core.amounts import coerce_amount
from apps.core.utils import as_date

CURRENCY_CODE_RE = re.compile(r'^[A-Z]{3}$')

CURRENCY_SYMBOLS = {
    'USD': '$',
    'EUR': '€',
    'GBP': '£',
}

MAX_DECIMAL_PLACES = 6


def default_currency():
    return getattr(settings, 'DEFAULT_CURRENCY', 'IQD')


def default_decimal_places():
    return getattr(settings, 'DEFAULT_DECIMAL_PLACES', 2)


def company_defaults():
    """(currency, decimal places) of the company, or the settings defaults."""
    # Imported lazily, settings_app depends on core
    from apps.settings_app.models import CompanySettings

    company = CompanySettings.objects.filter(pk=1).first()
    if company is None:
        return default_currency(), default_decimal_places()
    return company.currency, company.decimal_places


def resolve_currency(code):
    """Normalized currency code, or the default one when `code` is not usable."""
    if isinstance(code, str):
        candidate = code.strip().upper()
        if CURRENCY_CODE_RE.match(candidate):
            return candidate
    return default_currency()


def resolve_decimal_places(value):
    try:
        places = int(value)
    except (TypeError, ValueError):
        return default_decimal_places()
    if places < 0 or places > MAX_DECIMAL_PLACES:
        return default_decimal_places()
    return places


def format_number(amount, decimal_places=None):
    """Grouped number with a fixed count of decimals, e.g. 1,500.00"""
    places = resolve_decimal_places(
        default_decimal_places() if decimal_places is None else decimal_places
    )
    value = coerce_amount(amount).quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)
    return formats.number_format(value, places, force_grouping=True)


def format_currency(amount, currency=None, decimal_places=None):
    """
    Format an amount for display.

    >>> format_currency(1500, 'IQD', 2)
    'IQD 1,500.00'
    >>> format_currency(12.5, 'USD', 2)
    '$12.50'
    """
    if currency is None or decimal_places is None:
        company_currency, company_places = company_defaults()
        currency = company_currency if currency is None else currency
        decimal_places = company_places if decimal_places is None else decimal_places
    code = resolve_currency(currency)
    number = format_number(amount, decimal_places)
    symbol = CURRENCY_SYMBOLS.get(code)
    if symbol:
        if number.startswith('-'):
            return f'-{symbol}{number[1:]}'
        return f'{symbol}{number}'
    return f'{code} {number}'


def format_date(value, fmt=None):
    """
    Format a date for display.

    `fmt` may be a Django date format ('d/m/Y'), a strftime format
    ('%d/%m/%Y') or None for ISO dates. Unreadable values render as ''.
    """
    day = as_date(value)
    if day is None:
        return ''
    if not fmt:
        return day.isoformat()
    if '%' in fmt:
        return day.strftime(fmt)
    return formats.date_format(day, fmt)
