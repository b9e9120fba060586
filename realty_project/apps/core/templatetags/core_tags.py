"""
Template filters for money and dates.

Usage:
    {% load core_tags %}
    {{ booking.amount_paid|currency }}
    {{ payment.amount|currency:company.currency }}
    {% money expense.amount %}
    {{ expense.date|display_date }}
"""
from django import template

from apps.core.formatting import format_currency, format_date

register = template.Library()


@register.filter
def currency(amount, code=None):
    return format_currency(amount, code)


@register.simple_tag(takes_context=True)
def money(context, amount):
    """Format with the company's currency and decimal places."""
    company = context.get('company')
    if company is None:
        return format_currency(amount)
    return format_currency(amount, company.currency, company.decimal_places)


@register.filter
def display_date(value, fmt=None):
    return format_date(value, fmt)


@register.filter
def get_item(dictionary, key):
    """Get an item from a dictionary using a variable key."""
    if dictionary is None:
        return None
    return dictionary.get(key)


@register.filter
def has_perm(user, perm_string):
    """
    Usage: {% if user|has_perm:'sales:create' %}
    """
    if not user or not user.is_authenticated or ':' not in perm_string:
        return False
    from apps.core.utils import PermissionChecker
    module, permission_type = perm_string.split(':', 1)
    return PermissionChecker.has_permission(user, module, permission_type)


@register.filter
def percent(share, places=1):
    """0.253 -> 25.3"""
    try:
        return round(float(share) * 100, int(places))
    except (TypeError, ValueError):
        return 0
