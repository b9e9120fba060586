"""
Audit trail for the back-office.

Every business event (bookings, payments, expenses, settings changes) is
written to settings_app.AuditLog. Money-moving events carry the amounts
before/after and the project so the activity log can be filtered by them.
"""
import json
from decimal import Decimal

from django.db import models

from .middleware import get_current_request
from .utils import get_client_ip


def serialize_value(value):
    """Convert value to JSON-serializable format."""
    if value is None:
        return None
    if isinstance(value, Decimal):
        return str(value)
    if hasattr(value, 'isoformat'):
        return value.isoformat()
    if hasattr(value, 'pk'):
        return str(value)
    return value


def _ip_address(request):
    return get_client_ip(request or get_current_request())


def log_audit(user, action, model_name, record_id=None, changes=None, request=None):
    """
    Create an audit log entry.

    Args:
        user: The user performing the action
        action: One of AuditLog.ACTION_CHOICES
        model_name: Name of the model being modified
        record_id: Primary key of the record
        changes: Dictionary describing the change
        request: HTTP request object (optional)
    """
    from apps.settings_app.models import AuditLog

    if changes:
        try:
            json.dumps(changes)
        except (TypeError, ValueError):
            changes = {'message': str(changes)}

    return AuditLog.objects.create(
        user=user if user and user.is_authenticated else None,
        action=action,
        model=model_name,
        record_id=str(record_id) if record_id else '',
        changes=changes or {},
        ip_address=_ip_address(request),
    )


def _log_money_audit(module, user, action, entity_type, entity_id, reference_number=None,
                     amount_before=None, amount_after=None, project=None, details=None,
                     request=None):
    changes = {
        'module': module,
        'entity_type': entity_type,
        'entity_id': str(entity_id),
        'reference_number': reference_number,
    }
    if amount_before is not None:
        changes['amount_before'] = serialize_value(amount_before)
    if amount_after is not None:
        changes['amount_after'] = serialize_value(amount_after)
    if project is not None:
        changes['project'] = serialize_value(project)
    if details:
        changes.update({key: serialize_value(value) for key, value in details.items()})

    return log_audit(user, action, f'{module}.{entity_type}', entity_id, changes, request)


def log_sales_audit(user, action, entity_type, entity_id, **kwargs):
    """Audit a booking, payment, extra payment or unit sale event."""
    return _log_money_audit('Sales', user, action, entity_type, entity_id, **kwargs)


def log_expense_audit(user, action, entity_id, **kwargs):
    """Audit an expense event."""
    return _log_money_audit('Finance', user, action, 'Expense', entity_id, **kwargs)


def log_payable_audit(user, action, entity_type, entity_id, **kwargs):
    """Audit a deferred payable, installment or salary event."""
    return _log_money_audit('Finance', user, action, entity_type, entity_id, **kwargs)


def get_entity_audit_history(entity_type, entity_id):
    """
    Audit history of one record, newest first.
    Used for the history panel on detail pages.
    """
    from apps.settings_app.models import AuditLog

    return AuditLog.objects.filter(
        models.Q(model__endswith=f'.{entity_type}') | models.Q(model=entity_type),
        record_id=str(entity_id)
    ).select_related('user').order_by('-timestamp')
