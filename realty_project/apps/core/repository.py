"""
Entity repository over the ORM.

A small, kind-keyed API. The finance list, export and accounting views read
through it, simple setup records (categories, accounts) are written through
it, and the change feed re-fetches snapshots with it:

    fetch_entities('expenses', scope=request.scope)
    persist_entity('expenses', None, {'description': ..., 'amount': ...})
    delete_entity('expenses', expense_id)

Writes are validated with full_clean() before anything touches the database,
and run inside a transaction: a database error rolls the whole write back and
surfaces as PersistenceError.
"""
import logging
from contextlib import contextmanager

from django.apps import apps
from django.db import DatabaseError, transaction
from django.db.models import Q

from apps.core.exceptions import PersistenceError, RecordNotFound
from apps.core.models import ScopedQuerySet

logger = logging.getLogger(__name__)

ENTITY_MODELS = {
    'projects': 'projects.Project',
    'customers': 'crm.Customer',
    'units': 'property.Unit',
    'bookings': 'sales.Booking',
    'payments': 'sales.Payment',
    'extra_payments': 'sales.ExtraPayment',
    'scheduled_payments': 'sales.ScheduledPayment',
    'unit_sales': 'sales.UnitSale',
    'expenses': 'finance.Expense',
    'categories': 'finance.ExpenseCategory',
    'accounts': 'finance.Account',
    'transactions': 'finance.Transaction',
    'documents': 'documents.Document',
}

ENTITY_RELATED = {
    'units': ('project',),
    'bookings': ('unit', 'customer', 'project'),
    'payments': ('booking', 'account'),
    'extra_payments': ('booking', 'account'),
    'unit_sales': ('unit', 'customer', 'project'),
    'expenses': ('category', 'project', 'account'),
    'categories': ('project',),
    'transactions': ('account', 'project'),
}


def get_entity_model(kind):
    try:
        return apps.get_model(ENTITY_MODELS[kind])
    except KeyError:
        raise ValueError(f'Unknown entity kind: {kind}') from None


@contextmanager
def atomic_write(kind=None):
    """
    Run a block of writes atomically.

    Usage:
        with atomic_write('payments'):
            ...
    """
    try:
        with transaction.atomic():
            yield
    except DatabaseError as exc:
        logger.error('Write of %s failed and was rolled back: %s', kind or 'records', exc)
        raise PersistenceError(f'Could not save {kind or "the record"}: {exc}', kind=kind, original=exc) from exc


def _scoped(kind, queryset, scope):
    project_id = scope.project_id if scope is not None else None
    if project_id is None:
        return queryset
    if isinstance(queryset, ScopedQuerySet):
        return queryset.for_scope(scope)
    if kind == 'projects':
        return queryset.filter(pk=project_id)
    if kind == 'categories':
        # Shared categories (no project) are visible everywhere
        return queryset.filter(Q(project_id__isnull=True) | Q(project_id=project_id))
    return queryset


def fetch_entities(kind, scope=None, **filters):
    """All active records of `kind`, narrowed to the scope's project."""
    model = get_entity_model(kind)
    queryset = model.objects.select_related(*ENTITY_RELATED.get(kind, ()))
    if any(field.name == 'is_active' for field in model._meta.fields):
        queryset = queryset.filter(is_active=True)
    queryset = _scoped(kind, queryset, scope)
    if filters:
        queryset = queryset.filter(**filters)
    return list(queryset)


def persist_entity(kind, entity_id, patch):
    """
    Create (entity_id is None) or update a record from a field patch.

    Raises:
        RecordNotFound: no record with entity_id
        ValidationError: the patched record is invalid, nothing was written
        PersistenceError: the database rejected the write, nothing was written
    """
    model = get_entity_model(kind)
    if entity_id is None:
        instance = model()
    else:
        instance = model.objects.filter(pk=entity_id).first()
        if instance is None:
            raise RecordNotFound(f'{kind} {entity_id} does not exist.')

    for field_name, value in patch.items():
        setattr(instance, field_name, value)

    generated = [field.name for field in model._meta.fields if not field.editable]
    instance.full_clean(exclude=generated)

    with atomic_write(kind):
        instance.save()
    return instance


def delete_entity(kind, entity_id):
    model = get_entity_model(kind)
    instance = model.objects.filter(pk=entity_id).first()
    if instance is None:
        raise RecordNotFound(f'{kind} {entity_id} does not exist.')
    with atomic_write(kind):
        instance.delete()
