"""
Utility functions shared across the back-office apps.
"""
from datetime import date, datetime

from django.conf import settings
from django.utils.dateparse import parse_date, parse_datetime


def generate_number(document_type, model_class, number_field='number'):
    """
    Generate a sequential document number.
    Format: PREFIX-YEAR-NUMBER (e.g., BKG-2026-0001)

    Args:
        document_type: Key from NUMBER_SERIES settings (e.g., 'BOOKING')
        model_class: The model class to query for existing numbers
        number_field: The field name that stores the number
    """
    series = settings.NUMBER_SERIES.get(document_type, {})
    prefix = series.get('prefix', 'DOC')
    padding = series.get('padding', 4)

    year_prefix = f"{prefix}-{datetime.now().year}-"

    last_number = (
        model_class.objects
        .filter(**{f'{number_field}__startswith': year_prefix})
        .order_by(f'-{number_field}')
        .values_list(number_field, flat=True)
        .first()
    )

    last_seq = 0
    if last_number:
        try:
            last_seq = int(last_number.split('-')[-1])
        except (ValueError, IndexError):
            last_seq = 0

    return f"{year_prefix}{str(last_seq + 1).zfill(padding)}"


def get_client_ip(request):
    """Get the client IP address from request."""
    if not request:
        return None
    x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
    if x_forwarded_for:
        return x_forwarded_for.split(',')[0].strip()
    return request.META.get('REMOTE_ADDR')


def parse_int(value):
    """Integer from a query-string value; None for anything int() rejects."""
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def record_value(record, name, default=None):
    """Read a field from a model instance or a plain dict."""
    if record is None:
        return default
    if isinstance(record, dict):
        return record.get(name, default)
    return getattr(record, name, default)


def as_date(value):
    """Coerce a date, datetime or ISO string to a date; None when unreadable."""
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    try:
        parsed = parse_date(text)
    except ValueError:
        return None
    if parsed is not None:
        return parsed
    try:
        moment = parse_datetime(text)
    except ValueError:
        return None
    return moment.date() if moment else None


class PermissionChecker:
    """
    Module-level permission checks backed by Role / ModulePermission.
    Superusers and users whose profile role is Admin pass every check.
    """

    PERMISSION_TYPES = ('view', 'create', 'edit', 'delete')

    @staticmethod
    def is_admin(user):
        if not user or not user.is_authenticated:
            return False
        if user.is_superuser:
            return True
        from apps.settings_app.models import UserProfile
        return UserProfile.objects.filter(user=user, role=UserProfile.ROLE_ADMIN).exists()

    @staticmethod
    def _role_ids(user):
        from apps.settings_app.models import UserRole
        return UserRole.objects.filter(user=user, is_active=True).values_list('role_id', flat=True)

    @classmethod
    def has_permission(cls, user, module, permission_type):
        """
        Check if user has a specific permission.

        Args:
            user: User object
            module: Module name (e.g., 'sales', 'finance')
            permission_type: view, create, edit or delete
        """
        if not user or not user.is_authenticated:
            return False
        if cls.is_admin(user):
            return True

        from apps.settings_app.models import ModulePermission

        return ModulePermission.objects.filter(
            role_id__in=cls._role_ids(user),
            module__iexact=module,
            **{f'can_{permission_type}': True}
        ).exists()

    @classmethod
    def get_user_permissions(cls, user):
        """
        Returns:
            dict: module -> list of permission types
        """
        if not user or not user.is_authenticated:
            return {}
        if cls.is_admin(user):
            return {'all': list(cls.PERMISSION_TYPES)}

        from apps.settings_app.models import ModulePermission

        permissions = {}
        for mp in ModulePermission.objects.filter(role_id__in=cls._role_ids(user)):
            granted = permissions.setdefault(mp.module.lower(), [])
            for permission_type in cls.PERMISSION_TYPES:
                if getattr(mp, f'can_{permission_type}') and permission_type not in granted:
                    granted.append(permission_type)
        return permissions

    @classmethod
    def get_module_permissions(cls, user, module):
        """
        Returns:
            dict: permission type -> bool for one module
        """
        if cls.is_admin(user):
            return {permission_type: True for permission_type in cls.PERMISSION_TYPES}
        granted = cls.get_user_permissions(user).get(module.lower(), [])
        return {permission_type: permission_type in granted for permission_type in cls.PERMISSION_TYPES}
