"""
Settings Models - roles, permissions, user profiles, company settings and
the audit log.
"""
from django.db import models
from django.conf import settings
from apps.core.models import BaseModel

MODULE_CHOICES = [
    ('projects', 'Projects'),
    ('crm', 'Customers'),
    ('property', 'Units'),
    ('sales', 'Sales'),
    ('finance', 'Finance'),
    ('documents', 'Documents'),
    ('notifications', 'Notifications'),
    ('settings', 'Settings'),
]


class Role(BaseModel):
    """
    A named set of module permissions (e.g. Sales, Accounting).
    """
    name = models.CharField(max_length=100)
    code = models.CharField(max_length=50, unique=True)
    description = models.TextField(blank=True)
    is_system_role = models.BooleanField(default=False)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return self.name


class ModulePermission(models.Model):
    """
    View / create / edit / delete rights of a role on one module.
    """
    role = models.ForeignKey(Role, on_delete=models.CASCADE, related_name='module_permissions')
    module = models.CharField(max_length=50, choices=MODULE_CHOICES)
    can_view = models.BooleanField(default=False)
    can_create = models.BooleanField(default=False)
    can_edit = models.BooleanField(default=False)
    can_delete = models.BooleanField(default=False)

    class Meta:
        unique_together = ['role', 'module']
        ordering = ['role', 'module']

    def __str__(self):
        return f"{self.role.name} - {self.get_module_display()}"

    @classmethod
    def get_modules(cls):
        return MODULE_CHOICES


class UserRole(BaseModel):
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='user_roles')
    role = models.ForeignKey(Role, on_delete=models.CASCADE, related_name='user_roles')
    assigned_date = models.DateField(auto_now_add=True)

    class Meta:
        unique_together = ['user', 'role']

    def __str__(self):
        return f"{self.user.username} - {self.role.name}"


class UserProfile(BaseModel):
    """
    Per-user settings. A user with an assigned project only ever sees that
    project's records.
    """
    ROLE_ADMIN = 'admin'
    ROLE_SALES = 'sales'
    ROLE_ACCOUNTING = 'accounting'

    ROLE_CHOICES = [
        (ROLE_ADMIN, 'Admin'),
        (ROLE_SALES, 'Sales'),
        (ROLE_ACCOUNTING, 'Accounting'),
    ]

    user = models.OneToOneField(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='profile')
    role = models.CharField(max_length=20, choices=ROLE_CHOICES, default=ROLE_SALES)
    assigned_project = models.ForeignKey(
        'projects.Project',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='assigned_users',
        help_text='Restrict this user to a single project'
    )
    phone = models.CharField(max_length=30, blank=True)

    def __str__(self):
        return f"{self.user.username} ({self.get_role_display()})"


class CompanySettings(models.Model):
    """
    Singleton with company details and display preferences.
    """
    company_name = models.CharField(max_length=200)
    address = models.TextField(blank=True)
    phone = models.CharField(max_length=30, blank=True)
    email = models.EmailField(blank=True)
    currency = models.CharField(max_length=3, default='IQD')
    decimal_places = models.PositiveSmallIntegerField(default=2)
    date_format = models.CharField(max_length=20, default='%Y-%m-%d')

    class Meta:
        verbose_name = 'Company Settings'
        verbose_name_plural = 'Company Settings'

    def __str__(self):
        return self.company_name

    @classmethod
    def get_settings(cls):
        """Get or create company settings."""
        company, _ = cls.objects.get_or_create(
            pk=1,
            defaults={
                'company_name': 'My Company',
                'currency': settings.DEFAULT_CURRENCY,
                'decimal_places': settings.DEFAULT_DECIMAL_PLACES,
            }
        )
        return company


class AuditLog(models.Model):
    """
    Activity log for every business event.
    """
    ACTION_CHOICES = [
        ('create', 'Create'),
        ('update', 'Update'),
        ('delete', 'Delete'),
        ('cancel', 'Cancel'),
        ('complete', 'Complete'),
        ('login', 'Login'),
        ('logout', 'Logout'),
        ('export', 'Export'),
    ]

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        related_name='audit_logs'
    )
    action = models.CharField(max_length=20, choices=ACTION_CHOICES)
    model = models.CharField(max_length=100)
    record_id = models.CharField(max_length=50, blank=True)
    changes = models.JSONField(default=dict, blank=True)
    timestamp = models.DateTimeField(auto_now_add=True)
    ip_address = models.GenericIPAddressField(null=True, blank=True)

    class Meta:
        ordering = ['-timestamp']

    def __str__(self):
        return f"{self.user} - {self.action} - {self.model}"
