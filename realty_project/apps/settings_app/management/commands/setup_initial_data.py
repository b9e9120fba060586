"""
Management command to set up the back-office for first use.
Creates the default roles with their module permissions and the company
settings row.
"""
from django.conf import settings
from django.core.management.base import BaseCommand

from apps.settings_app.models import MODULE_CHOICES, CompanySettings, ModulePermission, Role

FULL = ('view', 'create', 'edit', 'delete')

DEFAULT_ROLES = [
    {
        'name': 'Sales',
        'code': 'sales',
        'description': 'Bookings, payments and customers',
        'permissions': {
            'projects': ('view',),
            'crm': FULL,
            'property': ('view',),
            'sales': ('view', 'create', 'edit'),
            'documents': ('view', 'create'),
            'notifications': ('view',),
        },
    },
    {
        'name': 'Accounting',
        'code': 'accounting',
        'description': 'Expenses, treasury and accounting reports',
        'permissions': {
            'projects': ('view',),
            'crm': ('view',),
            'property': ('view',),
            'sales': ('view',),
            'finance': FULL,
            'documents': ('view', 'create'),
            'notifications': ('view',),
        },
    },
    {
        'name': 'Viewer',
        'code': 'viewer',
        'description': 'Read-only access to every module except settings',
        'permissions': {module: ('view',) for module, _ in MODULE_CHOICES if module != 'settings'},
    },
]


class Command(BaseCommand):
    help = 'Creates default roles, module permissions and company settings'

    def add_arguments(self, parser):
        parser.add_argument(
            '--reset-permissions',
            action='store_true',
            help='Overwrite the module permissions of existing default roles',
        )

    def handle(self, *args, **options):
        reset = options['reset_permissions']
        self.stdout.write('Setting up initial data...')

        created_roles = 0
        for role_data in DEFAULT_ROLES:
            role, created = Role.objects.get_or_create(
                code=role_data['code'],
                defaults={
                    'name': role_data['name'],
                    'description': role_data['description'],
                    'is_system_role': True,
                }
            )
            if created:
                created_roles += 1
            if created or reset:
                self.assign_permissions(role, role_data['permissions'])
        self.stdout.write(f'  Created {created_roles} role(s)')

        company, created = CompanySettings.objects.get_or_create(
            pk=1,
            defaults={
                'company_name': 'My Company',
                'currency': settings.DEFAULT_CURRENCY,
                'decimal_places': settings.DEFAULT_DECIMAL_PLACES,
            }
        )
        if created:
            self.stdout.write(f'  Created company settings ({company.currency})')

        self.stdout.write(self.style.SUCCESS('Initial data setup completed successfully!'))

    def assign_permissions(self, role, permissions):
        for module, granted in permissions.items():
            ModulePermission.objects.update_or_create(
                role=role,
                module=module,
                defaults={f'can_{permission_type}': permission_type in granted for permission_type in FULL},
            )
