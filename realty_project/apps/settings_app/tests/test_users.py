"""
Settings tests: user management, permissions and company settings.

Test Cases Covered:
- Creating a user stores the profile, project assignment and roles
- Editing with blank passwords keeps the current password
- Usernames are unique regardless of case
- Role-based module permissions
- Company currency and decimal places validation
- User management views require the settings permission
- setup_initial_data creates the default roles idempotently

Run: python manage.py test apps.settings_app.tests.test_users -v 2
"""
from io import StringIO

from django.contrib.auth.models import User
from django.core.management import call_command
from django.test import TestCase
from django.urls import reverse

from apps.core.utils import PermissionChecker
from apps.projects.models import Project
from apps.settings_app.forms import CompanySettingsForm, UserForm
from apps.settings_app.models import AuditLog, CompanySettings, ModulePermission, Role, UserProfile, UserRole


class UserManagementTests(TestCase):

    @classmethod
    def setUpTestData(cls):
        cls.admin = User.objects.create_superuser('admin', 'admin@example.com', 'pass12345')
        cls.project = Project.objects.create(name='Tower A')
        cls.role = Role.objects.create(name='Sales', code='sales')
        ModulePermission.objects.create(role=cls.role, module='sales', can_view=True, can_create=True)

    def test_create_user_with_profile(self):
        self.client.force_login(self.admin)
        response = self.client.post(reverse('settings:user_create'), {
            'username': 'agent',
            'password1': 'Sunset-harbor-2026',
            'password2': 'Sunset-harbor-2026',
            'profile_role': UserProfile.ROLE_SALES,
            'assigned_project': self.project.pk,
            'roles': [self.role.pk],
            'is_active': 'on',
        })
        self.assertRedirects(response, reverse('settings:user_list'), fetch_redirect_response=False)

        agent = User.objects.get(username='agent')
        self.assertEqual(agent.profile.assigned_project, self.project)
        self.assertTrue(UserRole.objects.filter(user=agent, role=self.role).exists())
        self.assertTrue(PermissionChecker.has_permission(agent, 'sales', 'view'))
        self.assertFalse(PermissionChecker.has_permission(agent, 'sales', 'delete'))
        self.assertFalse(PermissionChecker.has_permission(agent, 'finance', 'view'))
        self.assertTrue(AuditLog.objects.filter(model='User', action='create').exists())

    def test_edit_with_blank_password_keeps_it(self):
        agent = User.objects.create_user('agent', password='Sunset-harbor-2026')
        form = UserForm(data={
            'username': 'agent',
            'first_name': 'Lana',
            'profile_role': UserProfile.ROLE_ACCOUNTING,
            'is_active': 'on',
        }, instance=agent)
        self.assertTrue(form.is_valid(), form.errors)
        form.save()
        agent.refresh_from_db()
        self.assertEqual(agent.first_name, 'Lana')
        self.assertTrue(agent.check_password('Sunset-harbor-2026'))

    def test_mismatched_passwords(self):
        form = UserForm(data={
            'username': 'agent',
            'password1': 'Sunset-harbor-2026',
            'password2': 'Sunset-harbor-2027',
            'profile_role': UserProfile.ROLE_SALES,
        })
        self.assertFalse(form.is_valid())
        self.assertIn('password2', form.errors)

    def test_username_is_case_insensitive(self):
        form = UserForm(data={
            'username': 'ADMIN',
            'password1': 'Sunset-harbor-2026',
            'password2': 'Sunset-harbor-2026',
            'profile_role': UserProfile.ROLE_SALES,
        })
        self.assertFalse(form.is_valid())
        self.assertIn('username', form.errors)

    def test_profile_admin_role_grants_everything(self):
        manager = User.objects.create_user('manager', password='pass12345')
        UserProfile.objects.create(user=manager, role=UserProfile.ROLE_ADMIN)
        self.assertTrue(PermissionChecker.is_admin(manager))
        self.assertTrue(PermissionChecker.has_permission(manager, 'finance', 'delete'))

    def test_views_require_permission(self):
        viewer = User.objects.create_user('viewer', password='pass12345')
        self.client.force_login(viewer)
        response = self.client.get(reverse('settings:user_list'))
        self.assertRedirects(response, reverse('dashboard'), fetch_redirect_response=False)

    def test_cannot_deactivate_self(self):
        self.client.force_login(self.admin)
        self.client.post(reverse('settings:user_toggle', args=[self.admin.pk]))
        self.admin.refresh_from_db()
        self.assertTrue(self.admin.is_active)


class CompanySettingsFormTests(TestCase):

    def form(self, **overrides):
        data = {'company_name': 'Acme Real Estate', 'currency': 'usd', 'decimal_places': 2,
                'date_format': '%d/%m/%Y'}
        data.update(overrides)
        return CompanySettingsForm(data=data)

    def test_currency_is_normalized(self):
        form = self.form()
        self.assertTrue(form.is_valid(), form.errors)
        self.assertEqual(form.cleaned_data['currency'], 'USD')

    def test_invalid_values(self):
        self.assertIn('currency', self.form(currency='dollars').errors)
        self.assertIn('currency', self.form(currency='U1D').errors)
        self.assertIn('decimal_places', self.form(decimal_places=9).errors)


class SetupCommandTests(TestCase):

    def test_creates_default_roles_once(self):
        call_command('setup_initial_data', stdout=StringIO())
        call_command('setup_initial_data', stdout=StringIO())

        accounting = Role.objects.get(code='accounting')
        finance = ModulePermission.objects.get(role=accounting, module='finance')
        self.assertTrue(finance.can_delete)
        self.assertFalse(ModulePermission.objects.get(role=accounting, module='sales').can_create)
        self.assertEqual(Role.objects.filter(code__in=['sales', 'accounting', 'viewer']).count(), 3)
        self.assertFalse(ModulePermission.objects.filter(role__code='viewer', module='settings').exists())
        self.assertEqual(CompanySettings.objects.count(), 1)
