"""
Settings app views.
"""
from django.contrib import messages
from django.contrib.auth.decorators import login_required
from django.contrib.auth.models import User
from django.core.exceptions import PermissionDenied
from django.db import transaction
from django.shortcuts import get_object_or_404, redirect
from django.urls import reverse_lazy
from django.views.decorators.http import require_POST
from django.views.generic import CreateView, ListView, TemplateView, UpdateView

from apps.core.audit import log_audit
from apps.core.mixins import PermissionRequiredMixin
from apps.core.utils import PermissionChecker
from .forms import CompanySettingsForm, RoleForm, UserForm
from .models import AuditLog, CompanySettings, ModulePermission, Role, UserProfile, UserRole

PERMISSION_TYPES = ('view', 'create', 'edit', 'delete')


class UserListView(PermissionRequiredMixin, ListView):
    model = User
    template_name = 'settings/user_list.html'
    context_object_name = 'users'
    module_name = 'settings'

    def get_queryset(self):
        return User.objects.select_related('profile', 'profile__assigned_project').order_by('username')

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        context['title'] = 'User Management'
        return context


class UserFormMixin:
    model = User
    form_class = UserForm
    template_name = 'core/form.html'
    success_url = reverse_lazy('settings:user_list')
    module_name = 'settings'

    def _save_profile(self, user, form):
        data = form.cleaned_data
        UserProfile.objects.update_or_create(
            user=user,
            defaults={
                'role': data['profile_role'],
                'assigned_project': data.get('assigned_project'),
                'phone': data.get('phone', ''),
            },
        )
        UserRole.objects.filter(user=user).delete()
        for role in data.get('roles') or []:
            UserRole.objects.create(user=user, role=role)

    def form_valid(self, form):
        with transaction.atomic():
            response = super().form_valid(form)
            self._save_profile(self.object, form)
        data = form.cleaned_data
        log_audit(self.request.user, self.audit_action, 'User', self.object.pk, {
            'username': self.object.username,
            'role': data['profile_role'],
            'assigned_project': data['assigned_project'].pk if data.get('assigned_project') else None,
        }, request=self.request)
        messages.success(self.request, f'User {self.object.username} saved.')
        return response


class UserCreateView(UserFormMixin, PermissionRequiredMixin, CreateView):
    permission_type = 'create'
    audit_action = 'create'

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        context['title'] = 'Create User'
        return context


class UserUpdateView(UserFormMixin, PermissionRequiredMixin, UpdateView):
    permission_type = 'edit'
    audit_action = 'update'

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        context['title'] = f'Edit {self.object.username}'
        return context


@login_required
@require_POST
def toggle_user_status(request, pk):
    if not PermissionChecker.has_permission(request.user, 'settings', 'edit'):
        raise PermissionDenied
    user = get_object_or_404(User, pk=pk)
    if user == request.user:
        messages.error(request, 'You cannot deactivate your own account.')
        return redirect('settings:user_list')
    user.is_active = not user.is_active
    user.save(update_fields=['is_active'])
    status = 'activated' if user.is_active else 'deactivated'
    log_audit(request.user, 'update', 'User', user.pk, {'is_active': user.is_active}, request=request)
    messages.success(request, f'User {user.username} has been {status}.')
    return redirect('settings:user_list')


class RoleListView(PermissionRequiredMixin, ListView):
    model = Role
    template_name = 'settings/role_list.html'
    context_object_name = 'roles'
    module_name = 'settings'

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        context['title'] = 'Role Management'
        return context


class RoleCreateView(PermissionRequiredMixin, CreateView):
    model = Role
    form_class = RoleForm
    template_name = 'core/form.html'
    success_url = reverse_lazy('settings:role_list')
    module_name = 'settings'
    permission_type = 'create'

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        context['title'] = 'Create Role'
        return context

    def form_valid(self, form):
        messages.success(self.request, f'Role {form.instance.name} created.')
        return super().form_valid(form)


class RoleUpdateView(PermissionRequiredMixin, UpdateView):
    model = Role
    form_class = RoleForm
    template_name = 'core/form.html'
    success_url = reverse_lazy('settings:role_list')
    module_name = 'settings'
    permission_type = 'edit'

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        context['title'] = f'Edit {self.object.name}'
        return context

    def form_valid(self, form):
        messages.success(self.request, f'Role {form.instance.name} updated.')
        return super().form_valid(form)


class RolePermissionView(PermissionRequiredMixin, TemplateView):
    """Module x (view, create, edit, delete) permission matrix of one role."""
    template_name = 'settings/role_permissions.html'
    module_name = 'settings'
    permission_type = 'edit'

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        role = get_object_or_404(Role, pk=self.kwargs['pk'])
        current = {mp.module: mp for mp in role.module_permissions.all()}
        context['role'] = role
        context['title'] = f'Permissions for {role.name}'
        context['rows'] = [
            (code, label, [
                (ptype, bool(current.get(code) and getattr(current[code], f'can_{ptype}')))
                for ptype in PERMISSION_TYPES
            ])
            for code, label in ModulePermission.get_modules()
        ]
        return context

    def post(self, request, *args, **kwargs):
        role = get_object_or_404(Role, pk=self.kwargs['pk'])
        with transaction.atomic():
            ModulePermission.objects.filter(role=role).delete()
            for code, _label in ModulePermission.get_modules():
                flags = {f'can_{p}': request.POST.get(f'{code}_{p}') == 'on' for p in PERMISSION_TYPES}
                if any(flags.values()):
                    ModulePermission.objects.create(role=role, module=code, **flags)
        log_audit(request.user, 'update', 'Role', role.pk, {'permissions': 'matrix'}, request=request)
        messages.success(request, f'Permissions for {role.name} updated.')
        return redirect('settings:role_list')


class CompanySettingsView(PermissionRequiredMixin, UpdateView):
    model = CompanySettings
    form_class = CompanySettingsForm
    template_name = 'core/form.html'
    success_url = reverse_lazy('settings:company')
    module_name = 'settings'
    permission_type = 'edit'

    def get_object(self, queryset=None):
        return CompanySettings.get_settings()

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        context['title'] = 'Company Settings'
        return context

    def form_valid(self, form):
        response = super().form_valid(form)
        log_audit(self.request.user, 'update', 'CompanySettings', self.object.pk,
                  {f: form.cleaned_data[f] for f in form.changed_data}, request=self.request)
        messages.success(self.request, 'Company settings updated.')
        return response


class AuditLogListView(PermissionRequiredMixin, ListView):
    model = AuditLog
    template_name = 'settings/audit_log.html'
    context_object_name = 'logs'
    paginate_by = 50
    module_name = 'settings'

    def get_queryset(self):
        queryset = AuditLog.objects.select_related('user')

        action = self.request.GET.get('action')
        if action:
            queryset = queryset.filter(action=action)

        model = self.request.GET.get('model')
        if model:
            queryset = queryset.filter(model__icontains=model)

        user = self.request.GET.get('user')
        if user:
            queryset = queryset.filter(user__username__icontains=user)

        record_id = self.request.GET.get('record')
        if record_id:
            queryset = queryset.filter(record_id=record_id)

        return queryset

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        context['title'] = 'Activity Log'
        context['action_choices'] = AuditLog.ACTION_CHOICES
        return context
