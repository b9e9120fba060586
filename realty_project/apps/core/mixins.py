"""
View mixins for the back-office.
"""
from django.contrib.auth.mixins import LoginRequiredMixin, UserPassesTestMixin
from django.contrib import messages
from django.http import Http404
from django.shortcuts import get_object_or_404, redirect

from apps.core.scope import AccessScope
from apps.core.utils import PermissionChecker


class PermissionRequiredMixin(LoginRequiredMixin, UserPassesTestMixin):
    """
    Mixin to check module-level permissions.

    Usage:
        class BookingListView(PermissionRequiredMixin, ListView):
            module_name = 'sales'
            permission_type = 'view'
    """
    module_name = None
    permission_type = 'view'

    def test_func(self):
        if not self.module_name:
            return True
        return PermissionChecker.has_permission(
            self.request.user,
            self.module_name,
            self.permission_type
        )

    def handle_no_permission(self):
        if not self.request.user.is_authenticated:
            return super().handle_no_permission()
        messages.error(self.request, 'You do not have permission to access this page.')
        return redirect('dashboard')


class CreatePermissionMixin(PermissionRequiredMixin):
    permission_type = 'create'


class UpdatePermissionMixin(PermissionRequiredMixin):
    permission_type = 'edit'


class DeletePermissionMixin(PermissionRequiredMixin):
    permission_type = 'delete'


class ScopedViewMixin:
    """
    Gives views the request's AccessScope and narrows querysets with it.
    """

    def get_scope(self):
        scope = getattr(self.request, 'scope', None)
        if scope is None:
            scope = AccessScope.for_user(self.request.user)
            self.request.scope = scope
        return scope

    def scope_queryset(self, queryset):
        return queryset.for_scope(self.get_scope())

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        context['scope'] = self.get_scope()
        return context


def get_scoped_object_or_404(request, queryset, **lookup):
    """
    get_object_or_404 that also hides records outside the request's scope.
    """
    obj = get_object_or_404(queryset, **lookup)
    scope = getattr(request, 'scope', None) or AccessScope.for_user(request.user)
    if not scope.permits(getattr(obj, 'project_id', None)):
        raise Http404('No record matches the given query.')
    return obj
