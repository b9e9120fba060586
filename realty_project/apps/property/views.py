"""
Property Views - units
"""
from django.contrib import messages
from django.urls import reverse_lazy
from django.views.generic import CreateView, ListView, UpdateView

from apps.core.audit import log_audit
from apps.core.mixins import (
    CreatePermissionMixin, PermissionRequiredMixin, ScopedViewMixin, UpdatePermissionMixin,
)
from apps.core.utils import PermissionChecker
from .filters import UnitFilter
from .forms import UnitForm
from .models import Unit


class UnitListView(PermissionRequiredMixin, ScopedViewMixin, ListView):
    model = Unit
    template_name = 'property/unit_list.html'
    context_object_name = 'units'
    module_name = 'property'
    paginate_by = 50

    def get_queryset(self):
        queryset = self.scope_queryset(Unit.objects.active().select_related('project'))
        self.filterset = UnitFilter(self.request.GET or None, queryset=queryset)
        return self.filterset.qs

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        context['title'] = 'Units'
        context['filter'] = self.filterset
        scoped = self.scope_queryset(Unit.objects.active())
        context['status_counts'] = {
            status: scoped.filter(status=status).count() for status, _ in Unit.STATUS_CHOICES
        }
        context['can_create'] = PermissionChecker.has_permission(self.request.user, 'property', 'create')
        context['can_edit'] = PermissionChecker.has_permission(self.request.user, 'property', 'edit')
        return context


class UnitFormMixin(ScopedViewMixin):
    model = Unit
    form_class = UnitForm
    template_name = 'core/form.html'
    success_url = reverse_lazy('property:unit_list')
    module_name = 'property'

    def get_form_kwargs(self):
        kwargs = super().get_form_kwargs()
        kwargs['scope'] = self.get_scope()
        return kwargs


class UnitCreateView(UnitFormMixin, CreatePermissionMixin, CreateView):

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        context['title'] = 'New Unit'
        return context

    def form_valid(self, form):
        response = super().form_valid(form)
        log_audit(self.request.user, 'create', 'Unit', self.object.pk,
                  {'name': self.object.name, 'price': str(self.object.price)})
        messages.success(self.request, f'Unit {self.object.name} created.')
        return response


class UnitUpdateView(UnitFormMixin, UpdatePermissionMixin, UpdateView):

    def get_queryset(self):
        return self.scope_queryset(Unit.objects.active())

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        context['title'] = f'Edit {self.object.name}'
        return context

    def form_valid(self, form):
        response = super().form_valid(form)
        log_audit(self.request.user, 'update', 'Unit', self.object.pk, {'fields': form.changed_data})
        messages.success(self.request, 'Unit updated.')
        return response
