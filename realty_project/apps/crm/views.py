"""
CRM Views - customers
"""
from django.contrib import messages
from django.db.models import Count, Q
from django.urls import reverse_lazy
from django.views.generic import CreateView, DetailView, ListView, UpdateView

from apps.core.audit import get_entity_audit_history, log_audit
from apps.core.mixins import CreatePermissionMixin, PermissionRequiredMixin, UpdatePermissionMixin
from apps.core.utils import PermissionChecker
from .forms import CustomerForm
from .models import Customer


class CustomerListView(PermissionRequiredMixin, ListView):
    model = Customer
    template_name = 'crm/customer_list.html'
    context_object_name = 'customers'
    module_name = 'crm'
    paginate_by = 25

    def get_queryset(self):
        queryset = Customer.objects.filter(is_active=True).annotate(booking_count=Count('bookings'))

        search = self.request.GET.get('search')
        if search:
            queryset = queryset.filter(
                Q(name__icontains=search) |
                Q(phone__icontains=search) |
                Q(email__icontains=search) |
                Q(national_id__icontains=search) |
                Q(customer_number__icontains=search)
            )
        return queryset

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        context['title'] = 'Customers'
        context['can_create'] = PermissionChecker.has_permission(self.request.user, 'crm', 'create')
        context['can_edit'] = PermissionChecker.has_permission(self.request.user, 'crm', 'edit')
        return context


class CustomerDetailView(PermissionRequiredMixin, DetailView):
    model = Customer
    template_name = 'crm/customer_detail.html'
    context_object_name = 'customer'
    module_name = 'crm'

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        context['title'] = self.object.name
        context['bookings'] = self.object.bookings.for_scope(self.request.scope).select_related('unit')
        context['unit_sales'] = self.object.unit_sales.for_scope(self.request.scope).select_related('unit')
        context['documents'] = self.object.documents.filter(is_active=True)
        context['audit_history'] = get_entity_audit_history('Customer', self.object.pk)[:20]
        return context


class CustomerCreateView(CreatePermissionMixin, CreateView):
    model = Customer
    form_class = CustomerForm
    template_name = 'core/form.html'
    success_url = reverse_lazy('crm:customer_list')
    module_name = 'crm'

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        context['title'] = 'New Customer'
        return context

    def form_valid(self, form):
        response = super().form_valid(form)
        log_audit(self.request.user, 'create', 'Customer', self.object.pk, {'name': self.object.name})
        messages.success(self.request, f'Customer {self.object.name} created.')
        return response


class CustomerUpdateView(UpdatePermissionMixin, UpdateView):
    model = Customer
    form_class = CustomerForm
    template_name = 'core/form.html'
    module_name = 'crm'

    def get_success_url(self):
        return reverse_lazy('crm:customer_detail', args=[self.object.pk])

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        context['title'] = f'Edit {self.object.name}'
        return context

    def form_valid(self, form):
        response = super().form_valid(form)
        log_audit(self.request.user, 'update', 'Customer', self.object.pk, {'fields': form.changed_data})
        messages.success(self.request, 'Customer updated.')
        return response
