"""
Sales Views - bookings, payments, extra payments, schedules and unit sales.

All writes go through apps.sales.services; views only collect input, report
ValidationError on the form and PersistenceError as a message.
"""
from django.contrib import messages
from django.contrib.auth.decorators import login_required
from django.core.exceptions import PermissionDenied, ValidationError
from django.db.models import Q
from django.http import HttpResponse
from django.shortcuts import get_object_or_404, redirect, render
from django.views.decorators.http import require_POST
from django.views.generic import DetailView, FormView, ListView

from apps.core.audit import get_entity_audit_history
from apps.core.exceptions import PersistenceError
from apps.core.forms import add_service_errors
from apps.core.mixins import (
    CreatePermissionMixin, PermissionRequiredMixin, ScopedViewMixin, get_scoped_object_or_404,
)
from apps.core.utils import PermissionChecker, parse_int
from apps.finance.reports import render_booking_statement, render_receipt
from apps.settings_app.models import CompanySettings
from . import services
from .forms import (
    BookingForm, CancelBookingForm, ExtraPaymentForm, PaymentForm, ScheduleForm, UnitSaleForm,
)
from .ledger import booking_statement, summarize_bookings
from .models import Booking, ExtraPayment, Payment, ScheduledPayment, UnitSale


def _require(request, permission_type):
    if not PermissionChecker.has_permission(request.user, 'sales', permission_type):
        raise PermissionDenied('You do not have permission to change sales records.')


def _search_bookings(queryset, search):
    if not search:
        return queryset
    return queryset.filter(
        Q(booking_number__icontains=search) |
        Q(customer__name__icontains=search) |
        Q(customer__phone__icontains=search) |
        Q(unit__name__icontains=search)
    )


class BookingListView(PermissionRequiredMixin, ScopedViewMixin, ListView):
    """Active and completed bookings with their balances."""
    model = Booking
    template_name = 'sales/booking_list.html'
    context_object_name = 'bookings'
    module_name = 'sales'
    paginate_by = 50
    archived = False

    def get_queryset(self):
        queryset = self.scope_queryset(
            Booking.objects.active().select_related('unit', 'customer', 'project')
        )
        if self.archived:
            queryset = queryset.filter(status=Booking.STATUS_CANCELLED)
        else:
            queryset = queryset.exclude(status=Booking.STATUS_CANCELLED)
            status = self.request.GET.get('status')
            if status in (Booking.STATUS_ACTIVE, Booking.STATUS_COMPLETED):
                queryset = queryset.filter(status=status)
        return _search_bookings(queryset, self.request.GET.get('search'))

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        bookings = list(context['bookings'])
        context['summaries'] = summarize_bookings(
            bookings,
            Payment.objects.filter(booking__in=bookings),
            ExtraPayment.objects.filter(booking__in=bookings),
        )
        context['title'] = 'Archived Bookings' if self.archived else 'Bookings'
        context['archived'] = self.archived
        context['can_create'] = PermissionChecker.has_permission(self.request.user, 'sales', 'create')
        context['is_admin'] = PermissionChecker.is_admin(self.request.user)
        return context


class BookingCreateView(CreatePermissionMixin, ScopedViewMixin, FormView):
    form_class = BookingForm
    template_name = 'core/form.html'
    module_name = 'sales'

    def get_form_kwargs(self):
        kwargs = super().get_form_kwargs()
        kwargs['scope'] = self.get_scope()
        return kwargs

    def get_initial(self):
        initial = super().get_initial()
        if self.request.GET.get('unit'):
            initial['unit'] = self.request.GET['unit']
        return initial

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        context['title'] = 'New Booking'
        return context

    def form_valid(self, form):
        data = form.cleaned_data
        try:
            booking = services.create_booking(
                unit=data['unit'],
                customer=data['customer'],
                booking_date=data['booking_date'],
                deposit=data.get('deposit') or 0,
                account=data.get('account'),
                notes=data.get('notes', ''),
                user=self.request.user,
            )
        except ValidationError as e:
            add_service_errors(form, e)
            return self.form_invalid(form)
        except PersistenceError as e:
            messages.error(self.request, str(e))
            return self.form_invalid(form)

        messages.success(self.request, f'Booking {booking.booking_number} created.')
        return redirect('sales:booking_detail', pk=booking.pk)


class BookingDetailView(PermissionRequiredMixin, ScopedViewMixin, DetailView):
    """Booking with its account statement, schedule and documents."""
    model = Booking
    template_name = 'sales/booking_detail.html'
    context_object_name = 'booking'
    module_name = 'sales'

    def get_object(self, queryset=None):
        return get_scoped_object_or_404(
            self.request, Booking.objects.select_related('unit', 'customer', 'project'), pk=self.kwargs['pk']
        )

    def get_context_data(self, **kwargs):
        from apps.documents.forms import DocumentUploadForm

        context = super().get_context_data(**kwargs)
        booking = self.object
        payments = list(booking.payments.select_related('account'))
        extras = list(booking.extra_payments.select_related('account'))

        context['title'] = f'Booking {booking.booking_number}'
        context['statement'] = booking_statement(booking, payments, extras)
        context['payments'] = payments
        context['extra_payments'] = extras
        context['schedule'] = booking.schedule.all()
        context['documents'] = booking.documents.filter(is_active=True)
        context['audit_history'] = get_entity_audit_history('Booking', booking.pk)[:20]
        context['extra_payment_form'] = ExtraPaymentForm()
        context['schedule_form'] = ScheduleForm()
        context['cancel_form'] = CancelBookingForm()
        context['upload_form'] = DocumentUploadForm()
        context['can_edit'] = PermissionChecker.has_permission(self.request.user, 'sales', 'edit')
        context['can_delete'] = PermissionChecker.has_permission(self.request.user, 'sales', 'delete')
        context['is_admin'] = PermissionChecker.is_admin(self.request.user)
        return context


@login_required
@require_POST
def booking_cancel(request, pk):
    _require(request, 'edit')
    booking = get_scoped_object_or_404(request, Booking.objects.select_related('unit'), pk=pk)
    form = CancelBookingForm(request.POST)
    reason = form.cleaned_data['reason'] if form.is_valid() else ''
    try:
        services.cancel_booking(booking, user=request.user, reason=reason)
        messages.success(request, f'Booking {booking.booking_number} cancelled and moved to the archive.')
    except ValidationError as e:
        messages.error(request, ' '.join(e.messages))
    except PersistenceError as e:
        messages.error(request, str(e))
    return redirect('sales:booking_detail', pk=pk)


@login_required
@require_POST
def booking_hard_delete(request, pk):
    booking = get_scoped_object_or_404(request, Booking.objects.all(), pk=pk)
    try:
        number = services.hard_delete_booking(booking, request.user)
    except PermissionDenied as e:
        messages.error(request, str(e))
        return redirect('sales:booking_detail', pk=pk)
    except ValidationError as e:
        messages.error(request, ' '.join(e.messages))
        return redirect('sales:booking_detail', pk=pk)
    except PersistenceError as e:
        messages.error(request, str(e))
        return redirect('sales:booking_detail', pk=pk)
    messages.success(request, f'Booking {number} permanently deleted.')
    return redirect('sales:booking_archive')


@login_required
def booking_statement_print(request, pk):
    booking = get_scoped_object_or_404(
        request, Booking.objects.select_related('unit', 'customer', 'project'), pk=pk
    )
    statement = booking_statement(booking, booking.payments.all(), booking.extra_payments.all())
    return HttpResponse(render_booking_statement(statement, CompanySettings.get_settings()))


@login_required
@require_POST
def extra_payment_create(request, pk):
    _require(request, 'create')
    booking = get_scoped_object_or_404(request, Booking.objects.all(), pk=pk)
    form = ExtraPaymentForm(request.POST)
    if not form.is_valid():
        messages.error(request, 'Please correct the extra payment details.')
        return redirect('sales:booking_detail', pk=pk)
    data = form.cleaned_data
    try:
        services.record_extra_payment(
            booking,
            amount=data['amount'],
            payment_date=data['payment_date'],
            payment_type=data['payment_type'],
            description=data.get('description', ''),
            account=data.get('account'),
            notes=data.get('notes', ''),
            user=request.user,
        )
        messages.success(request, 'Extra payment recorded.')
    except ValidationError as e:
        messages.error(request, ' '.join(e.messages))
    except PersistenceError as e:
        messages.error(request, str(e))
    return redirect('sales:booking_detail', pk=pk)


@login_required
@require_POST
def extra_payment_delete(request, pk):
    _require(request, 'delete')
    extra = get_scoped_object_or_404(request, ExtraPayment.objects.select_related('booking'), pk=pk)
    booking_id = extra.booking_id
    try:
        services.delete_extra_payment(extra, user=request.user)
        messages.success(request, 'Extra payment deleted.')
    except ValidationError as e:
        messages.error(request, ' '.join(e.messages))
    except PersistenceError as e:
        messages.error(request, str(e))
    return redirect('sales:booking_detail', pk=booking_id)


@login_required
@require_POST
def schedule_generate(request, pk):
    _require(request, 'edit')
    booking = get_scoped_object_or_404(request, Booking.objects.all(), pk=pk)
    form = ScheduleForm(request.POST)
    if not form.is_valid():
        messages.error(request, 'Please correct the schedule details.')
        return redirect('sales:booking_detail', pk=pk)
    try:
        created = services.generate_schedule(
            booking,
            installments=form.cleaned_data['installments'],
            first_due_date=form.cleaned_data['first_due_date'],
            interval_months=form.cleaned_data['interval_months'],
            user=request.user,
        )
        messages.success(request, f'{len(created)} installment(s) scheduled.')
    except ValidationError as e:
        messages.error(request, ' '.join(e.messages))
    except PersistenceError as e:
        messages.error(request, str(e))
    return redirect('sales:booking_detail', pk=pk)


class PaymentListView(PermissionRequiredMixin, ScopedViewMixin, ListView):
    """Payments grouped per booking, newest booking first."""
    model = Booking
    template_name = 'sales/payment_list.html'
    context_object_name = 'bookings'
    module_name = 'sales'
    paginate_by = 50

    def get_queryset(self):
        queryset = self.scope_queryset(
            Booking.objects.active()
            .exclude(status=Booking.STATUS_CANCELLED)
            .select_related('unit', 'customer')
        )
        return _search_bookings(queryset, self.request.GET.get('search'))

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        bookings = list(context['bookings'])
        payments = list(Payment.objects.filter(booking__in=bookings).select_related('account'))
        extras = list(ExtraPayment.objects.filter(booking__in=bookings))

        payments_by_booking = {}
        for payment in payments:
            payments_by_booking.setdefault(payment.booking_id, []).append(payment)

        context['groups'] = [
            (summary, payments_by_booking.get(summary.booking.pk, []))
            for summary in summarize_bookings(bookings, payments, extras)
        ]
        context['title'] = 'Payments'
        context['can_create'] = PermissionChecker.has_permission(self.request.user, 'sales', 'create')
        context['can_delete'] = PermissionChecker.has_permission(self.request.user, 'sales', 'delete')
        return context


class PaymentCreateView(CreatePermissionMixin, ScopedViewMixin, FormView):
    form_class = PaymentForm
    template_name = 'core/form.html'
    module_name = 'sales'

    def get_booking(self):
        booking_id = parse_int(self.request.GET.get('booking'))
        if booking_id is not None:
            return get_scoped_object_or_404(self.request, Booking.objects.all(), pk=booking_id)
        return None

    def get_form_kwargs(self):
        kwargs = super().get_form_kwargs()
        kwargs['scope'] = self.get_scope()
        kwargs['booking'] = self.get_booking()
        return kwargs

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        context['title'] = 'Record Payment'
        return context

    def form_valid(self, form):
        data = form.cleaned_data
        try:
            payment = services.record_payment(
                data['booking'],
                amount=data['amount'],
                payment_date=data['payment_date'],
                payment_type=data['payment_type'],
                account=data.get('account'),
                notes=data.get('notes', ''),
                scheduled_payment=data.get('scheduled_payment'),
                user=self.request.user,
            )
        except ValidationError as e:
            add_service_errors(form, e)
            return self.form_invalid(form)
        except PersistenceError as e:
            messages.error(self.request, str(e))
            return self.form_invalid(form)

        messages.success(self.request, f'Payment {payment.receipt_number} recorded.')
        return redirect('sales:booking_detail', pk=payment.booking_id)


@login_required
@require_POST
def payment_delete(request, pk):
    _require(request, 'delete')
    payment = get_scoped_object_or_404(request, Payment.objects.select_related('booking'), pk=pk)
    booking_id = payment.booking_id
    try:
        services.delete_payment(payment, user=request.user)
        messages.success(request, 'Payment deleted.')
    except ValidationError as e:
        messages.error(request, ' '.join(e.messages))
    except PersistenceError as e:
        messages.error(request, str(e))
    return redirect('sales:booking_detail', pk=booking_id)


@login_required
def payment_receipt(request, pk):
    payment = get_scoped_object_or_404(
        request, Payment.objects.select_related('booking__unit', 'booking__customer', 'account'), pk=pk
    )
    return HttpResponse(render_receipt(payment, CompanySettings.get_settings()))


class UnitSaleListView(PermissionRequiredMixin, ScopedViewMixin, ListView):
    model = UnitSale
    template_name = 'sales/unit_sale_list.html'
    context_object_name = 'sales'
    module_name = 'sales'
    paginate_by = 50

    def get_queryset(self):
        return self.scope_queryset(UnitSale.objects.active().select_related('unit', 'customer', 'project'))

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        context['title'] = 'Unit Sales'
        context['can_create'] = PermissionChecker.has_permission(self.request.user, 'sales', 'create')
        return context


class UnitSaleCreateView(CreatePermissionMixin, ScopedViewMixin, FormView):
    form_class = UnitSaleForm
    template_name = 'core/form.html'
    module_name = 'sales'

    def get_form_kwargs(self):
        kwargs = super().get_form_kwargs()
        kwargs['scope'] = self.get_scope()
        return kwargs

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        context['title'] = 'New Unit Sale'
        return context

    def form_valid(self, form):
        data = form.cleaned_data
        try:
            sale = services.create_unit_sale(
                unit=data['unit'],
                customer=data['customer'],
                sale_price=data['sale_price'],
                sale_date=data['sale_date'],
                final_sale_price=data.get('final_sale_price'),
                account=data.get('account'),
                notes=data.get('notes', ''),
                user=self.request.user,
            )
        except ValidationError as e:
            add_service_errors(form, e)
            return self.form_invalid(form)
        except PersistenceError as e:
            messages.error(self.request, str(e))
            return self.form_invalid(form)

        messages.success(self.request, f'Sale {sale.sale_number} recorded.')
        return redirect('sales:unit_sale_list')


@login_required
def installment_list(request):
    """Unpaid installments across the user's scope, earliest due first."""
    installments = (
        ScheduledPayment.objects.active()
        .for_scope(request.scope)
        .exclude(status=ScheduledPayment.STATUS_PAID)
        .filter(booking__status=Booking.STATUS_ACTIVE)
        .select_related('booking__unit', 'booking__customer')
        .order_by('due_date')
    )
    return render(request, 'sales/installment_list.html', {
        'title': 'Installments',
        'installments': installments,
    })
