"""
Sales Forms

Bookings and payments are written through apps.sales.services, so these are
plain forms that collect the service arguments.
"""
from decimal import Decimal

from django import forms
from django.utils import timezone

from apps.core.forms import StyledFormMixin, date_widget
from apps.crm.models import Customer
from apps.finance.models import Account
from apps.property.models import Unit
from .models import Booking, ExtraPayment, Payment, ScheduledPayment


def _accounts():
    return Account.objects.filter(is_active=True)


class BookingForm(StyledFormMixin, forms.Form):
    unit = forms.ModelChoiceField(queryset=Unit.objects.none())
    customer = forms.ModelChoiceField(queryset=Customer.objects.none())
    booking_date = forms.DateField(widget=date_widget(), initial=timezone.localdate)
    deposit = forms.DecimalField(max_digits=15, decimal_places=2, min_value=0, required=False, initial=0)
    account = forms.ModelChoiceField(queryset=Account.objects.none(), required=False,
                                     help_text='Treasury account receiving the deposit')
    notes = forms.CharField(widget=forms.Textarea(attrs={'rows': 2}), required=False)

    def __init__(self, *args, scope=None, **kwargs):
        super().__init__(*args, **kwargs)
        units = Unit.objects.active().filter(status=Unit.STATUS_AVAILABLE).select_related('project')
        self.fields['unit'].queryset = units.for_scope(scope)
        self.fields['customer'].queryset = Customer.objects.filter(is_active=True)
        self.fields['account'].queryset = _accounts()

    def clean(self):
        cleaned = super().clean()
        unit, deposit = cleaned.get('unit'), cleaned.get('deposit')
        if unit and deposit and deposit > unit.price:
            self.add_error('deposit', 'Deposit cannot exceed the unit price.')
        return cleaned


class PaymentForm(StyledFormMixin, forms.Form):
    booking = forms.ModelChoiceField(queryset=Booking.objects.none())
    amount = forms.DecimalField(max_digits=15, decimal_places=2, min_value=Decimal('0.01'))
    payment_date = forms.DateField(widget=date_widget(), initial=timezone.localdate)
    payment_type = forms.ChoiceField(choices=Payment.PAYMENT_TYPE_CHOICES, initial='installment')
    account = forms.ModelChoiceField(queryset=Account.objects.none(), required=False)
    scheduled_payment = forms.ModelChoiceField(queryset=ScheduledPayment.objects.none(), required=False,
                                               label='Settles installment')
    notes = forms.CharField(widget=forms.Textarea(attrs={'rows': 2}), required=False)

    def __init__(self, *args, scope=None, booking=None, **kwargs):
        super().__init__(*args, **kwargs)
        bookings = Booking.objects.active().filter(status=Booking.STATUS_ACTIVE).for_scope(scope)
        self.fields['booking'].queryset = bookings.select_related('unit', 'customer')
        self.fields['account'].queryset = _accounts()
        installments = ScheduledPayment.objects.filter(
            booking__in=bookings, status__in=[ScheduledPayment.STATUS_PENDING, ScheduledPayment.STATUS_OVERDUE]
        )
        if booking is not None:
            self.fields['booking'].initial = booking.pk
            installments = installments.filter(booking=booking)
        self.fields['scheduled_payment'].queryset = installments

    def clean(self):
        cleaned = super().clean()
        booking, installment = cleaned.get('booking'), cleaned.get('scheduled_payment')
        if booking and installment and installment.booking_id != booking.pk:
            self.add_error('scheduled_payment', 'This installment belongs to another booking.')
        return cleaned


class ExtraPaymentForm(StyledFormMixin, forms.ModelForm):
    class Meta:
        model = ExtraPayment
        fields = ['amount', 'payment_date', 'payment_type', 'description', 'account', 'notes']
        widgets = {
            'payment_date': date_widget(),
            'notes': forms.Textarea(attrs={'rows': 2}),
        }

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.fields['account'].queryset = _accounts()
        self.fields['payment_date'].initial = timezone.localdate

    def clean_amount(self):
        amount = self.cleaned_data['amount']
        if amount is not None and amount <= 0:
            raise forms.ValidationError('Amount must be greater than zero.')
        return amount


class CancelBookingForm(StyledFormMixin, forms.Form):
    reason = forms.CharField(widget=forms.Textarea(attrs={'rows': 2}), required=False)


class ScheduleForm(StyledFormMixin, forms.Form):
    installments = forms.IntegerField(min_value=1, max_value=240, initial=12)
    first_due_date = forms.DateField(widget=date_widget())
    interval_months = forms.IntegerField(min_value=1, max_value=12, initial=1)


class UnitSaleForm(StyledFormMixin, forms.Form):
    unit = forms.ModelChoiceField(queryset=Unit.objects.none())
    customer = forms.ModelChoiceField(queryset=Customer.objects.none())
    sale_price = forms.DecimalField(max_digits=15, decimal_places=2, min_value=Decimal('0.01'))
    final_sale_price = forms.DecimalField(max_digits=15, decimal_places=2, min_value=Decimal('0.01'), required=False)
    sale_date = forms.DateField(widget=date_widget(), initial=timezone.localdate)
    account = forms.ModelChoiceField(queryset=Account.objects.none(), required=False)
    notes = forms.CharField(widget=forms.Textarea(attrs={'rows': 2}), required=False)

    def __init__(self, *args, scope=None, **kwargs):
        super().__init__(*args, **kwargs)
        units = Unit.objects.active().filter(status=Unit.STATUS_AVAILABLE)
        self.fields['unit'].queryset = units.for_scope(scope)
        self.fields['customer'].queryset = Customer.objects.filter(is_active=True)
        self.fields['account'].queryset = _accounts()
