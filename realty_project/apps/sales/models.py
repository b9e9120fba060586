"""
Sales Models - bookings, payments, extra payments, installment schedules and
outright unit sales.

A booking's `amount_paid` is kept equal to the sum of its itemized payments
for bookings created here (`deposit_reconciled=True`). Bookings imported from
the old system may hold a deposit that was never itemized
(`deposit_reconciled=False`) or be undecided (`None`); see apps.sales.ledger.
"""
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.db import models

from apps.core.models import BaseModel, ScopedQuerySet
from apps.core.utils import generate_number


class BookingPaymentQuerySet(ScopedQuerySet):
    project_lookup = 'booking__project_id'


class Booking(BaseModel):
    STATUS_ACTIVE = 'active'
    STATUS_CANCELLED = 'cancelled'
    STATUS_COMPLETED = 'completed'

    STATUS_CHOICES = [
        (STATUS_ACTIVE, 'Active'),
        (STATUS_CANCELLED, 'Cancelled'),
        (STATUS_COMPLETED, 'Completed'),
    ]

    booking_number = models.CharField(max_length=50, unique=True, editable=False)
    unit = models.ForeignKey('property.Unit', on_delete=models.PROTECT, related_name='bookings')
    customer = models.ForeignKey('crm.Customer', on_delete=models.PROTECT, related_name='bookings')
    project = models.ForeignKey('projects.Project', on_delete=models.PROTECT, related_name='bookings')
    booking_date = models.DateField()
    amount_paid = models.DecimalField(max_digits=15, decimal_places=2, default=Decimal('0.00'))
    deposit_reconciled = models.BooleanField(
        null=True, blank=True,
        help_text='Yes: amount paid mirrors the itemized payments. '
                  'No: amount paid is a separate deposit. Empty: unknown.'
    )
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_ACTIVE)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    notes = models.TextField(blank=True)

    objects = ScopedQuerySet.as_manager()

    class Meta:
        ordering = ['-booking_date', '-id']

    def __str__(self):
        return f"{self.booking_number} - {self.unit.name}"

    def save(self, *args, **kwargs):
        if not self.booking_number:
            self.booking_number = generate_number('BOOKING', Booking, 'booking_number')
        if not self.project_id and self.unit_id:
            self.project_id = self.unit.project_id
        super().save(*args, **kwargs)

    def clean(self):
        if self.amount_paid is not None and self.amount_paid < 0:
            raise ValidationError({'amount_paid': 'Amount paid cannot be negative.'})
        if self.unit_id and self.project_id and self.unit.project_id != self.project_id:
            raise ValidationError({'project': 'The unit belongs to another project.'})

    @property
    def is_open(self):
        return self.status == self.STATUS_ACTIVE

    @property
    def is_archived(self):
        return self.status == self.STATUS_CANCELLED

    def ledger(self):
        """Normalized ledger over the booking's stored payment rows."""
        from apps.sales.ledger import normalize
        return normalize(self, self.payments.all(), self.extra_payments.all())


class Payment(BaseModel):
    PAYMENT_TYPE_CHOICES = [
        ('deposit', 'Deposit'),
        ('installment', 'Installment'),
        ('final', 'Final Payment'),
        ('other', 'Other'),
    ]

    receipt_number = models.CharField(max_length=50, unique=True, editable=False)
    booking = models.ForeignKey(Booking, on_delete=models.CASCADE, related_name='payments')
    amount = models.DecimalField(max_digits=15, decimal_places=2)
    payment_date = models.DateField()
    payment_type = models.CharField(max_length=20, choices=PAYMENT_TYPE_CHOICES, default='installment')
    account = models.ForeignKey(
        'finance.Account', on_delete=models.SET_NULL, null=True, blank=True, related_name='sales_payments'
    )
    scheduled_payment = models.ForeignKey(
        'sales.ScheduledPayment', on_delete=models.SET_NULL, null=True, blank=True, related_name='settling_payments'
    )
    notes = models.TextField(blank=True)

    objects = BookingPaymentQuerySet.as_manager()

    class Meta:
        ordering = ['-payment_date', '-id']

    def __str__(self):
        return f"{self.receipt_number} - {self.amount}"

    def save(self, *args, **kwargs):
        if not self.receipt_number:
            self.receipt_number = generate_number('RECEIPT', Payment, 'receipt_number')
        super().save(*args, **kwargs)

    @property
    def project_id(self):
        return self.booking.project_id if self.booking_id else None


class ExtraPayment(BaseModel):
    """
    Charges paid on top of the unit price (registration, services, ...).
    They count toward the total paid but are not itemized payments.
    """
    PAYMENT_TYPE_CHOICES = [
        ('registration', 'Registration Fee'),
        ('service', 'Service Charge'),
        ('maintenance', 'Maintenance'),
        ('other', 'Other'),
    ]

    booking = models.ForeignKey(Booking, on_delete=models.CASCADE, related_name='extra_payments')
    amount = models.DecimalField(max_digits=15, decimal_places=2)
    payment_date = models.DateField()
    payment_type = models.CharField(max_length=20, choices=PAYMENT_TYPE_CHOICES, default='other')
    description = models.CharField(max_length=255, blank=True)
    account = models.ForeignKey(
        'finance.Account', on_delete=models.SET_NULL, null=True, blank=True, related_name='extra_payments'
    )
    notes = models.TextField(blank=True)

    objects = BookingPaymentQuerySet.as_manager()

    class Meta:
        ordering = ['-payment_date', '-id']

    def __str__(self):
        return f"{self.get_payment_type_display()} - {self.amount}"

    @property
    def project_id(self):
        return self.booking.project_id if self.booking_id else None


class ScheduledPayment(BaseModel):
    STATUS_PENDING = 'pending'
    STATUS_PAID = 'paid'
    STATUS_OVERDUE = 'overdue'

    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_PAID, 'Paid'),
        (STATUS_OVERDUE, 'Overdue'),
    ]

    booking = models.ForeignKey(Booking, on_delete=models.CASCADE, related_name='schedule')
    installment_number = models.PositiveIntegerField()
    due_date = models.DateField()
    amount = models.DecimalField(max_digits=15, decimal_places=2)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING)
    paid_amount = models.DecimalField(max_digits=15, decimal_places=2, default=Decimal('0.00'))
    paid_date = models.DateField(null=True, blank=True)
    payment = models.ForeignKey(
        Payment, on_delete=models.SET_NULL, null=True, blank=True, related_name='settled_installments'
    )
    notes = models.TextField(blank=True)

    objects = BookingPaymentQuerySet.as_manager()

    class Meta:
        ordering = ['booking', 'installment_number']
        unique_together = ['booking', 'installment_number']

    def __str__(self):
        return f"{self.booking.booking_number} #{self.installment_number}"

    @property
    def outstanding(self):
        return self.amount - self.paid_amount

    def days_until_due(self, today):
        return (self.due_date - today).days


class UnitSale(BaseModel):
    """
    Outright sale of a unit without a booking.
    """
    sale_number = models.CharField(max_length=50, unique=True, editable=False)
    unit = models.ForeignKey('property.Unit', on_delete=models.PROTECT, related_name='sales')
    customer = models.ForeignKey('crm.Customer', on_delete=models.PROTECT, related_name='unit_sales')
    project = models.ForeignKey('projects.Project', on_delete=models.PROTECT, related_name='unit_sales')
    sale_price = models.DecimalField(max_digits=15, decimal_places=2)
    final_sale_price = models.DecimalField(
        max_digits=15, decimal_places=2, null=True, blank=True,
        help_text='Agreed price after discounts; defaults to the listed price'
    )
    sale_date = models.DateField()
    account = models.ForeignKey(
        'finance.Account', on_delete=models.SET_NULL, null=True, blank=True, related_name='unit_sales'
    )
    notes = models.TextField(blank=True)

    objects = ScopedQuerySet.as_manager()

    class Meta:
        ordering = ['-sale_date', '-id']

    def __str__(self):
        return f"{self.sale_number} - {self.unit.name}"

    def save(self, *args, **kwargs):
        if not self.sale_number:
            self.sale_number = generate_number('SALE', UnitSale, 'sale_number')
        if not self.project_id and self.unit_id:
            self.project_id = self.unit.project_id
        super().save(*args, **kwargs)

    @property
    def amount(self):
        return self.final_sale_price if self.final_sale_price is not None else self.sale_price
