from django.contrib import admin
from .models import Booking, ExtraPayment, Payment, ScheduledPayment, UnitSale


class PaymentInline(admin.TabularInline):
    model = Payment
    extra = 0
    fields = ['receipt_number', 'payment_date', 'amount', 'payment_type', 'account', 'is_active']
    readonly_fields = ['receipt_number']


class ExtraPaymentInline(admin.TabularInline):
    model = ExtraPayment
    extra = 0
    fields = ['payment_date', 'amount', 'payment_type', 'description', 'is_active']


class ScheduledPaymentInline(admin.TabularInline):
    model = ScheduledPayment
    extra = 0
    fk_name = 'booking'
    fields = ['installment_number', 'due_date', 'amount', 'status', 'paid_amount', 'paid_date']


@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    list_display = ['booking_number', 'project', 'unit', 'customer', 'booking_date', 'amount_paid',
                    'deposit_reconciled', 'status']
    list_filter = ['status', 'project', 'deposit_reconciled']
    search_fields = ['booking_number', 'customer__name', 'unit__name']
    readonly_fields = ['booking_number', 'cancelled_at']
    date_hierarchy = 'booking_date'
    inlines = [PaymentInline, ExtraPaymentInline, ScheduledPaymentInline]


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ['receipt_number', 'booking', 'payment_date', 'amount', 'payment_type', 'account', 'is_active']
    list_filter = ['payment_type', 'is_active']
    search_fields = ['receipt_number', 'booking__booking_number', 'booking__customer__name']
    readonly_fields = ['receipt_number']


@admin.register(ScheduledPayment)
class ScheduledPaymentAdmin(admin.ModelAdmin):
    list_display = ['booking', 'installment_number', 'due_date', 'amount', 'status', 'paid_amount']
    list_filter = ['status']
    search_fields = ['booking__booking_number']


@admin.register(UnitSale)
class UnitSaleAdmin(admin.ModelAdmin):
    list_display = ['sale_number', 'project', 'unit', 'customer', 'sale_date', 'sale_price', 'final_sale_price']
    list_filter = ['project']
    search_fields = ['sale_number', 'customer__name', 'unit__name']
    readonly_fields = ['sale_number']
