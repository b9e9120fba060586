"""
Sales services - every write that moves a booking through its lifecycle.

    create_booking       unit available -> booked, optional deposit payment
    record_payment       itemized payment, completes the booking when paid up
    record_extra_payment charge on top of the price
    delete_payment       reverses a payment, reopens a completed booking
    cancel_booking       booking archived, unit available again
    hard_delete_booking  admin removal of an archived booking and its rows
    create_unit_sale     outright sale, unit sold
    generate_schedule    split the remaining balance into installments

Each function validates first (ValidationError, nothing written) and then
writes inside one transaction (PersistenceError, everything rolled back).
"""
import calendar
import logging
from datetime import date
from decimal import Decimal, ROUND_DOWN

from django.core.exceptions import PermissionDenied, ValidationError
from django.utils import timezone

from apps.core.amounts import ZERO, to_amount
from apps.core.audit import log_sales_audit
from apps.core.repository import atomic_write
from apps.core.utils import PermissionChecker
from apps.finance.services import record_deposit, remove_source_transactions
from apps.property.models import Unit
from apps.sales.ledger import compute_balance, normalize
from apps.sales.models import Booking, ExtraPayment, Payment, ScheduledPayment, UnitSale

logger = logging.getLogger(__name__)

CENT = Decimal('0.01')


def _positive_amount(value, field='amount'):
    amount = to_amount(value)
    if amount is None or amount <= 0:
        raise ValidationError({field: 'Amount must be greater than zero.'})
    return amount


def _lock_booking(booking):
    return Booking.objects.select_for_update().select_related('unit').get(pk=booking.pk)


def _ledger(booking):
    return normalize(booking, list(booking.payments.all()), list(booking.extra_payments.all()))


def _sync_amount_paid(booking):
    """Keep amount_paid equal to the itemized sum on reconciled bookings."""
    if booking.deposit_reconciled:
        booking.amount_paid = _ledger(booking).payments_sum


def _refresh_status(booking):
    """
    Complete a booking once its balance reaches zero, reopen it when a
    reversal leaves money owing. Returns True when the booking was completed.
    """
    balance = compute_balance(booking.unit, _ledger(booking).total_paid)
    unit = booking.unit
    if booking.status == Booking.STATUS_ACTIVE and balance.is_fully_paid:
        booking.status = Booking.STATUS_COMPLETED
        unit.status = Unit.STATUS_SOLD
        unit.save(update_fields=['status', 'updated_at', 'updated_by'])
        return True
    if booking.status == Booking.STATUS_COMPLETED and not balance.is_fully_paid:
        booking.status = Booking.STATUS_ACTIVE
        unit.status = Unit.STATUS_BOOKED
        unit.save(update_fields=['status', 'updated_at', 'updated_by'])
    return False


def _stamp_legacy_deposit(booking):
    """
    Fix the reading of a legacy deposit before new payments change the
    itemized sum the heuristic compares it with.
    """
    if booking.deposit_reconciled is None:
        booking.deposit_reconciled = not _ledger(booking).deposit_counted
        logger.info(
            'Booking %s deposit stamped as %s',
            booking.booking_number, 'reconciled' if booking.deposit_reconciled else 'separate'
        )


def create_booking(unit, customer, booking_date, deposit=ZERO, account=None, notes='', user=None):
    deposit = to_amount(deposit if deposit not in (None, '') else ZERO)
    if deposit is None or deposit < 0:
        raise ValidationError({'deposit': 'Deposit cannot be negative.'})
    if deposit > unit.price:
        raise ValidationError({'deposit': 'Deposit cannot exceed the unit price.'})

    with atomic_write('bookings'):
        unit = Unit.objects.select_for_update().get(pk=unit.pk)
        if unit.status != Unit.STATUS_AVAILABLE:
            raise ValidationError({'unit': f'Unit {unit.name} is not available.'})

        booking = Booking.objects.create(
            unit=unit,
            customer=customer,
            project_id=unit.project_id,
            booking_date=booking_date,
            amount_paid=deposit,
            deposit_reconciled=True,
            notes=notes,
        )
        if deposit > 0:
            payment = Payment.objects.create(
                booking=booking,
                amount=deposit,
                payment_date=booking_date,
                payment_type='deposit',
                account=account,
                notes='Booking deposit',
            )
            record_deposit(
                account, deposit, booking_date, f'Deposit {payment.receipt_number} - {booking.booking_number}',
                'payment', payment.pk, booking.project_id,
            )

        unit.status = Unit.STATUS_BOOKED
        unit.save(update_fields=['status', 'updated_at', 'updated_by'])
        booking.unit = unit
        if _refresh_status(booking):
            booking.save(update_fields=['status', 'updated_at', 'updated_by'])

    log_sales_audit(
        user, 'create', 'Booking', booking.pk,
        reference_number=booking.booking_number,
        amount_after=deposit,
        project=booking.project_id,
        details={'unit': unit.name, 'customer': customer.name},
    )
    return booking


def record_payment(booking, amount, payment_date, payment_type='installment', account=None,
                   notes='', scheduled_payment=None, user=None):
    """
    Append an itemized payment to an active booking.

    Raises ValidationError when the booking is not active, the amount is not
    positive or the payment would take the total past the unit price.
    """
    amount = _positive_amount(amount)
    if booking.status != Booking.STATUS_ACTIVE:
        raise ValidationError('Payments can only be added to active bookings.')

    with atomic_write('payments'):
        booking = _lock_booking(booking)
        if booking.status != Booking.STATUS_ACTIVE:
            raise ValidationError('Payments can only be added to active bookings.')

        _stamp_legacy_deposit(booking)
        ledger = _ledger(booking)
        amount_before = ledger.total_paid
        if ledger.base_amount + amount > booking.unit.price:
            raise ValidationError({
                'amount': 'Total paid cannot exceed the unit price. '
                          f'Remaining: {booking.unit.price - ledger.base_amount}'
            })

        payment = Payment.objects.create(
            booking=booking,
            amount=amount,
            payment_date=payment_date,
            payment_type=payment_type,
            account=account,
            notes=notes,
            scheduled_payment=scheduled_payment,
        )
        record_deposit(
            account, amount, payment_date, f'Payment {payment.receipt_number} - {booking.booking_number}',
            'payment', payment.pk, booking.project_id,
        )
        if scheduled_payment is not None:
            settle_installment(scheduled_payment, payment)

        _sync_amount_paid(booking)
        completed = _refresh_status(booking)
        booking.save()

    log_sales_audit(
        user, 'create', 'Payment', payment.pk,
        reference_number=payment.receipt_number,
        amount_before=amount_before,
        amount_after=amount_before + amount,
        project=booking.project_id,
        details={'booking': booking.booking_number, 'payment_type': payment_type},
    )

    from apps.notifications.services import notify_booking_completed, notify_payment_received
    notify_payment_received(payment)
    if completed:
        log_sales_audit(user, 'complete', 'Booking', booking.pk, reference_number=booking.booking_number,
                        project=booking.project_id)
        notify_booking_completed(booking)
    return payment


def record_extra_payment(booking, amount, payment_date, payment_type='other', description='',
                         account=None, notes='', user=None):
    amount = _positive_amount(amount)
    if booking.status != Booking.STATUS_ACTIVE:
        raise ValidationError('Extra payments can only be added to active bookings.')

    with atomic_write('extra_payments'):
        booking = _lock_booking(booking)
        _stamp_legacy_deposit(booking)
        extra = ExtraPayment.objects.create(
            booking=booking,
            amount=amount,
            payment_date=payment_date,
            payment_type=payment_type,
            description=description,
            account=account,
            notes=notes,
        )
        record_deposit(
            account, amount, payment_date,
            f'Extra payment - {booking.booking_number}: {description or extra.get_payment_type_display()}',
            'extra_payment', extra.pk, booking.project_id,
        )
        completed = _refresh_status(booking)
        booking.save()

    log_sales_audit(
        user, 'create', 'ExtraPayment', extra.pk,
        reference_number=booking.booking_number,
        amount_after=amount,
        project=booking.project_id,
        details={'payment_type': payment_type, 'description': description},
    )
    if completed:
        from apps.notifications.services import notify_booking_completed
        notify_booking_completed(booking)
    return extra


def settle_installment(installment, payment):
    """Apply a payment to a scheduled installment."""
    installment.paid_amount += payment.amount
    installment.payment = payment
    if installment.paid_amount >= installment.amount:
        installment.status = ScheduledPayment.STATUS_PAID
        installment.paid_date = payment.payment_date
    installment.save()


def _unsettle_installments(payment):
    for installment in ScheduledPayment.objects.filter(payment=payment):
        installment.paid_amount = max(installment.paid_amount - payment.amount, ZERO)
        installment.payment = None
        installment.paid_date = None
        if installment.due_date < timezone.localdate():
            installment.status = ScheduledPayment.STATUS_OVERDUE
        else:
            installment.status = ScheduledPayment.STATUS_PENDING
        installment.save()


def delete_payment(payment, user=None):
    """Remove a payment and its treasury posting; reopen the booking if needed."""
    booking = payment.booking
    if booking.status == Booking.STATUS_CANCELLED:
        raise ValidationError('Payments of archived bookings cannot be changed.')

    with atomic_write('payments'):
        booking = _lock_booking(booking)
        _stamp_legacy_deposit(booking)
        amount_before = _ledger(booking).total_paid

        remove_source_transactions('payment', [payment.pk])
        _unsettle_installments(payment)
        payment_id, receipt_number, amount = payment.pk, payment.receipt_number, payment.amount
        payment.delete()

        _sync_amount_paid(booking)
        _refresh_status(booking)
        booking.save()

    log_sales_audit(
        user, 'delete', 'Payment', payment_id,
        reference_number=receipt_number,
        amount_before=amount_before,
        amount_after=amount_before - amount,
        project=booking.project_id,
        details={'booking': booking.booking_number},
    )
    return booking


def delete_extra_payment(extra, user=None):
    booking = extra.booking
    if booking.status == Booking.STATUS_CANCELLED:
        raise ValidationError('Payments of archived bookings cannot be changed.')

    with atomic_write('extra_payments'):
        booking = _lock_booking(booking)
        remove_source_transactions('extra_payment', [extra.pk])
        extra_id, amount = extra.pk, extra.amount
        extra.delete()
        _refresh_status(booking)
        booking.save()

    log_sales_audit(user, 'delete', 'ExtraPayment', extra_id, reference_number=booking.booking_number,
                    amount_before=amount, project=booking.project_id)
    return booking


def cancel_booking(booking, user=None, reason=''):
    """Archive an active booking and release its unit."""
    if booking.status != Booking.STATUS_ACTIVE:
        raise ValidationError('Only active bookings can be cancelled.')

    with atomic_write('bookings'):
        booking = _lock_booking(booking)
        booking.status = Booking.STATUS_CANCELLED
        booking.cancelled_at = timezone.now()
        if reason:
            booking.notes = f'{booking.notes}\nCancelled: {reason}'.strip()
        booking.save()

        unit = booking.unit
        unit.status = Unit.STATUS_AVAILABLE
        unit.save(update_fields=['status', 'updated_at', 'updated_by'])

    log_sales_audit(
        user, 'cancel', 'Booking', booking.pk,
        reference_number=booking.booking_number,
        amount_before=_ledger(booking).total_paid,
        project=booking.project_id,
        details={'reason': reason},
    )
    return booking


def hard_delete_booking(booking, user):
    """
    Permanently remove an archived booking with its payments, extra payments,
    schedule, documents and treasury postings. Admins only.
    """
    if not PermissionChecker.is_admin(user):
        raise PermissionDenied('Only administrators can permanently delete bookings.')
    if booking.status != Booking.STATUS_CANCELLED:
        raise ValidationError('Only archived bookings can be permanently deleted.')

    booking_id, booking_number, project_id = booking.pk, booking.booking_number, booking.project_id
    with atomic_write('bookings'):
        payment_ids = list(booking.payments.values_list('pk', flat=True))
        extra_ids = list(booking.extra_payments.values_list('pk', flat=True))
        removed = remove_source_transactions('payment', payment_ids)
        removed += remove_source_transactions('extra_payment', extra_ids)
        booking.delete()

    log_sales_audit(
        user, 'delete', 'Booking', booking_id,
        reference_number=booking_number,
        project=project_id,
        details={'payments': len(payment_ids), 'extra_payments': len(extra_ids), 'transactions': removed},
    )
    return booking_number


def create_unit_sale(unit, customer, sale_price, sale_date, final_sale_price=None, account=None,
                     notes='', user=None):
    sale_price = _positive_amount(sale_price, 'sale_price')
    if final_sale_price not in (None, ''):
        final_sale_price = _positive_amount(final_sale_price, 'final_sale_price')
    else:
        final_sale_price = None

    with atomic_write('unit_sales'):
        unit = Unit.objects.select_for_update().get(pk=unit.pk)
        if unit.status != Unit.STATUS_AVAILABLE:
            raise ValidationError({'unit': f'Unit {unit.name} is not available.'})

        sale = UnitSale.objects.create(
            unit=unit,
            customer=customer,
            project_id=unit.project_id,
            sale_price=sale_price,
            final_sale_price=final_sale_price,
            sale_date=sale_date,
            account=account,
            notes=notes,
        )
        record_deposit(
            account, sale.amount, sale_date, f'Unit sale {sale.sale_number} - {unit.name}',
            'unit_sale', sale.pk, unit.project_id,
        )
        unit.status = Unit.STATUS_SOLD
        unit.save(update_fields=['status', 'updated_at', 'updated_by'])

    log_sales_audit(
        user, 'create', 'UnitSale', sale.pk,
        reference_number=sale.sale_number,
        amount_after=sale.amount,
        project=sale.project_id,
        details={'unit': unit.name, 'customer': customer.name},
    )
    return sale


def add_months(day, months):
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    month = month_index % 12 + 1
    return date(year, month, min(day.day, calendar.monthrange(year, month)[1]))


def generate_schedule(booking, installments, first_due_date, interval_months=1, user=None):
    """
    Replace the booking's unpaid installments with `installments` equal parts
    of the remaining balance. The last installment absorbs rounding.
    """
    try:
        installments = int(installments)
    except (TypeError, ValueError):
        installments = 0
    if installments < 1:
        raise ValidationError({'installments': 'At least one installment is required.'})
    if interval_months < 1:
        raise ValidationError({'interval_months': 'Interval must be at least one month.'})
    if booking.status != Booking.STATUS_ACTIVE:
        raise ValidationError('Schedules can only be generated for active bookings.')

    with atomic_write('scheduled_payments'):
        booking = _lock_booking(booking)
        remaining = compute_balance(booking.unit, _ledger(booking).total_paid).remaining
        if remaining <= 0:
            raise ValidationError('This booking has no remaining balance.')

        booking.schedule.exclude(status=ScheduledPayment.STATUS_PAID).delete()
        last_number = max(booking.schedule.values_list('installment_number', flat=True), default=0)

        part = (remaining / installments).quantize(CENT, rounding=ROUND_DOWN)
        created = []
        for index in range(installments):
            amount = part if index < installments - 1 else remaining - part * (installments - 1)
            created.append(ScheduledPayment.objects.create(
                booking=booking,
                installment_number=last_number + index + 1,
                due_date=add_months(first_due_date, index * interval_months),
                amount=amount,
            ))

    log_sales_audit(
        user, 'create', 'ScheduledPayment', booking.pk,
        reference_number=booking.booking_number,
        amount_after=remaining,
        project=booking.project_id,
        details={'installments': installments, 'first_due_date': first_due_date},
    )
    return created
