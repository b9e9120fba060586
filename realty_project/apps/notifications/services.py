"""
Notification generation.

Pending installments inside the due-soon window produce one notification per
recipient, installment and type per day. Priority rises as the due date
approaches:

    days remaining  <= 0  urgent (due today or overdue)
                    <= 3  high
                    <= 7  medium
                    else  low
"""
import logging
from dataclasses import dataclass
from datetime import timedelta

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db.models import Q
from django.utils import timezone

from apps.core.formatting import format_currency
from apps.notifications.models import Notification

logger = logging.getLogger(__name__)


def priority_for(days_remaining):
    if days_remaining <= 0:
        return Notification.PRIORITY_URGENT
    if days_remaining <= 3:
        return Notification.PRIORITY_HIGH
    if days_remaining <= 7:
        return Notification.PRIORITY_MEDIUM
    return Notification.PRIORITY_LOW


def notification_type_for(days_remaining):
    if days_remaining < 0:
        return Notification.TYPE_PAYMENT_OVERDUE
    if days_remaining == 0:
        return Notification.TYPE_PAYMENT_DUE_TODAY
    return Notification.TYPE_PAYMENT_DUE_SOON


def recipients_for(project_id):
    """Active users allowed to see records of `project_id`."""
    return get_user_model().objects.filter(is_active=True).filter(
        Q(profile__isnull=True)
        | Q(profile__assigned_project__isnull=True)
        | Q(profile__assigned_project_id=project_id)
    )


def _notify(project_id, notification_type, priority, title, message, data):
    created = []
    for user in recipients_for(project_id):
        created.append(Notification.objects.create(
            user=user,
            project_id=project_id,
            notification_type=notification_type,
            priority=priority,
            title=title,
            message=message,
            data=data,
        ))
    return created


def notify_payment_received(payment):
    booking = payment.booking
    return _notify(
        booking.project_id,
        Notification.TYPE_PAYMENT_RECEIVED,
        Notification.PRIORITY_LOW,
        f'Payment received - {booking.booking_number}',
        f'{format_currency(payment.amount)} received from {booking.customer.name} for {booking.unit.name}.',
        {'booking_id': booking.pk, 'payment_id': payment.pk},
    )


def notify_booking_completed(booking):
    return _notify(
        booking.project_id,
        Notification.TYPE_BOOKING_COMPLETED,
        Notification.PRIORITY_MEDIUM,
        f'Booking completed - {booking.booking_number}',
        f'{booking.unit.name} is fully paid by {booking.customer.name}.',
        {'booking_id': booking.pk},
    )


@dataclass
class NotificationRun:
    checked: int = 0
    created: int = 0
    marked_overdue: int = 0


def generate_payment_notifications(today=None, dry_run=False):
    """
    Create due-soon / due-today / overdue notifications for unpaid
    installments of active bookings, marking overdue installments.
    """
    from apps.sales.models import Booking, ScheduledPayment

    today = today or timezone.localdate()
    horizon = today + timedelta(days=settings.PAYMENT_DUE_SOON_DAYS)
    run = NotificationRun()

    installments = (
        ScheduledPayment.objects
        .filter(
            is_active=True,
            status__in=[ScheduledPayment.STATUS_PENDING, ScheduledPayment.STATUS_OVERDUE],
            booking__status=Booking.STATUS_ACTIVE,
            due_date__lte=horizon,
        )
        .select_related('booking__unit', 'booking__customer')
    )

    for installment in installments:
        run.checked += 1
        booking = installment.booking
        days = installment.days_until_due(today)
        notification_type = notification_type_for(days)

        if days < 0 and installment.status != ScheduledPayment.STATUS_OVERDUE:
            run.marked_overdue += 1
            if not dry_run:
                installment.status = ScheduledPayment.STATUS_OVERDUE
                installment.save(update_fields=['status', 'updated_at'])

        if days < 0:
            title = f'Installment overdue - {booking.booking_number}'
            when = f'was due {-days} day(s) ago'
        elif days == 0:
            title = f'Installment due today - {booking.booking_number}'
            when = 'is due today'
        else:
            title = f'Installment due soon - {booking.booking_number}'
            when = f'is due in {days} day(s)'
        message = (
            f'Installment #{installment.installment_number} of {format_currency(installment.outstanding)} '
            f'for {booking.unit.name} ({booking.customer.name}) {when}.'
        )

        for user in recipients_for(booking.project_id):
            already_sent = Notification.objects.filter(
                user=user,
                notification_type=notification_type,
                data__installment_id=installment.pk,
                data__notified_on=today.isoformat(),
            ).exists()
            if already_sent:
                continue
            run.created += 1
            if dry_run:
                continue
            Notification.objects.create(
                user=user,
                project_id=booking.project_id,
                notification_type=notification_type,
                priority=priority_for(days),
                title=title,
                message=message,
                data={
                    'installment_id': installment.pk,
                    'booking_id': booking.pk,
                    'due_date': installment.due_date.isoformat(),
                    'days_remaining': days,
                    'notified_on': today.isoformat(),
                },
            )

    logger.info(
        'Payment notifications: %d installment(s) checked, %d notification(s) created, %d marked overdue%s',
        run.checked, run.created, run.marked_overdue, ' (dry run)' if dry_run else ''
    )
    return run
