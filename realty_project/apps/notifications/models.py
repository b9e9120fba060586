"""
Notifications - in-app alerts about due installments, received payments and
completed bookings.
"""
from django.conf import settings
from django.db import models

from apps.core.models import ScopedQuerySet


class Notification(models.Model):
    TYPE_PAYMENT_DUE_SOON = 'payment_due_soon'
    TYPE_PAYMENT_DUE_TODAY = 'payment_due_today'
    TYPE_PAYMENT_OVERDUE = 'payment_overdue'
    TYPE_PAYMENT_RECEIVED = 'payment_received'
    TYPE_BOOKING_COMPLETED = 'booking_completed'

    TYPE_CHOICES = [
        (TYPE_PAYMENT_DUE_SOON, 'Payment Due Soon'),
        (TYPE_PAYMENT_DUE_TODAY, 'Payment Due Today'),
        (TYPE_PAYMENT_OVERDUE, 'Payment Overdue'),
        (TYPE_PAYMENT_RECEIVED, 'Payment Received'),
        (TYPE_BOOKING_COMPLETED, 'Booking Completed'),
    ]

    PRIORITY_LOW = 'low'
    PRIORITY_MEDIUM = 'medium'
    PRIORITY_HIGH = 'high'
    PRIORITY_URGENT = 'urgent'

    PRIORITY_CHOICES = [
        (PRIORITY_LOW, 'Low'),
        (PRIORITY_MEDIUM, 'Medium'),
        (PRIORITY_HIGH, 'High'),
        (PRIORITY_URGENT, 'Urgent'),
    ]

    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='notifications')
    project = models.ForeignKey(
        'projects.Project', on_delete=models.CASCADE, null=True, blank=True, related_name='notifications'
    )
    notification_type = models.CharField(max_length=30, choices=TYPE_CHOICES)
    priority = models.CharField(max_length=10, choices=PRIORITY_CHOICES, default=PRIORITY_LOW)
    title = models.CharField(max_length=200)
    message = models.TextField(blank=True)
    data = models.JSONField(default=dict, blank=True)
    is_read = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    objects = ScopedQuerySet.as_manager()

    class Meta:
        ordering = ['is_read', '-created_at']

    def __str__(self):
        return f"{self.user} - {self.title}"
