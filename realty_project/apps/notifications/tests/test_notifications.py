"""
Notification tests.

Test Cases Covered:
- Priority thresholds by days remaining
- Due-soon / due-today / overdue generation for the project's users
- One notification per user, installment and type per day
- Dry run writes nothing
- Installments outside the window or on cancelled bookings are skipped
- Management command
- Notification views: list, mark read, unread count

Run: python manage.py test apps.notifications.tests.test_notifications -v 2
"""
import json
from datetime import date
from decimal import Decimal
from io import StringIO

from django.contrib.auth.models import User
from django.core.management import call_command
from django.test import SimpleTestCase, TestCase, override_settings
from django.urls import reverse

from apps.crm.models import Customer
from apps.notifications.models import Notification
from apps.notifications.services import generate_payment_notifications, notification_type_for, priority_for
from apps.projects.models import Project
from apps.property.models import Unit
from apps.sales.models import Booking, ScheduledPayment
from apps.settings_app.models import UserProfile

TODAY = date(2026, 5, 10)


class PriorityTests(SimpleTestCase):

    def test_thresholds(self):
        cases = {
            -3: Notification.PRIORITY_URGENT,
            0: Notification.PRIORITY_URGENT,
            1: Notification.PRIORITY_HIGH,
            3: Notification.PRIORITY_HIGH,
            4: Notification.PRIORITY_MEDIUM,
            7: Notification.PRIORITY_MEDIUM,
            8: Notification.PRIORITY_LOW,
        }
        for days, priority in cases.items():
            with self.subTest(days=days):
                self.assertEqual(priority_for(days), priority)

    def test_types(self):
        self.assertEqual(notification_type_for(-1), Notification.TYPE_PAYMENT_OVERDUE)
        self.assertEqual(notification_type_for(0), Notification.TYPE_PAYMENT_DUE_TODAY)
        self.assertEqual(notification_type_for(5), Notification.TYPE_PAYMENT_DUE_SOON)


@override_settings(PAYMENT_DUE_SOON_DAYS=7)
class GenerationTests(TestCase):

    @classmethod
    def setUpTestData(cls):
        cls.admin = User.objects.create_superuser('admin', 'admin@example.com', 'pass12345')
        cls.project = Project.objects.create(name='Tower A')
        cls.other_project = Project.objects.create(name='Tower B')
        cls.agent = User.objects.create_user('agent', password='pass12345')
        UserProfile.objects.create(user=cls.agent, assigned_project=cls.project)
        cls.outsider = User.objects.create_user('outsider', password='pass12345')
        UserProfile.objects.create(user=cls.outsider, assigned_project=cls.other_project)

        customer = Customer.objects.create(name='Omar Khalid')
        unit = Unit.objects.create(project=cls.project, name='A-101', price=Decimal('90000'),
                                   status=Unit.STATUS_BOOKED)
        cls.booking = Booking.objects.create(
            unit=unit, customer=customer, booking_date=date(2026, 1, 1), deposit_reconciled=True
        )

    def add_installment(self, number, due_date, booking=None):
        return ScheduledPayment.objects.create(
            booking=booking or self.booking, installment_number=number, due_date=due_date,
            amount=Decimal('30000'),
        )

    def test_creates_one_per_project_user(self):
        installment = self.add_installment(1, date(2026, 5, 12))
        run = generate_payment_notifications(today=TODAY)
        self.assertEqual(run.checked, 1)
        self.assertEqual(run.created, 2)

        recipients = set(Notification.objects.values_list('user__username', flat=True))
        self.assertEqual(recipients, {'admin', 'agent'})
        notification = Notification.objects.get(user=self.agent)
        self.assertEqual(notification.notification_type, Notification.TYPE_PAYMENT_DUE_SOON)
        self.assertEqual(notification.priority, Notification.PRIORITY_HIGH)
        self.assertEqual(notification.data['installment_id'], installment.pk)
        self.assertEqual(notification.data['days_remaining'], 2)

    def test_runs_are_deduplicated_per_day(self):
        self.add_installment(1, TODAY)
        generate_payment_notifications(today=TODAY)
        second = generate_payment_notifications(today=TODAY)
        self.assertEqual(second.created, 0)
        self.assertEqual(Notification.objects.filter(user=self.admin).count(), 1)

    def test_overdue_installment_is_marked(self):
        installment = self.add_installment(1, date(2026, 5, 1))
        run = generate_payment_notifications(today=TODAY)
        installment.refresh_from_db()
        self.assertEqual(run.marked_overdue, 1)
        self.assertEqual(installment.status, ScheduledPayment.STATUS_OVERDUE)
        notification = Notification.objects.get(user=self.admin)
        self.assertEqual(notification.notification_type, Notification.TYPE_PAYMENT_OVERDUE)
        self.assertEqual(notification.priority, Notification.PRIORITY_URGENT)

    def test_dry_run_writes_nothing(self):
        installment = self.add_installment(1, date(2026, 5, 1))
        run = generate_payment_notifications(today=TODAY, dry_run=True)
        self.assertEqual(run.created, 2)
        self.assertFalse(Notification.objects.exists())
        installment.refresh_from_db()
        self.assertEqual(installment.status, ScheduledPayment.STATUS_PENDING)

    def test_skips_far_paid_and_cancelled(self):
        self.add_installment(1, date(2026, 6, 30))
        paid = self.add_installment(2, TODAY)
        paid.status = ScheduledPayment.STATUS_PAID
        paid.save()

        cancelled = Booking.objects.create(
            unit=Unit.objects.create(project=self.project, name='A-102', price=Decimal('1000')),
            customer=self.booking.customer, booking_date=date(2026, 1, 1), status=Booking.STATUS_CANCELLED,
        )
        self.add_installment(1, TODAY, booking=cancelled)

        run = generate_payment_notifications(today=TODAY)
        self.assertEqual(run.checked, 0)
        self.assertFalse(Notification.objects.exists())

    def test_command(self):
        self.add_installment(1, date(2026, 5, 15))
        out = StringIO()
        call_command('send_payment_notifications', '--date', '2026-05-10', stdout=out)
        self.assertIn('Notifications created: 2', out.getvalue())
        self.assertEqual(Notification.objects.get(user=self.agent).priority, Notification.PRIORITY_MEDIUM)

    def test_command_dry_run(self):
        self.add_installment(1, date(2026, 5, 15))
        out = StringIO()
        call_command('send_payment_notifications', '--dry-run', '--date', '2026-05-10', stdout=out)
        self.assertIn('DRY RUN', out.getvalue())
        self.assertFalse(Notification.objects.exists())


class NotificationViewTests(TestCase):

    @classmethod
    def setUpTestData(cls):
        cls.user = User.objects.create_superuser('admin', 'admin@example.com', 'pass12345')
        cls.first = Notification.objects.create(
            user=cls.user, notification_type=Notification.TYPE_PAYMENT_OVERDUE,
            priority=Notification.PRIORITY_URGENT, title='Installment overdue',
        )
        Notification.objects.create(
            user=cls.user, notification_type=Notification.TYPE_PAYMENT_RECEIVED,
            priority=Notification.PRIORITY_LOW, title='Payment received',
        )

    def test_list_filters_by_priority(self):
        self.client.force_login(self.user)
        response = self.client.get(reverse('notifications:notification_list'), {'priority': 'urgent'})
        self.assertEqual(response.status_code, 200)
        self.assertContains(response, 'Installment overdue')
        self.assertNotContains(response, 'Payment received')

    def test_mark_read_and_count(self):
        self.client.force_login(self.user)
        response = self.client.get(reverse('notifications:unread_count'))
        self.assertEqual(json.loads(response.content)['unread'], 2)

        self.client.post(reverse('notifications:notification_read', args=[self.first.pk]))
        self.first.refresh_from_db()
        self.assertTrue(self.first.is_read)

        self.client.post(reverse('notifications:notification_read_all'))
        self.assertFalse(Notification.objects.filter(is_read=False).exists())

    def test_other_users_notifications_are_hidden(self):
        other = User.objects.create_user('other', password='pass12345')
        self.client.force_login(other)
        response = self.client.post(reverse('notifications:notification_read', args=[self.first.pk]))
        self.assertEqual(response.status_code, 404)
