"""
Sales tests: booking ledger arithmetic and the booking lifecycle services.

Test Cases Covered:
- Deposit reconciliation: explicit flag, legacy heuristic, extra payments
- Rows belonging to other bookings, or to none, are ignored
- Total paid never drops as payments are added to a stamped booking
- Reconciled booking with an extra payment, legacy booking with a separate deposit
- Balance is not clamped on overpayment
- Running balance over an ordered statement
- Per-booking summaries
- create_booking: deposit itemized, unit booked
- record_payment: overpayment rejected, completion sells the unit
- Legacy deposit stamped before the first new payment
- delete_payment reopens a completed booking
- cancel_booking releases the unit, archived bookings accept no payments
- hard_delete_booking: admins only, archived bookings only
- generate_schedule: parts sum to the balance, month-end clamping
- create_unit_sale
- Booking detail page, payment form with an unreadable booking id

Run: python manage.py test apps.sales.tests.test_sales -v 2
"""
from datetime import date
from decimal import Decimal

from django.contrib.auth.models import User
from django.core.exceptions import PermissionDenied, ValidationError
from django.test import SimpleTestCase, TestCase
from django.urls import reverse

from apps.crm.models import Customer
from apps.finance.models import Account, Transaction
from apps.notifications.models import Notification
from apps.projects.models import Project
from apps.property.models import Unit
from apps.sales import services
from apps.sales.ledger import (
    DEPOSIT, EXTRA, PAYMENT, LedgerEntry, compute_balance, deposit_is_separate, normalize,
    running_balance, summarize_bookings,
)
from apps.sales.models import Booking, Payment, ScheduledPayment, UnitSale
from apps.settings_app.models import ModulePermission, Role, UserProfile, UserRole


class LedgerTests(SimpleTestCase):

    def test_reconciled_deposit_is_not_added(self):
        booking = {'id': 1, 'amount_paid': '500', 'deposit_reconciled': True}
        payments = [{'booking_id': 1, 'amount': '300'}, {'booking_id': 1, 'amount': '200'}]
        ledger = normalize(booking, payments)
        self.assertEqual(ledger.base_amount, Decimal('500'))
        self.assertFalse(ledger.deposit_counted)

    def test_explicit_flag_beats_heuristic(self):
        booking = {'id': 1, 'amount_paid': '500', 'deposit_reconciled': False}
        ledger = normalize(booking, [{'booking_id': 1, 'amount': '500'}])
        self.assertEqual(ledger.base_amount, Decimal('1000'))
        self.assertTrue(ledger.deposit_counted)

    def test_legacy_heuristic(self):
        self.assertFalse(deposit_is_separate(Decimal('500'), Decimal('500.005')))
        self.assertTrue(deposit_is_separate(Decimal('500'), Decimal('300')))

        booking = {'id': 1, 'amount_paid': '500', 'deposit_reconciled': None}
        ledger = normalize(booking, [{'booking_id': 1, 'amount': '300'}])
        self.assertEqual(ledger.base_amount, Decimal('800'))
        self.assertEqual([e.kind for e in ledger.entries], [DEPOSIT, PAYMENT])

    def test_extras_count_toward_total(self):
        booking = {'id': 1, 'amount_paid': '0', 'deposit_reconciled': True}
        ledger = normalize(
            booking,
            [{'booking_id': 1, 'amount': '1000'}],
            [{'booking_id': 1, 'amount': '150'}, {'booking_id': 2, 'amount': '999'}],
        )
        self.assertEqual(ledger.extra_amount, Decimal('150'))
        self.assertEqual(ledger.total_paid, Decimal('1150'))

    def test_unreadable_amounts_count_as_zero(self):
        booking = {'id': 1, 'amount_paid': None, 'deposit_reconciled': None}
        ledger = normalize(booking, [{'booking_id': 1, 'amount': 'abc'}, {'booking_id': 1, 'amount': '10'}])
        self.assertEqual(ledger.total_paid, Decimal('10'))

    def test_overpayment_is_not_clamped(self):
        balance = compute_balance({'price': '1000'}, Decimal('1200'))
        self.assertEqual(balance.remaining, Decimal('-200'))
        self.assertTrue(balance.is_fully_paid)

        balance = compute_balance({'price': '1000'}, Decimal('999.99'))
        self.assertFalse(balance.is_fully_paid)

    def test_running_balance(self):
        entries = [
            LedgerEntry(date(2026, 1, 1), Decimal('100'), DEPOSIT),
            LedgerEntry(date(2026, 2, 1), Decimal('400'), PAYMENT),
            LedgerEntry(date(2026, 3, 1), Decimal('50'), EXTRA),
        ]
        lines = running_balance(Decimal('1000'), entries)
        self.assertEqual([line.cumulative_paid for line in lines], [Decimal('100'), Decimal('500'), Decimal('550')])
        self.assertEqual(lines[-1].remaining, Decimal('450'))

    def test_entries_are_date_ordered(self):
        booking = {'id': 1, 'amount_paid': '100', 'deposit_reconciled': False, 'booking_date': date(2026, 1, 5)}
        payments = [
            {'booking_id': 1, 'id': 2, 'amount': '20', 'payment_date': date(2026, 3, 1)},
            {'booking_id': 1, 'id': 1, 'amount': '10', 'payment_date': date(2026, 2, 1)},
        ]
        ledger = normalize(booking, payments)
        self.assertEqual([e.source_id for e in ledger.entries], [1, 1, 2])
        self.assertEqual(ledger.entries[0].kind, DEPOSIT)

    def test_summaries(self):
        bookings = [
            {'id': 1, 'unit_id': 10, 'amount_paid': '0', 'deposit_reconciled': True},
            {'id': 2, 'unit_id': 20, 'amount_paid': '0', 'deposit_reconciled': True},
        ]
        payments = [
            {'booking_id': 1, 'amount': '1000', 'payment_date': date(2026, 4, 1)},
            {'booking_id': 2, 'amount': '250', 'payment_date': date(2026, 5, 1)},
        ]
        units = {10: {'price': '1000'}, 20: {'price': '1000'}}
        first, second = summarize_bookings(bookings, payments, units=units)
        self.assertTrue(first.is_fully_paid)
        self.assertEqual(second.remaining, Decimal('750'))
        self.assertEqual(second.payment_count, 1)
        self.assertEqual(second.last_payment_date, date(2026, 5, 1))

    def test_rows_of_other_bookings_are_ignored(self):
        booking = {'id': 1, 'amount_paid': '0', 'deposit_reconciled': None}
        payments = [{'booking_id': 2, 'amount': '100'}, {'amount': '999'}, {'booking_id': '', 'amount': '5'}]
        ledger = normalize(booking, payments, [{'amount': '40'}])
        self.assertEqual(ledger.total_paid, Decimal('0'))
        self.assertEqual(ledger.entries, [])

    def test_total_never_drops_as_payments_are_added(self):
        additions = ['250.50', '0', '0.01', '1000', '249.49']
        for deposit in ('0', '500', '1500'):
            for reconciled in (True, False):
                with self.subTest(deposit=deposit, reconciled=reconciled):
                    booking = {'id': 1, 'amount_paid': deposit, 'deposit_reconciled': reconciled}
                    payments = []
                    previous = normalize(booking, payments).total_paid
                    for amount in additions:
                        payments.append({'booking_id': 1, 'amount': amount})
                        total = normalize(booking, payments, [{'booking_id': 1, 'amount': '10'}]).total_paid
                        self.assertGreaterEqual(total, previous)
                        previous = total

    def test_reconciled_booking_with_extra_payment(self):
        unit = {'price': '100000'}
        booking = {'id': 'B1', 'amount_paid': '20000', 'deposit_reconciled': None}
        ledger = normalize(
            booking,
            [{'booking_id': 'B1', 'amount': '20000'}],
            [{'booking_id': 'B1', 'amount': '5000'}],
        )
        balance = compute_balance(unit, ledger.total_paid)
        self.assertEqual(ledger.total_paid, Decimal('25000'))
        self.assertEqual(balance.remaining, Decimal('75000'))
        self.assertFalse(balance.is_fully_paid)

    def test_legacy_booking_adds_separate_deposit(self):
        unit = {'price': '50000'}
        booking = {'id': 'B2', 'amount_paid': '10000', 'deposit_reconciled': None}
        payments = [{'booking_id': 'B2', 'amount': '7000'}, {'booking_id': 'B2', 'amount': '8000'}]
        ledger = normalize(booking, payments)
        balance = compute_balance(unit, ledger.total_paid)
        self.assertEqual(ledger.total_paid, Decimal('25000'))
        self.assertEqual(balance.remaining, Decimal('25000'))
        self.assertFalse(balance.is_fully_paid)


class SalesServiceTestBase(TestCase):

    @classmethod
    def setUpTestData(cls):
        cls.admin = User.objects.create_superuser('admin', 'admin@example.com', 'pass12345')
        cls.agent = User.objects.create_user('agent', password='pass12345')
        cls.project = Project.objects.create(name='Tower A')
        UserProfile.objects.create(user=cls.agent, assigned_project=cls.project, role=UserProfile.ROLE_SALES)
        role = Role.objects.create(name='Sales', code='sales')
        ModulePermission.objects.create(role=role, module='sales', can_view=True, can_create=True)
        UserRole.objects.create(user=cls.agent, role=role)
        cls.customer = Customer.objects.create(name='Sara Ahmed', phone='0770 000 0000')
        cls.account = Account.objects.create(name='Main Cash')

    def make_unit(self, name='A-101', price='100000'):
        return Unit.objects.create(project=self.project, name=name, price=Decimal(price))

    def make_booking(self, unit=None, deposit='20000'):
        unit = unit or self.make_unit()
        return services.create_booking(
            unit, self.customer, date(2026, 1, 10), deposit=Decimal(deposit), account=self.account, user=self.admin
        )


class BookingServiceTests(SalesServiceTestBase):

    def test_create_booking_itemizes_deposit(self):
        booking = self.make_booking()
        booking.refresh_from_db()
        self.assertTrue(booking.deposit_reconciled)
        self.assertEqual(booking.amount_paid, Decimal('20000'))
        self.assertEqual(booking.unit.status, Unit.STATUS_BOOKED)
        self.assertEqual(booking.payments.get().payment_type, 'deposit')
        self.assertEqual(booking.ledger().total_paid, Decimal('20000'))
        self.assertEqual(Transaction.objects.filter(source_type='payment').count(), 1)

    def test_unit_must_be_available(self):
        booking = self.make_booking()
        with self.assertRaises(ValidationError):
            services.create_booking(booking.unit, self.customer, date(2026, 1, 11))

    def test_deposit_above_price_rejected(self):
        unit = self.make_unit()
        with self.assertRaises(ValidationError):
            services.create_booking(unit, self.customer, date(2026, 1, 10), deposit=Decimal('100001'))
        self.assertFalse(Booking.objects.exists())

    def test_overpayment_rejected_and_nothing_written(self):
        booking = self.make_booking()
        with self.assertRaises(ValidationError):
            services.record_payment(booking, Decimal('80000.01'), date(2026, 2, 1))
        self.assertEqual(booking.payments.count(), 1)

    def test_non_positive_amount_rejected(self):
        booking = self.make_booking()
        for amount in (0, Decimal('-5'), 'abc'):
            with self.subTest(amount=amount):
                with self.assertRaises(ValidationError):
                    services.record_payment(booking, amount, date(2026, 2, 1))

    def test_full_payment_completes_and_sells(self):
        booking = self.make_booking()
        services.record_payment(booking, Decimal('80000'), date(2026, 2, 1), account=self.account, user=self.admin)
        booking.refresh_from_db()
        self.assertEqual(booking.status, Booking.STATUS_COMPLETED)
        self.assertEqual(booking.amount_paid, Decimal('100000'))
        self.assertEqual(booking.unit.status, Unit.STATUS_SOLD)
        self.assertTrue(Notification.objects.filter(
            user=self.admin, notification_type=Notification.TYPE_BOOKING_COMPLETED
        ).exists())
        self.assertEqual(self.account.balance, Decimal('100000'))

    def test_legacy_deposit_is_stamped_before_payment(self):
        unit = self.make_unit()
        unit.status = Unit.STATUS_BOOKED
        unit.save()
        booking = Booking.objects.create(
            unit=unit, customer=self.customer, booking_date=date(2025, 6, 1), amount_paid=Decimal('5000')
        )
        Payment.objects.create(booking=booking, amount=Decimal('5000'), payment_date=date(2025, 6, 1))

        services.record_payment(booking, Decimal('3000'), date(2026, 2, 1))
        booking.refresh_from_db()
        self.assertIs(booking.deposit_reconciled, True)
        self.assertEqual(booking.amount_paid, Decimal('8000'))
        self.assertEqual(booking.ledger().total_paid, Decimal('8000'))

    def test_separate_legacy_deposit_stays_separate(self):
        unit = self.make_unit()
        booking = Booking.objects.create(
            unit=unit, customer=self.customer, booking_date=date(2025, 6, 1), amount_paid=Decimal('10000')
        )
        services.record_payment(booking, Decimal('5000'), date(2026, 2, 1))
        booking.refresh_from_db()
        self.assertIs(booking.deposit_reconciled, False)
        self.assertEqual(booking.amount_paid, Decimal('10000'))
        self.assertEqual(booking.ledger().total_paid, Decimal('15000'))

    def test_extra_payment_counts_but_does_not_block_base(self):
        booking = self.make_booking()
        services.record_extra_payment(booking, Decimal('500'), date(2026, 2, 1), payment_type='registration')
        self.assertEqual(booking.ledger().total_paid, Decimal('20500'))
        services.record_payment(booking, Decimal('79500'), date(2026, 2, 2))
        booking.refresh_from_db()
        self.assertEqual(booking.status, Booking.STATUS_COMPLETED)

    def test_delete_payment_reopens_booking(self):
        booking = self.make_booking()
        payment = services.record_payment(booking, Decimal('80000'), date(2026, 2, 1), account=self.account)
        services.delete_payment(payment, user=self.admin)
        booking.refresh_from_db()
        self.assertEqual(booking.status, Booking.STATUS_ACTIVE)
        self.assertEqual(booking.unit.status, Unit.STATUS_BOOKED)
        self.assertEqual(booking.amount_paid, Decimal('20000'))
        self.assertFalse(Transaction.for_source('payment', payment.pk).exists())

    def test_cancel_releases_unit(self):
        booking = self.make_booking()
        services.cancel_booking(booking, user=self.admin, reason='Customer withdrew')
        booking.refresh_from_db()
        self.assertEqual(booking.status, Booking.STATUS_CANCELLED)
        self.assertIsNotNone(booking.cancelled_at)
        self.assertIn('Customer withdrew', booking.notes)
        self.assertEqual(booking.unit.status, Unit.STATUS_AVAILABLE)

        with self.assertRaises(ValidationError):
            services.record_payment(booking, Decimal('100'), date(2026, 2, 1))
        with self.assertRaises(ValidationError):
            services.cancel_booking(booking)

    def test_hard_delete_rules(self):
        booking = self.make_booking()
        with self.assertRaises(ValidationError):
            services.hard_delete_booking(booking, self.admin)

        services.cancel_booking(booking)
        booking.refresh_from_db()
        with self.assertRaises(PermissionDenied):
            services.hard_delete_booking(booking, self.agent)

        number = services.hard_delete_booking(booking, self.admin)
        self.assertEqual(number, booking.booking_number)
        self.assertFalse(Booking.objects.filter(pk=booking.pk).exists())
        self.assertFalse(Payment.objects.filter(booking_id=booking.pk).exists())
        self.assertFalse(Transaction.objects.filter(source_type='payment').exists())


class ScheduleTests(SalesServiceTestBase):

    def test_add_months_clamps_to_month_end(self):
        self.assertEqual(services.add_months(date(2024, 1, 31), 1), date(2024, 2, 29))
        self.assertEqual(services.add_months(date(2026, 11, 15), 3), date(2027, 2, 15))
        self.assertEqual(services.add_months(date(2026, 1, 31), 2), date(2026, 3, 31))

    def test_parts_sum_to_remaining_balance(self):
        booking = self.make_booking()
        schedule = services.generate_schedule(booking, 3, date(2026, 1, 31))
        self.assertEqual([s.amount for s in schedule],
                         [Decimal('26666.66'), Decimal('26666.66'), Decimal('26666.68')])
        self.assertEqual(sum(s.amount for s in schedule), Decimal('80000'))
        self.assertEqual([s.due_date for s in schedule],
                         [date(2026, 1, 31), date(2026, 2, 28), date(2026, 3, 31)])

    def test_regenerating_replaces_unpaid_installments(self):
        booking = self.make_booking()
        services.generate_schedule(booking, 4, date(2026, 2, 1))
        services.generate_schedule(booking, 2, date(2026, 2, 1))
        self.assertEqual(ScheduledPayment.objects.filter(booking=booking).count(), 2)

    def test_payment_settles_installment(self):
        booking = self.make_booking()
        first = services.generate_schedule(booking, 2, date(2026, 2, 1))[0]
        services.record_payment(booking, first.amount, date(2026, 2, 1), scheduled_payment=first)
        first.refresh_from_db()
        self.assertEqual(first.status, ScheduledPayment.STATUS_PAID)
        self.assertEqual(first.paid_date, date(2026, 2, 1))

    def test_invalid_requests(self):
        booking = self.make_booking()
        with self.assertRaises(ValidationError):
            services.generate_schedule(booking, 0, date(2026, 2, 1))
        with self.assertRaises(ValidationError):
            services.generate_schedule(booking, 'many', date(2026, 2, 1))


class UnitSaleTests(SalesServiceTestBase):

    def test_sale_marks_unit_sold(self):
        unit = self.make_unit()
        sale = services.create_unit_sale(
            unit, self.customer, Decimal('100000'), date(2026, 3, 1),
            final_sale_price=Decimal('95000'), account=self.account,
        )
        unit.refresh_from_db()
        self.assertEqual(unit.status, Unit.STATUS_SOLD)
        self.assertEqual(sale.amount, Decimal('95000'))
        self.assertEqual(sale.project_id, self.project.pk)
        self.assertEqual(self.account.balance, Decimal('95000'))

        with self.assertRaises(ValidationError):
            services.create_unit_sale(unit, self.customer, Decimal('1'), date(2026, 3, 2))
        self.assertEqual(UnitSale.objects.count(), 1)


class BookingViewTests(SalesServiceTestBase):

    def test_detail_shows_statement(self):
        booking = self.make_booking()
        self.client.force_login(self.admin)
        response = self.client.get(reverse('sales:booking_detail', args=[booking.pk]))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.context['statement'].balance.remaining, Decimal('80000'))

    def test_other_project_booking_is_hidden(self):
        other = Project.objects.create(name='Tower B')
        unit = Unit.objects.create(project=other, name='B-101', price=Decimal('50000'))
        booking = self.make_booking(unit=unit, deposit='0')
        self.client.force_login(self.agent)
        response = self.client.get(reverse('sales:booking_detail', args=[booking.pk]))
        self.assertEqual(response.status_code, 404)

    def test_payment_form_ignores_unreadable_booking_id(self):
        self.client.force_login(self.admin)
        for value in ('²', 'abc'):
            response = self.client.get(reverse('sales:payment_create'), {'booking': value})
            self.assertEqual(response.status_code, 200)
        booking = self.make_booking()
        response = self.client.get(reverse('sales:payment_create'), {'booking': str(booking.pk)})
        self.assertEqual(response.status_code, 200)
