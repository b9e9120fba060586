"""
Finance tests: expense aggregation, filtering, record location, exports, the
expense views, deferred payables and salaries.

Test Cases Covered:
- Category grouping: synthetic Uncategorized group, ordering, shares
- Project then category grouping, monthly totals, project net result
- Invalid amounts counted as zero and logged
- Filters never widen the access scope
- RecordLocator: found, retry after the list changed, not found, out of scope
- CSV export carries a BOM, xlsx layout
- Expense service keeps the treasury withdrawal in step
- Aggregation is order independent; group ids come from the known records
- Uncategorized filter and Uncategorized group hold the same records
- Three expense category scenario
- Salary status per employee for a month
- Expense list focus, locate endpoint, print view, non-ASCII digit ids
- Categories and accounts created through the repository
- Deferred payables: initial payment, installments capped at the remaining
  balance, reversal restores the account, deleting a payable
- Salaries: partial then full month, overpayment rejected
- Deferred payment and employee pages

Run: python manage.py test apps.finance.tests.test_expenses -v 2
"""
import json
import random
from datetime import date
from decimal import Decimal
from io import BytesIO

from django.contrib.auth.models import User
from django.core.exceptions import ValidationError
from django.test import SimpleTestCase, TestCase, override_settings
from django.urls import reverse
from django.utils import timezone
from openpyxl import load_workbook

from apps.core.amounts import ZERO, sum_amounts
from apps.core.middleware import SELECTED_PROJECT_SESSION_KEY
from apps.core.scope import AccessScope
from apps.finance import excel_exports
from apps.finance.aggregation import (
    NO_PROJECT_LABEL, SALARY_NOT_PAID, SALARY_PAID, SALARY_PARTIAL, UNCATEGORIZED_ID, UNCATEGORIZED_LABEL,
    aggregate_by_category, aggregate_by_month, aggregate_by_project_then_category, count_invalid_amounts,
    project_summary, salary_statuses,
)
from apps.finance.filters import RecordFilters, RecordLocator, apply_filters, locate_in_pages
from apps.finance.models import (
    Account, DeferredInstallment, DeferredPayment, Employee, Expense, ExpenseCategory, Transaction,
)
from apps.finance.services import (
    SALARY_CATEGORY_NAME, add_deferred_installment, delete_deferred_installment, delete_deferred_payment,
    delete_expense, pay_salary, salary_paid_for_month, save_deferred_payment, save_expense,
)
from apps.projects.models import Project
from apps.settings_app.models import ModulePermission, Role, UserProfile, UserRole

CATEGORIES = [{'id': 1, 'name': 'Steel'}, {'id': 2, 'name': 'Cement'}]
PROJECTS = [{'id': 1, 'name': 'Tower A'}, {'id': 2, 'name': 'Tower B'}]


class AggregationTests(SimpleTestCase):

    def test_unknown_and_blank_categories_share_one_group(self):
        records = [
            {'category_id': 1, 'amount': '100'},
            {'category_id': 2, 'amount': '100'},
            {'category_id': None, 'amount': '100'},
            {'category_id': 99, 'amount': '50'},
            {'category_id': '  ', 'amount': '0'},
        ]
        totals = aggregate_by_category(records, CATEGORIES)
        self.assertEqual([t.name for t in totals], [UNCATEGORIZED_LABEL, 'Cement', 'Steel'])
        uncategorized = totals[0]
        self.assertEqual(uncategorized.category_id, UNCATEGORIZED_ID)
        self.assertEqual(uncategorized.total_amount, Decimal('150'))
        self.assertEqual(uncategorized.transaction_count, 3)
        self.assertEqual(sum(t.total_amount for t in totals), Decimal('350'))
        self.assertEqual(sum(t.transaction_count for t in totals), len(records))

    def test_named_group_wins_a_tie(self):
        records = [{'category_id': None, 'amount': '100'}, {'category_id': 1, 'amount': '100'}]
        totals = aggregate_by_category(records, CATEGORIES)
        self.assertEqual([t.name for t in totals], ['Steel', UNCATEGORIZED_LABEL])
        self.assertEqual(totals[0].share, Decimal('0.5'))

    def test_empty_groups_are_omitted(self):
        self.assertEqual(aggregate_by_category([], CATEGORIES), [])

    def test_zero_grand_total_gives_zero_share(self):
        totals = aggregate_by_category([{'category_id': 1, 'amount': '0'}], CATEGORIES)
        self.assertEqual(totals[0].share, ZERO)

    def test_invalid_amounts_count_as_zero(self):
        records = [{'category_id': 1, 'amount': 'abc'}, {'category_id': 1, 'amount': '40'}]
        with self.assertLogs('apps.finance.aggregation', level='WARNING'):
            totals = aggregate_by_category(records, CATEGORIES)
        self.assertEqual(totals[0].total_amount, Decimal('40'))
        self.assertEqual(totals[0].transaction_count, 2)
        self.assertEqual(count_invalid_amounts(records), 1)

    def test_project_then_category(self):
        records = [
            {'project_id': 1, 'category_id': 1, 'amount': '300'},
            {'project_id': 1, 'category_id': 2, 'amount': '100'},
            {'project_id': None, 'category_id': 1, 'amount': '50'},
        ]
        totals = aggregate_by_project_then_category(records, PROJECTS, CATEGORIES)
        self.assertEqual([t.name for t in totals], ['Tower A', NO_PROJECT_LABEL])
        tower = totals[0]
        self.assertEqual(tower.total_amount, Decimal('400'))
        self.assertEqual([c.name for c in tower.categories], ['Steel', 'Cement'])
        self.assertEqual(tower.categories[0].share, Decimal('0.75'))
        self.assertTrue(totals[1].is_unassigned)

    def test_monthly_totals(self):
        records = [
            {'date': date(2026, 2, 10), 'amount': '10'},
            {'date': '2026-01-31', 'amount': '5'},
            {'date': date(2026, 2, 1), 'amount': '15'},
            {'date': None, 'amount': '99'},
        ]
        months = aggregate_by_month(records)
        self.assertEqual([m.month for m in months], [date(2026, 1, 1), date(2026, 2, 1)])
        self.assertEqual(months[1].total_amount, Decimal('25'))

    def test_project_summary(self):
        expenses = [{'project_id': 1, 'amount': '300'}, {'project_id': 2, 'amount': '50'}]
        booking_totals = [(1, Decimal('1000')), ('2', Decimal('20')), (1, Decimal('500'))]
        summaries = project_summary(PROJECTS, expenses, booking_totals)
        self.assertEqual([s.name for s in summaries], ['Tower A', 'Tower B'])
        self.assertEqual(summaries[0].net, Decimal('1200'))
        self.assertEqual(summaries[1].net, Decimal('-30'))

    def test_three_expense_scenario(self):
        records = [
            {'category_id': 'catA', 'amount': 500},
            {'category_id': 'catA', 'amount': 300},
            {'category_id': None, 'amount': 200},
        ]
        totals = aggregate_by_category(records, [{'id': 'catA', 'name': 'Concrete'}])
        self.assertEqual(
            [(t.category_id, t.total_amount, t.transaction_count) for t in totals],
            [('catA', Decimal('800'), 2), (UNCATEGORIZED_ID, Decimal('200'), 1)],
        )

    def test_shuffled_input_gives_same_output(self):
        records = [
            {'project_id': 1, 'category_id': 1, 'amount': '120.25'},
            {'project_id': 2, 'category_id': 2, 'amount': '120.25'},
            {'project_id': 1, 'category_id': None, 'amount': '120.25'},
            {'project_id': None, 'category_id': 99, 'amount': '75'},
            {'project_id': '2', 'category_id': '1', 'amount': '10.10'},
            {'project_id': 1, 'category_id': 2, 'amount': 'abc'},
        ]
        expected_categories = aggregate_by_category(records, CATEGORIES)
        expected_projects = aggregate_by_project_then_category(records, PROJECTS, CATEGORIES)
        rng = random.Random(20260301)
        for _ in range(25):
            shuffled = list(records)
            rng.shuffle(shuffled)
            with self.assertLogs('apps.finance.aggregation', level='WARNING'):
                self.assertEqual(aggregate_by_category(shuffled, CATEGORIES), expected_categories)
                self.assertEqual(
                    aggregate_by_project_then_category(shuffled, PROJECTS, CATEGORIES), expected_projects
                )

    def test_group_id_does_not_depend_on_first_record(self):
        int_first = [{'category_id': 1, 'project_id': 1, 'amount': '5'},
                     {'category_id': '1', 'project_id': '1', 'amount': '5'}]
        str_first = list(reversed(int_first))
        for records in (int_first, str_first):
            with self.subTest(first=records[0]['category_id']):
                category, = aggregate_by_category(records, CATEGORIES)
                self.assertEqual(category.category_id, 1)
                self.assertEqual(category.transaction_count, 2)
                project, = aggregate_by_project_then_category(records, PROJECTS, CATEGORIES)
                self.assertEqual(project.project_id, 1)
                self.assertEqual(project.categories[0].category_id, 1)

    def test_uncategorized_group_matches_uncategorized_filter(self):
        records = [
            {'id': 1, 'category_id': 99, 'amount': '10'},
            {'id': 2, 'category_id': None, 'amount': '20'},
            {'id': 3, 'category_id': 1, 'amount': '30'},
        ]
        uncategorized = [t for t in aggregate_by_category(records, CATEGORIES) if t.is_uncategorized][0]
        filtered = apply_filters(records, RecordFilters(category_id=UNCATEGORIZED_ID), categories=CATEGORIES)
        self.assertEqual(uncategorized.transaction_count, 2)
        self.assertEqual([r['id'] for r in filtered], [1, 2])
        self.assertEqual(sum_amounts(r['amount'] for r in filtered), uncategorized.total_amount)

    def test_salary_statuses(self):
        month = date(2026, 3, 15)
        employees = [
            {'id': 1, 'salary': '1000'},
            {'id': 2, 'salary': '800'},
            {'id': 3, 'salary': '500'},
        ]
        expenses = [
            {'employee_id': 1, 'amount': '600', 'date': date(2026, 3, 1)},
            {'employee_id': '1', 'amount': '400', 'date': '2026-03-28'},
            {'employee_id': 2, 'amount': '300', 'date': date(2026, 3, 2)},
            {'employee_id': 2, 'amount': '800', 'date': date(2026, 2, 27)},
            {'employee_id': None, 'amount': '50', 'date': date(2026, 3, 2)},
        ]
        statuses = salary_statuses(employees, expenses, month)
        self.assertEqual(statuses[1].status, SALARY_PAID)
        self.assertEqual(statuses[1].remaining, ZERO)
        self.assertEqual(statuses[2].status, SALARY_PARTIAL)
        self.assertEqual(statuses[2].paid_amount, Decimal('300'))
        self.assertEqual(statuses[2].remaining, Decimal('500'))
        self.assertEqual(statuses[3].status, SALARY_NOT_PAID)


class FilterTests(SimpleTestCase):

    records = [
        {'id': 1, 'project_id': 1, 'category_id': 1, 'amount': '100', 'date': date(2026, 1, 5),
         'description': 'Rebar delivery'},
        {'id': 2, 'project_id': 2, 'category_id': 2, 'amount': '250', 'date': date(2026, 2, 5),
         'description': 'Cement bags'},
        {'id': 3, 'project_id': 1, 'category_id': None, 'amount': '40', 'date': date(2026, 3, 5),
         'description': 'Site lunch', 'notes': 'Crew of twelve'},
    ]

    def ids(self, records):
        return [r['id'] for r in records]

    def test_no_filters_keeps_order(self):
        self.assertEqual(self.ids(apply_filters(self.records)), [1, 2, 3])

    def test_project_filter_cannot_widen_assignment(self):
        scope = AccessScope.for_project(1)
        result = apply_filters(self.records, RecordFilters(project_id=2), scope)
        self.assertEqual(self.ids(result), [1, 3])

    def test_selection_narrows_and_filter_overrides_it(self):
        scope = AccessScope.unrestricted().with_selection(2)
        self.assertEqual(self.ids(apply_filters(self.records, RecordFilters(), scope)), [2])
        self.assertEqual(self.ids(apply_filters(self.records, RecordFilters(project_id='1'), scope)), [1, 3])

    def test_dimensions(self):
        self.assertEqual(self.ids(apply_filters(self.records, RecordFilters(category_id=UNCATEGORIZED_ID))), [3])
        self.assertEqual(self.ids(apply_filters(self.records, RecordFilters(min_amount='50', max_amount=200))), [1])
        self.assertEqual(self.ids(apply_filters(
            self.records, RecordFilters(start_date='2026-02-01', end_date=date(2026, 2, 28))
        )), [2])
        self.assertEqual(self.ids(apply_filters(self.records, RecordFilters(query='CREW'))), [3])
        self.assertEqual(self.ids(apply_filters(self.records, RecordFilters(query='2026-01'))), [1])

    def test_unknown_category_is_uncategorized_when_categories_known(self):
        records = self.records + [{'id': 4, 'project_id': 1, 'category_id': 99, 'amount': '5'}]
        self.assertEqual(
            self.ids(apply_filters(records, RecordFilters(category_id=UNCATEGORIZED_ID), categories=CATEGORIES)),
            [3, 4],
        )
        self.assertEqual(self.ids(apply_filters(records, RecordFilters(category_id=UNCATEGORIZED_ID))), [3])


class LocatorTests(SimpleTestCase):

    def make_records(self, count, project_id=1):
        return [{'id': i, 'project_id': project_id} for i in range(1, count + 1)]

    def test_found_on_expected_page(self):
        records = self.make_records(5)
        result = locate_in_pages(records, records[4], page_size=2)
        self.assertTrue(result.found)
        self.assertEqual(result.page_number, 3)
        self.assertEqual([r['id'] for r in result.page.object_list], [5])

    def test_retries_once_when_list_changed(self):
        records = self.make_records(4)
        locator = RecordLocator(page_size=2)
        self.assertEqual(locator.resolve(records, records[1]), 1)

        shifted = [{'id': 99, 'project_id': 1}, {'id': 98, 'project_id': 1}] + records
        self.assertEqual(locator.confirm([99, 98], shifted), RecordLocator.CONFIRMING_RENDER)
        self.assertEqual(locator.page, 2)
        self.assertEqual(locator.confirm([1, 2], shifted), RecordLocator.FOUND)

    def test_gives_up_after_retry(self):
        records = self.make_records(4)
        locator = RecordLocator(page_size=2)
        locator.resolve(records, records[0])
        locator.confirm([3, 4], records)
        self.assertEqual(locator.confirm([3, 4], records), RecordLocator.NOT_FOUND)

    def test_missing_target(self):
        records = self.make_records(3)
        self.assertEqual(locate_in_pages(records, None).state, RecordLocator.NOT_FOUND)
        result = locate_in_pages(records, {'id': 42, 'project_id': 1}, page_size=2)
        self.assertEqual(result.state, RecordLocator.NOT_FOUND)
        self.assertIsNone(result.page_number)

    def test_out_of_scope(self):
        records = self.make_records(3)
        result = locate_in_pages(records, {'id': 7, 'project_id': 2}, scope=AccessScope.for_project(1))
        self.assertEqual(result.state, RecordLocator.OUT_OF_SCOPE)


class ExportTests(SimpleTestCase):

    records = [
        {'date': date(2026, 1, 5), 'description': 'Rebar', 'category_name': 'Steel',
         'project_name': 'Tower A', 'amount': Decimal('100.50')},
        {'date': date(2026, 1, 6), 'description': 'Lunch', 'category_name': '',
         'project_name': '', 'amount': 'abc'},
    ]

    def test_csv_has_bom_and_header(self):
        response = excel_exports.export_expenses_csv(self.records)
        content = response.content.decode('utf-8')
        self.assertTrue(content.startswith('\ufeff'))
        lines = content.lstrip('\ufeff').splitlines()
        self.assertEqual(lines[0], 'date,description,category,project,amount')
        self.assertEqual(lines[1], '2026-01-05,Rebar,Steel,Tower A,100.50')
        self.assertEqual(lines[2], '2026-01-06,Lunch,,,0')

    def test_workbook_layout(self):
        ws = excel_exports.build_expenses_workbook(self.records).active
        self.assertEqual(ws.cell(row=3, column=1).value, 'Date')
        self.assertEqual(ws.cell(row=4, column=5).value, 100.5)
        self.assertEqual(ws.cell(row=6, column=1).value, 'TOTAL')
        self.assertEqual(ws.cell(row=6, column=5).value, 100.5)


class ExpenseTestBase(TestCase):

    @classmethod
    def setUpTestData(cls):
        cls.admin = User.objects.create_superuser('admin', 'admin@example.com', 'pass12345')
        cls.project_a = Project.objects.create(name='Tower A')
        cls.project_b = Project.objects.create(name='Tower B')
        cls.steel = ExpenseCategory.objects.create(name='Steel')
        cls.account = Account.objects.create(name='Main Cash', initial_balance=Decimal('1000'))

        cls.accountant = User.objects.create_user('accountant', password='pass12345')
        UserProfile.objects.create(
            user=cls.accountant, assigned_project=cls.project_a, role=UserProfile.ROLE_ACCOUNTING
        )
        role = Role.objects.create(name='Accounting', code='accounting')
        ModulePermission.objects.create(role=role, module='finance', can_view=True)
        UserRole.objects.create(user=cls.accountant, role=role)

    @classmethod
    def make_expense(cls, description, amount, day, project=None, category=None):
        return Expense.objects.create(
            description=description, amount=Decimal(amount), date=day,
            project=project or cls.project_a, category=category or cls.steel,
        )


class ExpenseServiceTests(ExpenseTestBase):

    def test_save_posts_withdrawal(self):
        expense = Expense(description='Rebar', amount=Decimal('250'), date=date(2026, 1, 5),
                          project=self.project_a, category=self.steel, account=self.account)
        save_expense(expense, user=self.admin)
        self.assertTrue(expense.expense_number.startswith('EXP-'))
        self.assertEqual(self.account.balance, Decimal('750'))

        expense.amount = Decimal('300')
        save_expense(expense, user=self.admin)
        self.assertEqual(Transaction.for_source('expense', expense.pk).count(), 1)
        self.assertEqual(self.account.balance, Decimal('700'))

        delete_expense(expense, user=self.admin)
        self.assertEqual(self.account.balance, Decimal('1000'))
        self.assertFalse(Expense.objects.active().filter(pk=expense.pk).exists())

    def test_non_positive_amount_rejected(self):
        expense = Expense(description='Refund', amount=Decimal('-5'), date=date(2026, 1, 5))
        with self.assertRaises(ValidationError):
            save_expense(expense)
        self.assertFalse(Expense.objects.exists())

    def test_category_of_other_project_rejected(self):
        category = ExpenseCategory.objects.create(name='Lifts', project=self.project_b)
        expense = Expense(description='Lift', amount=Decimal('5'), date=date(2026, 1, 5),
                          project=self.project_a, category=category)
        with self.assertRaises(ValidationError):
            save_expense(expense)


@override_settings(LIST_PAGE_SIZE=2)
class ExpenseViewTests(ExpenseTestBase):

    @classmethod
    def setUpTestData(cls):
        super().setUpTestData()
        cls.oldest = cls.make_expense('Excavation', '500', date(2026, 1, 1))
        cls.make_expense('Rebar', '300', date(2026, 1, 2))
        cls.make_expense('Cement', '200', date(2026, 1, 3))
        cls.other = cls.make_expense('Paint', '100', date(2026, 1, 4), project=cls.project_b)

    def test_list_totals(self):
        self.client.force_login(self.admin)
        response = self.client.get(reverse('finance:expense_list'))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.context['record_count'], 4)
        self.assertEqual(response.context['total'], Decimal('1100'))

    def test_focus_opens_the_right_page(self):
        self.client.force_login(self.admin)
        response = self.client.get(reverse('finance:expense_list'), {'focus': self.oldest.pk})
        self.assertEqual(response.context['page_obj'].number, 2)
        self.assertEqual(response.context['highlight_id'], self.oldest.pk)

    def test_locate_switches_admin_selection(self):
        self.client.force_login(self.admin)
        session = self.client.session
        session[SELECTED_PROJECT_SESSION_KEY] = self.project_b.pk
        session.save()

        response = self.client.get(reverse('finance:expense_locate'), {'id': self.oldest.pk})
        payload = json.loads(response.content)
        self.assertEqual(payload['status'], RecordLocator.FOUND)
        self.assertEqual(payload['page'], 2)
        self.assertIn(f'#expense-{self.oldest.pk}', payload['url'])
        self.assertEqual(self.client.session[SELECTED_PROJECT_SESSION_KEY], self.project_a.pk)

    def test_locate_out_of_scope(self):
        self.client.force_login(self.accountant)
        response = self.client.get(reverse('finance:expense_locate'), {'id': self.other.pk})
        payload = json.loads(response.content)
        self.assertEqual(payload['status'], RecordLocator.OUT_OF_SCOPE)
        self.assertIsNone(payload['page'])

    def test_locate_unknown_id(self):
        self.client.force_login(self.admin)
        response = self.client.get(reverse('finance:expense_locate'), {'id': 'abc'})
        self.assertEqual(json.loads(response.content)['status'], RecordLocator.NOT_FOUND)

    def test_assigned_user_sees_only_their_project(self):
        self.client.force_login(self.accountant)
        response = self.client.get(reverse('finance:expense_list'), {'project': self.project_b.pk})
        self.assertEqual(response.context['record_count'], 3)

    def test_csv_export(self):
        self.client.force_login(self.admin)
        response = self.client.get(reverse('finance:expense_list'), {'export': 'csv'})
        self.assertEqual(response['Content-Type'], 'text/csv; charset=utf-8')
        self.assertTrue(response.content.startswith(b'\xef\xbb\xbf'))

    def test_xlsx_export(self):
        self.client.force_login(self.admin)
        response = self.client.get(reverse('finance:expense_list'), {'export': 'xlsx'})
        ws = load_workbook(BytesIO(response.content)).active
        self.assertEqual(ws.title, 'Expenses')

    def test_print_view(self):
        self.client.force_login(self.admin)
        response = self.client.get(reverse('finance:expense_print'))
        self.assertEqual(response.status_code, 200)
        self.assertContains(response, 'Excavation')

    def test_accounting_pages(self):
        self.client.force_login(self.admin)
        response = self.client.get(reverse('finance:category_accounting'))
        self.assertEqual(response.context['grand_total'], Decimal('1100'))
        response = self.client.get(reverse('finance:project_accounting'))
        self.assertEqual(response.status_code, 200)

    def test_no_permission(self):
        viewer = User.objects.create_user('viewer', password='pass12345')
        self.client.force_login(viewer)
        response = self.client.get(reverse('finance:expense_list'))
        self.assertEqual(response.status_code, 403)

    def test_superscript_digit_ids_are_not_found(self):
        self.client.force_login(self.admin)
        response = self.client.get(reverse('finance:expense_list'), {'focus': '²'})
        self.assertEqual(response.status_code, 200)
        self.assertIsNone(response.context['highlight_id'])
        response = self.client.get(reverse('finance:expense_locate'), {'id': '²'})
        self.assertEqual(json.loads(response.content)['status'], RecordLocator.NOT_FOUND)

    def test_unknown_category_listed_under_uncategorized(self):
        Expense.objects.create(description='Scaffold', amount=Decimal('60'), date=date(2026, 1, 5),
                               project=self.project_a)
        self.client.force_login(self.admin)
        response = self.client.get(reverse('finance:expense_list'), {'category': UNCATEGORIZED_ID})
        self.assertEqual(response.context['record_count'], 1)
        response = self.client.get(reverse('finance:category_accounting'))
        uncategorized = [t for t in response.context['category_totals'] if t.is_uncategorized]
        self.assertEqual(uncategorized[0].transaction_count, 1)

    def test_create_category_and_account(self):
        self.client.force_login(self.admin)
        response = self.client.post(reverse('finance:category_create'), {'name': 'Glass', 'description': ''})
        self.assertRedirects(response, reverse('finance:category_list'))
        self.assertTrue(ExpenseCategory.objects.filter(name='Glass', project__isnull=True).exists())

        response = self.client.post(reverse('finance:account_create'), {
            'name': 'Bank', 'account_type': Account.TYPE_BANK, 'initial_balance': '250', 'notes': '',
        })
        self.assertRedirects(response, reverse('finance:account_list'))
        self.assertEqual(Account.objects.get(name='Bank').balance, Decimal('250'))

    def test_duplicate_account_name_is_a_form_error(self):
        self.client.force_login(self.admin)
        response = self.client.post(reverse('finance:account_create'), {
            'name': 'Main Cash', 'account_type': Account.TYPE_CASH, 'initial_balance': '0', 'notes': '',
        })
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.context['form'].errors)
        self.assertEqual(Account.objects.filter(name='Main Cash').count(), 1)


class DeferredPaymentServiceTests(ExpenseTestBase):

    def make_deferred(self, total='600', **kwargs):
        deferred = DeferredPayment(description='Crane rental', project=self.project_a, total_amount=Decimal(total))
        return save_deferred_payment(deferred, user=self.admin, **kwargs)

    def test_initial_payment_becomes_first_installment(self):
        deferred = self.make_deferred(initial_amount='100', account=self.account, payment_date=date(2026, 3, 1))
        deferred.refresh_from_db()
        self.assertEqual(deferred.amount_paid, Decimal('100'))
        self.assertEqual(deferred.status, DeferredPayment.STATUS_PARTIAL)
        self.assertEqual(self.account.balance, Decimal('900'))

        installment = deferred.installments.get()
        self.assertEqual(installment.expense.project, self.project_a)
        self.assertEqual(Transaction.for_source('expense', installment.expense_id).count(), 1)

    def test_installment_capped_at_remaining_balance(self):
        deferred = self.make_deferred(initial_amount='100', account=self.account, payment_date=date(2026, 3, 1))
        with self.assertRaises(ValidationError):
            add_deferred_installment(deferred, '500.01', date(2026, 4, 1), self.account)
        self.assertEqual(deferred.installments.count(), 1)
        self.assertEqual(self.account.balance, Decimal('900'))

        add_deferred_installment(deferred, '500', date(2026, 4, 1), self.account, user=self.admin)
        self.assertEqual(deferred.status, DeferredPayment.STATUS_PAID)
        deferred.refresh_from_db()
        self.assertEqual(deferred.remaining, ZERO)
        self.assertEqual(self.account.balance, Decimal('400'))

        with self.assertRaises(ValidationError):
            add_deferred_installment(deferred, '0.01', date(2026, 5, 1), self.account)

    def test_invalid_installments_rejected(self):
        deferred = self.make_deferred()
        self.assertEqual(deferred.status, DeferredPayment.STATUS_PENDING)
        with self.assertRaises(ValidationError):
            add_deferred_installment(deferred, '0', date(2026, 4, 1), self.account)
        with self.assertRaises(ValidationError):
            add_deferred_installment(deferred, '50', date(2026, 4, 1), None)
        self.assertFalse(Expense.objects.exists())

    def test_initial_payment_needs_an_account(self):
        with self.assertRaises(ValidationError):
            self.make_deferred(initial_amount='100')
        with self.assertRaises(ValidationError):
            self.make_deferred(total='50', initial_amount='100', account=self.account)
        self.assertFalse(DeferredPayment.objects.exists())

    def test_total_cannot_drop_below_paid(self):
        deferred = self.make_deferred(initial_amount='400', account=self.account, payment_date=date(2026, 3, 1))
        deferred.total_amount = Decimal('300')
        with self.assertRaises(ValidationError):
            save_deferred_payment(deferred)

        deferred.total_amount = Decimal('400')
        save_deferred_payment(deferred)
        deferred.refresh_from_db()
        self.assertEqual(deferred.status, DeferredPayment.STATUS_PAID)

    def test_reversing_installment_restores_account(self):
        deferred = self.make_deferred(total='300')
        installment = add_deferred_installment(deferred, '200', date(2026, 4, 1), self.account)
        self.assertEqual(self.account.balance, Decimal('800'))

        delete_deferred_installment(installment, user=self.admin)
        deferred.refresh_from_db()
        self.assertEqual(deferred.amount_paid, ZERO)
        self.assertEqual(deferred.status, DeferredPayment.STATUS_PENDING)
        self.assertEqual(self.account.balance, Decimal('1000'))
        self.assertFalse(Expense.objects.active().exists())

    def test_delete_payable_reverses_installments(self):
        deferred = self.make_deferred(initial_amount='100', account=self.account, payment_date=date(2026, 3, 1))
        add_deferred_installment(deferred, '150', date(2026, 4, 1), self.account)
        delete_deferred_payment(deferred, user=self.admin)
        self.assertFalse(DeferredPayment.objects.active().exists())
        self.assertFalse(DeferredInstallment.objects.active().exists())
        self.assertEqual(self.account.balance, Decimal('1000'))


class SalaryServiceTests(ExpenseTestBase):

    @classmethod
    def setUpTestData(cls):
        super().setUpTestData()
        cls.employee = Employee.objects.create(
            name='Site Engineer', position='Engineer', salary=Decimal('800'), project=cls.project_a
        )

    def test_partial_then_full_salary(self):
        first = pay_salary(self.employee, '300', self.account, date(2026, 3, 5), user=self.admin)
        self.assertTrue(first.description.startswith('Partial salary for March 2026'))
        self.assertEqual(first.category.name, SALARY_CATEGORY_NAME)
        self.assertEqual(first.project, self.project_a)

        second = pay_salary(self.employee, '500', self.account, date(2026, 3, 20))
        self.assertTrue(second.description.startswith('Salary for March 2026'))
        self.assertEqual(salary_paid_for_month(self.employee, date(2026, 3, 1)), Decimal('800'))
        self.assertEqual(self.account.balance, Decimal('200'))
        self.assertEqual(ExpenseCategory.objects.filter(name=SALARY_CATEGORY_NAME).count(), 1)

    def test_month_cannot_be_overpaid(self):
        pay_salary(self.employee, '800', self.account, date(2026, 3, 5))
        with self.assertRaises(ValidationError):
            pay_salary(self.employee, '1', self.account, date(2026, 3, 6))
        pay_salary(self.employee, '800', self.account, date(2026, 4, 1))
        self.assertEqual(self.account.balance, Decimal('-600'))

    def test_invalid_salary_payments(self):
        with self.assertRaises(ValidationError):
            pay_salary(self.employee, '0', self.account, date(2026, 3, 5))
        with self.assertRaises(ValidationError):
            pay_salary(self.employee, '100', None, date(2026, 3, 5))
        self.employee.is_active = False
        with self.assertRaises(ValidationError):
            pay_salary(self.employee, '100', self.account, date(2026, 3, 5))
        self.assertFalse(Expense.objects.exists())


class PayableViewTests(ExpenseTestBase):

    def test_deferred_pages(self):
        self.client.force_login(self.admin)
        response = self.client.post(reverse('finance:deferred_create'), {
            'description': 'Crane rental', 'project': self.project_a.pk, 'total_amount': '600',
            'initial_amount': '100', 'account': self.account.pk, 'notes': '',
        })
        deferred = DeferredPayment.objects.get()
        self.assertRedirects(response, reverse('finance:deferred_detail', args=[deferred.pk]))

        response = self.client.post(reverse('finance:deferred_detail', args=[deferred.pk]), {
            'payment_date': '2026-04-01', 'amount': '900', 'account': self.account.pk, 'notes': '',
        })
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.context['form'].errors)

        response = self.client.get(reverse('finance:deferred_list'))
        self.assertEqual(response.context['outstanding'], Decimal('500'))

    def test_restricted_user_cannot_open_other_project_payable(self):
        deferred = save_deferred_payment(
            DeferredPayment(description='Lift deposit', project=self.project_b, total_amount=Decimal('50'))
        )
        self.client.force_login(self.accountant)
        response = self.client.get(reverse('finance:deferred_detail', args=[deferred.pk]))
        self.assertEqual(response.status_code, 404)
        response = self.client.get(reverse('finance:deferred_list'))
        self.assertEqual(list(response.context['deferred_payments']), [])

    def test_employee_pages(self):
        employee = Employee.objects.create(name='Guard', position='Security', salary=Decimal('400'))
        self.client.force_login(self.admin)
        response = self.client.post(reverse('finance:employee_pay', args=[employee.pk]), {
            'payment_date': timezone.localdate().isoformat(), 'amount': '150', 'account': self.account.pk,
        })
        self.assertRedirects(response, reverse('finance:employee_list'))

        response = self.client.get(reverse('finance:employee_list'))
        (listed, status), = response.context['rows']
        self.assertEqual(listed, employee)
        self.assertEqual(status.status, SALARY_PARTIAL)
        self.assertEqual(status.remaining, Decimal('250'))
