"""
Finance Views - expenses, category/project accounting, treasury accounts,
deferred payables and employee salaries.

The expense list supports `?focus=<id>`: the list jumps to the page that
holds the expense and highlights it. Records outside the user's project are
never revealed; the user gets a message instead.
"""
from django.conf import settings
from django.contrib import messages
from django.contrib.auth.decorators import login_required
from django.core.exceptions import PermissionDenied, ValidationError
from django.core.paginator import Paginator
from django.db.models import Q
from django.http import HttpResponse, JsonResponse
from django.shortcuts import get_object_or_404, redirect, render
from django.urls import reverse, reverse_lazy
from django.utils import timezone
from django.views.decorators.http import require_POST
from django.views.generic import CreateView, ListView, UpdateView

from apps.core.amounts import sum_amounts
from apps.core.audit import log_audit
from apps.core.exceptions import PersistenceError
from apps.core.formatting import format_currency
from apps.core.forms import add_service_errors
from apps.core.middleware import SELECTED_PROJECT_SESSION_KEY
from apps.core.mixins import (
    CreatePermissionMixin, PermissionRequiredMixin, ScopedViewMixin, UpdatePermissionMixin,
    get_scoped_object_or_404,
)
from apps.core.repository import fetch_entities, persist_entity
from apps.core.utils import PermissionChecker, parse_int
from apps.sales.ledger import normalize
from apps.sales.models import Booking
from apps.settings_app.models import CompanySettings
from . import excel_exports
from .aggregation import (
    aggregate_by_category, aggregate_by_month, aggregate_by_project_then_category,
    count_invalid_amounts, project_summary, salary_statuses,
)
from .filters import RecordLocator, apply_filters, locate_in_pages
from .forms import (
    AccountForm, DeferredInstallmentForm, DeferredPaymentForm, EmployeeForm, ExpenseCategoryForm,
    ExpenseFilterForm, ExpenseForm, SalaryPaymentForm, categories_for, projects_for,
)
from .models import Account, DeferredInstallment, DeferredPayment, Employee, Expense, ExpenseCategory
from .reports import render_expense_report
from .services import (
    add_deferred_installment, delete_deferred_installment, delete_deferred_payment, delete_expense,
    pay_salary, save_deferred_payment, save_expense,
)

LOCATE_MESSAGES = {
    RecordLocator.NOT_FOUND: 'The requested expense is not in the current results.',
    RecordLocator.OUT_OF_SCOPE: 'The requested expense belongs to a project outside your access.',
}


def _require(request, permission_type):
    if not PermissionChecker.has_permission(request.user, 'finance', permission_type):
        raise PermissionDenied('You do not have permission to access finance records.')


def _expense_base(scope):
    # Only the assignment narrows here; the selection is applied by apply_filters
    return fetch_entities('expenses', scope.with_selection(None))


def filtered_expenses(request, scope=None):
    """(filter form, filters, filtered list) for the request's query string."""
    scope = scope or request.scope
    form = ExpenseFilterForm(request.GET or None, scope=scope)
    filters = form.to_filters()
    records = apply_filters(_expense_base(scope), filters, scope, categories=fetch_entities('categories'))
    return form, filters, records


def _locate(request, target_id):
    """
    Run the locator for `target_id`. An unrestricted user whose project
    selection hides the target is switched to the target's project first.
    """
    scope = request.scope
    form, filters, records = filtered_expenses(request, scope)
    target_pk = parse_int(target_id)
    target = Expense.objects.active().filter(pk=target_pk).first() if target_pk is not None else None

    if target is not None and scope.permits(target.project_id) and not scope.includes(target.project_id) \
            and not filters.project_id:
        scope = scope.with_selection(target.project_id)
        request.scope = scope
        if target.project_id is None:
            request.session.pop(SELECTED_PROJECT_SESSION_KEY, None)
        else:
            request.session[SELECTED_PROJECT_SESSION_KEY] = target.project_id
        form, filters, records = filtered_expenses(request, scope)

    result = locate_in_pages(records, target, scope, settings.LIST_PAGE_SIZE)
    return result, form, filters, records


@login_required
def expense_list(request):
    _require(request, 'view')

    focus = request.GET.get('focus')
    highlight_id = None
    if focus:
        result, form, filters, records = _locate(request, focus)
        if result.found:
            page_obj = result.page
            highlight_id = parse_int(focus)
        else:
            messages.warning(request, LOCATE_MESSAGES.get(result.state, 'Expense not found.'))
            page_obj = Paginator(records, settings.LIST_PAGE_SIZE).get_page(1)
    else:
        form, filters, records = filtered_expenses(request)
        page_obj = Paginator(records, settings.LIST_PAGE_SIZE).get_page(request.GET.get('page'))

    export = request.GET.get('export')
    if export == 'csv':
        log_audit(request.user, 'export', 'Expense', changes={'format': 'csv', 'rows': len(records)})
        return excel_exports.export_expenses_csv(records)
    if export == 'xlsx':
        log_audit(request.user, 'export', 'Expense', changes={'format': 'xlsx', 'rows': len(records)})
        company = CompanySettings.get_settings()
        return excel_exports.export_expenses_xlsx(records, company_name=company.company_name)

    query = request.GET.copy()
    for key in ('page', 'focus', 'export'):
        query.pop(key, None)

    invalid_count = count_invalid_amounts(records)
    if invalid_count:
        messages.warning(request, f'{invalid_count} expense(s) have an invalid amount and were counted as zero.')

    return render(request, 'finance/expense_list.html', {
        'title': 'Expenses',
        'filter_form': form,
        'page_obj': page_obj,
        'expenses': page_obj.object_list,
        'total': sum_amounts(e.amount for e in records),
        'record_count': len(records),
        'highlight_id': highlight_id,
        'querystring': query.urlencode(),
        'can_create': PermissionChecker.has_permission(request.user, 'finance', 'create'),
        'can_edit': PermissionChecker.has_permission(request.user, 'finance', 'edit'),
        'can_delete': PermissionChecker.has_permission(request.user, 'finance', 'delete'),
    })


@login_required
def expense_locate(request):
    """
    JSON: which page of the filtered expense list holds `?id=`.

    {"status": "found", "page": 3, "url": "/finance/expenses/?page=3#expense-17"}
    """
    _require(request, 'view')
    target_id = request.GET.get('id', '')
    result, form, filters, records = _locate(request, target_id)

    payload = {'status': result.state, 'page': result.page_number}
    if result.found:
        query = request.GET.copy()
        query.pop('id', None)
        query['page'] = result.page_number
        payload['url'] = f"{reverse('finance:expense_list')}?{query.urlencode()}#expense-{target_id}"
    else:
        payload['message'] = LOCATE_MESSAGES.get(result.state, 'Expense not found.')
    return JsonResponse(payload)


@login_required
def expense_print(request):
    _require(request, 'view')
    form, filters, records = filtered_expenses(request)
    scope = request.scope
    html = render_expense_report(
        records, categories_for(scope), projects_for(scope), filters, CompanySettings.get_settings()
    )
    return HttpResponse(html)


class ExpenseFormMixin(ScopedViewMixin):
    model = Expense
    form_class = ExpenseForm
    template_name = 'core/form.html'
    module_name = 'finance'

    def get_form_kwargs(self):
        kwargs = super().get_form_kwargs()
        kwargs['scope'] = self.get_scope()
        return kwargs

    def get_success_url(self):
        return f"{reverse('finance:expense_list')}?focus={self.object.pk}"

    def form_valid(self, form):
        expense = form.save(commit=False)
        try:
            save_expense(expense, user=self.request.user)
        except ValidationError as e:
            add_service_errors(form, e)
            return self.form_invalid(form)
        except PersistenceError as e:
            messages.error(self.request, str(e))
            return self.form_invalid(form)
        self.object = expense
        messages.success(self.request, f'Expense {expense.expense_number} saved.')
        return redirect(self.get_success_url())


class ExpenseCreateView(ExpenseFormMixin, CreatePermissionMixin, CreateView):

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        context['title'] = 'New Expense'
        return context


class ExpenseUpdateView(ExpenseFormMixin, UpdatePermissionMixin, UpdateView):

    def get_object(self, queryset=None):
        return get_scoped_object_or_404(self.request, Expense.objects.active(), pk=self.kwargs['pk'])

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        context['title'] = f'Edit {self.object.expense_number}'
        return context


@login_required
@require_POST
def expense_delete(request, pk):
    _require(request, 'delete')
    expense = get_scoped_object_or_404(request, Expense.objects.active(), pk=pk)
    try:
        delete_expense(expense, user=request.user)
        messages.success(request, f'Expense {expense.expense_number} deleted.')
    except PersistenceError as e:
        messages.error(request, str(e))
    return redirect('finance:expense_list')


@login_required
def category_accounting(request):
    """Expense totals per category, and per project then category."""
    _require(request, 'view')
    scope = request.scope
    form, filters, records = filtered_expenses(request)
    categories = fetch_entities('categories')
    projects = list(projects_for(scope))

    category_totals = aggregate_by_category(records, categories)
    project_totals = aggregate_by_project_then_category(records, projects, categories)

    if request.GET.get('export') == 'xlsx':
        company = CompanySettings.get_settings()
        return excel_exports.export_category_summary(
            category_totals, project_totals, company_name=company.company_name
        )

    return render(request, 'finance/category_accounting.html', {
        'title': 'Category Accounting',
        'filter_form': form,
        'category_totals': category_totals,
        'project_totals': project_totals,
        'monthly_totals': aggregate_by_month(records),
        'grand_total': sum_amounts(t.total_amount for t in category_totals),
        'invalid_count': count_invalid_amounts(records),
    })


@login_required
def project_accounting(request):
    """Revenue collected, expenses and net result per project."""
    _require(request, 'view')
    scope = request.scope
    projects = list(projects_for(scope))
    if scope.project_id is not None:
        projects = [p for p in projects if p.pk == int(scope.project_id)]

    bookings = [b for b in fetch_entities('bookings', scope) if b.status != Booking.STATUS_CANCELLED]
    payments = {}
    for payment in fetch_entities('payments', scope, booking__in=bookings):
        payments.setdefault(payment.booking_id, []).append(payment)
    extras = {}
    for extra in fetch_entities('extra_payments', scope, booking__in=bookings):
        extras.setdefault(extra.booking_id, []).append(extra)

    booking_totals = [
        (b.project_id, normalize(b, payments.get(b.pk, []), extras.get(b.pk, [])).total_paid)
        for b in bookings
    ]
    expenses = fetch_entities('expenses', scope)

    return render(request, 'finance/project_accounting.html', {
        'title': 'Project Accounting',
        'summaries': project_summary(projects, expenses, booking_totals),
    })


def save_setup_record(request, form, kind):
    """
    Create the record of a validated ModelForm through the repository.

    On success form.instance is the saved record. Returns False after
    attaching the error to the form or the request messages.
    """
    try:
        form.instance = persist_entity(kind, None, form.cleaned_data)
    except ValidationError as e:
        add_service_errors(form, e)
        return False
    except PersistenceError as e:
        messages.error(request, str(e))
        return False
    return True


class ExpenseCategoryListView(PermissionRequiredMixin, ScopedViewMixin, ListView):
    model = ExpenseCategory
    template_name = 'finance/category_list.html'
    context_object_name = 'categories'
    module_name = 'finance'

    def get_queryset(self):
        return categories_for(self.get_scope()).select_related('project')

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        context['title'] = 'Expense Categories'
        context['can_create'] = PermissionChecker.has_permission(self.request.user, 'finance', 'create')
        return context


class ExpenseCategoryCreateView(ScopedViewMixin, CreatePermissionMixin, CreateView):
    model = ExpenseCategory
    form_class = ExpenseCategoryForm
    template_name = 'core/form.html'
    success_url = reverse_lazy('finance:category_list')
    module_name = 'finance'

    def get_form_kwargs(self):
        kwargs = super().get_form_kwargs()
        kwargs['scope'] = self.get_scope()
        return kwargs

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        context['title'] = 'New Expense Category'
        return context

    def form_valid(self, form):
        if not save_setup_record(self.request, form, 'categories'):
            return self.form_invalid(form)
        self.object = form.instance
        log_audit(self.request.user, 'create', 'ExpenseCategory', self.object.pk, {'name': self.object.name})
        messages.success(self.request, f'Category {self.object.name} created.')
        return redirect(self.success_url)


class AccountListView(PermissionRequiredMixin, ListView):
    model = Account
    template_name = 'finance/account_list.html'
    context_object_name = 'accounts'
    module_name = 'finance'

    def get_queryset(self):
        return Account.objects.filter(is_active=True)

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        context['title'] = 'Treasury Accounts'
        context['can_create'] = PermissionChecker.has_permission(self.request.user, 'finance', 'create')
        return context


class AccountCreateView(CreatePermissionMixin, CreateView):
    model = Account
    form_class = AccountForm
    template_name = 'core/form.html'
    success_url = reverse_lazy('finance:account_list')
    module_name = 'finance'

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        context['title'] = 'New Account'
        return context

    def form_valid(self, form):
        if not save_setup_record(self.request, form, 'accounts'):
            return self.form_invalid(form)
        self.object = form.instance
        log_audit(self.request.user, 'create', 'Account', self.object.pk, {'name': self.object.name})
        messages.success(self.request, f'Account {self.object.name} created.')
        return redirect(self.success_url)


@login_required
def account_detail(request, pk):
    _require(request, 'view')
    account = get_object_or_404(Account, pk=pk, is_active=True)
    transactions = account.transactions.filter(is_active=True).for_scope(request.scope)
    search = request.GET.get('search')
    if search:
        transactions = transactions.filter(Q(description__icontains=search) | Q(source_type__icontains=search))
    page_obj = Paginator(transactions, settings.LIST_PAGE_SIZE).get_page(request.GET.get('page'))
    return render(request, 'finance/account_detail.html', {
        'title': account.name,
        'account': account,
        'page_obj': page_obj,
        'transactions': page_obj.object_list,
    })


@login_required
def deferred_list(request):
    _require(request, 'view')
    deferred = DeferredPayment.objects.active().for_scope(request.scope).select_related('project')
    status = request.GET.get('status')
    if status:
        deferred = deferred.filter(status=status)
    return render(request, 'finance/deferred_list.html', {
        'title': 'Deferred Payments',
        'deferred_payments': deferred,
        'status_choices': DeferredPayment.STATUS_CHOICES,
        'outstanding': sum_amounts(d.remaining for d in deferred),
        'can_create': PermissionChecker.has_permission(request.user, 'finance', 'create'),
    })


@login_required
def deferred_create(request):
    _require(request, 'create')
    form = DeferredPaymentForm(request.POST or None, scope=request.scope)
    if request.method == 'POST' and form.is_valid():
        deferred = form.save(commit=False)
        if not request.scope.permits(deferred.project_id):
            raise PermissionDenied('You cannot add payables to this project.')
        try:
            save_deferred_payment(
                deferred, user=request.user,
                initial_amount=form.cleaned_data.get('initial_amount'),
                account=form.cleaned_data.get('account'),
            )
        except ValidationError as e:
            add_service_errors(form, e)
        except PersistenceError as e:
            messages.error(request, str(e))
        else:
            messages.success(request, f'Deferred payment "{deferred.description}" created.')
            return redirect('finance:deferred_detail', pk=deferred.pk)
    return render(request, 'core/form.html', {'title': 'New Deferred Payment', 'form': form})


@login_required
def deferred_detail(request, pk):
    """A payable with its installments; POST pays a new installment."""
    _require(request, 'view')
    deferred = get_scoped_object_or_404(
        request, DeferredPayment.objects.active().select_related('project'), pk=pk
    )
    form = DeferredInstallmentForm(request.POST or None, deferred=deferred)
    if request.method == 'POST':
        _require(request, 'create')
        if form.is_valid():
            data = form.cleaned_data
            try:
                add_deferred_installment(
                    deferred, data['amount'], data['payment_date'], data['account'],
                    notes=data.get('notes', ''), user=request.user,
                )
            except ValidationError as e:
                add_service_errors(form, e)
            except PersistenceError as e:
                messages.error(request, str(e))
            else:
                messages.success(request, 'Installment recorded.')
                return redirect('finance:deferred_detail', pk=deferred.pk)

    return render(request, 'finance/deferred_detail.html', {
        'title': deferred.description,
        'deferred': deferred,
        'installments': deferred.installments.filter(is_active=True).select_related('account', 'expense'),
        'form': form,
        'can_create': PermissionChecker.has_permission(request.user, 'finance', 'create'),
        'can_delete': PermissionChecker.has_permission(request.user, 'finance', 'delete'),
    })


@login_required
@require_POST
def deferred_installment_delete(request, pk):
    _require(request, 'delete')
    installment = get_object_or_404(
        DeferredInstallment.objects.active().for_scope(request.scope).select_related('deferred_payment', 'expense'),
        pk=pk,
    )
    try:
        delete_deferred_installment(installment, user=request.user)
        messages.success(request, 'Installment reversed.')
    except PersistenceError as e:
        messages.error(request, str(e))
    return redirect('finance:deferred_detail', pk=installment.deferred_payment_id)


@login_required
@require_POST
def deferred_delete(request, pk):
    _require(request, 'delete')
    deferred = get_scoped_object_or_404(request, DeferredPayment.objects.active(), pk=pk)
    try:
        delete_deferred_payment(deferred, user=request.user)
        messages.success(request, f'Deferred payment "{deferred.description}" deleted.')
    except PersistenceError as e:
        messages.error(request, str(e))
        return redirect('finance:deferred_detail', pk=deferred.pk)
    return redirect('finance:deferred_list')


@login_required
def employee_list(request):
    """Employees with what has been paid of this month's salary."""
    _require(request, 'view')
    month = timezone.localdate()
    employees = list(Employee.objects.active().for_scope(request.scope).select_related('project'))
    salary_expenses = Expense.objects.active().filter(
        employee__in=employees, date__year=month.year, date__month=month.month,
    )
    statuses = salary_statuses(employees, salary_expenses, month)
    rows = [(employee, statuses[employee.pk]) for employee in employees]
    return render(request, 'finance/employee_list.html', {
        'title': 'Employees',
        'rows': rows,
        'month': month,
        'total_salaries': sum_amounts(e.salary for e in employees),
        'can_create': PermissionChecker.has_permission(request.user, 'finance', 'create'),
        'can_edit': PermissionChecker.has_permission(request.user, 'finance', 'edit'),
        'can_delete': PermissionChecker.has_permission(request.user, 'finance', 'delete'),
    })


class EmployeeFormMixin(ScopedViewMixin):
    model = Employee
    form_class = EmployeeForm
    template_name = 'core/form.html'
    success_url = reverse_lazy('finance:employee_list')
    module_name = 'finance'

    def get_form_kwargs(self):
        kwargs = super().get_form_kwargs()
        kwargs['scope'] = self.get_scope()
        return kwargs

    def form_valid(self, form):
        is_new = form.instance.pk is None
        response = super().form_valid(form)
        log_audit(self.request.user, 'create' if is_new else 'update', 'Employee', self.object.pk,
                  {'name': self.object.name, 'salary': self.object.salary})
        messages.success(self.request, f'Employee {self.object.name} saved.')
        return response


class EmployeeCreateView(EmployeeFormMixin, CreatePermissionMixin, CreateView):

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        context['title'] = 'New Employee'
        return context


class EmployeeUpdateView(EmployeeFormMixin, UpdatePermissionMixin, UpdateView):

    def get_object(self, queryset=None):
        return get_scoped_object_or_404(self.request, Employee.objects.active(), pk=self.kwargs['pk'])

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        context['title'] = f'Edit {self.object.name}'
        return context


@login_required
def pay_salary_view(request, pk):
    _require(request, 'create')
    employee = get_scoped_object_or_404(request, Employee.objects.active(), pk=pk)
    month = timezone.localdate()
    status = salary_statuses([employee], Expense.objects.active().filter(employee=employee), month)[employee.pk]
    form = SalaryPaymentForm(request.POST or None, remaining=status.remaining)
    if request.method == 'POST' and form.is_valid():
        data = form.cleaned_data
        try:
            expense = pay_salary(employee, data['amount'], data['account'], data['payment_date'], user=request.user)
        except ValidationError as e:
            add_service_errors(form, e)
        except PersistenceError as e:
            messages.error(request, str(e))
        else:
            messages.success(request, f'{expense.description} paid.')
            return redirect('finance:employee_list')
    return render(request, 'core/form.html', {
        'title': f'Pay salary - {employee.name} (remaining {format_currency(status.remaining)})',
        'form': form,
    })


@login_required
@require_POST
def employee_archive(request, pk):
    _require(request, 'delete')
    employee = get_scoped_object_or_404(request, Employee.objects.active(), pk=pk)
    employee.is_active = False
    employee.save(update_fields=['is_active', 'updated_at', 'updated_by'])
    log_audit(request.user, 'delete', 'Employee', employee.pk, {'name': employee.name})
    messages.success(request, f'Employee {employee.name} archived.')
    return redirect('finance:employee_list')
