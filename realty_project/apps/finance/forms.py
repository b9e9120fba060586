"""
Finance Forms
"""
from django import forms
from django.db.models import Q
from django.utils import timezone

from apps.core.forms import StyledFormMixin, date_widget
from apps.projects.models import Project
from .aggregation import UNCATEGORIZED_ID, UNCATEGORIZED_LABEL
from .filters import RecordFilters
from .models import Account, DeferredInstallment, DeferredPayment, Employee, Expense, ExpenseCategory


def categories_for(scope):
    categories = ExpenseCategory.objects.filter(is_active=True)
    if scope is not None and scope.project_id is not None:
        categories = categories.filter(Q(project__isnull=True) | Q(project_id=scope.project_id))
    return categories


def projects_for(scope):
    projects = Project.objects.filter(is_active=True)
    if scope is not None and scope.is_restricted:
        projects = projects.filter(pk=scope.assigned_project_id)
    return projects


class ExpenseForm(StyledFormMixin, forms.ModelForm):
    class Meta:
        model = Expense
        fields = ['date', 'description', 'amount', 'category', 'project', 'account', 'vendor', 'notes']
        widgets = {
            'date': date_widget(),
            'notes': forms.Textarea(attrs={'rows': 2}),
        }

    def __init__(self, *args, scope=None, **kwargs):
        super().__init__(*args, **kwargs)
        self.scope = scope
        self.fields['category'].queryset = categories_for(scope)
        self.fields['project'].queryset = projects_for(scope)
        self.fields['account'].queryset = Account.objects.filter(is_active=True)
        if scope is not None and scope.is_restricted:
            self.fields['project'].initial = scope.assigned_project_id
            self.fields['project'].required = True

    def clean_amount(self):
        amount = self.cleaned_data['amount']
        if amount is not None and amount <= 0:
            raise forms.ValidationError('Amount must be greater than zero.')
        return amount


class ExpenseCategoryForm(StyledFormMixin, forms.ModelForm):
    class Meta:
        model = ExpenseCategory
        fields = ['name', 'project', 'description']
        widgets = {
            'description': forms.Textarea(attrs={'rows': 2}),
        }

    def __init__(self, *args, scope=None, **kwargs):
        super().__init__(*args, **kwargs)
        self.fields['project'].queryset = projects_for(scope)
        self.fields['project'].help_text = 'Leave empty to share the category across projects'


class AccountForm(StyledFormMixin, forms.ModelForm):
    class Meta:
        model = Account
        fields = ['name', 'account_type', 'initial_balance', 'notes']
        widgets = {
            'notes': forms.Textarea(attrs={'rows': 2}),
        }


class ExpenseFilterForm(StyledFormMixin, forms.Form):
    """Query-string filters of the expense list."""
    q = forms.CharField(required=False, label='Search')
    start_date = forms.DateField(required=False, widget=date_widget())
    end_date = forms.DateField(required=False, widget=date_widget())
    category = forms.ChoiceField(required=False)
    project = forms.ChoiceField(required=False)
    min_amount = forms.DecimalField(required=False, decimal_places=2, max_digits=15)
    max_amount = forms.DecimalField(required=False, decimal_places=2, max_digits=15)

    def __init__(self, *args, scope=None, **kwargs):
        super().__init__(*args, **kwargs)
        self.fields['category'].choices = (
            [('', 'All categories')]
            + [(str(c.pk), c.name) for c in categories_for(scope)]
            + [(UNCATEGORIZED_ID, UNCATEGORIZED_LABEL)]
        )
        self.fields['project'].choices = [('', 'All projects')] + [
            (str(p.pk), p.name) for p in projects_for(scope)
        ]

    def clean(self):
        cleaned = super().clean()
        start, end = cleaned.get('start_date'), cleaned.get('end_date')
        if start and end and start > end:
            self.add_error('end_date', 'End date must be on or after the start date.')
        return cleaned

    def to_filters(self):
        """RecordFilters from the valid fields; invalid fields are ignored."""
        self.is_valid()
        data = getattr(self, 'cleaned_data', {})
        return RecordFilters(
            start_date=data.get('start_date'),
            end_date=data.get('end_date'),
            category_id=data.get('category') or None,
            project_id=data.get('project') or None,
            min_amount=data.get('min_amount'),
            max_amount=data.get('max_amount'),
            query=data.get('q') or '',
        )


def accounts_active():
    return Account.objects.filter(is_active=True)


class DeferredPaymentForm(StyledFormMixin, forms.ModelForm):
    initial_amount = forms.DecimalField(
        required=False, decimal_places=2, max_digits=15, min_value=0,
        help_text='Paid now as the first installment'
    )
    account = forms.ModelChoiceField(queryset=Account.objects.none(), required=False,
                                     help_text='Account the initial payment is paid from')

    class Meta:
        model = DeferredPayment
        fields = ['description', 'project', 'total_amount', 'notes']
        widgets = {
            'notes': forms.Textarea(attrs={'rows': 2}),
        }

    def __init__(self, *args, scope=None, **kwargs):
        super().__init__(*args, **kwargs)
        self.fields['project'].queryset = projects_for(scope)
        self.fields['account'].queryset = accounts_active()
        if scope is not None and scope.is_restricted:
            self.fields['project'].initial = scope.assigned_project_id
        if self.instance.pk:
            # Installments are paid from the detail page once the payable exists.
            del self.fields['initial_amount']
            del self.fields['account']

    def clean(self):
        cleaned = super().clean()
        initial = cleaned.get('initial_amount')
        if initial and not cleaned.get('account'):
            self.add_error('account', 'Choose the account the initial payment is paid from.')
        return cleaned


class DeferredInstallmentForm(StyledFormMixin, forms.ModelForm):
    class Meta:
        model = DeferredInstallment
        fields = ['payment_date', 'amount', 'account', 'notes']
        widgets = {
            'payment_date': date_widget(),
            'notes': forms.Textarea(attrs={'rows': 2}),
        }

    def __init__(self, *args, deferred=None, **kwargs):
        super().__init__(*args, **kwargs)
        self.fields['account'].queryset = accounts_active()
        self.fields['payment_date'].initial = timezone.localdate()
        if deferred is not None:
            self.fields['amount'].initial = deferred.remaining


class EmployeeForm(StyledFormMixin, forms.ModelForm):
    class Meta:
        model = Employee
        fields = ['name', 'position', 'salary', 'project']

    def __init__(self, *args, scope=None, **kwargs):
        super().__init__(*args, **kwargs)
        self.fields['project'].queryset = projects_for(scope)

    def clean_salary(self):
        salary = self.cleaned_data['salary']
        if salary is not None and salary <= 0:
            raise forms.ValidationError('Salary must be greater than zero.')
        return salary


class SalaryPaymentForm(StyledFormMixin, forms.Form):
    payment_date = forms.DateField(widget=date_widget())
    amount = forms.DecimalField(decimal_places=2, max_digits=15)
    account = forms.ModelChoiceField(queryset=Account.objects.none())

    def __init__(self, *args, remaining=None, **kwargs):
        super().__init__(*args, **kwargs)
        self.fields['account'].queryset = accounts_active()
        self.fields['payment_date'].initial = timezone.localdate()
        if remaining is not None:
            self.fields['amount'].initial = remaining
