"""
Finance Models - expenses, expense categories and the cash/bank treasury.

Treasury:
- Account: a bank account or cash box with an opening balance
- Transaction: a deposit (payment received) or withdrawal (expense paid),
  linked back to the record that caused it through source_type/source_id

Payables:
- DeferredPayment: an amount owed to a supplier or contractor, settled in
  installments; each installment is paid out of a treasury account as an expense
- Employee: monthly salary, paid as salary expenses
"""
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import Sum

from apps.core.models import BaseModel, ScopedQuerySet
from apps.core.utils import generate_number


class Account(BaseModel):
    TYPE_BANK = 'bank'
    TYPE_CASH = 'cash'

    ACCOUNT_TYPE_CHOICES = [
        (TYPE_BANK, 'Bank'),
        (TYPE_CASH, 'Cash'),
    ]

    name = models.CharField(max_length=100, unique=True)
    account_type = models.CharField(max_length=10, choices=ACCOUNT_TYPE_CHOICES, default=TYPE_CASH)
    initial_balance = models.DecimalField(max_digits=15, decimal_places=2, default=Decimal('0.00'))
    notes = models.TextField(blank=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return f"{self.name} ({self.get_account_type_display()})"

    @property
    def balance(self):
        """Opening balance plus deposits minus withdrawals."""
        totals = dict(
            self.transactions.filter(is_active=True)
            .values_list('transaction_type')
            .annotate(total=Sum('amount'))
        )
        deposits = totals.get(Transaction.TYPE_DEPOSIT) or Decimal('0.00')
        withdrawals = totals.get(Transaction.TYPE_WITHDRAWAL) or Decimal('0.00')
        return self.initial_balance + deposits - withdrawals


class Transaction(BaseModel):
    TYPE_DEPOSIT = 'deposit'
    TYPE_WITHDRAWAL = 'withdrawal'

    TRANSACTION_TYPE_CHOICES = [
        (TYPE_DEPOSIT, 'Deposit'),
        (TYPE_WITHDRAWAL, 'Withdrawal'),
    ]

    SOURCE_CHOICES = [
        ('payment', 'Payment'),
        ('extra_payment', 'Extra Payment'),
        ('unit_sale', 'Unit Sale'),
        ('expense', 'Expense'),
        ('manual', 'Manual'),
    ]

    account = models.ForeignKey(Account, on_delete=models.PROTECT, related_name='transactions')
    transaction_type = models.CharField(max_length=20, choices=TRANSACTION_TYPE_CHOICES)
    date = models.DateField()
    description = models.CharField(max_length=255, blank=True)
    amount = models.DecimalField(max_digits=15, decimal_places=2)
    source_type = models.CharField(max_length=20, choices=SOURCE_CHOICES, default='manual')
    source_id = models.CharField(max_length=50, blank=True)
    project = models.ForeignKey(
        'projects.Project', on_delete=models.SET_NULL, null=True, blank=True, related_name='transactions'
    )

    objects = ScopedQuerySet.as_manager()

    class Meta:
        ordering = ['-date', '-id']
        indexes = [models.Index(fields=['source_type', 'source_id'], name='finance_txn_source_idx')]

    def __str__(self):
        return f"{self.get_transaction_type_display()} {self.amount} - {self.account.name}"

    @classmethod
    def for_source(cls, source_type, source_id):
        return cls.objects.filter(source_type=source_type, source_id=str(source_id))


class ExpenseCategory(BaseModel):
    """
    Expense category. A category without a project is shared by all projects.
    """
    name = models.CharField(max_length=100)
    project = models.ForeignKey(
        'projects.Project', on_delete=models.CASCADE, null=True, blank=True, related_name='expense_categories'
    )
    description = models.TextField(blank=True)

    class Meta:
        ordering = ['name']
        verbose_name_plural = 'Expense Categories'
        unique_together = ['name', 'project']

    def __str__(self):
        return self.name


class Expense(BaseModel):
    expense_number = models.CharField(max_length=50, unique=True, editable=False)
    date = models.DateField()
    description = models.CharField(max_length=255)
    amount = models.DecimalField(max_digits=15, decimal_places=2)
    category = models.ForeignKey(
        ExpenseCategory, on_delete=models.SET_NULL, null=True, blank=True, related_name='expenses'
    )
    project = models.ForeignKey(
        'projects.Project', on_delete=models.SET_NULL, null=True, blank=True, related_name='expenses'
    )
    account = models.ForeignKey(
        Account, on_delete=models.SET_NULL, null=True, blank=True, related_name='expenses',
        help_text='Treasury account the expense is paid from'
    )
    vendor = models.CharField(max_length=200, blank=True)
    employee = models.ForeignKey(
        'Employee', on_delete=models.SET_NULL, null=True, blank=True, related_name='salary_expenses',
        help_text='Set on salary payments'
    )
    notes = models.TextField(blank=True)

    objects = ScopedQuerySet.as_manager()

    class Meta:
        ordering = ['-date', '-id']

    def __str__(self):
        return f"{self.expense_number} - {self.description}"

    def clean(self):
        if self.amount is not None and self.amount <= 0:
            raise ValidationError({'amount': 'Amount must be greater than zero.'})
        if self.category_id and self.category.project_id and self.project_id \
                and self.category.project_id != self.project_id:
            raise ValidationError({'category': 'This category belongs to another project.'})

    def save(self, *args, **kwargs):
        if not self.expense_number:
            self.expense_number = generate_number('EXPENSE', Expense, 'expense_number')
        super().save(*args, **kwargs)

    @property
    def category_name(self):
        return self.category.name if self.category_id else ''

    @property
    def project_name(self):
        return self.project.name if self.project_id else ''


class Employee(BaseModel):
    name = models.CharField(max_length=200)
    position = models.CharField(max_length=100)
    salary = models.DecimalField(max_digits=15, decimal_places=2, help_text='Monthly salary')
    project = models.ForeignKey(
        'projects.Project', on_delete=models.SET_NULL, null=True, blank=True, related_name='employees'
    )

    objects = ScopedQuerySet.as_manager()

    class Meta:
        ordering = ['name']

    def __str__(self):
        return f"{self.name} ({self.position})"

    def clean(self):
        if self.salary is not None and self.salary <= 0:
            raise ValidationError({'salary': 'Salary must be greater than zero.'})


class DeferredPayment(BaseModel):
    """
    An amount owed and paid off in installments.

    amount_paid is the sum of the active installments, kept in step by
    apps.finance.services.
    """
    STATUS_PENDING = 'pending'
    STATUS_PARTIAL = 'partial'
    STATUS_PAID = 'paid'

    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_PARTIAL, 'Partially Paid'),
        (STATUS_PAID, 'Paid'),
    ]

    description = models.CharField(max_length=255)
    project = models.ForeignKey('projects.Project', on_delete=models.PROTECT, related_name='deferred_payments')
    total_amount = models.DecimalField(max_digits=15, decimal_places=2)
    amount_paid = models.DecimalField(max_digits=15, decimal_places=2, default=Decimal('0.00'))
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING)
    notes = models.TextField(blank=True)

    objects = ScopedQuerySet.as_manager()

    class Meta:
        ordering = ['-created_at', '-id']

    def __str__(self):
        return self.description

    def clean(self):
        if self.total_amount is not None and self.total_amount <= 0:
            raise ValidationError({'total_amount': 'Total amount must be greater than zero.'})

    @property
    def remaining(self):
        return self.total_amount - self.amount_paid


class DeferredInstallmentQuerySet(ScopedQuerySet):
    project_lookup = 'deferred_payment__project_id'


class DeferredInstallment(BaseModel):
    deferred_payment = models.ForeignKey(DeferredPayment, on_delete=models.CASCADE, related_name='installments')
    payment_date = models.DateField()
    amount = models.DecimalField(max_digits=15, decimal_places=2)
    account = models.ForeignKey(Account, on_delete=models.PROTECT, related_name='deferred_installments')
    expense = models.OneToOneField(
        Expense, on_delete=models.SET_NULL, null=True, blank=True, related_name='deferred_installment'
    )
    notes = models.TextField(blank=True)

    objects = DeferredInstallmentQuerySet.as_manager()

    class Meta:
        ordering = ['payment_date', 'id']

    def __str__(self):
        return f"{self.deferred_payment} - {self.amount}"
