"""
Finance services - treasury postings, expense writes, deferred payables and
salary payments.

Every money movement that passes through a treasury account leaves a
Transaction pointing back at its source record, so deleting the source can
remove exactly the postings it caused. Deferred installments and salaries are
paid as expenses, so they reach the treasury through save_expense.
"""
import logging

from django.core.exceptions import ValidationError
from django.db.models import Sum
from django.utils import timezone

from apps.core.amounts import ZERO, to_amount
from apps.core.audit import log_expense_audit, log_payable_audit
from apps.core.formatting import format_currency
from apps.core.repository import atomic_write
from apps.finance.models import DeferredInstallment, DeferredPayment, Expense, ExpenseCategory, Transaction
from apps.sales.ledger import compute_balance

logger = logging.getLogger(__name__)

SALARY_CATEGORY_NAME = 'Salaries'


def _post(account, transaction_type, amount, date, description, source_type, source_id, project_id=None):
    if account is None:
        return None
    return Transaction.objects.create(
        account=account,
        transaction_type=transaction_type,
        amount=amount,
        date=date,
        description=description[:255],
        source_type=source_type,
        source_id=str(source_id),
        project_id=project_id,
    )


def record_deposit(account, amount, date, description, source_type, source_id, project_id=None):
    """Money received into `account`. No-op when no account is given."""
    return _post(account, Transaction.TYPE_DEPOSIT, amount, date, description,
                 source_type, source_id, project_id)


def record_withdrawal(account, amount, date, description, source_type, source_id, project_id=None):
    """Money paid out of `account`. No-op when no account is given."""
    return _post(account, Transaction.TYPE_WITHDRAWAL, amount, date, description,
                 source_type, source_id, project_id)


def remove_source_transactions(source_type, source_ids):
    """Delete the treasury postings caused by the given source records."""
    ids = [str(source_id) for source_id in source_ids]
    if not ids:
        return 0
    deleted, _ = Transaction.objects.filter(source_type=source_type, source_id__in=ids).delete()
    return deleted


def save_expense(expense, user=None):
    """
    Validate and save an expense, keeping its treasury withdrawal in step.
    """
    amount = to_amount(expense.amount)
    if amount is None or amount <= 0:
        raise ValidationError({'amount': 'Amount must be greater than zero.'})

    is_new = expense.pk is None
    amount_before = None
    if not is_new:
        amount_before = type(expense).objects.filter(pk=expense.pk).values_list('amount', flat=True).first()

    expense.full_clean(exclude=['expense_number'])

    with atomic_write('expenses'):
        expense.save()
        remove_source_transactions('expense', [expense.pk])
        record_withdrawal(
            expense.account, expense.amount, expense.date,
            f'Expense {expense.expense_number}: {expense.description}',
            'expense', expense.pk, expense.project_id,
        )

    log_expense_audit(
        user, 'create' if is_new else 'update', expense.pk,
        reference_number=expense.expense_number,
        amount_before=amount_before,
        amount_after=expense.amount,
        project=expense.project_id,
        details={'category': expense.category_name, 'date': expense.date},
    )
    return expense


def delete_expense(expense, user=None):
    """Archive an expense and drop its treasury withdrawal."""
    with atomic_write('expenses'):
        expense.is_active = False
        expense.save(update_fields=['is_active', 'updated_at', 'updated_by'])
        remove_source_transactions('expense', [expense.pk])

    log_expense_audit(
        user, 'delete', expense.pk,
        reference_number=expense.expense_number,
        amount_before=expense.amount,
        project=expense.project_id,
    )


def deferred_balance(deferred, amount_paid=None):
    """Balance of a deferred payable, read the same way as a unit's."""
    paid = deferred.amount_paid if amount_paid is None else amount_paid
    return compute_balance({'price': deferred.total_amount}, paid)


def _installments_sum(deferred):
    total = deferred.installments.filter(is_active=True).aggregate(total=Sum('amount'))['total']
    return total or ZERO


def _sync_deferred(deferred):
    """Recompute amount_paid and status from the active installments."""
    paid = _installments_sum(deferred)
    balance = deferred_balance(deferred, paid)
    if balance.is_fully_paid:
        status = DeferredPayment.STATUS_PAID
    elif paid > ZERO:
        status = DeferredPayment.STATUS_PARTIAL
    else:
        status = DeferredPayment.STATUS_PENDING
    deferred.amount_paid = paid
    deferred.status = status
    deferred.save(update_fields=['amount_paid', 'status', 'updated_at', 'updated_by'])
    return balance


def save_deferred_payment(deferred, user=None, initial_amount=None, account=None, payment_date=None):
    """
    Create or update a deferred payable.

    A positive initial_amount is paid straight away as the first installment
    from `account`. The total can never drop below what was already paid.
    """
    total = to_amount(deferred.total_amount)
    if total is None or total <= ZERO:
        raise ValidationError({'total_amount': 'Total amount must be greater than zero.'})

    is_new = deferred.pk is None
    if not is_new:
        paid = _installments_sum(deferred)
        if total < paid:
            raise ValidationError({
                'total_amount': f'Total cannot be less than the {format_currency(paid)} already paid.'
            })

    initial = to_amount(initial_amount) if initial_amount not in (None, '') else ZERO
    if initial is None or initial < ZERO:
        raise ValidationError({'initial_amount': 'Initial payment must be zero or more.'})
    if initial > ZERO:
        if account is None:
            raise ValidationError({'account': 'Choose the account the initial payment is paid from.'})
        if initial > total:
            raise ValidationError({'initial_amount': 'Initial payment cannot exceed the total amount.'})

    deferred.full_clean(exclude=['amount_paid', 'status'])

    with atomic_write('deferred payments'):
        deferred.save()
        if initial > ZERO:
            add_deferred_installment(
                deferred, initial, payment_date or timezone.localdate(), account,
                notes='Initial payment', user=user,
            )
        else:
            _sync_deferred(deferred)

    log_payable_audit(
        user, 'create' if is_new else 'update', 'DeferredPayment', deferred.pk,
        amount_after=deferred.total_amount,
        project=deferred.project_id,
        details={'description': deferred.description},
    )
    return deferred


def add_deferred_installment(deferred, amount, payment_date, account, notes='', user=None):
    """
    Pay part of a deferred payable from a treasury account.

    The installment is booked as an expense on the payable's project, so the
    withdrawal and the expense reports pick it up. Raises ValidationError when
    the amount is not positive or exceeds what is still owed.
    """
    amount = to_amount(amount)
    if amount is None or amount <= ZERO:
        raise ValidationError({'amount': 'Amount must be greater than zero.'})
    if account is None:
        raise ValidationError({'account': 'Choose the account the installment is paid from.'})
    if payment_date is None:
        raise ValidationError({'payment_date': 'Payment date is required.'})

    with atomic_write('deferred installments'):
        locked = DeferredPayment.objects.select_for_update().get(pk=deferred.pk)
        remaining = deferred_balance(locked).remaining
        if amount > remaining:
            raise ValidationError({
                'amount': f'The installment cannot exceed the remaining balance of {format_currency(remaining)}.'
            })

        expense = Expense(
            date=payment_date,
            description=f'Deferred payment: {locked.description}'[:255],
            amount=amount,
            project_id=locked.project_id,
            account=account,
            notes=notes,
        )
        save_expense(expense, user=user)
        installment = DeferredInstallment.objects.create(
            deferred_payment=locked,
            payment_date=payment_date,
            amount=amount,
            account=account,
            expense=expense,
            notes=notes,
        )
        _sync_deferred(locked)

    deferred.amount_paid = locked.amount_paid
    deferred.status = locked.status

    log_payable_audit(
        user, 'create', 'DeferredInstallment', installment.pk,
        reference_number=expense.expense_number,
        amount_before=locked.amount_paid - amount,
        amount_after=locked.amount_paid,
        project=locked.project_id,
        details={'deferred_payment': locked.pk},
    )
    logger.info('Deferred payment %s: paid %s, %s remaining', locked.pk, amount, locked.remaining)
    return installment


def delete_deferred_installment(installment, user=None):
    """Reverse an installment, giving its amount back to the account."""
    deferred = installment.deferred_payment
    with atomic_write('deferred installments'):
        if installment.expense_id:
            delete_expense(installment.expense, user=user)
        installment.is_active = False
        installment.save(update_fields=['is_active', 'updated_at', 'updated_by'])
        _sync_deferred(deferred)

    log_payable_audit(
        user, 'delete', 'DeferredInstallment', installment.pk,
        amount_before=installment.amount,
        project=deferred.project_id,
        details={'deferred_payment': deferred.pk},
    )
    return deferred


def delete_deferred_payment(deferred, user=None):
    """Archive a payable after reversing every installment paid on it."""
    with atomic_write('deferred payments'):
        for installment in deferred.installments.filter(is_active=True).select_related('expense'):
            delete_deferred_installment(installment, user=user)
        deferred.is_active = False
        deferred.save(update_fields=['is_active', 'updated_at', 'updated_by'])

    log_payable_audit(
        user, 'delete', 'DeferredPayment', deferred.pk,
        amount_before=deferred.total_amount,
        project=deferred.project_id,
    )


def salary_category():
    category, _ = ExpenseCategory.objects.get_or_create(name=SALARY_CATEGORY_NAME, project=None)
    return category


def salary_paid_for_month(employee, month):
    """Sum of the active salary expenses paid to `employee` in the month of `month`."""
    total = Expense.objects.active().filter(
        employee=employee, date__year=month.year, date__month=month.month,
    ).aggregate(total=Sum('amount'))['total']
    return total or ZERO


def pay_salary(employee, amount, account, payment_date, user=None):
    """
    Pay all or part of an employee's salary for the month of payment_date.

    The payment is an expense in the salary category, so it withdraws from
    `account`. A month can never be paid past the monthly salary.
    """
    amount = to_amount(amount)
    if amount is None or amount <= ZERO:
        raise ValidationError({'amount': 'Amount must be greater than zero.'})
    if account is None:
        raise ValidationError({'account': 'Choose the account the salary is paid from.'})
    if not employee.is_active:
        raise ValidationError('Salaries cannot be paid to an archived employee.')

    with atomic_write('salaries'):
        paid = salary_paid_for_month(employee, payment_date)
        remaining = compute_balance({'price': employee.salary}, paid).remaining
        if amount > remaining:
            raise ValidationError({
                'amount': f'The payment cannot exceed the remaining salary of {format_currency(remaining)}.'
            })

        month_label = payment_date.strftime('%B %Y')
        prefix = 'Salary' if amount == remaining else 'Partial salary'
        expense = Expense(
            date=payment_date,
            description=f'{prefix} for {month_label} - {employee.name}'[:255],
            amount=amount,
            category=salary_category(),
            project_id=employee.project_id,
            account=account,
            employee=employee,
        )
        save_expense(expense, user=user)

    log_payable_audit(
        user, 'create', 'Salary', expense.pk,
        reference_number=expense.expense_number,
        amount_before=paid,
        amount_after=paid + amount,
        project=employee.project_id,
        details={'employee': employee.name, 'month': month_label},
    )
    logger.info('Salary of %s for %s: paid %s', employee.name, month_label, amount)
    return expense
