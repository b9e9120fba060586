from django.contrib import admin
from .models import (
    Account, DeferredInstallment, DeferredPayment, Employee, Expense, ExpenseCategory, Transaction,
)


@admin.register(Account)
class AccountAdmin(admin.ModelAdmin):
    list_display = ['name', 'account_type', 'initial_balance', 'is_active']
    list_filter = ['account_type', 'is_active']
    search_fields = ['name']


@admin.register(Transaction)
class TransactionAdmin(admin.ModelAdmin):
    list_display = ['date', 'account', 'transaction_type', 'amount', 'source_type', 'source_id', 'project']
    list_filter = ['transaction_type', 'source_type', 'account', 'project']
    search_fields = ['description', 'source_id']
    date_hierarchy = 'date'


@admin.register(ExpenseCategory)
class ExpenseCategoryAdmin(admin.ModelAdmin):
    list_display = ['name', 'project', 'is_active']
    list_filter = ['project', 'is_active']
    search_fields = ['name']


@admin.register(Expense)
class ExpenseAdmin(admin.ModelAdmin):
    list_display = ['expense_number', 'date', 'description', 'amount', 'category', 'project', 'is_active']
    list_filter = ['category', 'project', 'is_active']
    search_fields = ['expense_number', 'description', 'vendor']
    readonly_fields = ['expense_number']
    date_hierarchy = 'date'


class DeferredInstallmentInline(admin.TabularInline):
    model = DeferredInstallment
    extra = 0
    fields = ['payment_date', 'amount', 'account', 'expense', 'is_active']
    readonly_fields = ['expense']


@admin.register(DeferredPayment)
class DeferredPaymentAdmin(admin.ModelAdmin):
    list_display = ['description', 'project', 'total_amount', 'amount_paid', 'status', 'is_active']
    list_filter = ['status', 'project', 'is_active']
    search_fields = ['description']
    readonly_fields = ['amount_paid', 'status']
    inlines = [DeferredInstallmentInline]


@admin.register(Employee)
class EmployeeAdmin(admin.ModelAdmin):
    list_display = ['name', 'position', 'salary', 'project', 'is_active']
    list_filter = ['project', 'is_active']
    search_fields = ['name', 'position']
