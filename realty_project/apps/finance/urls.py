from django.urls import path
from . import views

app_name = 'finance'

urlpatterns = [
    # Expenses
    path('expenses/', views.expense_list, name='expense_list'),
    path('expenses/locate/', views.expense_locate, name='expense_locate'),
    path('expenses/print/', views.expense_print, name='expense_print'),
    path('expenses/create/', views.ExpenseCreateView.as_view(), name='expense_create'),
    path('expenses/<int:pk>/edit/', views.ExpenseUpdateView.as_view(), name='expense_edit'),
    path('expenses/<int:pk>/delete/', views.expense_delete, name='expense_delete'),

    # Accounting
    path('categories/', views.ExpenseCategoryListView.as_view(), name='category_list'),
    path('categories/create/', views.ExpenseCategoryCreateView.as_view(), name='category_create'),
    path('accounting/categories/', views.category_accounting, name='category_accounting'),
    path('accounting/projects/', views.project_accounting, name='project_accounting'),

    # Treasury
    path('accounts/', views.AccountListView.as_view(), name='account_list'),
    path('accounts/create/', views.AccountCreateView.as_view(), name='account_create'),
    path('accounts/<int:pk>/', views.account_detail, name='account_detail'),

    # Deferred payables
    path('deferred/', views.deferred_list, name='deferred_list'),
    path('deferred/create/', views.deferred_create, name='deferred_create'),
    path('deferred/<int:pk>/', views.deferred_detail, name='deferred_detail'),
    path('deferred/<int:pk>/delete/', views.deferred_delete, name='deferred_delete'),
    path('deferred/installments/<int:pk>/delete/', views.deferred_installment_delete,
         name='deferred_installment_delete'),

    # Salaries
    path('employees/', views.employee_list, name='employee_list'),
    path('employees/create/', views.EmployeeCreateView.as_view(), name='employee_create'),
    path('employees/<int:pk>/edit/', views.EmployeeUpdateView.as_view(), name='employee_edit'),
    path('employees/<int:pk>/pay/', views.pay_salary_view, name='employee_pay'),
    path('employees/<int:pk>/archive/', views.employee_archive, name='employee_archive'),
]
