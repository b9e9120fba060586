from django.urls import path
from . import views

app_name = 'settings'

urlpatterns = [
    # Users
    path('users/', views.UserListView.as_view(), name='user_list'),
    path('users/create/', views.UserCreateView.as_view(), name='user_create'),
    path('users/<int:pk>/edit/', views.UserUpdateView.as_view(), name='user_edit'),
    path('users/<int:pk>/toggle/', views.toggle_user_status, name='user_toggle'),

    # Roles
    path('roles/', views.RoleListView.as_view(), name='role_list'),
    path('roles/create/', views.RoleCreateView.as_view(), name='role_create'),
    path('roles/<int:pk>/edit/', views.RoleUpdateView.as_view(), name='role_edit'),
    path('roles/<int:pk>/permissions/', views.RolePermissionView.as_view(), name='role_permissions'),

    path('company/', views.CompanySettingsView.as_view(), name='company'),
    path('audit-log/', views.AuditLogListView.as_view(), name='audit_log'),
]
