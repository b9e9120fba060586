from django.contrib import admin
from .models import AuditLog, CompanySettings, ModulePermission, Role, UserProfile, UserRole


class ModulePermissionInline(admin.TabularInline):
    model = ModulePermission
    extra = 0


@admin.register(Role)
class RoleAdmin(admin.ModelAdmin):
    list_display = ['name', 'code', 'is_system_role', 'is_active']
    list_filter = ['is_system_role', 'is_active']
    search_fields = ['name', 'code']
    inlines = [ModulePermissionInline]


@admin.register(UserRole)
class UserRoleAdmin(admin.ModelAdmin):
    list_display = ['user', 'role', 'assigned_date', 'is_active']
    list_filter = ['role', 'is_active']
    search_fields = ['user__username', 'role__name']


@admin.register(UserProfile)
class UserProfileAdmin(admin.ModelAdmin):
    list_display = ['user', 'role', 'assigned_project', 'phone']
    list_filter = ['role', 'assigned_project']
    search_fields = ['user__username', 'phone']


@admin.register(CompanySettings)
class CompanySettingsAdmin(admin.ModelAdmin):
    list_display = ['company_name', 'currency', 'decimal_places', 'date_format']


@admin.register(AuditLog)
class AuditLogAdmin(admin.ModelAdmin):
    list_display = ['timestamp', 'user', 'action', 'model', 'record_id', 'ip_address']
    list_filter = ['action', 'model', 'timestamp']
    search_fields = ['user__username', 'model', 'record_id']
    readonly_fields = ['user', 'action', 'model', 'record_id', 'changes', 'timestamp', 'ip_address']
