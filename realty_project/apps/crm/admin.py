from django.contrib import admin
from .models import Customer


@admin.register(Customer)
class CustomerAdmin(admin.ModelAdmin):
    list_display = ['customer_number', 'name', 'phone', 'email', 'is_active']
    list_filter = ['is_active']
    search_fields = ['customer_number', 'name', 'phone', 'email', 'national_id']
    readonly_fields = ['customer_number', 'created_at', 'updated_at', 'created_by', 'updated_by']
