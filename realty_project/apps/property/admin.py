from django.contrib import admin
from .models import Unit


@admin.register(Unit)
class UnitAdmin(admin.ModelAdmin):
    list_display = ['name', 'project', 'unit_type', 'price', 'status', 'is_active']
    list_filter = ['project', 'status', 'unit_type']
    search_fields = ['name', 'project__name']
