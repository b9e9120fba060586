from django.contrib import admin
from .models import Document


@admin.register(Document)
class DocumentAdmin(admin.ModelAdmin):
    list_display = ['file_name', 'file_type', 'file_size', 'booking', 'payment', 'expense', 'customer', 'created_at']
    search_fields = ['file_name', 'description']
    readonly_fields = ['file_type', 'file_size']
