"""Documents Models - files attached to bookings, payments, expenses, customers and sales."""
import os

from django.db import models

from apps.core.models import BaseModel


def document_upload_path(instance, filename):
    return f"documents/{instance.linked_kind or 'other'}/{filename}"


class Document(BaseModel):
    LINK_FIELDS = ('booking', 'payment', 'expense', 'customer', 'sale')

    file = models.FileField(upload_to=document_upload_path)
    file_name = models.CharField(max_length=255)
    file_type = models.CharField(max_length=100, blank=True)
    file_size = models.PositiveIntegerField(default=0)
    description = models.CharField(max_length=255, blank=True)

    booking = models.ForeignKey('sales.Booking', on_delete=models.CASCADE, null=True, blank=True, related_name='documents')
    payment = models.ForeignKey('sales.Payment', on_delete=models.CASCADE, null=True, blank=True, related_name='documents')
    expense = models.ForeignKey('finance.Expense', on_delete=models.CASCADE, null=True, blank=True, related_name='documents')
    customer = models.ForeignKey('crm.Customer', on_delete=models.CASCADE, null=True, blank=True, related_name='documents')
    sale = models.ForeignKey('sales.UnitSale', on_delete=models.CASCADE, null=True, blank=True, related_name='documents')

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return self.file_name

    @property
    def linked_kind(self):
        for name in self.LINK_FIELDS:
            if getattr(self, f'{name}_id'):
                return name
        return None

    @property
    def linked_object(self):
        kind = self.linked_kind
        return getattr(self, kind) if kind else None

    @property
    def extension(self):
        return os.path.splitext(self.file_name)[1].lower()

    @property
    def project_id(self):
        """Project of the linked record; customers are shared across projects."""
        linked = self.linked_object
        return getattr(linked, 'project_id', None) if linked is not None else None

    @property
    def is_shared(self):
        return self.linked_kind in (None, 'customer')
