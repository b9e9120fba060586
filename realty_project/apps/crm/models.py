"""
CRM Models - buyers who book and purchase units.
"""
from django.db import models
from apps.core.models import BaseModel
from apps.core.utils import generate_number


class Customer(BaseModel):
    customer_number = models.CharField(max_length=50, unique=True, editable=False)
    name = models.CharField(max_length=200)
    phone = models.CharField(max_length=30, blank=True)
    email = models.EmailField(blank=True)
    national_id = models.CharField(max_length=50, blank=True)
    address = models.TextField(blank=True)
    notes = models.TextField(blank=True)

    class Meta:
        ordering = ['name']
        verbose_name = 'Customer'
        verbose_name_plural = 'Customers'

    def __str__(self):
        return f"{self.customer_number} - {self.name}"

    def save(self, *args, **kwargs):
        if not self.customer_number:
            self.customer_number = generate_number('CUSTOMER', Customer, 'customer_number')
        super().save(*args, **kwargs)
