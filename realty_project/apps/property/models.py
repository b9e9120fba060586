"""
Property Models - sellable units of a project.

Unit status follows the sales lifecycle:
    available --booking--> booked --fully paid / sale--> sold
    booked --booking cancelled--> available
"""
from django.db import models
from apps.core.models import BaseModel, ScopedQuerySet


class Unit(BaseModel):
    STATUS_AVAILABLE = 'available'
    STATUS_BOOKED = 'booked'
    STATUS_SOLD = 'sold'

    STATUS_CHOICES = [
        (STATUS_AVAILABLE, 'Available'),
        (STATUS_BOOKED, 'Booked'),
        (STATUS_SOLD, 'Sold'),
    ]

    UNIT_TYPE_CHOICES = [
        ('apartment', 'Apartment'),
        ('villa', 'Villa'),
        ('house', 'House'),
        ('land', 'Land'),
        ('shop', 'Shop'),
        ('office', 'Office'),
    ]

    project = models.ForeignKey('projects.Project', on_delete=models.PROTECT, related_name='units')
    name = models.CharField(max_length=100)
    unit_type = models.CharField(max_length=20, choices=UNIT_TYPE_CHOICES, default='apartment')
    area = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    price = models.DecimalField(max_digits=15, decimal_places=2)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_AVAILABLE)
    notes = models.TextField(blank=True)

    objects = ScopedQuerySet.as_manager()

    class Meta:
        ordering = ['project', 'name']
        unique_together = ['project', 'name']

    def __str__(self):
        return f"{self.project.name} - {self.name}"

    @property
    def is_available(self):
        return self.status == self.STATUS_AVAILABLE
