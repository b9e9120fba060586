"""
Projects - the real-estate developments units, bookings and expenses belong to.
"""
from django.db import models
from apps.core.models import BaseModel


class Project(BaseModel):
    STATUS_CHOICES = [
        ('planning', 'Planning'),
        ('selling', 'Selling'),
        ('completed', 'Completed'),
        ('on_hold', 'On Hold'),
    ]

    name = models.CharField(max_length=200, unique=True)
    description = models.TextField(blank=True)
    location = models.CharField(max_length=200, blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='selling')

    class Meta:
        ordering = ['name']

    def __str__(self):
        return self.name
