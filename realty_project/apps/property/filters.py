"""
Unit list filters.
"""
import django_filters
from django.db.models import Q

from apps.projects.models import Project
from .models import Unit


class UnitFilter(django_filters.FilterSet):
    search = django_filters.CharFilter(method='filter_search', label='Search')
    project = django_filters.ModelChoiceFilter(queryset=Project.objects.filter(is_active=True))
    status = django_filters.ChoiceFilter(choices=Unit.STATUS_CHOICES)
    unit_type = django_filters.ChoiceFilter(choices=Unit.UNIT_TYPE_CHOICES)
    min_price = django_filters.NumberFilter(field_name='price', lookup_expr='gte')
    max_price = django_filters.NumberFilter(field_name='price', lookup_expr='lte')

    class Meta:
        model = Unit
        fields = ['project', 'status', 'unit_type']

    def filter_search(self, queryset, name, value):
        return queryset.filter(Q(name__icontains=value) | Q(notes__icontains=value))

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        for f in self.form.fields.values():
            f.widget.attrs['class'] = 'form-select' if hasattr(f, 'choices') else 'form-control'
