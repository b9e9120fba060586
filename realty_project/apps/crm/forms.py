"""
CRM Forms
"""
from django import forms
from apps.core.forms import StyledFormMixin
from .models import Customer


class CustomerForm(StyledFormMixin, forms.ModelForm):
    class Meta:
        model = Customer
        fields = ['name', 'phone', 'email', 'national_id', 'address', 'notes']
        widgets = {
            'address': forms.Textarea(attrs={'rows': 2}),
            'notes': forms.Textarea(attrs={'rows': 2}),
        }
