from django import forms
from apps.core.forms import StyledFormMixin
from apps.projects.models import Project
from .models import Unit


class UnitForm(StyledFormMixin, forms.ModelForm):
    class Meta:
        model = Unit
        fields = ['project', 'name', 'unit_type', 'area', 'price', 'status', 'notes']
        widgets = {
            'notes': forms.Textarea(attrs={'rows': 2}),
        }

    def __init__(self, *args, scope=None, **kwargs):
        super().__init__(*args, **kwargs)
        projects = Project.objects.filter(is_active=True)
        if scope is not None and scope.is_restricted:
            projects = projects.filter(pk=scope.assigned_project_id)
        self.fields['project'].queryset = projects

    def clean_price(self):
        price = self.cleaned_data['price']
        if price is not None and price <= 0:
            raise forms.ValidationError('Price must be greater than zero.')
        return price
