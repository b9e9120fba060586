from django import forms
from apps.core.forms import StyledFormMixin
from .models import Project


class ProjectForm(StyledFormMixin, forms.ModelForm):
    class Meta:
        model = Project
        fields = ['name', 'location', 'status', 'description']
        widgets = {
            'description': forms.Textarea(attrs={'rows': 3}),
        }
