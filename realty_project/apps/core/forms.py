"""
Shared form helpers.
"""
from django import forms


class StyledFormMixin:
    """Bootstrap classes on every widget: form-select for selects, form-control otherwise."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        for field in self.fields.values():
            widget = field.widget
            if isinstance(widget, (forms.CheckboxInput, forms.CheckboxSelectMultiple)):
                widget.attrs.setdefault('class', 'form-check-input')
            elif isinstance(widget, forms.Select):
                widget.attrs.setdefault('class', 'form-select')
            else:
                widget.attrs.setdefault('class', 'form-control')


def date_widget():
    return forms.DateInput(attrs={'type': 'date'}, format='%Y-%m-%d')


def add_service_errors(form, error):
    """Attach a ValidationError raised by a service to the form fields it names."""
    if hasattr(error, 'error_dict'):
        for field, errors in error.error_dict.items():
            form.add_error(field if field in form.fields else None, errors)
    else:
        form.add_error(None, error.messages)
