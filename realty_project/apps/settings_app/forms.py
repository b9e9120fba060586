"""
Settings app forms.
"""
import re

from django import forms
from django.contrib.auth.forms import UserCreationForm
from django.contrib.auth.models import User

from apps.core.forms import StyledFormMixin
from apps.projects.models import Project
from .models import CompanySettings, Role, UserProfile

CURRENCY_RE = re.compile(r'^[A-Z]{3}$')


class UserForm(StyledFormMixin, UserCreationForm):
    """Create or edit a user together with their profile and roles."""
    email = forms.EmailField(required=False)
    first_name = forms.CharField(max_length=150, required=False)
    last_name = forms.CharField(max_length=150, required=False)
    profile_role = forms.ChoiceField(choices=UserProfile.ROLE_CHOICES, initial=UserProfile.ROLE_SALES,
                                     label='Role')
    assigned_project = forms.ModelChoiceField(
        queryset=Project.objects.filter(is_active=True), required=False,
        help_text='Leave empty to give access to every project'
    )
    roles = forms.ModelMultipleChoiceField(
        queryset=Role.objects.filter(is_active=True), required=False,
        widget=forms.CheckboxSelectMultiple, label='Permission roles'
    )
    phone = forms.CharField(max_length=30, required=False)

    class Meta:
        model = User
        fields = ['username', 'email', 'first_name', 'last_name', 'password1', 'password2', 'is_active']

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        if self.instance and self.instance.pk:
            self.fields['password1'].required = False
            self.fields['password2'].required = False
            self.fields['password1'].help_text = 'Leave blank to keep current password'
            profile = UserProfile.objects.filter(user=self.instance).first()
            if profile:
                self.initial.setdefault('profile_role', profile.role)
                self.initial.setdefault('assigned_project', profile.assigned_project_id)
                self.initial.setdefault('phone', profile.phone)
            self.initial.setdefault(
                'roles', list(self.instance.user_roles.filter(is_active=True).values_list('role_id', flat=True))
            )

    def clean_username(self):
        username = self.cleaned_data.get('username')
        if username:
            qs = User.objects.filter(username__iexact=username)
            if self.instance and self.instance.pk:
                qs = qs.exclude(pk=self.instance.pk)
            if qs.exists():
                raise forms.ValidationError('A user with that username already exists.')
        return username

    def clean_password2(self):
        password1 = self.cleaned_data.get('password1')
        password2 = self.cleaned_data.get('password2')

        if self.instance and self.instance.pk and not password1 and not password2:
            return password2
        if password1 and password2 and password1 != password2:
            raise forms.ValidationError("The two password fields didn't match.")
        return password2

    def _keeps_password(self):
        return bool(self.instance.pk) and not self.cleaned_data.get('password1') \
            and not self.cleaned_data.get('password2')

    def clean(self):
        if self._keeps_password():
            return forms.ModelForm.clean(self)
        return super().clean()

    def _post_clean(self):
        # Password validators only apply when a new password was typed
        if self._keeps_password():
            forms.ModelForm._post_clean(self)
            return
        super()._post_clean()

    def save(self, commit=True):
        user = super().save(commit=False)
        if self.instance.pk and not self.cleaned_data.get('password1'):
            user.password = User.objects.get(pk=self.instance.pk).password
        if commit:
            user.save()
        return user


class RoleForm(StyledFormMixin, forms.ModelForm):
    class Meta:
        model = Role
        fields = ['name', 'code', 'description', 'is_system_role', 'is_active']
        widgets = {'description': forms.Textarea(attrs={'rows': 2})}


class CompanySettingsForm(StyledFormMixin, forms.ModelForm):
    """Company details plus currency and number display preferences."""

    class Meta:
        model = CompanySettings
        fields = ['company_name', 'address', 'phone', 'email', 'currency', 'decimal_places', 'date_format']
        widgets = {'address': forms.Textarea(attrs={'rows': 3})}
        help_texts = {
            'currency': 'Three-letter ISO code, e.g. IQD or USD',
            'date_format': 'strftime pattern, e.g. %Y-%m-%d or %d/%m/%Y',
        }

    def clean_currency(self):
        currency = (self.cleaned_data.get('currency') or '').strip().upper()
        if not CURRENCY_RE.match(currency):
            raise forms.ValidationError('Enter a three-letter currency code.')
        return currency

    def clean_decimal_places(self):
        places = self.cleaned_data.get('decimal_places')
        if places is None or not 0 <= places <= 6:
            raise forms.ValidationError('Decimal places must be between 0 and 6.')
        return places
