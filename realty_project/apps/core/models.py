"""
Core models and mixins shared by every app of the back-office.
"""
from django.db import models
from django.conf import settings


class TimeStampedModel(models.Model):
    """
    Abstract base model with created_at and updated_at fields.
    """
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class UserTrackingModel(models.Model):
    """
    Abstract base model with created_by and updated_by fields.
    """
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='%(app_label)s_%(class)s_created'
    )
    updated_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='%(app_label)s_%(class)s_updated'
    )

    class Meta:
        abstract = True


class ScopedQuerySet(models.QuerySet):
    """
    QuerySet for records that belong to a project.

    `project_lookup` is the ORM path from the model to its project id,
    e.g. 'project_id' for an expense or 'booking__project_id' for a payment.
    """
    project_lookup = 'project_id'

    def active(self):
        return self.filter(is_active=True)

    def for_scope(self, scope):
        if scope is None:
            return self
        project_id = scope.project_id
        if project_id is None:
            return self
        return self.filter(**{self.project_lookup: project_id})


class BaseModel(TimeStampedModel, UserTrackingModel):
    """
    Base model for every persisted record.

    Fields:
    - created_at / updated_at
    - created_by / updated_by (stamped from the request user)
    - is_active (soft delete / archive flag)
    """
    is_active = models.BooleanField(default=True)

    class Meta:
        abstract = True

    def save(self, *args, **kwargs):
        from apps.core.middleware import get_current_user
        user = get_current_user()

        if user and user.is_authenticated:
            if not self.pk:
                self.created_by = user
            self.updated_by = user

        super().save(*args, **kwargs)
