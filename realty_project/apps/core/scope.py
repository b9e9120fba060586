"""
Access scope.

A user bound to a project (UserProfile.assigned_project) only ever sees that
project's records. Unbound users (admins) may narrow their view to a selected
project, but that selection is a view preference, not a restriction.

The scope is built once per request and passed explicitly into filtering,
aggregation and locate calls.
"""
from dataclasses import dataclass
from typing import Any, Optional


def same_id(left, right):
    """Compare two record ids that may arrive as int or str."""
    if left is None or right is None:
        return False
    return str(left) == str(right)


@dataclass(frozen=True)
class AccessScope:
    assigned_project_id: Optional[Any] = None
    selected_project_id: Optional[Any] = None
    is_admin: bool = False

    @classmethod
    def unrestricted(cls):
        return cls(is_admin=True)

    @classmethod
    def for_project(cls, project_id):
        """Scope of a user bound to `project_id`."""
        return cls(assigned_project_id=project_id)

    @classmethod
    def for_user(cls, user, selected_project_id=None):
        if user is None or not user.is_authenticated:
            return cls()

        # Imported lazily, settings_app depends on core
        from apps.settings_app.models import UserProfile

        profile = UserProfile.objects.filter(user=user).first()
        assigned = profile.assigned_project_id if profile else None
        is_admin = user.is_superuser or bool(profile and profile.role == UserProfile.ROLE_ADMIN)

        if assigned is not None:
            # The assignment always wins over any selection
            return cls(assigned_project_id=assigned, is_admin=is_admin)
        return cls(selected_project_id=selected_project_id or None, is_admin=is_admin)

    @property
    def is_restricted(self):
        return self.assigned_project_id is not None

    @property
    def project_id(self):
        """The project records are narrowed to, or None for all projects."""
        if self.assigned_project_id is not None:
            return self.assigned_project_id
        return self.selected_project_id

    def permits(self, project_id):
        """Whether a record of `project_id` may ever be shown to this user."""
        if self.assigned_project_id is None:
            return True
        return same_id(project_id, self.assigned_project_id)

    def includes(self, project_id):
        """Whether a record of `project_id` is inside the current view."""
        if self.project_id is None:
            return True
        return same_id(project_id, self.project_id)

    def with_selection(self, project_id):
        if self.is_restricted:
            return self
        return AccessScope(selected_project_id=project_id, is_admin=self.is_admin)
