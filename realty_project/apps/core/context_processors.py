"""
Context processors for the back-office.
"""
from datetime import datetime

from apps.core.utils import PermissionChecker


def global_context(request):
    """
    Add global context variables to all templates.
    """
    context = {
        'app_name': 'Realty Back-Office',
        'current_year': datetime.now().year,
    }

    user = getattr(request, 'user', None)
    if user is None or not user.is_authenticated:
        return context

    from apps.notifications.models import Notification
    from apps.projects.models import Project
    from apps.settings_app.models import CompanySettings

    scope = getattr(request, 'scope', None)
    context['scope'] = scope
    context['company'] = CompanySettings.get_settings()
    context['user_permissions'] = PermissionChecker.get_user_permissions(user)
    context['is_admin'] = PermissionChecker.is_admin(user)
    context['unread_notifications'] = Notification.objects.filter(user=user, is_read=False).count()
    if scope is not None and not scope.is_restricted:
        context['selectable_projects'] = Project.objects.filter(is_active=True)
    return context
