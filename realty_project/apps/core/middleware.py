"""
Request middleware: current user tracking and access scope.
"""
import threading
from django.utils.deprecation import MiddlewareMixin

from apps.core.scope import AccessScope

# Thread local storage for the current user and request
_thread_locals = threading.local()

SELECTED_PROJECT_SESSION_KEY = 'selected_project_id'


def get_current_user():
    """Get the current user from thread local storage."""
    return getattr(_thread_locals, 'user', None)


def get_current_request():
    """Get the current request from thread local storage."""
    return getattr(_thread_locals, 'request', None)


class AuditMiddleware(MiddlewareMixin):
    """
    Stores the current user and request in thread local storage so models can
    stamp created_by/updated_by and audit entries can carry the client IP.
    """

    def process_request(self, request):
        _thread_locals.user = getattr(request, 'user', None)
        _thread_locals.request = request

    def process_response(self, request, response):
        if hasattr(_thread_locals, 'user'):
            del _thread_locals.user
        if hasattr(_thread_locals, 'request'):
            del _thread_locals.request
        return response


class AccessScopeMiddleware(MiddlewareMixin):
    """
    Builds `request.scope` once per request from the user's project
    assignment and the project picked in the session selector.
    """

    def process_request(self, request):
        user = getattr(request, 'user', None)
        selected = None
        if hasattr(request, 'session'):
            selected = request.session.get(SELECTED_PROJECT_SESSION_KEY)
        request.scope = AccessScope.for_user(user, selected_project_id=selected)
