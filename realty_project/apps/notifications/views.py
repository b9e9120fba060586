"""Notifications Views"""
from django.conf import settings
from django.contrib import messages
from django.contrib.auth.decorators import login_required
from django.core.paginator import Paginator
from django.http import JsonResponse
from django.shortcuts import get_object_or_404, redirect, render
from django.views.decorators.http import require_POST

from .models import Notification


def _user_notifications(request):
    return Notification.objects.filter(user=request.user).for_scope(request.scope).select_related('project')


@login_required
def notification_list(request):
    notifications = _user_notifications(request)
    if request.GET.get('unread'):
        notifications = notifications.filter(is_read=False)
    priority = request.GET.get('priority')
    if priority:
        notifications = notifications.filter(priority=priority)

    page_obj = Paginator(notifications, settings.LIST_PAGE_SIZE).get_page(request.GET.get('page'))
    return render(request, 'notifications/notification_list.html', {
        'title': 'Notifications',
        'page_obj': page_obj,
        'notifications': page_obj.object_list,
        'priority_choices': Notification.PRIORITY_CHOICES,
        'selected_priority': priority or '',
    })


@login_required
@require_POST
def notification_read(request, pk):
    notification = get_object_or_404(Notification, pk=pk, user=request.user)
    if not notification.is_read:
        notification.is_read = True
        notification.save(update_fields=['is_read'])
    booking_id = (notification.data or {}).get('booking_id')
    if booking_id:
        return redirect('sales:booking_detail', pk=booking_id)
    return redirect('notifications:notification_list')


@login_required
@require_POST
def notification_read_all(request):
    updated = _user_notifications(request).filter(is_read=False).update(is_read=True)
    messages.success(request, f'{updated} notification(s) marked as read.')
    return redirect('notifications:notification_list')


@login_required
def unread_count(request):
    return JsonResponse({'unread': _user_notifications(request).filter(is_read=False).count()})
