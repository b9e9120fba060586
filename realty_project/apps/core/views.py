"""
Core views: dashboard and the project selector.
"""
from django.contrib import messages
from django.contrib.auth.decorators import login_required
from django.shortcuts import redirect, render
from django.utils.http import url_has_allowed_host_and_scheme
from django.views.decorators.http import require_POST

from apps.core.amounts import sum_amounts
from apps.core.middleware import SELECTED_PROJECT_SESSION_KEY
from apps.core.utils import parse_int
from apps.finance.aggregation import aggregate_by_month
from apps.finance.filters import project_stats
from apps.finance.models import Expense
from apps.projects.models import Project
from apps.property.models import Unit
from apps.sales.ledger import summarize_bookings
from apps.sales.models import Booking, ExtraPayment, Payment, ScheduledPayment


@login_required
def dashboard(request):
    """Main dashboard, narrowed to the user's scope."""
    scope = request.scope

    units = list(Unit.objects.active().for_scope(scope))
    bookings = list(Booking.objects.active().exclude(status=Booking.STATUS_CANCELLED)
                    .for_scope(scope).select_related('unit', 'customer'))
    payments = list(Payment.objects.active().filter(booking__in=bookings))
    extras = list(ExtraPayment.objects.active().filter(booking__in=bookings))
    expenses = list(Expense.objects.active().for_scope(scope))

    summaries = summarize_bookings(bookings, payments, extras)

    context = {
        'title': 'Dashboard',
        'stats': project_stats(units, bookings, payments, extras),
        'expense_total': sum_amounts(e.amount for e in expenses),
        'monthly_expenses': aggregate_by_month(expenses)[-12:],
        'outstanding_total': sum_amounts(s.remaining for s in summaries if s.remaining > 0),
        'recent_bookings': summaries[:10],
        'upcoming_installments': (
            ScheduledPayment.objects.active()
            .for_scope(scope)
            .exclude(status=ScheduledPayment.STATUS_PAID)
            .filter(booking__status=Booking.STATUS_ACTIVE)
            .select_related('booking__unit', 'booking__customer')
            .order_by('due_date')[:10]
        ),
    }
    return render(request, 'core/dashboard.html', context)


@login_required
@require_POST
def select_project(request):
    """Store the project picked in the navbar selector (unrestricted users only)."""
    if request.scope.is_restricted:
        messages.warning(request, 'Your account is assigned to a single project.')
    else:
        project_id = request.POST.get('project') or None
        project_pk = parse_int(project_id)
        if project_id and not Project.objects.filter(pk=project_pk, is_active=True).exists():
            messages.error(request, 'Unknown project.')
        elif project_id:
            request.session[SELECTED_PROJECT_SESSION_KEY] = project_pk
        else:
            request.session.pop(SELECTED_PROJECT_SESSION_KEY, None)

    next_url = request.POST.get('next')
    if next_url and url_has_allowed_host_and_scheme(next_url, allowed_hosts={request.get_host()}):
        return redirect(next_url)
    return redirect('dashboard')
