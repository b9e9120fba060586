"""
Printable HTML reports.

Each function returns the rendered HTML; the print views send it as a page
that opens the browser's print dialog.
"""
from django.template.loader import render_to_string
from django.utils import timezone

from apps.core.amounts import sum_amounts
from apps.core.utils import record_value
from apps.finance.aggregation import aggregate_by_category, count_invalid_amounts


def _filter_summary(filters, categories, projects):
    if filters is None:
        return []
    names = {str(record_value(c, 'id')): record_value(c, 'name') for c in categories}
    project_names = {str(record_value(p, 'id')): record_value(p, 'name') for p in projects}
    summary = []
    if filters.start_date:
        summary.append(('From', filters.start_date))
    if filters.end_date:
        summary.append(('To', filters.end_date))
    if filters.category_id:
        summary.append(('Category', names.get(str(filters.category_id), filters.category_id)))
    if filters.project_id:
        summary.append(('Project', project_names.get(str(filters.project_id), filters.project_id)))
    if filters.min_amount is not None:
        summary.append(('Min amount', filters.min_amount))
    if filters.max_amount is not None:
        summary.append(('Max amount', filters.max_amount))
    if filters.query:
        summary.append(('Search', filters.query))
    return summary


def render_expense_report(records, categories, projects, filters=None, company=None, title='Expense Report'):
    records = list(records)
    return render_to_string('finance/print/expense_report.html', {
        'title': title,
        'company': company,
        'records': records,
        'total': sum_amounts(record_value(r, 'amount') for r in records),
        'category_totals': aggregate_by_category(records, categories),
        'invalid_count': count_invalid_amounts(records),
        'filter_summary': _filter_summary(filters, categories, projects),
        'generated_at': timezone.now(),
    })


def render_booking_statement(statement, company=None):
    """Account statement of one booking (see apps.sales.ledger.booking_statement)."""
    return render_to_string('sales/print/booking_statement.html', {
        'title': f'Account Statement - {statement.booking.booking_number}',
        'company': company,
        'statement': statement,
        'booking': statement.booking,
        'generated_at': timezone.now(),
    })


def render_receipt(payment, company=None):
    return render_to_string('sales/print/receipt.html', {
        'title': f'Receipt {payment.receipt_number}',
        'company': company,
        'payment': payment,
        'booking': payment.booking,
        'generated_at': timezone.now(),
    })
