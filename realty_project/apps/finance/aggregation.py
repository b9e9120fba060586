"""
Expense aggregation by category and by project.

Grouping rules:
- a record whose category is empty, null or not among the known categories
  falls into one synthetic "Uncategorized" group (likewise "No project");
- groups without records are omitted;
- groups are ordered by total, descending, with ties broken by name then id
  and synthetic groups placed after named ones;
- share = group total / grand total, zero when the grand total is zero.

Amounts are summed as Decimal. Amounts that cannot be read as numbers count
as zero and are reported through `count_invalid_amounts`.
"""
import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, List

from apps.core.amounts import ZERO, coerce_amount, is_valid_amount, sum_amounts
from apps.core.scope import same_id
from apps.core.utils import as_date, record_value
from apps.sales.ledger import compute_balance

logger = logging.getLogger(__name__)

UNCATEGORIZED_ID = 'uncategorized'
UNCATEGORIZED_LABEL = 'Uncategorized'
NO_PROJECT_ID = 'no-project'
NO_PROJECT_LABEL = 'No project'


@dataclass
class CategoryTotal:
    category_id: Any
    name: str
    total_amount: Decimal
    transaction_count: int
    share: Decimal = ZERO
    is_uncategorized: bool = False


@dataclass
class ProjectTotal:
    project_id: Any
    name: str
    total_amount: Decimal
    transaction_count: int
    share: Decimal = ZERO
    is_unassigned: bool = False
    categories: List[CategoryTotal] = field(default_factory=list)


@dataclass
class MonthTotal:
    month: date
    total_amount: Decimal
    transaction_count: int


@dataclass
class ProjectSummary:
    project_id: Any
    name: str
    revenue: Decimal
    expenses: Decimal

    @property
    def net(self):
        return self.revenue - self.expenses


def _known_by_key(items):
    """Map str(id) to the (id, name) pair of each known item."""
    known = {}
    for item in items or ():
        item_id = record_value(item, 'id')
        if item_id is not None:
            known[str(item_id)] = (item_id, record_value(item, 'name') or str(item_id))
    return known


def _is_blank(value):
    return value is None or (isinstance(value, str) and not value.strip())


def _share(total, grand_total):
    if not grand_total:
        return ZERO
    return total / grand_total


def _ordering_key(total_amount, is_synthetic, name, group_id):
    return (-total_amount, is_synthetic, (name or '').lower(), str(group_id))


def count_invalid_amounts(records):
    """Number of records whose amount was treated as zero."""
    return sum(1 for record in records if not is_valid_amount(record_value(record, 'amount')))


def _warn_invalid(records, where):
    invalid = count_invalid_amounts(records)
    if invalid:
        logger.warning('%s: %d record(s) with an invalid amount counted as zero', where, invalid)
    return invalid


def _group(records, key_field, known):
    """Bucket records by `key_field`; None is the synthetic bucket."""
    buckets = {}
    for record in records:
        raw = record_value(record, key_field)
        if _is_blank(raw) or str(raw) not in known:
            key = None
        else:
            key = str(raw)
        buckets.setdefault(key, []).append(record)
    return buckets


def _category_totals(records, known):
    buckets = _group(records, 'category_id', known)
    grand_total = sum_amounts(record_value(r, 'amount') for r in records)

    totals = []
    for key, rows in buckets.items():
        total = sum_amounts(record_value(r, 'amount') for r in rows)
        if key is None:
            totals.append(CategoryTotal(
                category_id=UNCATEGORIZED_ID,
                name=UNCATEGORIZED_LABEL,
                total_amount=total,
                transaction_count=len(rows),
                share=_share(total, grand_total),
                is_uncategorized=True,
            ))
        else:
            category_id, name = known[key]
            totals.append(CategoryTotal(
                category_id=category_id,
                name=name,
                total_amount=total,
                transaction_count=len(rows),
                share=_share(total, grand_total),
            ))

    totals.sort(key=lambda t: _ordering_key(t.total_amount, t.is_uncategorized, t.name, t.category_id))
    return totals


def aggregate_by_category(records, categories):
    """
    Group expense records by category.

    Args:
        records: expenses (models or dicts with category_id and amount)
        categories: known categories (models or dicts with id and name)

    Returns:
        list of CategoryTotal, largest first
    """
    records = list(records)
    _warn_invalid(records, 'aggregate_by_category')
    return _category_totals(records, _known_by_key(categories))


def aggregate_by_project_then_category(records, projects, categories):
    """
    Group by project, then by category inside each project.

    Inner shares are relative to the project's own total.
    """
    records = list(records)
    _warn_invalid(records, 'aggregate_by_project_then_category')
    known_projects = _known_by_key(projects)
    known_categories = _known_by_key(categories)

    buckets = _group(records, 'project_id', known_projects)
    grand_total = sum_amounts(record_value(r, 'amount') for r in records)

    totals = []
    for key, rows in buckets.items():
        total = sum_amounts(record_value(r, 'amount') for r in rows)
        project_id, name = (NO_PROJECT_ID, NO_PROJECT_LABEL) if key is None else known_projects[key]
        totals.append(ProjectTotal(
            project_id=project_id,
            name=name,
            total_amount=total,
            transaction_count=len(rows),
            share=_share(total, grand_total),
            is_unassigned=key is None,
            categories=_category_totals(rows, known_categories),
        ))

    totals.sort(key=lambda t: _ordering_key(t.total_amount, t.is_unassigned, t.name, t.project_id))
    return totals


def aggregate_by_month(records):
    """Monthly totals, oldest month first. Records without a date are skipped."""
    months = {}
    for record in records:
        day = as_date(record_value(record, 'date'))
        if day is None:
            continue
        bucket = months.setdefault(day.replace(day=1), [ZERO, 0])
        bucket[0] += coerce_amount(record_value(record, 'amount'))
        bucket[1] += 1
    return [
        MonthTotal(month=month, total_amount=total, transaction_count=count)
        for month, (total, count) in sorted(months.items())
    ]


def project_summary(projects, expenses, booking_totals):
    """
    Revenue, expenses and net per project.

    Args:
        projects: known projects
        expenses: expense records
        booking_totals: (project_id, total_paid) pairs, one per booking,
            as produced from the normalized booking ledgers
    """
    summaries = []
    for project in projects:
        project_id = record_value(project, 'id')
        revenue = sum_amounts(
            total for booking_project, total in booking_totals if same_id(booking_project, project_id)
        )
        spent = sum_amounts(
            record_value(e, 'amount') for e in expenses if same_id(record_value(e, 'project_id'), project_id)
        )
        summaries.append(ProjectSummary(
            project_id=project_id,
            name=record_value(project, 'name') or str(project_id),
            revenue=revenue,
            expenses=spent,
        ))
    summaries.sort(key=lambda s: (-s.net, s.name.lower(), str(s.project_id)))
    return summaries


SALARY_PAID = 'paid'
SALARY_PARTIAL = 'partial'
SALARY_NOT_PAID = 'not_paid'


@dataclass
class SalaryStatus:
    employee_id: Any
    salary: Decimal
    paid_amount: Decimal
    remaining: Decimal
    status: str


def salary_statuses(employees, expenses, month):
    """
    Salary paid per employee within the month of `month`.

    An expense counts toward an employee when its employee_id matches and
    its date falls in that month. Returns a dict keyed by employee id.
    """
    statuses = {}
    for employee in employees:
        employee_id = record_value(employee, 'id')
        salary = coerce_amount(record_value(employee, 'salary'))
        paid = sum_amounts(
            record_value(e, 'amount') for e in expenses
            if same_id(record_value(e, 'employee_id'), employee_id) and _in_month(e, month)
        )
        balance = compute_balance({'price': salary}, paid)
        if balance.is_fully_paid:
            status = SALARY_PAID
        elif paid > ZERO:
            status = SALARY_PARTIAL
        else:
            status = SALARY_NOT_PAID
        statuses[employee_id] = SalaryStatus(
            employee_id=employee_id,
            salary=salary,
            paid_amount=paid,
            remaining=max(balance.remaining, ZERO),
            status=status,
        )
    return statuses


def _in_month(record, month):
    day = as_date(record_value(record, 'date'))
    return day is not None and (day.year, day.month) == (month.year, month.month)
