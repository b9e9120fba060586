"""
Filtering, search and record location over project-scoped records.

The access scope is applied before any user filter, so a project filter can
only narrow what the scope already allows, never widen it.

`RecordLocator` finds which page of a paged list holds a given record. It
works in two phases: resolve the page from the record's index, then confirm
the record is actually among the rendered rows. If the list changed in
between, the index is recomputed once before giving up.
"""
from dataclasses import dataclass
from typing import Any, Optional

from django.conf import settings
from django.core.paginator import Paginator

from apps.core.amounts import ZERO, coerce_amount, is_valid_amount, to_amount
from apps.core.scope import same_id
from apps.core.utils import as_date, record_value
from apps.finance.aggregation import UNCATEGORIZED_ID
from apps.sales.ledger import normalize


def _is_blank(value):
    return value is None or (isinstance(value, str) and not value.strip())


@dataclass(frozen=True)
class RecordFilters:
    start_date: Optional[Any] = None
    end_date: Optional[Any] = None
    category_id: Optional[Any] = None
    project_id: Optional[Any] = None
    min_amount: Optional[Any] = None
    max_amount: Optional[Any] = None
    query: str = ''

    @property
    def is_empty(self):
        return all(_is_blank(getattr(self, name)) for name in self.__dataclass_fields__)


def record_project_id(record):
    return record_value(record, 'project_id')


def _searchable_text(record):
    amount = record_value(record, 'amount')
    day = as_date(record_value(record, 'date'))
    values = [
        record_value(record, 'description'),
        record_value(record, 'category_name'),
        str(amount) if is_valid_amount(amount) else None,
        record_value(record, 'notes'),
        day.isoformat() if day else None,
    ]
    return [str(value).lower() for value in values if value]


def matches_query(record, query):
    """Case-insensitive substring match against any searchable field."""
    needle = (query or '').strip().lower()
    if not needle:
        return True
    return any(needle in text for text in _searchable_text(record))


def _matches_category(record, category_id, known_categories=None):
    """
    With `known_categories` given, a record whose category is not among them
    counts as uncategorized, the same way the aggregator buckets it.
    """
    value = record_value(record, 'category_id')
    if same_id(category_id, UNCATEGORIZED_ID):
        if _is_blank(value):
            return True
        return known_categories is not None and str(value) not in known_categories
    return same_id(value, category_id)


def _matches(record, filters, project_id, known_categories=None):
    if project_id is not None and not same_id(record_project_id(record), project_id):
        return False

    start = as_date(filters.start_date)
    end = as_date(filters.end_date)
    if start or end:
        day = as_date(record_value(record, 'date'))
        if day is None:
            return False
        if start and day < start:
            return False
        if end and day > end:
            return False

    if not _is_blank(filters.category_id) and not _matches_category(record, filters.category_id, known_categories):
        return False

    amount = coerce_amount(record_value(record, 'amount'))
    min_amount = to_amount(filters.min_amount)
    max_amount = to_amount(filters.max_amount)
    if min_amount is not None and amount < min_amount:
        return False
    if max_amount is not None and amount > max_amount:
        return False

    return matches_query(record, filters.query)


def apply_filters(records, filters=None, scope=None, categories=None):
    """
    Records visible under `scope` that satisfy every set filter dimension.

    `categories` are the known categories, used to decide which records the
    uncategorized filter matches. Input order is preserved.
    """
    filters = filters or RecordFilters()
    known_categories = None
    if categories is not None:
        known_categories = {
            str(record_value(c, 'id')) for c in categories if record_value(c, 'id') is not None
        }
    if scope is not None:
        records = [r for r in records if scope.permits(record_project_id(r))]

    if scope is not None and scope.is_restricted:
        project_id = scope.assigned_project_id
    elif not _is_blank(filters.project_id):
        project_id = filters.project_id
    elif scope is not None:
        project_id = scope.selected_project_id
    else:
        project_id = None

    return [r for r in records if _matches(r, filters, project_id, known_categories)]


def index_of(records, record_id):
    for index, record in enumerate(records):
        if same_id(record_value(record, 'id'), record_id):
            return index
    return None


class RecordLocator:
    """
    Two-phase page locator.

        IDLE -> RESOLVING_INDEX -> CONFIRMING_RENDER -> FOUND
                                |                    -> RESOLVING_INDEX (once)
                                -> NOT_FOUND | OUT_OF_SCOPE
    """
    IDLE = 'idle'
    RESOLVING_INDEX = 'resolving_index'
    CONFIRMING_RENDER = 'confirming_render'
    FOUND = 'found'
    NOT_FOUND = 'not_found'
    OUT_OF_SCOPE = 'out_of_scope'

    TERMINAL_STATES = (FOUND, NOT_FOUND, OUT_OF_SCOPE)

    def __init__(self, scope=None, page_size=None, max_retries=1):
        self.scope = scope
        self.page_size = page_size or settings.LIST_PAGE_SIZE
        self.max_retries = max_retries
        self.reset()

    def reset(self):
        self.state = self.IDLE
        self.target_id = None
        self.page = None
        self.retries = 0

    @property
    def is_done(self):
        return self.state in self.TERMINAL_STATES

    def resolve(self, records, target):
        """
        Start locating `target` in `records` (already filtered and sorted).

        Returns the page number to render, or None when the locator ended in
        NOT_FOUND or OUT_OF_SCOPE.
        """
        self.reset()
        self.state = self.RESOLVING_INDEX
        if target is None:
            self.state = self.NOT_FOUND
            return None

        self.target_id = record_value(target, 'id')
        if self.scope is not None and not self.scope.permits(record_project_id(target)):
            self.state = self.OUT_OF_SCOPE
            return None

        return self._resolve_index(records)

    def _resolve_index(self, records):
        index = index_of(records, self.target_id)
        if index is None:
            self.page = None
            self.state = self.NOT_FOUND
            return None
        self.page = index // self.page_size + 1
        self.state = self.CONFIRMING_RENDER
        return self.page

    def confirm(self, rendered_ids, records=None):
        """
        Check the rendered page holds the target.

        When it does not and a retry is left, the page is recomputed from
        `records` and the locator waits for another confirmation.
        """
        if self.state != self.CONFIRMING_RENDER:
            return self.state

        if any(same_id(rendered_id, self.target_id) for rendered_id in rendered_ids):
            self.state = self.FOUND
        elif records is not None and self.retries < self.max_retries:
            self.retries += 1
            self.state = self.RESOLVING_INDEX
            self._resolve_index(records)
        else:
            self.state = self.NOT_FOUND
        return self.state


@dataclass
class LocateResult:
    state: str
    page_number: Optional[int] = None
    page: Any = None

    @property
    def found(self):
        return self.state == RecordLocator.FOUND


def locate_in_pages(records, target, scope=None, page_size=None):
    """Drive a RecordLocator against a Paginator over `records`."""
    records = list(records)
    locator = RecordLocator(scope=scope, page_size=page_size)
    paginator = Paginator(records, locator.page_size)

    page = None
    page_number = locator.resolve(records, target)
    while locator.state == RecordLocator.CONFIRMING_RENDER:
        page = paginator.get_page(page_number)
        locator.confirm([record_value(r, 'id') for r in page.object_list], records)
        page_number = locator.page

    if locator.state != RecordLocator.FOUND:
        page = None
    return LocateResult(state=locator.state, page_number=locator.page if page else None, page=page)


# Project filters for the sales side

def filter_bookings_by_project(bookings, project_id, units=None):
    """
    Bookings of `project_id`, judged by the booked unit's project when the
    unit is known and by the booking's own project otherwise.
    """
    if _is_blank(project_id):
        return list(bookings)
    unit_projects = {}
    for unit in units or ():
        unit_projects[str(record_value(unit, 'id'))] = record_value(unit, 'project_id')

    selected = []
    for booking in bookings:
        unit_key = str(record_value(booking, 'unit_id'))
        booking_project = unit_projects.get(unit_key, record_value(booking, 'project_id'))
        if same_id(booking_project, project_id):
            selected.append(booking)
    return selected


def filter_payments_by_project(payments, bookings, project_id, units=None):
    """Payments (or extra payments) that belong to a booking of `project_id`."""
    if _is_blank(project_id):
        return list(payments)
    booking_ids = {
        str(record_value(b, 'id')) for b in filter_bookings_by_project(bookings, project_id, units)
    }
    return [p for p in payments if str(record_value(p, 'booking_id')) in booking_ids]


@dataclass
class ProjectStats:
    total_units: int = 0
    available_units: int = 0
    booked_units: int = 0
    sold_units: int = 0
    total_revenue: Any = ZERO


def project_stats(units, bookings, payments=(), extra_payments=(), project_id=None):
    """Unit counts by status and revenue collected, for one project or all."""
    units = list(units)
    if not _is_blank(project_id):
        units = [u for u in units if same_id(record_value(u, 'project_id'), project_id)]
    bookings = filter_bookings_by_project(bookings, project_id, units if not _is_blank(project_id) else None)

    payments_by_booking = {}
    for payment in payments:
        payments_by_booking.setdefault(str(record_value(payment, 'booking_id')), []).append(payment)
    extras_by_booking = {}
    for extra in extra_payments:
        extras_by_booking.setdefault(str(record_value(extra, 'booking_id')), []).append(extra)

    revenue = ZERO
    for booking in bookings:
        key = str(record_value(booking, 'id'))
        ledger = normalize(booking, payments_by_booking.get(key, []), extras_by_booking.get(key, []))
        revenue += ledger.total_paid

    statuses = [record_value(u, 'status') for u in units]
    return ProjectStats(
        total_units=len(units),
        available_units=statuses.count('available'),
        booked_units=statuses.count('booked'),
        sold_units=statuses.count('sold'),
        total_revenue=revenue,
    )
