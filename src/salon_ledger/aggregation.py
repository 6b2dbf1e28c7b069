"""Time windows and revenue aggregation over a snapshot of service records.

Every function in this module is pure: it reads the records it is given and
returns fresh values, so calling it twice on the same snapshot yields the same
result. Records that cannot satisfy a particular bucket (an unparseable date,
a negative price, a payment method outside the known channels) are left out
of that bucket only; one bad row never blanks out the rest of a report.
"""

from __future__ import annotations

import calendar
from collections import defaultdict
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Dict, Iterable, List, Optional, Sequence, Union

from . import log
from .constants import PaymentMethod
from .data_manager import ServiceRecord
from .settlement import round_half_away_from_zero


DateLike = Union[datetime, str, None]


# ---------------------------------------------------------------------------
# Time windows
# ---------------------------------------------------------------------------


def parse_record_date(value: DateLike) -> Optional[datetime]:
    """Parse an ISO-8601 instant, returning ``None`` when it is unusable.

    Accepts ``datetime`` instances unchanged and strings with an optional
    trailing ``Z``.
    """

    if isinstance(value, datetime):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def local_calendar_date(value: DateLike, now: datetime) -> Optional[date]:
    """Return the calendar date of ``value`` in ``now``'s local time zone.

    Aware instants are shifted into ``now``'s zone (or the system zone when
    ``now`` is naive). Naive instants are taken to already be local.
    """

    moment = parse_record_date(value)
    if moment is None:
        return None
    if moment.tzinfo is not None:
        if now.tzinfo is not None:
            moment = moment.astimezone(now.tzinfo)
        else:
            moment = moment.astimezone()
    return moment.date()


def is_today(value: DateLike, now: datetime) -> bool:
    """``True`` when ``value`` falls on the same local calendar date as ``now``."""

    return local_calendar_date(value, now) == now.date()


def is_this_month(value: DateLike, now: datetime) -> bool:
    """``True`` when ``value`` falls in ``now``'s calendar month and year."""

    day = local_calendar_date(value, now)
    return day is not None and (day.year, day.month) == (now.year, now.month)


def days_in_month(now: datetime) -> int:
    return calendar.monthrange(now.year, now.month)[1]


def select_today(records: Iterable[ServiceRecord], now: datetime) -> List[ServiceRecord]:
    return [record for record in records if is_today(record.date_iso, now)]


def select_this_month(records: Iterable[ServiceRecord], now: datetime) -> List[ServiceRecord]:
    return [record for record in records if is_this_month(record.date_iso, now)]


# ---------------------------------------------------------------------------
# Sums
# ---------------------------------------------------------------------------


def record_amount(record: ServiceRecord) -> Optional[int]:
    """Return the record's price as a whole amount, or ``None`` if unusable.

    Rounding happens here, once per record, half away from zero, so that sums
    never accumulate fractional drift. Negative and unparseable prices yield
    ``None``.
    """

    price = record.price
    if isinstance(price, bool):
        return None
    try:
        amount = Decimal(price) if isinstance(price, (int, Decimal)) else Decimal(str(price).strip())
    except InvalidOperation:
        log.debug("Skipping record %s: unparseable price %r", record.record_id, price)
        return None
    if not amount.is_finite() or amount < 0:
        log.debug("Skipping record %s: unusable price %r", record.record_id, price)
        return None
    return round_half_away_from_zero(amount)


def total_revenue(records: Iterable[ServiceRecord]) -> int:
    total = 0
    for record in records:
        amount = record_amount(record)
        if amount is not None:
            total += amount
    return total


def revenue_by_payment_method(records: Iterable[ServiceRecord]) -> Dict[str, int]:
    """Sum revenue into the ``Cash`` and ``MobileWallet`` buckets.

    The result always holds both keys. Records paid through any other method
    land in neither bucket, although :func:`total_revenue` still counts them.
    """

    buckets = {method.value: 0 for method in PaymentMethod}
    for record in records:
        amount = record_amount(record)
        if amount is None:
            continue
        if record.payment_method in buckets:
            buckets[record.payment_method] += amount
        else:
            log.debug(
                "Record %s uses unrecognized payment method %r",
                record.record_id,
                record.payment_method,
            )
    return buckets


def gross_by_staff(
    records: Iterable[ServiceRecord],
    staff_ids: Optional[Iterable[str]] = None,
) -> Dict[str, int]:
    """Sum gross production per staff identity in a single pass.

    Args:
        records (Iterable[ServiceRecord]): Records to aggregate.
        staff_ids (Iterable[str] | None): When given, the result holds exactly
            these identities, zero-filled, and every other identity is
            dropped. When omitted, every identity present in ``records``
            appears.

    Returns:
        dict[str, int]: Gross production keyed by staff identity.
    """

    totals: Dict[str, int] = defaultdict(int)
    for record in records:
        amount = record_amount(record)
        if amount is not None:
            totals[record.staff] += amount

    if staff_ids is None:
        return dict(totals)
    return {staff_id: totals.get(staff_id, 0) for staff_id in staff_ids}


def daily_histogram(records: Iterable[ServiceRecord], now: datetime) -> List[int]:
    """Dense per-day revenue for ``now``'s month.

    Index ``d - 1`` holds the revenue of day ``d``. Every day of the month is
    present, including days with no services and days after ``now``.
    """

    histogram = [0] * days_in_month(now)
    for record in records:
        day = local_calendar_date(record.date_iso, now)
        if day is None or (day.year, day.month) != (now.year, now.month):
            continue
        amount = record_amount(record)
        if amount is not None:
            histogram[day.day - 1] += amount
    return histogram


def max_daily(histogram: Sequence[int]) -> int:
    """Largest daily bucket, never below 1 so charts can divide by it."""

    return max([1, *histogram])
