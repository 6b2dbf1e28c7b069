"""Dashboard summary assembled from a snapshot of service records."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Tuple

from . import log
from .aggregation import (
    daily_histogram,
    gross_by_staff,
    max_daily,
    revenue_by_payment_method,
    select_this_month,
    select_today,
    total_revenue,
)
from .constants import MONTH_NAMES, PaymentMethod
from .data_manager import ServiceRecord
from .settlement import DEFAULT_COMMISSION_RULES, StaffCommissionRule, StaffSettlement, settle


@dataclass(frozen=True)
class LedgerSummary:
    """Read-only view of the ledger at one reference instant."""

    reference: datetime
    month_name: str
    total_count: int
    today_count: int
    income_today: int
    cash_today: int
    mobile_wallet_today: int
    month_count: int
    income_month: int
    daily_histogram: Tuple[int, ...]
    max_daily: int
    staff_earnings: Tuple[StaffSettlement, ...]
    monthly_staff_earnings: Tuple[StaffSettlement, ...]
    # Month gross of identities with no commission rule, kept so nothing is lost.
    unassigned_gross: Tuple[Tuple[str, int], ...]


def build_summary(
    records: Iterable[ServiceRecord],
    now: datetime,
    rules: Iterable[StaffCommissionRule] = DEFAULT_COMMISSION_RULES,
) -> LedgerSummary:
    """Recompute every dashboard figure from ``records``.

    Nothing is carried over between calls: the snapshot is the only source
    of truth, so the same records and ``now`` always produce an equal
    summary.

    Args:
        records (Iterable[ServiceRecord]): Snapshot of the service log.
        now (datetime): Reference instant that defines "today" and "this
            month".
        rules (Iterable[StaffCommissionRule]): Commission table used for both
            settlement lists.

    Returns:
        LedgerSummary: Immutable summary value.
    """

    snapshot = list(records)
    rules = tuple(rules)
    staff_ids = [rule.staff_id for rule in rules]

    today_records = select_today(snapshot, now)
    month_records = select_this_month(snapshot, now)

    by_method = revenue_by_payment_method(today_records)
    histogram = tuple(daily_histogram(month_records, now))

    month_gross = gross_by_staff(month_records)
    # Hand-edited rows may carry a blank or non-text staff cell.
    unassigned = tuple(
        sorted(
            ((staff_id, gross) for staff_id, gross in month_gross.items() if staff_id not in staff_ids),
            key=lambda item: str(item[0]),
        )
    )

    summary = LedgerSummary(
        reference=now,
        month_name=MONTH_NAMES[now.month - 1],
        total_count=len(snapshot),
        today_count=len(today_records),
        income_today=total_revenue(today_records),
        cash_today=by_method[PaymentMethod.CASH.value],
        mobile_wallet_today=by_method[PaymentMethod.MOBILE_WALLET.value],
        month_count=len(month_records),
        income_month=total_revenue(month_records),
        daily_histogram=histogram,
        max_daily=max_daily(histogram),
        staff_earnings=tuple(settle(gross_by_staff(today_records, staff_ids), rules)),
        monthly_staff_earnings=tuple(settle(gross_by_staff(month_records, staff_ids), rules)),
        unassigned_gross=unassigned,
    )
    log.debug(
        "Built summary for %s: %d records, today=%s, month=%s",
        now.isoformat(),
        summary.total_count,
        summary.income_today,
        summary.income_month,
    )
    return summary
