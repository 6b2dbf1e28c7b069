"""Business logic layer for the salon ledger.

Sits between the data access layer and any front-end. It validates new
service entries before they reach the append-only ``ServiceLog``, keeps a
per-context cache of the loaded records, and hands a snapshot of that cache
to the reporting engine whenever a dashboard is requested.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from openpyxl.workbook import Workbook

from . import data_manager, log, reporting
from .constants import EXPECTED_SCHEMA_VERSION, PaymentMethod, ServiceType


class BusinessRuleViolation(Exception):
    """Raised when a requested operation violates a domain constraint."""


class MissingReferenceError(BusinessRuleViolation):
    """Raised when a referenced service record is unknown."""


@dataclass(frozen=True)
class RuntimeContext:
    """Container for configuration and workbook references used by the BLL."""

    settings: data_manager.ConfigSettings
    workbook: Workbook
    _cache: Dict[str, Dict[str, Any]] = field(default_factory=dict, repr=False, compare=False)


@dataclass(frozen=True)
class ServiceCommand:
    """User intent for recording a service performed for a client."""

    client: str
    service_type: ServiceType
    price: int
    payment_method: PaymentMethod
    staff: str
    timestamp: Optional[datetime] = None
    notes: Optional[str] = None


def _resolve_timestamp(candidate: Optional[datetime]) -> datetime:
    """Return ``candidate`` or, when absent, the current UTC instant."""

    return candidate if candidate is not None else datetime.now(UTC)


def _get_cache_bucket(context: RuntimeContext, name: str) -> Dict[str, Any]:
    """Return the cache bucket called ``name``, creating it on first use."""

    bucket = context._cache.get(name)
    if bucket is None:
        log.debug("Initializing cache bucket '%s'", name)
        bucket = {}
        context._cache[name] = bucket
    return bucket


def _invalidate_cache(context: RuntimeContext, *names: str) -> None:
    """Drop cache buckets after the workbook changed.

    Unknown bucket names are ignored.
    """

    if not names:
        return

    log.debug("Invalidating cache buckets: %s", ", ".join(names))

    for name in names:
        context._cache.pop(name, None)


def _ensure_services_cache(context: RuntimeContext) -> Dict[str, Any]:
    """Populate the service record cache bucket on demand.

    Returns:
        dict[str, Any]: Bucket holding ``all`` records in sheet order and a
            ``by_id`` lookup.
    """

    bucket = _get_cache_bucket(context, "services")
    if "all" not in bucket:
        all_services = list(data_manager.iter_services(context.workbook))
        bucket["all"] = all_services
        bucket["by_id"] = {record.record_id: record for record in all_services}
        log.debug("Populated services cache with %d entries", len(all_services))
    return bucket


def load_runtime_context(config_path: Optional[Path] = None) -> RuntimeContext:
    """Load configuration settings and a live workbook for the BLL.

    Args:
        config_path (Path | None): Optional override for ``config.ini``. When
            omitted the data layer searches upward from the working
            directory.

    Returns:
        RuntimeContext: Context with settings, workbook and an empty cache.

    Raises:
        FileNotFoundError: If the configuration file or workbook is missing.
        KeyError: When mandatory configuration options are missing.
        ValueError: When the ``[Commission]`` table is malformed.
    """
    located_config = data_manager.find_config_file(config_path)
    resolved_config = Path(located_config).expanduser().resolve()
    parser = data_manager.read_config(resolved_config)
    settings = data_manager.parse_settings(parser, base_path=resolved_config.parent)
    workbook = data_manager.open_workbook(settings.data_file)
    log.info("Loaded runtime context for workbook '%s'", settings.data_file)
    return RuntimeContext(settings=settings, workbook=workbook)


def ensure_schema_version(context: RuntimeContext) -> None:
    """Refuse to work with a workbook declared for another schema version.

    Raises:
        RuntimeError: If ``config.ini`` declares a different schema version
            than ``EXPECTED_SCHEMA_VERSION``.
    """
    if context.settings.schema_version != EXPECTED_SCHEMA_VERSION:
        log.error(
            "Workbook schema mismatch: expected %s, found %s",
            EXPECTED_SCHEMA_VERSION,
            context.settings.schema_version,
        )
        raise RuntimeError(
            "Workbook schema mismatch: expected %s, found %s"
            % (EXPECTED_SCHEMA_VERSION, context.settings.schema_version)
        )

    log.debug("Schema version '%s' validated", context.settings.schema_version)


def list_services(context: RuntimeContext, *, newest_first: bool = False) -> List[data_manager.ServiceRecord]:
    """Return a copy of the cached service log.

    Args:
        context (RuntimeContext): Runtime context providing workbook access and
            caches.
        newest_first (bool): Reverse insertion order, the way the dashboard
            lists services.

    Returns:
        list[data_manager.ServiceRecord]: Snapshot safe to sort or filter.
    """
    records = list(_ensure_services_cache(context)["all"])
    if newest_first:
        records.reverse()
    return records


def get_service(context: RuntimeContext, record_id: int) -> data_manager.ServiceRecord:
    """Resolve a service record by id.

    Raises:
        MissingReferenceError: If no record carries ``record_id``.
    """
    cache = _ensure_services_cache(context)
    try:
        return cache["by_id"][record_id]
    except KeyError as exc:
        log.warning("Service lookup failed for id '%s'", record_id)
        raise MissingReferenceError(f"Unknown service record id: {record_id}") from exc


def search_services(context: RuntimeContext, term: str) -> List[data_manager.ServiceRecord]:
    """Newest-first records whose client name contains ``term``, ignoring case.

    An empty term matches every record.
    """
    needle = term.casefold()
    return [
        record
        for record in list_services(context, newest_first=True)
        if needle in record.client.casefold()
    ]


def record_service(context: RuntimeContext, command: ServiceCommand) -> data_manager.ServiceRecord:
    """Validate and append a service to the log.

    Args:
        context (RuntimeContext): Runtime context providing workbook access and
            caches.
        command (ServiceCommand): Structured intake request.

    Returns:
        data_manager.ServiceRecord: The newly appended record.

    Raises:
        BusinessRuleViolation: If the client is blank or the service type,
            payment method or staff member is not recognized.
        ValueError: If the price is negative or not a whole amount.
    """
    if not command.client or not command.client.strip():
        log.warning("Attempted to record a service without a client name")
        raise BusinessRuleViolation("Client name is required")
    if not isinstance(command.service_type, ServiceType):
        log.error("Unsupported service type provided: %s", command.service_type)
        raise BusinessRuleViolation(f"Unsupported service type: {command.service_type}")
    if not isinstance(command.payment_method, PaymentMethod):
        log.error("Unsupported payment method provided: %s", command.payment_method)
        raise BusinessRuleViolation(f"Unsupported payment method: {command.payment_method}")
    require_known_staff(context, command.staff)
    require_nonnegative_price(command.price)

    timestamp = _resolve_timestamp(command.timestamp)
    existing_ids = _ensure_services_cache(context)["by_id"].keys()
    record_id = generate_record_id(when=timestamp, existing_ids=existing_ids)
    record = build_service_record(command, record_id=record_id, timestamp=timestamp)
    data_manager.append_service(context.workbook, record)
    _invalidate_cache(context, "services")
    log.info(
        "Recorded service '%s' for client '%s' (staff=%s, price=%s, method=%s)",
        record.record_id,
        record.client,
        record.staff,
        record.price,
        record.payment_method,
    )
    return record


def remove_service(context: RuntimeContext, record_id: int) -> data_manager.ServiceRecord:
    """Delete a service record from the log.

    Returns:
        data_manager.ServiceRecord: The record that was removed.

    Raises:
        MissingReferenceError: If ``record_id`` is unknown.
    """
    record = get_service(context, record_id)
    data_manager.delete_service(context.workbook, record_id)
    _invalidate_cache(context, "services")
    log.info("Removed service '%s' for client '%s'", record_id, record.client)
    return record


def build_dashboard(context: RuntimeContext, now: Optional[datetime] = None) -> reporting.LedgerSummary:
    """Summarize the current service log.

    The reporting engine receives a list copy of the cached records, so later
    writes through this context cannot alter a summary being built.

    Args:
        context (RuntimeContext): Runtime context providing workbook access and
            caches.
        now (datetime | None): Reference instant. Defaults to the current time
            in the system's local zone.

    Returns:
        reporting.LedgerSummary: Freshly computed summary.
    """
    reference = now if now is not None else datetime.now(UTC).astimezone()
    summary = reporting.build_summary(
        list_services(context),
        reference,
        context.settings.commission_rules,
    )
    log.info(
        "Built dashboard for %s: today=%s (%d services), month=%s",
        reference.date().isoformat(),
        summary.income_today,
        summary.today_count,
        summary.income_month,
    )
    return summary


def generate_record_id(*, when: Optional[datetime] = None, existing_ids: Iterable[int] = ()) -> int:
    """Allocate a record id from the creation time in milliseconds.

    Ids stay unique and increasing: when the millisecond clock value is not
    greater than every existing id, the id becomes the current maximum plus
    one.
    """
    when = when or _resolve_timestamp(None)
    candidate = int(when.timestamp() * 1000)
    highest = max(existing_ids, default=None)
    if highest is not None and candidate <= highest:
        candidate = highest + 1
    return candidate


def require_known_staff(context: RuntimeContext, staff: str) -> None:
    """Reject staff identities missing from the configured commission table.

    Raises:
        BusinessRuleViolation: If ``staff`` has no commission rule.
    """
    known = [rule.staff_id for rule in context.settings.commission_rules]
    if staff not in known:
        log.error("Unknown staff member provided: %s", staff)
        raise BusinessRuleViolation(f"Unknown staff member: {staff}")


def require_nonnegative_price(price: int) -> None:
    """Validate that a price is a whole, nonnegative amount.

    Raises:
        ValueError: If ``price`` is negative or not an integer.
    """
    if isinstance(price, bool) or not isinstance(price, int):
        log.error("Price validation failed: %r is not a whole amount", price)
        raise ValueError("Price must be a whole amount")
    if price < 0:
        log.error("Price validation failed: %s", price)
        raise ValueError("Price must be zero or positive")


def build_service_record(command: ServiceCommand, *, record_id: int, timestamp: datetime) -> data_manager.ServiceRecord:
    """Materialize a :class:`ServiceCommand` into a DAL service record.

    Enumerated values are stored as their text form and the client name is
    trimmed; blank notes are stored as ``None``.
    """
    notes = command.notes.strip() if command.notes else None
    return data_manager.ServiceRecord(
        record_id=record_id,
        client=command.client.strip(),
        service_type=command.service_type.value,
        price=command.price,
        payment_method=command.payment_method.value,
        staff=command.staff,
        date_iso=timestamp.isoformat(),
        notes=notes or None,
    )


def persist_context(context: RuntimeContext) -> None:
    """Write in-memory workbook changes to the configured data file."""
    data_manager.save_workbook(
        context.workbook,
        destination=context.settings.data_file,
    )
    log.info("Persisted workbook '%s'", context.settings.data_file)


def refresh_context(context: RuntimeContext) -> RuntimeContext:
    """Reload the workbook from disk and return a context with an empty cache.

    Raises:
        FileNotFoundError: If the backing workbook cannot be reloaded.
    """
    workbook = data_manager.refresh_workbook(context.settings.data_file)
    log.info("Reloaded workbook '%s'", context.settings.data_file)
    return RuntimeContext(settings=context.settings, workbook=workbook)
