"""Data access layer for the salon ledger.

This module owns every read and write against the ``salon_master_data.xlsx``
workbook and the ``config.ini`` file that points at it. Nothing here knows
about commissions or reports.

The public API covers three responsibilities:

1. Configuration handling: finding and parsing ``config.ini``, including the
   optional ``[Commission]`` table.
2. Workbook lifecycle: opening, reloading, and persisting the Excel file.
3. Sheet operations: streaming ``ServiceLog`` rows as :class:`ServiceRecord`
   values, appending new rows, and deleting rows by record id.
"""


from __future__ import annotations

import configparser
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Iterable, Optional, Sequence, Tuple, Union

from openpyxl.workbook import Workbook
import openpyxl

from . import log
from .constants import SheetName
from .settlement import DEFAULT_COMMISSION_RULES, StaffCommissionRule, validate_commission_rules


CONFIG_FILE_NAME = "config.ini"
SERVICE_LOG_SHEET = SheetName.SERVICE_LOG.value
SERVICE_LOG_COLUMNS: Tuple[str, ...] = (
    "RecordID",
    "Date",
    "Client",
    "ServiceType",
    "Price",
    "PaymentMethod",
    "Staff",
    "Notes",
)
OWNER_MARKER = "owner"


@dataclass(frozen=True)
class ConfigSettings:
    """Typed representation of the ``config.ini`` settings we care about."""

    data_file: Path
    salon_name: str
    schema_version: str
    commission_rules: Tuple[StaffCommissionRule, ...] = DEFAULT_COMMISSION_RULES


@dataclass(frozen=True)
class ServiceRecord:
    """One service performed for a client, as stored in the ``ServiceLog`` sheet.

    Records are never edited after creation. Enumerated fields are kept as
    plain strings so rows carrying values outside the known vocabularies still
    load; the reporting engine decides which buckets they can join.
    """

    record_id: int
    client: str
    service_type: str
    # Whole currency units for anything recorded through the app; hand-edited
    # rows may carry a Decimal or an unparseable string instead.
    price: Union[int, Decimal, str]
    payment_method: str
    staff: str
    date_iso: str
    notes: Optional[str] = None


def find_config_file(explicit_path: Optional[Path] = None) -> Path:
    """Locate ``config.ini``.

    An explicit path wins without any checks. Otherwise the search walks from
    the current working directory up to the filesystem root and returns the
    first ``CONFIG_FILE_NAME`` it finds.

    Args:
        explicit_path (Path | None): Optional path that bypasses the search.

    Returns:
        Path: The explicit path or the discovered configuration file.

    Raises:
        FileNotFoundError: If no directory on the way up holds the file.
    """

    if explicit_path:
        return explicit_path

    current = Path.cwd()
    for directory in (current, *current.parents):
        candidate = directory / CONFIG_FILE_NAME
        if candidate.exists():
            return candidate

    raise FileNotFoundError(f"Configuration file not found: {CONFIG_FILE_NAME}")


def read_config(config_path: Path) -> configparser.ConfigParser:
    """Load ``config.ini`` into a case-preserving ``ConfigParser``.

    Option names are kept verbatim (``optionxform = str``) because the
    ``[Commission]`` section is keyed by staff identities, which are matched
    exactly against service records.

    Args:
        config_path (Path): Path to the configuration file, relative or
            absolute.

    Returns:
        configparser.ConfigParser: Parser holding the raw configuration data.

    Raises:
        FileNotFoundError: If ``config_path`` does not exist.
    """

    config_path = config_path.expanduser().resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    parser = configparser.ConfigParser()
    parser.optionxform = str  # type: ignore[assignment]
    parser.read(config_path)
    return parser


def parse_settings(parser: configparser.ConfigParser, *, base_path: Optional[Path] = None) -> ConfigSettings:
    """Convert a ``ConfigParser`` into :class:`ConfigSettings`.

    Relative ``DataFile`` entries are anchored to ``base_path`` (or the current
    working directory) and resolved. When a ``[Commission]`` section exists it
    replaces the default commission table entirely.

    Args:
        parser (configparser.ConfigParser): Parsed configuration data.
        base_path (Path | None): Anchor directory for relative data files.

    Returns:
        ConfigSettings: Immutable settings with a resolved data file path.

    Raises:
        KeyError: If a required ``[System]`` option is missing.
        ValueError: If the ``[Commission]`` table is malformed.
    """

    try:
        data_file_raw = parser.get("System", "DataFile")
        salon_name = parser.get("System", "SalonName")
        schema_version = parser.get("System", "SchemaVersion")
    except (configparser.NoSectionError, configparser.NoOptionError) as exc:
        raise KeyError(f"Missing required configuration entry: {exc}") from exc

    data_file_path = Path(data_file_raw)
    if not data_file_path.is_absolute():
        if base_path is None:
            base_path = Path.cwd()
        data_file_path = (base_path / data_file_path).resolve()

    if parser.has_section("Commission"):
        commission_rules = parse_commission_rules(parser)
    else:
        commission_rules = DEFAULT_COMMISSION_RULES

    return ConfigSettings(
        data_file=data_file_path,
        salon_name=salon_name,
        schema_version=schema_version,
        commission_rules=commission_rules,
    )


def parse_commission_rules(parser: configparser.ConfigParser) -> Tuple[StaffCommissionRule, ...]:
    """Build the commission table from the ``[Commission]`` section.

    Each option maps a staff identity to either an integer self-share
    percentage or the literal ``owner``. The owner always keeps 100% of their
    own production.

    Raises:
        ValueError: If a percentage is not an integer or the resulting table
            fails :func:`validate_commission_rules`.
    """

    rules = []
    for staff_id, raw_value in parser.items("Commission", raw=True):
        value = raw_value.strip()
        if value.lower() == OWNER_MARKER:
            rules.append(StaffCommissionRule(staff_id=staff_id, self_share_percent=100, is_owner=True))
            continue
        try:
            percent = int(value)
        except ValueError as exc:
            raise ValueError(f"Invalid commission share for '{staff_id}': {raw_value!r}") from exc
        rules.append(StaffCommissionRule(staff_id=staff_id, self_share_percent=percent, is_owner=False))

    table = tuple(rules)
    validate_commission_rules(table)
    log.debug("Loaded %d commission rules from configuration", len(table))
    return table


def open_workbook(data_file: Path) -> Workbook:
    """Open the master workbook.

    Args:
        data_file (Path): Location of ``salon_master_data.xlsx``.

    Returns:
        Workbook: Live ``openpyxl`` workbook.

    Raises:
        FileNotFoundError: If the file does not exist.
    """

    data_file = Path(data_file).expanduser().resolve()
    if not data_file.exists():
        raise FileNotFoundError(f"Workbook not found: {data_file}")

    return openpyxl.load_workbook(data_file)


def save_workbook(workbook: Workbook, destination: Path) -> None:
    """Persist the workbook at ``destination``, creating parent folders."""

    dest = Path(destination).expanduser().resolve()
    dest.parent.mkdir(parents=True, exist_ok=True)
    workbook.save(dest)


def refresh_workbook(data_file: Path) -> Workbook:
    """Reload the workbook from disk, dropping unsaved in-memory edits."""

    return open_workbook(data_file)


def iter_services(workbook: Workbook) -> Iterable[ServiceRecord]:
    """Stream service records from the ``ServiceLog`` worksheet.

    The header row and fully empty rows are skipped, and so are rows whose
    ``RecordID`` is blank or not a number, since nothing else can address
    them. Rows come back in sheet order, which is insertion order.

    Args:
        workbook (Workbook): Workbook holding the service log.

    Yields:
        ServiceRecord: One record per populated row with a usable id.
    """

    sheet = workbook[SERVICE_LOG_SHEET]
    for row_idx, raw in enumerate(sheet.iter_rows(min_row=2, values_only=True), start=2):
        if not any(cell is not None for cell in raw):
            continue
        try:
            record = deserialize_service(raw)
        except (TypeError, ValueError):
            log.warning("Skipping service log row %d: unusable RecordID %r", row_idx, raw[0])
            continue
        yield record


def append_service(workbook: Workbook, record: ServiceRecord) -> None:
    """Append a service record to the end of the ``ServiceLog`` worksheet."""

    sheet = workbook[SERVICE_LOG_SHEET]
    sheet.append(serialize_service(record))


def delete_service(workbook: Workbook, record_id: int) -> None:
    """Remove the row holding ``record_id`` from the ``ServiceLog`` worksheet.

    Raises:
        KeyError: If no row carries the identifier.
    """

    row_index = locate_row(workbook, SERVICE_LOG_SHEET, "RecordID", record_id)
    if row_index is None:
        raise KeyError(f"Service record not found: {record_id}")

    workbook[SERVICE_LOG_SHEET].delete_rows(row_index)


def locate_row(workbook: Workbook, sheet_name: str, key_column: str, key_value: object) -> Optional[int]:
    """Find the first row whose ``key_column`` equals ``key_value``.

    Args:
        workbook (Workbook): Workbook providing ``sheet_name``.
        sheet_name (str): Worksheet to scan.
        key_column (str): Header title of the lookup column.
        key_value (object): Value to match.

    Returns:
        int | None: 1-based row index of the match, or ``None``.

    Raises:
        KeyError: If ``key_column`` is not in the header row.
    """

    sheet = workbook[sheet_name]
    header_cells = list(sheet[1])
    header_map = {cell.value: idx + 1 for idx, cell in enumerate(header_cells)}
    if key_column not in header_map:
        raise KeyError(f"Unknown column: {key_column}")

    key_col_index = header_map[key_column]

    for row_idx, row in enumerate(sheet.iter_rows(min_row=2, values_only=True), start=2):
        if row[key_col_index - 1] == key_value:
            return row_idx

    return None


def serialize_service(record: ServiceRecord) -> list[object]:
    """Arrange a service record in ``SERVICE_LOG_COLUMNS`` order."""

    return [
        record.record_id,
        record.date_iso,
        record.client,
        record.service_type,
        record.price,
        record.payment_method,
        record.staff,
        record.notes,
    ]


def deserialize_service(raw_row: Sequence[object]) -> ServiceRecord:
    """Convert a raw ``ServiceLog`` row into a :class:`ServiceRecord`.

    Text columns are coerced to ``str`` so Excel's habit of turning
    digit-only names into numbers does not leak through. Prices go through
    :func:`coerce_price`; the optional notes column stays ``None`` when blank.

    Args:
        raw_row (Sequence[object]): Cell values in worksheet order.

    Returns:
        ServiceRecord: Record with normalized Python types.
    """

    (
        record_id,
        date_iso,
        client,
        service_type,
        price_raw,
        payment_method,
        staff,
        notes,
    ) = tuple(raw_row)[: len(SERVICE_LOG_COLUMNS)]

    return ServiceRecord(
        record_id=int(record_id),
        client=str(client) if client is not None else "",
        service_type=str(service_type) if service_type is not None else "",
        price=coerce_price(price_raw),
        payment_method=str(payment_method) if payment_method is not None else "",
        staff=str(staff) if staff is not None else "",
        date_iso=str(date_iso) if date_iso is not None else "",
        notes=(str(notes) if notes is not None else None),
    )


def coerce_price(raw: object) -> Union[int, Decimal, str]:
    """Normalize a price cell.

    Blank cells become ``0`` and whole numbers become ``int``. Fractional
    values come back as :class:`~decimal.Decimal` and anything unparseable is
    returned as text, leaving rounding and rejection to the reporting engine.
    """

    if raw is None:
        return 0
    if isinstance(raw, bool):
        return str(raw)
    if isinstance(raw, int):
        return raw
    try:
        amount = Decimal(str(raw).strip())
    except InvalidOperation:
        log.warning("Unparseable price cell in service log: %r", raw)
        return str(raw)
    if not amount.is_finite():
        return str(raw)
    if amount == amount.to_integral_value():
        return int(amount)
    return amount
