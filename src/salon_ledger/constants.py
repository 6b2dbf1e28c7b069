"""Enumerations shared across the salon ledger modules.

Keeps the closed vocabularies (service categories, payment channels, staff
identities, workbook sheets) in one place so the data layer, the business
layer and the reporting engine agree on the exact spelling of every value.
"""

from __future__ import annotations

from enum import Enum


# Workbook schema version every layer expects to find in config.ini.
EXPECTED_SCHEMA_VERSION = "1.0.0"


class ServiceType(str, Enum):
    """Enumerate the service categories offered by the salon."""

    CUT = "Cut"
    STYLING = "Styling"
    BLOW_DRY = "Blow-dry"
    COLORING = "Coloring"
    TREATMENT = "Treatment"
    OTHER = "Other"


class PaymentMethod(str, Enum):
    """Enumerate the payment channels accepted at the counter."""

    CASH = "Cash"
    MOBILE_WALLET = "MobileWallet"


class StaffMember(str, Enum):
    """Enumerate the staff identities that commission rules are keyed to."""

    LUZ = "Luz"
    JHON = "Jhon"
    NELLY = "Nelly"


class SheetName(str, Enum):
    """Enumerate the workbook sheet names managed by the DAL."""

    SERVICE_LOG = "ServiceLog"


MONTH_NAMES: tuple[str, ...] = (
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
)


__all__ = [
    "EXPECTED_SCHEMA_VERSION",
    "ServiceType",
    "PaymentMethod",
    "StaffMember",
    "SheetName",
    "MONTH_NAMES",
]
