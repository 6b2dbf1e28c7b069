"""Utility for initializing the salon ledger master workbook.

Runs as a script (``python -m salon_ledger.setup_excel``) and is also used by
the test suite to create throwaway workbooks.
"""

from __future__ import annotations

import argparse
import configparser
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Sequence
import sys

import openpyxl
from openpyxl.styles import Font

from .constants import SheetName
from .data_manager import SERVICE_LOG_COLUMNS

SHEET_COLUMNS: Mapping[str, Sequence[str]] = {
    SheetName.SERVICE_LOG.value: SERVICE_LOG_COLUMNS,
}

CONFIG_FILE = "config.ini"


@dataclass(frozen=True)
class SetupSettings:
    """Configuration values needed to bootstrap the workbook."""

    data_file: Path


def load_settings(config_path: Path) -> SetupSettings:
    """Read ``config.ini`` and produce :class:`SetupSettings`.

    Relative paths are resolved against the config file's directory.
    """

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    parser = configparser.ConfigParser()
    parser.read(config_path)

    try:
        data_file_raw = parser.get("System", "DataFile")
    except (configparser.NoSectionError, configparser.NoOptionError) as exc:
        raise KeyError(f"Missing required configuration entry: {exc}") from exc

    data_file_path = Path(data_file_raw)
    if not data_file_path.is_absolute():
        data_file_path = (config_path.parent / data_file_path).resolve()

    return SetupSettings(data_file=data_file_path)


def create_master_workbook(
    destination: Path,
    *,
    sheet_columns: Mapping[str, Sequence[str]] = SHEET_COLUMNS,
    overwrite: bool = False,
) -> Path:
    """Create an empty master workbook at ``destination``.

    Raises ``FileExistsError`` when the target exists and ``overwrite`` is
    ``False``.
    """

    destination = destination.expanduser().resolve()
    if destination.exists() and not overwrite:
        raise FileExistsError(
            f"Refusing to overwrite existing master workbook: {destination}"
        )

    destination.parent.mkdir(parents=True, exist_ok=True)

    workbook = openpyxl.Workbook()

    # openpyxl always starts with a default "Sheet".
    if workbook.active and workbook.active.title == "Sheet":
        workbook.remove(workbook.active)

    bold_font = Font(bold=True)

    for sheet_name, columns in sheet_columns.items():
        worksheet = workbook.create_sheet(title=sheet_name)
        for column_index, column_name in enumerate(columns, start=1):
            cell = worksheet.cell(row=1, column=column_index)
            cell.value = column_name
            cell.font = bold_font

    workbook.save(destination)
    return destination


def run_from_config(config_path: Path, *, overwrite: bool = False) -> Path:
    """Create the workbook named by ``config.ini``."""

    settings = load_settings(config_path)
    return create_master_workbook(settings.data_file, overwrite=overwrite)


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments for the setup script."""

    parser = argparse.ArgumentParser(description="Initialize the salon ledger data file")
    parser.add_argument(
        "--config",
        default=CONFIG_FILE,
        help="Path to configuration file (default: config.ini)",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Overwrite the target workbook if it already exists.",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for the setup script."""

    args = parse_args(argv)
    config_path = Path(args.config).expanduser().resolve()

    print("--- Salon Ledger Setup ---")
    print(f"Using configuration: {config_path}")

    try:
        output_path = run_from_config(config_path, overwrite=args.force)
    except (FileNotFoundError, KeyError) as exc:
        print(f"\n[ERROR] {exc}")
        return 1
    except FileExistsError as exc:
        print(f"\n[ERROR] {exc}")
        print("Run with --force to overwrite the existing file if appropriate.")
        return 1
    except (PermissionError, OSError) as exc:
        print(f"\n[ERROR] Unable to write workbook: {exc}")
        return 1

    print(f"\n[SUCCESS] Created master workbook at '{output_path}'.")
    return 0


if __name__ == "__main__":  # pragma: no cover - exercised via manual runs
    sys.exit(main())
