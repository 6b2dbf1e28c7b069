"""Shared pytest fixtures and utilities for salon ledger tests."""

from __future__ import annotations

import argparse
import sys
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Callable, Iterator
from unittest.mock import Mock

import pytest

# Ensure source packages are importable without installation.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"

if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from salon_ledger import cli, constants, core_logic, data_manager  # noqa: E402
from salon_ledger.setup_excel import create_master_workbook  # noqa: E402

DEFAULT_SCHEMA_VERSION = constants.EXPECTED_SCHEMA_VERSION
_CONFIG_TEMPLATE = (
    "[System]\n"
    "DataFile = {data_file}\n"
    "SalonName = {salon_name}\n"
    "SchemaVersion = {schema_version}\n"
)


@dataclass(frozen=True)
class ConfigBundle:
    """Container bundling together config metadata for tests."""

    directory: Path
    config_path: Path
    workbook_path: Path
    schema_version: str
    salon_name: str


@pytest.fixture(scope="session", autouse=True)
def _restore_sys_path() -> Iterator[None]:
    """Ensure sys.path modifications are undone after the test session."""

    original = sys.path.copy()
    try:
        yield
    finally:
        sys.path[:] = original


@pytest.fixture
def workbook_factory(tmp_path: Path) -> Callable[..., Path]:
    """Factory that creates an initialized master workbook in a temp folder."""

    def _create_workbook(
        *,
        subdir: str | None = None,
        filename: str = "salon_master_data.xlsx",
    ) -> Path:
        base_dir = tmp_path if subdir is None else tmp_path / subdir
        base_dir.mkdir(parents=True, exist_ok=True)
        workbook_path = base_dir / filename
        create_master_workbook(workbook_path, overwrite=True)
        return workbook_path

    return _create_workbook


@pytest.fixture
def master_workbook_path(workbook_factory: Callable[..., Path]) -> Path:
    """Return a fresh master workbook ready for use in a test."""

    return workbook_factory(subdir=f"workbook_{uuid.uuid4().hex}")


@pytest.fixture
def config_factory(tmp_path: Path, workbook_factory: Callable[..., Path]) -> Callable[..., ConfigBundle]:
    """Provide a callable that creates config/workbook bundles on demand."""

    def _create_config(
        *,
        make_relative: bool = False,
        salon_name: str = "Test Salon",
        schema_version: str = DEFAULT_SCHEMA_VERSION,
        commission_section: str | None = None,
    ) -> ConfigBundle:
        bundle_id = uuid.uuid4().hex
        bundle_dir = tmp_path / f"bundle_{bundle_id}"
        bundle_dir.mkdir(parents=True, exist_ok=True)
        workbook_path = workbook_factory(subdir=f"bundle_{bundle_id}")
        data_file_entry = workbook_path.name if make_relative else str(workbook_path)
        config_text = _CONFIG_TEMPLATE.format(
            data_file=data_file_entry,
            salon_name=salon_name,
            schema_version=schema_version,
        )
        if commission_section is not None:
            config_text += "\n[Commission]\n" + commission_section
        config_path = bundle_dir / "config.ini"
        config_path.write_text(config_text)
        return ConfigBundle(
            directory=bundle_dir,
            config_path=config_path,
            workbook_path=workbook_path,
            schema_version=schema_version,
            salon_name=salon_name,
        )

    return _create_config


@pytest.fixture
def config_file(config_factory: Callable[..., ConfigBundle]) -> Path:
    """Convenience fixture returning only the config path."""

    return config_factory().config_path


@pytest.fixture
def runtime_context(config_file: Path) -> core_logic.RuntimeContext:
    """Load the runtime context for tests through the public API."""

    context = core_logic.load_runtime_context(config_file)
    core_logic.ensure_schema_version(context)
    return context


# ---------------------------------------------------------------------------
# Record builders
# ---------------------------------------------------------------------------


@pytest.fixture
def make_record() -> Callable[..., data_manager.ServiceRecord]:
    """Build service records with sensible defaults for engine tests."""

    counter = {"next": 1}

    def _make(
        *,
        price: object = 10,
        staff: str = constants.StaffMember.JHON.value,
        payment_method: str = constants.PaymentMethod.CASH.value,
        date_iso: str = "2026-10-19T10:00:00+00:00",
        client: str = "Ana",
        service_type: str = constants.ServiceType.CUT.value,
        record_id: int | None = None,
        notes: str | None = None,
    ) -> data_manager.ServiceRecord:
        if record_id is None:
            record_id = counter["next"]
            counter["next"] += 1
        return data_manager.ServiceRecord(
            record_id=record_id,
            client=client,
            service_type=service_type,
            price=price,
            payment_method=payment_method,
            staff=staff,
            date_iso=date_iso,
            notes=notes,
        )

    return _make


@pytest.fixture
def now() -> datetime:
    """Reference instant used by engine tests: 2026-10-19 15:00 UTC."""

    return datetime(2026, 10, 19, 15, 0, tzinfo=UTC)


# ---------------------------------------------------------------------------
# CLI layer fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_parser() -> argparse.ArgumentParser:
    """Return a fresh CLI parser instance for tests."""

    return argparse.ArgumentParser(prog="salon-cli", description="Salon CLI")


@pytest.fixture
def subparsers_action(
    cli_parser: argparse.ArgumentParser,
) -> argparse._SubParsersAction[argparse.ArgumentParser]:
    """Return the subparser action used to register commands."""

    return cli_parser.add_subparsers(dest="command")


@pytest.fixture
def command_table_entry() -> tuple[str, cli.CommandSpec]:
    """Provide a placeholder command table entry for dispatch tests."""

    def execute(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
        execute.__dict__["called"] = True
        return 0

    def register(
        subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
    ) -> argparse.ArgumentParser:
        return subparsers.add_parser("catalog-test")

    spec = cli.CommandSpec(
        name="catalog-test",
        help_text="help",
        register=register,
        execute=execute,
    )
    return "catalog-test", spec


# ---------------------------------------------------------------------------
# Core logic fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings(tmp_path: Path) -> data_manager.ConfigSettings:
    """Provide default configuration settings for runtime context tests."""

    return data_manager.ConfigSettings(
        data_file=tmp_path / "salon_master_data.xlsx",
        salon_name="Test Salon",
        schema_version=constants.EXPECTED_SCHEMA_VERSION,
    )


@pytest.fixture
def workbook() -> Mock:
    """Return a mock workbook object for business logic tests."""

    return Mock(name="workbook")


@pytest.fixture
def context(settings: data_manager.ConfigSettings, workbook: Mock) -> core_logic.RuntimeContext:
    """Assemble a runtime context from injected settings and workbook mocks."""

    return core_logic.RuntimeContext(settings=settings, workbook=workbook)
