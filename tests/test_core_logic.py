"""Unit tests verifying the business logic layer with a mocked data access layer."""

from __future__ import annotations

from dataclasses import replace
from datetime import UTC, datetime
from unittest.mock import Mock

import pytest

from salon_ledger import constants, core_logic, data_manager, reporting


def _record(record_id, *, client="Ana", price=10, staff="Jhon", date_iso="2026-10-19T10:00:00+00:00"):
    return data_manager.ServiceRecord(
        record_id=record_id,
        client=client,
        service_type=constants.ServiceType.CUT.value,
        price=price,
        payment_method=constants.PaymentMethod.CASH.value,
        staff=staff,
        date_iso=date_iso,
        notes=None,
    )


def _command(**overrides):
    values = {
        "client": "Maria",
        "service_type": constants.ServiceType.COLORING,
        "price": 120,
        "payment_method": constants.PaymentMethod.MOBILE_WALLET,
        "staff": constants.StaffMember.NELLY.value,
        "timestamp": datetime(2026, 10, 19, 14, 30, tzinfo=UTC),
        "notes": "  Copper tone ",
    }
    values.update(overrides)
    return core_logic.ServiceCommand(**values)


# ---------------------------------------------------------------------------
# Runtime/context management
# ---------------------------------------------------------------------------


def test_load_runtime_context_returns_context(monkeypatch, tmp_path):
    """load_runtime_context should assemble settings and workbook into a context."""

    config_path = tmp_path / "config.ini"
    parser = Mock(name="parser")
    parsed_settings = data_manager.ConfigSettings(
        data_file=tmp_path / "salon.xlsx",
        salon_name="Salon",
        schema_version=constants.EXPECTED_SCHEMA_VERSION,
    )
    workbook = Mock(name="workbook")

    find_config_file = Mock(return_value=config_path)
    read_config = Mock(return_value=parser)
    parse_settings = Mock(return_value=parsed_settings)
    open_workbook = Mock(return_value=workbook)

    monkeypatch.setattr(data_manager, "find_config_file", find_config_file)
    monkeypatch.setattr(data_manager, "read_config", read_config)
    monkeypatch.setattr(data_manager, "parse_settings", parse_settings)
    monkeypatch.setattr(data_manager, "open_workbook", open_workbook)

    context = core_logic.load_runtime_context(config_path)

    assert context.settings is parsed_settings
    assert context.workbook is workbook
    find_config_file.assert_called_once_with(config_path)
    read_config.assert_called_once_with(config_path.resolve())
    parse_settings.assert_called_once_with(parser, base_path=config_path.resolve().parent)
    open_workbook.assert_called_once_with(parsed_settings.data_file)


def test_ensure_schema_version_rejects_mismatch(context):
    """Schema mismatches should surface a RuntimeError."""

    bad_settings = replace(context.settings, schema_version="0.9")
    bad_context = core_logic.RuntimeContext(settings=bad_settings, workbook=context.workbook)
    with pytest.raises(RuntimeError):
        core_logic.ensure_schema_version(bad_context)


def test_ensure_schema_version_accepts_expected(context):
    core_logic.ensure_schema_version(context)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


def test_list_services_returns_rows_in_sheet_order(monkeypatch, context):
    records = [_record(1), _record(2), _record(3)]
    iter_mock = Mock(return_value=records)
    monkeypatch.setattr(data_manager, "iter_services", iter_mock)

    assert [r.record_id for r in core_logic.list_services(context)] == [1, 2, 3]
    assert [r.record_id for r in core_logic.list_services(context, newest_first=True)] == [3, 2, 1]
    iter_mock.assert_called_once_with(context.workbook)


def test_list_services_returns_independent_copies(monkeypatch, context):
    monkeypatch.setattr(data_manager, "iter_services", Mock(return_value=[_record(1)]))

    first = core_logic.list_services(context)
    first.clear()

    assert len(core_logic.list_services(context)) == 1


def test_get_service_returns_match(monkeypatch, context):
    monkeypatch.setattr(data_manager, "iter_services", Mock(return_value=[_record(7, client="Lina")]))

    assert core_logic.get_service(context, 7).client == "Lina"


def test_get_service_missing_raises(monkeypatch, context):
    monkeypatch.setattr(data_manager, "iter_services", Mock(return_value=[]))

    with pytest.raises(core_logic.MissingReferenceError):
        core_logic.get_service(context, 99)


def test_search_services_matches_client_case_insensitively(monkeypatch, context):
    records = [_record(1, client="Ana Ruiz"), _record(2, client="Beatriz"), _record(3, client="mariana")]
    monkeypatch.setattr(data_manager, "iter_services", Mock(return_value=records))

    result = core_logic.search_services(context, "ANA")

    assert [r.record_id for r in result] == [3, 1]


def test_search_services_empty_term_returns_everything(monkeypatch, context):
    monkeypatch.setattr(data_manager, "iter_services", Mock(return_value=[_record(1), _record(2)]))

    assert len(core_logic.search_services(context, "")) == 2


# ---------------------------------------------------------------------------
# Intake
# ---------------------------------------------------------------------------


def test_record_service_appends_record(monkeypatch, context):
    monkeypatch.setattr(data_manager, "iter_services", Mock(return_value=[]))
    append_mock = Mock()
    monkeypatch.setattr(data_manager, "append_service", append_mock)

    record = core_logic.record_service(context, _command())

    append_mock.assert_called_once_with(context.workbook, record)
    assert record.record_id == int(datetime(2026, 10, 19, 14, 30, tzinfo=UTC).timestamp() * 1000)
    assert record.client == "Maria"
    assert record.service_type == "Coloring"
    assert record.payment_method == "MobileWallet"
    assert record.staff == "Nelly"
    assert record.price == 120
    assert record.date_iso == "2026-10-19T14:30:00+00:00"
    assert record.notes == "Copper tone"


def test_record_service_refreshes_cache(monkeypatch, context):
    existing = _record(1)
    iter_mock = Mock(side_effect=[[existing], [existing, _record(2)]])
    monkeypatch.setattr(data_manager, "iter_services", iter_mock)
    monkeypatch.setattr(data_manager, "append_service", Mock())

    assert len(core_logic.list_services(context)) == 1
    core_logic.record_service(context, _command())
    assert len(core_logic.list_services(context)) == 2
    assert iter_mock.call_count == 2


def test_record_service_ids_stay_unique(monkeypatch, context):
    """A clock value at or below an existing id is bumped past the maximum."""

    when = datetime(2026, 10, 19, 14, 30, tzinfo=UTC)
    clashing_id = int(when.timestamp() * 1000)
    monkeypatch.setattr(data_manager, "iter_services", Mock(return_value=[_record(clashing_id)]))
    monkeypatch.setattr(data_manager, "append_service", Mock())

    record = core_logic.record_service(context, _command(timestamp=when))

    assert record.record_id == clashing_id + 1


@pytest.mark.parametrize("client", ["", "   "])
def test_record_service_requires_client(monkeypatch, context, client):
    monkeypatch.setattr(data_manager, "iter_services", Mock(return_value=[]))

    with pytest.raises(core_logic.BusinessRuleViolation):
        core_logic.record_service(context, _command(client=client))


def test_record_service_rejects_unknown_staff(monkeypatch, context):
    monkeypatch.setattr(data_manager, "iter_services", Mock(return_value=[]))

    with pytest.raises(core_logic.BusinessRuleViolation):
        core_logic.record_service(context, _command(staff="Guest"))


def test_record_service_rejects_raw_strings_for_enums(monkeypatch, context):
    monkeypatch.setattr(data_manager, "iter_services", Mock(return_value=[]))

    with pytest.raises(core_logic.BusinessRuleViolation):
        core_logic.record_service(context, _command(payment_method="Card"))
    with pytest.raises(core_logic.BusinessRuleViolation):
        core_logic.record_service(context, _command(service_type="Massage"))


def test_record_service_rejects_negative_price(monkeypatch, context):
    monkeypatch.setattr(data_manager, "iter_services", Mock(return_value=[]))
    append_mock = Mock()
    monkeypatch.setattr(data_manager, "append_service", append_mock)

    with pytest.raises(ValueError):
        core_logic.record_service(context, _command(price=-1))
    append_mock.assert_not_called()


def test_record_service_uses_current_time_when_missing(monkeypatch, context):
    moment = datetime(2026, 10, 19, 9, 0, tzinfo=UTC)

    class _FixedDateTime:
        @staticmethod
        def now(tz=None):
            assert tz is UTC
            return moment

    monkeypatch.setattr(core_logic, "datetime", _FixedDateTime)
    monkeypatch.setattr(data_manager, "iter_services", Mock(return_value=[]))
    monkeypatch.setattr(data_manager, "append_service", Mock())

    record = core_logic.record_service(context, _command(timestamp=None))

    assert record.date_iso == moment.isoformat()


def test_require_nonnegative_price_rejects_non_integers():
    with pytest.raises(ValueError):
        core_logic.require_nonnegative_price(12.5)  # type: ignore[arg-type]
    with pytest.raises(ValueError):
        core_logic.require_nonnegative_price(True)


def test_require_nonnegative_price_accepts_zero():
    core_logic.require_nonnegative_price(0)


def test_generate_record_id_uses_milliseconds():
    when = datetime(2026, 1, 1, tzinfo=UTC)

    assert core_logic.generate_record_id(when=when) == int(when.timestamp()) * 1000


# ---------------------------------------------------------------------------
# Removal
# ---------------------------------------------------------------------------


def test_remove_service_deletes_row(monkeypatch, context):
    monkeypatch.setattr(data_manager, "iter_services", Mock(return_value=[_record(5)]))
    delete_mock = Mock()
    monkeypatch.setattr(data_manager, "delete_service", delete_mock)

    removed = core_logic.remove_service(context, 5)

    assert removed.record_id == 5
    delete_mock.assert_called_once_with(context.workbook, 5)
    assert "services" not in context._cache


def test_remove_service_unknown_id_raises(monkeypatch, context):
    monkeypatch.setattr(data_manager, "iter_services", Mock(return_value=[]))
    delete_mock = Mock()
    monkeypatch.setattr(data_manager, "delete_service", delete_mock)

    with pytest.raises(core_logic.MissingReferenceError):
        core_logic.remove_service(context, 5)
    delete_mock.assert_not_called()


# ---------------------------------------------------------------------------
# Dashboard
# ---------------------------------------------------------------------------


def test_build_dashboard_feeds_snapshot_and_rules(monkeypatch, context):
    records = [_record(1, price=50), _record(2, price=33), _record(3, price=100, staff="Luz")]
    monkeypatch.setattr(data_manager, "iter_services", Mock(return_value=records))
    now = datetime(2026, 10, 19, 18, 0, tzinfo=UTC)

    summary = core_logic.build_dashboard(context, now)

    assert isinstance(summary, reporting.LedgerSummary)
    assert summary.income_today == 183
    earnings = {entry.staff_id: entry for entry in summary.staff_earnings}
    assert earnings["Jhon"].net_payout == 50
    assert earnings["Luz"].net_payout == 133


def test_build_dashboard_defaults_to_current_time(monkeypatch, context):
    monkeypatch.setattr(data_manager, "iter_services", Mock(return_value=[]))
    captured = {}
    sentinel = Mock(name="summary", income_today=0, today_count=0, income_month=0)

    def fake_build_summary(records, now, rules):
        captured["now"] = now
        captured["rules"] = rules
        return sentinel

    monkeypatch.setattr(reporting, "build_summary", fake_build_summary)

    assert core_logic.build_dashboard(context) is sentinel
    assert captured["now"].tzinfo is not None
    assert captured["rules"] == context.settings.commission_rules


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------


def test_persist_context_writes_to_disk(monkeypatch, context):
    save_mock = Mock()
    monkeypatch.setattr(data_manager, "save_workbook", save_mock)

    core_logic.persist_context(context)

    save_mock.assert_called_once_with(context.workbook, destination=context.settings.data_file)


def test_refresh_context_reloads_from_disk(monkeypatch, settings):
    new_workbook = Mock(name="fresh")
    refresh_mock = Mock(return_value=new_workbook)
    monkeypatch.setattr(data_manager, "refresh_workbook", refresh_mock)
    original = core_logic.RuntimeContext(settings=settings, workbook=Mock(name="old"))

    refreshed = core_logic.refresh_context(original)

    assert refreshed.workbook is new_workbook
    assert refreshed.settings is settings
    refresh_mock.assert_called_once_with(settings.data_file)
