"""Command-line entry points for the salon ledger.

This module only wires argparse and translates arguments into the command
objects consumed by the business layer. Output formatting for listings and
the dashboard lives here as well, since it is presentation.
"""

from __future__ import annotations

import argparse
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Mapping, MutableMapping, Optional, Sequence

from . import core_logic, data_manager, log
from .constants import PaymentMethod, ServiceType
from .reporting import LedgerSummary
from .settlement import StaffSettlement


@dataclass(frozen=True)
class CommandSpec:
    """Describe how a CLI sub-command is configured and executed."""

    name: str
    help_text: str
    register: Callable[[argparse._SubParsersAction[argparse.ArgumentParser]], argparse.ArgumentParser]
    execute: Callable[[core_logic.RuntimeContext, argparse.Namespace], int]
    writes: bool = False


def build_parser() -> argparse.ArgumentParser:
    """Construct the top-level CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="salon-cli",
        description="Record salon services and review the Salon Ledger dashboard.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Optional path to config.ini (searched upward from the working directory by default).",
    )
    return parser


def configure_subcommands(
    parser: argparse.ArgumentParser,
) -> Mapping[str, CommandSpec]:
    """Wire all CLI sub-commands onto the supplied parser."""
    subparsers = parser.add_subparsers(dest="command", required=True, title="commands")
    write_specs = register_write_commands(subparsers)
    read_specs = register_read_commands(subparsers)
    return build_command_table([*write_specs.values(), *read_specs.values()])


def register_write_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare commands that change the service log."""
    specs = {
        "add-service": register_add_service_command(subparsers),
        "remove-service": register_remove_service_command(subparsers),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def register_read_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare read-only commands such as listings and the dashboard."""
    specs = {
        "list": register_list_command(subparsers),
        "summary": register_summary_command(subparsers),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def register_add_service_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``add-service``."""
    name = "add-service"
    help_text = "Record a service performed for a client."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--client", required=True)
        parser.add_argument(
            "--service-type",
            choices=[member.value for member in ServiceType],
            required=True,
        )
        parser.add_argument("--price", type=int, required=True)
        parser.add_argument(
            "--payment-method",
            choices=[member.value for member in PaymentMethod],
            required=True,
        )
        parser.add_argument("--staff", required=True)
        parser.add_argument("--notes", dest="notes", default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_add_service, writes=True)


def register_remove_service_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``remove-service``."""
    name = "remove-service"
    help_text = "Delete a service record by id."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--record-id", type=int, required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_remove_service, writes=True)


def register_list_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``list``."""
    name = "list"
    help_text = "List recorded services, newest first."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--search", default="", help="Only show clients whose name contains this text.")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_list)


def register_summary_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``summary``."""
    name = "summary"
    help_text = "Show today's and this month's revenue and staff settlements."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_summary)


def load_runtime_context(config_path: Optional[Path] = None) -> core_logic.RuntimeContext:
    """Resolve the runtime context, searching upward for config.ini when no path is given."""
    target = Path(config_path) if config_path is not None else None
    return core_logic.load_runtime_context(target)


def dispatch_command(
    context: core_logic.RuntimeContext,
    args: argparse.Namespace,
    command_table: Mapping[str, CommandSpec],
) -> int:
    """Dispatch the parsed arguments to the configured executor."""
    if not hasattr(args, "command") or args.command is None:
        raise KeyError("No command specified")
    spec = command_table.get(args.command)
    if spec is None:
        raise KeyError(f"Unknown command: {args.command}")
    return spec.execute(context, args)


def build_command_table(
    specs: Iterable[CommandSpec],
) -> MutableMapping[str, CommandSpec]:
    """Build an index of command specifications keyed by command name."""
    table: Dict[str, CommandSpec] = {}
    for spec in specs:
        if spec.name in table:
            raise ValueError(f"Duplicate command name: {spec.name}")
        table[spec.name] = spec
    return table


def translate_add_service(args: argparse.Namespace) -> core_logic.ServiceCommand:
    """Translate CLI args into a service command object."""
    return core_logic.ServiceCommand(
        client=args.client,
        service_type=ServiceType(args.service_type),
        price=args.price,
        payment_method=PaymentMethod(args.payment_method),
        staff=args.staff,
        notes=args.notes,
    )


def run_add_service(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Record a service via the BLL and echo its id."""
    command = translate_add_service(args)
    record = core_logic.record_service(context, command)
    print(f"Recorded service {record.record_id}")
    return 0


def run_remove_service(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Remove a service via the BLL."""
    record = core_logic.remove_service(context, args.record_id)
    print(f"Removed service {record.record_id} ({record.client})")
    return 0


def run_list(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Print services matching the optional client search."""
    records = core_logic.search_services(context, getattr(args, "search", "") or "")
    if not records:
        print("No services recorded.")
        return 0
    for record in records:
        print(format_service(record))
    return 0


def run_summary(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Print the dashboard for the current instant."""
    summary = core_logic.build_dashboard(context)
    print("\n".join(format_summary(summary, salon_name=context.settings.salon_name)))
    return 0


def format_service(record: data_manager.ServiceRecord) -> str:
    """One-line rendering of a service record."""
    line = (
        f"{record.record_id}  {record.date_iso[:10]}  {record.client}  "
        f"{record.service_type}  {record.price}  {record.payment_method}  {record.staff}"
    )
    if record.notes:
        line += f"  ({record.notes})"
    return line


def format_summary(summary: LedgerSummary, *, salon_name: str = "") -> List[str]:
    """Render a :class:`LedgerSummary` as printable lines."""
    title = f"{salon_name} - {summary.month_name}" if salon_name else summary.month_name
    lines = [
        title,
        f"Today: {summary.today_count} services, {summary.income_today}"
        f" (Cash {summary.cash_today}, MobileWallet {summary.mobile_wallet_today})",
        f"This month: {summary.month_count} services, {summary.income_month}",
        f"Best day this month: {summary.max_daily}",
        "Staff earnings today:",
    ]
    lines.extend(format_settlements(summary.staff_earnings))
    lines.append(f"Staff earnings in {summary.month_name}:")
    lines.extend(format_settlements(summary.monthly_staff_earnings))
    for staff_id, gross in summary.unassigned_gross:
        lines.append(f"  {staff_id} [no commission rule]: gross this month {gross}")
    return lines


def format_settlements(settlements: Iterable[StaffSettlement]) -> List[str]:
    """Indented lines, one per staff settlement."""
    lines = []
    for settlement in settlements:
        owner = " [owner]" if settlement.is_owner else ""
        lines.append(
            f"  {settlement.staff_id}{owner}: gross {settlement.gross},"
            f" net {settlement.net_payout} ({settlement.note})"
        )
    return lines


def handle_cli_error(error: Exception) -> int:
    """Convert raised exceptions into user-friendly exit codes."""
    if isinstance(error, core_logic.BusinessRuleViolation):
        log.error("%s", error)
        return 2
    if isinstance(error, FileNotFoundError):
        log.error("%s", error)
        return 3
    log.error("%s", error)
    return 1


def persist_workbook(context: core_logic.RuntimeContext) -> None:
    """Persist workbook changes after successful execution."""
    try:
        core_logic.persist_context(context)
    except PermissionError as error:
        raise RuntimeError(str(error)) from error


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point that orchestrates parsing and execution."""
    parser = build_parser()
    command_table = configure_subcommands(parser)
    args = parser.parse_args(argv)
    try:
        context = load_runtime_context(getattr(args, "config", None))
        core_logic.ensure_schema_version(context)
        exit_code = dispatch_command(context, args, command_table)
        if exit_code == 0 and command_table[args.command].writes:
            persist_workbook(context)
        return exit_code
    except Exception as error:  # pragma: no cover - centralised error handler tested separately
        return handle_cli_error(error)
