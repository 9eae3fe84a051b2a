"""Command-line entry points for the sales tracker.

All orchestration in this module is limited to argparse wiring, translating
command-line arguments into calls on the access-control layer and printing the
results. Keeping the CLI thin ensures the same parser configuration can be
reused by tests, scripts, or any alternative front-end.
"""

from __future__ import annotations

import argparse
import getpass
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Callable, Dict, Iterable, Mapping, MutableMapping, Optional, Sequence

from . import core_logic, log
from .constants import OrderStatus, PaymentStatus, SaleSortKey, UserSortKey
from .records import SaleRecord

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_REFUSED = 2
EXIT_MISSING_FILE = 3
EXIT_BAD_CREDENTIALS = 4

Executor = Callable[[core_logic.RuntimeContext, core_logic.Session, argparse.Namespace], int]


@dataclass(frozen=True)
class CommandSpec:
    """Describe how a CLI sub-command is configured and executed."""

    name: str
    help_text: str
    register: Callable[[argparse._SubParsersAction[argparse.ArgumentParser]], argparse.ArgumentParser]
    execute: Executor
    writes: bool = False


def build_parser() -> argparse.ArgumentParser:
    """Construct the top-level CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="sales-cli",
        description="Command-line tools for the Sales Tracker workbook.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Optional path to config.ini (defaults to a search from the current directory).",
    )
    parser.add_argument("--username", default=None, help="Account to act as (guest when omitted).")
    parser.add_argument("--password", default=None, help="Password for --username (prompted when omitted).")
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
    """Declare commands that change sales or accounts."""
    specs = {
        "register": register_register_command(subparsers),
        "delete-user": register_delete_user_command(subparsers),
        "add-sale": register_add_sale_command(subparsers),
        "update-sale": register_update_sale_command(subparsers),
        "delete-sale": register_delete_sale_command(subparsers),
        "undo": register_undo_command(subparsers),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def register_read_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare read-only commands such as searches and reports."""
    specs = {
        "show-sale": register_show_sale_command(subparsers),
        "list": register_list_command(subparsers),
        "search": register_search_command(subparsers),
        "find": register_find_command(subparsers),
        "sort": register_sort_command(subparsers),
        "recent": register_recent_command(subparsers),
        "dashboard": register_dashboard_command(subparsers),
        "revenue": register_revenue_command(subparsers),
        "users": register_users_command(subparsers),
        "find-user": register_find_user_command(subparsers),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def _add_sale_detail_arguments(parser: argparse.ArgumentParser, *, required: bool) -> None:
    parser.add_argument("--customer", required=required)
    parser.add_argument("--item", required=required)
    parser.add_argument("--unit-price", required=required)
    parser.add_argument("--quantity", type=int, required=required)
    parser.add_argument(
        "--status",
        choices=[member.value for member in OrderStatus],
        default=OrderStatus.PENDING.value if required else None,
    )
    parser.add_argument(
        "--payment-status",
        choices=[member.value for member in PaymentStatus],
        default=PaymentStatus.UNPAID.value if required else None,
    )
    parser.add_argument("--contact", default="" if required else None)


def register_register_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``register``."""
    name = "register"
    help_text = "Create a standard user account."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--new-username", required=True)
        parser.add_argument("--new-password", required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_register, writes=True)


def register_delete_user_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``delete-user``."""
    name = "delete-user"
    help_text = "Delete a user and every sale they own (admin only)."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--target-username", required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_delete_user, writes=True)


def register_add_sale_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``add-sale``."""
    name = "add-sale"
    help_text = "Record a new sale."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        _add_sale_detail_arguments(parser, required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_add_sale, writes=True)


def register_update_sale_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``update-sale``."""
    name = "update-sale"
    help_text = "Change the details of an existing sale."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--sale-id", required=True)
        _add_sale_detail_arguments(parser, required=False)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_update_sale, writes=True)


def register_delete_sale_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``delete-sale``."""
    name = "delete-sale"
    help_text = "Delete a sale (restorable with undo)."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--sale-id", required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_delete_sale, writes=True)


def register_undo_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``undo``."""
    name = "undo"
    help_text = "Restore the most recently deleted sale."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_undo, writes=True)


def register_show_sale_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``show-sale``."""
    name = "show-sale"
    help_text = "Display one sale by id."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--sale-id", required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_show_sale)


def register_list_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``list``."""
    name = "list"
    help_text = "Display every sale visible to the current user."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_list)


def register_search_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``search``."""
    name = "search"
    help_text = "Search sales by customer name, order status or payment status."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        criteria = parser.add_mutually_exclusive_group(required=True)
        criteria.add_argument("--customer")
        criteria.add_argument("--status")
        criteria.add_argument("--payment-status")
        parser.add_argument("--all", dest="all_records", action="store_true", help="Search every sale (admin only).")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_search)


def register_find_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``find``."""
    name = "find"
    help_text = "Binary search for a sale id (case-insensitive)."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--sale-id", required=True)
        parser.add_argument("--all", dest="all_records", action="store_true", help="Search every sale (admin only).")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_find)


def register_sort_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``sort``."""
    name = "sort"
    help_text = "Display visible sales sorted by date, price or quantity."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--by", choices=[member.value for member in SaleSortKey], required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_sort)


def register_recent_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``recent``."""
    name = "recent"
    help_text = "Display the most recently added sales."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_recent)


def register_dashboard_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``dashboard``."""
    name = "dashboard"
    help_text = "Display total orders, pending orders and items sold."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_dashboard)


def register_revenue_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``revenue``."""
    name = "revenue"
    help_text = "Display total revenue of the visible sales."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_revenue)


def register_users_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``users``."""
    name = "users"
    help_text = "Display per-user statistics (admin only)."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--sort-by", choices=[member.value for member in UserSortKey], default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_users)


def register_find_user_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``find-user``."""
    name = "find-user"
    help_text = "Look up one user's statistics (admin only)."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--target-username", required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_find_user)


def load_runtime_context(config_path: Optional[Path] = None) -> core_logic.RuntimeContext:
    """Resolve the runtime context for CLI operations."""
    context = core_logic.load_runtime_context(config_path)
    core_logic.ensure_schema_version(context)
    return context


def authenticate(
    context: core_logic.RuntimeContext,
    username: Optional[str],
    password: Optional[str],
) -> Optional[core_logic.Session]:
    """Log in when a username is given; otherwise act as guest."""
    if username is None:
        return core_logic.GUEST_SESSION
    if password is None:
        password = getpass.getpass(f"Password for {username}: ")
    return core_logic.login(context, username, password)


def dispatch_command(
    context: core_logic.RuntimeContext,
    session: core_logic.Session,
    args: argparse.Namespace,
    command_table: Mapping[str, CommandSpec],
) -> int:
    """Dispatch the parsed arguments to the configured executor."""
    if not hasattr(args, "command") or args.command is None:
        raise KeyError("No command specified")
    spec = command_table.get(args.command)
    if spec is None:
        raise KeyError(f"Unknown command: {args.command}")
    return spec.execute(context, session, args)


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


def parse_money(raw: str) -> Decimal:
    """Parse a monetary argument, raising ``InvalidSaleError`` on bad input."""
    try:
        return Decimal(raw)
    except InvalidOperation as exc:
        raise core_logic.InvalidSaleError(f"Invalid amount: {raw!r}") from exc


def translate_add_sale(args: argparse.Namespace) -> core_logic.SaleCommand:
    """Translate CLI args into a sale command object."""
    return core_logic.SaleCommand(
        customer_name=args.customer,
        item=args.item,
        unit_price=parse_money(args.unit_price),
        quantity=args.quantity,
        status=OrderStatus(args.status),
        payment_status=PaymentStatus(args.payment_status),
        contact_number=args.contact,
    )


def translate_update_sale(args: argparse.Namespace, existing: SaleRecord) -> core_logic.SaleCommand:
    """Translate CLI args into a replacement command, defaulting to ``existing``."""
    return core_logic.SaleCommand(
        customer_name=args.customer if args.customer is not None else existing.customer_name,
        item=args.item if args.item is not None else existing.item,
        unit_price=parse_money(args.unit_price) if args.unit_price is not None else existing.unit_price,
        quantity=args.quantity if args.quantity is not None else existing.quantity,
        status=OrderStatus(args.status) if args.status is not None else existing.status,
        payment_status=(
            PaymentStatus(args.payment_status) if args.payment_status is not None else existing.payment_status
        ),
        contact_number=args.contact if args.contact is not None else existing.contact_number,
        sale_date=existing.sale_date,
    )


def render_sale(record: SaleRecord) -> str:
    """Format one sale as a single output line."""
    return (
        f"{record.sale_id} | {record.sale_date:%Y-%m-%d %H:%M} | {record.customer_name} | {record.item} | "
        f"{record.quantity} x {record.unit_price} = {record.total} | {record.status.value} | "
        f"{record.payment_status.value} | {record.contact_number} | {record.owner or '-'}"
    )


def print_sales(sales: Sequence[SaleRecord]) -> None:
    for record in sales:
        print(render_sale(record))
    print(f"{len(sales)} sale(s)")


def run_register(context: core_logic.RuntimeContext, session: core_logic.Session, args: argparse.Namespace) -> int:
    """Execute the registration workflow."""
    if not core_logic.register_user(context, args.new_username, args.new_password):
        return EXIT_REFUSED
    print(f"Registered '{args.new_username}'.")
    return EXIT_OK


def run_delete_user(context: core_logic.RuntimeContext, session: core_logic.Session, args: argparse.Namespace) -> int:
    """Execute the delete-user workflow."""
    if not core_logic.delete_user(context, session, args.target_username):
        return EXIT_REFUSED
    print(f"Deleted '{args.target_username}'.")
    return EXIT_OK


def run_add_sale(context: core_logic.RuntimeContext, session: core_logic.Session, args: argparse.Namespace) -> int:
    """Execute the add-sale workflow."""
    command = translate_add_sale(args)
    record = core_logic.record_sale(context, session, command)
    if record is None:
        return EXIT_REFUSED
    print(render_sale(record))
    return EXIT_OK


def run_update_sale(context: core_logic.RuntimeContext, session: core_logic.Session, args: argparse.Namespace) -> int:
    """Execute the update-sale workflow."""
    existing = core_logic.get_sale(context, session, args.sale_id)
    if existing is None:
        return EXIT_REFUSED
    command = translate_update_sale(args, existing)
    if not core_logic.update_sale(context, session, args.sale_id, command):
        return EXIT_REFUSED
    print(render_sale(core_logic.get_sale(context, session, args.sale_id)))
    return EXIT_OK


def run_delete_sale(context: core_logic.RuntimeContext, session: core_logic.Session, args: argparse.Namespace) -> int:
    """Execute the delete-sale workflow."""
    if not core_logic.delete_sale(context, session, args.sale_id):
        return EXIT_REFUSED
    print(f"Deleted '{args.sale_id}'.")
    return EXIT_OK


def run_undo(context: core_logic.RuntimeContext, session: core_logic.Session, args: argparse.Namespace) -> int:
    """Execute the undo workflow."""
    restored = core_logic.undo_delete(context, session)
    if restored is None:
        return EXIT_REFUSED
    print(f"Restored {render_sale(restored)}")
    return EXIT_OK


def run_show_sale(context: core_logic.RuntimeContext, session: core_logic.Session, args: argparse.Namespace) -> int:
    record = core_logic.get_sale(context, session, args.sale_id)
    if record is None:
        return EXIT_REFUSED
    print(render_sale(record))
    return EXIT_OK


def run_list(context: core_logic.RuntimeContext, session: core_logic.Session, args: argparse.Namespace) -> int:
    print_sales(core_logic.list_sales(context, session))
    return EXIT_OK


def run_search(context: core_logic.RuntimeContext, session: core_logic.Session, args: argparse.Namespace) -> int:
    """Execute whichever search criterion was supplied."""
    if args.customer is not None:
        results = core_logic.search_by_customer_name(context, session, args.customer, all_records=args.all_records)
    elif args.status is not None:
        results = core_logic.search_by_status(context, session, args.status, all_records=args.all_records)
    else:
        results = core_logic.search_by_payment_status(
            context, session, args.payment_status, all_records=args.all_records
        )
    print_sales(results)
    return EXIT_OK


def run_find(context: core_logic.RuntimeContext, session: core_logic.Session, args: argparse.Namespace) -> int:
    record = core_logic.binary_search_by_id(context, session, args.sale_id, all_records=args.all_records)
    if record is None:
        return EXIT_REFUSED
    print(render_sale(record))
    return EXIT_OK


def run_sort(context: core_logic.RuntimeContext, session: core_logic.Session, args: argparse.Namespace) -> int:
    print_sales(core_logic.sort_sales(context, session, args.by))
    return EXIT_OK


def run_recent(context: core_logic.RuntimeContext, session: core_logic.Session, args: argparse.Namespace) -> int:
    print_sales(core_logic.recent_sales(context, session))
    return EXIT_OK


def run_dashboard(context: core_logic.RuntimeContext, session: core_logic.Session, args: argparse.Namespace) -> int:
    total, pending, sold = core_logic.calculate_dashboard_stats(context, session).display_values()
    print(f"Total orders: {total}")
    print(f"Pending orders: {pending}")
    print(f"Items sold: {sold}")
    return EXIT_OK


def run_revenue(context: core_logic.RuntimeContext, session: core_logic.Session, args: argparse.Namespace) -> int:
    print(f"Total revenue: {core_logic.calculate_total_revenue(context, session)}")
    return EXIT_OK


def run_users(context: core_logic.RuntimeContext, session: core_logic.Session, args: argparse.Namespace) -> int:
    """Execute the user statistics report."""
    if not session.is_admin:
        log.error("The users report requires an admin account")
        return EXIT_REFUSED
    for summary in core_logic.list_user_summaries(context, session, sort_by=args.sort_by):
        print(
            f"{summary.username} | orders={summary.total_orders} | "
            f"pending={summary.pending_orders} | items={summary.items_sold}"
        )
    return EXIT_OK


def run_find_user(context: core_logic.RuntimeContext, session: core_logic.Session, args: argparse.Namespace) -> int:
    summary = core_logic.binary_search_user(context, session, args.target_username)
    if summary is None:
        return EXIT_REFUSED
    print(
        f"{summary.username} ({summary.role.value}) | orders={summary.total_orders} | "
        f"pending={summary.pending_orders} | items={summary.items_sold}"
    )
    return EXIT_OK


def handle_cli_error(error: Exception) -> int:
    """Convert raised exceptions into user-friendly exit codes."""
    if isinstance(error, core_logic.InvalidSaleError):
        log.error("%s", error)
        return EXIT_REFUSED
    if isinstance(error, FileNotFoundError):
        log.error("%s", error)
        return EXIT_MISSING_FILE
    log.error("%s", error)
    return EXIT_ERROR


def persist_workbook(context: core_logic.RuntimeContext) -> None:
    """Persist workbook changes after successful execution."""
    try:
        core_logic.persist_context(context)
    except PermissionError as error:
        raise RuntimeError(str(error)) from error


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point that orchestrates parsing, login and execution."""
    parser = build_parser()
    command_table = configure_subcommands(parser)
    args = parser.parse_args(argv)
    try:
        context = load_runtime_context(getattr(args, "config", None))
        session = authenticate(context, args.username, args.password)
        if session is None:
            log.error("Invalid credentials for '%s'", args.username)
            return EXIT_BAD_CREDENTIALS
        exit_code = dispatch_command(context, session, args, command_table)
        if exit_code == EXIT_OK and command_table[args.command].writes:
            persist_workbook(context)
        return exit_code
    except Exception as error:  # pragma: no cover - centralised error handler tested separately
        return handle_cli_error(error)
