"""Access-control layer for the sales tracker.

This module contains the rule engine that sits between callers and the record
store. Every operation receives an explicit :class:`Session`; the layer decides
what that session may see or change and delegates the actual bookkeeping to
:mod:`sales_tracker.records` and :mod:`sales_tracker.accounts`.

Expected failures (unknown ids, denied access, malformed input, taken
usernames) never raise. They are logged and reported as ``False``, ``None`` or
an empty list. Denied reads look exactly like missing records so callers cannot
probe for other users' sales.
"""

from __future__ import annotations

import functools
import secrets
import threading
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, TypeVar, Union

from . import accounts, data_manager, log, records
from .accounts import UserAccount
from .constants import (
    ADMIN_USERNAME,
    EXPECTED_SCHEMA_VERSION,
    SYSTEM_OWNER,
    OrderStatus,
    PaymentStatus,
    Role,
    SaleSortKey,
    UserSortKey,
)
from .records import SaleRecord
from .sample_data import SAMPLE_SALES, SAMPLE_USERS


class InvalidSaleError(ValueError):
    """Raised when a sale command carries malformed values."""


@dataclass(frozen=True)
class Session:
    """Identity a caller acts under.

    Sessions are issued by :func:`login` and only honoured while their token is
    registered with the context that issued them.
    """

    username: Optional[str]
    role: Optional[Role]
    token: Optional[str] = field(default=None, repr=False)

    @property
    def is_guest(self) -> bool:
        return self.username is None

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN


GUEST_SESSION = Session(username=None, role=None)


@dataclass(frozen=True)
class SaleCommand:
    """User intent for creating or replacing a sale."""

    customer_name: str
    item: str
    unit_price: Decimal
    quantity: int
    status: OrderStatus = OrderStatus.PENDING
    payment_status: PaymentStatus = PaymentStatus.UNPAID
    contact_number: str = ""
    sale_date: Optional[datetime] = None


@dataclass(frozen=True)
class DashboardStats:
    """Order counters shown on the dashboard."""

    total_orders: int
    pending_orders: int
    items_sold: int

    def display_values(self) -> tuple[str, str, str]:
        return (str(self.total_orders), str(self.pending_orders), str(self.items_sold))


@dataclass(frozen=True)
class UserSummary:
    """Per-user statistics derived from the current sales."""

    username: str
    role: Role
    total_orders: int
    pending_orders: int
    items_sold: int


@dataclass(frozen=True)
class RuntimeContext:
    """Container for settings and the shared state every operation works on."""

    settings: data_manager.ConfigSettings
    store: records.RecordStore = field(default_factory=records.RecordStore)
    registry: accounts.UserRegistry = field(default_factory=accounts.UserRegistry)
    _sessions: Dict[str, Session] = field(default_factory=dict, repr=False, compare=False)
    _lock: threading.RLock = field(default_factory=threading.RLock, repr=False, compare=False)


_F = TypeVar("_F", bound=Callable[..., object])


def _synchronized(func: _F) -> _F:
    """Run ``func`` while holding the context lock passed as first argument."""

    @functools.wraps(func)
    def wrapper(context: RuntimeContext, *args, **kwargs):
        with context._lock:
            return func(context, *args, **kwargs)

    return wrapper  # type: ignore[return-value]


def _resolve_timestamp(candidate: Optional[datetime]) -> datetime:
    """Return ``candidate`` or, when ``None``, the current UTC time."""

    return candidate if candidate is not None else datetime.now(UTC)


def _resolve_session(context: RuntimeContext, session: Session) -> Session:
    """Map unknown, forged or logged-out sessions onto :data:`GUEST_SESSION`."""

    if session.is_guest:
        return GUEST_SESSION
    if session.token is None or context._sessions.get(session.token) != session:
        log.warning("Rejected inactive session for '%s'", session.username)
        return GUEST_SESSION
    return session


def _is_authorized(session: Session, record: SaleRecord) -> bool:
    """Admins may touch any sale; everyone else only the sales they own."""

    if session.is_admin:
        return True
    if session.is_guest or record.owner is None:
        return False
    return record.owner == session.username


def _owned_sales(context: RuntimeContext, session: Session) -> List[SaleRecord]:
    if session.is_guest:
        return []
    return [record for record in context.store.sales if record.owner == session.username]


def _visible_sales(context: RuntimeContext, session: Session) -> List[SaleRecord]:
    if session.is_admin:
        return records.list_sales(context.store)
    return _owned_sales(context, session)


def _search_source(
    context: RuntimeContext,
    session: Session,
    *,
    all_records: bool,
    operation: str,
) -> Optional[List[SaleRecord]]:
    """Pick the record set a search runs over.

    ``all_records`` requests the unrestricted form, which only admins may use.
    Otherwise the search is narrowed to the session's own sales. Returns
    ``None`` when the unrestricted form is refused.
    """

    if not all_records:
        return _owned_sales(context, session)
    if not session.is_admin:
        log.warning(
            "Unauthorized unrestricted %s attempted by '%s'",
            operation,
            session.username or "guest",
        )
        return None
    return records.list_sales(context.store)


def _bisect(items: Sequence[object], target: str, key: Callable[[object], str]) -> Optional[object]:
    """Classic bisection over ``items`` already sorted by lower-cased ``key``."""

    target = target.lower()
    low = 0
    high = len(items) - 1
    while low <= high:
        mid = low + (high - low) // 2
        candidate = key(items[mid]).lower()
        if candidate == target:
            return items[mid]
        if candidate < target:
            low = mid + 1
        else:
            high = mid - 1
    return None


# ---------------------------------------------------------------------------
# Context lifecycle
# ---------------------------------------------------------------------------


def default_settings() -> data_manager.ConfigSettings:
    """Settings for a context that is not backed by ``config.ini``."""

    return data_manager.ConfigSettings(
        data_file=Path.cwd() / "sales_tracker.xlsx",
        store_name="Sales Tracker",
        schema_version=EXPECTED_SCHEMA_VERSION,
    )


def create_runtime_context(
    settings: Optional[data_manager.ConfigSettings] = None,
    *,
    admin_password: Optional[str] = None,
) -> RuntimeContext:
    """Create an empty in-memory context.

    Args:
        settings (data_manager.ConfigSettings | None): Settings to attach.
            Defaults to :func:`default_settings`.
        admin_password (str | None): When given, the ``admin`` account is
            created with this password.

    Returns:
        RuntimeContext: Context with an empty store and registry.
    """

    context = RuntimeContext(settings=settings or default_settings())
    if admin_password is not None:
        ensure_admin_account(context, admin_password)
    return context


@_synchronized
def ensure_admin_account(context: RuntimeContext, password: str) -> bool:
    """Create the ``admin`` account unless it already exists."""

    if accounts.find_account(context.registry, ADMIN_USERNAME) is not None:
        return False
    try:
        accounts.validate_password(password)
    except ValueError as exc:
        log.error("Cannot create admin account: %s", exc)
        return False
    account = UserAccount(
        username=ADMIN_USERNAME,
        password_hash=accounts.hash_password(password, rounds=context.settings.bcrypt_rounds),
        role=Role.ADMIN,
    )
    accounts.add_account(context.registry, account)
    log.info("Created admin account '%s'", ADMIN_USERNAME)
    return True


def load_runtime_context(config_path: Optional[Path] = None) -> RuntimeContext:
    """Load settings and the persisted snapshot into a fresh context.

    The helper resolves ``config.ini``, parses the settings and reads the
    snapshot workbook they point at. The store and registry are restored from
    the workbook; sessions never survive a reload.

    Args:
        config_path (Path | None): Optional override path for the configuration
            file. When omitted the data layer searches upward from the current
            working directory.

    Returns:
        RuntimeContext: Context reflecting the persisted state.

    Raises:
        FileNotFoundError: If the configuration file or workbook is missing.
        KeyError: When mandatory configuration options are missing.
        RuntimeError: If the workbook was written for another schema version.
    """

    located_config = data_manager.find_config_file(config_path)
    resolved_config = Path(located_config).expanduser().resolve()
    parser = data_manager.read_config(resolved_config)
    settings = data_manager.parse_settings(parser, base_path=resolved_config.parent)
    workbook = data_manager.open_workbook(settings.data_file)
    snapshot = data_manager.read_snapshot(workbook)

    if snapshot.schema_version is not None and snapshot.schema_version != EXPECTED_SCHEMA_VERSION:
        log.error(
            "Workbook schema mismatch: expected %s, found %s",
            EXPECTED_SCHEMA_VERSION,
            snapshot.schema_version,
        )
        raise RuntimeError(
            "Workbook schema mismatch: expected %s, found %s"
            % (EXPECTED_SCHEMA_VERSION, snapshot.schema_version)
        )

    context = RuntimeContext(settings=settings)
    records.restore_state(
        context.store,
        sales=snapshot.sales,
        deleted=snapshot.deleted,
        next_sequence=snapshot.next_sequence,
    )
    context.registry.accounts[:] = snapshot.users
    log.info("Loaded runtime context from workbook '%s'", settings.data_file)
    return context


def ensure_schema_version(context: RuntimeContext) -> None:
    """Validate the configured schema version before mutating state.

    Raises:
        RuntimeError: If the configuration declares a version other than
            ``EXPECTED_SCHEMA_VERSION``.
    """
    if context.settings.schema_version != EXPECTED_SCHEMA_VERSION:
        log.error(
            "Configured schema mismatch: expected %s, found %s",
            EXPECTED_SCHEMA_VERSION,
            context.settings.schema_version,
        )
        raise RuntimeError(
            "Configured schema mismatch: expected %s, found %s"
            % (EXPECTED_SCHEMA_VERSION, context.settings.schema_version)
        )

    log.debug("Schema version '%s' validated", context.settings.schema_version)


@_synchronized
def persist_context(context: RuntimeContext) -> None:
    """Write the store and registry to the configured workbook."""

    workbook = data_manager.build_snapshot_workbook(
        sales=records.list_sales(context.store),
        deleted=records.deleted_sales(context.store),
        users=accounts.list_accounts(context.registry),
        next_sequence=context.store.next_sequence,
        schema_version=context.settings.schema_version,
    )
    data_manager.save_workbook(workbook, destination=context.settings.data_file)
    log.info("Persisted workbook '%s'", context.settings.data_file)


# ---------------------------------------------------------------------------
# Accounts and sessions
# ---------------------------------------------------------------------------


@_synchronized
def register_user(context: RuntimeContext, username: str, password: str) -> bool:
    """Register a standard account.

    Args:
        context (RuntimeContext): Context owning the registry.
        username (str): Desired, case-sensitive username.
        password (str): Clear-text password; only its bcrypt hash is kept.

    Returns:
        bool: ``False`` when the username is malformed, reserved or taken, or
            the password is empty or too long for bcrypt.
    """

    try:
        accounts.validate_username(username)
    except ValueError as exc:
        log.warning("Registration refused for '%s': %s", username, exc)
        return False
    try:
        accounts.validate_password(password)
    except ValueError as exc:
        log.warning("Registration refused for '%s': %s", username, exc)
        return False
    if accounts.find_account(context.registry, username) is not None:
        log.warning("Registration refused: username '%s' already taken", username)
        return False

    account = UserAccount(
        username=username,
        password_hash=accounts.hash_password(password, rounds=context.settings.bcrypt_rounds),
        role=Role.STANDARD,
    )
    accounts.add_account(context.registry, account)
    log.info("Registered user '%s'", username)
    return True


@_synchronized
def login(context: RuntimeContext, username: str, password: str) -> Optional[Session]:
    """Authenticate and issue a session, or return ``None`` on bad credentials."""

    account = accounts.find_account(context.registry, username)
    if account is None or not accounts.verify_password(password, account.password_hash):
        log.warning("Login failed for '%s'", username)
        return None

    session = Session(username=account.username, role=account.role, token=secrets.token_urlsafe(16))
    context._sessions[session.token] = session
    log.info("User '%s' logged in", username)
    return session


@_synchronized
def logout(context: RuntimeContext, session: Session) -> Session:
    """End ``session`` and hand back the guest session."""

    if session.token is not None and context._sessions.pop(session.token, None) is not None:
        log.info("User '%s' logged out", session.username)
    return GUEST_SESSION


@_synchronized
def delete_user(context: RuntimeContext, session: Session, username: str) -> bool:
    """Remove a standard account together with every sale it owns.

    Only admin sessions may delete users, and admin accounts can never be
    deleted. Sessions held by the removed user stop working immediately. The
    cascaded sales are discarded rather than pushed onto the undo stack, and
    any of the user's sales already on the undo stack are dropped too.

    Returns:
        bool: ``True`` when the account was removed.
    """

    session = _resolve_session(context, session)
    if not session.is_admin:
        log.warning("Unauthorized delete-user attempt by '%s'", session.username or "guest")
        return False
    account = accounts.find_account(context.registry, username)
    if account is None:
        log.warning("Delete-user failed: user '%s' not found", username)
        return False
    if account.is_admin:
        log.warning("Refusing to delete admin account '%s'", username)
        return False

    removed = records.remove_sales_owned_by(context.store, username)
    purged = records.remove_deleted_owned_by(context.store, username)
    accounts.remove_account(context.registry, username)
    for token in [token for token, active in context._sessions.items() if active.username == username]:
        del context._sessions[token]
    log.info("Deleted user '%s', %d owned sales and %d undo entries", username, removed, purged)
    return True


# ---------------------------------------------------------------------------
# Sales CRUD
# ---------------------------------------------------------------------------


def require_positive_quantity(quantity: int) -> None:
    """Validate that a quantity is a strictly positive integer.

    Raises:
        InvalidSaleError: If ``quantity`` is not an ``int`` or is below one.
    """
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        log.error("Quantity validation failed: %r", quantity)
        raise InvalidSaleError("Quantity must be a positive whole number")


def require_nonnegative_money(amount: Decimal) -> None:
    """Validate that a monetary value is a finite, nonnegative decimal.

    Raises:
        InvalidSaleError: If ``amount`` is not a finite ``Decimal``/``int`` or is
            below zero.
    """
    if isinstance(amount, bool) or not isinstance(amount, (Decimal, int)):
        log.error("Monetary value validation failed: %r", amount)
        raise InvalidSaleError("Amount must be a decimal value")
    if not Decimal(amount).is_finite() or amount < 0:
        log.error("Monetary value validation failed: %s", amount)
        raise InvalidSaleError("Amount must be zero or positive")


def validate_sale_command(command: SaleCommand) -> None:
    """Check every field of ``command`` before it reaches the store.

    Raises:
        InvalidSaleError: Describing the first problem found.
    """

    if not command.customer_name or not command.customer_name.strip():
        raise InvalidSaleError("Customer name must not be empty")
    if not command.item or not command.item.strip():
        raise InvalidSaleError("Item must not be empty")
    require_nonnegative_money(command.unit_price)
    require_positive_quantity(command.quantity)
    if not isinstance(command.status, OrderStatus):
        raise InvalidSaleError(f"Unsupported order status: {command.status!r}")
    if not isinstance(command.payment_status, PaymentStatus):
        raise InvalidSaleError(f"Unsupported payment status: {command.payment_status!r}")


def build_sale_record(
    command: SaleCommand,
    *,
    sale_id: str,
    owner: Optional[str],
    sale_date: datetime,
) -> SaleRecord:
    """Materialize a :class:`SaleCommand` into a store record."""

    return SaleRecord(
        sale_id=sale_id,
        customer_name=command.customer_name.strip(),
        item=command.item.strip(),
        unit_price=Decimal(command.unit_price),
        quantity=command.quantity,
        status=command.status,
        payment_status=command.payment_status,
        sale_date=sale_date,
        contact_number=command.contact_number,
        owner=owner,
    )


def _store_new_sale(context: RuntimeContext, command: SaleCommand, owner: Optional[str]) -> Optional[SaleRecord]:
    record = build_sale_record(
        command,
        sale_id=records.generate_sale_id(context.store),
        owner=owner,
        sale_date=_resolve_timestamp(command.sale_date),
    )
    if not records.add_sale(context.store, record):
        return None
    return record


@_synchronized
def record_sale(context: RuntimeContext, session: Session, command: SaleCommand) -> Optional[SaleRecord]:
    """Validate ``command`` and add the resulting sale to the store.

    The new record is owned by the acting user, or by ``SYSTEM`` when an admin
    creates it. Invalid commands are rejected before an id is allocated.

    Args:
        context (RuntimeContext): Context owning the store.
        session (Session): Acting session; guests are refused.
        command (SaleCommand): Sale details.

    Returns:
        SaleRecord | None: The stored record, or ``None`` when refused.
    """

    session = _resolve_session(context, session)
    if session.is_guest:
        log.warning("Guest session cannot record sales")
        return None
    try:
        validate_sale_command(command)
    except InvalidSaleError as exc:
        log.error("Rejected sale from '%s': %s", session.username, exc)
        return None

    owner = SYSTEM_OWNER if session.is_admin else session.username
    record = _store_new_sale(context, command, owner)
    if record is not None:
        log.info(
            "Recorded sale '%s' for '%s' (item=%s, quantity=%s, total=%s)",
            record.sale_id,
            owner,
            record.item,
            record.quantity,
            record.total,
        )
    return record


@_synchronized
def get_sale(context: RuntimeContext, session: Session, sale_id: str) -> Optional[SaleRecord]:
    """Return the sale with ``sale_id`` if the session may see it."""

    session = _resolve_session(context, session)
    record = records.get_sale(context.store, sale_id)
    if record is None:
        log.warning("Sale lookup failed for id '%s'", sale_id)
        return None
    if not _is_authorized(session, record):
        log.warning("Unauthorized access attempt to sale '%s' by '%s'", sale_id, session.username or "guest")
        return None
    return record


@_synchronized
def update_sale(context: RuntimeContext, session: Session, sale_id: str, command: SaleCommand) -> bool:
    """Replace the details of an existing sale.

    The id and owner of the stored sale never change. When ``command`` carries
    no ``sale_date`` the original date is kept.

    Returns:
        bool: ``False`` when the sale is missing, the session may not modify
            it, or the command is invalid.
    """

    session = _resolve_session(context, session)
    existing = records.get_sale(context.store, sale_id)
    if existing is None:
        log.warning("Update failed: sale '%s' not found", sale_id)
        return False
    if not _is_authorized(session, existing):
        log.warning("Unauthorized update attempt on sale '%s' by '%s'", sale_id, session.username or "guest")
        return False
    try:
        validate_sale_command(command)
    except InvalidSaleError as exc:
        log.error("Rejected update of sale '%s': %s", sale_id, exc)
        return False

    replacement = build_sale_record(
        command,
        sale_id=existing.sale_id,
        owner=existing.owner,
        sale_date=command.sale_date or existing.sale_date,
    )
    updated = records.update_sale(context.store, sale_id, replacement)
    if updated:
        log.info("Updated sale '%s'", sale_id)
    return updated


@_synchronized
def delete_sale(context: RuntimeContext, session: Session, sale_id: str) -> bool:
    """Delete a sale the session may modify; it can be restored via undo."""

    session = _resolve_session(context, session)
    existing = records.get_sale(context.store, sale_id)
    if existing is None:
        log.warning("Delete failed: sale '%s' not found", sale_id)
        return False
    if not _is_authorized(session, existing):
        log.warning("Unauthorized delete attempt on sale '%s' by '%s'", sale_id, session.username or "guest")
        return False
    deleted = records.delete_sale(context.store, sale_id)
    if deleted:
        log.info("Deleted sale '%s'", sale_id)
    return deleted


@_synchronized
def undo_delete(context: RuntimeContext, session: Session) -> Optional[SaleRecord]:
    """Restore the most recently deleted sale.

    The top of the undo stack is authorized before it is popped, so a refused
    undo leaves the stack intact for a session that is allowed to restore it.

    Returns:
        SaleRecord | None: The restored record, or ``None`` when the stack is
            empty or the session may not restore its top entry.
    """

    session = _resolve_session(context, session)
    candidate = records.peek_deleted(context.store)
    if candidate is None:
        return None
    if not _is_authorized(session, candidate):
        log.warning("Unauthorized undo attempt on sale '%s' by '%s'", candidate.sale_id, session.username or "guest")
        return None
    restored = records.undo_delete(context.store)
    log.info("Restored sale '%s'", candidate.sale_id)
    return restored


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


@_synchronized
def list_sales(context: RuntimeContext, session: Session) -> List[SaleRecord]:
    """Every sale the session may see: all for admins, owned ones otherwise."""

    return _visible_sales(context, _resolve_session(context, session))


@_synchronized
def search_by_customer_name(
    context: RuntimeContext,
    session: Session,
    name: str,
    *,
    all_records: bool = False,
) -> List[SaleRecord]:
    """Case-insensitive substring search on the customer name.

    Args:
        context (RuntimeContext): Context owning the store.
        session (Session): Acting session.
        name (str): Fragment to look for.
        all_records (bool): Search the whole store instead of the session's
            own sales. Refused (empty result) for non-admin sessions.

    Returns:
        list[SaleRecord]: Matches in store order.
    """

    source = _search_source(context, _resolve_session(context, session), all_records=all_records, operation="customer search")
    if source is None:
        return []
    needle = name.lower()
    return [record for record in source if needle in record.customer_name.lower()]


@_synchronized
def search_by_payment_status(
    context: RuntimeContext,
    session: Session,
    payment_status: Union[PaymentStatus, str],
    *,
    all_records: bool = False,
) -> List[SaleRecord]:
    """Filter by payment status; labels are matched case-insensitively."""

    try:
        wanted = PaymentStatus.from_label(payment_status)
    except ValueError:
        log.warning("Unknown payment status filter %r", payment_status)
        return []
    source = _search_source(context, _resolve_session(context, session), all_records=all_records, operation="payment search")
    if source is None:
        return []
    return [record for record in source if record.payment_status is wanted]


@_synchronized
def search_by_status(
    context: RuntimeContext,
    session: Session,
    status: Union[OrderStatus, str],
    *,
    all_records: bool = False,
) -> List[SaleRecord]:
    """Filter by order status; labels are matched case-insensitively."""

    try:
        wanted = OrderStatus.from_label(status)
    except ValueError:
        log.warning("Unknown order status filter %r", status)
        return []
    source = _search_source(context, _resolve_session(context, session), all_records=all_records, operation="status search")
    if source is None:
        return []
    return [record for record in source if record.status is wanted]


@_synchronized
def binary_search_by_id(
    context: RuntimeContext,
    session: Session,
    sale_id: str,
    *,
    all_records: bool = False,
) -> Optional[SaleRecord]:
    """Locate a sale by id using bisection over a sorted copy.

    Ids are ordered and matched case-insensitively. The copy is rebuilt on
    every call from either the session's own sales or, for admins passing
    ``all_records``, the whole store.

    Returns:
        SaleRecord | None: The matching sale, or ``None``.
    """

    source = _search_source(context, _resolve_session(context, session), all_records=all_records, operation="id search")
    if not source:
        return None
    ordered = sorted(source, key=lambda record: record.sale_id.lower())
    return _bisect(ordered, sale_id, key=lambda record: record.sale_id)


@_synchronized
def sort_sales(
    context: RuntimeContext,
    session: Session,
    key: Union[SaleSortKey, str],
) -> List[SaleRecord]:
    """Return the visible sales ordered by ``key``; the store is not reordered.

    Dates sort newest first, prices and quantities lowest first. Ties keep
    store order.
    """

    try:
        sort_key = SaleSortKey.from_label(key)
    except ValueError:
        log.warning("Unknown sort key %r", key)
        return []
    visible = _visible_sales(context, _resolve_session(context, session))
    if sort_key is SaleSortKey.DATE:
        return sorted(visible, key=lambda record: record.sale_date, reverse=True)
    if sort_key is SaleSortKey.PRICE:
        return sorted(visible, key=lambda record: record.unit_price)
    return sorted(visible, key=lambda record: record.quantity)


@_synchronized
def recent_sales(context: RuntimeContext, session: Session) -> List[SaleRecord]:
    """Recently added sales still in the store, oldest first.

    Admins see the whole queue; other sessions see only their own entries.
    """

    session = _resolve_session(context, session)
    if session.is_guest:
        return []
    live_ids = {record.sale_id for record in context.store.sales}
    queue = [record for record in records.recent_sales(context.store) if record.sale_id in live_ids]
    if session.is_admin:
        return queue
    return [record for record in queue if record.owner == session.username]


# ---------------------------------------------------------------------------
# Aggregates
# ---------------------------------------------------------------------------


@_synchronized
def calculate_total_revenue(context: RuntimeContext, session: Session) -> Decimal:
    """Sum ``unit_price * quantity`` over the sales the session may see."""

    visible = _visible_sales(context, _resolve_session(context, session))
    return sum((record.total for record in visible), Decimal("0"))


@_synchronized
def calculate_dashboard_stats(context: RuntimeContext, session: Session) -> DashboardStats:
    """Count orders, pending orders and items sold over the visible sales."""

    session = _resolve_session(context, session)
    visible = _visible_sales(context, session)
    stats = DashboardStats(
        total_orders=len(visible),
        pending_orders=sum(1 for record in visible if record.status is OrderStatus.PENDING),
        items_sold=sum(record.quantity for record in visible),
    )
    log.debug("Dashboard stats for '%s': %s", session.username or "guest", stats)
    return stats


# ---------------------------------------------------------------------------
# User administration
# ---------------------------------------------------------------------------


def _summarize(context: RuntimeContext, account: UserAccount) -> UserSummary:
    owned = [record for record in context.store.sales if record.owner == account.username]
    return UserSummary(
        username=account.username,
        role=account.role,
        total_orders=len(owned),
        pending_orders=sum(1 for record in owned if record.status is OrderStatus.PENDING),
        items_sold=sum(record.quantity for record in owned),
    )


_USER_SORT_ATTRIBUTES = {
    UserSortKey.TOTAL_ORDERS: "total_orders",
    UserSortKey.PENDING_ORDERS: "pending_orders",
    UserSortKey.ITEMS_SOLD: "items_sold",
}


@_synchronized
def list_user_summaries(
    context: RuntimeContext,
    session: Session,
    *,
    sort_by: Optional[Union[UserSortKey, str]] = None,
) -> List[UserSummary]:
    """Statistics for every non-admin account (admin sessions only).

    Args:
        context (RuntimeContext): Context owning the store and registry.
        session (Session): Acting session; must be an admin.
        sort_by (UserSortKey | str | None): Optional statistic to rank by,
            highest first. Registration order is kept otherwise and for ties.

    Returns:
        list[UserSummary]: Summaries, or an empty list when refused.
    """

    session = _resolve_session(context, session)
    if not session.is_admin:
        log.warning("Unauthorized user listing attempted by '%s'", session.username or "guest")
        return []
    summaries = [
        _summarize(context, account)
        for account in accounts.list_accounts(context.registry)
        if not account.is_admin
    ]
    if sort_by is None:
        return summaries
    try:
        attribute = _USER_SORT_ATTRIBUTES[UserSortKey.from_label(sort_by)]
    except ValueError:
        log.warning("Unknown user sort key %r", sort_by)
        return summaries
    return sorted(summaries, key=lambda summary: getattr(summary, attribute), reverse=True)


@_synchronized
def binary_search_user(context: RuntimeContext, session: Session, username: str) -> Optional[UserSummary]:
    """Find an account by case-insensitive username (admin sessions only)."""

    session = _resolve_session(context, session)
    if not session.is_admin:
        log.warning("Unauthorized user search attempted by '%s'", session.username or "guest")
        return None
    ordered = sorted(accounts.list_accounts(context.registry), key=lambda account: account.username.lower())
    account = _bisect(ordered, username, key=lambda candidate: candidate.username)
    if account is None:
        return None
    return _summarize(context, account)


# ---------------------------------------------------------------------------
# Sample data
# ---------------------------------------------------------------------------


@_synchronized
def seed_sample_data(context: RuntimeContext) -> int:
    """Add the demonstration users and their sales.

    Users that already exist are left alone and receive no sample sales, so
    seeding twice adds nothing the second time.

    Returns:
        int: Number of sales added.
    """

    created = {username for username, password in SAMPLE_USERS if register_user(context, username, password)}
    now = datetime.now(UTC).replace(hour=10, minute=0, second=0, microsecond=0)
    added = 0
    for owner, customer, item, price, quantity, status, payment, days_ago, contact in SAMPLE_SALES:
        if owner not in created:
            continue
        command = SaleCommand(
            customer_name=customer,
            item=item,
            unit_price=price,
            quantity=quantity,
            status=status,
            payment_status=payment,
            contact_number=contact,
            sale_date=now - timedelta(days=days_ago),
        )
        if _store_new_sale(context, command, owner) is not None:
            added += 1
    log.info("Seeded %d sample users and %d sample sales", len(created), added)
    return added
