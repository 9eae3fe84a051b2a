"""Configuration and workbook snapshot layer for the sales tracker.

This module provides low-level helpers that read from and write to the
snapshot workbook. Business rules belong elsewhere.

The public API is designed around three responsibilities:

1. Configuration handling: finding and parsing ``config.ini``.
2. Workbook lifecycle: building, opening and persisting the Excel file.
3. Sheet operations: converting rows to and from structured records.
"""


from __future__ import annotations

import configparser
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from openpyxl.styles import Font
from openpyxl.workbook import Workbook
import openpyxl

from . import log
from .accounts import UserAccount
from .constants import (
    DEFAULT_BCRYPT_ROUNDS,
    EXPECTED_SCHEMA_VERSION,
    OrderStatus,
    PaymentStatus,
    Role,
    SheetName,
)
from .records import SaleRecord


CONFIG_FILE_NAME = "config.ini"
SALES_SHEET = SheetName.SALES.value
DELETED_SALES_SHEET = SheetName.DELETED_SALES.value
USERS_SHEET = SheetName.USERS.value
META_SHEET = SheetName.META.value

SALE_COLUMNS = (
    "SaleID",
    "CustomerName",
    "Item",
    "UnitPrice",
    "Quantity",
    "Status",
    "PaymentStatus",
    "SaleDate",
    "ContactNumber",
    "Owner",
)
USER_COLUMNS = ("Username", "PasswordHash", "Role")
META_COLUMNS = ("Key", "Value")

SHEET_COLUMNS: Mapping[str, Sequence[str]] = {
    SALES_SHEET: SALE_COLUMNS,
    DELETED_SALES_SHEET: SALE_COLUMNS,
    USERS_SHEET: USER_COLUMNS,
    META_SHEET: META_COLUMNS,
}

META_SCHEMA_VERSION = "SchemaVersion"
META_NEXT_SALE_NUMBER = "NextSaleNumber"


@dataclass(frozen=True)
class ConfigSettings:
    """Typed representation of the ``config.ini`` settings we care about."""

    data_file: Path
    store_name: str
    schema_version: str
    bcrypt_rounds: int = DEFAULT_BCRYPT_ROUNDS


@dataclass(frozen=True)
class Snapshot:
    """Everything read back from a snapshot workbook."""

    sales: List[SaleRecord]
    deleted: List[SaleRecord]
    users: List[UserAccount]
    next_sequence: int
    schema_version: Optional[str]


def find_config_file(explicit_path: Optional[Path] = None) -> Path:
    """Locate the configuration file that controls the snapshot layer.

    If the caller provides ``explicit_path`` the value is returned immediately
    without any verification. Otherwise the function walks up from the current
    working directory toward the filesystem root looking for a file named
    ``CONFIG_FILE_NAME``; the first match is considered authoritative.

    Args:
        explicit_path (Path | None): Optional path to use instead of performing
            the upward search.

    Returns:
        Path: The path provided by the caller or the discovered file.

    Raises:
        FileNotFoundError: If no parent directory holds ``CONFIG_FILE_NAME``.
    """

    if explicit_path:
        return explicit_path

    current = Path.cwd()
    for p in (current, *current.parents):
        candidate = p / CONFIG_FILE_NAME
        if candidate.exists():
            return candidate

    raise FileNotFoundError(
        f"Configuration file not found: {CONFIG_FILE_NAME}")


def read_config(config_path: Path) -> configparser.ConfigParser:
    """Load ``config.ini`` and return a populated ``ConfigParser`` instance.

    Raises:
        FileNotFoundError: If ``config_path`` does not exist after expansion and
            resolution.
    """

    config_path = Path(config_path).expanduser().resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    parser = configparser.ConfigParser()
    parser.read(config_path)
    return parser


def parse_settings(parser: configparser.ConfigParser, *, base_path: Optional[Path] = None) -> ConfigSettings:
    """Convert a ``ConfigParser`` into strongly typed :class:`ConfigSettings`.

    Relative ``DataFile`` entries are anchored to ``base_path`` (or the current
    working directory) and resolved. ``[Security] BcryptRounds`` is optional.

    Args:
        parser (configparser.ConfigParser): Parsed configuration data.
        base_path (Path | None): Directory used for relative data file paths.

    Returns:
        ConfigSettings: Immutable settings container.

    Raises:
        KeyError: If a required section or option is missing.
        ValueError: If ``BcryptRounds`` is not an integer.
    """

    try:
        data_file_raw = parser.get("System", "DataFile")
        store_name = parser.get("System", "StoreName")
        schema_version = parser.get("System", "SchemaVersion")
    except (configparser.NoSectionError, configparser.NoOptionError) as exc:
        raise KeyError(f"Missing required configuration entry: {exc}") from exc

    bcrypt_rounds = parser.getint("Security", "BcryptRounds", fallback=DEFAULT_BCRYPT_ROUNDS)

    data_file_path = Path(data_file_raw)
    if not data_file_path.is_absolute():
        if base_path is None:
            base_path = Path.cwd()
        data_file_path = (base_path / data_file_path).resolve()

    return ConfigSettings(
        data_file=data_file_path,
        store_name=store_name,
        schema_version=schema_version,
        bcrypt_rounds=bcrypt_rounds,
    )


def open_workbook(data_file: Path) -> Workbook:
    """Open the snapshot workbook.

    Raises:
        FileNotFoundError: If ``data_file`` does not exist after expansion and
            resolution.
    """

    data_file = Path(data_file).expanduser().resolve()
    if not data_file.exists():
        raise FileNotFoundError(f"Workbook not found: {data_file}")

    return openpyxl.load_workbook(data_file)


def save_workbook(workbook: Workbook, destination: Path) -> None:
    """Persist the workbook, creating parent directories on demand."""

    dest = Path(destination).expanduser().resolve()
    dest.parent.mkdir(parents=True, exist_ok=True)
    workbook.save(dest)


def create_workbook(*, schema_version: str = EXPECTED_SCHEMA_VERSION) -> Workbook:
    """Build an empty snapshot workbook with bold headers on every sheet."""

    workbook = openpyxl.Workbook()
    if workbook.active and workbook.active.title == "Sheet":
        workbook.remove(workbook.active)

    bold_font = Font(bold=True)
    for sheet_name, columns in SHEET_COLUMNS.items():
        worksheet = workbook.create_sheet(title=sheet_name)
        for column_index, column_name in enumerate(columns, start=1):
            cell = worksheet.cell(row=1, column=column_index)
            cell.value = column_name
            cell.font = bold_font

    write_meta(workbook, {META_SCHEMA_VERSION: schema_version, META_NEXT_SALE_NUMBER: 1})
    return workbook


def build_snapshot_workbook(
    *,
    sales: Iterable[SaleRecord],
    deleted: Iterable[SaleRecord],
    users: Iterable[UserAccount],
    next_sequence: int,
    schema_version: str = EXPECTED_SCHEMA_VERSION,
) -> Workbook:
    """Create a workbook holding the full state of a runtime context."""

    workbook = create_workbook(schema_version=schema_version)
    for record in sales:
        workbook[SALES_SHEET].append(serialize_sale(record))
    for record in deleted:
        workbook[DELETED_SALES_SHEET].append(serialize_sale(record))
    for account in users:
        workbook[USERS_SHEET].append(serialize_user(account))
    write_meta(workbook, {META_SCHEMA_VERSION: schema_version, META_NEXT_SALE_NUMBER: next_sequence})
    return workbook


def read_snapshot(workbook: Workbook) -> Snapshot:
    """Load every record stored in a snapshot workbook."""

    meta = read_meta(workbook)
    sales = list(iter_sales(workbook))
    deleted = list(iter_sales(workbook, sheet_name=DELETED_SALES_SHEET))
    users = list(iter_users(workbook))
    next_sequence = int(meta.get(META_NEXT_SALE_NUMBER) or 1)
    schema_version = meta.get(META_SCHEMA_VERSION)
    log.debug(
        "Read snapshot with %d sales, %d deleted sales and %d users",
        len(sales),
        len(deleted),
        len(users),
    )
    return Snapshot(
        sales=sales,
        deleted=deleted,
        users=users,
        next_sequence=next_sequence,
        schema_version=str(schema_version) if schema_version is not None else None,
    )


def read_meta(workbook: Workbook) -> Dict[str, Any]:
    sheet = workbook[META_SHEET]
    meta: Dict[str, Any] = {}
    for key, value in sheet.iter_rows(min_row=2, max_col=2, values_only=True):
        if key is not None:
            meta[str(key)] = value
    return meta


def write_meta(workbook: Workbook, values: Mapping[str, Any]) -> None:
    """Replace the key/value rows of the ``Meta`` sheet."""

    sheet = workbook[META_SHEET]
    if sheet.max_row > 1:
        sheet.delete_rows(2, sheet.max_row - 1)
    for row_index, (key, value) in enumerate(values.items(), start=2):
        sheet.cell(row=row_index, column=1, value=key)
        sheet.cell(row=row_index, column=2, value=value)


def iter_sales(workbook: Workbook, *, sheet_name: str = SALES_SHEET) -> Iterable[SaleRecord]:
    """Iterate over the sale rows of ``sheet_name``, skipping empty rows."""

    sheet = workbook[sheet_name]
    for raw in sheet.iter_rows(min_row=2, values_only=True):
        if any(cell is not None for cell in raw):
            yield deserialize_sale(raw)


def iter_users(workbook: Workbook) -> Iterable[UserAccount]:
    sheet = workbook[USERS_SHEET]
    for raw in sheet.iter_rows(min_row=2, values_only=True):
        if any(cell is not None for cell in raw):
            yield deserialize_user(raw)


def serialize_sale(record: SaleRecord) -> list[object]:
    """Convert a sale into the ``SALE_COLUMNS`` ordering.

    Unit prices are written as text so the decimal scale survives the round
    trip (Excel numbers would turn ``2.50`` into ``2.5``). Dates are written as
    ISO 8601 text so timezone information is kept.
    """

    return [
        record.sale_id,
        record.customer_name,
        record.item,
        str(record.unit_price),
        record.quantity,
        record.status.value,
        record.payment_status.value,
        record.sale_date.isoformat(),
        record.contact_number,
        record.owner,
    ]


def deserialize_sale(raw_row: Sequence[object]) -> SaleRecord:
    """Convert a raw worksheet row into a :class:`SaleRecord`.

    Excel hands numbers back as ``int``/``float``; they are normalized through
    ``str`` into :class:`~decimal.Decimal` and ``int``. Blank owners stay
    ``None``.
    """

    (
        sale_id,
        customer_name,
        item,
        unit_price_raw,
        quantity_raw,
        status,
        payment_status,
        sale_date_raw,
        contact_number,
        owner,
    ) = tuple(raw_row[: len(SALE_COLUMNS)])

    unit_price = Decimal(str(unit_price_raw)) if unit_price_raw is not None else Decimal("0.00")
    quantity = int(quantity_raw) if quantity_raw is not None else 0
    if isinstance(sale_date_raw, datetime):
        sale_date = sale_date_raw
    else:
        sale_date = datetime.fromisoformat(str(sale_date_raw))

    return SaleRecord(
        sale_id=str(sale_id),
        customer_name=str(customer_name) if customer_name is not None else "",
        item=str(item) if item is not None else "",
        unit_price=unit_price,
        quantity=quantity,
        status=OrderStatus.from_label(str(status)),
        payment_status=PaymentStatus.from_label(str(payment_status)),
        sale_date=sale_date,
        contact_number=str(contact_number) if contact_number is not None else "",
        owner=str(owner) if owner is not None else None,
    )


def serialize_user(account: UserAccount) -> list[object]:
    return [account.username, account.password_hash, account.role.value]


def deserialize_user(raw_row: Sequence[object]) -> UserAccount:
    username, password_hash, role = tuple(raw_row[: len(USER_COLUMNS)])
    return UserAccount(
        username=str(username),
        password_hash=str(password_hash),
        role=Role.from_label(str(role)) if role is not None else Role.STANDARD,
    )
