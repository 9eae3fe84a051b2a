"""Enumerations and fixed identifiers shared across the sales tracker.

Centralises domain constants so that the record store, the access-control
layer, the workbook snapshot layer and the CLI agree on a single source of
truth for statuses, roles and reserved names.
"""

from __future__ import annotations

from enum import Enum


# Central schema version expected by all layers when validating workbooks.
EXPECTED_SCHEMA_VERSION = "1.0.0"

SALE_ID_PREFIX = "SALE"
SALE_ID_WIDTH = 3
RECENT_SALES_CAPACITY = 5

ADMIN_USERNAME = "admin"
# Owner recorded on sales created by an admin session.
SYSTEM_OWNER = "SYSTEM"

DEFAULT_BCRYPT_ROUNDS = 12
# bcrypt only accepts this many bytes of input.
MAX_PASSWORD_BYTES = 72


class _LabelledEnum(str, Enum):
    """String enum that can be resolved from a case-insensitive label."""

    @classmethod
    def from_label(cls, label: str):
        """Return the member whose value matches ``label`` ignoring case.

        Raises:
            ValueError: If no member carries the supplied label.
        """

        if isinstance(label, cls):
            return label
        normalized = str(label).strip().casefold()
        for member in cls:
            if member.value.casefold() == normalized:
                return member
        raise ValueError(f"Unknown {cls.__name__} label: {label!r}")


class OrderStatus(_LabelledEnum):
    """Enumerate the lifecycle states of a sale."""

    PENDING = "Pending"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


class PaymentStatus(_LabelledEnum):
    """Enumerate whether a sale has been paid for."""

    PAID = "Paid"
    UNPAID = "Unpaid"


class Role(_LabelledEnum):
    """Enumerate account roles."""

    ADMIN = "Admin"
    STANDARD = "Standard"


class SaleSortKey(_LabelledEnum):
    """Enumerate the orderings offered for sale listings."""

    DATE = "date"
    PRICE = "price"
    QUANTITY = "quantity"


class UserSortKey(_LabelledEnum):
    """Enumerate the statistics users can be ranked by."""

    TOTAL_ORDERS = "total-orders"
    PENDING_ORDERS = "pending-orders"
    ITEMS_SOLD = "items-sold"


class SheetName(str, Enum):
    """Enumerate the workbook sheet names managed by the snapshot layer."""

    SALES = "Sales"
    DELETED_SALES = "DeletedSales"
    USERS = "Users"
    META = "Meta"


__all__ = [
    "EXPECTED_SCHEMA_VERSION",
    "SALE_ID_PREFIX",
    "SALE_ID_WIDTH",
    "RECENT_SALES_CAPACITY",
    "ADMIN_USERNAME",
    "SYSTEM_OWNER",
    "DEFAULT_BCRYPT_ROUNDS",
    "MAX_PASSWORD_BYTES",
    "OrderStatus",
    "PaymentStatus",
    "Role",
    "SaleSortKey",
    "UserSortKey",
    "SheetName",
]
