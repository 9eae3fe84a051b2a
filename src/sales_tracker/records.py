"""Record store for the sales tracker.

The store owns the canonical, ordered sequence of sale records together with
the id counter, the bounded queue of recently added sales and the undo stack
of deleted sales. It performs no authorization; the access-control layer in
:mod:`sales_tracker.core_logic` decides who may call which operation.

Records are frozen dataclasses, so every list handed out by this module is a
snapshot: callers can keep, sort or filter it without touching store state.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from typing import Deque, Iterable, List, Optional

from . import log
from .constants import (
    RECENT_SALES_CAPACITY,
    SALE_ID_PREFIX,
    SALE_ID_WIDTH,
    OrderStatus,
    PaymentStatus,
)


@dataclass(frozen=True)
class SaleRecord:
    """A single sale as held by the store."""

    sale_id: str
    customer_name: str
    item: str
    unit_price: Decimal
    quantity: int
    status: OrderStatus
    payment_status: PaymentStatus
    sale_date: datetime
    contact_number: str
    owner: Optional[str]

    @property
    def total(self) -> Decimal:
        return self.unit_price * self.quantity

    def __str__(self) -> str:
        return f"{self.sale_id} - {self.customer_name} - {self.item} - ${self.total}"


def _new_recent_queue() -> Deque[SaleRecord]:
    return deque(maxlen=RECENT_SALES_CAPACITY)


@dataclass
class RecordStore:
    """Mutable container for sales, the recent queue and the undo stack."""

    sales: List[SaleRecord] = field(default_factory=list)
    recent: Deque[SaleRecord] = field(default_factory=_new_recent_queue)
    deleted: List[SaleRecord] = field(default_factory=list)
    next_sequence: int = 1


def format_sale_id(sequence: int) -> str:
    """Render a counter value as a sale id, e.g. ``SALE007`` or ``SALE1234``."""

    return f"{SALE_ID_PREFIX}{sequence:0{SALE_ID_WIDTH}d}"


def generate_sale_id(store: RecordStore) -> str:
    """Allocate the next sale id and advance the counter.

    The counter is never reset or rewound, so ids stay unique for the lifetime
    of the store even after deletions. Values above 999 simply grow wider.
    """

    sale_id = format_sale_id(store.next_sequence)
    store.next_sequence += 1
    return sale_id


def _index_of(store: RecordStore, sale_id: str) -> Optional[int]:
    for index, record in enumerate(store.sales):
        if record.sale_id == sale_id:
            return index
    return None


def add_sale(store: RecordStore, record: SaleRecord) -> bool:
    """Append ``record`` and enqueue it on the recent-sales queue.

    Returns:
        bool: ``True`` on success. ``False`` only when the store already holds
            a record with the same id, which indicates an internal fault.
    """

    if _index_of(store, record.sale_id) is not None:
        log.error("Refusing to add sale '%s': id already present in store", record.sale_id)
        return False
    store.sales.append(record)
    # deque(maxlen=...) evicts the oldest entry once capacity is exceeded
    store.recent.append(record)
    log.debug("Stored sale '%s' (%d sales in store)", record.sale_id, len(store.sales))
    return True


def get_sale(store: RecordStore, sale_id: str) -> Optional[SaleRecord]:
    """Return the first record whose id equals ``sale_id`` exactly."""

    index = _index_of(store, sale_id)
    return None if index is None else store.sales[index]


def update_sale(store: RecordStore, sale_id: str, record: SaleRecord) -> bool:
    """Replace the stored record, keeping its id and original owner."""

    index = _index_of(store, sale_id)
    if index is None:
        log.warning("Update failed: sale '%s' not found", sale_id)
        return False
    existing = store.sales[index]
    store.sales[index] = replace(record, sale_id=existing.sale_id, owner=existing.owner)
    return True


def delete_sale(store: RecordStore, sale_id: str) -> bool:
    """Remove a record and push it onto the undo stack."""

    index = _index_of(store, sale_id)
    if index is None:
        log.warning("Delete failed: sale '%s' not found", sale_id)
        return False
    store.deleted.append(store.sales[index])
    del store.sales[index]
    return True


def peek_deleted(store: RecordStore) -> Optional[SaleRecord]:
    """Return the most recently deleted record without removing it."""

    return store.deleted[-1] if store.deleted else None


def undo_delete(store: RecordStore) -> Optional[SaleRecord]:
    """Restore the most recently deleted record to the live collection.

    Returns ``None`` and leaves the store untouched when nothing was deleted.
    """

    if not store.deleted:
        return None
    record = store.deleted.pop()
    store.sales.append(record)
    return record


def remove_sales_owned_by(store: RecordStore, username: str) -> int:
    """Drop every live record owned by ``username`` and return how many went."""

    kept = [record for record in store.sales if record.owner != username]
    removed = len(store.sales) - len(kept)
    store.sales[:] = kept
    return removed


def remove_deleted_owned_by(store: RecordStore, username: str) -> int:
    """Drop undo-stack entries owned by ``username``, keeping the rest in order."""

    kept = [record for record in store.deleted if record.owner != username]
    removed = len(store.deleted) - len(kept)
    store.deleted[:] = kept
    return removed


def list_sales(store: RecordStore) -> List[SaleRecord]:
    return list(store.sales)


def recent_sales(store: RecordStore) -> List[SaleRecord]:
    """Snapshot of the recent queue, oldest first."""

    return list(store.recent)


def deleted_sales(store: RecordStore) -> List[SaleRecord]:
    """Snapshot of the undo stack, bottom first."""

    return list(store.deleted)


def restore_state(
    store: RecordStore,
    *,
    sales: Iterable[SaleRecord],
    deleted: Iterable[SaleRecord] = (),
    next_sequence: int = 1,
) -> None:
    """Replace the store contents with previously persisted state.

    The recent queue is rebuilt from the tail of ``sales``. ``next_sequence`` is
    raised if needed so it never points at an id that is already taken.
    """

    store.sales[:] = list(sales)
    store.deleted[:] = list(deleted)
    store.recent.clear()
    store.recent.extend(store.sales)

    highest = 0
    for record in (*store.sales, *store.deleted):
        suffix = record.sale_id[len(SALE_ID_PREFIX):]
        if record.sale_id.startswith(SALE_ID_PREFIX) and suffix.isdigit():
            highest = max(highest, int(suffix))
    store.next_sequence = max(next_sequence, highest + 1)
