"""Domain events for the InventoryRecord aggregate.

Every counter change on a record raises one event carrying the counters as
they stand after the change, so downstream consumers never have to replay the
movement log to know the current levels.
"""

from protean.fields import Boolean, DateTime, Identifier, Integer, String, Text

from inventory.domain import inventory


@inventory.event(part_of="InventoryRecord")
class InventoryRecordCreated:
    """A ledger was opened for a book at a store."""

    __version__ = 1

    record_id = Identifier(required=True)
    book_id = Identifier(required=True)
    store_id = Identifier(required=True)
    threshold_alert = Integer(required=True)
    created_at = DateTime(required=True)


@inventory.event(part_of="InventoryRecord")
class StockReceived:
    """Units entered the store (purchase, initial stock, transfer in, return)."""

    __version__ = 1

    record_id = Identifier(required=True)
    book_id = Identifier(required=True)
    store_id = Identifier(required=True)
    quantity = Integer(required=True)
    reason = String(required=True)
    actor_id = Identifier()
    stock_total = Integer(required=True)
    stock_available = Integer(required=True)
    stock_reserved = Integer(required=True)
    occurred_at = DateTime(required=True)


@inventory.event(part_of="InventoryRecord")
class StockIssued:
    """Units left the store: a sale, a transfer out, or a write-off."""

    __version__ = 1

    record_id = Identifier(required=True)
    book_id = Identifier(required=True)
    store_id = Identifier(required=True)
    kind = String(required=True)  # outbound, writeoff
    quantity = Integer(required=True)
    reason = String(required=True)
    actor_id = Identifier()
    transaction_ref = Identifier()
    reservation_ref = Identifier()
    stock_total = Integer(required=True)
    stock_available = Integer(required=True)
    stock_reserved = Integer(required=True)
    occurred_at = DateTime(required=True)


@inventory.event(part_of="InventoryRecord")
class StockReserved:
    """Available units were put on hold for a reservation."""

    __version__ = 1

    record_id = Identifier(required=True)
    book_id = Identifier(required=True)
    store_id = Identifier(required=True)
    reservation_ref = Identifier(required=True)
    quantity = Integer(required=True)
    actor_id = Identifier()
    stock_available = Integer(required=True)
    stock_reserved = Integer(required=True)
    occurred_at = DateTime(required=True)


@inventory.event(part_of="InventoryRecord")
class StockReleased:
    """Reserved units went back to available."""

    __version__ = 1

    record_id = Identifier(required=True)
    book_id = Identifier(required=True)
    store_id = Identifier(required=True)
    reservation_ref = Identifier()  # None for bulk releases
    quantity = Integer(required=True)
    reason = String(required=True)  # reservation_release, reservation_expiry, bulk_release
    actor_id = Identifier()
    stock_available = Integer(required=True)
    stock_reserved = Integer(required=True)
    occurred_at = DateTime(required=True)


@inventory.event(part_of="InventoryRecord")
class StockAdjusted:
    """Counters were corrected by an audit or a redistribution."""

    __version__ = 1

    record_id = Identifier(required=True)
    book_id = Identifier(required=True)
    store_id = Identifier(required=True)
    quantity_change = Integer(required=True)  # Signed
    reason = String(required=True)
    actor_id = Identifier()
    stock_total = Integer(required=True)
    stock_available = Integer(required=True)
    stock_reserved = Integer(required=True)
    occurred_at = DateTime(required=True)


@inventory.event(part_of="InventoryRecord")
class PhysicalCountRecorded:
    """A physical count was taken at the store."""

    __version__ = 1

    record_id = Identifier(required=True)
    book_id = Identifier(required=True)
    store_id = Identifier(required=True)
    system_count = Integer(required=True)
    physical_count = Integer(required=True)
    difference = Integer(required=True)
    auto_adjusted = Boolean(default=False)
    actor_id = Identifier(required=True)
    audited_at = DateTime(required=True)


@inventory.event(part_of="InventoryRecord")
class RecordStatusChanged:
    """The record moved between available, low stock, depleted and historically depleted."""

    __version__ = 1

    record_id = Identifier(required=True)
    book_id = Identifier(required=True)
    store_id = Identifier(required=True)
    previous_status = String(required=True)
    new_status = String(required=True)
    reason = Text()
    actor_id = Identifier()
    changed_at = DateTime(required=True)


@inventory.event(part_of="InventoryRecord")
class LowStockDetected:
    """Available stock fell to or below the record's alert threshold."""

    __version__ = 1

    record_id = Identifier(required=True)
    book_id = Identifier(required=True)
    store_id = Identifier(required=True)
    stock_available = Integer(required=True)
    threshold_alert = Integer(required=True)
    detected_at = DateTime(required=True)
