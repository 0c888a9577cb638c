"""Manual stock entries — receiving, issuing and writing off copies at a store."""

import structlog
from protean import handle
from protean.fields import Identifier, Integer, String, Text

from inventory.domain import inventory
from inventory.stock.record import InventoryRecord, MovementReason
from inventory.stock.reservation import reservation_manager

logger = structlog.get_logger(__name__)


@inventory.command(part_of="InventoryRecord")
class RecordInbound:
    """Receive copies of a book at a store. Opens the record on first use."""

    book_id = Identifier(required=True)
    store_id = Identifier(required=True)
    quantity = Integer(required=True)
    reason = String(default=MovementReason.PURCHASE.value)
    note = Text()
    actor_id = Identifier()


@inventory.command(part_of="InventoryRecord")
class RecordOutbound:
    """Remove available copies from a store."""

    book_id = Identifier(required=True)
    store_id = Identifier(required=True)
    quantity = Integer(required=True)
    reason = String(default=MovementReason.SALE.value)
    transaction_ref = Identifier()
    note = Text()
    actor_id = Identifier()


@inventory.command(part_of="InventoryRecord")
class RecordWriteOff:
    """Write off lost or damaged copies."""

    book_id = Identifier(required=True)
    store_id = Identifier(required=True)
    quantity = Integer(required=True)
    reason = String(required=True)  # loss, damage
    note = Text()
    actor_id = Identifier()


@inventory.command_handler(part_of=InventoryRecord)
class StockEntryHandler:
    @handle(RecordInbound)
    def record_inbound(self, command):
        stock = reservation_manager().load(command.book_id)
        record = stock.record_or_create(command.store_id)
        record.record_inbound(
            quantity=command.quantity,
            reason=command.reason or MovementReason.PURCHASE.value,
            actor_id=command.actor_id,
            note=command.note,
        )
        stock.touch(record)
        stock.save()

        logger.info(
            "Stock received",
            book_id=stock.book_id,
            store_id=str(record.store_id),
            quantity=command.quantity,
            reason=command.reason,
        )
        return str(record.id)

    @handle(RecordOutbound)
    def record_outbound(self, command):
        stock = reservation_manager().load(command.book_id)
        stock.active_store(command.store_id)
        record = stock.require_record_at(command.store_id)
        record.record_outbound(
            quantity=command.quantity,
            reason=command.reason or MovementReason.SALE.value,
            actor_id=command.actor_id,
            transaction_ref=command.transaction_ref,
            note=command.note,
        )
        stock.touch(record)
        stock.save()

        logger.info(
            "Stock issued",
            book_id=stock.book_id,
            store_id=str(record.store_id),
            quantity=command.quantity,
            reason=command.reason,
        )

    @handle(RecordWriteOff)
    def record_writeoff(self, command):
        stock = reservation_manager().load(command.book_id)
        record = stock.require_record_at(command.store_id)
        record.record_writeoff(
            quantity=command.quantity,
            reason=command.reason,
            actor_id=command.actor_id,
            note=command.note,
        )
        stock.touch(record)
        stock.save()

        logger.warning(
            "Stock written off",
            book_id=stock.book_id,
            store_id=str(record.store_id),
            quantity=command.quantity,
            reason=command.reason,
        )
