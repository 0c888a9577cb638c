"""Stock transfers between stores — command and handler."""

from protean import handle
from protean.fields import Identifier, Integer, Text

from inventory.domain import inventory
from inventory.stock.record import InventoryRecord
from inventory.stock.reservation import reservation_manager


@inventory.command(part_of="InventoryRecord")
class TransferStock:
    """Move available copies of a book from one store to another."""

    book_id = Identifier(required=True)
    from_store_id = Identifier(required=True)
    to_store_id = Identifier(required=True)
    quantity = Integer(required=True)
    note = Text()
    actor_id = Identifier()


@inventory.command_handler(part_of=InventoryRecord)
class TransferHandler:
    @handle(TransferStock)
    def transfer_stock(self, command):
        reservation_manager().transfer(
            book_id=command.book_id,
            from_store_id=command.from_store_id,
            to_store_id=command.to_store_id,
            quantity=command.quantity,
            actor_id=command.actor_id,
            note=command.note,
        )
