"""Catalogue integration — books entering, leaving and re-stocking the stores.

Adding a book seeds one record per active store and spreads the initial stock
over them. Redistribution re-spreads a new total while leaving every reserved
copy where it is. Deactivating or deleting a book first releases all of its
reservations.
"""

import structlog
from protean import handle
from protean.fields import Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from inventory.book.book import Book
from inventory.domain import inventory
from inventory.shared.errors import ValidationError
from inventory.stock.distribution import StockDistributor
from inventory.stock.record import DEFAULT_THRESHOLD_ALERT, InventoryRecord, MovementReason
from inventory.stock.reservation import reservation_manager
from inventory.store.store import Store

logger = structlog.get_logger(__name__)


@inventory.command(part_of="Book")
class AddBook:
    """Add a book and distribute its initial stock over the active stores."""

    title = String(required=True, max_length=255)
    isbn = String(max_length=17)
    initial_stock = Integer(default=0)
    threshold_alert = Integer(default=DEFAULT_THRESHOLD_ALERT)
    actor_id = Identifier()


@inventory.command(part_of="Book")
class RedistributeBookStock:
    """Set a new total for a book, spread evenly over the active stores."""

    book_id = Identifier(required=True)
    new_total = Integer(required=True)
    actor_id = Identifier()


@inventory.command(part_of="Book")
class DeactivateBook:
    """Withdraw a book from sale."""

    book_id = Identifier(required=True)
    reason = Text()
    actor_id = Identifier()


@inventory.command(part_of="Book")
class DeleteBook:
    """Permanently remove a book and its inventory records."""

    book_id = Identifier(required=True)
    actor_id = Identifier()


@inventory.command_handler(part_of=Book)
class CatalogueHandler:
    @handle(AddBook)
    def add_book(self, command):
        initial_stock = command.initial_stock or 0
        if initial_stock < 0:
            raise ValidationError({"initial_stock": ["Initial stock must be zero or more"]})

        book = Book.add(title=command.title, isbn=command.isbn, initial_stock=initial_stock)
        stores = current_domain.repository_for(Store).find_active()
        if not stores:
            logger.warning("No active stores, book added without stock", book_id=str(book.id))
            current_domain.repository_for(Book).add(book)
            return str(book.id)

        records = current_domain.repository_for(InventoryRecord)
        shares = StockDistributor.distribute(initial_stock, len(stores))
        for store, share in zip(stores, shares, strict=True):
            record = InventoryRecord.create(
                book_id=str(book.id),
                store_id=str(store.id),
                threshold_alert=command.threshold_alert or DEFAULT_THRESHOLD_ALERT,
            )
            if share:
                record.record_inbound(
                    share,
                    reason=MovementReason.INITIAL_STOCK,
                    actor_id=command.actor_id,
                    note="Initial distribution",
                )
            records.add(record)

        book.refresh_stock(initial_stock)
        current_domain.repository_for(Book).add(book)

        logger.info("Book added", book_id=str(book.id), initial_stock=initial_stock, stores=len(stores))
        return str(book.id)

    @handle(RedistributeBookStock)
    def redistribute_book_stock(self, command):
        stock = reservation_manager().load(command.book_id)
        stock.book.ensure_active()

        # Every active store takes part, including ones that never held the book
        for store_id in stock.active_store_ids:
            stock.record_or_create(store_id)

        records = stock.active_records()
        targets = StockDistributor.plan_redistribution(records, command.new_total)
        for record, target in zip(records, targets, strict=True):
            if record.apply_redistribution(target, actor_id=command.actor_id) is not None:
                stock.touch(record)
        totals = stock.save()

        logger.info("Book stock redistributed", book_id=stock.book_id, new_total=totals.stock_total)
        return totals.stock_total

    @handle(DeactivateBook)
    def deactivate_book(self, command):
        manager = reservation_manager()
        stock = manager.load(command.book_id)
        released = manager.release_all(stock, actor_id=command.actor_id, reason=command.reason or "Book deactivated")
        stock.book.deactivate()
        stock.save()

        logger.info("Book deactivated", book_id=stock.book_id, released=released)

    @handle(DeleteBook)
    def delete_book(self, command):
        manager = reservation_manager()
        stock = manager.load(command.book_id)
        released = manager.release_all(stock, actor_id=command.actor_id, reason="Book deleted")

        records = current_domain.repository_for(InventoryRecord)
        for record in stock.records:
            records.discard(record)
        current_domain.repository_for(Book)._dao.delete(stock.book)

        logger.info(
            "Book deleted",
            book_id=stock.book_id,
            records_removed=len(stock.records),
            released=released,
        )
