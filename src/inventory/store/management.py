"""Store management — commands and handler.

Opening a store seeds an empty record for every active book so the store
takes part in later distributions. Deactivating or reactivating a store moves
its records out of, or back into, every consolidated total, so the cached
stock of each book held there is refreshed.
"""

import structlog
from protean import handle
from protean.exceptions import ObjectNotFoundError
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from inventory.book.book import Book
from inventory.domain import inventory
from inventory.shared.errors import StateError, ValidationError
from inventory.stock.consolidation import StockConsolidator
from inventory.stock.record import InventoryRecord
from inventory.store.store import Store

logger = structlog.get_logger(__name__)


@inventory.command(part_of="Store")
class OpenStore:
    """Open a new store."""

    name = String(required=True, max_length=255)
    code = String(required=True, max_length=20)
    city = String(max_length=100)


@inventory.command(part_of="Store")
class DeactivateStore:
    store_id = Identifier(required=True)


@inventory.command(part_of="Store")
class ReactivateStore:
    store_id = Identifier(required=True)


@inventory.command(part_of="Store")
class PurgeInactiveStoreRecords:
    """Delete the leftover records of an inactive store that hold no reservations."""

    store_id = Identifier(required=True)


def _refresh_books_stocked_at(store_id, active_store_ids):
    """Recompute the cached stock of every book with a record at the store."""
    records = current_domain.repository_for(InventoryRecord)
    books = current_domain.repository_for(Book)

    book_ids = {str(record.book_id) for record in records.find_for_store(store_id)}
    for book_id in sorted(book_ids):
        try:
            book = books.get(book_id)
        except ObjectNotFoundError:
            logger.warning("Record points at an unknown book", book_id=book_id, store_id=str(store_id))
            continue
        totals = StockConsolidator.totals_from(book_id, records.find_for_book(book_id), active_store_ids)
        book.refresh_stock(totals.stock_total)
        books.add(book)
    return len(book_ids)


@inventory.command_handler(part_of=Store)
class StoreManagementHandler:
    @handle(OpenStore)
    def open_store(self, command):
        repo = current_domain.repository_for(Store)
        if repo.find_by_code(command.code) is not None:
            raise ValidationError({"code": [f"Store code {command.code} is already in use"]})

        store = Store.open(name=command.name, code=command.code, city=command.city)
        repo.add(store)

        records = current_domain.repository_for(InventoryRecord)
        books = current_domain.repository_for(Book).find_active()
        for book in books:
            records.add(InventoryRecord.create(book_id=str(book.id), store_id=str(store.id)))

        logger.info("Store opened", store_id=str(store.id), code=store.code, seeded_records=len(books))
        return str(store.id)

    @handle(DeactivateStore)
    def deactivate_store(self, command):
        repo = current_domain.repository_for(Store)
        store = repo.get(command.store_id)
        store.deactivate()
        repo.add(store)

        active_store_ids = repo.active_ids() - {str(store.id)}
        refreshed = _refresh_books_stocked_at(store.id, active_store_ids)
        logger.info("Store deactivated", store_id=str(store.id), books_refreshed=refreshed)

    @handle(ReactivateStore)
    def reactivate_store(self, command):
        repo = current_domain.repository_for(Store)
        store = repo.get(command.store_id)
        store.reactivate()
        repo.add(store)

        active_store_ids = repo.active_ids() | {str(store.id)}
        refreshed = _refresh_books_stocked_at(store.id, active_store_ids)
        logger.info("Store reactivated", store_id=str(store.id), books_refreshed=refreshed)

    @handle(PurgeInactiveStoreRecords)
    def purge_inactive_store_records(self, command):
        store = current_domain.repository_for(Store).get(command.store_id)
        if store.is_active:
            raise StateError({"store_id": [f"Store {store.code} is active; deactivate it before purging"]})

        records = current_domain.repository_for(InventoryRecord)
        purged = skipped = 0
        for record in records.find_for_store(store.id):
            if record.stock_reserved > 0:
                skipped += 1
                logger.warning(
                    "Record kept, it still holds reservations",
                    record_id=str(record.id),
                    book_id=str(record.book_id),
                    stock_reserved=record.stock_reserved,
                )
                continue
            records.discard(record)
            purged += 1

        logger.info("Inactive store records purged", store_id=str(store.id), purged=purged, skipped=skipped)
        return {"purged": purged, "skipped": skipped}
