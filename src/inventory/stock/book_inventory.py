"""A book and its inventory records, loaded for one unit of work.

Components load a ``BookInventory``, mutate its records in memory and call
``save`` only once every change has succeeded. ``save`` persists the records
that were touched and refreshes the book's cached stock from the same
in-memory state.
"""

from protean.exceptions import ObjectNotFoundError

from inventory.shared.errors import NotFoundError, StateError
from inventory.shared.identifiers import resolve_identifier
from inventory.stock.consolidation import StockConsolidator
from inventory.stock.record import InventoryRecord


class BookInventory:
    def __init__(self, book, records, active_stores, repositories):
        self.book = book
        self._records = {str(record.store_id): record for record in records}
        self._active_stores = {str(store.id): store for store in active_stores}
        self._record_repo, self._store_repo, self._book_repo = repositories
        self._touched = {}

    @classmethod
    def load(cls, book_id, records, stores, books):
        book_id = resolve_identifier(book_id, "book_id")
        try:
            book = books.get(book_id)
        except ObjectNotFoundError:
            raise NotFoundError({"book_id": [f"Book {book_id} not found"]}) from None

        return cls(
            book,
            records.find_for_book(book_id),
            stores.find_active(),
            (records, stores, books),
        )

    @property
    def book_id(self) -> str:
        return str(self.book.id)

    @property
    def active_store_ids(self) -> set[str]:
        return set(self._active_stores)

    @property
    def records(self) -> list[InventoryRecord]:
        return list(self._records.values())

    def store_code(self, store_id) -> str:
        store = self._active_stores.get(str(store_id))
        return store.code if store else ""

    def active_records(self) -> list[InventoryRecord]:
        """Records at active stores, in store-code order."""
        records = [record for store_id, record in self._records.items() if store_id in self._active_stores]
        return sorted(records, key=lambda record: self.store_code(record.store_id))

    def active_store(self, store_id):
        """The store, which must exist and be active."""
        store_id = resolve_identifier(store_id, "store_id")
        store = self._active_stores.get(store_id)
        if store is not None:
            return store

        try:
            self._store_repo.get(store_id)
        except ObjectNotFoundError:
            raise NotFoundError({"store_id": [f"Store {store_id} not found"]}) from None
        raise StateError({"store_id": [f"Store {store_id} is inactive"]})

    def record_at(self, store_id) -> InventoryRecord | None:
        return self._records.get(str(store_id))

    def require_record_at(self, store_id) -> InventoryRecord:
        record = self.record_at(store_id)
        if record is None:
            raise NotFoundError(
                {"store_id": [f"No inventory record for book {self.book_id} at store {store_id}"]}
            )
        return record

    def record_or_create(self, store_id, threshold_alert=None) -> InventoryRecord:
        """The record at an active store, opened on first use."""
        store = self.active_store(store_id)
        record = self.record_at(store.id)
        if record is None:
            kwargs = {"threshold_alert": threshold_alert} if threshold_alert else {}
            record = InventoryRecord.create(book_id=self.book_id, store_id=str(store.id), **kwargs)
            self._records[str(store.id)] = record
            self.touch(record)
        return record

    def touch(self, record):
        self._touched[str(record.store_id)] = record

    def totals(self):
        return StockConsolidator.totals_from(self.book_id, self.records, self.active_store_ids)

    def save(self):
        """Persist touched records and the refreshed book cache."""
        for record in self._touched.values():
            self._record_repo.add(record)
        self._touched = {}

        totals = self.totals()
        self.book.refresh_stock(totals.stock_total)
        self._book_repo.add(self.book)
        return totals
