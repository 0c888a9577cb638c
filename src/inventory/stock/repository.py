"""Repository for the InventoryRecord aggregate."""

from inventory.domain import inventory
from inventory.shared.clock import as_naive_utc
from inventory.shared.paging import fetch_all
from inventory.stock.record import InventoryRecord, RecordStatus


@inventory.repository(part_of=InventoryRecord)
class InventoryRecordRepository:
    def find_all(self) -> list[InventoryRecord]:
        return fetch_all(self._dao)

    def find_for_book(self, book_id) -> list[InventoryRecord]:
        return fetch_all(self._dao, book_id=str(book_id))

    def find_for_store(self, store_id) -> list[InventoryRecord]:
        return fetch_all(self._dao, store_id=str(store_id))

    def find_for_book_and_store(self, book_id, store_id) -> InventoryRecord | None:
        """The ledger of one book at one store, if it exists."""
        records = self._dao.query.filter(book_id=str(book_id), store_id=str(store_id)).all().items
        return records[0] if records else None

    def find_low_stock(self) -> list[InventoryRecord]:
        return fetch_all(self._dao, status=RecordStatus.LOW_STOCK.value)

    def find_depleted(self, include_historical=False) -> list[InventoryRecord]:
        records = fetch_all(self._dao, status=RecordStatus.DEPLETED.value)
        if include_historical:
            records += fetch_all(self._dao, status=RecordStatus.HISTORICALLY_DEPLETED.value)
        return records

    def movement_history(self, book_id, store_id=None, kind=None, since=None, until=None):
        """Movements of a book across its records, oldest first.

        Optional filters narrow by store, movement kind and an inclusive
        ``occurred_at`` window.
        """
        since, until = as_naive_utc(since), as_naive_utc(until)
        records = self.find_for_book(book_id)
        if store_id is not None:
            records = [r for r in records if str(r.store_id) == str(store_id)]

        history = []
        for record in records:
            for movement in record.ordered_movements():
                if kind is not None and movement.kind != getattr(kind, "value", kind):
                    continue
                if since is not None and as_naive_utc(movement.occurred_at) < since:
                    continue
                if until is not None and as_naive_utc(movement.occurred_at) > until:
                    continue
                history.append((str(record.store_id), movement))

        history.sort(key=lambda entry: (as_naive_utc(entry[1].occurred_at), entry[1].sequence))
        return history

    def discard(self, record: InventoryRecord) -> None:
        record.ensure_deletable()
        self._dao.delete(record)
