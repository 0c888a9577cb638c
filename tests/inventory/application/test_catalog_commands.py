"""Application tests for the catalogue commands (add, redistribute, deactivate, delete)."""

import pytest
from inventory.book.book import Book
from inventory.book.catalog import AddBook, DeactivateBook, DeleteBook, RedistributeBookStock
from inventory.shared.errors import InsufficientStockError, StateError
from inventory.stock.record import InventoryRecord, MovementReason, RecordStatus
from inventory.stock.reservation import ReserveStock
from inventory.store.management import OpenStore
from protean import current_domain
from protean.exceptions import ObjectNotFoundError, ValidationError


def _add_book(initial_stock=10, **overrides):
    defaults = {"title": "Cien años de soledad", "isbn": "9780307474728", "initial_stock": initial_stock}
    defaults.update(overrides)
    return current_domain.process(AddBook(**defaults), asynchronous=False)


def _levels(book_id, store_id):
    record = current_domain.repository_for(InventoryRecord).find_for_book_and_store(book_id, store_id)
    return record.stock_total, record.stock_available, record.stock_reserved


def _book(book_id):
    return current_domain.repository_for(Book).get(book_id)


def _reserve(book_id, quantity, reservation_ref="cart-001", store_id=None):
    return current_domain.process(
        ReserveStock(book_id=book_id, quantity=quantity, reservation_ref=reservation_ref, store_id=store_id),
        asynchronous=False,
    )


class TestAddBook:
    def test_initial_stock_is_spread_in_store_code_order(self, stores):
        book_id = _add_book(initial_stock=10)

        assert _levels(book_id, stores["a"]) == (4, 4, 0)
        assert _levels(book_id, stores["b"]) == (3, 3, 0)
        assert _levels(book_id, stores["c"]) == (3, 3, 0)
        assert _book(book_id).stock == 10

    def test_seeded_records_log_initial_stock(self, stores):
        book_id = _add_book(initial_stock=10)

        record = current_domain.repository_for(InventoryRecord).find_for_book_and_store(book_id, stores["a"])
        [movement] = record.ordered_movements()
        assert movement.reason == MovementReason.INITIAL_STOCK.value
        assert movement.quantity == 4

    def test_zero_stock_seeds_depleted_records(self, stores):
        book_id = _add_book(initial_stock=0)

        records = current_domain.repository_for(InventoryRecord).find_for_book(book_id)
        assert len(records) == 3
        assert {r.status for r in records} == {RecordStatus.DEPLETED.value}
        assert _book(book_id).stock == 0

    def test_without_active_stores_book_has_no_stock(self):
        book_id = _add_book(initial_stock=10)

        assert current_domain.repository_for(InventoryRecord).find_for_book(book_id) == []
        assert _book(book_id).stock == 0

    def test_threshold_is_applied_to_every_record(self, stores):
        book_id = _add_book(initial_stock=30, threshold_alert=8)
        records = current_domain.repository_for(InventoryRecord).find_for_book(book_id)
        assert {r.threshold_alert for r in records} == {8}

    def test_negative_initial_stock_rejected(self, stores):
        with pytest.raises(ValidationError) as exc_info:
            _add_book(initial_stock=-1)
        assert "initial_stock" in exc_info.value.messages


class TestRedistributeBookStock:
    def test_reserved_copies_stay_in_place(self, stores):
        book_id = _add_book(initial_stock=10)
        _reserve(book_id, 2, store_id=stores["a"])

        new_total = current_domain.process(
            RedistributeBookStock(book_id=book_id, new_total=12),
            asynchronous=False,
        )

        assert new_total == 12
        assert _levels(book_id, stores["a"]) == (6, 4, 2)
        assert _levels(book_id, stores["b"]) == (3, 3, 0)
        assert _levels(book_id, stores["c"]) == (3, 3, 0)
        assert _book(book_id).stock == 12

    def test_total_below_reservations_is_refused_without_changes(self, stores):
        book_id = _add_book(initial_stock=10)
        _reserve(book_id, 5)

        with pytest.raises(InsufficientStockError):
            current_domain.process(RedistributeBookStock(book_id=book_id, new_total=3), asynchronous=False)

        assert _levels(book_id, stores["a"]) == (4, 0, 4)
        assert _levels(book_id, stores["b"]) == (3, 2, 1)
        assert _levels(book_id, stores["c"]) == (3, 3, 0)
        assert _book(book_id).stock == 10

    def test_stores_opened_later_get_a_share(self, stores):
        book_id = _add_book(initial_stock=10)
        store_d = current_domain.process(OpenStore(name="Store D", code="D01"), asynchronous=False)

        current_domain.process(RedistributeBookStock(book_id=book_id, new_total=12), asynchronous=False)

        for store_id in (*stores.values(), store_d):
            assert _levels(book_id, store_id) == (3, 3, 0)

    def test_inactive_book_cannot_be_redistributed(self, stores):
        book_id = _add_book(initial_stock=10)
        current_domain.process(DeactivateBook(book_id=book_id), asynchronous=False)

        with pytest.raises(StateError):
            current_domain.process(RedistributeBookStock(book_id=book_id, new_total=5), asynchronous=False)


class TestDeactivateBook:
    def test_releases_reservations_then_deactivates(self, stores):
        book_id = _add_book(initial_stock=10)
        _reserve(book_id, 2, reservation_ref="cart-1")
        _reserve(book_id, 3, reservation_ref="cart-2")

        current_domain.process(DeactivateBook(book_id=book_id, reason="Withdrawn"), asynchronous=False)

        book = _book(book_id)
        assert book.is_active is False
        records = current_domain.repository_for(InventoryRecord).find_for_book(book_id)
        assert sum(r.stock_reserved for r in records) == 0
        assert sum(r.stock_available for r in records) == 10

    def test_inactive_book_takes_no_reservations(self, stores):
        book_id = _add_book(initial_stock=10)
        current_domain.process(DeactivateBook(book_id=book_id), asynchronous=False)

        with pytest.raises(StateError):
            _reserve(book_id, 1)


class TestDeleteBook:
    def test_removes_book_and_records(self, stores):
        book_id = _add_book(initial_stock=10)
        _reserve(book_id, 2)

        current_domain.process(DeleteBook(book_id=book_id), asynchronous=False)

        assert current_domain.repository_for(InventoryRecord).find_for_book(book_id) == []
        with pytest.raises(ObjectNotFoundError):
            _book(book_id)

    def test_unknown_book(self, stores):
        with pytest.raises(ObjectNotFoundError):
            current_domain.process(DeleteBook(book_id="missing-book"), asynchronous=False)
