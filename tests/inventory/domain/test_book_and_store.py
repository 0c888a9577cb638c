"""Tests for the Book and Store aggregates."""

import pytest
from inventory.book.book import Book
from inventory.book.events import BookAdded, BookDeactivated, BookMarkedHistorical, BookStockCacheRepaired
from inventory.shared.errors import StateError
from inventory.store.events import StoreDeactivated, StoreOpened, StoreReactivated
from inventory.store.store import Store


class TestBook:
    def test_add_starts_active_with_empty_cache(self):
        book = Book.add(title="Dune", isbn="9780441172719", initial_stock=12)
        assert book.is_active is True
        assert book.is_historical is False
        assert book.stock == 0
        assert isinstance(book._events[0], BookAdded)
        assert book._events[0].initial_stock == 12

    def test_refresh_stock_overwrites_cache_silently(self):
        book = Book.add(title="Dune")
        book.refresh_stock(9)
        assert book.stock == 9
        assert len(book._events) == 1

    def test_repair_raises_event(self):
        book = Book.add(title="Dune")
        book.refresh_stock(9)
        book.repair_stock_cache(7)

        event = book._events[-1]
        assert isinstance(event, BookStockCacheRepaired)
        assert event.previous_stock == 9
        assert event.repaired_stock == 7

    def test_deactivate_once(self):
        book = Book.add(title="Dune")
        book.deactivate()
        assert book.is_active is False
        assert isinstance(book._events[-1], BookDeactivated)

        with pytest.raises(StateError):
            book.deactivate()

    def test_inactive_book_fails_active_check(self):
        book = Book.add(title="Dune")
        book.deactivate()
        with pytest.raises(StateError):
            book.ensure_active()

    def test_mark_historical_is_idempotent(self):
        book = Book.add(title="Dune")
        book.mark_historical(reason="Out of print")
        book.mark_historical(reason="Again")

        assert book.is_historical is True
        assert sum(isinstance(e, BookMarkedHistorical) for e in book._events) == 1


class TestStore:
    def test_open_normalizes_code(self):
        store = Store.open(name="Downtown", code=" dt01 ", city="Bogotá")
        assert store.code == "DT01"
        assert store.is_active is True
        assert isinstance(store._events[0], StoreOpened)

    def test_deactivate_and_reactivate(self):
        store = Store.open(name="Downtown", code="DT01")
        store.deactivate()
        assert store.is_active is False
        assert isinstance(store._events[-1], StoreDeactivated)

        store.reactivate()
        assert store.is_active is True
        assert isinstance(store._events[-1], StoreReactivated)

    def test_cannot_deactivate_twice(self):
        store = Store.open(name="Downtown", code="DT01")
        store.deactivate()
        with pytest.raises(StateError):
            store.deactivate()

    def test_cannot_reactivate_an_active_store(self):
        store = Store.open(name="Downtown", code="DT01")
        with pytest.raises(StateError):
            store.reactivate()
