"""Tests for identifiers, typed errors and the stock lock registry."""

import threading
import time
from uuid import UUID

import pytest
from inventory.shared.clock import as_naive_utc
from inventory.shared.errors import (
    ConsistencyWarning,
    InsufficientStockError,
    NotFoundError,
    StateError,
)
from inventory.shared.identifiers import resolve_identifier, resolve_optional_identifier
from inventory.stock.locking import StockLocks
from protean.exceptions import InvalidOperationError, ObjectNotFoundError, ValidationError


class _Loaded:
    id = "book-42"


class TestResolveIdentifier:
    def test_strings_are_stripped(self):
        assert resolve_identifier("  book-1 ") == "book-1"

    def test_uuid_becomes_string(self):
        value = UUID("12345678-1234-5678-1234-567812345678")
        assert resolve_identifier(value) == "12345678-1234-5678-1234-567812345678"

    def test_objects_resolve_to_their_id(self):
        assert resolve_identifier(_Loaded()) == "book-42"

    @pytest.mark.parametrize("value", [None, "", "   "])
    def test_missing_values_rejected(self, value):
        with pytest.raises(ValidationError) as exc_info:
            resolve_identifier(value, "book_id")
        assert "book_id" in exc_info.value.messages

    def test_optional_passes_blanks_through(self):
        assert resolve_optional_identifier(None) is None
        assert resolve_optional_identifier(" ") is None
        assert resolve_optional_identifier("cart-1") == "cart-1"


class TestErrors:
    def test_errors_extend_protean_hierarchy(self):
        assert issubclass(InsufficientStockError, ValidationError)
        assert issubclass(NotFoundError, ObjectNotFoundError)
        assert issubclass(StateError, InvalidOperationError)

    def test_warning_serializes_context(self):
        warning = ConsistencyWarning("stock_cache_drift", "Cache is off", book_id="b1", cached_stock=3)
        assert warning.to_dict() == {
            "code": "stock_cache_drift",
            "detail": "Cache is off",
            "book_id": "b1",
            "cached_stock": 3,
        }
        assert "stock_cache_drift" in str(warning)


class TestClock:
    def test_aware_values_lose_tzinfo(self):
        from datetime import UTC, datetime, timedelta, timezone

        aware = datetime(2026, 1, 1, 12, 0, tzinfo=timezone(timedelta(hours=-5)))
        assert as_naive_utc(aware) == datetime(2026, 1, 1, 17, 0)
        assert as_naive_utc(datetime(2026, 1, 1, tzinfo=UTC)).tzinfo is None
        assert as_naive_utc(None) is None


class TestStockLocks:
    def test_locks_are_reentrant(self):
        locks = StockLocks()
        with locks.hold("book-1"):
            with locks.hold("book-1", "book-2"):
                pass

    def test_same_book_is_serialized(self):
        locks = StockLocks()
        order = []

        def worker(name):
            with locks.hold("book-1"):
                order.append(f"{name}-in")
                time.sleep(0.05)
                order.append(f"{name}-out")

        threads = [threading.Thread(target=worker, args=(n,)) for n in ("a", "b")]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        # No interleaving: each worker leaves before the other enters
        assert order[0][0] == order[1][0]
        assert order[2][0] == order[3][0]

    def test_opposite_acquisition_order_does_not_deadlock(self):
        locks = StockLocks()
        done = []

        def worker(keys):
            for _ in range(50):
                with locks.hold(*keys):
                    pass
            done.append(keys)

        threads = [
            threading.Thread(target=worker, args=(("book-1", "book-2"),)),
            threading.Thread(target=worker, args=(("book-2", "book-1"),)),
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=5)

        assert len(done) == 2

    def test_none_keys_are_ignored(self):
        locks = StockLocks()
        with locks.hold(None):
            pass
