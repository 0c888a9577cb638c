"""Application tests for physical counts, historical depletion and the consistency auditor."""

import pytest
from inventory.book.book import Book
from inventory.book.catalog import AddBook
from inventory.shared.errors import NotFoundError, StateError
from inventory.stock.audit import (
    AuditPhysicalCount,
    MarkBookHistoricallyDepleted,
    RepairStockCache,
    consistency_auditor,
)
from inventory.stock.receiving import RecordOutbound
from inventory.stock.record import InventoryRecord, MovementReason, RecordStatus
from inventory.stock.reservation import ReserveStock
from protean import current_domain


def _add_book(initial_stock=10, title="El túnel"):
    return current_domain.process(AddBook(title=title, initial_stock=initial_stock), asynchronous=False)


def _record(book_id, store_id):
    return current_domain.repository_for(InventoryRecord).find_for_book_and_store(book_id, store_id)


def _corrupt_cache(book_id, stock):
    repo = current_domain.repository_for(Book)
    book = repo.get(book_id)
    book.refresh_stock(stock)
    repo.add(book)


class TestAuditPhysicalCount:
    def test_count_without_adjustment(self, stores):
        book_id = _add_book(10)

        result = current_domain.process(
            AuditPhysicalCount(book_id=book_id, store_id=stores["a"], counted_quantity=3, actor_id="auditor-1"),
            asynchronous=False,
        )

        assert result["difference"] == -1
        record = _record(book_id, stores["a"])
        assert record.stock_total == 4
        assert record.last_audit.physical_count == 3

    def test_count_with_adjustment_updates_book_cache(self, stores):
        book_id = _add_book(10)

        current_domain.process(
            AuditPhysicalCount(
                book_id=book_id,
                store_id=stores["a"],
                counted_quantity=6,
                auto_adjust=True,
                actor_id="auditor-1",
            ),
            asynchronous=False,
        )

        record = _record(book_id, stores["a"])
        assert (record.stock_total, record.stock_available) == (6, 6)
        assert record.ordered_movements()[-1].reason == MovementReason.AUDIT_ADJUSTMENT.value
        assert current_domain.repository_for(Book).get(book_id).stock == 12

    def test_count_at_store_without_record(self, stores):
        book_id = _add_book(10)
        with pytest.raises(NotFoundError):
            current_domain.process(
                AuditPhysicalCount(book_id=book_id, store_id="no-such-store", counted_quantity=1, actor_id="a"),
                asynchronous=False,
            )


class TestMarkBookHistoricallyDepleted:
    def test_depleted_record_is_marked_and_book_flagged(self, stores):
        book_id = _add_book(10)
        current_domain.process(RecordOutbound(book_id=book_id, store_id=stores["c"], quantity=3), asynchronous=False)

        current_domain.process(
            MarkBookHistoricallyDepleted(
                book_id=book_id,
                store_id=stores["c"],
                actor_id="manager-1",
                reason="Out of print",
            ),
            asynchronous=False,
        )

        assert _record(book_id, stores["c"]).status == RecordStatus.HISTORICALLY_DEPLETED.value
        assert current_domain.repository_for(Book).get(book_id).is_historical is True

    def test_record_with_stock_cannot_be_marked(self, stores):
        book_id = _add_book(10)

        with pytest.raises(StateError):
            current_domain.process(
                MarkBookHistoricallyDepleted(book_id=book_id, store_id=stores["a"], actor_id="manager-1"),
                asynchronous=False,
            )

        assert _record(book_id, stores["a"]).status == RecordStatus.LOW_STOCK.value
        assert current_domain.repository_for(Book).get(book_id).is_historical is False


class TestConsistencyAuditor:
    def test_normal_operations_leave_no_findings(self, stores):
        book_id = _add_book(10)
        current_domain.process(
            ReserveStock(book_id=book_id, quantity=2, reservation_ref="cart-1"),
            asynchronous=False,
        )

        report = consistency_auditor().report()

        assert report.is_consistent
        assert report.books_checked == 1
        assert report.stores_checked == 3

    def test_cache_drift_is_reported_and_repaired(self, stores):
        book_id = _add_book(10)
        _corrupt_cache(book_id, 99)

        report = consistency_auditor().report()
        [drift] = report.drifts
        assert (drift.book_id, drift.cached_stock, drift.actual_stock) == (book_id, 99, 10)
        assert [w.code for w in report.warnings] == ["stock_cache_drift"]

        result = consistency_auditor().repair()

        assert [d.book_id for d in result.repaired] == [book_id]
        assert current_domain.repository_for(Book).get(book_id).stock == 10
        assert consistency_auditor().report().is_consistent

    def test_stores_without_records_are_flagged_not_filled(self, stores):
        report = consistency_auditor().report()
        assert sorted(report.stores_without_records) == sorted(stores.values())

        consistency_auditor().repair()

        assert current_domain.repository_for(InventoryRecord).find_all() == []

    def test_orphan_records_are_reported(self, stores):
        _add_book(10)
        current_domain.repository_for(InventoryRecord).add(
            InventoryRecord.create(book_id="ghost-book", store_id=stores["a"])
        )

        report = consistency_auditor().report()

        assert len(report.orphan_records) == 1
        assert "orphan_record" in [w.code for w in report.warnings]

    def test_repair_command_returns_summary(self, stores):
        book_id = _add_book(10)
        _corrupt_cache(book_id, 4)

        summary = current_domain.process(RepairStockCache(), asynchronous=False)

        assert summary["repaired"] == [{"book_id": book_id, "previous_stock": 4, "repaired_stock": 10}]
        assert summary["stores_without_records"] == []
