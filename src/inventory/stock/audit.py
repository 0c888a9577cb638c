"""Audits — physical counts, historical depletion and cache consistency.

``ConsistencyAuditor`` compares every active book's cached ``stock`` with the
total consolidated from its records, flags active stores that hold no records
at all, and lists records whose book or store no longer exists. ``repair``
only overwrites drifting caches. Stores without records stay flagged for an
operator; the auditor never creates records.
"""

from dataclasses import dataclass, field

import structlog
from protean import handle
from protean.fields import Boolean, Identifier, Integer, Text
from protean.utils.globals import current_domain

from inventory.book.book import Book
from inventory.domain import inventory
from inventory.shared.errors import ConsistencyWarning
from inventory.stock.consolidation import StockConsolidator
from inventory.stock.record import InventoryRecord
from inventory.stock.reservation import reservation_manager
from inventory.store.store import Store

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class StockDrift:
    book_id: str
    cached_stock: int
    actual_stock: int

    @property
    def difference(self) -> int:
        return self.actual_stock - self.cached_stock


@dataclass
class AuditReport:
    books_checked: int = 0
    stores_checked: int = 0
    drifts: list[StockDrift] = field(default_factory=list)
    stores_without_records: list[str] = field(default_factory=list)
    orphan_records: list[str] = field(default_factory=list)
    degraded_books: list[str] = field(default_factory=list)
    warnings: list[ConsistencyWarning] = field(default_factory=list)

    @property
    def is_consistent(self) -> bool:
        return not self.warnings

    def to_dict(self):
        return {
            "books_checked": self.books_checked,
            "stores_checked": self.stores_checked,
            "consistent": self.is_consistent,
            "warnings": [warning.to_dict() for warning in self.warnings],
        }


@dataclass
class RepairResult:
    report: AuditReport
    repaired: list[StockDrift] = field(default_factory=list)

    def to_dict(self):
        return {
            "repaired": [
                {"book_id": drift.book_id, "previous_stock": drift.cached_stock, "repaired_stock": drift.actual_stock}
                for drift in self.repaired
            ],
            "stores_without_records": list(self.report.stores_without_records),
            "warnings": [warning.to_dict() for warning in self.report.warnings],
        }


class ConsistencyAuditor:
    def __init__(self, records, stores, books):
        self._records = records
        self._stores = stores
        self._books = books

    def report(self) -> AuditReport:
        report = AuditReport()
        consolidator = StockConsolidator(self._records, self._stores)

        for book in self._books.find_active():
            report.books_checked += 1
            consolidated = consolidator.consolidate(book.id)
            if consolidated.degraded:
                report.degraded_books.append(str(book.id))
                report.warnings.append(
                    ConsistencyWarning(
                        "consolidation_failed",
                        f"Stock of book {book.id} could not be consolidated",
                        book_id=str(book.id),
                        error=consolidated.error,
                    )
                )
            elif book.stock != consolidated.stock_total:
                drift = StockDrift(str(book.id), book.stock, consolidated.stock_total)
                report.drifts.append(drift)
                report.warnings.append(
                    ConsistencyWarning(
                        "stock_cache_drift",
                        f"Book {book.id} caches {book.stock} but its records hold {consolidated.stock_total}",
                        book_id=drift.book_id,
                        cached_stock=drift.cached_stock,
                        actual_stock=drift.actual_stock,
                    )
                )

        for store in self._stores.find_active():
            report.stores_checked += 1
            if not self._records.find_for_store(store.id):
                report.stores_without_records.append(str(store.id))
                report.warnings.append(
                    ConsistencyWarning(
                        "store_without_records",
                        f"Active store {store.code} holds no inventory records",
                        store_id=str(store.id),
                    )
                )

        book_ids = self._books.known_ids()
        store_ids = self._stores.known_ids()
        for record in self._records.find_all():
            if str(record.book_id) not in book_ids or str(record.store_id) not in store_ids:
                report.orphan_records.append(str(record.id))
                report.warnings.append(
                    ConsistencyWarning(
                        "orphan_record",
                        f"Record {record.id} points at an unknown book or store",
                        record_id=str(record.id),
                        book_id=str(record.book_id),
                        store_id=str(record.store_id),
                    )
                )

        if report.warnings:
            logger.warning(
                "Inventory consistency check found problems",
                drifts=len(report.drifts),
                stores_without_records=len(report.stores_without_records),
                orphan_records=len(report.orphan_records),
                degraded_books=len(report.degraded_books),
            )
        return report

    def repair(self) -> RepairResult:
        result = RepairResult(report=self.report())
        for drift in result.report.drifts:
            book = self._books.get(drift.book_id)
            book.repair_stock_cache(drift.actual_stock)
            self._books.add(book)
            result.repaired.append(drift)
            logger.info(
                "Stock cache repaired",
                book_id=drift.book_id,
                previous_stock=drift.cached_stock,
                repaired_stock=drift.actual_stock,
            )
        return result


def consistency_auditor() -> ConsistencyAuditor:
    return ConsistencyAuditor(
        records=current_domain.repository_for(InventoryRecord),
        stores=current_domain.repository_for(Store),
        books=current_domain.repository_for(Book),
    )


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------
@inventory.command(part_of="InventoryRecord")
class AuditPhysicalCount:
    """Record a physical count of a book at a store."""

    book_id = Identifier(required=True)
    store_id = Identifier(required=True)
    counted_quantity = Integer(required=True)
    auto_adjust = Boolean(default=False)
    actor_id = Identifier(required=True)


@inventory.command(part_of="InventoryRecord")
class MarkBookHistoricallyDepleted:
    """Flag a depleted book at a store as not expected to restock."""

    book_id = Identifier(required=True)
    store_id = Identifier(required=True)
    reason = Text()
    actor_id = Identifier(required=True)


@inventory.command(part_of="InventoryRecord")
class RepairStockCache:
    """Overwrite cached book stock wherever it drifted from the records."""

    actor_id = Identifier()


@inventory.command_handler(part_of=InventoryRecord)
class AuditHandler:
    @handle(AuditPhysicalCount)
    def audit_physical_count(self, command):
        stock = reservation_manager().load(command.book_id)
        record = stock.require_record_at(command.store_id)
        audit = record.audit_physical_count(
            counted_quantity=command.counted_quantity,
            actor_id=command.actor_id,
            auto_adjust=bool(command.auto_adjust),
        )
        stock.touch(record)
        stock.save()

        log = logger.warning if audit.difference else logger.info
        log(
            "Physical count recorded",
            book_id=stock.book_id,
            store_id=str(record.store_id),
            system_count=audit.system_count,
            physical_count=audit.physical_count,
            auto_adjusted=audit.auto_adjusted,
        )
        return audit.to_dict()

    @handle(MarkBookHistoricallyDepleted)
    def mark_historically_depleted(self, command):
        stock = reservation_manager().load(command.book_id)
        record = stock.require_record_at(command.store_id)
        record.mark_historically_depleted(actor_id=command.actor_id, reason=command.reason)
        stock.touch(record)
        stock.book.mark_historical(reason=command.reason)
        stock.save()

        logger.info(
            "Book marked historically depleted",
            book_id=stock.book_id,
            store_id=str(record.store_id),
        )

    @handle(RepairStockCache)
    def repair_stock_cache(self, command):
        return consistency_auditor().repair().to_dict()
