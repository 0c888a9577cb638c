"""Consolidated per-book stock, derived from the records at active stores.

The consolidated view is never stored; it is summed from the ledgers on
demand. ``Book.stock`` caches its ``stock_total``.
"""

from dataclasses import dataclass

import structlog

from inventory.shared.identifiers import resolve_identifier

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ConsolidatedStock:
    """Stock of one book across all active stores.

    ``degraded`` is set when the figures could not be computed; the counters
    are then zero and ``error`` says why.
    """

    book_id: str
    stock_total: int = 0
    stock_available: int = 0
    stock_reserved: int = 0
    stores_with_stock: int = 0
    stores_available: int = 0
    degraded: bool = False
    error: str | None = None


class StockConsolidator:
    def __init__(self, records, stores):
        self._records = records
        self._stores = stores

    @staticmethod
    def totals_from(book_id, records, active_store_ids) -> ConsolidatedStock:
        """Sum ``records`` that sit at one of ``active_store_ids``."""
        counted = [record for record in records if str(record.store_id) in active_store_ids]
        return ConsolidatedStock(
            book_id=str(book_id),
            stock_total=sum(record.stock_total for record in counted),
            stock_available=sum(record.stock_available for record in counted),
            stock_reserved=sum(record.stock_reserved for record in counted),
            stores_with_stock=sum(1 for record in counted if record.stock_total > 0),
            stores_available=sum(1 for record in counted if record.stock_available > 0),
        )

    def consolidate(self, book_id) -> ConsolidatedStock:
        """Current consolidated stock of a book. Never raises."""
        try:
            book_id = resolve_identifier(book_id, "book_id")
            active_store_ids = self._stores.active_ids()
            records = self._records.find_for_book(book_id)
            return self.totals_from(book_id, records, active_store_ids)
        except Exception as exc:
            logger.exception("Stock consolidation failed", book_id=str(book_id))
            return ConsolidatedStock(book_id=str(book_id), degraded=True, error=str(exc))
