"""Book aggregate (CQRS) — the catalogue side of a title held in stock.

``stock`` is a cache of the consolidated total across active stores. Every
write path refreshes it from the records it just touched; the consistency
auditor repairs it when it drifts.
"""

from datetime import UTC, datetime

from protean.fields import Boolean, DateTime, Integer, String

from inventory.book.events import (
    BookAdded,
    BookDeactivated,
    BookMarkedHistorical,
    BookStockCacheRepaired,
)
from inventory.domain import inventory
from inventory.shared.errors import StateError


@inventory.aggregate
class Book:
    title = String(required=True, max_length=255)
    isbn = String(max_length=17)
    stock = Integer(default=0, min_value=0)
    is_active = Boolean(default=True)
    is_historical = Boolean(default=False)
    created_at = DateTime()
    updated_at = DateTime()

    @classmethod
    def add(cls, title, isbn=None, initial_stock=0):
        """Register a book. Stock is filled in once the records exist."""
        now = datetime.now(UTC)
        book = cls(title=title, isbn=isbn, created_at=now, updated_at=now)
        book.raise_(
            BookAdded(
                book_id=str(book.id),
                title=title,
                isbn=isbn,
                initial_stock=initial_stock,
                added_at=now,
            )
        )
        return book

    def ensure_active(self):
        if not self.is_active:
            raise StateError({"book": [f"Book {self.id} is inactive"]})

    def refresh_stock(self, total):
        """Overwrite the cached stock with a freshly consolidated total."""
        if self.stock != total:
            self.stock = total
            self.updated_at = datetime.now(UTC)

    def repair_stock_cache(self, total):
        previous = self.stock
        self.stock = total
        self.updated_at = datetime.now(UTC)
        self.raise_(
            BookStockCacheRepaired(
                book_id=str(self.id),
                previous_stock=previous,
                repaired_stock=total,
                repaired_at=self.updated_at,
            )
        )

    def deactivate(self):
        if not self.is_active:
            raise StateError({"book": ["Book is already inactive"]})
        self.is_active = False
        self.updated_at = datetime.now(UTC)
        self.raise_(BookDeactivated(book_id=str(self.id), deactivated_at=self.updated_at))

    def mark_historical(self, reason=None):
        if self.is_historical:
            return
        self.is_historical = True
        self.updated_at = datetime.now(UTC)
        self.raise_(BookMarkedHistorical(book_id=str(self.id), reason=reason, marked_at=self.updated_at))
