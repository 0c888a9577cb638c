"""Store aggregate (CQRS) — a physical bookstore branch that holds stock.

Only active stores take part in stock distribution and in the consolidated
per-book view. The store ``code`` is unique and fixes the order in which
stores receive shares of a distributed quantity.
"""

from datetime import UTC, datetime

from protean.fields import Boolean, DateTime, String

from inventory.domain import inventory
from inventory.shared.errors import StateError
from inventory.store.events import StoreDeactivated, StoreOpened, StoreReactivated


@inventory.aggregate
class Store:
    """A bookstore branch."""

    name = String(required=True, max_length=255)
    code = String(required=True, max_length=20)
    city = String(max_length=100)
    is_active = Boolean(default=True)
    created_at = DateTime()
    updated_at = DateTime()

    @classmethod
    def open(cls, name, code, city=None):
        """Open a new, active store."""
        now = datetime.now(UTC)
        store = cls(
            name=name,
            code=code.strip().upper(),
            city=city,
            created_at=now,
            updated_at=now,
        )
        store.raise_(
            StoreOpened(
                store_id=str(store.id),
                name=store.name,
                code=store.code,
                city=city,
                opened_at=now,
            )
        )
        return store

    def deactivate(self):
        if not self.is_active:
            raise StateError({"store": ["Store is already inactive"]})
        self.is_active = False
        self.updated_at = datetime.now(UTC)
        self.raise_(
            StoreDeactivated(
                store_id=str(self.id),
                deactivated_at=self.updated_at,
            )
        )

    def reactivate(self):
        if self.is_active:
            raise StateError({"store": ["Store is already active"]})
        self.is_active = True
        self.updated_at = datetime.now(UTC)
        self.raise_(
            StoreReactivated(
                store_id=str(self.id),
                reactivated_at=self.updated_at,
            )
        )
