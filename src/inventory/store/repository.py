"""Repository for the Store aggregate."""

from inventory.domain import inventory
from inventory.shared.paging import fetch_all
from inventory.store.store import Store


@inventory.repository(part_of=Store)
class StoreRepository:
    def find_by_code(self, code: str) -> Store | None:
        stores = self._dao.query.filter(code=code.strip().upper()).all().items
        return stores[0] if stores else None

    def find_active(self) -> list[Store]:
        """Active stores in distribution order (by code)."""
        return sorted(fetch_all(self._dao, is_active=True), key=lambda s: s.code)

    def active_ids(self) -> set[str]:
        return {str(store.id) for store in fetch_all(self._dao, is_active=True)}

    def known_ids(self) -> set[str]:
        return {str(store.id) for store in fetch_all(self._dao)}
