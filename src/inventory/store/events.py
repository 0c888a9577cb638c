"""Domain events for the Store aggregate."""

from protean.fields import DateTime, Identifier, String

from inventory.domain import inventory


@inventory.event(part_of="Store")
class StoreOpened:
    """A new store started holding stock."""

    __version__ = 1

    store_id = Identifier(required=True)
    name = String(required=True)
    code = String(required=True)
    city = String()
    opened_at = DateTime(required=True)


@inventory.event(part_of="Store")
class StoreDeactivated:
    """A store stopped taking part in distribution and consolidation."""

    __version__ = 1

    store_id = Identifier(required=True)
    deactivated_at = DateTime(required=True)


@inventory.event(part_of="Store")
class StoreReactivated:
    """A previously deactivated store is back in service."""

    __version__ = 1

    store_id = Identifier(required=True)
    reactivated_at = DateTime(required=True)
