"""Domain events for the Book aggregate."""

from protean.fields import DateTime, Identifier, Integer, String, Text

from inventory.domain import inventory


@inventory.event(part_of="Book")
class BookAdded:
    """A book entered the catalogue and its stock was spread over the stores."""

    __version__ = 1

    book_id = Identifier(required=True)
    title = String(required=True)
    isbn = String()
    initial_stock = Integer(required=True)
    added_at = DateTime(required=True)


@inventory.event(part_of="Book")
class BookDeactivated:
    """A book was withdrawn from sale; its reservations were released."""

    __version__ = 1

    book_id = Identifier(required=True)
    deactivated_at = DateTime(required=True)


@inventory.event(part_of="Book")
class BookMarkedHistorical:
    """At least one store marked the book as historically depleted."""

    __version__ = 1

    book_id = Identifier(required=True)
    reason = Text()
    marked_at = DateTime(required=True)


@inventory.event(part_of="Book")
class BookStockCacheRepaired:
    """The cached stock figure drifted from the ledgers and was overwritten."""

    __version__ = 1

    book_id = Identifier(required=True)
    previous_stock = Integer(required=True)
    repaired_stock = Integer(required=True)
    repaired_at = DateTime(required=True)
