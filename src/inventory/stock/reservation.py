"""Reservations — holding stock for carts, checkouts and store pickups.

``ReservationManager`` routes each request to the records of one book and
applies it in memory before anything is persisted, so a request that fails on
any store leaves every record untouched.

Routing of a new reservation:
    1. Pickup: the requested store, and only that store.
    2. Otherwise the active store with the most available copies
       (ties broken by store code).
    3. If no single store can cover it but the active stores together can,
       the reservation is split over stores in descending availability.
"""

from dataclasses import dataclass
from datetime import datetime
from functools import wraps

import structlog
from protean import UnitOfWork, handle
from protean.fields import Identifier, Integer, String, Text
from protean.utils.globals import current_domain, current_uow

from inventory.book.book import Book
from inventory.domain import inventory
from inventory.shared.errors import InsufficientStockError, ValidationError
from inventory.shared.identifiers import resolve_identifier, resolve_optional_identifier
from inventory.stock.book_inventory import BookInventory
from inventory.stock.locking import stock_locks
from inventory.stock.record import InventoryRecord, MovementReason
from inventory.store.store import Store

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Allocation:
    """Copies of a request served by one store."""

    store_id: str
    quantity: int

    def to_dict(self):
        return {"store_id": self.store_id, "quantity": self.quantity}


@dataclass(frozen=True)
class OutstandingReservation:
    book_id: str
    store_id: str
    reservation_ref: str
    quantity: int
    last_reserved_at: datetime | None


def _require_quantity(quantity):
    if quantity is None or quantity <= 0:
        raise ValidationError({"quantity": ["Quantity must be positive"]})


def serialized(operation):
    """Run a manager operation under its book's lock, inside a unit of work.

    Inside a command handler the handler's unit of work is reused. Called on
    its own, the operation gets a unit of work that commits before the lock
    is released, so every touched record is persisted or none is.
    """

    @wraps(operation)
    def wrapper(self, book_id, *args, **kwargs):
        with stock_locks.hold(resolve_identifier(book_id, "book_id")):
            if current_uow and current_uow.in_progress:
                return operation(self, book_id, *args, **kwargs)
            with UnitOfWork():
                return operation(self, book_id, *args, **kwargs)

    return wrapper


class ReservationManager:
    def __init__(self, records, stores, books):
        self._records = records
        self._stores = stores
        self._books = books

    def load(self, book_id) -> BookInventory:
        return BookInventory.load(book_id, self._records, self._stores, self._books)

    # -------------------------------------------------------------------
    # Reserve / release
    # -------------------------------------------------------------------
    @serialized
    def reserve(self, book_id, quantity, actor_id, reservation_ref, store_id=None) -> list[Allocation]:
        _require_quantity(quantity)
        reservation_ref = resolve_identifier(reservation_ref, "reservation_ref")
        stock = self.load(book_id)
        stock.book.ensure_active()

        if store_id is not None:
            allocations = self._route_pickup(stock, quantity, store_id)
        else:
            allocations = self._route_best(stock, quantity)

        for record, share in allocations:
            record.reserve(share, reservation_ref, actor_id=actor_id)
            stock.touch(record)
        stock.save()

        result = [Allocation(str(record.store_id), share) for record, share in allocations]
        logger.info(
            "Stock reserved",
            book_id=stock.book_id,
            reservation_ref=reservation_ref,
            quantity=quantity,
            stores=[allocation.store_id for allocation in result],
        )
        return result

    def _route_pickup(self, stock, quantity, store_id):
        store = stock.active_store(store_id)
        record = stock.record_at(store.id)
        available = record.stock_available if record else 0
        if record is None or available < quantity:
            raise InsufficientStockError(
                {"quantity": [f"Insufficient stock at store {store.code}: {available} available, {quantity} requested"]}
            )
        return [(record, quantity)]

    def _route_best(self, stock, quantity):
        candidates = sorted(
            (record for record in stock.active_records() if record.stock_available > 0),
            key=lambda record: (-record.stock_available, stock.store_code(record.store_id)),
        )
        available = sum(record.stock_available for record in candidates)
        if available < quantity:
            raise InsufficientStockError(
                {"quantity": [f"Insufficient stock: {available} available across stores, {quantity} requested"]}
            )

        if candidates[0].stock_available >= quantity:
            return [(candidates[0], quantity)]

        allocations = []
        remaining = quantity
        for record in candidates:
            share = min(remaining, record.stock_available)
            allocations.append((record, share))
            remaining -= share
            if remaining == 0:
                break
        return allocations

    def _holders(self, stock, reservation_ref, store_id=None):
        """Records holding copies for a reference, with the quantity each holds."""
        records = stock.records
        if store_id is not None:
            store_id = resolve_identifier(store_id, "store_id")
            records = [record for record in records if str(record.store_id) == store_id]

        holders = []
        for record in sorted(records, key=lambda r: stock.store_code(r.store_id)):
            held = record.reserved_for(reservation_ref)
            if held > 0:
                holders.append((record, held))
        return holders

    def _draw(self, stock, quantity, reservation_ref, store_id):
        holders = self._holders(stock, reservation_ref, store_id)
        held = sum(amount for _, amount in holders)
        if held < quantity:
            raise InsufficientStockError(
                {"quantity": [f"Reservation {reservation_ref} holds {held} copies, {quantity} requested"]}
            )

        draws = []
        remaining = quantity
        for record, amount in holders:
            share = min(remaining, amount)
            draws.append((record, share))
            remaining -= share
            if remaining == 0:
                break
        return draws

    @serialized
    def release(
        self,
        book_id,
        quantity,
        actor_id,
        reservation_ref,
        store_id=None,
        reason=MovementReason.RESERVATION_RELEASE,
    ) -> list[Allocation]:
        """Return copies held for ``reservation_ref`` to available."""
        _require_quantity(quantity)
        reservation_ref = resolve_identifier(reservation_ref, "reservation_ref")
        stock = self.load(book_id)

        draws = self._draw(stock, quantity, reservation_ref, store_id)
        for record, share in draws:
            record.release(share, reservation_ref, actor_id=actor_id, reason=reason)
            stock.touch(record)
        stock.save()

        logger.info(
            "Reservation released",
            book_id=stock.book_id,
            reservation_ref=reservation_ref,
            quantity=quantity,
            reason=getattr(reason, "value", reason),
        )
        return [Allocation(str(record.store_id), share) for record, share in draws]

    @serialized
    def confirm_sale(
        self,
        book_id,
        quantity,
        actor_id,
        transaction_ref,
        reservation_ref=None,
        store_id=None,
    ) -> list[Allocation]:
        """Sell reserved copies, decrementing total and reserved.

        With a reservation reference the copies come from the records holding
        it. Without one they come from whatever is reserved, at ``store_id``
        when given.
        """
        _require_quantity(quantity)
        transaction_ref = resolve_identifier(transaction_ref, "transaction_ref")
        reservation_ref = resolve_optional_identifier(reservation_ref, "reservation_ref")
        stock = self.load(book_id)

        if reservation_ref:
            draws = self._draw(stock, quantity, reservation_ref, store_id)
        else:
            draws = self._draw_unreferenced(stock, quantity, store_id)

        for record, share in draws:
            record.record_sale(share, transaction_ref, reservation_ref=reservation_ref, actor_id=actor_id)
            stock.touch(record)
        stock.save()

        logger.info(
            "Sale confirmed",
            book_id=stock.book_id,
            transaction_ref=transaction_ref,
            reservation_ref=reservation_ref,
            quantity=quantity,
        )
        return [Allocation(str(record.store_id), share) for record, share in draws]

    def _draw_unreferenced(self, stock, quantity, store_id):
        records = stock.records
        if store_id is not None:
            store_id = resolve_identifier(store_id, "store_id")
            records = [record for record in records if str(record.store_id) == store_id]
        records = sorted(
            (record for record in records if record.stock_reserved > 0),
            key=lambda record: (-record.stock_reserved, stock.store_code(record.store_id)),
        )

        reserved = sum(record.stock_reserved for record in records)
        if reserved < quantity:
            raise InsufficientStockError(
                {"quantity": [f"Insufficient reserved stock: {reserved} reserved, {quantity} requested"]}
            )

        draws = []
        remaining = quantity
        for record in records:
            share = min(remaining, record.stock_reserved)
            draws.append((record, share))
            remaining -= share
            if remaining == 0:
                break
        return draws

    def release_all(self, stock, actor_id=None, reason=None) -> int:
        """Zero reserved on every record of a loaded book. Nothing is saved."""
        released = 0
        for record in stock.records:
            movement = record.release_all(actor_id=actor_id, note=reason)
            if movement is not None:
                released += movement.quantity
                stock.touch(record)
        return released

    @serialized
    def release_all_for_book(self, book_id, actor_id=None, reason=None) -> int:
        stock = self.load(book_id)
        released = self.release_all(stock, actor_id=actor_id, reason=reason)
        stock.save()

        logger.info("All reservations released", book_id=stock.book_id, quantity=released, reason=reason)
        return released

    # -------------------------------------------------------------------
    # Transfers
    # -------------------------------------------------------------------
    @serialized
    def transfer(self, book_id, from_store_id, to_store_id, quantity, actor_id=None, note=None) -> None:
        """Move available copies between two active stores."""
        _require_quantity(quantity)
        from_store_id = resolve_identifier(from_store_id, "from_store_id")
        to_store_id = resolve_identifier(to_store_id, "to_store_id")
        if from_store_id == to_store_id:
            raise ValidationError({"to_store_id": ["Source and destination stores must differ"]})

        stock = self.load(book_id)
        source_store = stock.active_store(from_store_id)
        stock.active_store(to_store_id)

        source = stock.record_at(source_store.id)
        if source is None:
            raise InsufficientStockError(
                {"quantity": [f"Insufficient stock at store {source_store.code}: 0 available, {quantity} requested"]}
            )
        source.record_outbound(quantity, reason=MovementReason.TRANSFER, actor_id=actor_id, note=note)
        stock.touch(source)

        destination = stock.record_or_create(to_store_id)
        destination.record_inbound(quantity, reason=MovementReason.TRANSFER, actor_id=actor_id, note=note)
        stock.touch(destination)
        stock.save()

        logger.info(
            "Stock transferred",
            book_id=stock.book_id,
            from_store_id=from_store_id,
            to_store_id=to_store_id,
            quantity=quantity,
        )

    # -------------------------------------------------------------------
    # Sweeping
    # -------------------------------------------------------------------
    def outstanding_reservations(self) -> list[OutstandingReservation]:
        """Every reference still holding copies, across all records."""
        outstanding = []
        for record in self._records.find_all():
            if record.stock_reserved == 0:
                continue
            for ref, (quantity, last_reserved_at) in record.reservation_balances().items():
                outstanding.append(
                    OutstandingReservation(
                        book_id=str(record.book_id),
                        store_id=str(record.store_id),
                        reservation_ref=ref,
                        quantity=quantity,
                        last_reserved_at=last_reserved_at,
                    )
                )
        return outstanding


def reservation_manager() -> ReservationManager:
    """A manager wired to the current domain's repositories."""
    return ReservationManager(
        records=current_domain.repository_for(InventoryRecord),
        stores=current_domain.repository_for(Store),
        books=current_domain.repository_for(Book),
    )


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------
@inventory.command(part_of="InventoryRecord")
class ReserveStock:
    """Hold copies of a book for a cart, checkout or pickup."""

    book_id = Identifier(required=True)
    quantity = Integer(required=True)
    reservation_ref = Identifier(required=True)
    store_id = Identifier()  # Pickup store; routed automatically when absent
    actor_id = Identifier()


@inventory.command(part_of="InventoryRecord")
class ReleaseStock:
    """Return copies held for a reservation to available."""

    book_id = Identifier(required=True)
    quantity = Integer(required=True)
    reservation_ref = Identifier(required=True)
    store_id = Identifier()
    reason = String(default=MovementReason.RESERVATION_RELEASE.value)
    actor_id = Identifier()


@inventory.command(part_of="InventoryRecord")
class ConfirmSale:
    """Turn reserved copies into a sale."""

    book_id = Identifier(required=True)
    quantity = Integer(required=True)
    transaction_ref = Identifier(required=True)
    reservation_ref = Identifier()
    store_id = Identifier()
    actor_id = Identifier()


@inventory.command(part_of="InventoryRecord")
class ReleaseAllForBook:
    """Drop every reservation on a book."""

    book_id = Identifier(required=True)
    reason = Text()
    actor_id = Identifier()


@inventory.command_handler(part_of=InventoryRecord)
class ReservationHandler:
    @handle(ReserveStock)
    def reserve_stock(self, command):
        allocations = reservation_manager().reserve(
            book_id=command.book_id,
            quantity=command.quantity,
            actor_id=command.actor_id,
            reservation_ref=command.reservation_ref,
            store_id=command.store_id,
        )
        return [allocation.to_dict() for allocation in allocations]

    @handle(ReleaseStock)
    def release_stock(self, command):
        allocations = reservation_manager().release(
            book_id=command.book_id,
            quantity=command.quantity,
            actor_id=command.actor_id,
            reservation_ref=command.reservation_ref,
            store_id=command.store_id,
            reason=command.reason or MovementReason.RESERVATION_RELEASE.value,
        )
        return [allocation.to_dict() for allocation in allocations]

    @handle(ConfirmSale)
    def confirm_sale(self, command):
        allocations = reservation_manager().confirm_sale(
            book_id=command.book_id,
            quantity=command.quantity,
            actor_id=command.actor_id,
            transaction_ref=command.transaction_ref,
            reservation_ref=command.reservation_ref,
            store_id=command.store_id,
        )
        return [allocation.to_dict() for allocation in allocations]

    @handle(ReleaseAllForBook)
    def release_all_for_book(self, command):
        return reservation_manager().release_all_for_book(
            book_id=command.book_id,
            actor_id=command.actor_id,
            reason=command.reason,
        )
