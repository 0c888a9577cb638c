"""InventoryRecord aggregate (CQRS) — the stock ledger of one book at one store.

Stock Level Model:
    stock_total:     Copies physically held by the store
    stock_reserved:  Copies on hold for carts, checkouts and pickups
    stock_available: stock_total - stock_reserved (what can still be sold)

Every counter change appends one Movement to the append-only ledger and, when
the derived status changes, one StatusChange to the status history. Counter
updates, the movement and the status entry are applied inside a single
``atomic_change`` so the invariants are only checked on the finished state.
"""

from datetime import UTC, datetime
from enum import Enum

from protean import atomic_change, invariant
from protean.fields import Boolean, DateTime, HasMany, Identifier, Integer, String, Text, ValueObject

from inventory.domain import inventory
from inventory.shared.clock import as_naive_utc
from inventory.shared.errors import InsufficientStockError, StateError, ValidationError
from inventory.stock.events import (
    InventoryRecordCreated,
    LowStockDetected,
    PhysicalCountRecorded,
    RecordStatusChanged,
    StockAdjusted,
    StockIssued,
    StockReceived,
    StockReleased,
    StockReserved,
)

DEFAULT_THRESHOLD_ALERT = 5


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class RecordStatus(Enum):
    AVAILABLE = "available"
    LOW_STOCK = "low_stock"
    DEPLETED = "depleted"
    HISTORICALLY_DEPLETED = "historically_depleted"


class MovementKind(Enum):
    INBOUND = "inbound"
    OUTBOUND = "outbound"
    RESERVE = "reserve"
    RELEASE = "release"
    ADJUSTMENT = "adjustment"
    WRITEOFF = "writeoff"


class MovementReason(Enum):
    PURCHASE = "purchase"
    INITIAL_STOCK = "initial_stock"
    RETURN = "return"
    TRANSFER = "transfer"
    SALE = "sale"
    LOSS = "loss"
    DAMAGE = "damage"
    RESERVATION = "reservation"
    RESERVATION_RELEASE = "reservation_release"
    RESERVATION_EXPIRY = "reservation_expiry"
    BULK_RELEASE = "bulk_release"
    AUDIT_ADJUSTMENT = "audit_adjustment"
    REDISTRIBUTION = "redistribution"


REASONS_BY_KIND = {
    MovementKind.INBOUND: {
        MovementReason.PURCHASE,
        MovementReason.INITIAL_STOCK,
        MovementReason.RETURN,
        MovementReason.TRANSFER,
    },
    MovementKind.OUTBOUND: {MovementReason.SALE, MovementReason.TRANSFER},
    MovementKind.RESERVE: {MovementReason.RESERVATION},
    MovementKind.RELEASE: {
        MovementReason.RESERVATION_RELEASE,
        MovementReason.RESERVATION_EXPIRY,
        MovementReason.BULK_RELEASE,
    },
    MovementKind.ADJUSTMENT: {MovementReason.AUDIT_ADJUSTMENT, MovementReason.REDISTRIBUTION},
    MovementKind.WRITEOFF: {MovementReason.LOSS, MovementReason.DAMAGE},
}


def derive_status(stock_total, stock_available, threshold_alert):
    """Status implied by the counters alone."""
    if stock_total == 0:
        return RecordStatus.DEPLETED
    if stock_available <= threshold_alert:
        return RecordStatus.LOW_STOCK
    return RecordStatus.AVAILABLE


def _coerce_reason(kind, reason):
    try:
        reason = MovementReason(reason)
    except ValueError:
        raise ValidationError({"reason": [f"Unknown movement reason: {reason}"]}) from None
    if reason not in REASONS_BY_KIND[kind]:
        raise ValidationError({"reason": [f"Reason '{reason.value}' is not valid for {kind.value} movements"]})
    return reason


def _require_positive(quantity):
    if quantity is None or quantity <= 0:
        raise ValidationError({"quantity": ["Quantity must be positive"]})


def _require_reference(value, field_name, label):
    if value is None or not str(value).strip():
        raise ValidationError({field_name: [f"{label} is required"]})


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@inventory.value_object(part_of="InventoryRecord")
class AuditResult:
    """Outcome of the most recent physical count."""

    audited_at = DateTime(required=True)
    actor_id = Identifier(required=True)
    system_count = Integer(required=True)
    physical_count = Integer(required=True, min_value=0)
    difference = Integer(required=True)
    auto_adjusted = Boolean(default=False)


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@inventory.entity(part_of="InventoryRecord")
class Movement:
    """One ledger entry. Built only through the per-kind factories below.

    ``quantity`` is always the absolute size of the change; the signed effect
    is visible in the before/after snapshots.
    """

    sequence = Integer(required=True, min_value=1)
    kind = String(required=True, choices=MovementKind)
    quantity = Integer(required=True, min_value=0)
    reason = String(required=True, choices=MovementReason)
    occurred_at = DateTime(required=True)
    actor_id = Identifier()  # None means the system
    transaction_ref = Identifier()
    reservation_ref = Identifier()
    note = Text()
    total_before = Integer(required=True)
    available_before = Integer(required=True)
    reserved_before = Integer(required=True)
    total_after = Integer(required=True)
    available_after = Integer(required=True)
    reserved_after = Integer(required=True)

    @invariant.post
    def reason_belongs_to_kind(self):
        kind = MovementKind(self.kind)
        if MovementReason(self.reason) not in REASONS_BY_KIND[kind]:
            raise ValidationError({"reason": [f"Reason '{self.reason}' is not valid for {self.kind} movements"]})

    @invariant.post
    def reservation_movements_carry_reference(self):
        kind = MovementKind(self.kind)
        bulk = self.reason == MovementReason.BULK_RELEASE.value
        if kind in (MovementKind.RESERVE, MovementKind.RELEASE) and not bulk and not self.reservation_ref:
            raise ValidationError({"reservation_ref": ["Reservation movements require a reservation reference"]})

    # -------------------------------------------------------------------
    # Variants
    # -------------------------------------------------------------------
    @classmethod
    def inbound(cls, quantity, reason, actor_id=None, note=None, **ledger):
        return cls(kind=MovementKind.INBOUND.value, quantity=quantity, reason=reason, actor_id=actor_id, note=note, **ledger)

    @classmethod
    def outbound(cls, quantity, reason, actor_id=None, transaction_ref=None, note=None, **ledger):
        return cls(
            kind=MovementKind.OUTBOUND.value,
            quantity=quantity,
            reason=reason,
            actor_id=actor_id,
            transaction_ref=transaction_ref,
            note=note,
            **ledger,
        )

    @classmethod
    def sale(cls, quantity, transaction_ref, reservation_ref=None, actor_id=None, note=None, **ledger):
        return cls(
            kind=MovementKind.OUTBOUND.value,
            quantity=quantity,
            reason=MovementReason.SALE.value,
            actor_id=actor_id,
            transaction_ref=transaction_ref,
            reservation_ref=reservation_ref,
            note=note,
            **ledger,
        )

    @classmethod
    def reserve(cls, quantity, reservation_ref, actor_id=None, note=None, **ledger):
        return cls(
            kind=MovementKind.RESERVE.value,
            quantity=quantity,
            reason=MovementReason.RESERVATION.value,
            actor_id=actor_id,
            reservation_ref=reservation_ref,
            note=note,
            **ledger,
        )

    @classmethod
    def release(cls, quantity, reservation_ref, reason, actor_id=None, note=None, **ledger):
        return cls(
            kind=MovementKind.RELEASE.value,
            quantity=quantity,
            reason=reason,
            actor_id=actor_id,
            reservation_ref=reservation_ref,
            note=note,
            **ledger,
        )

    @classmethod
    def bulk_release(cls, quantity, actor_id=None, note=None, **ledger):
        return cls(
            kind=MovementKind.RELEASE.value,
            quantity=quantity,
            reason=MovementReason.BULK_RELEASE.value,
            actor_id=actor_id,
            note=note,
            **ledger,
        )

    @classmethod
    def adjustment(cls, quantity, reason, actor_id=None, note=None, **ledger):
        return cls(kind=MovementKind.ADJUSTMENT.value, quantity=quantity, reason=reason, actor_id=actor_id, note=note, **ledger)

    @classmethod
    def writeoff(cls, quantity, reason, actor_id=None, note=None, **ledger):
        return cls(kind=MovementKind.WRITEOFF.value, quantity=quantity, reason=reason, actor_id=actor_id, note=note, **ledger)


@inventory.entity(part_of="InventoryRecord")
class StatusChange:
    """One transition in the record's status history."""

    sequence = Integer(required=True, min_value=1)
    previous_status = String(choices=RecordStatus)
    new_status = String(required=True, choices=RecordStatus)
    changed_at = DateTime(required=True)
    reason = Text()
    actor_id = Identifier()


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@inventory.aggregate
class InventoryRecord:
    """Stock of one book at one store."""

    book_id = Identifier(required=True)
    store_id = Identifier(required=True)
    stock_total = Integer(default=0, min_value=0)
    stock_available = Integer(default=0, min_value=0)
    stock_reserved = Integer(default=0, min_value=0)
    threshold_alert = Integer(default=DEFAULT_THRESHOLD_ALERT, min_value=1)
    status = String(choices=RecordStatus, default=RecordStatus.DEPLETED.value)
    movements = HasMany(Movement)
    status_history = HasMany(StatusChange)
    last_audit = ValueObject(AuditResult)
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def total_is_available_plus_reserved(self):
        if self.stock_total != self.stock_available + self.stock_reserved:
            raise ValidationError(
                {
                    "stock_total": [
                        f"Total ({self.stock_total}) must equal available ({self.stock_available})"
                        f" plus reserved ({self.stock_reserved})"
                    ]
                }
            )

    @invariant.post
    def status_follows_stock_levels(self):
        if self.status == RecordStatus.HISTORICALLY_DEPLETED.value:
            return
        expected = derive_status(self.stock_total, self.stock_available, self.threshold_alert)
        if self.status != expected.value:
            raise ValidationError({"status": [f"Status should be {expected.value}, not {self.status}"]})

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def create(cls, book_id, store_id, threshold_alert=DEFAULT_THRESHOLD_ALERT):
        """Open an empty ledger for a book at a store."""
        now = datetime.now(UTC)
        record = cls(
            book_id=book_id,
            store_id=store_id,
            threshold_alert=threshold_alert,
            status=RecordStatus.DEPLETED.value,
            created_at=now,
            updated_at=now,
        )
        record.raise_(
            InventoryRecordCreated(
                record_id=str(record.id),
                book_id=str(book_id),
                store_id=str(store_id),
                threshold_alert=record.threshold_alert,
                created_at=now,
            )
        )
        return record

    # -------------------------------------------------------------------
    # Ledger helpers
    # -------------------------------------------------------------------
    def ordered_movements(self):
        return sorted(self.movements or [], key=lambda m: m.sequence)

    def ordered_status_history(self):
        return sorted(self.status_history or [], key=lambda s: s.sequence)

    def _levels(self):
        return self.stock_total, self.stock_available, self.stock_reserved

    def _ledger_fields(self, before, now):
        return {
            "sequence": len(self.movements or []) + 1,
            "occurred_at": now,
            "total_before": before[0],
            "available_before": before[1],
            "reserved_before": before[2],
            "total_after": self.stock_total,
            "available_after": self.stock_available,
            "reserved_after": self.stock_reserved,
        }

    def _append_status_change(self, previous_status, new_status, reason, actor_id, now):
        self.add_status_history(
            StatusChange(
                sequence=len(self.status_history or []) + 1,
                previous_status=previous_status,
                new_status=new_status,
                changed_at=now,
                reason=reason,
                actor_id=actor_id,
            )
        )
        self.raise_(
            RecordStatusChanged(
                record_id=str(self.id),
                book_id=str(self.book_id),
                store_id=str(self.store_id),
                previous_status=previous_status,
                new_status=new_status,
                reason=reason,
                actor_id=actor_id,
                changed_at=now,
            )
        )
        if new_status == RecordStatus.LOW_STOCK.value:
            self.raise_(
                LowStockDetected(
                    record_id=str(self.id),
                    book_id=str(self.book_id),
                    store_id=str(self.store_id),
                    stock_available=self.stock_available,
                    threshold_alert=self.threshold_alert,
                    detected_at=now,
                )
            )

    def _apply(self, factory, *, total=0, available=0, reserved=0, actor_id=None, **movement_fields):
        """Shift the counters, log one movement and follow up the status."""
        before = self._levels()
        previous_status = self.status
        now = datetime.now(UTC)

        with atomic_change(self):
            self.stock_total = self.stock_total + total
            self.stock_available = self.stock_available + available
            self.stock_reserved = self.stock_reserved + reserved
            self.updated_at = now

            movement = factory(actor_id=actor_id, **movement_fields, **self._ledger_fields(before, now))
            self.add_movements(movement)

            if previous_status != RecordStatus.HISTORICALLY_DEPLETED.value:
                new_status = derive_status(self.stock_total, self.stock_available, self.threshold_alert).value
                if new_status != previous_status:
                    self.status = new_status
                    self._append_status_change(
                        previous_status,
                        new_status,
                        f"Automatic change after {movement.kind} movement",
                        actor_id,
                        now,
                    )

        return movement

    # -------------------------------------------------------------------
    # Inbound / outbound
    # -------------------------------------------------------------------
    def record_inbound(self, quantity, reason=MovementReason.PURCHASE, actor_id=None, note=None):
        """Receive copies into the store. They always land in available."""
        _require_positive(quantity)
        reason = _coerce_reason(MovementKind.INBOUND, reason)

        movement = self._apply(
            Movement.inbound,
            total=quantity,
            available=quantity,
            actor_id=actor_id,
            quantity=quantity,
            reason=reason.value,
            note=note,
        )
        self.raise_(
            StockReceived(
                record_id=str(self.id),
                book_id=str(self.book_id),
                store_id=str(self.store_id),
                quantity=quantity,
                reason=reason.value,
                actor_id=actor_id,
                stock_total=self.stock_total,
                stock_available=self.stock_available,
                stock_reserved=self.stock_reserved,
                occurred_at=movement.occurred_at,
            )
        )
        return movement

    def record_outbound(self, quantity, reason=MovementReason.SALE, actor_id=None, transaction_ref=None, note=None):
        """Remove available copies from the store (direct sale, transfer out)."""
        _require_positive(quantity)
        reason = _coerce_reason(MovementKind.OUTBOUND, reason)
        if quantity > self.stock_available:
            raise InsufficientStockError(
                {"quantity": [f"Insufficient stock: {self.stock_available} available, {quantity} requested"]}
            )

        movement = self._apply(
            Movement.outbound,
            total=-quantity,
            available=-quantity,
            actor_id=actor_id,
            quantity=quantity,
            reason=reason.value,
            transaction_ref=transaction_ref,
            note=note,
        )
        self._raise_issued(movement)
        return movement

    def record_sale(self, quantity, transaction_ref, reservation_ref=None, actor_id=None, note=None):
        """Sell reserved copies directly, decrementing total and reserved.

        A sale without a reservation reference is charged against the
        outstanding references oldest first, one sale movement per reference,
        so the per-reference balances never exceed the reserved counter.
        Returns the sale movements.
        """
        _require_positive(quantity)
        _require_reference(transaction_ref, "transaction_ref", "Transaction reference")
        if quantity > self.stock_reserved:
            raise InsufficientStockError(
                {"quantity": [f"Insufficient reserved stock: {self.stock_reserved} reserved, {quantity} requested"]}
            )

        if reservation_ref:
            held = self.reserved_for(reservation_ref)
            if quantity > held:
                raise InsufficientStockError(
                    {"quantity": [f"Reservation {reservation_ref} holds {held} copies, {quantity} requested"]}
                )
            shares = [(reservation_ref, quantity)]
        else:
            shares = self._charge_oldest_first(quantity)

        movements = []
        for ref, share in shares:
            movement = self._apply(
                Movement.sale,
                total=-share,
                reserved=-share,
                actor_id=actor_id,
                quantity=share,
                transaction_ref=transaction_ref,
                reservation_ref=ref,
                note=note,
            )
            self._raise_issued(movement)
            movements.append(movement)
        return movements

    def _charge_oldest_first(self, quantity):
        balances = sorted(
            self.reservation_balances().items(),
            key=lambda item: (as_naive_utc(item[1][1]) or datetime.min, item[0]),
        )
        shares = []
        remaining = quantity
        for ref, (held, _) in balances:
            share = min(remaining, held)
            shares.append((ref, share))
            remaining -= share
            if remaining == 0:
                break
        if remaining:
            shares.append((None, remaining))
        return shares

    def record_writeoff(self, quantity, reason, actor_id=None, note=None):
        """Write off lost or damaged copies from available stock."""
        _require_positive(quantity)
        reason = _coerce_reason(MovementKind.WRITEOFF, reason)
        if quantity > self.stock_available:
            raise InsufficientStockError(
                {"quantity": [f"Cannot write off more than available: {self.stock_available} available"]}
            )

        movement = self._apply(
            Movement.writeoff,
            total=-quantity,
            available=-quantity,
            actor_id=actor_id,
            quantity=quantity,
            reason=reason.value,
            note=note,
        )
        self._raise_issued(movement)
        return movement

    def _raise_issued(self, movement):
        self.raise_(
            StockIssued(
                record_id=str(self.id),
                book_id=str(self.book_id),
                store_id=str(self.store_id),
                kind=movement.kind,
                quantity=movement.quantity,
                reason=movement.reason,
                actor_id=movement.actor_id,
                transaction_ref=movement.transaction_ref,
                reservation_ref=movement.reservation_ref,
                stock_total=self.stock_total,
                stock_available=self.stock_available,
                stock_reserved=self.stock_reserved,
                occurred_at=movement.occurred_at,
            )
        )

    # -------------------------------------------------------------------
    # Reservations
    # -------------------------------------------------------------------
    def reserve(self, quantity, reservation_ref, actor_id=None, note=None):
        """Move available copies onto hold for a reservation."""
        _require_positive(quantity)
        _require_reference(reservation_ref, "reservation_ref", "Reservation reference")
        if quantity > self.stock_available:
            raise InsufficientStockError(
                {"quantity": [f"Insufficient stock: {self.stock_available} available, {quantity} requested"]}
            )

        movement = self._apply(
            Movement.reserve,
            available=-quantity,
            reserved=quantity,
            actor_id=actor_id,
            quantity=quantity,
            reservation_ref=reservation_ref,
            note=note,
        )
        self.raise_(
            StockReserved(
                record_id=str(self.id),
                book_id=str(self.book_id),
                store_id=str(self.store_id),
                reservation_ref=str(reservation_ref),
                quantity=quantity,
                actor_id=actor_id,
                stock_available=self.stock_available,
                stock_reserved=self.stock_reserved,
                occurred_at=movement.occurred_at,
            )
        )
        return movement

    def release(
        self,
        quantity,
        reservation_ref,
        actor_id=None,
        note=None,
        reason=MovementReason.RESERVATION_RELEASE,
    ):
        """Return held copies to available."""
        _require_positive(quantity)
        _require_reference(reservation_ref, "reservation_ref", "Reservation reference")
        reason = _coerce_reason(MovementKind.RELEASE, reason)
        if reason == MovementReason.BULK_RELEASE:
            raise ValidationError({"reason": ["Bulk releases go through release_all"]})
        if quantity > self.stock_reserved:
            raise InsufficientStockError(
                {"quantity": [f"Cannot release {quantity}: only {self.stock_reserved} reserved"]}
            )
        held = self.reserved_for(reservation_ref)
        if quantity > held:
            raise InsufficientStockError(
                {"quantity": [f"Cannot release {quantity}: reservation {reservation_ref} holds {held}"]}
            )

        movement = self._apply(
            Movement.release,
            available=quantity,
            reserved=-quantity,
            actor_id=actor_id,
            quantity=quantity,
            reservation_ref=reservation_ref,
            reason=reason.value,
            note=note,
        )
        self._raise_released(movement)
        return movement

    def release_all(self, actor_id=None, note=None):
        """Zero the reserved counter in one bulk-release movement.

        Returns ``None`` when nothing is reserved.
        """
        if self.stock_reserved == 0:
            return None

        quantity = self.stock_reserved
        movement = self._apply(
            Movement.bulk_release,
            available=quantity,
            reserved=-quantity,
            actor_id=actor_id,
            quantity=quantity,
            note=note,
        )
        self._raise_released(movement)
        return movement

    def _raise_released(self, movement):
        self.raise_(
            StockReleased(
                record_id=str(self.id),
                book_id=str(self.book_id),
                store_id=str(self.store_id),
                reservation_ref=movement.reservation_ref,
                quantity=movement.quantity,
                reason=movement.reason,
                actor_id=movement.actor_id,
                stock_available=self.stock_available,
                stock_reserved=self.stock_reserved,
                occurred_at=movement.occurred_at,
            )
        )

    def reservation_balances(self):
        """Outstanding quantity per reservation reference.

        Maps each reference to ``(quantity, last_reserved_at)``. Only movements
        after the most recent bulk release count, since that release zeroed
        every hold on the record.
        """
        balances = {}
        for movement in self.ordered_movements():
            if movement.reason == MovementReason.BULK_RELEASE.value:
                balances = {}
                continue
            ref = movement.reservation_ref
            if not ref:
                continue
            ref = str(ref)
            quantity, last_reserved_at = balances.get(ref, (0, None))
            if movement.kind == MovementKind.RESERVE.value:
                balances[ref] = (quantity + movement.quantity, movement.occurred_at)
            elif movement.kind in (MovementKind.RELEASE.value, MovementKind.OUTBOUND.value):
                balances[ref] = (max(0, quantity - movement.quantity), last_reserved_at)

        return {ref: entry for ref, entry in balances.items() if entry[0] > 0}

    def reserved_for(self, reservation_ref):
        """Quantity still held on this record for one reservation reference."""
        quantity, _ = self.reservation_balances().get(str(reservation_ref), (0, None))
        return quantity

    # -------------------------------------------------------------------
    # Adjustments
    # -------------------------------------------------------------------
    def apply_redistribution(self, target_available, actor_id=None, note=None):
        """Set available stock to a target share, keeping reserved untouched.

        Returns ``None`` when the record already holds its target.
        """
        if target_available is None or target_available < 0:
            raise ValidationError({"target_available": ["Target must be zero or more"]})

        change = target_available - self.stock_available
        if change == 0:
            return None

        movement = self._apply(
            Movement.adjustment,
            total=change,
            available=change,
            actor_id=actor_id,
            quantity=abs(change),
            reason=MovementReason.REDISTRIBUTION.value,
            note=note or f"Redistributed available stock to {target_available}",
        )
        self._raise_adjusted(movement, change)
        return movement

    def audit_physical_count(self, counted_quantity, actor_id, auto_adjust=False):
        """Record a physical count and optionally align the ledger with it.

        The difference is applied to total and available only. Available never
        drops below zero, so a count below the reserved quantity leaves total
        above the counted figure.
        """
        _require_reference(actor_id, "actor_id", "Auditor")
        if counted_quantity is None or counted_quantity < 0:
            raise ValidationError({"counted_quantity": ["Counted quantity must be zero or more"]})

        system_count = self.stock_total
        difference = counted_quantity - system_count
        now = datetime.now(UTC)

        change = 0
        if auto_adjust and difference != 0:
            change = max(0, self.stock_available + difference) - self.stock_available
        adjusted = change != 0

        if adjusted:
            note = f"Physical count {counted_quantity}, system count {system_count}, difference {difference}"
            if change != difference:
                note += f"; available clamped at zero, applied {change}"
            movement = self._apply(
                Movement.adjustment,
                total=change,
                available=change,
                actor_id=actor_id,
                quantity=abs(change),
                reason=MovementReason.AUDIT_ADJUSTMENT.value,
                note=note,
            )
            self._raise_adjusted(movement, change)

        self.last_audit = AuditResult(
            audited_at=now,
            actor_id=actor_id,
            system_count=system_count,
            physical_count=counted_quantity,
            difference=difference,
            auto_adjusted=adjusted,
        )
        self.updated_at = now
        self.raise_(
            PhysicalCountRecorded(
                record_id=str(self.id),
                book_id=str(self.book_id),
                store_id=str(self.store_id),
                system_count=system_count,
                physical_count=counted_quantity,
                difference=difference,
                auto_adjusted=adjusted,
                actor_id=actor_id,
                audited_at=now,
            )
        )
        return self.last_audit

    def _raise_adjusted(self, movement, change):
        self.raise_(
            StockAdjusted(
                record_id=str(self.id),
                book_id=str(self.book_id),
                store_id=str(self.store_id),
                quantity_change=change,
                reason=movement.reason,
                actor_id=movement.actor_id,
                stock_total=self.stock_total,
                stock_available=self.stock_available,
                stock_reserved=self.stock_reserved,
                occurred_at=movement.occurred_at,
            )
        )

    # -------------------------------------------------------------------
    # Status transitions
    # -------------------------------------------------------------------
    def mark_historically_depleted(self, actor_id, reason=None):
        """Flag a depleted record as no longer expected to restock."""
        _require_reference(actor_id, "actor_id", "Actor")
        if self.status != RecordStatus.DEPLETED.value:
            raise StateError({"status": [f"Only depleted records can be marked historical, record is {self.status}"]})

        now = datetime.now(UTC)
        previous_status = self.status
        with atomic_change(self):
            self.status = RecordStatus.HISTORICALLY_DEPLETED.value
            self.updated_at = now
            self._append_status_change(
                previous_status,
                self.status,
                reason or "Marked as historically depleted",
                actor_id,
                now,
            )

    def ensure_deletable(self):
        if self.stock_reserved > 0:
            raise StateError(
                {"stock_reserved": [f"Record still holds {self.stock_reserved} reserved copies and cannot be deleted"]}
            )
