"""Reservation expiry — command and handler for releasing stale reservations.

Designed to be triggered periodically by an external scheduler (cron, K8s
CronJob). Finds reservation references whose latest reserve movement is older
than the cutoff and dispatches one serialized ReleaseStock per reference and
store. A failed release is logged and skipped.
"""

from datetime import UTC, datetime, timedelta

import structlog
from protean import handle
from protean.exceptions import InvalidOperationError, ObjectNotFoundError, ValidationError
from protean.fields import DateTime, Integer

from inventory.domain import inventory
from inventory.shared.clock import as_naive_utc
from inventory.stock.locking import process_serialized
from inventory.stock.record import InventoryRecord, MovementReason
from inventory.stock.reservation import ReleaseStock, reservation_manager

logger = structlog.get_logger(__name__)

DEFAULT_STALE_AFTER_MINUTES = 30


@inventory.command(part_of="InventoryRecord")
class ReleaseStaleReservations:
    """Release reservations older than the specified threshold."""

    older_than_minutes = Integer(default=DEFAULT_STALE_AFTER_MINUTES)
    as_of = DateTime()  # Optional: defaults to now


@inventory.command_handler(part_of=InventoryRecord)
class ReleaseStaleReservationsHandler:
    @handle(ReleaseStaleReservations)
    def release_stale_reservations(self, command):
        as_of = command.as_of or datetime.now(UTC)
        threshold_minutes = command.older_than_minutes or DEFAULT_STALE_AFTER_MINUTES
        cutoff = as_naive_utc(as_of - timedelta(minutes=threshold_minutes))

        logger.info(
            "Checking for stale reservations",
            cutoff=cutoff.isoformat(),
            threshold_minutes=threshold_minutes,
        )

        stale = [
            reservation
            for reservation in reservation_manager().outstanding_reservations()
            if reservation.last_reserved_at is not None and as_naive_utc(reservation.last_reserved_at) <= cutoff
        ]
        if not stale:
            logger.info("No stale reservations found")
            return 0

        released_count = 0
        for reservation in stale:
            try:
                process_serialized(
                    ReleaseStock(
                        book_id=reservation.book_id,
                        store_id=reservation.store_id,
                        quantity=reservation.quantity,
                        reservation_ref=reservation.reservation_ref,
                        reason=MovementReason.RESERVATION_EXPIRY.value,
                    )
                )
                released_count += 1
                logger.info(
                    "Released stale reservation",
                    book_id=reservation.book_id,
                    store_id=reservation.store_id,
                    reservation_ref=reservation.reservation_ref,
                    quantity=reservation.quantity,
                )
            except (ValidationError, InvalidOperationError, ObjectNotFoundError) as exc:
                logger.warning(
                    "Failed to release stale reservation",
                    book_id=reservation.book_id,
                    reservation_ref=reservation.reservation_ref,
                    error=str(exc),
                )

        logger.info("Stale reservation cleanup complete", released_count=released_count)
        return released_count
