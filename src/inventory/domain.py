"""Inventory bounded context — multi-store stock ledgers and reservations.

Tracks stock per (book, store) in InventoryRecord aggregates, derives each
book's consolidated stock from them, holds stock for carts and pickups through
reservations, and audits the cached book stock against the ledgers.
"""

import structlog
from protean.domain import Domain

from inventory.utils.logging import configure_logging

# Configure logging for the application
configure_logging(log_file_prefix="bookstore")

logger = structlog.get_logger(__name__)

# Domain Composition Root
inventory = Domain(name="inventory")
