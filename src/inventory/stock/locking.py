"""Per-book serialization of stock mutations.

Every command that changes stock is dispatched through ``process_serialized``,
which holds the locks of the books it touches for the whole
``current_domain.process`` call. The command handler's unit of work commits
before the locks are released, so a second writer always reads committed
counters.

Locks are re-entrant and acquired in sorted key order.
"""

from contextlib import contextmanager
from threading import Lock, RLock

from protean.utils.globals import current_domain


class StockLocks:
    """Registry of one re-entrant lock per book id."""

    def __init__(self):
        self._guard = Lock()
        self._locks: dict[str, RLock] = {}

    def _lock_for(self, key: str) -> RLock:
        with self._guard:
            return self._locks.setdefault(key, RLock())

    @contextmanager
    def hold(self, *keys):
        ordered = sorted({str(key) for key in keys if key is not None})
        acquired = []
        try:
            for key in ordered:
                lock = self._lock_for(key)
                lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()


stock_locks = StockLocks()


def process_serialized(command, *keys):
    """Process ``command`` synchronously while holding the given book locks.

    Without explicit keys the command's ``book_id`` is used.
    """
    if not keys:
        keys = (getattr(command, "book_id", None),)
    with stock_locks.hold(*keys):
        return current_domain.process(command, asynchronous=False)
