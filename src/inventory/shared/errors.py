"""Typed errors raised by the inventory domain.

All of them build on Protean's exception hierarchy so command handlers roll
back their unit of work and callers can keep catching the Protean base types.
Each carries a ``messages`` dict keyed by the offending field.
"""

from protean.exceptions import InvalidOperationError, ObjectNotFoundError, ValidationError

__all__ = [
    "ConsistencyWarning",
    "InsufficientStockError",
    "NotFoundError",
    "StateError",
    "ValidationError",
]


class InsufficientStockError(ValidationError):
    """Requested quantity exceeds the available or reserved stock."""


class NotFoundError(ObjectNotFoundError):
    """Unknown book, store or inventory record."""


class StateError(InvalidOperationError):
    """Operation not allowed in the current state of the target."""


class ConsistencyWarning(UserWarning):
    """Non-fatal finding collected by the consistency auditor. Never raised."""

    def __init__(self, code: str, detail: str, **context):
        super().__init__(f"{code}: {detail}")
        self.code = code
        self.detail = detail
        self.context = context

    def to_dict(self) -> dict:
        return {"code": self.code, "detail": self.detail, **self.context}
