"""Identifier handling at the domain boundary.

Every id inside the domain is a plain string. Callers may hand in strings,
UUIDs or loaded domain objects; ``resolve_identifier`` is the single place
that turns those into the canonical form.
"""

from uuid import UUID

from inventory.shared.errors import ValidationError


def resolve_identifier(value, field_name: str = "id") -> str:
    """Return the canonical string form of an identifier.

    Raises ``ValidationError`` keyed by ``field_name`` when the value is
    missing or blank.
    """
    if value is not None and not isinstance(value, (str, UUID, int)) and hasattr(value, "id"):
        value = value.id

    if value is None:
        raise ValidationError({field_name: ["Identifier is required"]})

    resolved = str(value).strip()
    if not resolved:
        raise ValidationError({field_name: ["Identifier cannot be blank"]})
    return resolved


def resolve_optional_identifier(value, field_name: str = "id") -> str | None:
    """Like ``resolve_identifier`` but passes ``None`` and blanks through as ``None``."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return resolve_identifier(value, field_name)
