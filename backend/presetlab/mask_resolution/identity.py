"""Deterministic identity keys for mask-like records."""

from __future__ import annotations

from decimal import Decimal
from typing import Protocol

from presetlab.schemas.adjustments import MaskFields

_REFERENCE_KEY_CHARS = 4


class MaskIdentityStrategy(Protocol):
    """Strategy that maps a mask-like record to a stable key."""

    def identify(self, mask: MaskFields) -> str:
        """Return the identity key for ``mask``; must never raise."""


class CompositeKeyIdentity:
    """Best-effort identity: explicit id, then name, then a structural composite.

    Proposers rarely issue stable ids, so identity degrades to the most
    specific signal available.
    """

    def identify(self, mask: MaskFields) -> str:
        if mask.id:
            return mask.id
        if mask.name:
            return f"name:{mask.name}"
        return ":".join(
            (
                mask.type or "",
                "" if mask.sub_category_id is None else str(mask.sub_category_id),
                format_reference(mask.reference_x),
                format_reference(mask.reference_y),
            )
        )


def format_reference(value: float | None) -> str:
    """Render a reference coordinate and truncate it to four characters."""

    if value is None:
        return ""
    return _number_text(value)[:_REFERENCE_KEY_CHARS]


def _number_text(value: float) -> str:
    # Shortest round-trip digits in fixed notation: 1.0 -> "1", 5e-05 -> "0.00005".
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return format(Decimal(repr(value)), "f")
