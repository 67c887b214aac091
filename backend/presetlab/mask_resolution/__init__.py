"""Mask identity resolution and override reconciliation package."""

from presetlab.mask_resolution.identity import CompositeKeyIdentity, MaskIdentityStrategy
from presetlab.mask_resolution.reconcile import apply_overrides
from presetlab.mask_resolution.resolver import (
    MaskResolver,
    find_index,
    find_index_flexible,
    identify,
)

__all__ = [
    "CompositeKeyIdentity",
    "MaskIdentityStrategy",
    "MaskResolver",
    "apply_overrides",
    "find_index",
    "find_index_flexible",
    "identify",
]
