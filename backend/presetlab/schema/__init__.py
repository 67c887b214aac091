"""Controlled vocabularies for adjustment records."""

from presetlab.schema.mask_types import (
    MASK_TYPE_CONFIGS,
    MASK_TYPE_VALUES,
    MaskTypeConfig,
    get_mask_config,
    is_mask_type_supported,
    mask_types_by_category,
    normalize_mask_type,
)

__all__ = [
    "MASK_TYPE_CONFIGS",
    "MASK_TYPE_VALUES",
    "MaskTypeConfig",
    "get_mask_config",
    "is_mask_type_supported",
    "mask_types_by_category",
    "normalize_mask_type",
]
