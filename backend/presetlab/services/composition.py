"""Compose the effective adjustment record from a base record and override tiers."""

from __future__ import annotations

from collections.abc import Iterable

from presetlab.mask_resolution.reconcile import apply_overrides
from presetlab.mask_resolution.resolver import MaskResolver
from presetlab.schemas.adjustments import AdjustmentRecord, GlobalOverrides
from presetlab.schemas.overrides import MaskOperation, StyleOptions

# Style slider -> adjustment record field.
STYLE_FIELD_MAP: dict[str, str] = {
    "contrast": "contrast",
    "vibrance": "vibrance",
    "saturation_bias": "saturation",
}


def compute_effective(
    base: AdjustmentRecord | None,
    style_options: StyleOptions | None = None,
    accepted_mask_ops: Iterable[MaskOperation] | None = None,
    pending_mask_ops: Iterable[MaskOperation] | None = None,
    global_overrides: GlobalOverrides | None = None,
    *,
    resolver: MaskResolver | None = None,
) -> AdjustmentRecord:
    """Layer override tiers onto ``base`` in fixed precedence order.

    1. copy the base record;
    2. style sliders overwrite contrast, vibrance and saturation;
    3. masks are rebuilt from accepted ops, then pending ops on top;
    4. global overrides overwrite any field they specify.

    The result is a pure function of the inputs and is never persisted.
    """

    record = base.model_copy(deep=True) if base is not None else AdjustmentRecord()
    update: dict[str, object] = {}

    if style_options is not None:
        for option_name, field_name in STYLE_FIELD_MAP.items():
            value = getattr(style_options, option_name)
            if value is not None:
                update[field_name] = value

    accepted_masks = apply_overrides(record.masks, accepted_mask_ops, resolver=resolver)
    update["masks"] = apply_overrides(accepted_masks, pending_mask_ops, resolver=resolver)

    if global_overrides is not None:
        update.update(global_overrides.specified_fields())

    return record.model_copy(update=update)
