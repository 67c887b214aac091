"""Replay mask override operations onto a mask collection."""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from presetlab.mask_resolution.resolver import MaskResolver, default_resolver
from presetlab.schemas.adjustments import Mask, MaskLocalAdjustments
from presetlab.schemas.overrides import MaskOperation, MaskRemoveOp, MaskResetOp, MaskUpsertOp

_MERGE_EXCLUDED_FIELDS = {"op", "id", "adjustments"}


def apply_overrides(
    base_masks: Sequence[Mask] | None,
    ops: Iterable[MaskOperation] | None,
    *,
    resolver: MaskResolver | None = None,
) -> list[Mask]:
    """Apply ``ops`` in order to a copy of ``base_masks`` and return the result.

    Neither input is mutated. Operations form a sequential patch log:
    ``remove_all``/``clear`` empty the accumulator and later operations in
    the same batch apply to the empty list; ``update`` on a missing mask
    inserts it; ``add`` on an existing mask merges instead of duplicating.
    """

    active = resolver or default_resolver()
    masks: list[Mask] = list(base_masks or [])
    for op in ops or []:
        if isinstance(op, MaskResetOp):
            masks = []
            continue

        index = active.find_index_flexible(masks, op)
        if isinstance(op, MaskRemoveOp):
            if index >= 0:
                del masks[index]
            continue

        if index >= 0:
            masks[index] = merge_mask(masks[index], op)
        else:
            masks.append(new_mask_from_op(op, active))
    return masks


def merge_mask(previous: Mask, op: MaskUpsertOp) -> Mask:
    """Overlay the fields an operation provides onto an existing mask.

    Local adjustments merge key by key so unspecified keys survive; the
    previous id wins over the operation's.
    """

    update: dict[str, object] = {
        name: getattr(op, name)
        for name in op.model_dump(exclude_none=True, exclude=_MERGE_EXCLUDED_FIELDS)
    }
    update["id"] = previous.id or op.id
    update["adjustments"] = _merge_adjustments(previous.adjustments, op.adjustments)
    return previous.model_copy(update=update)


def new_mask_from_op(op: MaskUpsertOp, resolver: MaskResolver) -> Mask:
    """Materialize an unmatched operation as a new mask that later ops can address."""

    mask = Mask.model_validate(op.model_dump(exclude={"op"}, exclude_none=True))
    return mask.model_copy(update={"id": op.id or resolver.identify(op)})


def _merge_adjustments(
    previous: MaskLocalAdjustments | None,
    incoming: MaskLocalAdjustments | None,
) -> MaskLocalAdjustments | None:
    if previous is None and incoming is None:
        return None
    merged: dict[str, float] = {}
    if previous is not None:
        merged.update(previous.model_dump(exclude_none=True))
    if incoming is not None:
        merged.update(incoming.model_dump(exclude_none=True))
    return MaskLocalAdjustments(**merged)
