"""Seam between the conversational proposer and the pending modification controller."""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from typing import Any, Protocol

from pydantic import ValidationError

from presetlab.mask_resolution.resolver import identify
from presetlab.schemas.adjustments import Mask
from presetlab.schemas.overrides import MaskOperation, MaskResetOp, PendingModification


class ProposalError(RuntimeError):
    """Raised when proposer output cannot be turned into a pending modification."""


class RecipeProposer(Protocol):
    """Produces a pending modification bundle from conversation turns."""

    def propose(self, messages: list[dict[str, str]], context: str) -> PendingModification | None:
        """Return a bundle, or ``None`` when the turn changes nothing."""


def build_pending_modification(
    tool_results: Iterable[tuple[str, Mapping[str, Any]]],
) -> PendingModification | None:
    """Aggregate proposer tool outputs into one bundle.

    Style and global patches merge across calls, text fields keep the latest
    value, and the last mask operation list wins.
    """

    style_options: dict[str, Any] = {}
    global_overrides: dict[str, Any] = {}
    text: dict[str, Any] = {}
    masks: list[Any] | None = None

    for name, output in tool_results:
        if not name or not isinstance(output, Mapping):
            continue
        if name == "set_user_options" and isinstance(output.get("userOptions"), Mapping):
            style_options.update(output["userOptions"])
        elif name == "set_ai_adjustments" and isinstance(output.get("aiAdjustments"), Mapping):
            global_overrides.update(output["aiAdjustments"])
        elif name == "update_prompt_and_description":
            for key in ("prompt", "description"):
                if isinstance(output.get(key), str):
                    text[key] = output[key]
        elif name == "edit_masks" and isinstance(output.get("maskOverrides"), list):
            masks = list(output["maskOverrides"])
        elif name == "modify_recipe" and isinstance(output.get("modifications"), Mapping):
            modifications = output["modifications"]
            if isinstance(modifications.get("userOptions"), Mapping):
                style_options.update(modifications["userOptions"])
            if isinstance(modifications.get("aiAdjustments"), Mapping):
                global_overrides.update(modifications["aiAdjustments"])
            for key in ("prompt", "description"):
                if modifications.get(key):
                    text[key] = modifications[key]
            if isinstance(modifications.get("maskOverrides"), list):
                masks = list(modifications["maskOverrides"])

    payload: dict[str, Any] = {}
    if style_options:
        payload["style_options"] = style_options
    if global_overrides:
        payload["global_overrides"] = global_overrides
    if masks:
        payload["mask_overrides"] = masks
    if text:
        payload["text"] = text
    if not payload:
        return None

    try:
        return PendingModification.model_validate(payload)
    except ValidationError as exc:
        raise ProposalError(f"Proposer returned an invalid modification: {exc}") from exc


def describe_recipe_masks(masks: Sequence[Mask], overrides: Sequence[MaskOperation]) -> str:
    """Render current masks and accepted override ops for proposer context."""

    lines = ["CURRENT MASKS:"]
    if masks:
        for index, mask in enumerate(masks, start=1):
            lines.append(
                f"- Mask {index}: {mask.name or 'Unnamed'} (Type: {mask.type or 'unknown'}, ID: {identify(mask)})"
            )
    else:
        lines.append("No masks currently applied")

    lines.extend(["", "EXISTING MASK OVERRIDES:"])
    if overrides:
        for index, op in enumerate(overrides, start=1):
            if isinstance(op, MaskResetOp):
                lines.append(f"- Override {index}: {op.op}")
            else:
                lines.append(f"- Override {index}: {op.op} (ID: {identify(op)})")
    else:
        lines.append("No mask overrides")
    return "\n".join(lines)
