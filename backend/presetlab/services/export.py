"""Preset export collaborator seam."""

from __future__ import annotations

import json
from typing import Protocol

from pydantic import BaseModel

from presetlab.schema.mask_types import normalize_mask_type
from presetlab.schemas.adjustments import AdjustmentRecord


class ExportError(RuntimeError):
    """Raised when an effective record cannot be rendered into preset text."""


class ExportInclude(BaseModel):
    """Which parameter groups an export carries."""

    basic: bool = True
    exposure: bool = False
    hsl: bool = True
    color_grading: bool = True
    curves: bool = True
    point_color: bool = True
    grain: bool = True
    vignette: bool = True
    masks: bool = True
    sharpen_noise: bool = False


class PresetExporter(Protocol):
    """Renders an effective record into interchange preset text."""

    def render(self, record: AdjustmentRecord, include: ExportInclude) -> str:
        """Return preset text or raise :class:`ExportError`."""


_METADATA_FIELDS = ("preset_name", "description", "treatment", "camera_profile", "monochrome")
_GROUP_PREFIXES: dict[str, tuple[str, ...]] = {
    "hsl": ("hue_", "sat_", "lum_"),
    "color_grading": ("color_grade_",),
    "curves": ("tone_curve",),
    "point_color": ("point_colors", "color_variance"),
    "grain": ("grain_",),
    "vignette": ("vignette_",),
}
_BASIC_FIELDS = {
    "temperature",
    "tint",
    "highlights",
    "shadows",
    "whites",
    "blacks",
    "brightness",
    "contrast",
    "clarity",
    "dehaze",
    "texture",
    "vibrance",
    "saturation",
}


def select_export_fields(record: AdjustmentRecord, include: ExportInclude) -> dict[str, object]:
    """Filter a record's wire form down to the groups ``include`` enables."""

    payload = record.wire_dump()
    selected: dict[str, object] = {}
    for key, value in payload.items():
        if key in _METADATA_FIELDS:
            selected[key] = value
        elif key in _BASIC_FIELDS:
            if include.basic:
                selected[key] = value
        elif key == "exposure":
            if include.exposure:
                selected[key] = value
        elif key == "masks":
            if include.masks and value:
                selected[key] = [_catalog_mask(mask) for mask in value]
        else:
            for group, prefixes in _GROUP_PREFIXES.items():
                if key.startswith(prefixes) and getattr(include, group):
                    selected[key] = value
                    break
    return selected


def _catalog_mask(mask: dict[str, object]) -> dict[str, object]:
    raw_type = mask.get("type")
    if not isinstance(raw_type, str):
        return mask
    return {**mask, "type": normalize_mask_type(raw_type)}


class JsonPresetExporter:
    """Default exporter that emits the selected fields as JSON text."""

    def render(self, record: AdjustmentRecord, include: ExportInclude) -> str:
        selected = select_export_fields(record, include)
        try:
            return json.dumps(selected, indent=2, sort_keys=True, allow_nan=False)
        except ValueError as exc:
            raise ExportError(f"Preset could not be serialized: {exc}") from exc
