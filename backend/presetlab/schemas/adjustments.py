"""Adjustment record schemas shared by composition, persistence, and export."""

from __future__ import annotations

from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

UnitFloat = Annotated[float, Field(ge=-1.0, le=1.0)]
PercentFloat = Annotated[float, Field(ge=-100.0, le=100.0)]
PositivePercentFloat = Annotated[float, Field(ge=0.0, le=100.0)]
HueFloat = Annotated[float, Field(ge=0.0, le=360.0)]


class MaskLocalAdjustments(BaseModel):
    """Bounded local parameters carried by one mask."""

    model_config = ConfigDict(extra="ignore")

    local_exposure: UnitFloat | None = None
    local_contrast: UnitFloat | None = None
    local_highlights: UnitFloat | None = None
    local_shadows: UnitFloat | None = None
    local_whites: UnitFloat | None = None
    local_blacks: UnitFloat | None = None
    local_clarity: UnitFloat | None = None
    local_dehaze: UnitFloat | None = None
    local_texture: UnitFloat | None = None
    local_saturation: UnitFloat | None = None


class MaskFields(BaseModel):
    """Mask-shaped fields shared by stored masks and mask override operations.

    Attribute names are snake_case; the wire format uses camelCase
    (``subCategoryId``, ``referenceX``, ...). Every field is optional so that
    underspecified proposer output still validates.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    id: str | None = None
    name: str | None = None
    type: str | None = None
    sub_category_id: int | None = None
    adjustments: MaskLocalAdjustments | None = None

    # Radial geometry
    top: float | None = None
    left: float | None = None
    bottom: float | None = None
    right: float | None = None
    angle: float | None = None
    midpoint: float | None = None
    roundness: float | None = None
    feather: float | None = None
    inverted: bool | None = None
    flipped: bool | None = None

    # Linear geometry
    zero_x: float | None = None
    zero_y: float | None = None
    full_x: float | None = None
    full_y: float | None = None

    # Subject reference point
    reference_x: float | None = None
    reference_y: float | None = None

    # Range mask parameters
    color_amount: float | None = None
    invert: bool | None = None
    point_models: list[list[float]] | None = None
    lum_range: list[float] | None = None
    luminance_depth_sample_info: list[float] | None = None

    @field_validator("id", "name", "type", mode="before")
    @classmethod
    def _strip_text(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip() or None
        return value


class Mask(MaskFields):
    """One local adjustment region inside an adjustment record."""

    def wire_dump(self) -> dict[str, object]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ToneCurvePoint(BaseModel):
    """Single tone curve control point."""

    input: float = Field(ge=0.0, le=255.0)
    output: float = Field(ge=0.0, le=255.0)


class AdjustmentFields(BaseModel):
    """Top-level scalar fields of an adjustment record.

    ``None`` means the field is unspecified, never zero.
    """

    model_config = ConfigDict(extra="ignore")

    # Rendering intent
    treatment: Literal["color", "black_and_white"] | None = None
    camera_profile: str | None = None
    monochrome: bool | None = None

    # Global tone
    exposure: float | None = Field(default=None, ge=-5.0, le=5.0)
    highlights: PercentFloat | None = None
    shadows: PercentFloat | None = None
    whites: PercentFloat | None = None
    blacks: PercentFloat | None = None
    brightness: PercentFloat | None = None
    contrast: PercentFloat | None = None
    clarity: PercentFloat | None = None
    dehaze: PercentFloat | None = None
    texture: PercentFloat | None = None
    vibrance: PercentFloat | None = None
    saturation: PercentFloat | None = None

    # White balance
    temperature: float | None = Field(default=None, ge=2000.0, le=50000.0)
    tint: float | None = Field(default=None, ge=-150.0, le=150.0)

    # HSL
    hue_red: PercentFloat | None = None
    hue_orange: PercentFloat | None = None
    hue_yellow: PercentFloat | None = None
    hue_green: PercentFloat | None = None
    hue_aqua: PercentFloat | None = None
    hue_blue: PercentFloat | None = None
    hue_purple: PercentFloat | None = None
    hue_magenta: PercentFloat | None = None
    sat_red: PercentFloat | None = None
    sat_orange: PercentFloat | None = None
    sat_yellow: PercentFloat | None = None
    sat_green: PercentFloat | None = None
    sat_aqua: PercentFloat | None = None
    sat_blue: PercentFloat | None = None
    sat_purple: PercentFloat | None = None
    sat_magenta: PercentFloat | None = None
    lum_red: PercentFloat | None = None
    lum_orange: PercentFloat | None = None
    lum_yellow: PercentFloat | None = None
    lum_green: PercentFloat | None = None
    lum_aqua: PercentFloat | None = None
    lum_blue: PercentFloat | None = None
    lum_purple: PercentFloat | None = None
    lum_magenta: PercentFloat | None = None

    # Color grading
    color_grade_shadow_hue: HueFloat | None = None
    color_grade_shadow_sat: PositivePercentFloat | None = None
    color_grade_shadow_lum: PercentFloat | None = None
    color_grade_midtone_hue: HueFloat | None = None
    color_grade_midtone_sat: PositivePercentFloat | None = None
    color_grade_midtone_lum: PercentFloat | None = None
    color_grade_highlight_hue: HueFloat | None = None
    color_grade_highlight_sat: PositivePercentFloat | None = None
    color_grade_highlight_lum: PercentFloat | None = None
    color_grade_global_hue: HueFloat | None = None
    color_grade_global_sat: PositivePercentFloat | None = None
    color_grade_global_lum: PercentFloat | None = None
    color_grade_blending: PositivePercentFloat | None = None
    color_grade_balance: PercentFloat | None = None

    # Tone curves
    tone_curve: list[ToneCurvePoint] | None = None
    tone_curve_red: list[ToneCurvePoint] | None = None
    tone_curve_green: list[ToneCurvePoint] | None = None
    tone_curve_blue: list[ToneCurvePoint] | None = None

    # Grain
    grain_amount: PositivePercentFloat | None = None
    grain_size: PositivePercentFloat | None = None
    grain_frequency: PositivePercentFloat | None = None

    # Vignette
    vignette_amount: PercentFloat | None = None
    vignette_midpoint: PositivePercentFloat | None = None
    vignette_feather: PositivePercentFloat | None = None
    vignette_roundness: PercentFloat | None = None
    vignette_style: float | None = Field(default=None, ge=0.0, le=2.0)
    vignette_highlight_contrast: PositivePercentFloat | None = None

    # Point color
    point_colors: list[list[float]] | None = None
    color_variance: list[float] | None = None

    # Proposer metadata
    preset_name: str | None = None
    description: str | None = None
    confidence: float | None = Field(default=None, ge=0.0, le=1.0)
    reasoning: str | None = None

    def specified_fields(self) -> dict[str, object]:
        """Return only the fields that carry a value, keeping nested models intact."""

        return {
            name: getattr(self, name)
            for name in type(self).model_fields
            if name != "masks" and getattr(self, name) is not None
        }


class AdjustmentRecord(AdjustmentFields):
    """Full color-grading parameter set, including local masks."""

    masks: list[Mask] | None = None

    def wire_dump(self) -> dict[str, object]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class GlobalOverrides(AdjustmentFields):
    """Top-level field overrides; the mask collection is owned by override tiers."""

    model_config = ConfigDict(extra="forbid")
