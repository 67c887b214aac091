"""Override operation, tier, and pending modification schemas."""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Discriminator,
    Field,
    Tag,
    TypeAdapter,
    model_validator,
)

from presetlab.schemas.adjustments import GlobalOverrides, MaskFields, PercentFloat

MaskOpName = Literal["add", "update", "remove", "remove_all", "clear"]

_OP_KIND: dict[str, str] = {
    "add": "upsert",
    "update": "upsert",
    "remove": "remove",
    "remove_all": "reset",
    "clear": "reset",
}


class MaskUpsertOp(MaskFields):
    """Insert a mask, or merge into the mask it resolves to."""

    op: Literal["add", "update"] = "add"


class MaskRemoveOp(MaskFields):
    """Delete the mask the operation resolves to, if any."""

    op: Literal["remove"]


class MaskResetOp(BaseModel):
    """Drop every mask accumulated so far; all other fields are ignored."""

    model_config = ConfigDict(extra="ignore")

    op: Literal["remove_all", "clear"]


def _mask_op_kind(value: Any) -> str | None:
    if isinstance(value, dict):
        op = value.get("op") or "add"
    else:
        op = getattr(value, "op", None) or "add"
    return _OP_KIND.get(str(op))


MaskOperation = Annotated[
    Union[
        Annotated[MaskUpsertOp, Tag("upsert")],
        Annotated[MaskRemoveOp, Tag("remove")],
        Annotated[MaskResetOp, Tag("reset")],
    ],
    Discriminator(_mask_op_kind),
]
Tier = list[MaskOperation]

_TIER_ADAPTER: TypeAdapter[list[MaskOperation]] = TypeAdapter(Tier)


def parse_tier(raw: Any) -> list[MaskOperation]:
    """Validate a stored or proposed list of mask operations."""

    if raw is None:
        return []
    return _TIER_ADAPTER.validate_python(raw)


def dump_tier(ops: list[MaskOperation]) -> list[dict[str, object]]:
    """Serialize a tier into its camelCase wire form."""

    return _TIER_ADAPTER.dump_python(ops, mode="json", by_alias=True, exclude_none=True)


class StyleOptions(BaseModel):
    """User-facing style sliders and hints.

    Only ``contrast``, ``vibrance`` and ``saturation_bias`` feed composition;
    the rest steer the proposer.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    contrast: PercentFloat | None = None
    vibrance: PercentFloat | None = None
    saturation_bias: PercentFloat | None = Field(
        default=None,
        validation_alias=AliasChoices("saturation_bias", "saturationBias"),
    )
    vibe: str | None = None
    style_categories: list[str] | None = Field(
        default=None,
        validation_alias=AliasChoices("style_categories", "styleCategories"),
    )
    artist_style: dict[str, str] | None = Field(
        default=None,
        validation_alias=AliasChoices("artist_style", "artistStyle"),
    )
    film_style: dict[str, str] | None = Field(
        default=None,
        validation_alias=AliasChoices("film_style", "filmStyle"),
    )

    def merged_with(self, patch: StyleOptions | None) -> StyleOptions:
        """Return a copy with every field the patch specifies taking precedence."""

        if patch is None:
            return self.model_copy()
        return self.model_copy(update=patch.model_dump(exclude_none=True))


class TextPatch(BaseModel):
    """Proposed recipe text changes."""

    name: str | None = Field(default=None, min_length=1)
    prompt: str | None = None
    description: str | None = None

    def is_empty(self) -> bool:
        return self.name is None and self.prompt is None and self.description is None


class PendingModification(BaseModel):
    """One staged proposal awaiting accept or reject."""

    model_config = ConfigDict(populate_by_name=True)

    style_options: StyleOptions | None = Field(
        default=None,
        validation_alias=AliasChoices("style_options", "userOptions"),
    )
    global_overrides: GlobalOverrides | None = Field(
        default=None,
        validation_alias=AliasChoices("global_overrides", "aiAdjustments"),
    )
    mask_overrides: Tier = Field(
        default_factory=list,
        validation_alias=AliasChoices("mask_overrides", "maskOverrides", "masks"),
    )
    text: TextPatch = Field(default_factory=TextPatch)

    @model_validator(mode="before")
    @classmethod
    def _fold_text_fields(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        loose = {key: data[key] for key in ("name", "prompt", "description") if key in data}
        if not loose:
            return data
        folded = {key: value for key, value in data.items() if key not in loose}
        text = dict(folded.get("text") or {})
        for key, value in loose.items():
            text.setdefault(key, value)
        folded["text"] = text
        return folded

    @model_validator(mode="after")
    def validate_non_empty_modification(self) -> "PendingModification":
        if (
            self.style_options is None
            and self.global_overrides is None
            and not self.mask_overrides
            and self.text.is_empty()
        ):
            raise ValueError("At least one modification must be provided.")
        return self
