"""Recipe and edit-session request/response schemas."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from presetlab.schemas.adjustments import AdjustmentRecord, GlobalOverrides
from presetlab.schemas.overrides import StyleOptions, Tier
from presetlab.services.export import ExportInclude


class RecipeCreate(BaseModel):
    """Payload for registering a proposer-produced base record."""

    name: str | None = Field(default=None, min_length=1)
    prompt: str | None = None
    description: str | None = None
    base_adjustments: AdjustmentRecord = Field(default_factory=AdjustmentRecord)
    style_options: StyleOptions | None = None


class RecipeRead(BaseModel):
    """Serialized recipe with its accepted override tiers."""

    id: int
    name: str | None
    prompt: str | None
    description: str | None
    base_adjustments: AdjustmentRecord
    style_options: StyleOptions
    global_overrides: GlobalOverrides
    mask_overrides: Tier
    preset_text: str | None
    preset_created_at: datetime | None
    status: str
    version: int
    created_at: datetime
    updated_at: datetime


class RecipeListResponse(BaseModel):
    items: list[RecipeRead]
    limit: int
    offset: int


class EditSessionRead(BaseModel):
    """Current lifecycle state plus the effective record it implies."""

    recipe_id: int
    state: str
    pending: dict[str, object] | None
    proposed_at: datetime | None
    effective: dict[str, object]


class AcceptResult(BaseModel):
    recipe_id: int
    written_fields: list[str]
    effective: dict[str, object]
    preset_text: str | None
    preset_created_at: datetime | None


class ExportRequest(BaseModel):
    include: ExportInclude = Field(default_factory=ExportInclude)


class ExportResult(BaseModel):
    recipe_id: int
    preset_text: str
