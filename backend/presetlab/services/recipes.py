"""Recipe persistence services and the SQL-backed record store."""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from presetlab.models.recipe import Recipe
from presetlab.schemas.adjustments import AdjustmentRecord, GlobalOverrides
from presetlab.schemas.overrides import StyleOptions, parse_tier
from presetlab.schemas.recipe import RecipeCreate, RecipeRead
from presetlab.services.pending import (
    AcceptedTiers,
    EditSession,
    PersistenceError,
    RecipeNotFoundError,
    RecipeText,
    StaleRecordError,
    StoredRecipeState,
)

logger = logging.getLogger(__name__)

_WRITABLE_FIELDS = {
    "name",
    "prompt",
    "description",
    "style_options_json",
    "global_overrides_json",
    "mask_overrides_json",
    "preset_text",
    "preset_created_at",
    "status",
}


class SqlRecipeStore:
    """Record store that applies every field of an update in one transaction.

    Each successful write bumps the row version, so a write planned against
    an older read can be refused instead of overwriting newer tiers.
    """

    def __init__(self, db: Session) -> None:
        self.db = db

    def load_state(self, recipe_id: int) -> StoredRecipeState:
        try:
            recipe = self.db.scalar(
                select(Recipe).where(Recipe.id == recipe_id).execution_options(populate_existing=True)
            )
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise PersistenceError(f"Failed to load recipe {recipe_id}: {exc}") from exc
        if recipe is None:
            raise RecipeNotFoundError(f"Recipe {recipe_id} not found")
        return stored_state_from_recipe(recipe)

    def update_record(
        self,
        recipe_id: int,
        fields: dict[str, object],
        *,
        expected_version: int | None = None,
    ) -> None:
        unknown = set(fields) - _WRITABLE_FIELDS
        if unknown:
            raise ValueError(f"Unsupported recipe fields: {', '.join(sorted(unknown))}")

        try:
            recipe = self.db.scalar(
                select(Recipe)
                .where(Recipe.id == recipe_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            if recipe is None:
                raise RecipeNotFoundError(f"Recipe {recipe_id} not found")
            if expected_version is not None and recipe.version != expected_version:
                raise StaleRecordError(
                    f"Recipe {recipe_id} is at version {recipe.version}, expected {expected_version}"
                )
            for key, value in fields.items():
                setattr(recipe, key, value)
            recipe.version += 1
            self.db.commit()
        except PersistenceError:
            self.db.rollback()
            raise
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise PersistenceError(f"Failed to update recipe {recipe_id}: {exc}") from exc


def create_recipe(db: Session, payload: RecipeCreate) -> Recipe:
    """Persist a new recipe with empty accepted override tiers."""

    recipe = Recipe(
        name=payload.name.strip() if payload.name else None,
        prompt=payload.prompt,
        description=payload.description,
        base_adjustments_json=payload.base_adjustments.wire_dump(),
        style_options_json=(
            payload.style_options.model_dump(mode="json", exclude_none=True) if payload.style_options else {}
        ),
        global_overrides_json={},
        mask_overrides_json=[],
    )
    db.add(recipe)
    db.commit()
    db.refresh(recipe)
    logger.info("recipes.created recipe_id=%s masks=%d", recipe.id, len(payload.base_adjustments.masks or []))
    return recipe


def get_recipe(db: Session, recipe_id: int) -> Recipe | None:
    return db.scalar(select(Recipe).where(Recipe.id == recipe_id))


def list_recipes(db: Session, *, limit: int = 50, offset: int = 0) -> list[Recipe]:
    """Return recipes newest first."""

    stmt = select(Recipe).order_by(Recipe.id.desc()).limit(limit).offset(offset)
    return list(db.scalars(stmt).all())


def delete_recipe(db: Session, recipe_id: int) -> bool:
    recipe = get_recipe(db, recipe_id)
    if recipe is None:
        return False
    db.delete(recipe)
    db.commit()
    return True


def accepted_tiers_from_recipe(recipe: Recipe) -> AcceptedTiers:
    return AcceptedTiers(
        style_options=StyleOptions.model_validate(recipe.style_options_json or {}),
        global_overrides=GlobalOverrides.model_validate(recipe.global_overrides_json or {}),
        mask_overrides=parse_tier(recipe.mask_overrides_json),
    )


def stored_state_from_recipe(recipe: Recipe) -> StoredRecipeState:
    return StoredRecipeState(
        accepted=accepted_tiers_from_recipe(recipe),
        text=RecipeText(name=recipe.name, prompt=recipe.prompt, description=recipe.description),
        version=recipe.version,
    )


def session_from_recipe(recipe: Recipe) -> EditSession:
    """Build an idle edit session from persisted state."""

    stored = stored_state_from_recipe(recipe)
    return EditSession(
        recipe_id=recipe.id,
        base=AdjustmentRecord.model_validate(recipe.base_adjustments_json or {}),
        accepted=stored.accepted,
        text=stored.text,
    )


def load_edit_session(db: Session, recipe_id: int) -> EditSession | None:
    recipe = get_recipe(db, recipe_id)
    if recipe is None:
        return None
    return session_from_recipe(recipe)


def recipe_to_read(recipe: Recipe) -> RecipeRead:
    """Serialize a recipe row, validating the stored JSON tiers."""

    tiers = accepted_tiers_from_recipe(recipe)
    return RecipeRead(
        id=recipe.id,
        name=recipe.name,
        prompt=recipe.prompt,
        description=recipe.description,
        base_adjustments=AdjustmentRecord.model_validate(recipe.base_adjustments_json or {}),
        style_options=tiers.style_options,
        global_overrides=tiers.global_overrides,
        mask_overrides=tiers.mask_overrides,
        preset_text=recipe.preset_text,
        preset_created_at=recipe.preset_created_at,
        status=recipe.status,
        version=recipe.version,
        created_at=recipe.created_at,
        updated_at=recipe.updated_at,
    )
