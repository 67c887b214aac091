"""Recipe and edit-session routes."""

from collections.abc import Iterator

from fastapi import APIRouter, Depends, HTTPException, Path, Query, Request
from sqlalchemy.orm import Session

from presetlab.config import get_settings
from presetlab.db.dependencies import get_db
from presetlab.schemas.common import ApiResponse, DeleteResult
from presetlab.schemas.overrides import PendingModification
from presetlab.schemas.recipe import (
    AcceptResult,
    EditSessionRead,
    ExportRequest,
    ExportResult,
    RecipeCreate,
    RecipeListResponse,
    RecipeRead,
)
from presetlab.services.export import ExportError, ExportInclude, PresetExporter
from presetlab.services.pending import (
    AcceptInProgressError,
    EditSessionRegistry,
    NoPendingModificationError,
    PendingModificationController,
    PersistenceError,
    RecipeNotFoundError,
    StaleRecordError,
)
from presetlab.services.recipes import (
    SqlRecipeStore,
    create_recipe,
    delete_recipe,
    get_recipe,
    list_recipes,
    load_edit_session,
    recipe_to_read,
)

router = APIRouter(prefix="/recipes")


def get_session_registry(request: Request) -> EditSessionRegistry:
    return request.app.state.edit_sessions


def get_preset_exporter(request: Request) -> PresetExporter | None:
    return getattr(request.app.state, "preset_exporter", None)


def get_controller(
    recipe_id: int = Path(..., ge=1),
    db: Session = Depends(get_db),
    registry: EditSessionRegistry = Depends(get_session_registry),
    exporter: PresetExporter | None = Depends(get_preset_exporter),
) -> Iterator[PendingModificationController]:
    """Hold the recipe's edit session for the request, bound to a request-scoped record store."""

    session = registry.checkout(recipe_id, lambda: load_edit_session(db, recipe_id))
    if session is None:
        raise HTTPException(status_code=404, detail="Recipe not found")
    include = ExportInclude(masks=get_settings().preset_include_masks)
    try:
        yield PendingModificationController(session, SqlRecipeStore(db), exporter=exporter, include=include)
    finally:
        registry.release(session)


def _session_read(controller: PendingModificationController) -> EditSessionRead:
    pending = controller.pending
    return EditSessionRead(
        recipe_id=controller.session.recipe_id,
        state=controller.state.value,
        pending=pending.model_dump(mode="json", by_alias=True, exclude_none=True) if pending else None,
        proposed_at=controller.session.proposed_at,
        effective=controller.effective().wire_dump(),
    )


@router.post("", response_model=ApiResponse[RecipeRead])
def post_recipe(payload: RecipeCreate, db: Session = Depends(get_db)) -> ApiResponse[RecipeRead]:
    """Register a base adjustment record as a new recipe."""

    return ApiResponse(data=recipe_to_read(create_recipe(db, payload)))


@router.get("", response_model=ApiResponse[RecipeListResponse])
def get_recipes(
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
) -> ApiResponse[RecipeListResponse]:
    rows = list_recipes(db, limit=limit, offset=offset)
    return ApiResponse(
        data=RecipeListResponse(items=[recipe_to_read(row) for row in rows], limit=limit, offset=offset)
    )


@router.get("/{recipe_id}", response_model=ApiResponse[RecipeRead])
def get_recipe_detail(recipe_id: int = Path(..., ge=1), db: Session = Depends(get_db)) -> ApiResponse[RecipeRead]:
    recipe = get_recipe(db, recipe_id)
    if recipe is None:
        raise HTTPException(status_code=404, detail="Recipe not found")
    return ApiResponse(data=recipe_to_read(recipe))


@router.delete("/{recipe_id}", response_model=ApiResponse[DeleteResult])
def remove_recipe(
    recipe_id: int = Path(..., ge=1),
    db: Session = Depends(get_db),
    registry: EditSessionRegistry = Depends(get_session_registry),
) -> ApiResponse[DeleteResult]:
    """Delete a recipe and drop its edit session."""

    if not delete_recipe(db, recipe_id):
        raise HTTPException(status_code=404, detail="Recipe not found")
    registry.discard(recipe_id)
    return ApiResponse(data=DeleteResult(id=recipe_id, deleted=True))


@router.get("/{recipe_id}/session", response_model=ApiResponse[EditSessionRead])
def get_edit_session(
    controller: PendingModificationController = Depends(get_controller),
) -> ApiResponse[EditSessionRead]:
    return ApiResponse(data=_session_read(controller))


@router.get("/{recipe_id}/effective", response_model=ApiResponse[dict[str, object]])
def get_effective_record(
    controller: PendingModificationController = Depends(get_controller),
) -> ApiResponse[dict[str, object]]:
    """Effective record for live preview (accepted tiers plus any pending bundle)."""

    return ApiResponse(data=controller.effective().wire_dump())


@router.put("/{recipe_id}/pending", response_model=ApiResponse[EditSessionRead])
def put_pending_modification(
    payload: PendingModification,
    controller: PendingModificationController = Depends(get_controller),
) -> ApiResponse[EditSessionRead]:
    """Stage a proposal, replacing any earlier unaccepted one."""

    try:
        controller.propose(payload)
    except AcceptInProgressError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return ApiResponse(data=_session_read(controller))


@router.post("/{recipe_id}/pending/accept", response_model=ApiResponse[AcceptResult])
def accept_pending_modification(
    controller: PendingModificationController = Depends(get_controller),
) -> ApiResponse[AcceptResult]:
    """Commit the staged proposal in one write."""

    try:
        outcome = controller.accept()
    except (NoPendingModificationError, AcceptInProgressError) as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except RecipeNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except StaleRecordError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except ExportError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    except PersistenceError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc

    return ApiResponse(
        data=AcceptResult(
            recipe_id=controller.session.recipe_id,
            written_fields=outcome.written_fields,
            effective=outcome.effective.wire_dump(),
            preset_text=outcome.preset_text,
            preset_created_at=outcome.preset_created_at,
        )
    )


@router.delete("/{recipe_id}/pending", response_model=ApiResponse[EditSessionRead])
def reject_pending_modification(
    controller: PendingModificationController = Depends(get_controller),
) -> ApiResponse[EditSessionRead]:
    """Discard the staged proposal."""

    try:
        controller.reject()
    except (NoPendingModificationError, AcceptInProgressError) as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return ApiResponse(data=_session_read(controller))


@router.post("/{recipe_id}/export", response_model=ApiResponse[ExportResult])
def export_effective_record(
    payload: ExportRequest,
    controller: PendingModificationController = Depends(get_controller),
) -> ApiResponse[ExportResult]:
    """Render the current effective record without committing anything."""

    try:
        preset_text = controller.export(payload.include)
    except ExportError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return ApiResponse(data=ExportResult(recipe_id=controller.session.recipe_id, preset_text=preset_text))
