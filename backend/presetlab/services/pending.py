"""Propose/preview/accept/reject lifecycle for one recipe's edit session."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from time import perf_counter
from typing import Any, Protocol

from presetlab.mask_resolution.resolver import MaskResolver
from presetlab.schemas.adjustments import AdjustmentRecord, GlobalOverrides
from presetlab.schemas.overrides import (
    MaskOperation,
    PendingModification,
    StyleOptions,
    TextPatch,
    dump_tier,
)
from presetlab.services.composition import compute_effective
from presetlab.services.export import ExportError, ExportInclude, PresetExporter

logger = logging.getLogger(__name__)

_MAX_COMMIT_ATTEMPTS = 3


class PersistenceError(RuntimeError):
    """Raised when the record store fails to write an update."""


class RecipeNotFoundError(PersistenceError):
    """Raised when the record store has no recipe with the requested id."""


class StaleRecordError(PersistenceError):
    """Raised when the stored recipe changed after the version a write was planned against."""


class PendingModificationError(RuntimeError):
    """Base class for lifecycle violations."""


class NoPendingModificationError(PendingModificationError):
    """Raised when accept or reject is called with nothing staged."""


class AcceptInProgressError(PendingModificationError):
    """Raised when the session is mid-commit; concurrent calls are rejected."""


class SessionState(str, Enum):
    IDLE = "idle"
    PROPOSED = "proposed"
    ACCEPTING = "accepting"


@dataclass(slots=True)
class AcceptedTiers:
    """Override tiers that have been committed to the record store."""

    style_options: StyleOptions = field(default_factory=StyleOptions)
    global_overrides: GlobalOverrides = field(default_factory=GlobalOverrides)
    mask_overrides: list[MaskOperation] = field(default_factory=list)

    def merged_with(self, pending: PendingModification) -> AcceptedTiers:
        """Fold a pending bundle in; mask ops append, never replace."""

        global_overrides = self.global_overrides.model_copy()
        if pending.global_overrides is not None:
            global_overrides = global_overrides.model_copy(
                update=pending.global_overrides.specified_fields()
            )
        return AcceptedTiers(
            style_options=self.style_options.merged_with(pending.style_options),
            global_overrides=global_overrides,
            mask_overrides=[*self.mask_overrides, *pending.mask_overrides],
        )

    def record_fields(self) -> dict[str, object]:
        return {
            "style_options_json": self.style_options.model_dump(mode="json", exclude_none=True),
            "global_overrides_json": self.global_overrides.model_dump(mode="json", exclude_none=True),
            "mask_overrides_json": dump_tier(self.mask_overrides),
        }


@dataclass(slots=True)
class RecipeText:
    name: str | None = None
    prompt: str | None = None
    description: str | None = None

    def apply(self, patch: TextPatch) -> tuple[RecipeText, dict[str, object]]:
        """Return the patched text and only the fields that actually changed."""

        changes: dict[str, object] = {}
        if patch.name is not None and patch.name != self.name:
            changes["name"] = patch.name
        if patch.prompt is not None and patch.prompt != self.prompt:
            changes["prompt"] = patch.prompt
        if patch.description is not None and patch.description != self.description:
            changes["description"] = patch.description
        patched = RecipeText(
            name=changes.get("name", self.name),
            prompt=changes.get("prompt", self.prompt),
            description=changes.get("description", self.description),
        )
        return patched, changes


@dataclass(slots=True)
class StoredRecipeState:
    """Committed tiers and text as the record store holds them, with the row version."""

    accepted: AcceptedTiers
    text: RecipeText
    version: int


class RecipeStore(Protocol):
    """Persistence collaborator; each write is atomic at the record level."""

    def load_state(self, recipe_id: int) -> StoredRecipeState:
        """Read the committed state, raising :class:`RecipeNotFoundError` for unknown ids."""

    def update_record(
        self,
        recipe_id: int,
        fields: dict[str, object],
        *,
        expected_version: int | None = None,
    ) -> None:
        """Write all ``fields`` or nothing.

        Raises :class:`StaleRecordError` when ``expected_version`` no longer
        matches the stored row, and :class:`PersistenceError` on other failures.
        """


@dataclass(slots=True)
class EditSession:
    """Per-recipe edit context holding accepted tiers and at most one pending bundle."""

    recipe_id: int
    base: AdjustmentRecord
    accepted: AcceptedTiers = field(default_factory=AcceptedTiers)
    text: RecipeText = field(default_factory=RecipeText)
    pending: PendingModification | None = None
    proposed_at: datetime | None = None
    state: SessionState = SessionState.IDLE
    holders: int = field(default=0, repr=False, compare=False)
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)


class EditSessionRegistry:
    """Edit sessions keyed by recipe id, owned by the hosting application.

    A session stays registered while a caller holds it or a proposal is
    staged on it; idle, unheld sessions are dropped on release and reloaded
    from the store on the next checkout.
    """

    def __init__(self) -> None:
        self._sessions: dict[int, EditSession] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def get(self, recipe_id: int) -> EditSession | None:
        with self._lock:
            return self._sessions.get(recipe_id)

    def checkout(
        self,
        recipe_id: int,
        loader: Callable[[], EditSession | None],
    ) -> EditSession | None:
        """Return the registered session, loading it on first use, and hold it."""

        with self._lock:
            session = self._sessions.get(recipe_id)
            if session is None:
                session = loader()
                if session is None:
                    return None
                self._sessions[recipe_id] = session
            session.holders += 1
            return session

    def release(self, session: EditSession) -> None:
        """Drop one hold; forget the session once it is unheld and idle."""

        with self._lock:
            session.holders = max(session.holders - 1, 0)
            if session.holders or session.pending is not None or session.state is not SessionState.IDLE:
                return
            if self._sessions.get(session.recipe_id) is session:
                del self._sessions[session.recipe_id]

    def discard(self, recipe_id: int) -> None:
        with self._lock:
            self._sessions.pop(recipe_id, None)


@dataclass(slots=True)
class AcceptOutcome:
    """Result of a committed accept."""

    effective: AdjustmentRecord
    written_fields: list[str]
    preset_text: str | None = None
    preset_created_at: datetime | None = None


@dataclass(slots=True)
class _AcceptPlan:
    tiers: AcceptedTiers
    text: RecipeText
    effective: AdjustmentRecord
    fields: dict[str, object]
    preset_text: str | None = None
    preset_created_at: datetime | None = None


class PendingModificationController:
    """Drive the Idle -> Proposed -> Accepting/Idle state machine for one session.

    Composition is recomputed on every call; nothing derived is cached.
    """

    def __init__(
        self,
        session: EditSession,
        store: RecipeStore,
        *,
        exporter: PresetExporter | None = None,
        include: ExportInclude | None = None,
        resolver: MaskResolver | None = None,
    ) -> None:
        self.session = session
        self.store = store
        self.exporter = exporter
        self.include = include or ExportInclude()
        self.resolver = resolver

    @property
    def state(self) -> SessionState:
        return self.session.state

    @property
    def pending(self) -> PendingModification | None:
        return self.session.pending

    def accepted_effective(self) -> AdjustmentRecord:
        """Effective record from persisted tiers alone."""

        return self._compose(self.session.accepted, None)

    def effective(self) -> AdjustmentRecord:
        """Effective record for preview: accepted tiers plus any pending bundle."""

        with self.session.lock:
            accepted = self.session.accepted
            pending = self.session.pending
        return self._compose(accepted, pending)

    def propose(self, bundle: PendingModification | Mapping[str, Any]) -> AdjustmentRecord:
        """Stage a bundle, replacing any earlier unaccepted one, and return the preview."""

        if not isinstance(bundle, PendingModification):
            bundle = PendingModification.model_validate(bundle)

        with self.session.lock:
            if self.session.state is SessionState.ACCEPTING:
                raise AcceptInProgressError(
                    f"Recipe {self.session.recipe_id} is committing a modification; propose again afterwards."
                )
            replaced = self.session.pending is not None
            self.session.pending = bundle
            self.session.proposed_at = datetime.now(timezone.utc)
            self.session.state = SessionState.PROPOSED
            accepted = self.session.accepted

        logger.info(
            "pending.proposed recipe_id=%s mask_ops=%d replaced=%s",
            self.session.recipe_id,
            len(bundle.mask_overrides),
            replaced,
        )
        return self._compose(accepted, bundle)

    def reject(self) -> AdjustmentRecord:
        """Discard the staged bundle and return the reverted effective record."""

        with self.session.lock:
            if self.session.state is SessionState.ACCEPTING:
                raise AcceptInProgressError(
                    f"Recipe {self.session.recipe_id} is committing a modification and cannot be rejected."
                )
            if self.session.pending is None:
                raise NoPendingModificationError(
                    f"Recipe {self.session.recipe_id} has no pending modification."
                )
            self.session.pending = None
            self.session.proposed_at = None
            self.session.state = SessionState.IDLE

        logger.info("pending.rejected recipe_id=%s", self.session.recipe_id)
        return self.accepted_effective()

    def accept(self) -> AcceptOutcome:
        """Commit the staged bundle with one atomic store write.

        The bundle is merged onto the tiers the store holds at commit time,
        so accepts made through other sessions are kept. A write that loses
        the version check is planned again against the fresh row. The bundle
        is cleared only after the write returns; on export or persistence
        failure it stays staged, unchanged, and the error propagates.
        """

        started = perf_counter()
        recipe_id = self.session.recipe_id
        with self.session.lock:
            if self.session.state is SessionState.ACCEPTING:
                raise AcceptInProgressError(f"Recipe {recipe_id} is already committing a modification.")
            pending = self.session.pending
            if pending is None:
                raise NoPendingModificationError(f"Recipe {recipe_id} has no pending modification.")
            self.session.state = SessionState.ACCEPTING

        plan: _AcceptPlan | None = None
        try:
            plan = self._commit(recipe_id, pending)
        except (ExportError, PersistenceError):
            logger.exception(
                "pending.accept_failed recipe_id=%s elapsed_ms=%.2f",
                recipe_id,
                (perf_counter() - started) * 1000.0,
            )
            raise
        finally:
            with self.session.lock:
                if plan is not None:
                    self.session.accepted = plan.tiers
                    self.session.text = plan.text
                    self.session.pending = None
                    self.session.proposed_at = None
                    self.session.state = SessionState.IDLE
                else:
                    self.session.state = SessionState.PROPOSED

        logger.info(
            "pending.accepted recipe_id=%s fields=%d accepted_mask_ops=%d exported=%s total_ms=%.2f",
            recipe_id,
            len(plan.fields),
            len(plan.tiers.mask_overrides),
            plan.preset_text is not None,
            (perf_counter() - started) * 1000.0,
        )
        return AcceptOutcome(
            effective=plan.effective,
            written_fields=sorted(plan.fields),
            preset_text=plan.preset_text,
            preset_created_at=plan.preset_created_at,
        )

    def export(self, include: ExportInclude | None = None) -> str:
        """Render the current effective record (including any pending bundle) ad hoc."""

        if self.exporter is None:
            raise ExportError("No preset exporter is configured.")
        return self.exporter.render(_export_view(self.effective(), self.session.text), include or self.include)

    def _commit(self, recipe_id: int, pending: PendingModification) -> _AcceptPlan:
        attempt = 1
        while True:
            stored = self.store.load_state(recipe_id)
            plan = self._plan_accept(stored, pending)
            try:
                self.store.update_record(recipe_id, plan.fields, expected_version=stored.version)
                return plan
            except StaleRecordError:
                if attempt >= _MAX_COMMIT_ATTEMPTS:
                    raise
                logger.info(
                    "pending.accept_replanned recipe_id=%s attempt=%d version=%d",
                    recipe_id,
                    attempt,
                    stored.version,
                )
                attempt += 1

    def _plan_accept(self, stored: StoredRecipeState, pending: PendingModification) -> _AcceptPlan:
        tiers = stored.accepted.merged_with(pending)
        text, text_changes = stored.text.apply(pending.text)
        plan = _AcceptPlan(
            tiers=tiers,
            text=text,
            effective=self._compose(tiers, None),
            fields={**tiers.record_fields(), **text_changes},
        )
        if self.exporter is not None:
            plan.preset_text = self.exporter.render(_export_view(plan.effective, text), self.include)
            plan.preset_created_at = datetime.now(timezone.utc)
            plan.fields.update(
                preset_text=plan.preset_text,
                preset_created_at=plan.preset_created_at,
                status="completed",
            )
        return plan

    def _compose(
        self,
        accepted: AcceptedTiers,
        pending: PendingModification | None,
    ) -> AdjustmentRecord:
        style_options = accepted.style_options
        global_overrides = accepted.global_overrides
        pending_ops: list[MaskOperation] = []
        if pending is not None:
            style_options = style_options.merged_with(pending.style_options)
            if pending.global_overrides is not None:
                global_overrides = global_overrides.model_copy(
                    update=pending.global_overrides.specified_fields()
                )
            pending_ops = pending.mask_overrides
        return compute_effective(
            self.session.base,
            style_options,
            accepted.mask_overrides,
            pending_ops,
            global_overrides,
            resolver=self.resolver,
        )


def _export_view(effective: AdjustmentRecord, text: RecipeText) -> AdjustmentRecord:
    update: dict[str, object] = {}
    if text.name:
        update["preset_name"] = text.name
    if text.description:
        update["description"] = text.description
    return effective.model_copy(update=update)
