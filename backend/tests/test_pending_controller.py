"""Tests for the pending modification lifecycle."""

from __future__ import annotations

import json
import unittest

from pydantic import ValidationError
from sqlalchemy import create_engine, delete
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from presetlab.models.base import Base
from presetlab.models.recipe import Recipe
from presetlab.schemas.adjustments import AdjustmentRecord, GlobalOverrides
from presetlab.schemas.overrides import PendingModification, StyleOptions, parse_tier
from presetlab.schemas.recipe import RecipeCreate
from presetlab.services.export import ExportError, ExportInclude, JsonPresetExporter
from presetlab.services.pending import (
    AcceptInProgressError,
    AcceptedTiers,
    EditSession,
    EditSessionRegistry,
    NoPendingModificationError,
    PendingModificationController,
    PersistenceError,
    RecipeNotFoundError,
    RecipeText,
    SessionState,
    StaleRecordError,
    StoredRecipeState,
)
from presetlab.services.recipes import SqlRecipeStore, create_recipe, get_recipe, load_edit_session


class _RecordingStore:
    """In-memory record store that folds written fields into its committed state."""

    def __init__(self) -> None:
        self.calls: list[tuple[int, dict[str, object]]] = []
        self.loads = 0
        self.state = StoredRecipeState(
            accepted=AcceptedTiers(),
            text=RecipeText(name="Warm", prompt="warm tones"),
            version=1,
        )

    def load_state(self, recipe_id: int) -> StoredRecipeState:
        self.loads += 1
        return self.state

    def update_record(
        self,
        recipe_id: int,
        fields: dict[str, object],
        *,
        expected_version: int | None = None,
    ) -> None:
        self.calls.append((recipe_id, dict(fields)))
        self.state = StoredRecipeState(
            accepted=AcceptedTiers(
                style_options=StyleOptions.model_validate(fields["style_options_json"]),
                global_overrides=GlobalOverrides.model_validate(fields["global_overrides_json"]),
                mask_overrides=parse_tier(fields["mask_overrides_json"]),
            ),
            text=RecipeText(
                name=fields.get("name", self.state.text.name),
                prompt=fields.get("prompt", self.state.text.prompt),
                description=fields.get("description", self.state.text.description),
            ),
            version=self.state.version + 1,
        )


class _FailingStore(_RecordingStore):
    def __init__(self) -> None:
        super().__init__()
        self.attempts = 0

    def update_record(
        self,
        recipe_id: int,
        fields: dict[str, object],
        *,
        expected_version: int | None = None,
    ) -> None:
        self.attempts += 1
        raise PersistenceError("database unavailable")


class _StaleStore(_RecordingStore):
    """Store whose row moves on under the first ``stale_writes`` writes."""

    def __init__(self, stale_writes: int) -> None:
        super().__init__()
        self.stale_writes = stale_writes

    def update_record(
        self,
        recipe_id: int,
        fields: dict[str, object],
        *,
        expected_version: int | None = None,
    ) -> None:
        if self.stale_writes:
            self.stale_writes -= 1
            self.state = StoredRecipeState(
                accepted=AcceptedTiers(mask_overrides=parse_tier([{"op": "add", "name": "Other", "type": "radial"}])),
                text=self.state.text,
                version=self.state.version + 1,
            )
            raise StaleRecordError(f"Recipe {recipe_id} changed")
        super().update_record(recipe_id, fields, expected_version=expected_version)


class _FailingExporter:
    def render(self, record: AdjustmentRecord, include: ExportInclude) -> str:
        raise ExportError("renderer offline")


class _ProposingStore(_RecordingStore):
    """Store that tries to stage another proposal while the write is in flight."""

    def __init__(self) -> None:
        super().__init__()
        self.controller: PendingModificationController | None = None
        self.error: Exception | None = None

    def update_record(
        self,
        recipe_id: int,
        fields: dict[str, object],
        *,
        expected_version: int | None = None,
    ) -> None:
        assert self.controller is not None
        try:
            self.controller.propose({"aiAdjustments": {"contrast": 99}})
        except AcceptInProgressError as exc:
            self.error = exc
        super().update_record(recipe_id, fields, expected_version=expected_version)


def _session(recipe_id: int = 1) -> EditSession:
    base = AdjustmentRecord.model_validate(
        {
            "contrast": 10,
            "exposure": 0.2,
            "masks": [{"name": "Sky", "type": "sky", "adjustments": {"local_exposure": 0}}],
        }
    )
    return EditSession(recipe_id=recipe_id, base=base, text=RecipeText(name="Warm", prompt="warm tones"))


_BUNDLE = {
    "userOptions": {"contrast": 20},
    "aiAdjustments": {"temperature": 6200},
    "maskOverrides": [{"op": "update", "name": "Sky", "adjustments": {"local_exposure": -0.3}}],
}


class PendingModificationControllerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.session = _session()
        self.store = _RecordingStore()
        self.controller = PendingModificationController(self.session, self.store)

    def test_propose_returns_preview_with_pending_layers(self) -> None:
        preview = self.controller.propose(_BUNDLE)

        self.assertEqual(self.controller.state, SessionState.PROPOSED)
        self.assertEqual(preview.contrast, 20)
        self.assertEqual(preview.temperature, 6200)
        self.assertEqual(preview.masks[0].adjustments.local_exposure, -0.3)
        self.assertEqual(self.controller.effective().wire_dump(), preview.wire_dump())
        self.assertEqual(self.store.calls, [])

    def test_propose_then_reject_restores_previous_effective(self) -> None:
        before = self.controller.effective().wire_dump()

        self.controller.propose(_BUNDLE)
        reverted = self.controller.reject()

        self.assertEqual(reverted.wire_dump(), before)
        self.assertEqual(self.controller.effective().wire_dump(), before)
        self.assertIsNone(self.controller.pending)
        self.assertEqual(self.controller.state, SessionState.IDLE)
        self.assertEqual(self.session.accepted.mask_overrides, [])
        self.assertEqual(self.store.calls, [])

    def test_second_propose_replaces_first(self) -> None:
        self.controller.propose(_BUNDLE)
        self.controller.propose({"aiAdjustments": {"clarity": 15}})

        effective = self.controller.effective()

        self.assertEqual(effective.clarity, 15)
        self.assertIsNone(effective.temperature)
        self.assertEqual(effective.contrast, 10)
        self.assertEqual(effective.masks[0].adjustments.local_exposure, 0)

    def test_accept_writes_all_tiers_in_one_call(self) -> None:
        preview = self.controller.propose({**_BUNDLE, "prompt": "golden hour"})

        outcome = self.controller.accept()

        self.assertEqual(len(self.store.calls), 1)
        recipe_id, fields = self.store.calls[0]
        self.assertEqual(recipe_id, 1)
        self.assertEqual(fields["style_options_json"], {"contrast": 20})
        self.assertEqual(fields["global_overrides_json"], {"temperature": 6200})
        self.assertEqual(
            fields["mask_overrides_json"],
            [{"op": "update", "name": "Sky", "adjustments": {"local_exposure": -0.3}}],
        )
        self.assertEqual(fields["prompt"], "golden hour")
        self.assertNotIn("name", fields)
        self.assertNotIn("preset_text", fields)
        self.assertEqual(outcome.written_fields, sorted(fields))
        self.assertEqual(outcome.effective.wire_dump(), preview.wire_dump())

        self.assertIsNone(self.controller.pending)
        self.assertEqual(self.controller.state, SessionState.IDLE)
        self.assertEqual(self.session.text.prompt, "golden hour")
        self.assertEqual(self.controller.effective().wire_dump(), preview.wire_dump())

    def test_accepted_mask_ops_append_across_accepts(self) -> None:
        self.controller.propose({"maskOverrides": [{"op": "add", "name": "A", "adjustments": {"local_exposure": 0.1}}]})
        self.controller.accept()
        self.controller.propose({"maskOverrides": [{"op": "update", "name": "A", "adjustments": {"local_exposure": 0.5}}]})
        self.controller.accept()

        self.assertEqual(len(self.session.accepted.mask_overrides), 2)
        masks = {mask.name: mask for mask in self.controller.effective().masks}
        self.assertEqual(set(masks), {"Sky", "A"})
        self.assertEqual(masks["A"].adjustments.local_exposure, 0.5)

    def test_global_overrides_merge_on_accept(self) -> None:
        self.controller.propose({"aiAdjustments": {"temperature": 6200, "tint": 4}})
        self.controller.accept()
        self.controller.propose({"aiAdjustments": {"tint": -6}})
        self.controller.accept()

        _, fields = self.store.calls[-1]
        self.assertEqual(fields["global_overrides_json"], {"temperature": 6200, "tint": -6})

    def test_failed_write_keeps_pending_modification(self) -> None:
        store = _FailingStore()
        controller = PendingModificationController(self.session, store)
        before = controller.effective().wire_dump()
        controller.propose(_BUNDLE)
        staged = controller.pending

        with self.assertLogs("presetlab.services.pending", level="ERROR"):
            with self.assertRaises(PersistenceError):
                controller.accept()

        self.assertEqual(store.attempts, 1)
        self.assertIs(controller.pending, staged)
        self.assertEqual(controller.state, SessionState.PROPOSED)
        self.assertEqual(self.session.accepted.mask_overrides, [])
        self.assertEqual(controller.accepted_effective().wire_dump(), before)

    def test_failed_export_skips_write_and_keeps_pending(self) -> None:
        controller = PendingModificationController(self.session, self.store, exporter=_FailingExporter())
        controller.propose(_BUNDLE)

        with self.assertLogs("presetlab.services.pending", level="ERROR"):
            with self.assertRaises(ExportError):
                controller.accept()

        self.assertEqual(self.store.calls, [])
        self.assertIsNotNone(controller.pending)
        self.assertEqual(controller.state, SessionState.PROPOSED)

    def test_accept_and_reject_require_pending(self) -> None:
        with self.assertRaises(NoPendingModificationError):
            self.controller.accept()
        with self.assertRaises(NoPendingModificationError):
            self.controller.reject()

    def test_propose_during_accept_is_rejected(self) -> None:
        store = _ProposingStore()
        controller = PendingModificationController(self.session, store)
        store.controller = controller
        controller.propose(_BUNDLE)

        outcome = controller.accept()

        self.assertIsInstance(store.error, AcceptInProgressError)
        self.assertIsNone(controller.pending)
        self.assertEqual(controller.state, SessionState.IDLE)
        self.assertEqual(outcome.effective.contrast, 20)
        self.assertEqual(controller.effective().contrast, 20)

    def test_accept_with_exporter_stamps_preset_text(self) -> None:
        controller = PendingModificationController(
            self.session,
            self.store,
            exporter=JsonPresetExporter(),
            include=ExportInclude(masks=False),
        )
        controller.propose({**_BUNDLE, "name": "Golden"})

        outcome = controller.accept()

        _, fields = self.store.calls[0]
        self.assertEqual(fields["status"], "completed")
        self.assertEqual(fields["name"], "Golden")
        self.assertEqual(fields["preset_text"], outcome.preset_text)
        self.assertIsNotNone(fields["preset_created_at"])
        exported = json.loads(outcome.preset_text or "{}")
        self.assertEqual(exported["preset_name"], "Golden")
        self.assertEqual(exported["contrast"], 20)
        self.assertNotIn("masks", exported)

    def test_export_without_exporter_fails(self) -> None:
        with self.assertRaises(ExportError):
            self.controller.export()

    def test_empty_modification_is_rejected(self) -> None:
        with self.assertRaises(ValidationError):
            self.controller.propose({})
        self.assertEqual(self.controller.state, SessionState.IDLE)

    def test_sessions_do_not_share_pending_state(self) -> None:
        registry = EditSessionRegistry()
        first = registry.checkout(1, lambda: _session(1))
        second = registry.checkout(2, lambda: _session(2))
        assert first is not None and second is not None

        PendingModificationController(first, self.store).propose(_BUNDLE)

        self.assertIsNotNone(first.pending)
        self.assertIsNone(second.pending)
        self.assertIs(registry.checkout(1, lambda: None), first)
        registry.discard(1)
        self.assertIsNone(registry.get(1))

    def test_registry_drops_idle_sessions_on_release(self) -> None:
        registry = EditSessionRegistry()
        session = registry.checkout(1, lambda: _session(1))
        assert session is not None
        controller = PendingModificationController(session, self.store)

        controller.propose(_BUNDLE)
        registry.release(session)
        self.assertIs(registry.get(1), session)

        self.assertIs(registry.checkout(1, lambda: None), session)
        controller.accept()
        registry.release(session)
        self.assertIsNone(registry.get(1))
        self.assertEqual(len(registry), 0)

        reloaded = registry.checkout(1, lambda: _session(1))
        self.assertIsNot(reloaded, session)

    def test_registry_keeps_sessions_with_other_holders(self) -> None:
        registry = EditSessionRegistry()
        first_hold = registry.checkout(1, lambda: _session(1))
        second_hold = registry.checkout(1, lambda: None)
        assert first_hold is not None
        self.assertIs(first_hold, second_hold)

        registry.release(first_hold)
        self.assertIs(registry.get(1), first_hold)
        registry.release(first_hold)
        self.assertIsNone(registry.get(1))

    def test_registry_returns_none_for_unknown_recipe(self) -> None:
        registry = EditSessionRegistry()
        self.assertIsNone(registry.checkout(7, lambda: None))
        self.assertEqual(len(registry), 0)

    def test_accept_merges_onto_stored_tiers_not_cached_ones(self) -> None:
        self.store.state = StoredRecipeState(
            accepted=AcceptedTiers(mask_overrides=parse_tier([{"op": "add", "name": "Other", "type": "radial"}])),
            text=RecipeText(name="Warm", prompt="warm tones"),
            version=4,
        )
        self.controller.propose({"maskOverrides": [{"op": "add", "name": "A"}]})

        outcome = self.controller.accept()

        _, fields = self.store.calls[0]
        self.assertEqual([op["name"] for op in fields["mask_overrides_json"]], ["Other", "A"])
        self.assertEqual([mask.name for mask in outcome.effective.masks], ["Sky", "Other", "A"])
        self.assertEqual(len(self.session.accepted.mask_overrides), 2)

    def test_stale_write_is_planned_again_against_fresh_state(self) -> None:
        store = _StaleStore(stale_writes=1)
        controller = PendingModificationController(self.session, store)
        controller.propose({"maskOverrides": [{"op": "add", "name": "A"}]})

        controller.accept()

        self.assertEqual(store.loads, 2)
        self.assertEqual(len(store.calls), 1)
        _, fields = store.calls[0]
        self.assertEqual([op["name"] for op in fields["mask_overrides_json"]], ["Other", "A"])
        self.assertIsNone(controller.pending)

    def test_repeatedly_stale_write_keeps_pending_modification(self) -> None:
        store = _StaleStore(stale_writes=10)
        controller = PendingModificationController(self.session, store)
        controller.propose(_BUNDLE)
        staged = controller.pending

        with self.assertLogs("presetlab.services.pending", level="ERROR"):
            with self.assertRaises(StaleRecordError):
                controller.accept()

        self.assertEqual(store.loads, 3)
        self.assertEqual(store.calls, [])
        self.assertIs(controller.pending, staged)
        self.assertEqual(controller.state, SessionState.PROPOSED)

    def test_pending_bundle_accepts_snake_case_and_text_block(self) -> None:
        bundle = PendingModification.model_validate(
            {"style_options": {"saturation_bias": 5}, "text": {"description": "soft"}, "masks": [{"op": "clear"}]}
        )
        self.assertEqual(bundle.style_options.saturation_bias, 5)
        self.assertEqual(bundle.text.description, "soft")
        self.assertEqual(len(bundle.mask_overrides), 1)


class SqlRecipeStoreTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls) -> None:
        cls.engine = create_engine(
            "sqlite+pysqlite:///:memory:",
            future=True,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        cls.SessionLocal = sessionmaker(bind=cls.engine, autoflush=False, autocommit=False, future=True)
        Base.metadata.create_all(cls.engine)

    @classmethod
    def tearDownClass(cls) -> None:
        Base.metadata.drop_all(cls.engine)
        cls.engine.dispose()

    def setUp(self) -> None:
        self.db: Session = self.SessionLocal()
        self.db.execute(delete(Recipe))
        self.db.commit()

    def tearDown(self) -> None:
        self.db.close()

    def _create(self) -> Recipe:
        return create_recipe(
            self.db,
            RecipeCreate(
                name="Warm",
                prompt="warm tones",
                base_adjustments=AdjustmentRecord.model_validate(
                    {"contrast": 10, "masks": [{"name": "Sky", "type": "sky", "adjustments": {"local_exposure": 0}}]}
                ),
                style_options={"vibe": "cozy"},
            ),
        )

    def test_accept_persists_tiers_and_preset(self) -> None:
        recipe = self._create()
        registry = EditSessionRegistry()
        session = registry.checkout(recipe.id, lambda: load_edit_session(self.db, recipe.id))
        assert session is not None
        controller = PendingModificationController(session, SqlRecipeStore(self.db), exporter=JsonPresetExporter())
        controller.propose({**_BUNDLE, "description": "late sun"})

        outcome = controller.accept()

        stored = get_recipe(self.db, recipe.id)
        assert stored is not None
        self.assertEqual(stored.status, "completed")
        self.assertEqual(stored.description, "late sun")
        self.assertEqual(stored.style_options_json, {"vibe": "cozy", "contrast": 20})
        self.assertEqual(stored.global_overrides_json, {"temperature": 6200})
        self.assertEqual(len(stored.mask_overrides_json), 1)
        self.assertEqual(stored.preset_text, outcome.preset_text)

        reloaded = load_edit_session(self.db, recipe.id)
        assert reloaded is not None
        fresh = PendingModificationController(reloaded, SqlRecipeStore(self.db))
        self.assertEqual(fresh.effective().wire_dump(), outcome.effective.wire_dump())
        self.assertEqual(fresh.effective().masks[0].adjustments.local_exposure, -0.3)

    def test_accepts_from_separate_workers_accumulate_mask_ops(self) -> None:
        recipe = self._create()
        other_db: Session = self.SessionLocal()
        self.addCleanup(other_db.close)
        worker_a = EditSessionRegistry()
        worker_b = EditSessionRegistry()
        session_a = worker_a.checkout(recipe.id, lambda: load_edit_session(self.db, recipe.id))
        session_b = worker_b.checkout(recipe.id, lambda: load_edit_session(other_db, recipe.id))
        assert session_a is not None and session_b is not None
        controller_a = PendingModificationController(session_a, SqlRecipeStore(self.db))
        controller_b = PendingModificationController(session_b, SqlRecipeStore(other_db))

        controller_a.propose({"maskOverrides": [{"op": "add", "name": "A"}], "aiAdjustments": {"tint": 5}})
        controller_a.accept()
        controller_b.propose({"maskOverrides": [{"op": "add", "name": "B"}]})
        outcome = controller_b.accept()

        stored = get_recipe(self.db, recipe.id)
        assert stored is not None
        self.db.refresh(stored)
        self.assertEqual([op["name"] for op in stored.mask_overrides_json], ["A", "B"])
        self.assertEqual(stored.global_overrides_json, {"tint": 5})
        self.assertEqual(stored.version, 3)
        self.assertEqual([mask.name for mask in outcome.effective.masks], ["Sky", "A", "B"])
        self.assertEqual(len(session_b.accepted.mask_overrides), 2)

    def test_update_with_outdated_version_is_refused(self) -> None:
        recipe = self._create()
        store = SqlRecipeStore(self.db)
        self.assertEqual(store.load_state(recipe.id).version, 1)

        store.update_record(recipe.id, {"status": "completed"}, expected_version=1)

        with self.assertRaises(StaleRecordError):
            store.update_record(recipe.id, {"status": "draft"}, expected_version=1)
        state = store.load_state(recipe.id)
        self.assertEqual(state.version, 2)
        stored = get_recipe(self.db, recipe.id)
        assert stored is not None
        self.assertEqual(stored.status, "completed")

    def test_load_state_for_missing_recipe_raises_not_found(self) -> None:
        with self.assertRaises(RecipeNotFoundError):
            SqlRecipeStore(self.db).load_state(9999)

    def test_update_missing_recipe_raises_not_found(self) -> None:
        with self.assertRaises(RecipeNotFoundError):
            SqlRecipeStore(self.db).update_record(9999, {"status": "completed"})

    def test_update_rejects_unknown_fields(self) -> None:
        recipe = self._create()
        with self.assertRaises(ValueError):
            SqlRecipeStore(self.db).update_record(recipe.id, {"base_adjustments_json": {}})

    def test_load_missing_recipe_returns_none(self) -> None:
        self.assertIsNone(load_edit_session(self.db, 4242))


if __name__ == "__main__":
    unittest.main()
