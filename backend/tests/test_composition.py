"""Unit tests for effective record composition."""

from __future__ import annotations

import unittest

from pydantic import ValidationError

from presetlab.schemas.adjustments import AdjustmentRecord, GlobalOverrides
from presetlab.schemas.overrides import StyleOptions, parse_tier
from presetlab.services.composition import compute_effective


class ComputeEffectiveTests(unittest.TestCase):
    def test_global_overrides_take_precedence_over_style(self) -> None:
        effective = compute_effective(
            AdjustmentRecord(contrast=10),
            style_options=StyleOptions(contrast=20),
            global_overrides=GlobalOverrides(contrast=30),
        )
        self.assertEqual(effective.contrast, 30)

    def test_style_overrides_base(self) -> None:
        effective = compute_effective(
            AdjustmentRecord(contrast=10, vibrance=5, saturation=-5, clarity=12),
            style_options=StyleOptions.model_validate({"contrast": 20, "saturationBias": 15}),
        )
        self.assertEqual(effective.contrast, 20)
        self.assertEqual(effective.saturation, 15)
        self.assertEqual(effective.vibrance, 5)
        self.assertEqual(effective.clarity, 12)

    def test_pending_ops_layer_over_accepted_ops(self) -> None:
        accepted = parse_tier([{"op": "add", "name": "A", "adjustments": {"local_exposure": 0.1}}])
        pending = parse_tier([{"op": "update", "name": "A", "adjustments": {"local_exposure": 0.5}}])

        effective = compute_effective(AdjustmentRecord(), None, accepted, pending, None)

        self.assertEqual(len(effective.masks), 1)
        self.assertEqual(effective.masks[0].name, "A")
        self.assertEqual(effective.masks[0].adjustments.local_exposure, 0.5)

    def test_unspecified_overrides_keep_base_values(self) -> None:
        base = AdjustmentRecord(exposure=0.4, temperature=5600, contrast=10)
        effective = compute_effective(base, StyleOptions(vibe="moody"), [], [], GlobalOverrides(tint=8))
        self.assertEqual(effective.exposure, 0.4)
        self.assertEqual(effective.temperature, 5600)
        self.assertEqual(effective.contrast, 10)
        self.assertEqual(effective.tint, 8)

    def test_missing_base_composes_from_empty_record(self) -> None:
        effective = compute_effective(None, global_overrides=GlobalOverrides(dehaze=15))
        self.assertEqual(effective.dehaze, 15)
        self.assertEqual(effective.masks, [])

    def test_base_record_is_not_mutated(self) -> None:
        base = AdjustmentRecord.model_validate(
            {"contrast": 10, "masks": [{"name": "Sky", "type": "sky", "adjustments": {"local_exposure": 0.0}}]}
        )
        before = base.wire_dump()
        compute_effective(
            base,
            StyleOptions(contrast=50),
            parse_tier([{"op": "update", "name": "Sky", "adjustments": {"local_exposure": 0.6}}]),
            parse_tier([{"op": "remove_all"}]),
            GlobalOverrides(contrast=-20),
        )
        self.assertEqual(base.wire_dump(), before)

    def test_pending_remove_all_clears_accepted_masks(self) -> None:
        base = AdjustmentRecord.model_validate({"masks": [{"name": "Sky", "type": "sky"}]})
        accepted = parse_tier([{"op": "add", "name": "Glow", "type": "radial"}])
        pending = parse_tier([{"op": "remove_all"}, {"op": "add", "name": "Water", "type": "water"}])

        effective = compute_effective(base, None, accepted, pending, None)

        self.assertEqual([mask.name for mask in effective.masks], ["Water"])

    def test_global_overrides_cannot_carry_masks(self) -> None:
        with self.assertRaises(ValidationError):
            GlobalOverrides.model_validate({"contrast": 5, "masks": []})

    def test_out_of_range_values_are_rejected(self) -> None:
        with self.assertRaises(ValidationError):
            AdjustmentRecord(contrast=150)
        with self.assertRaises(ValidationError):
            StyleOptions(vibrance=-101)


if __name__ == "__main__":
    unittest.main()
