from __future__ import annotations

import random
import unittest

from altro.core.text import ZERO_WIDTH_MARK
from altro.core.vectors import (
    EXTERNAL_TO_INTERNAL,
    DomainSliders,
    Scenario,
    apply_opr_modulation,
    apply_scenario_coefficients,
    are_weights_in_standby,
    calculate_weights,
    deconstruct,
    get_active_pattern,
    get_semantic_displacement_directive,
    has_active_domain_weights,
    is_neutral,
)


class SliderTests(unittest.TestCase):
    def test_range_is_enforced(self):
        with self.assertRaises(ValueError):
            DomainSliders(semantics=1.5)
        with self.assertRaises(ValueError):
            DomainSliders(history=-1.2)
        with self.assertRaises(ValueError):
            DomainSliders(imagery=-0.1)

    def test_from_mapping_ignores_unknown_keys(self):
        sliders = DomainSliders.from_mapping({"history": 0.4, "unknown": 3})
        self.assertEqual(sliders.history, 0.4)

    def test_neutral_ignores_opr(self):
        self.assertTrue(is_neutral(DomainSliders()))
        self.assertTrue(is_neutral(DomainSliders(opr=0.3)))
        self.assertFalse(is_neutral(DomainSliders(ethics=0.01)))


class WeightTests(unittest.TestCase):
    def test_weight_grows_with_every_feeding_external_axis(self):
        grid = [-1.0, -0.5, 0.0, 0.5, 1.0]
        for external, targets in EXTERNAL_TO_INTERNAL.items():
            for internal in targets:
                with self.subTest(external=external, internal=internal):
                    values = [
                        getattr(calculate_weights(DomainSliders(**{external: v})), f"{internal}_weight")
                        for v in grid
                    ]
                    for lower, higher in zip(values, values[1:]):
                        self.assertGreater(higher, lower)

    def test_unrelated_external_axis_leaves_weight_unchanged(self):
        low = calculate_weights(DomainSliders(technology=-1.0)).semantics_weight
        high = calculate_weights(DomainSliders(technology=1.0)).semantics_weight
        self.assertEqual(low, high)

    def test_weight_formula(self):
        weights = calculate_weights(DomainSliders(semantics=0.2, economics=1.0))
        # economics, politics, society, history feed semantics; all but economics at 0.5
        self.assertAlmostEqual(weights.semantics_weight, 0.2 + 1.0 * 0.5 + 3 * 0.25)

    def test_deconstruction_flag(self):
        self.assertTrue(calculate_weights(DomainSliders(history=-1.0)).deconstruction)
        self.assertFalse(calculate_weights(DomainSliders(history=-0.5)).deconstruction)

    def test_opr_modulation(self):
        sliders = DomainSliders(history=0.6, culture=-0.4, ethics=0.5)
        self.assertEqual(apply_opr_modulation(sliders), sliders)

        zero = apply_opr_modulation(sliders, 0.0)
        self.assertEqual(zero.history, 0.0)
        self.assertEqual(zero.culture, 0.0)
        self.assertEqual(zero.ethics, 0.5)

        inverted = apply_opr_modulation(sliders, -1.0)
        self.assertAlmostEqual(inverted.history, -0.6)
        self.assertAlmostEqual(inverted.culture, 0.4)
        # снимок вызывающего не меняется
        self.assertEqual(sliders.history, 0.6)

    def test_scenarios(self):
        sliders = DomainSliders(aesthetics=0.0, opr=0.5)
        self.assertIs(apply_scenario_coefficients(sliders, Scenario.WITHOUT), sliders)

        poetics = apply_scenario_coefficients(sliders, "poetics")
        self.assertAlmostEqual(poetics.aesthetics, 0.5)

        gold = apply_scenario_coefficients(sliders, Scenario.GOLD_STANDARD)
        self.assertEqual(gold.semantics, 0.8)
        self.assertEqual(gold.opr, 0.5)

        with self.assertRaises(ValueError):
            apply_scenario_coefficients(sliders, "poetics", 1.5)

    def test_activity_and_standby(self):
        self.assertFalse(has_active_domain_weights(DomainSliders()))
        self.assertTrue(has_active_domain_weights(DomainSliders(imagery=0.2)))
        self.assertTrue(has_active_domain_weights(DomainSliders(history=-0.2)))
        self.assertTrue(are_weights_in_standby(DomainSliders(history=0.2)))
        self.assertFalse(are_weights_in_standby(DomainSliders(history=0.5)))


class PatternAndDirectiveTests(unittest.TestCase):
    def test_closest_reference_profile(self):
        pattern = get_active_pattern(DomainSliders(culture=1.0, religion=0.6, aesthetics=0.8))
        self.assertIsNotNone(pattern)
        self.assertEqual(pattern.id, "hamlet_monologue")
        self.assertGreater(pattern.score, 0.99)

    def test_no_pattern_for_neutral_sliders(self):
        self.assertIsNone(get_active_pattern(DomainSliders()))

    def test_displacement_directive(self):
        self.assertEqual(get_semantic_displacement_directive(DomainSliders()), "")
        text = get_semantic_displacement_directive(DomainSliders(imagery=0.5, religion=0.6))
        self.assertIn("IMAGERY (50%)", text)
        self.assertIn("SPIRIT (80%)", text)
        self.assertNotIn("CONTEXT (", text)


class DeconstructTests(unittest.TestCase):
    def test_structure_is_kept(self):
        text = "Старый дом, новый мир."
        out = deconstruct(text, random.Random(7))
        self.assertEqual(len(out), len(text))
        for src, dst in zip(text, out):
            if src.isspace() or src in ".,":
                self.assertEqual(src, dst)
            else:
                self.assertIn(dst, (src, ZERO_WIDTH_MARK))

    def test_retention_bounds(self):
        self.assertEqual(deconstruct("дом", random.Random(1), retention=1.0), "дом")
        self.assertEqual(deconstruct("дом", random.Random(1), retention=0.0), ZERO_WIDTH_MARK * 3)

    def test_seeded_rng_is_reproducible(self):
        self.assertEqual(deconstruct("слово", random.Random(3)), deconstruct("слово", random.Random(3)))


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
