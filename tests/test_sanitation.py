from __future__ import annotations

import unittest

from altro.core.lexicon import STRESS
from altro.core.sanitation import SanitationInput, run_core_sanitation

CASTLE = f"за{STRESS}мок"


class CoreSanitationTests(unittest.TestCase):
    def test_empty_text_is_complete(self):
        result = run_core_sanitation(SanitationInput("   "))
        self.assertEqual(result.sanitized_text, "")
        self.assertTrue(result.is_complete)

    def test_confident_context_fix_is_applied(self):
        result = run_core_sanitation(SanitationInput("Папа имама", context_weight=0.9))
        self.assertEqual(result.sanitized_text, "Папа и мама")
        self.assertEqual(result.suggestions, ())
        self.assertTrue(result.is_complete)

    def test_low_confidence_context_fix_is_suggested(self):
        result = run_core_sanitation(SanitationInput("Папа имама", context_weight=0.2))
        self.assertEqual(result.sanitized_text, "Папа имама")
        self.assertEqual(len(result.suggestions), 1)
        suggestion = result.suggestions[0]
        self.assertEqual(suggestion.kind, "context")
        self.assertEqual(suggestion.suggestion, "Папа и мама")
        self.assertTrue(suggestion.low_confidence)
        self.assertFalse(result.is_complete)

    def test_spelling_table_and_capitalisation(self):
        result = run_core_sanitation(SanitationInput("превет   мир"))
        self.assertEqual(result.sanitized_text, "Привет мир")

    def test_grammatical_sentence_is_unchanged(self):
        text = "Девочка читала интересную книгу вечером"
        result = run_core_sanitation(SanitationInput(text))
        self.assertEqual(result.sanitized_text, text)
        self.assertEqual(result.suggestions, ())
        self.assertTrue(result.is_complete)

    def test_validated_tokens_are_not_corrected(self):
        result = run_core_sanitation(SanitationInput("превет мир", validated_token_ids=frozenset({0})))
        self.assertEqual(result.sanitized_text, "Превет мир")
        self.assertEqual(result.suggestions, ())

    def test_unresolved_homonym_blocks_completion(self):
        result = run_core_sanitation(SanitationInput("Старый замок"))
        self.assertEqual(result.sanitized_text, "Старый замок")
        self.assertEqual(len(result.homonym_instances), 1)
        self.assertFalse(result.registry["замок_7"].resolved)
        self.assertFalse(result.is_complete)

    def test_caller_resolution_is_applied(self):
        result = run_core_sanitation(
            SanitationInput("Старый замок", resolved_homonyms={"замок_7": CASTLE})
        )
        self.assertEqual(result.sanitized_text, f"Старый {CASTLE}")
        self.assertEqual(result.homonym_instances, ())
        self.assertTrue(result.registry["замок_7"].resolved)
        self.assertTrue(result.is_complete)

    def test_marked_homonym_is_recorded_as_resolved(self):
        result = run_core_sanitation(SanitationInput(f"Старый {CASTLE}"))
        record = result.registry["замок_7"]
        self.assertTrue(record.resolved)
        self.assertEqual(record.variant, CASTLE)
        self.assertIn(CASTLE, result.sanitized_text)

    def test_apostrophe_stress_is_converted(self):
        result = run_core_sanitation(SanitationInput("за'мок старый"))
        self.assertEqual(result.sanitized_text, f"{CASTLE[0].upper()}{CASTLE[1:]} старый")
        self.assertEqual(result.registry["замок_0"].variant, CASTLE)

    def test_to_dict_shape(self):
        payload = run_core_sanitation(SanitationInput("Старый замок")).to_dict()
        self.assertEqual(payload["registry"]["замок_7"], {"resolved": False, "variant": None})
        self.assertFalse(payload["isComplete"])


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
