from __future__ import annotations

import os
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from altro.core.config import DEFAULT_CONFIG_PATH, AltroConfig, load_config


class LoadConfigTests(unittest.TestCase):
    def test_missing_file_yields_defaults(self):
        with patch.dict(os.environ, {}, clear=True):
            cfg = load_config("does-not-exist.yaml")
        self.assertEqual(cfg, AltroConfig())
        self.assertEqual(cfg.generation.model, "qwen2.5:14b")
        self.assertEqual(cfg.thresholds.fuzzy_auto_apply, 0.70)

    def test_repository_config_matches_defaults(self):
        self.assertTrue(DEFAULT_CONFIG_PATH.exists())
        with patch.dict(os.environ, {}, clear=True):
            cfg = load_config()
        self.assertEqual(cfg.generation.timeout_seconds, 600)
        self.assertEqual(cfg.thresholds.ethics_disclaimer, 50)

    def test_yaml_section_and_env_override(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "altro.yaml"
            path.write_text(
                "altro:\n  generation:\n    model: llama3\n    temperature: 0.2\n  thresholds:\n    standby: 0.25\n",
                encoding="utf-8",
            )
            with patch.dict(os.environ, {}, clear=True):
                cfg = load_config(path)
            self.assertEqual(cfg.generation.model, "llama3")
            self.assertEqual(cfg.generation.temperature, 0.2)
            self.assertEqual(cfg.thresholds.standby, 0.25)

            with patch.dict(os.environ, {"ALTRO_GENERATION__MODEL": "mistral"}, clear=True):
                cfg = load_config(path)
            self.assertEqual(cfg.generation.model, "mistral")
            self.assertEqual(cfg.generation.temperature, 0.2)


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
