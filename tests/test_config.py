import tempfile
import unittest
from pathlib import Path
from unittest import mock

from pydantic import ValidationError

from form_recall.config import CacheSettings, PipelineSettings, Settings, find_config


class TestSettings(unittest.TestCase):
    def test_defaults(self):
        settings = Settings()
        self.assertEqual(settings.keys.ml_confidence_threshold, 0.80)
        self.assertEqual(settings.matching.read_threshold, 0.80)
        self.assertEqual(settings.matching.recall_threshold, 0.60)
        self.assertEqual(settings.cache.ttl_days, 90)
        self.assertEqual(settings.cache.backend, "sqlite")
        self.assertTrue(settings.cache.path.is_absolute())
        self.assertNotIn("~", str(settings.cache.path))

    def test_load_yaml(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "config.yaml"
            path.write_text(
                "cache:\n"
                "  backend: memory\n"
                "  ttl_days: 30\n"
                "matching:\n"
                "  read_threshold: 0.85\n"
                "pipeline:\n"
                "  disabled_plugins: [memory_recall]\n"
                "  plugin_order:\n"
                "    atomic_strategies: [rule_engine, cache_replay]\n",
                encoding="utf-8",
            )
            settings = Settings.load(path)
        self.assertEqual(settings.cache.backend, "memory")
        self.assertEqual(settings.cache.ttl_days, 30)
        self.assertEqual(settings.matching.read_threshold, 0.85)
        self.assertEqual(settings.matching.recall_threshold, 0.60)
        self.assertEqual(settings.pipeline.disabled_plugins, ["memory_recall"])
        self.assertEqual(settings.pipeline.plugin_order["atomic_strategies"], ["rule_engine", "cache_replay"])

    def test_empty_file_gives_defaults(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "config.yaml"
            path.write_text("", encoding="utf-8")
            self.assertEqual(Settings.load(path), Settings())

    def test_cache_path_is_expanded(self):
        settings = CacheSettings(path="~/recall/cache.sqlite3")
        self.assertEqual(settings.path, (Path.home() / "recall" / "cache.sqlite3").resolve())

    def test_invalid_values_are_rejected(self):
        with self.assertRaises(ValidationError):
            CacheSettings(ttl_days=0)
        with self.assertRaises(ValidationError):
            CacheSettings(backend="redis")
        with self.assertRaises(ValidationError):
            PipelineSettings(pacing_min_seconds=0.5, pacing_max_seconds=0.1)


class TestFindConfig(unittest.TestCase):
    def test_explicit_path_wins(self):
        self.assertEqual(find_config(Path("/etc/recall.yaml")), Path("/etc/recall.yaml"))

    def test_searches_working_directory(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            tmp = Path(tmpdir)
            with mock.patch("form_recall.config.Path.cwd", return_value=tmp):
                with self.assertRaises(FileNotFoundError):
                    find_config(None)
                (tmp / "config.yml").write_text("{}", encoding="utf-8")
                self.assertEqual(find_config(None), tmp / "config.yml")


if __name__ == "__main__":
    unittest.main()
