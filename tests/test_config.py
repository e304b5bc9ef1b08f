import json
import os
import tempfile
import unittest
from unittest import mock

from main import Config, NewsApp
from newsharvest.ingestion.rules import ConfigError


class TestConfigFromEnv(unittest.TestCase):
    def test_defaults(self):
        with mock.patch.dict(os.environ, {}, clear=True):
            config = Config.from_env()
        self.assertEqual(config.rules_path, "rules.json")
        self.assertEqual(config.db_path, "news.db")
        self.assertEqual(config.port, 8383)
        self.assertEqual(config.cors_origins, [])
        self.assertFalse(config.open_browser)

    def test_overrides(self):
        env = {
            "PORT": "9000",
            "FETCH_TIMEOUT": "12.5",
            "CORS_ORIGINS": "http://localhost:4200, http://127.0.0.1:4200",
            "OPEN_BROWSER": "true",
            "LOG_LEVEL": "debug",
        }
        with mock.patch.dict(os.environ, env, clear=True):
            config = Config.from_env()
        self.assertEqual(config.port, 9000)
        self.assertEqual(config.fetch_timeout, 12.5)
        self.assertEqual(config.cors_origins, ["http://localhost:4200", "http://127.0.0.1:4200"])
        self.assertTrue(config.open_browser)
        self.assertEqual(config.log_level, "DEBUG")

    def test_collects_all_problems(self):
        env = {"PORT": "abc", "FETCH_RETRIES": "0", "POLL_SECONDS": "-1"}
        with mock.patch.dict(os.environ, env, clear=True):
            with self.assertRaises(ConfigError) as ctx:
                Config.from_env()
        message = str(ctx.exception)
        self.assertIn("PORT", message)
        self.assertIn("FETCH_RETRIES", message)
        self.assertIn("POLL_SECONDS", message)


class TestNewsAppWiring(unittest.TestCase):
    def test_builds_one_updater_per_rule(self):
        rule = {
            "intervalMinutes": 10,
            "url": "http://example.com/",
            "newsNodesExpr": "//li",
            "linkRule": {"expr": ".//a", "attr": "href"},
            "titleRule": {"expr": ".//a"},
        }
        with tempfile.TemporaryDirectory() as tmp:
            rules_path = os.path.join(tmp, "rules.json")
            with open(rules_path, "w", encoding="utf-8") as f:
                json.dump([rule, dict(rule, url="http://example.org/")], f)
            config = Config(rules_path=rules_path, db_path=os.path.join(tmp, "news.db"), public_dir="")
            app = NewsApp.from_config(config)

            self.assertEqual(len(app.updaters.updaters), 2)
            self.assertTrue(all(u.store is app.store for u in app.updaters.updaters))
            self.assertTrue(all(u.stop_event is app.updaters.stop_event for u in app.updaters.updaters))
            self.assertEqual(app.web.test_client().get("/news").get_json(), [])

    def test_bad_rules_file_is_fatal(self):
        with tempfile.TemporaryDirectory() as tmp:
            config = Config(rules_path=os.path.join(tmp, "missing.json"), db_path=os.path.join(tmp, "news.db"))
            with self.assertRaises(ConfigError):
                NewsApp.from_config(config)


if __name__ == "__main__":
    unittest.main()
