from __future__ import annotations

import tempfile
import unittest
from pathlib import Path

from reddit_media.config import (
    CONFIG_PATH_ENV,
    config_sha256,
    load_config,
    resolve_config_path,
)
from reddit_media.config_schema import AppConfig
from reddit_media.errors import ConfigError


_VALID_YAML = """\
layout:
  gallery_spacing: 4
  compact_thumb_size: 60
  compact_thumb_scale: 2

hosts:
  platform_hosts:
    - " Reddit.com "
    - reddit.com
  mirror_hosts: []

redgifs:
  user_agent: reddit-media-tests/1.0
  timeout_secs: 5

reddit:
  base_url: https://old.reddit.com/
  self_fetch: false
  max_workers: 2
"""


class TestConfig(unittest.TestCase):
    def test_defaults_without_path(self) -> None:
        cfg = load_config(None)
        self.assertEqual(cfg.layout.gallery_spacing, 8.0)
        self.assertEqual(cfg.layout.compact_thumb_size, 75.0)
        self.assertEqual(cfg.hosts.platform_hosts, ["reddit.com"])
        self.assertEqual(cfg.hosts.mirror_hosts, ["app.winston.cafe"])
        self.assertEqual(cfg.hosts.redgifs_hosts, ["www.redgifs.com", "v3.redgifs.com"])
        self.assertEqual(cfg.redgifs.auth_url, "https://api.redgifs.com/v2/auth/temporary")
        self.assertTrue(cfg.reddit.self_fetch)

    def test_load_config_ok(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "config.yaml"
            path.write_text(_VALID_YAML, encoding="utf-8")

            cfg = load_config(path)
            self.assertEqual(cfg.layout.gallery_spacing, 4.0)
            self.assertEqual(cfg.layout.compact_thumb_scale, 2.0)
            self.assertEqual(cfg.hosts.platform_hosts, ["reddit.com"])
            self.assertEqual(cfg.hosts.mirror_hosts, [])
            self.assertEqual(cfg.redgifs.user_agent, "reddit-media-tests/1.0")
            self.assertEqual(cfg.reddit.base_url, "https://old.reddit.com")
            self.assertFalse(cfg.reddit.self_fetch)

    def test_empty_file_is_defaults(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "config.yaml"
            path.write_text("", encoding="utf-8")
            self.assertEqual(load_config(path), AppConfig())

    def test_load_config_rejects_bad_values(self) -> None:
        bad_documents = [
            "layout:\n  compact_thumb_size: 0\n",
            "hosts:\n  platform_hosts: []\n",
            "reddit:\n  base_url: ftp://example.com\n",
            "unknown_section: {}\n",
            "- just\n- a list\n",
            "layout: [unclosed\n",
        ]
        for doc in bad_documents:
            with self.subTest(doc=doc):
                with tempfile.TemporaryDirectory() as td:
                    path = Path(td) / "config.yaml"
                    path.write_text(doc, encoding="utf-8")
                    with self.assertRaises(ConfigError):
                        load_config(path)

    def test_missing_file(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            with self.assertRaises(ConfigError) as ctx:
                load_config(Path(td) / "missing.yaml")
            self.assertIn("not found", str(ctx.exception))

    def test_validation_message_names_field(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "config.yaml"
            path.write_text("reddit:\n  max_workers: 0\n", encoding="utf-8")
            with self.assertRaises(ConfigError) as ctx:
                load_config(path)
            self.assertIn("- reddit.max_workers:", str(ctx.exception))

    def test_resolve_config_path(self) -> None:
        self.assertEqual(resolve_config_path("a.yaml", environ={CONFIG_PATH_ENV: "b.yaml"}), Path("a.yaml"))
        self.assertEqual(resolve_config_path(None, environ={CONFIG_PATH_ENV: "b.yaml"}), Path("b.yaml"))
        self.assertIsNone(resolve_config_path(None, environ={}))
        self.assertIsNone(resolve_config_path("  ", environ={CONFIG_PATH_ENV: " "}))

    def test_config_sha256_is_stable(self) -> None:
        a = config_sha256(AppConfig())
        b = config_sha256(load_config(None))
        self.assertEqual(a, b)
        self.assertEqual(len(a), 64)

        changed = AppConfig.model_validate({"layout": {"gallery_spacing": 2}})
        self.assertNotEqual(config_sha256(changed), a)


if __name__ == "__main__":
    unittest.main()
