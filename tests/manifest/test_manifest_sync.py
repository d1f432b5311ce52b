"""Tests for ManifestSynchronizer: partial updates, pass-through of unknown fields, best-effort failures."""
import json
import os
import tempfile
import unittest
from unittest.mock import patch

from miniapp_assets.services.image_generation.base import Slot
from miniapp_assets.services.manifest.service import (
    ManifestSynchronizer,
    asset_url,
    build_slot_updates,
    clean_domain,
)


def _manifest() -> dict:
    return {
        "accountAssociation": {"header": "h", "payload": "p", "signature": "s"},
        "miniapp": {
            "version": "1",
            "name": "Coin Flip",
            "iconUrl": "https://your-domain.com/icon.png",
            "homeUrl": "https://your-domain.com",
            "imageUrl": "https://your-domain.com/image.png",
            "buttonTitle": "Play",
            "splashImageUrl": "https://your-domain.com/splash.png",
            "splashBackgroundColor": "#0f172a",
            "futureField": {"nested": [1, 2, 3]},
        },
        "x-unknown-top-level": True,
    }


class TestManifestSynchronizer(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.path = os.path.join(self._tmp.name, "farcaster.json")

    def tearDown(self):
        self._tmp.cleanup()

    def _write(self, doc) -> None:
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(doc, f, indent=2)

    def _read(self) -> dict:
        with open(self.path, encoding="utf-8") as f:
            return json.load(f)

    def test_icon_only_update_preserves_everything_else(self):
        before = _manifest()
        self._write(before)

        changed = ManifestSynchronizer().apply(self.path, {"iconUrl": "https://app.dev/images/flux-icon-1.png"})

        self.assertTrue(changed)
        after = self._read()
        self.assertEqual(after["miniapp"]["iconUrl"], "https://app.dev/images/flux-icon-1.png")
        for key in before:
            if key != "miniapp":
                self.assertEqual(json.dumps(after[key]), json.dumps(before[key]))
        for key, value in before["miniapp"].items():
            if key != "iconUrl":
                self.assertEqual(json.dumps(after["miniapp"][key]), json.dumps(value))
        self.assertEqual(list(after), list(before))
        self.assertEqual(list(after["miniapp"]), list(before["miniapp"]))

    def test_fields_without_section_are_updated_at_top_level(self):
        self._write({"name": "Flat", "iconUrl": "old", "custom": 1})
        changed = ManifestSynchronizer().apply(self.path, {"iconUrl": "new"})
        self.assertTrue(changed)
        self.assertEqual(self._read(), {"name": "Flat", "iconUrl": "new", "custom": 1})

    def test_missing_field_is_added(self):
        self._write({"miniapp": {"name": "A"}})
        ManifestSynchronizer().apply(self.path, {"splashImageUrl": "https://a.dev/images/s.png"})
        self.assertEqual(self._read()["miniapp"]["splashImageUrl"], "https://a.dev/images/s.png")

    def test_home_url_only_replaced_while_placeholder(self):
        self._write(_manifest())
        sync = ManifestSynchronizer(new_domain="https://app.dev")
        sync.apply(self.path, {"iconUrl": "https://app.dev/images/i.png"})
        self.assertEqual(self._read()["miniapp"]["homeUrl"], "https://app.dev")

        doc = _manifest()
        doc["miniapp"]["homeUrl"] = "https://already.live"
        self._write(doc)
        sync.apply(self.path, {"homeUrl": "https://app.dev"})
        self.assertEqual(self._read()["miniapp"]["homeUrl"], "https://already.live")

    def test_unrecognized_update_fields_ignored(self):
        self._write(_manifest())
        changed = ManifestSynchronizer().apply(self.path, {"buttonTitle": "Hacked"})
        self.assertFalse(changed)
        self.assertEqual(self._read()["miniapp"]["buttonTitle"], "Play")

    def test_no_change_does_not_rewrite(self):
        self._write(_manifest())
        mtime = os.stat(self.path).st_mtime_ns
        changed = ManifestSynchronizer().apply(self.path, {"iconUrl": "https://your-domain.com/icon.png"})
        self.assertFalse(changed)
        self.assertEqual(os.stat(self.path).st_mtime_ns, mtime)

    def test_apply_is_idempotent(self):
        self._write(_manifest())
        updates = {"iconUrl": "https://app.dev/images/i.png"}
        self.assertTrue(ManifestSynchronizer().apply(self.path, updates))
        self.assertFalse(ManifestSynchronizer().apply(self.path, updates))

    def test_missing_document_is_noop(self):
        self.assertFalse(ManifestSynchronizer().apply(self.path, {"iconUrl": "x"}))
        self.assertFalse(os.path.exists(self.path))

    def test_unparsable_document_is_noop(self):
        with open(self.path, "w") as f:
            f.write("{not json")
        self.assertFalse(ManifestSynchronizer().apply(self.path, {"iconUrl": "x"}))
        with open(self.path) as f:
            self.assertEqual(f.read(), "{not json")

    def test_write_failure_reported_not_raised(self):
        self._write(_manifest())
        with patch("miniapp_assets.services.manifest.service.os.replace", side_effect=OSError("read-only")):
            self.assertFalse(ManifestSynchronizer().apply(self.path, {"iconUrl": "x"}))
        self.assertEqual(self._read(), _manifest())
        self.assertEqual(os.listdir(self._tmp.name), ["farcaster.json"])

    def test_compute_changes_changelog(self):
        changes = ManifestSynchronizer().compute_changes(_manifest(), {"imageUrl": "https://a.dev/images/e.png"})
        self.assertEqual(len(changes), 1)
        self.assertEqual(
            str(changes[0]),
            "imageUrl: https://your-domain.com/image.png → https://a.dev/images/e.png",
        )

    def test_read_app_name(self):
        self._write(_manifest())
        self.assertEqual(ManifestSynchronizer().read_app_name(self.path), "Coin Flip")
        self.assertEqual(ManifestSynchronizer().read_app_name(self.path + ".missing"), "Mini App")


class TestUrlHelpers(unittest.TestCase):
    def test_clean_domain(self):
        self.assertEqual(clean_domain("https://app.dev/"), "app.dev")
        self.assertEqual(clean_domain("app.dev"), "app.dev")

    def test_asset_url(self):
        self.assertEqual(asset_url("http://app.dev", "a.png"), "https://app.dev/images/a.png")
        self.assertEqual(asset_url("app.dev", "a.png", url_path=""), "https://app.dev/a.png")

    def test_build_slot_updates(self):
        updates = build_slot_updates("app.dev", {Slot.ICON: "i.png", Slot.SPLASH: "s.png"})
        self.assertEqual(updates, {
            "iconUrl": "https://app.dev/images/i.png",
            "splashImageUrl": "https://app.dev/images/s.png",
        })
