"""
Mini app manifest (farcaster.json) synchronisation.
Read-merge-write of the URL fields that point at generated assets. Fields that are
not explicitly updated - known or unknown - pass through untouched. Best-effort:
a missing or broken manifest is reported, never raised.
"""
from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

from miniapp_assets.services.image_generation.base import Slot

logger = logging.getLogger(__name__)

ICON_URL = "iconUrl"
IMAGE_URL = "imageUrl"
EMBED_URL = "embedUrl"
SPLASH_URL = "splashImageUrl"
HOME_URL = "homeUrl"

RECOGNIZED_FIELDS = frozenset({ICON_URL, IMAGE_URL, EMBED_URL, SPLASH_URL, HOME_URL})

SLOT_FIELDS = {
    Slot.ICON: ICON_URL,
    Slot.EMBED: IMAGE_URL,
    Slot.SPLASH: SPLASH_URL,
}


@dataclass(frozen=True)
class FieldChange:
    field: str
    old: Any
    new: Any

    def __str__(self) -> str:
        return f"{self.field}: {self.old} → {self.new}"


def clean_domain(domain: str) -> str:
    """'https://my-app.dev/' -> 'my-app.dev'"""
    value = domain.strip()
    for scheme in ("https://", "http://"):
        if value.startswith(scheme):
            value = value[len(scheme):]
            break
    return value.rstrip("/")


def asset_url(domain: str, filename: str, url_path: str = "images") -> str:
    path = url_path.strip("/")
    prefix = f"https://{clean_domain(domain)}"
    return f"{prefix}/{path}/{filename}" if path else f"{prefix}/{filename}"


def build_slot_updates(
    domain: str,
    filenames: Mapping[Slot, str],
    url_path: str = "images",
) -> dict[str, str]:
    """Manifest field -> public URL for each slot that produced a file."""
    return {SLOT_FIELDS[slot]: asset_url(domain, name, url_path) for slot, name in filenames.items()}


class ManifestSynchronizer:
    """Owns every read and write of the manifest; no in-process copy survives a call."""

    def __init__(
        self,
        section: str | None = "miniapp",
        placeholder_domain: str = "your-domain.com",
        new_domain: str | None = None,
    ) -> None:
        self.section = section
        self.placeholder_domain = placeholder_domain
        self.new_domain = clean_domain(new_domain) if new_domain else None

    def read_document(self, config_path: str | os.PathLike) -> dict[str, Any] | None:
        path = Path(config_path)
        if not path.exists():
            logger.warning("Manifest not found: %s", path, extra={"path": str(path)})
            return None
        try:
            document = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("Could not read manifest %s: %s", path, e, extra={"path": str(path), "error": str(e)})
            return None
        if not isinstance(document, dict):
            logger.warning("Manifest %s is not a JSON object", path, extra={"path": str(path)})
            return None
        return document

    def _target(self, document: dict[str, Any]) -> dict[str, Any]:
        """The object holding the URL fields: the named section when present, else the root."""
        if self.section and isinstance(document.get(self.section), dict):
            return document[self.section]
        return document

    def read_app_name(self, config_path: str | os.PathLike, default: str = "Mini App") -> str:
        document = self.read_document(config_path)
        if document is None:
            return default
        name = self._target(document).get("name")
        if isinstance(name, str) and name.strip():
            return name.strip()
        return default

    def _home_url_value(self, current: Any, proposed: Any) -> Any:
        """homeUrl is only rewritten while it still points at the placeholder host."""
        if not isinstance(current, str) or self.placeholder_domain not in current:
            return current
        if isinstance(proposed, str) and proposed:
            return current.replace(f"https://{self.placeholder_domain}", f"https://{clean_domain(proposed)}")
        return current

    def compute_changes(self, document: dict[str, Any], updates: Mapping[str, Any]) -> list[FieldChange]:
        """Pure: the field changes apply() would make to this document."""
        target = self._target(document)
        changes: list[FieldChange] = []
        for field, value in updates.items():
            if field not in RECOGNIZED_FIELDS:
                logger.warning("Ignoring unrecognized manifest field %s", field, extra={"field": field})
                continue
            old = target.get(field)
            new = self._home_url_value(old, value) if field == HOME_URL else value
            if new != old:
                changes.append(FieldChange(field=field, old=old, new=new))
        if HOME_URL not in updates and self.new_domain:
            old = target.get(HOME_URL)
            new = self._home_url_value(old, self.new_domain)
            if new != old:
                changes.append(FieldChange(field=HOME_URL, old=old, new=new))
        return changes

    def apply(self, config_path: str | os.PathLike, updates: Mapping[str, Any]) -> bool:
        """Merge updates into the manifest; True if any field changed. Never raises."""
        path = Path(config_path)
        document = self.read_document(path)
        if document is None:
            logger.warning("Skipping manifest update", extra={"path": str(path)})
            return False

        changes = self.compute_changes(document, updates)
        if not changes:
            logger.info("No updates needed in %s (already configured)", path.name, extra={"path": str(path)})
            return False

        target = self._target(document)
        for change in changes:
            target[change.field] = change.new

        try:
            self._write(path, document)
        except OSError as e:
            logger.error("Failed to update %s: %s", path, e, extra={"path": str(path), "error": str(e)})
            return False

        logger.info("Updated %s", path.name, extra={"path": str(path)})
        for change in changes:
            logger.info(
                "  %s", change,
                extra={"field": change.field, "old_value": change.old, "new_value": change.new},
            )
        return True

    def _write(self, path: Path, document: dict[str, Any]) -> None:
        content = json.dumps(document, indent=2, ensure_ascii=False) + "\n"
        fd, tmp_path = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
            os.replace(tmp_path, path)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise
