"""
Local content directory for generated assets.
Names are <provider-tag>-<slot>-<timestamp>.<ext>; writes go through a temp file and
os.replace so a crash never leaves a half-written file under its final name.
"""
from __future__ import annotations

import logging
import os
import re
import tempfile
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

from miniapp_assets.services.assets.models import Artifact
from miniapp_assets.services.image_generation.base import Slot
from miniapp_assets.storage.base import Storage, UnsupportedMediaTypeError

logger = logging.getLogger(__name__)

MEDIA_TYPE_EXTENSIONS = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/webp": "webp",
    "image/gif": "gif",
    "image/avif": "avif",
    "image/svg+xml": "svg",
}

_TIMESTAMP_SEPARATORS = re.compile(r"[:.]")


def extension_for(media_type: str) -> str:
    key = (media_type or "").split(";")[0].strip().lower()
    ext = MEDIA_TYPE_EXTENSIONS.get(key)
    if ext is None:
        raise UnsupportedMediaTypeError(f"Unsupported media type: {media_type or 'unknown'}")
    return ext


def filename_timestamp(now: datetime) -> str:
    """2024-05-01T10:00:00.123Z -> 2024-05-01T10-00-00-123Z (UTC, millisecond precision)."""
    now = now.astimezone(timezone.utc)
    iso = now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"
    return _TIMESTAMP_SEPARATORS.sub("-", iso)


class LocalArtifactStore(Storage):
    """Content directory (e.g. public/images) holding one file per generated slot."""

    def __init__(self, content_dir: str | os.PathLike, clock: Callable[[], datetime] | None = None) -> None:
        self.content_dir = Path(content_dir)
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        # names handed out by this store; disambiguates same-millisecond saves
        self._issued: set[str] = set()
        self._lock = threading.Lock()

    def clear(self, prefix: str | None = None) -> int:
        if not self.content_dir.exists():
            logger.info("Creating content directory %s", self.content_dir, extra={"path": str(self.content_dir)})
            self.content_dir.mkdir(parents=True, exist_ok=True)
            return 0

        deleted = 0
        for entry in sorted(self.content_dir.iterdir()):
            if not entry.is_file():
                continue
            if prefix and not entry.name.startswith(prefix):
                continue
            try:
                entry.unlink()
            except OSError as e:
                logger.warning(
                    "Failed to delete %s: %s", entry.name, e,
                    extra={"artifact_name": entry.name, "error": str(e)},
                )
                continue
            deleted += 1
            logger.info("Deleted %s", entry.name, extra={"artifact_name": entry.name})
        logger.info("Cleared %d file(s) from %s", deleted, self.content_dir, extra={"path": str(self.content_dir)})
        return deleted

    def _reserve_name(self, provider_tag: str, slot: Slot, ext: str) -> str:
        base = f"{provider_tag}-{slot.value}-{filename_timestamp(self._clock())}"
        with self._lock:
            name = f"{base}.{ext}"
            n = 0
            while name in self._issued or (self.content_dir / name).exists():
                n += 1
                name = f"{base}-{n}.{ext}"
            self._issued.add(name)
        return name

    def save(self, slot: Slot, payload: bytes, media_type: str, provider_tag: str) -> Artifact:
        ext = extension_for(media_type)
        self.content_dir.mkdir(parents=True, exist_ok=True)
        filename = self._reserve_name(provider_tag, slot, ext)
        destination = self.content_dir / filename

        fd, tmp_path = tempfile.mkstemp(prefix=f".{filename}.", suffix=".tmp", dir=self.content_dir)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, destination)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise

        logger.info(
            "Saved %s (%.2f KB)", filename, len(payload) / 1024,
            extra={"slot": slot.value, "artifact_name": filename, "size_bytes": len(payload), "provider": provider_tag},
        )
        return Artifact(
            slot=slot,
            filename=filename,
            path=str(destination),
            size_bytes=len(payload),
            media_type=media_type,
            provider_tag=provider_tag,
        )
