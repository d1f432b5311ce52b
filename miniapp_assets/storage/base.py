from abc import ABC, abstractmethod

from miniapp_assets.services.assets.models import Artifact
from miniapp_assets.services.image_generation.base import Slot


class UnsupportedMediaTypeError(ValueError):
    """Media type with no known file extension; the slot fails instead of guessing."""


class Storage(ABC):
    @abstractmethod
    def save(self, slot: Slot, payload: bytes, media_type: str, provider_tag: str) -> Artifact:
        """Persist payload under a fresh unique name; returns the artifact."""
        raise NotImplementedError

    @abstractmethod
    def clear(self, prefix: str | None = None) -> int:
        """Best-effort purge before a run; returns the number of deleted files."""
        raise NotImplementedError
