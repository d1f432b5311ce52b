"""
Base classes and types for image generation backends.
Used by the factory, the retry runner, the asset pipeline and all providers
(together flux, gemini, browserless screenshot).
"""
import io
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping

import httpx
from PIL import Image, UnidentifiedImageError

logger = logging.getLogger(__name__)


class Slot(str, Enum):
    """Logical asset the pipeline is responsible for producing."""

    ICON = "icon"
    EMBED = "embed"
    SPLASH = "splash"


class BackendKind(str, Enum):
    TEXT_TO_IMAGE = "text_to_image"
    MULTIMODAL_IMAGE = "multimodal_image"
    SCREENSHOT = "screenshot"


@dataclass(frozen=True)
class Dimensions:
    width: int
    height: int

    def __post_init__(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"dimensions must be positive, got {self.width}x{self.height}")

    def __str__(self) -> str:
        return f"{self.width}x{self.height}"


@dataclass(frozen=True)
class GenerationRequest:
    """One request per slot per run. prompt_or_target is a prompt or, for screenshots, a URL."""
    slot: Slot
    backend_kind: BackendKind
    prompt_or_target: str
    dimensions: Dimensions | None = None
    extra_params: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        # read-only view so the request stays immutable after construction
        object.__setattr__(self, "extra_params", MappingProxyType(dict(self.extra_params)))


@dataclass(frozen=True)
class GenerationSuccess:
    payload: bytes
    media_type: str


@dataclass(frozen=True)
class GenerationFailure:
    """
    Failed adapter call. diagnostic is the provider error body (dict or text);
    is_transport_error marks connection-level failures (refused, DNS, timeout).
    """
    message: str
    diagnostic: Any = None
    is_transport_error: bool = False
    http_status: int | None = None


GenerationResult = GenerationSuccess | GenerationFailure


@dataclass
class ImageGenerationResponse:
    """Raw provider response before it is turned into a GenerationResult."""
    image_content: bytes
    media_type: str
    model: str
    provider: str


class ImageGenerationError(Exception):
    """Raised inside generate(); detail holds provider error fields for classification."""
    def __init__(self, message: str, detail: dict[str, Any] | None = None):
        super().__init__(message)
        self.detail = detail or {}


# Pillow format name -> media type
_PIL_MEDIA_TYPES = {
    "PNG": "image/png",
    "JPEG": "image/jpeg",
    "WEBP": "image/webp",
    "GIF": "image/gif",
    "AVIF": "image/avif",
}


def detect_media_type(payload: bytes) -> str | None:
    """Identify image bytes with Pillow; None when the payload is not a readable image."""
    if not payload:
        return None
    try:
        with Image.open(io.BytesIO(payload)) as img:
            fmt = (img.format or "").upper()
    except (UnidentifiedImageError, OSError, ValueError):
        return None
    return _PIL_MEDIA_TYPES.get(fmt) or Image.MIME.get(fmt)


def error_detail_from_response(response: httpx.Response) -> dict[str, Any]:
    """
    Build the diagnostic dict for a non-2xx response: parsed body (or raw text),
    http_status and Retry-After when present.
    """
    try:
        body: Any = response.json()
    except ValueError:
        body = response.text
    detail: dict[str, Any] = {"http_status": response.status_code}
    if isinstance(body, dict):
        detail.update(body)
    elif body:
        detail["body"] = body
    retry_after = response.headers.get("Retry-After")
    if retry_after is not None:
        detail["retry_after"] = retry_after
    return detail


def error_message_from_detail(detail: dict[str, Any], fallback: str) -> str:
    error = detail.get("error")
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    if isinstance(error, str) and error:
        return error
    if isinstance(detail.get("body"), str) and detail["body"].strip():
        return detail["body"].strip()[:500]
    return fallback


class ImageGenerationProvider(ABC):
    """Base class for generation backends. Subclasses implement generate(); callers use invoke()."""

    provider_tag: str = ""
    backend_kind: BackendKind = BackendKind.TEXT_TO_IMAGE

    def __init__(self, config: dict) -> None:
        self.config = config
        self.timeout = float(config.get("timeout", 120.0))
        # injectable for tests (httpx.MockTransport)
        self.transport = config.get("transport")

    @abstractmethod
    def is_available(self) -> bool:
        """Check if provider is configured and available."""
        pass

    @abstractmethod
    def generate(self, request: GenerationRequest) -> ImageGenerationResponse:
        """Generate image from request. Raises ImageGenerationError or httpx errors on failure."""
        pass

    def _client(self) -> httpx.Client:
        return httpx.Client(timeout=self.timeout, transport=self.transport)

    def invoke(self, request: GenerationRequest) -> GenerationResult:
        """
        Single attempt, no retries. Never raises: transport problems become
        GenerationFailure(is_transport_error=True), everything else a classified failure.
        """
        if not self.is_available():
            return GenerationFailure(message=f"{self.provider_tag} backend not configured")
        try:
            response = self.generate(request)
        except ImageGenerationError as e:
            return GenerationFailure(
                message=str(e),
                diagnostic=e.detail or str(e),
                http_status=e.detail.get("http_status"),
            )
        except httpx.TimeoutException as e:
            return GenerationFailure(
                message=f"request timed out after {self.timeout}s: {e}",
                is_transport_error=True,
            )
        except httpx.TransportError as e:
            return GenerationFailure(message=f"transport error: {e}", is_transport_error=True)
        except (ValueError, LookupError, TypeError, AttributeError) as e:
            # malformed response body (bad JSON, bad base64, unexpected shape)
            logger.warning(
                "Malformed response from %s: %s", self.provider_tag, e,
                extra={"slot": request.slot.value, "provider": self.provider_tag},
            )
            return GenerationFailure(message=f"malformed response: {e}")

        detected = detect_media_type(response.image_content)
        if detected is None:
            return GenerationFailure(
                message=f"{self.provider_tag} returned content that is not a readable image "
                f"(declared {response.media_type or 'unknown'})",
            )
        if response.media_type and response.media_type != detected:
            logger.info(
                "Declared media type %s differs from detected %s, using detected",
                response.media_type, detected,
                extra={"slot": request.slot.value, "provider": self.provider_tag},
            )
        return GenerationSuccess(payload=response.image_content, media_type=detected)
