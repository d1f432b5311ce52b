"""
Browserless screenshot provider.
Renders the target URL in a headless browser and returns the page screenshot.
"""
import json
import logging
from typing import Any

from miniapp_assets.services.image_generation.base import (
    BackendKind,
    GenerationRequest,
    ImageGenerationError,
    ImageGenerationProvider,
    ImageGenerationResponse,
    error_detail_from_response,
    error_message_from_detail,
)

logger = logging.getLogger(__name__)


def ensure_protocol(url: str) -> str:
    url = url.strip()
    if not url.startswith(("http://", "https://")):
        return f"https://{url}"
    return url


class BrowserlessScreenshotProvider(ImageGenerationProvider):
    """Screenshot of a live page via the browserless /screenshot API."""

    provider_tag = "screenshot"
    backend_kind = BackendKind.SCREENSHOT

    def __init__(self, config: dict) -> None:
        super().__init__(config)
        self.api_url = (config.get("api_url") or "").rstrip("/")
        self.token = (config.get("token") or "").strip()
        self.wait_for_text = (config.get("wait_for_text") or "").strip()
        self.wait_timeout_ms = int(config.get("wait_timeout_ms", 10000))

    def is_available(self) -> bool:
        return bool(self.api_url)

    def build_payload(self, request: GenerationRequest) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "url": ensure_protocol(request.prompt_or_target),
            "gotoOptions": {"waitUntil": "networkidle2"},
        }
        if request.dimensions is not None:
            payload["viewport"] = {
                "width": request.dimensions.width,
                "height": request.dimensions.height,
            }
        if self.wait_for_text:
            marker = json.dumps(self.wait_for_text.lower())
            payload["waitForFunction"] = {
                "fn": f"() => document.body && document.body.innerText.toLowerCase().includes({marker})",
                "timeout": self.wait_timeout_ms,
            }
        payload.update(request.extra_params)
        return payload

    def generate(self, request: GenerationRequest) -> ImageGenerationResponse:
        payload = self.build_payload(request)
        params = {"token": self.token} if self.token else None
        logger.info(
            "Taking screenshot of %s", payload["url"],
            extra={"slot": request.slot.value, "provider": self.provider_tag},
        )

        with self._client() as client:
            resp = client.post(
                f"{self.api_url}/screenshot",
                params=params,
                headers={"Cache-Control": "no-cache"},
                json=payload,
            )
            if resp.is_error:
                detail = error_detail_from_response(resp)
                raise ImageGenerationError(
                    error_message_from_detail(
                        detail, f"Screenshot request failed: {resp.status_code} {resp.reason_phrase}"
                    ),
                    detail=detail,
                )
            content_type = resp.headers.get("content-type", "").split(";")[0].strip().lower()
            if not content_type.startswith("image/"):
                raise ImageGenerationError(
                    f"Expected image response, got {content_type or 'no content type'}",
                    detail={"content_type": content_type, "body": resp.text[:500]},
                )
            content = resp.content

        return ImageGenerationResponse(
            image_content=content,
            media_type=content_type,
            model="browserless",
            provider=self.provider_tag,
        )
