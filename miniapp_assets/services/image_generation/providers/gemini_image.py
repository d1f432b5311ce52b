"""
Gemini image provider (Google AI generateContent, multimodal image output).
Uses generativelanguage.googleapis.com with api_key.
200 OK with no inline image is never a silent success; it is raised with the
normalised Gemini detail so the classifier can see finish/block reasons.
"""
import base64
import binascii
import logging
from math import gcd
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

DEFAULT_MODEL = "gemini-2.5-flash-image-preview"


def build_gemini_error_detail(result: dict[str, Any]) -> dict[str, Any]:
    """
    Extract error-related fields from a raw Gemini response for logging and classification.
    Normalized keys: prompt_feedback, block_reason, finish_reason, finish_message.
    """
    detail: dict[str, Any] = {}
    if not result or not isinstance(result, dict):
        return detail
    prompt_feedback = result.get("promptFeedback") or {}
    if isinstance(prompt_feedback, dict) and prompt_feedback:
        detail["prompt_feedback"] = prompt_feedback
        if prompt_feedback.get("blockReason"):
            detail["block_reason"] = prompt_feedback.get("blockReason")
    candidates = result.get("candidates") or []
    if isinstance(candidates, list) and candidates and isinstance(candidates[0], dict):
        c0 = candidates[0]
        if "finishReason" in c0:
            detail["finish_reason"] = c0["finishReason"]
        if "finishMessage" in c0:
            detail["finish_message"] = c0["finishMessage"]
    return detail


def dimensions_to_aspect_ratio(width: int, height: int) -> str:
    """Convert 1024x1024 to '1:1', 768x512 to '3:2'."""
    d = gcd(width, height)
    return f"{width // d}:{height // d}"


class GeminiImageProvider(ImageGenerationProvider):
    """Gemini image generation via Google AI generateContent API."""

    provider_tag = "gemini"
    backend_kind = BackendKind.MULTIMODAL_IMAGE

    def __init__(self, config: dict) -> None:
        super().__init__(config)
        self.api_key = (config.get("api_key") or "").strip()
        endpoint = (config.get("api_endpoint") or "https://generativelanguage.googleapis.com").rstrip("/")
        self.base_url = f"{endpoint}/v1beta/models"
        self.model_name = (config.get("model") or DEFAULT_MODEL).strip()

    def is_available(self) -> bool:
        return bool(self.api_key)

    def generate(self, request: GenerationRequest) -> ImageGenerationResponse:
        generation_config: dict[str, Any] = {"responseModalities": ["IMAGE", "TEXT"]}
        if request.dimensions is not None:
            generation_config["imageConfig"] = {
                "aspectRatio": dimensions_to_aspect_ratio(
                    request.dimensions.width, request.dimensions.height
                ),
            }
        generation_config.update(request.extra_params)

        payload = {
            "contents": [{"role": "user", "parts": [{"text": request.prompt_or_target}]}],
            "generationConfig": generation_config,
        }
        url = f"{self.base_url}/{self.model_name}:generateContent"

        with self._client() as client:
            resp = client.post(url, params={"key": self.api_key}, json=payload)
            if resp.is_error:
                detail = error_detail_from_response(resp)
                raise ImageGenerationError(
                    error_message_from_detail(detail, f"Gemini API returned {resp.status_code}"),
                    detail=detail,
                )
            result = resp.json()

        if not isinstance(result, dict):
            raise ImageGenerationError("Malformed Gemini response: expected a JSON object", detail={"response": result})

        prompt_feedback = result.get("promptFeedback") or {}
        if isinstance(prompt_feedback, dict) and prompt_feedback.get("blockReason"):
            raise ImageGenerationError(
                f"Prompt blocked: {prompt_feedback['blockReason']}",
                detail=build_gemini_error_detail(result),
            )

        candidates = result.get("candidates") or []
        if not candidates:
            raise ImageGenerationError(
                "No candidates in Gemini response", detail=build_gemini_error_detail(result)
            )
        if not isinstance(candidates, list) or not isinstance(candidates[0], dict):
            raise ImageGenerationError("Malformed Gemini response: unexpected candidates", detail={"response": result})

        c0 = candidates[0]
        c0_content = c0.get("content") or {}
        parts = c0_content.get("parts") if isinstance(c0_content, dict) else None
        if not isinstance(parts, list):
            parts = []
        inline: dict[str, Any] | None = None
        for part in parts:
            if not isinstance(part, dict):
                continue
            data = part.get("inlineData") or part.get("inline_data")
            if isinstance(data, dict) and isinstance(data.get("data"), str):
                inline = data
                break
            if isinstance(part.get("text"), str) and part["text"]:
                logger.info("Gemini text response: %s", part["text"][:500], extra={"provider": self.provider_tag})

        if inline is None:
            finish_reason = c0.get("finishReason")
            message = "No image in Gemini response"
            if finish_reason and finish_reason != "STOP":
                message = c0.get("finishMessage") or f"Generation stopped: {finish_reason}"
            raise ImageGenerationError(message, detail=build_gemini_error_detail(result))

        try:
            content = base64.standard_b64decode(inline["data"])
        except binascii.Error as e:
            raise ImageGenerationError(f"Invalid base64 image data: {e}") from e

        return ImageGenerationResponse(
            image_content=content,
            media_type=inline.get("mimeType") or inline.get("mime_type") or "image/png",
            model=self.model_name,
            provider=self.provider_tag,
        )
