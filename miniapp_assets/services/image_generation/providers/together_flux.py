"""
Together AI provider (FLUX text-to-image).
Uses the OpenAI-compatible images/generations endpoint with base64 responses.
"""
import base64
import binascii
import logging
import random

import httpx

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

DEFAULT_MODEL = "black-forest-labs/FLUX.1-schnell-Free"
DEFAULT_STEPS = 4  # schnell max


class TogetherFluxProvider(ImageGenerationProvider):
    """Together AI FLUX provider."""

    provider_tag = "flux"
    backend_kind = BackendKind.TEXT_TO_IMAGE

    def __init__(self, config: dict) -> None:
        super().__init__(config)
        self.api_key = (config.get("api_key") or "").strip()
        self.api_url = (config.get("api_url") or "https://api.together.xyz/v1").rstrip("/")
        self.model_name = (config.get("model") or DEFAULT_MODEL).strip()
        self.steps = int(config.get("steps", DEFAULT_STEPS))

    def is_available(self) -> bool:
        return bool(self.api_key)

    def generate(self, request: GenerationRequest) -> ImageGenerationResponse:
        if request.dimensions is None:
            raise ValueError("FLUX generation needs explicit dimensions")

        payload = {
            "model": self.model_name,
            "prompt": request.prompt_or_target,
            "width": request.dimensions.width,
            "height": request.dimensions.height,
            "steps": self.steps,
            "n": 1,
            "seed": random.randint(0, 999_999),
            "response_format": "b64_json",
        }
        # extra params (seed, steps, negative_prompt, ...) win over defaults
        payload.update(request.extra_params)

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        with self._client() as client:
            resp = client.post(f"{self.api_url}/images/generations", headers=headers, json=payload)
            if resp.is_error:
                detail = error_detail_from_response(resp)
                raise ImageGenerationError(
                    error_message_from_detail(detail, f"Together API returned {resp.status_code}"),
                    detail=detail,
                )
            result = resp.json()

        if not isinstance(result, dict):
            raise ImageGenerationError("Malformed response: expected a JSON object", detail={"response": result})
        data = result.get("data")
        if not data:
            raise ImageGenerationError("No image data received from API", detail={"response": result})
        if not isinstance(data, list) or not isinstance(data[0], dict):
            raise ImageGenerationError("Malformed response: unexpected data entries", detail={"response": result})
        image_b64 = data[0].get("b64_json")
        if not image_b64 or not isinstance(image_b64, str):
            raise ImageGenerationError("No base64 image data in response", detail={"response": result})

        try:
            content = base64.b64decode(image_b64, validate=True)
        except binascii.Error as e:
            raise ImageGenerationError(f"Invalid base64 image data: {e}") from e

        return ImageGenerationResponse(
            image_content=content,
            media_type="image/png",
            model=self.model_name,
            provider=self.provider_tag,
        )
