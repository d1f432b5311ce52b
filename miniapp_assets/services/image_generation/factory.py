"""
Factory for creating generation backends based on configuration.
"""
import logging

from miniapp_assets.services.image_generation.base import ImageGenerationProvider
from miniapp_assets.services.image_generation.providers.browserless_screenshot import (
    BrowserlessScreenshotProvider,
)
from miniapp_assets.services.image_generation.providers.gemini_image import GeminiImageProvider
from miniapp_assets.services.image_generation.providers.together_flux import TogetherFluxProvider

logger = logging.getLogger(__name__)


class ImageProviderFactory:
    """Factory for creating generation backends."""

    PROVIDERS: dict[str, type[ImageGenerationProvider]] = {
        "flux": TogetherFluxProvider,
        "gemini": GeminiImageProvider,
        "screenshot": BrowserlessScreenshotProvider,
    }

    @classmethod
    def create(cls, provider_name: str, config: dict) -> ImageGenerationProvider:
        """
        Create provider instance by name.

        Args:
            provider_name: flux, gemini or screenshot
            config: Provider-specific configuration dict

        Raises:
            ValueError: If provider name is unknown
        """
        provider_class = cls.PROVIDERS.get(provider_name.strip().lower())

        if not provider_class:
            available = ", ".join(cls.PROVIDERS.keys())
            raise ValueError(
                f"Unknown provider: {provider_name}. "
                f"Available providers: {available}"
            )

        logger.info("Creating generation backend: %s", provider_name, extra={"backend": provider_name})
        provider = provider_class(config)

        if not provider.is_available():
            logger.warning("Backend %s created but not fully configured", provider_name, extra={"backend": provider_name})

        return provider

    @classmethod
    def config_from_settings(cls, provider_name: str, settings) -> dict:
        if provider_name == "flux":
            return {
                "api_key": settings.together_api_key,
                "api_url": settings.together_api_url,
                "model": settings.together_image_model,
                "steps": settings.together_steps,
                "timeout": settings.together_timeout,
            }
        if provider_name == "gemini":
            return {
                "api_key": settings.gemini_api_key,
                "api_endpoint": settings.gemini_api_endpoint,
                "model": settings.gemini_image_model,
                "timeout": settings.gemini_timeout,
            }
        if provider_name == "screenshot":
            return {
                "api_url": settings.browserless_api_url,
                "token": settings.browserless_token,
                "timeout": settings.browserless_timeout,
                "wait_for_text": settings.screenshot_wait_for_text,
                "wait_timeout_ms": settings.screenshot_wait_timeout_ms,
            }
        raise ValueError(f"Provider {provider_name} not supported in settings")

    @classmethod
    def create_from_settings(cls, provider_name: str, settings) -> ImageGenerationProvider:
        """Create a backend by name with its config taken from application settings."""
        name = provider_name.strip().lower()
        return cls.create(name, cls.config_from_settings(name, settings))

    @classmethod
    def get_available_providers(cls) -> list[str]:
        return list(cls.PROVIDERS.keys())
