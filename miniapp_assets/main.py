"""
Generate the mini app icon, embed and splash images and update farcaster.json.
Configuration comes from environment variables / .env (see miniapp_assets.core.config).

Run from the project root: miniapp-assets
or: python -m miniapp_assets.main
"""
import logging
import sys

from pydantic import ValidationError

from miniapp_assets.services.assets.models import RunResult
from miniapp_assets.services.assets.pipeline import AssetPipeline
from miniapp_assets.services.assets.service import AssetGenerationService
from miniapp_assets.services.assets.slots import BACKEND_KINDS, SlotPlan, plans_from_settings
from miniapp_assets.services.image_generation.base import Slot
from miniapp_assets.services.image_generation.factory import ImageProviderFactory
from miniapp_assets.services.manifest.service import ManifestSynchronizer
from miniapp_assets.storage.local import LocalArtifactStore

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_PARTIAL = 1
EXIT_CONFIG = 2


def validate_settings(settings, backends: set[str]) -> list[str]:
    """Problems that make a run pointless; empty when the settings are usable."""
    problems = []
    if settings.generation_inter_call_delay_seconds is None:
        problems.append(
            "GENERATION_INTER_CALL_DELAY_SECONDS is not set (seconds between backend calls; "
            "depends on your provider account's rate limit)"
        )
    if "flux" in backends and not settings.together_api_key:
        problems.append("TOGETHER_API_KEY is not set (https://api.together.xyz/settings/api-keys)")
    if "gemini" in backends and not settings.gemini_api_key:
        problems.append("GEMINI_API_KEY is not set (https://aistudio.google.com/apikey)")
    if "screenshot" in backends:
        if not settings.browserless_api_url:
            problems.append("BROWSERLESS_API_URL is not set")
        if not settings.app_domain:
            problems.append("APP_DOMAIN is not set (the page to screenshot)")
    return problems


def build_service(settings, plans: dict[Slot, SlotPlan]) -> AssetGenerationService:
    adapters = {
        BACKEND_KINDS[name]: ImageProviderFactory.create_from_settings(name, settings)
        for name in {plan.backend for plan in plans.values()}
    }
    pipeline = AssetPipeline(
        adapters=adapters,
        store=LocalArtifactStore(settings.images_dir),
        max_attempts=settings.max_attempts,
        default_delay=settings.generation_default_retry_delay_seconds,
        parallel=settings.generation_parallel,
        max_workers=settings.generation_max_workers,
        clear_scope=settings.clear_scope,
    )
    synchronizer = ManifestSynchronizer(
        section=settings.manifest_section,
        placeholder_domain=settings.placeholder_domain,
        new_domain=settings.app_domain or None,
    )
    return AssetGenerationService(
        pipeline=pipeline,
        synchronizer=synchronizer,
        manifest_path=settings.manifest_path,
        app_domain=settings.app_domain,
        images_url_path=settings.images_url_path,
        default_app_name=settings.default_app_name,
    )


def print_summary(result: RunResult, images_dir: str) -> None:
    print()
    print("=" * 60)
    for line in result.summary_lines():
        print(f"  {line}")
    print(f"  images: {images_dir}")
    print(f"  manifest updated: {'yes' if result.config_updated else 'no'}")
    print("=" * 60)


def main() -> int:
    try:
        from miniapp_assets.core.config import settings
        from miniapp_assets.core.logging import configure_logging
    except ValidationError as e:
        print(f"Invalid configuration:\n{e}", file=sys.stderr)
        return EXIT_CONFIG

    configure_logging()

    try:
        plans = plans_from_settings(settings)
        problems = validate_settings(settings, {plan.backend for plan in plans.values()})
        if problems:
            for problem in problems:
                logger.error("Configuration error: %s", problem)
            return EXIT_CONFIG
        service = build_service(settings, plans)
        requests = service.prepare_requests(plans)
    except ValueError as e:
        logger.error("Configuration error: %s", e)
        return EXIT_CONFIG

    result = service.run(requests, settings.generation_inter_call_delay_seconds)
    print_summary(result, settings.images_dir)
    return EXIT_OK if result.all_succeeded else EXIT_PARTIAL


if __name__ == "__main__":
    sys.exit(main())
