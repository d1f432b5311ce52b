"""
Slot plans: which backend produces which asset, at what size, from which prompt or URL.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping

from miniapp_assets.services.image_generation.base import (
    BackendKind,
    Dimensions,
    GenerationRequest,
    Slot,
)

DEFAULT_APP_NAME = "Mini App"

# Fixed declared order of a run
SLOT_ORDER = (Slot.ICON, Slot.EMBED, Slot.SPLASH)

BACKEND_KINDS = {
    "flux": BackendKind.TEXT_TO_IMAGE,
    "gemini": BackendKind.MULTIMODAL_IMAGE,
    "screenshot": BackendKind.SCREENSHOT,
}


def icon_prompt(app_name: str | None) -> str:
    name = (app_name or "").strip() or DEFAULT_APP_NAME
    return (
        f'Create a clean, minimalist square app icon for "{name}". The icon should be:\n'
        "- Modern and professional design\n"
        "- 1:1 aspect ratio (square format)\n"
        "- High contrast colors that work well at small sizes\n"
        "- Simple, geometric shapes or clean typography\n"
        "- No complex details that become unclear when scaled down\n"
        "- Colors should NOT be primarily purple - prefer blue, teal, green, or neutral colors\n"
        "- If text is included, make it bold and highly readable"
    )


def embed_prompt(app_name: str | None) -> str:
    name = (app_name or "").strip() or DEFAULT_APP_NAME
    return (
        f'Create a wide 3:2 social preview image for the app "{name}". '
        "Bold centered title, clean modern background, high contrast, "
        "readable in a small social feed card."
    )


def splash_prompt(app_name: str | None) -> str:
    name = (app_name or "").strip() or DEFAULT_APP_NAME
    return (
        f'Create a vertical splash screen for the mobile app "{name}". '
        "Centered logo mark with the app name below it, calm solid background, "
        "minimal design with generous margins."
    )


PROMPT_BUILDERS = {
    Slot.ICON: icon_prompt,
    Slot.EMBED: embed_prompt,
    Slot.SPLASH: splash_prompt,
}


@dataclass(frozen=True)
class SlotPlan:
    slot: Slot
    backend: str  # flux, gemini, screenshot
    dimensions: Dimensions
    viewport: Dimensions
    prompt_override: str = ""


def build_request(plan: SlotPlan, app_name: str, app_url: str) -> GenerationRequest:
    kind = BACKEND_KINDS.get(plan.backend)
    if kind is None:
        raise ValueError(f"Unknown backend {plan.backend!r} for slot {plan.slot.value}")
    if kind is BackendKind.SCREENSHOT:
        if not app_url.strip():
            raise ValueError(f"Slot {plan.slot.value} uses screenshots but no app domain is configured")
        return GenerationRequest(
            slot=plan.slot,
            backend_kind=kind,
            prompt_or_target=app_url,
            dimensions=plan.viewport,
        )
    prompt = plan.prompt_override.strip() or PROMPT_BUILDERS[plan.slot](app_name)
    return GenerationRequest(
        slot=plan.slot,
        backend_kind=kind,
        prompt_or_target=prompt,
        dimensions=plan.dimensions,
    )


def build_requests(
    plans: Mapping[Slot, SlotPlan],
    app_name: str,
    app_url: str,
) -> list[GenerationRequest]:
    """Requests in the declared slot order; slots without a plan are skipped."""
    return [build_request(plans[slot], app_name, app_url) for slot in SLOT_ORDER if slot in plans]


def plans_from_settings(settings) -> dict[Slot, SlotPlan]:
    return {
        Slot.ICON: SlotPlan(
            slot=Slot.ICON,
            backend=settings.icon_backend,
            dimensions=Dimensions(settings.icon_width, settings.icon_height),
            viewport=Dimensions(settings.icon_width, settings.icon_height),
            prompt_override=settings.icon_prompt,
        ),
        Slot.EMBED: SlotPlan(
            slot=Slot.EMBED,
            backend=settings.embed_backend,
            dimensions=Dimensions(settings.embed_width, settings.embed_height),
            viewport=Dimensions(settings.embed_viewport_width, settings.embed_viewport_height),
        ),
        Slot.SPLASH: SlotPlan(
            slot=Slot.SPLASH,
            backend=settings.splash_backend,
            dimensions=Dimensions(settings.splash_width, settings.splash_height),
            viewport=Dimensions(settings.splash_viewport_width, settings.splash_viewport_height),
        ),
    }
