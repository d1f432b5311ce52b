"""Tests for slot plans, request building and settings wiring."""
import pytest

from miniapp_assets.core.config import Settings
from miniapp_assets.main import EXIT_CONFIG, build_service, main, validate_settings
from miniapp_assets.services.assets.slots import (
    SlotPlan,
    build_request,
    build_requests,
    icon_prompt,
    plans_from_settings,
)
from miniapp_assets.services.image_generation.base import BackendKind, Dimensions, Slot
from miniapp_assets.services.image_generation.providers.browserless_screenshot import BrowserlessScreenshotProvider
from miniapp_assets.services.image_generation.providers.together_flux import TogetherFluxProvider


def _settings(**overrides) -> Settings:
    values = {
        "app_domain": "app.dev",
        "together_api_key": "k",
        "browserless_api_url": "https://chrome.example.com",
        "generation_inter_call_delay_seconds": 5,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def test_build_requests_follows_declared_order():
    plans = plans_from_settings(_settings())
    shuffled = {Slot.SPLASH: plans[Slot.SPLASH], Slot.ICON: plans[Slot.ICON], Slot.EMBED: plans[Slot.EMBED]}
    requests = build_requests(shuffled, "Coin Flip", "app.dev")
    assert [r.slot for r in requests] == [Slot.ICON, Slot.EMBED, Slot.SPLASH]


def test_text_to_image_request_uses_prompt_and_dimensions():
    plan = SlotPlan(Slot.ICON, "flux", Dimensions(208, 208), Dimensions(208, 208))
    request = build_request(plan, "Coin Flip", "app.dev")
    assert request.backend_kind is BackendKind.TEXT_TO_IMAGE
    assert '"Coin Flip"' in request.prompt_or_target
    assert request.dimensions == Dimensions(208, 208)


def test_prompt_override_wins():
    plan = SlotPlan(Slot.ICON, "gemini", Dimensions(208, 208), Dimensions(208, 208), prompt_override="a red dot")
    request = build_request(plan, "Coin Flip", "app.dev")
    assert request.backend_kind is BackendKind.MULTIMODAL_IMAGE
    assert request.prompt_or_target == "a red dot"


def test_screenshot_request_uses_viewport_and_url():
    plan = SlotPlan(Slot.SPLASH, "screenshot", Dimensions(432, 704), Dimensions(424, 695))
    request = build_request(plan, "Coin Flip", "app.dev")
    assert request.prompt_or_target == "app.dev"
    assert request.dimensions == Dimensions(424, 695)


def test_screenshot_requires_domain():
    plan = SlotPlan(Slot.EMBED, "screenshot", Dimensions(768, 512), Dimensions(768, 512))
    with pytest.raises(ValueError, match="no app domain"):
        build_request(plan, "Coin Flip", "  ")


def test_unknown_backend():
    plan = SlotPlan(Slot.ICON, "dalle", Dimensions(208, 208), Dimensions(208, 208))
    with pytest.raises(ValueError, match="Unknown backend"):
        build_request(plan, "A", "app.dev")


def test_icon_prompt_default_name():
    assert '"Mini App"' in icon_prompt("   ")


def test_plans_from_settings_defaults():
    plans = plans_from_settings(_settings())
    assert plans[Slot.ICON].backend == "flux"
    assert plans[Slot.EMBED].viewport == Dimensions(768, 512)
    assert plans[Slot.SPLASH].dimensions == Dimensions(432, 704)
    assert plans[Slot.SPLASH].viewport == Dimensions(424, 695)


def test_settings_normalise_backend_and_reject_unknown():
    assert _settings(icon_backend=" Gemini ").icon_backend == "gemini"
    with pytest.raises(ValueError):
        _settings(embed_backend="paint")
    with pytest.raises(ValueError):
        _settings(clear_scope="everything")


def test_max_attempts_counts_first_try():
    assert _settings(generation_max_retries=3).max_attempts == 4
    assert _settings(generation_max_retries=0).max_attempts == 1


class TestValidateSettings:
    def test_valid(self):
        assert validate_settings(_settings(), {"flux", "screenshot"}) == []

    def test_inter_call_delay_required(self):
        problems = validate_settings(_settings(generation_inter_call_delay_seconds=None), {"flux"})
        assert any("GENERATION_INTER_CALL_DELAY_SECONDS" in p for p in problems)

    def test_missing_credentials_for_used_backends_only(self):
        settings = _settings(together_api_key="", gemini_api_key="", browserless_api_url="")
        assert validate_settings(settings, {"gemini"}) == ["GEMINI_API_KEY is not set (https://aistudio.google.com/apikey)"]
        problems = validate_settings(settings, {"flux", "screenshot"})
        assert len(problems) == 2


def test_build_service_wires_adapters_by_kind(tmp_path):
    settings = _settings(images_dir=str(tmp_path / "images"), clear_scope="provider", generation_max_retries=1)
    service = build_service(settings, plans_from_settings(settings))
    adapters = service.pipeline.adapters
    assert set(adapters) == {BackendKind.TEXT_TO_IMAGE, BackendKind.SCREENSHOT}
    assert isinstance(adapters[BackendKind.TEXT_TO_IMAGE], TogetherFluxProvider)
    assert isinstance(adapters[BackendKind.SCREENSHOT], BrowserlessScreenshotProvider)
    assert service.pipeline.max_attempts == 2
    assert service.pipeline.clear_scope == "provider"
    assert service.synchronizer.new_domain == "app.dev"


def test_main_exits_with_config_error_when_delay_unset(monkeypatch, restore_root_logger):
    import miniapp_assets.core.config as config

    monkeypatch.setattr(config, "settings", _settings(generation_inter_call_delay_seconds=None))
    assert main() == EXIT_CONFIG
