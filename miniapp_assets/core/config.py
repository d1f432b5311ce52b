"""
Application configuration.
All settings are loaded from environment variables (or .env).
Credentials have no meaningful defaults - generation backends stay unavailable until set.
"""
from pydantic import field_validator
from pydantic_settings import BaseSettings

BACKEND_NAMES = ("flux", "gemini", "screenshot")
CLEAR_SCOPES = ("all", "provider", "none")
LOG_FORMATS = ("text", "json")


class Settings(BaseSettings):
    """Settings for one asset generation run."""

    # ===========================================
    # MINI APP
    # ===========================================
    # Public domain of the mini app, e.g. my-app.vercel.app (scheme optional).
    app_domain: str = ""
    manifest_path: str = "public/.well-known/farcaster.json"
    manifest_section: str = "miniapp"
    # homeUrl is rewritten only while it still points at this placeholder host
    placeholder_domain: str = "your-domain.com"
    default_app_name: str = "Mini App"

    # ===========================================
    # CONTENT DIRECTORY
    # ===========================================
    images_dir: str = "public/images"
    images_url_path: str = "images"
    clear_scope: str = "all"  # all, provider, none

    # ===========================================
    # SLOT -> BACKEND
    # ===========================================
    icon_backend: str = "flux"  # flux, gemini, screenshot
    embed_backend: str = "screenshot"
    splash_backend: str = "screenshot"
    # Overrides the prompt built from the app name
    icon_prompt: str = ""

    icon_width: int = 208  # multiple of 16 for FLUX
    icon_height: int = 208
    embed_width: int = 768  # 3:2
    embed_height: int = 512
    splash_width: int = 432
    splash_height: int = 704
    # Screenshot viewports (browser pixels, not model constraints)
    embed_viewport_width: int = 768
    embed_viewport_height: int = 512
    splash_viewport_width: int = 424
    splash_viewport_height: int = 695

    # ===========================================
    # TOGETHER AI FLUX (backend: flux)
    # ===========================================
    together_api_key: str = ""
    together_api_url: str = "https://api.together.xyz/v1"
    together_image_model: str = "black-forest-labs/FLUX.1-schnell-Free"
    together_steps: int = 4
    together_timeout: float = 120.0

    # ===========================================
    # GOOGLE GEMINI (backend: gemini)
    # ===========================================
    gemini_api_key: str = ""  # https://aistudio.google.com/apikey
    gemini_api_endpoint: str = "https://generativelanguage.googleapis.com"
    gemini_image_model: str = "gemini-2.5-flash-image-preview"
    gemini_timeout: float = 180.0

    # ===========================================
    # BROWSERLESS (backend: screenshot)
    # ===========================================
    browserless_api_url: str = ""
    browserless_token: str = ""
    browserless_timeout: float = 60.0
    # Page text to wait for before capturing; empty = network idle only
    screenshot_wait_for_text: str = ""
    screenshot_wait_timeout_ms: int = 10000

    # ===========================================
    # RETRY / RATE LIMITS
    # ===========================================
    generation_max_retries: int = 3  # retries after the first attempt
    generation_default_retry_delay_seconds: int = 60
    # Provider-account specific; no safe default. Must be set explicitly.
    generation_inter_call_delay_seconds: float | None = None
    # Only when the slots' backends do not share a rate-limit budget
    generation_parallel: bool = False
    generation_max_workers: int = 2

    # ===========================================
    # LOGGING
    # ===========================================
    log_level: str = "INFO"
    log_format: str = "text"  # text (terminal), json
    # Always JSON, rotated
    log_file: str | None = None
    log_max_bytes: int = 10_000_000
    log_backup_count: int = 5

    @field_validator("icon_backend", "embed_backend", "splash_backend")
    @classmethod
    def validate_backend(cls, v: str) -> str:
        value = v.strip().lower()
        if value not in BACKEND_NAMES:
            raise ValueError(f"unknown backend {v!r}, expected one of {', '.join(BACKEND_NAMES)}")
        return value

    @field_validator("clear_scope")
    @classmethod
    def validate_clear_scope(cls, v: str) -> str:
        value = v.strip().lower()
        if value not in CLEAR_SCOPES:
            raise ValueError(f"unknown clear_scope {v!r}, expected one of {', '.join(CLEAR_SCOPES)}")
        return value

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        value = v.strip().lower()
        if value not in LOG_FORMATS:
            raise ValueError(f"unknown log_format {v!r}, expected one of {', '.join(LOG_FORMATS)}")
        return value

    @field_validator("generation_max_retries", "generation_max_workers")
    @classmethod
    def validate_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("must be >= 0")
        return v

    @property
    def max_attempts(self) -> int:
        """Total adapter invocations per slot (first try + retries)."""
        return self.generation_max_retries + 1

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"


settings = Settings()
