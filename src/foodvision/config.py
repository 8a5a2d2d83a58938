"""Environment-based configuration for FoodVision."""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from FOODVISION_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="FOODVISION_",
        case_sensitive=False,
    )

    # Local presentation server
    host: str = "127.0.0.1"
    port: int = 8083

    # Inference service
    api_base_url: str = "https://indianfoodvision.onrender.com"
    predict_path: str = "/predict"

    # Sent as the Origin header on the cross-origin fallback attempt (None = omitted)
    origin: str | None = None

    # Seconds per request (None = wait indefinitely, as the hosted service expects)
    request_timeout: float | None = Field(default=None, gt=0)

    # Example assets
    assets_base_url: str = "http://127.0.0.1:8083/examples"
    examples_dir: str = "examples"

    # Warmup
    warmup_enabled: bool = True
    warmup_grace_seconds: float = Field(default=2.0, ge=0)

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    @property
    def predict_url(self) -> str:
        return f"{self.api_base_url.rstrip('/')}/{self.predict_path.lstrip('/')}"


def get_settings() -> Settings:
    """Create and return application settings."""
    return Settings()
