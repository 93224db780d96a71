"""Configuration management"""

from origin_guard.services.guard import GuardConfig, build_config
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):  # type: ignore[misc]
    """Cross-origin protection settings"""

    model_config = SettingsConfigDict(
        env_file=".env", env_prefix="CROSS_ORIGIN_", extra="ignore"
    )

    # Comma-separated list of origins allowed to make cross-origin requests,
    # e.g. "https://sso.example.com,https://partner.example.com:8443"
    trusted_origins: str = ""

    # "forbidden" answers 403, "exception" raises InvalidCrossOriginRequestError
    rejection_mode: str = "forbidden"

    # Comma-separated request paths that skip the check (webhooks, SSO callbacks)
    exempt_paths: str = ""


def split_list(value: str) -> list[str]:
    """Split a comma-separated setting, dropping blanks"""
    return [item.strip() for item in value.split(",") if item.strip()]


def build_config_from_settings(settings: Settings) -> GuardConfig:
    """Build the guard configuration from settings.

    Args:
        settings: Loaded settings

    Returns:
        Validated GuardConfig

    Raises:
        ConfigError: If a trusted origin or the rejection mode is invalid
    """
    return build_config(
        trusted_origins=split_list(settings.trusted_origins),
        rejection_mode=settings.rejection_mode,
    )


settings = Settings()
