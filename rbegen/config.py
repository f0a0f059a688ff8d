"""
Process-level defaults from environment variables.

Usage:
    from rbegen.config import get_settings

    settings = get_settings()
    print(settings.log_level, settings.container_runtime)
"""

from functools import lru_cache
from typing import Optional
import os


class Settings:
    """Defaults loaded from environment variables (and a .env file via the CLI)."""

    def __init__(self) -> None:
        self.log_level: str = os.getenv("RBEGEN_LOG_LEVEL", "INFO")

        # "docker" or "podman"; unset means auto-detect.
        self.container_runtime: Optional[str] = os.getenv("RBEGEN_CONTAINER_RUNTIME")

        self.bazelisk_version: str = os.getenv("RBEGEN_BAZELISK_VERSION", "v1.7.4")
        self.bazelisk_base_url: str = os.getenv(
            "RBEGEN_BAZELISK_BASE_URL",
            "https://github.com/bazelbuild/bazelisk/releases/download",
        )
        self.download_timeout_seconds: float = float(
            os.getenv("RBEGEN_DOWNLOAD_TIMEOUT_SECONDS", "120")
        )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def reset_settings() -> None:
    """Clear settings cache. For testing only."""
    get_settings.cache_clear()
