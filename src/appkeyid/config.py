"""
SDK Configuration

Uses pydantic-settings for environment variable loading with validation.
The backend address, timeouts and object storage settings live here.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_REST_ADDRESS = "https://api.appkey.io"


class Settings(BaseSettings):
    """
    SDK settings loaded from environment variables.

    Environment variables can be set directly or via .env file.
    An empty ``rest_address`` means the backend is not configured and every
    backend call fails with ``ConfigurationError``.
    """

    model_config = SettingsConfigDict(
        env_prefix="APPKEYID_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==========================================================================
    # Backend
    # ==========================================================================
    rest_address: str = Field(
        default=DEFAULT_REST_ADDRESS, description="Base REST address of the AppKey backend"
    )

    request_timeout: float = Field(
        default=30.0, description="Timeout in seconds for backend REST calls"
    )

    # ==========================================================================
    # Object Storage
    # ==========================================================================
    upload_timeout: float = Field(
        default=300.0, description="Timeout in seconds for a single blob PUT"
    )

    storage_api_version: str = Field(
        default="2023-11-03", description="Value sent in the x-ms-version header"
    )

    upload_chunk_size: int = Field(
        default=64 * 1024,
        description="Bytes handed to the transport per chunk (progress granularity)",
        gt=0,
    )

    # ==========================================================================
    # Derivatives
    # ==========================================================================
    derivative_small_px: int = Field(default=300, description="Longest edge of small derivative")
    derivative_medium_px: int = Field(default=600, description="Longest edge of medium derivative")
    derivative_large_px: int = Field(default=900, description="Longest edge of large derivative")

    # ==========================================================================
    # Logging
    # ==========================================================================
    log_level: str = Field(
        default="INFO", description="Log level used by the CLI with --verbose"
    )

    @property
    def configured(self) -> bool:
        """Whether a backend address is available."""
        return bool(self.rest_address.strip())

    @property
    def base_url(self) -> str:
        """Backend address without trailing slash."""
        return self.rest_address.strip().rstrip("/")

    def derivative_sizes(self) -> dict[str, int]:
        """Target edge length per derivative, in upload order."""
        return {
            "small": self.derivative_small_px,
            "medium": self.derivative_medium_px,
            "large": self.derivative_large_px,
        }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def reset_settings() -> None:
    """Clear the cached settings (used by tests and ``configure``)."""
    get_settings.cache_clear()
