"""
Application Configuration - Pydantic Settings for type-safe config.

NO DICTIONARIES - All configuration is strongly typed.
FAIL FAST - Critical config is validated at startup.
"""

import sys

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from apple_receipts import __version__


class ConfigurationError(Exception):
    """Raised when critical configuration is missing or invalid."""

    pass


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # App Store verifyReceipt endpoints
    apple_verify_host: str = "buy.itunes.apple.com"
    apple_sandbox_host: str = "sandbox.itunes.apple.com"
    apple_verify_path: str = "/verifyReceipt"

    # Shared secret from App Store Connect - NO DEFAULT, sent with every request
    apple_shared_secret: str = ""

    # Transport
    apple_http_timeout: float = 30.0  # seconds

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"  # json or console

    # Observability - Metrics
    metrics_enabled: bool = True
    service_name: str = "apple-receipt-verifier"
    service_version: str = __version__

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @model_validator(mode="after")
    def validate_critical_config(self) -> "Settings":
        """
        FAIL FAST: Validate critical configuration at startup.

        Every request body carries the shared secret, so a missing secret
        would only surface later as a stream of 21004 replies.
        """
        errors: list[str] = []

        if not self.apple_shared_secret:
            errors.append("APPLE_SHARED_SECRET is required but empty or missing")

        for name, host in (
            ("APPLE_VERIFY_HOST", self.apple_verify_host),
            ("APPLE_SANDBOX_HOST", self.apple_sandbox_host),
        ):
            if not host:
                errors.append(f"{name} is required but empty")
            elif "://" in host:
                errors.append(f"{name} must be a bare host name, got: {host}")

        if not self.apple_verify_path.startswith("/"):
            errors.append(f"APPLE_VERIFY_PATH must start with '/', got: {self.apple_verify_path}")

        if self.log_format not in ("json", "console"):
            errors.append(f"LOG_FORMAT must be 'json' or 'console', got: {self.log_format}")

        if errors:
            error_msg = "\n".join(
                [
                    "",
                    "=" * 60,
                    "CRITICAL CONFIGURATION ERROR - APPLICATION CANNOT START",
                    "=" * 60,
                    *[f"  ✗ {e}" for e in errors],
                    "=" * 60,
                    "",
                ]
            )
            print(error_msg, file=sys.stderr)
            raise ConfigurationError(error_msg)

        return self


# Global settings instance - validates at import time
settings = Settings()


def get_settings() -> Settings:
    """Get application settings instance."""
    return settings
