"""
Session store configuration using Pydantic Settings.

Configuration values can be set via SESSION_* environment variables or .env file.
"""

import json
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

# Thirty days, the browser cookie lifetime unless overridden per handle
DEFAULT_MAX_AGE = 86400 * 30
# One day, how long sessions with browser session cookies (max_age 0) are kept
DEFAULT_BACKGROUND_MAX_AGE = 86400


class Settings(BaseSettings):
    """Session store settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_prefix="SESSION_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # DynamoDB table
    table_name: str = "sessions"
    read_capacity_units: int = 5
    write_capacity_units: int = 5
    aws_region: str = "us-east-1"
    # Set for DynamoDB Local or other compatible endpoints
    dynamodb_endpoint_url: Optional[str] = None

    # Lifetimes in seconds
    max_age: int = DEFAULT_MAX_AGE
    # Storage lifetime of sessions saved with max_age == 0 (browser session cookies)
    default_max_age: int = DEFAULT_BACKGROUND_MAX_AGE

    # Cookie defaults copied into every new handle
    cookie_path: str = "/"
    cookie_domain: Optional[str] = None
    cookie_secure: bool = False
    cookie_http_only: bool = True
    cookie_same_site: str = "lax"

    # Token signing secrets, newest first. JSON list or comma-separated.
    secret_keys: str = ""

    # Background expiration
    sweep_interval_seconds: float = 86400
    sweep_warmup_seconds: float = 10
    cleanup_workers: int = 4

    # Logging
    log_level: str = "INFO"
    # Write sessionstore records as JSON to stdout instead of the app's handlers
    log_json: bool = False

    @staticmethod
    def parse_secret_keys(value: str) -> List[str]:
        """Parse secret keys from a JSON list or a comma-separated string."""
        if not value:
            return []
        try:
            parsed = json.loads(value)
            if isinstance(parsed, list):
                return [str(key) for key in parsed if str(key).strip()]
        except json.JSONDecodeError:
            pass
        return [key.strip() for key in value.split(",") if key.strip()]

    @property
    def secret_key_list(self) -> List[str]:
        return self.parse_secret_keys(self.secret_keys)


# Global settings instance
settings = Settings()
