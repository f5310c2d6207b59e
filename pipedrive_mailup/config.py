"""
Configuration and application state management.
"""

import os
from pathlib import Path
from typing import TYPE_CHECKING

from dotenv import load_dotenv
from fastapi import HTTPException

from .exceptions import ConfigurationError

if TYPE_CHECKING:
    import httpx

    from .message_cache import MessageDetailCache
    from .stats import StatsPipeline
    from .tokens import TokenManager, TokenStore

# Load environment variables
load_dotenv()


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """Parse boolean from environment variable."""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


class Config:
    """Application configuration from environment."""
    # Basic auth protecting the panel webhook (configured in the Pipedrive app)
    BASIC_AUTH_USER: str = os.getenv("BASIC_AUTH_USER", "")
    BASIC_AUTH_PASS: str = os.getenv("BASIC_AUTH_PASS", "")

    # Pipedrive OAuth app
    PIPEDRIVE_CLIENT_ID: str = os.getenv("PIPEDRIVE_CLIENT_ID", "")
    PIPEDRIVE_CLIENT_SECRET: str = os.getenv("PIPEDRIVE_CLIENT_SECRET", "")
    PIPEDRIVE_REDIRECT_URI: str = os.getenv(
        "PIPEDRIVE_REDIRECT_URI", "http://localhost:4000/auth/callback"
    )
    PIPEDRIVE_OAUTH_BASE_URL: str = os.getenv(
        "PIPEDRIVE_OAUTH_BASE_URL", "https://oauth.pipedrive.com"
    )
    # Callbacks without a state are accepted only when referred from this domain
    PIPEDRIVE_REFERRER_DOMAIN: str = os.getenv("PIPEDRIVE_REFERRER_DOMAIN", "pipedrive.com")

    # MailUp service account (password grant)
    MAILUP_CLIENT_ID: str = os.getenv("MAILUP_CLIENT_ID", "")
    MAILUP_CLIENT_SECRET: str = os.getenv("MAILUP_CLIENT_SECRET", "")
    MAILUP_USERNAME: str = os.getenv("MAILUP_USERNAME", "")
    MAILUP_PASSWORD: str = os.getenv("MAILUP_PASSWORD", "")
    MAILUP_TOKEN_URL: str = os.getenv(
        "MAILUP_TOKEN_URL", "https://services.mailup.com/Authorization/OAuth/Token"
    )
    MAILUP_API_BASE_URL: str = os.getenv(
        "MAILUP_API_BASE_URL", "https://services.mailup.com/API/v1.1/Rest"
    )
    MAILUP_REQUEST_DELAY: float = float(os.getenv("MAILUP_REQUEST_DELAY", "0.2"))  # seconds

    # Sessions (signed cookies)
    SESSION_SECRET: str = os.getenv("SESSION_SECRET", "")
    SESSION_MAX_AGE: int = int(os.getenv("SESSION_MAX_AGE", str(7 * 24 * 3600)))
    SESSION_SECURE: bool = _parse_bool(os.getenv("SESSION_SECURE"), default=True)
    AUTH_SUCCESS_URL: str = os.getenv("AUTH_SUCCESS_URL", "")

    # Optional key guarding the token issuance endpoint
    INTERNAL_API_KEY: str = os.getenv("INTERNAL_API_KEY", "")

    TOKEN_STORE_PATH: Path = Path(os.getenv("TOKEN_STORE_PATH", "./data/tokens.json"))
    WEBHOOK_BASE_PATH: str = os.getenv("WEBHOOK_BASE_PATH", "webhook/person/detail/")
    MAX_FIELD_LENGTH: int = int(os.getenv("MAX_FIELD_LENGTH", "40"))
    HTTP_TIMEOUT: float = float(os.getenv("HTTP_TIMEOUT", "30"))
    PORT: int = int(os.getenv("PORT", "4000"))
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    REQUIRED = (
        "BASIC_AUTH_USER",
        "BASIC_AUTH_PASS",
        "PIPEDRIVE_CLIENT_ID",
        "PIPEDRIVE_CLIENT_SECRET",
        "SESSION_SECRET",
        "MAILUP_CLIENT_ID",
        "MAILUP_CLIENT_SECRET",
        "MAILUP_USERNAME",
        "MAILUP_PASSWORD",
    )

    def missing(self) -> list[str]:
        """Names of required settings that are empty."""
        return [name for name in self.REQUIRED if not getattr(self, name)]

    def validate(self) -> None:
        """Raise ConfigurationError if any required secret is missing."""
        missing = self.missing()
        if missing:
            raise ConfigurationError(f"Missing required settings: {', '.join(missing)}")


config = Config()


class AppState:
    """Shared application state."""
    http: "httpx.AsyncClient | None" = None
    token_store: "TokenStore | None" = None
    token_manager: "TokenManager | None" = None
    message_cache: "MessageDetailCache | None" = None
    pipeline: "StatsPipeline | None" = None


state = AppState()


def get_token_manager() -> "TokenManager":
    """Dependency to get the token manager."""
    if not state.token_manager:
        raise HTTPException(status_code=500, detail="Token manager not initialized")
    return state.token_manager


def get_pipeline() -> "StatsPipeline":
    """Dependency to get the stats pipeline."""
    if not state.pipeline:
        raise HTTPException(status_code=500, detail="Stats pipeline not initialized")
    return state.pipeline
