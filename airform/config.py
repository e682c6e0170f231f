"""
Runtime settings read from environment variables.

Values are loaded from a `.env` file when present. Missing Airtable
credentials do not stop the app from starting; the OAuth routes report
the misconfiguration when they are used.
"""

import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

load_dotenv()

AIRTABLE_SCOPES = (
    "data.records:read data.records:write schema.bases:read "
    "webhook:manage user.email:read"
)


def _is_truthy(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env(name: str, default: str = "") -> str:
    return os.getenv(name, default).strip()


@dataclass
class Settings:
    """Configuration for the app, the stores and the Airtable clients."""

    airtable_client_id: str = ""
    airtable_client_secret: str = ""
    airtable_redirect_uri: str = "http://localhost:8000/auth/callback"
    airtable_api_url: str = "https://api.airtable.com/v0"
    airtable_auth_url: str = "https://airtable.com/oauth2/v1"
    frontend_url: str = "http://localhost:3000/"
    public_base_url: str = ""
    cors_allowed_origins: list[str] = field(default_factory=lambda: ["http://localhost:3000"])
    database_path: str = ""
    enforce_visibility_on_submit: bool = False
    http_timeout_seconds: float = 15.0
    log_airtable_curl: bool = False

    @property
    def oauth_configured(self) -> bool:
        return bool(self.airtable_client_id and self.airtable_client_secret)

    @classmethod
    def from_env(cls) -> "Settings":
        origins = _env("CORS_ALLOWED_ORIGINS", "http://localhost:3000")
        return cls(
            airtable_client_id=_env("AIRTABLE_CLIENT_ID"),
            airtable_client_secret=_env("AIRTABLE_CLIENT_SECRET"),
            airtable_redirect_uri=_env(
                "AIRTABLE_REDIRECT_URI", "http://localhost:8000/auth/callback"
            ),
            airtable_api_url=_env("AIRTABLE_API_URL", "https://api.airtable.com/v0").rstrip("/"),
            airtable_auth_url=_env(
                "AIRTABLE_AUTH_URL", "https://airtable.com/oauth2/v1"
            ).rstrip("/"),
            frontend_url=_env("FRONTEND_URL", "http://localhost:3000/"),
            public_base_url=_env("PUBLIC_BASE_URL").rstrip("/"),
            cors_allowed_origins=[o.strip() for o in origins.split(",") if o.strip()],
            database_path=_env("DATABASE_PATH"),
            enforce_visibility_on_submit=_is_truthy(
                os.getenv("ENFORCE_VISIBILITY_ON_SUBMIT"), default=False
            ),
            http_timeout_seconds=float(_env("HTTP_TIMEOUT_SECONDS", "15")),
            log_airtable_curl=_is_truthy(os.getenv("LOG_AIRTABLE_CURL"), default=False),
        )
