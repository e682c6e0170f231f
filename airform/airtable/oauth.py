"""
Airtable OAuth2 authorization-code flow with PKCE.

The login route stores a random code verifier in a short-lived cookie
and sends the user to Airtable with its S256 challenge. The callback
exchanges the returned code plus the verifier for a token set.
"""

import base64
import hashlib
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from urllib.parse import urlencode

import httpx

from airform.config import AIRTABLE_SCOPES, Settings

logger = logging.getLogger(__name__)

# Airtable access tokens last an hour; used when the response omits expires_in
DEFAULT_TOKEN_LIFETIME_SECONDS = 3600


class OAuthError(Exception):
    """Raised when Airtable rejects a token request."""

    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        self.message = message
        super().__init__(f"OAuth error {status_code}: {message}")


@dataclass
class TokenSet:
    access_token: str
    refresh_token: str | None
    expires_at: datetime


def _b64url(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def generate_code_verifier() -> str:
    """Return a fresh PKCE code verifier (43 base64url characters)."""
    return _b64url(secrets.token_bytes(32))


def code_challenge(verifier: str) -> str:
    """Return the S256 challenge for a code verifier."""
    return _b64url(hashlib.sha256(verifier.encode("ascii")).digest())


def generate_state() -> str:
    return secrets.token_urlsafe(16)


def build_authorize_url(settings: Settings, challenge: str, state: str) -> str:
    """Build the Airtable consent URL for the configured client."""
    params = {
        "client_id": settings.airtable_client_id,
        "redirect_uri": settings.airtable_redirect_uri,
        "response_type": "code",
        "scope": AIRTABLE_SCOPES,
        "state": state,
        "code_challenge": challenge,
        "code_challenge_method": "S256",
    }
    return f"{settings.airtable_auth_url}/authorize?{urlencode(params)}"


def _parse_token_response(data: dict) -> TokenSet:
    lifetime = data.get("expires_in") or DEFAULT_TOKEN_LIFETIME_SECONDS
    return TokenSet(
        access_token=data["access_token"],
        refresh_token=data.get("refresh_token"),
        expires_at=datetime.now(timezone.utc) + timedelta(seconds=int(lifetime)),
    )


class OAuthClient:
    """Token endpoint client using HTTP Basic client authentication.

    Args:
        settings: App settings with the Airtable client credentials.
        transport: Optional httpx transport (used by tests).
    """

    def __init__(self, settings: Settings, transport: httpx.AsyncBaseTransport | None = None):
        self._settings = settings
        self._transport = transport

    async def exchange_code(self, code: str, verifier: str) -> TokenSet:
        """Exchange an authorization code and its PKCE verifier for tokens."""
        return await self._token_request({
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self._settings.airtable_redirect_uri,
            "code_verifier": verifier,
        })

    async def refresh(self, refresh_token: str) -> TokenSet:
        """Trade a refresh token for a new token set."""
        return await self._token_request({
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
        })

    async def _token_request(self, form: dict[str, str]) -> TokenSet:
        url = f"{self._settings.airtable_auth_url}/token"
        async with httpx.AsyncClient(
            transport=self._transport,
            timeout=self._settings.http_timeout_seconds,
        ) as client:
            try:
                response = await client.post(
                    url,
                    data=form,
                    auth=(self._settings.airtable_client_id, self._settings.airtable_client_secret),
                )
            except httpx.HTTPError as e:
                logger.error("Token request (%s) failed: %s", form["grant_type"], e)
                raise OAuthError(503, f"Could not reach Airtable: {e}") from e

        if response.status_code >= 400:
            message = _error_description(response)
            logger.error("Token request (%s) failed: %s", form["grant_type"], message)
            raise OAuthError(response.status_code, message)

        try:
            return _parse_token_response(response.json())
        except (ValueError, KeyError) as e:
            raise OAuthError(response.status_code, f"Malformed token response: {e}") from e


def _error_description(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict):
        return str(body.get("error_description") or body.get("error") or body)
    return str(body)
