"""
Async client for the Airtable Web API.

Covers the calls the form builder needs: the current user, base and
table metadata (the schema source), record creation for submissions,
and webhook registration for published forms.
"""

import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.airtable.com/v0"


class AirtableError(Exception):
    """Raised when an Airtable API call fails."""

    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        self.message = message
        super().__init__(f"Airtable error {status_code}: {message}")


def _build_safe_curl(request: httpx.Request) -> str:
    """Build a debug curl command with the bearer token redacted."""
    curl = f"curl -X {request.method} '{request.url}'"
    for key, value in request.headers.items():
        header_value = value
        if key.lower() == "authorization":
            header_value = "[REDACTED]"
        curl += f" -H '{key}: {header_value}'"

    if request.content:
        body = request.content.decode(errors="ignore")
        max_body_chars = 2000
        if len(body) > max_body_chars:
            body = body[:max_body_chars] + "... [TRUNCATED]"
        curl += f" -d '{body}'"
    return curl


async def _log_request(request: httpx.Request) -> None:
    logger.debug("Airtable request: %s", _build_safe_curl(request))


def _error_message(response: httpx.Response) -> str:
    """Pull the human-readable message out of an Airtable error body."""
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase

    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        return str(error.get("message") or error.get("type") or error)
    if error:
        return str(error)
    return response.reason_phrase


class AirtableClient:
    """Thin wrapper over the Airtable REST API for one access token.

    Args:
        access_token: OAuth access token of the acting user.
        base_url: API root, without trailing slash.
        timeout: Per-request timeout in seconds.
        transport: Optional httpx transport (used by tests).
        log_requests: Log each request as a curl command (token redacted).
    """

    def __init__(
        self,
        access_token: str,
        base_url: str = DEFAULT_API_URL,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
        log_requests: bool = False,
    ):
        self._access_token = access_token
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport
        self._event_hooks = {"request": [_log_request]} if log_requests else {}

    async def _request(self, method: str, path: str, **kwargs) -> dict[str, Any]:
        async with httpx.AsyncClient(
            base_url=self._base_url,
            headers={"Authorization": f"Bearer {self._access_token}"},
            timeout=self._timeout,
            transport=self._transport,
            event_hooks=self._event_hooks,
        ) as client:
            try:
                response = await client.request(method, path, **kwargs)
            except httpx.HTTPError as e:
                logger.error("Airtable %s %s failed: %s", method, path, e)
                raise AirtableError(503, f"Could not reach Airtable: {e}") from e

        if response.status_code >= 400:
            message = _error_message(response)
            logger.warning(
                "Airtable %s %s returned %d: %s", method, path, response.status_code, message
            )
            raise AirtableError(response.status_code, message)

        try:
            return response.json()
        except ValueError as e:
            raise AirtableError(response.status_code, "Airtable returned invalid JSON") from e

    # -----------------------------------------------------------------
    # Metadata
    # -----------------------------------------------------------------

    async def whoami(self) -> dict[str, Any]:
        """Return the token owner's `id` and (with the email scope) `email`."""
        return await self._request("GET", "/meta/whoami")

    async def list_bases(self) -> list[dict[str, Any]]:
        """Return every base the token can see, following pagination."""
        bases: list[dict[str, Any]] = []
        params: dict[str, str] = {}
        while True:
            data = await self._request("GET", "/meta/bases", params=params)
            bases.extend(data.get("bases", []))
            offset = data.get("offset")
            if not offset:
                return bases
            params = {"offset": offset}

    async def list_tables(self, base_id: str) -> list[dict[str, Any]]:
        """Return the tables of a base, each with its raw field definitions."""
        data = await self._request("GET", f"/meta/bases/{base_id}/tables")
        return data.get("tables", [])

    # -----------------------------------------------------------------
    # Records and webhooks
    # -----------------------------------------------------------------

    async def create_record(self, base_id: str, table_id: str, fields: dict[str, Any]) -> str:
        """Create one record and return its ID."""
        data = await self._request("POST", f"/{base_id}/{table_id}", json={"fields": fields})
        return data["id"]

    async def create_webhook(self, base_id: str, notification_url: str) -> str:
        """Register a table-data webhook on a base and return its ID."""
        payload = {
            "notificationUrl": notification_url,
            "specification": {"options": {"filters": {"dataTypes": ["tableData"]}}},
        }
        data = await self._request("POST", f"/bases/{base_id}/webhooks", json=payload)
        return data["id"]
