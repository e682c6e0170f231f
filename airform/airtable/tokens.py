"""
Access-token lookup with transparent refresh.
"""

import logging
from datetime import datetime, timedelta, timezone

from airform.airtable.oauth import OAuthClient, OAuthError
from airform.core.storage import User

logger = logging.getLogger(__name__)

# Refresh a little early so a token cannot expire mid-request
REFRESH_MARGIN_SECONDS = 60


class TokenProvider:
    """Returns a usable Airtable access token for a stored user.

    Args:
        repository: Store holding the users and their tokens.
        oauth: Client used to refresh expiring tokens.
    """

    def __init__(self, repository, oauth: OAuthClient):
        self._repository = repository
        self._oauth = oauth

    async def get_access_token(self, user: User) -> str:
        """Return the user's access token, refreshing it when about to expire.

        Raises:
            OAuthError: If the token expired and cannot be refreshed.
        """
        deadline = datetime.now(timezone.utc) + timedelta(seconds=REFRESH_MARGIN_SECONDS)
        if user.token_expires_at > deadline:
            return user.access_token

        if not user.refresh_token:
            raise OAuthError(401, "Access token expired and no refresh token is stored")

        logger.info("Refreshing Airtable token for user %s", user.id)
        tokens = await self._oauth.refresh(user.refresh_token)
        self._repository.update_tokens(
            user.id,
            tokens.access_token,
            tokens.refresh_token or user.refresh_token,
            tokens.expires_at,
        )
        return tokens.access_token
