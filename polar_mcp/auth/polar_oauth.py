"""Polar OAuth2 client side: authorize URL, code exchange and user registration."""

import logging
from urllib.parse import urlencode

import httpx

from polar_mcp.auth.storage import AccessGrant
from polar_mcp.core.constants import (
    HTTP_CONFLICT,
    MEMBER_ID_PREFIX,
    POLAR_API_BASE,
    POLAR_AUTH_URL,
    POLAR_TOKEN_URL,
)
from polar_mcp.core.exceptions import TokenExchangeError

logger = logging.getLogger(__name__)


class PolarOAuth:
    """Talks to Polar's OAuth endpoints with the server's client credentials."""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        *,
        auth_url: str = POLAR_AUTH_URL,
        token_url: str = POLAR_TOKEN_URL,
        api_base: str = POLAR_API_BASE,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.client_id = client_id
        self.client_secret = client_secret
        self.auth_url = auth_url
        self.token_url = token_url
        self.api_base = api_base.rstrip("/")
        self._transport = transport

    def authorize_url(self, redirect_uri: str, state: str | None = None) -> str:
        """Polar authorization URL the user agent is redirected to."""
        params = {
            "response_type": "code",
            "client_id": self.client_id,
            "redirect_uri": redirect_uri,
        }
        if state is not None:
            params["state"] = state
        return f"{self.auth_url}?{urlencode(params)}"

    async def exchange_code(self, code: str, redirect_uri: str) -> AccessGrant:
        """
        Exchange an authorization code for a Polar access token.

        Args:
            code: Code received on the callback
            redirect_uri: The exact redirect URI sent to the authorize endpoint

        Returns:
            AccessGrant with the access token and Polar user id

        Raises:
            TokenExchangeError: If the token endpoint rejects the request
        """
        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                response = await client.post(
                    self.token_url,
                    auth=httpx.BasicAuth(self.client_id, self.client_secret),
                    headers={"Accept": "application/json"},
                    data={
                        "grant_type": "authorization_code",
                        "code": code,
                        "redirect_uri": redirect_uri,
                    },
                )
        except httpx.HTTPError as e:
            raise TokenExchangeError(None, str(e)) from e

        if not response.is_success:
            logger.warning("Polar token exchange failed with %s", response.status_code)
            raise TokenExchangeError(response.status_code, response.text)

        # ValueError covers both a non-JSON body and pydantic's ValidationError
        try:
            data = response.json()
            return AccessGrant(access_token=data["access_token"], user_id=data["x_user_id"])
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Polar token endpoint returned an unusable grant")
            raise TokenExchangeError(response.status_code, response.text) from e

    async def register_user(self, access_token: str, user_id: int) -> bool:
        """
        Register the user with AccessLink so data endpoints become available.

        Registration is idempotent housekeeping: 409 means the user is already
        registered and counts as success. Any other failure is logged and
        reported as False, never raised.
        """
        member_id = f"{MEMBER_ID_PREFIX}{user_id}"
        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                response = await client.post(
                    f"{self.api_base}/users",
                    headers={
                        "Authorization": f"Bearer {access_token}",
                        "Accept": "application/json",
                    },
                    json={"member-id": member_id},
                )
        except httpx.HTTPError as e:
            logger.warning("User registration request failed: %s", e)
            return False

        if response.status_code == HTTP_CONFLICT:
            logger.info("Polar user %s already registered", user_id)
            return True
        if not response.is_success:
            logger.warning(
                "User registration returned %s: %s", response.status_code, response.text
            )
            return False

        logger.info("Registered Polar user %s", user_id)
        return True
