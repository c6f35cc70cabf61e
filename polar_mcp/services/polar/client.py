"""HTTP client for the Polar AccessLink REST API.

Every call is a single round trip: no retries, no caching and no shared
connection pool between requests. Failures are raised as ``UpstreamError``
carrying the status code and the verbatim response body.
"""

import base64
import logging
from collections.abc import Mapping
from typing import Any, Literal
from urllib.parse import urlsplit

import httpx

from polar_mcp.core.constants import POLAR_API_BASE
from polar_mcp.core.exceptions import UpstreamError, UpstreamErrorKind

logger = logging.getLogger(__name__)

ResponseFormat = Literal["json", "text", "base64"]

JSON_MEDIA_TYPE = "application/json"


class PolarClient:
    """Authenticated access to the AccessLink API."""

    def __init__(
        self,
        base_url: str = POLAR_API_BASE,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            base_url: AccessLink base URL including the version segment
            transport: Optional httpx transport (tests inject a MockTransport)
        """
        self.base_url = base_url.rstrip("/")
        self._transport = transport

    def http_client(self) -> httpx.AsyncClient:
        """Open a fresh AsyncClient bound to the configured transport."""
        return httpx.AsyncClient(transport=self._transport)

    def build_headers(
        self,
        access_token: str,
        extra: Mapping[str, str] | None = None,
    ) -> dict[str, str]:
        """Merge caller headers with the mandatory bearer and accept headers."""
        headers: dict[str, str] = {}
        caller_accept = None
        for name, value in (extra or {}).items():
            lowered = name.lower()
            if lowered == "authorization":
                logger.debug("Ignoring caller-supplied Authorization header")
                continue
            if lowered == "accept":
                caller_accept = value
                continue
            headers[name] = value

        if caller_accept and JSON_MEDIA_TYPE not in caller_accept:
            headers["Accept"] = f"{caller_accept}, {JSON_MEDIA_TYPE}"
        else:
            headers["Accept"] = caller_accept or JSON_MEDIA_TYPE
        headers["Authorization"] = f"Bearer {access_token}"
        return headers

    def path_from_uri(self, uri: str) -> str:
        """Turn an absolute resource URI returned by the API into a request path.

        AccessLink hands out links such as
        ``https://www.polaraccesslink.com/v3/users/1/physical-information-transactions/2/physical-informations/3``;
        the version prefix of the configured base URL is stripped so the path
        can be fed back into :meth:`request`.
        """
        path = urlsplit(uri).path if "://" in uri else uri
        base_path = urlsplit(self.base_url).path.rstrip("/")
        if base_path and path.startswith(base_path + "/"):
            path = path[len(base_path):]
        return path

    async def request(
        self,
        path: str,
        access_token: str,
        *,
        method: str = "GET",
        params: Mapping[str, str] | None = None,
        json: Any = None,
        headers: Mapping[str, str] | None = None,
        response_format: ResponseFormat = "json",
    ) -> Any:
        """
        Perform one authenticated request against the API.

        Args:
            path: Path below the base URL, starting with "/"
            access_token: Polar bearer token
            method: HTTP method
            params: Query parameters
            json: JSON body for POST/PUT calls
            headers: Additional headers; they extend but never replace the
                bearer and accept headers
            response_format: "json", "text" or "base64" (raw bytes)

        Returns:
            Decoded payload, or None when the response body is empty

        Raises:
            UpstreamError: On transport failure or any non-2xx status
        """
        url = f"{self.base_url}{path}"
        request_headers = self.build_headers(access_token, headers)

        logger.debug("%s %s params=%s", method, path, dict(params or {}))
        try:
            async with self.http_client() as client:
                response = await client.request(
                    method,
                    url,
                    params=params,
                    json=json,
                    headers=request_headers,
                )
        except httpx.HTTPError as e:
            logger.warning("Polar API transport error on %s %s: %s", method, path, e)
            raise UpstreamError(UpstreamErrorKind.TRANSPORT, None, str(e)) from e

        if not response.is_success:
            body = response.text or response.reason_phrase
            logger.warning(
                "Polar API returned %s for %s %s",
                response.status_code,
                method,
                path,
            )
            raise UpstreamError(
                UpstreamErrorKind.from_status(response.status_code),
                response.status_code,
                body,
            )

        if not response.content:
            return None

        if response_format == "base64":
            return base64.b64encode(response.content).decode("ascii")
        if response_format == "text":
            return response.text
        try:
            return response.json()
        except ValueError as e:
            logger.warning("Polar API returned invalid JSON for %s %s", method, path)
            raise UpstreamError(
                UpstreamErrorKind.HTTP,
                response.status_code,
                f"Invalid JSON response: {response.text[:200]}",
            ) from e
