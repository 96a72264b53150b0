"""HTTP transport for the Plug API."""

from __future__ import annotations

import ssl
import time
from typing import Any

import certifi
import httpx
from loguru import logger

from plugapi.exceptions import (
    APIError,
    AuthenticationError,
    TransportError,
    UnexpectedContentTypeError,
)
from plugapi.logging import redact_authorization

SSL_CONTEXT = ssl.create_default_context(cafile=certifi.where())

JSON_CONTENT_TYPE = "application/json"
TEXT_CONTENT_TYPE = "text/plain"


def content_type(response: httpx.Response) -> str:
    """Return the response media type without parameters, lowercased."""
    header = response.headers.get("content-type", "")
    return header.split(";", 1)[0].strip().lower()


class PlugTransport:
    """Synchronous HTTP transport for the authentication and query endpoints.

    Args:
        timeout: Timeout in seconds for each request.
        transport: Optional httpx transport, used by tests to stub the API.
    """

    def __init__(
        self,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._client = httpx.Client(
            headers={"Content-Type": JSON_CONTENT_TYPE},
            verify=SSL_CONTEXT,
            timeout=timeout,
            transport=transport,
        )

    def __enter__(self) -> PlugTransport:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    def authenticate(self, endpoint: str, username: str, password: str) -> str:
        """POST credentials to the authentication endpoint.

        Args:
            endpoint: Authentication URL.
            username: Plug user name.
            password: Plug password.

        Returns:
            The bearer token issued by the API.

        Raises:
            TransportError: On network failures or error responses.
            UnexpectedContentTypeError: If the response is neither JSON nor
                plain text.
        """
        response = self._post(endpoint, {"UserName": username, "Password": password})

        media_type = content_type(response)
        if media_type == JSON_CONTENT_TYPE:
            data = self._decode_json(response)
            token = data.get("token") if isinstance(data, dict) else None
        elif media_type == TEXT_CONTENT_TYPE:
            token = response.text.strip()
        else:
            raise UnexpectedContentTypeError(media_type)

        if not isinstance(token, str) or not token:
            raise TransportError("Authentication response did not contain a token")
        return token

    def execute(
        self,
        endpoint: str,
        sql_query: str,
        token: str,
        verbosity: int = 0,
    ) -> Any:
        """POST a SQL query to the query endpoint.

        Args:
            endpoint: Query URL.
            sql_query: Fully interpolated SQL text.
            token: Bearer token.
            verbosity: 0 = silent, 1 = request line and status,
                2 = also headers and bodies.

        Returns:
            The decoded JSON response.

        Raises:
            AuthenticationError: If the API rejects the token.
            APIError: On other error responses.
            TransportError: On network failures.
            UnexpectedContentTypeError: If the response is not JSON.
        """
        response = self._post(
            endpoint,
            {"sqlQuery": sql_query},
            headers={"Authorization": f"Bearer {token}"},
            verbosity=verbosity,
        )

        media_type = content_type(response)
        if media_type != JSON_CONTENT_TYPE:
            raise UnexpectedContentTypeError(media_type)
        return self._decode_json(response)

    def _post(
        self,
        url: str,
        payload: dict[str, Any],
        headers: dict[str, str] | None = None,
        verbosity: int = 0,
    ) -> httpx.Response:
        try:
            request = self._client.build_request("POST", url, json=payload, headers=headers)
            if verbosity >= 1:
                logger.info("-> {} {}", request.method, request.url)
            if verbosity >= 2:
                logger.info("-> headers: {}", redact_authorization(dict(request.headers)))
                logger.info("-> body: {}", request.content.decode("utf-8", "replace"))

            started = time.perf_counter()
            response = self._client.send(request)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise TransportError(f"Failed to connect to {url}: {e}") from e

        if verbosity >= 1:
            logger.info(
                "<- {} {} ({:.3f}s)",
                response.status_code,
                response.reason_phrase,
                time.perf_counter() - started,
            )
        if verbosity >= 2:
            logger.info("<- headers: {}", dict(response.headers))
            logger.info("<- body: {}", response.text)

        self._check_response(response, url)
        return response

    @staticmethod
    def _check_response(response: httpx.Response, url: str) -> None:
        """Check HTTP response and raise appropriate exceptions.

        Raises:
            AuthenticationError: On 401/403 responses.
            APIError: On other error responses.
        """
        if response.is_success:
            return

        if response.status_code in (401, 403):
            raise AuthenticationError(
                f"Authentication failed for {url} (HTTP {response.status_code}). "
                "Check the stored credentials with list_credentials()."
            )

        # Try to extract error message from response
        try:
            error_data = response.json()
            message = (
                error_data.get("message", response.text)
                if isinstance(error_data, dict)
                else response.text
            )
        except ValueError:
            message = response.text

        raise APIError(response.status_code, message)

    @staticmethod
    def _decode_json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise TransportError(f"Invalid JSON in response: {e}") from e
