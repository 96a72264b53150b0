"""Plug API client: credential management plus SQL query execution."""

from __future__ import annotations

import re
import time
from collections.abc import Callable
from typing import Any

import httpx
from loguru import logger
from pydantic import ValidationError

from plugapi.config import Settings, get_settings
from plugapi.credentials import (
    NO_VALID_CREDENTIALS,
    CredentialsManager,
    KeyringStore,
    TokenLookup,
)
from plugapi.exceptions import AuthenticationError, TransportError
from plugapi.sql import render_sql
from plugapi.table import Table
from plugapi.transport import PlugTransport

# Plain, dotted or bracket/double-quote delimited identifiers, e.g.
# Contratos_VIEW, dbo.Contratos_VIEW, [dbo].[Contratos VIEW]
_IDENTIFIER_PART = r'(?:[^\W\d]\w*|\[[^\[\]{}]+\]|"[^"{}]+")'
_TABLE_NAME_RE = re.compile(rf"{_IDENTIFIER_PART}(?:\.{_IDENTIFIER_PART}){{0,3}}")


def _check_verbosity(verbosity: int) -> None:
    if verbosity not in (0, 1, 2):
        raise ValueError("verbosity must be 0 (none), 1 (minimal) or 2 (detailed).")


class PlugClient:
    """Client for the Plug query API.

    Configuration precedence: constructor arguments, then ``PLUG_*``
    environment variables (see :class:`plugapi.config.Settings`), then the
    built-in defaults.

    Args:
        auth_url: Authentication endpoint.
        query_url: Query execution endpoint.
        validity_time: Seconds a freshly issued token is trusted.
        keyring_service: Prefix of the keyring service names.
        keyring_account: Keyring account holding the entries.
        timeout: HTTP timeout in seconds.
        settings: Settings to use instead of the cached environment settings.
        transport: httpx transport override, mainly for tests.
        clock: Returns the current Unix time, mainly for tests.

    Example:
        with PlugClient() as client:
            client.store_credentials("myusername", "mypassword")
            table = client.execute_query(
                "SELECT * FROM Contratos_VIEW WHERE Ano = {year}", year=2024
            )
    """

    def __init__(
        self,
        auth_url: str | None = None,
        query_url: str | None = None,
        validity_time: int | None = None,
        keyring_service: str | None = None,
        keyring_account: str | None = None,
        timeout: float | None = None,
        settings: Settings | None = None,
        transport: httpx.BaseTransport | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        settings = settings or get_settings()

        self._auth_url = auth_url if auth_url is not None else settings.auth_url
        self._query_url = query_url if query_url is not None else settings.query_url

        self._transport = PlugTransport(
            timeout=timeout if timeout is not None else settings.timeout,
            transport=transport,
        )
        self._credentials = CredentialsManager(
            store=KeyringStore(
                service=(
                    keyring_service if keyring_service is not None else settings.keyring_service
                ),
                account=(
                    keyring_account if keyring_account is not None else settings.keyring_account
                ),
            ),
            transport=self._transport,
            auth_url=self._auth_url,
            validity_time=(
                validity_time if validity_time is not None else settings.token_validity
            ),
            clock=clock,
        )

    def __enter__(self) -> PlugClient:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def close(self) -> None:
        """Close the underlying HTTP client."""
        self._transport.close()

    @property
    def credentials(self) -> CredentialsManager:
        """The credentials manager backing this client."""
        return self._credentials

    # Credentials

    def store_credentials(self, username: str, password: str) -> bool:
        """Store the username and password in the OS keyring."""
        return self._credentials.store_credentials(username, password)

    def list_credentials(self) -> dict[str, str]:
        """Return the stored username and password, or an empty dict."""
        return self._credentials.list_credentials()

    def list_tokens(self) -> dict[str, Any]:
        """Return the cached token and its expiration, or an empty dict."""
        return self._credentials.list_tokens()

    def delete_credentials(self) -> bool:
        """Remove the stored username and password."""
        return self._credentials.delete_credentials()

    def clear_token(self) -> bool:
        """Remove the cached token."""
        return self._credentials.clear_token()

    def get_valid_token(
        self,
        validity_time: int | None = None,
        endpoint: str | None = None,
    ) -> str | None:
        """Return a valid token, or None if none could be obtained."""
        return self._credentials.get_valid_token(validity_time, endpoint)

    def lookup_token(
        self,
        validity_time: int | None = None,
        endpoint: str | None = None,
    ) -> TokenLookup:
        """Return a valid token together with the reason when there is none."""
        return self._credentials.lookup_token(validity_time, endpoint)

    # Queries

    def execute_query(
        self,
        sql_template: str,
        endpoint: str | None = None,
        verbosity: int = 0,
        **values: Any,
    ) -> Table:
        """Execute a SQL query on the Plug database.

        Named values are interpolated into ``sql_template`` as quoted SQL
        literals (see :func:`plugapi.sql.render_sql`).

        Args:
            sql_template: SQL text with ``{name}`` placeholders.
            endpoint: Query endpoint. Defaults to the configured query URL.
            verbosity: 0 = none, 1 = minimal, 2 = detailed request logging.
            **values: Values for the placeholders.

        Returns:
            The query results.

        Raises:
            ValueError: If the template is empty or cannot be rendered.
            AuthenticationError: If no valid token is available or the API
                rejects it.
            UnexpectedContentTypeError: If the response is not JSON.
            TransportError: On other request failures.
        """
        if not isinstance(sql_template, str) or not sql_template:
            raise ValueError("SQL template must be a valid string.")
        _check_verbosity(verbosity)

        token = self._require_token()
        sql_query = render_sql(sql_template, **values)
        return self._run_query(sql_query, token, endpoint, verbosity)

    def download_table(
        self,
        base_name: str,
        endpoint: str | None = None,
        verbosity: int = 0,
    ) -> Table:
        """Download every row of a table or view.

        Runs ``SELECT * FROM <base_name>`` with the name inserted as written.
        The name must look like a SQL identifier, optionally schema-qualified
        or delimited with brackets or double quotes.

        Raises:
            ValueError: If base_name is empty or not an identifier.
        """
        if not isinstance(base_name, str) or not base_name:
            raise ValueError("Base name must be a valid string.")
        if not _TABLE_NAME_RE.fullmatch(base_name):
            raise ValueError(f"Base name is not a valid table name: {base_name!r}")
        _check_verbosity(verbosity)

        token = self._require_token()
        return self._run_query(f"SELECT * FROM {base_name}", token, endpoint, verbosity)

    def _require_token(self) -> str:
        lookup = self._credentials.lookup_token()
        if lookup.token is None:
            raise AuthenticationError(f"Failed to retrieve a valid token: {lookup.reason}")
        return lookup.token

    def _run_query(
        self,
        sql_query: str,
        token: str,
        endpoint: str | None,
        verbosity: int,
    ) -> Table:
        if verbosity >= 1:
            logger.info("Executing query: {}", sql_query)

        data = self._transport.execute(
            endpoint or self._query_url,
            sql_query,
            token,
            verbosity=verbosity,
        )
        try:
            table = Table.from_json(data)
        except ValueError as e:
            raise TransportError(f"Unexpected query response: {e}") from e

        if verbosity >= 1:
            logger.info("Query returned {} rows x {} columns", *table.shape)
        return table


def _absorbing_client(notice: str) -> PlugClient | None:
    """Build a client from the environment, or log ``notice`` and return None.

    Used by the lookups that never raise: an invalid ``PLUG_*`` variable is
    reported like a missing credential.
    """
    try:
        return PlugClient()
    except ValidationError as e:
        logger.warning(notice)
        logger.debug("Invalid Plug configuration: {}", e)
        return None


def store_credentials(username: str, password: str) -> bool:
    """Store the global Plug username and password in the OS keyring.

    Invalid ``PLUG_*`` environment variables raise
    :class:`pydantic.ValidationError`, as do :func:`execute_query` and
    :func:`download_table`.

    Example:
        store_credentials("myusername", "mypassword")
    """
    with PlugClient() as client:
        return client.store_credentials(username, password)


def get_valid_token(
    validity_time: int | None = None,
    endpoint: str | None = None,
) -> str | None:
    """Return a valid Plug token, re-authenticating when the cached one expired.

    Returns None, after logging "No valid credentials found.", when no token
    can be obtained.
    """
    client = _absorbing_client(NO_VALID_CREDENTIALS)
    if client is None:
        return None
    with client:
        return client.get_valid_token(validity_time, endpoint)


def list_credentials() -> dict[str, str]:
    """Return the stored username and password, or an empty dict."""
    client = _absorbing_client("No credentials found for Plug API.")
    if client is None:
        return {}
    with client:
        return client.list_credentials()


def list_tokens() -> dict[str, Any]:
    """Return the cached token and its expiration, or an empty dict."""
    client = _absorbing_client("No token found for Plug API.")
    if client is None:
        return {}
    with client:
        return client.list_tokens()


def execute_query(
    sql_template: str,
    endpoint: str | None = None,
    verbosity: int = 0,
    **values: Any,
) -> Table:
    """Execute a SQL query on the Plug database.

    Example:
        table = execute_query("SELECT TOP 1 * FROM Contratos_VIEW")
    """
    with PlugClient() as client:
        return client.execute_query(sql_template, endpoint, verbosity, **values)


def download_table(
    base_name: str,
    endpoint: str | None = None,
    verbosity: int = 0,
) -> Table:
    """Download all rows of ``base_name`` with ``SELECT * FROM base_name``.

    Example:
        table = download_table("Contratos_VIEW")
    """
    with PlugClient() as client:
        return client.download_table(base_name, endpoint, verbosity)
