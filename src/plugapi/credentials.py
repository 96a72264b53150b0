"""Credentials and token cache for the Plug API.

The username, password, bearer token and token expiration are each stored as a
separate entry in the OS keyring (macOS Keychain, Windows Credential Locker,
or Linux Secret Service), under the services ``PlugAPI_Username``,
``PlugAPI_Password``, ``PlugAPI_Token`` and ``PlugAPI_Token_Expiration`` and
the account ``global``.

Tokens are refreshed lazily: a cached token is returned as long as the current
time is before its expiration, otherwise the stored credentials are posted to
the authentication endpoint and the new token is cached.

Failures while producing a token are never raised. They are logged as a notice
and reported through :class:`TokenLookup`, whose ``token`` is then ``None``.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import keyring
from keyring.errors import KeyringError, PasswordDeleteError
from loguru import logger

from plugapi.config import DEFAULT_AUTH_URL
from plugapi.exceptions import PlugError
from plugapi.transport import PlugTransport

# Keyring service prefix and account for the global credential scope
KEYRING_SERVICE = "PlugAPI"
KEYRING_ACCOUNT = "global"

USERNAME_KEY = "Username"
PASSWORD_KEY = "Password"
TOKEN_KEY = "Token"
EXPIRATION_KEY = "Token_Expiration"

DEFAULT_VALIDITY_TIME = 3600

NO_VALID_CREDENTIALS = "No valid credentials found."


class CredentialsNotFoundError(PlugError):
    """Raised internally when no username/password pair is stored."""

    pass


@dataclass
class CredentialRecord:
    """Username and password used to obtain tokens."""

    username: str
    password: str

    def to_dict(self) -> dict[str, str]:
        """Convert to dictionary."""
        return {"username": self.username, "password": self.password}


@dataclass
class TokenRecord:
    """Cached bearer token.

    Attributes:
        token: The bearer token sent on query calls.
        expires_at: Unix timestamp after which the token is no longer used.
    """

    token: str
    expires_at: float

    def is_valid(self, now: float | None = None) -> bool:
        """Check if the token has not yet expired."""
        current = time.time() if now is None else now
        return current < self.expires_at

    def expires_in_seconds(self, now: float | None = None) -> int:
        """Return seconds until token expires."""
        current = time.time() if now is None else now
        return max(0, int(self.expires_at - current))

    @property
    def expiration(self) -> datetime:
        """Expiration as a timezone-aware local datetime."""
        return datetime.fromtimestamp(self.expires_at).astimezone()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary, with the expiration as a datetime."""
        return {"token": self.token, "expiration": self.expiration}


@dataclass(frozen=True)
class TokenLookup:
    """Outcome of a token lookup.

    Either ``token`` is set, or ``reason`` explains why no token could be
    produced. ``from_cache`` tells whether the keyring entry was reused.
    """

    token: str | None
    reason: str | None = None
    from_cache: bool = False

    @property
    def found(self) -> bool:
        return self.token is not None

    @classmethod
    def not_found(cls, reason: str) -> TokenLookup:
        return cls(token=None, reason=reason)


class KeyringStore:
    """Keyring entries for one credential scope.

    Each logical key is stored under the service ``f"{service}_{key}"`` and
    the configured account.

    Args:
        service: Prefix for the keyring service names.
        account: Keyring account (user name) the entries belong to.
    """

    def __init__(
        self,
        service: str = KEYRING_SERVICE,
        account: str = KEYRING_ACCOUNT,
    ) -> None:
        self._service = service
        self._account = account

    @property
    def account(self) -> str:
        return self._account

    def service_name(self, key: str) -> str:
        """Return the keyring service name for a logical key."""
        return f"{self._service}_{key}"

    def get(self, key: str) -> str | None:
        """Return the stored value, or None when there is no entry."""
        return keyring.get_password(self.service_name(key), self._account)

    def set(self, key: str, value: str) -> None:
        """Store a value, overwriting any previous one."""
        keyring.set_password(self.service_name(key), self._account, value)

    def delete(self, key: str) -> bool:
        """Remove an entry. Returns False when there was nothing to remove."""
        try:
            keyring.delete_password(self.service_name(key), self._account)
        except PasswordDeleteError:
            return False
        return True


class CredentialsManager:
    """Stores Plug credentials and hands out valid bearer tokens.

    Args:
        store: Keyring store for the credential scope. Defaults to the
            ``global`` account under the ``PlugAPI`` services.
        transport: Transport used to call the authentication endpoint. When
            omitted a short-lived transport is opened for each refresh.
        auth_url: Default authentication endpoint.
        validity_time: Default validity window, in seconds, for new tokens.
        clock: Returns the current Unix time. Replaceable for tests.

    Example:
        manager = CredentialsManager()
        manager.store_credentials("myusername", "mypassword")
        token = manager.get_valid_token()
    """

    def __init__(
        self,
        store: KeyringStore | None = None,
        transport: PlugTransport | None = None,
        auth_url: str = DEFAULT_AUTH_URL,
        validity_time: int = DEFAULT_VALIDITY_TIME,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store or KeyringStore()
        self._transport = transport
        self._auth_url = auth_url
        self._validity_time = validity_time
        self._clock = clock

    @property
    def store(self) -> KeyringStore:
        return self._store

    def store_credentials(self, username: str, password: str) -> bool:
        """Store the username and password in the keyring.

        Args:
            username: The Plug user name.
            password: The Plug password.

        Returns:
            True if both entries were written. A keyring failure is logged and
            reported as False.

        Raises:
            ValueError: If username or password is not a non-empty string.
        """
        if not isinstance(username, str) or not username:
            raise ValueError("Username must be a valid string.")
        if not isinstance(password, str) or not password:
            raise ValueError("Password must be a valid string.")

        try:
            self._store.set(USERNAME_KEY, username)
            self._store.set(PASSWORD_KEY, password)
        except KeyringError as e:
            logger.warning("Keyring not accessible. Credentials could not be securely stored.")
            logger.debug("Keyring error: {}", e)
            return False

        logger.info("Credentials successfully stored for account '{}'.", self._store.account)
        return True

    def list_credentials(self) -> dict[str, str]:
        """Return the stored username and password.

        Returns:
            ``{"username": ..., "password": ...}``, or an empty dict when
            nothing is stored or the keyring cannot be read.
        """
        try:
            return self._load_credentials().to_dict()
        except (KeyringError, CredentialsNotFoundError) as e:
            logger.warning("No credentials found for Plug API.")
            logger.debug("Credential lookup failed: {}", e)
            return {}

    def list_tokens(self) -> dict[str, Any]:
        """Return the cached token and its expiration.

        The token is listed whether or not it has expired.

        Returns:
            ``{"token": ..., "expiration": datetime}``, or an empty dict when
            no token is stored or the keyring cannot be read.
        """
        try:
            record = self._read_token_record()
        except (KeyringError, ValueError) as e:
            record = None
            logger.debug("Token lookup failed: {}", e)

        if record is None:
            logger.warning("No token found for Plug API.")
            return {}
        return record.to_dict()

    def delete_credentials(self) -> bool:
        """Remove the stored username and password.

        Returns:
            True if at least one entry was removed.
        """
        return self._delete(USERNAME_KEY, PASSWORD_KEY, what="credentials")

    def clear_token(self) -> bool:
        """Remove the cached token so the next lookup re-authenticates.

        Returns:
            True if at least one entry was removed.
        """
        return self._delete(TOKEN_KEY, EXPIRATION_KEY, what="token")

    def get_valid_token(
        self,
        validity_time: int | None = None,
        endpoint: str | None = None,
    ) -> str | None:
        """Return a valid bearer token, authenticating if necessary.

        Args:
            validity_time: Seconds a new token is trusted. Defaults to the
                manager's validity window (3600).
            endpoint: Authentication endpoint. Defaults to the manager's.

        Returns:
            The token, or None if no valid credentials were found or the
            authentication request failed. Never raises for those failures.
        """
        return self.lookup_token(validity_time, endpoint).token

    def lookup_token(
        self,
        validity_time: int | None = None,
        endpoint: str | None = None,
    ) -> TokenLookup:
        """Like :meth:`get_valid_token`, but reports why no token was produced.

        An invalid validity_time is reported like any other refresh failure.
        """
        validity = self._validity_time if validity_time is None else validity_time

        cached = self._load_cached_token()
        if cached is not None:
            logger.debug(
                "Using cached token (expires in {} seconds)",
                cached.expires_in_seconds(self._clock()),
            )
            return TokenLookup(token=cached.token, from_cache=True)

        try:
            if (
                isinstance(validity, bool)
                or not isinstance(validity, (int, float))
                or validity <= 0
            ):
                raise ValueError("validity_time must be a positive number of seconds.")
            record = self._refresh_token(validity, endpoint or self._auth_url)
        except (KeyringError, PlugError, ValueError) as e:
            logger.warning(NO_VALID_CREDENTIALS)
            logger.debug("Token refresh failed: {}", e)
            return TokenLookup.not_found(str(e) or NO_VALID_CREDENTIALS)

        return TokenLookup(token=record.token)

    def _refresh_token(self, validity_time: float, endpoint: str) -> TokenRecord:
        """Authenticate with the stored credentials and cache the new token."""
        credentials = self._load_credentials()

        if self._transport is not None:
            token = self._transport.authenticate(
                endpoint, credentials.username, credentials.password
            )
        else:
            with PlugTransport() as transport:
                token = transport.authenticate(
                    endpoint, credentials.username, credentials.password
                )

        record = TokenRecord(token=token, expires_at=self._clock() + validity_time)
        self._save_token(record)
        logger.info("New token obtained (expires in {} seconds)", int(validity_time))
        return record

    def _load_credentials(self) -> CredentialRecord:
        username = self._store.get(USERNAME_KEY)
        password = self._store.get(PASSWORD_KEY)
        if not username or not password:
            raise CredentialsNotFoundError(
                f"No credentials stored for account '{self._store.account}'"
            )
        return CredentialRecord(username=username, password=password)

    def _read_token_record(self) -> TokenRecord | None:
        """Read the token entries. Raises ValueError on a corrupt expiration."""
        token = self._store.get(TOKEN_KEY)
        expiration = self._store.get(EXPIRATION_KEY)
        if not token or not expiration:
            return None
        return TokenRecord(token=token, expires_at=float(expiration))

    def _load_cached_token(self) -> TokenRecord | None:
        """Load cached token from the keyring if it exists and is still valid."""
        try:
            record = self._read_token_record()
        except (KeyringError, ValueError) as e:
            logger.debug("Invalid cached token: {}", e)
            return None

        if record is None:
            return None
        if not record.is_valid(self._clock()):
            logger.debug("Cached token expired, need to re-authenticate")
            return None
        return record

    def _save_token(self, record: TokenRecord) -> None:
        self._store.set(TOKEN_KEY, record.token)
        self._store.set(EXPIRATION_KEY, repr(record.expires_at))

    def _delete(self, *keys: str, what: str) -> bool:
        removed = False
        try:
            for key in keys:
                removed = self._store.delete(key) or removed
        except KeyringError as e:
            logger.warning("Keyring not accessible. Stored {} could not be removed.", what)
            logger.debug("Keyring error: {}", e)
            return False

        if removed:
            logger.info("Stored {} removed for account '{}'.", what, self._store.account)
        return removed
