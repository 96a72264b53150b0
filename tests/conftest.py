"""Shared fixtures: in-memory keyring, stubbed Plug API and a fake clock."""

from __future__ import annotations

import json
from collections.abc import Iterator
from typing import Any

import httpx
import keyring
import pytest
from keyring.backend import KeyringBackend
from keyring.errors import KeyringError, PasswordDeleteError
from loguru import logger

from plugapi.client import PlugClient
from plugapi.config import Settings, get_settings
from plugapi.credentials import CredentialsManager, KeyringStore
from plugapi.transport import PlugTransport

AUTH_URL = "https://plug.example.com/MadrixApi/authenticate/"
QUERY_URL = "https://plug.example.com/MadrixApi/executeQuery"
START_TIME = 1_700_000_000.0


class MemoryKeyring(KeyringBackend):
    """Keyring backend that keeps entries in a dict."""

    priority = 1  # type: ignore[assignment]

    def __init__(self) -> None:
        super().__init__()
        self.entries: dict[tuple[str, str], str] = {}

    def get_password(self, service: str, username: str) -> str | None:
        return self.entries.get((service, username))

    def set_password(self, service: str, username: str, password: str) -> None:
        self.entries[(service, username)] = password

    def delete_password(self, service: str, username: str) -> None:
        try:
            del self.entries[(service, username)]
        except KeyError:
            raise PasswordDeleteError("Password not found") from None


class UnreachableKeyring(KeyringBackend):
    """Keyring backend that fails like a locked or missing secret service."""

    priority = 1  # type: ignore[assignment]

    def get_password(self, service: str, username: str) -> str | None:
        raise KeyringError("Secret service unavailable")

    def set_password(self, service: str, username: str, password: str) -> None:
        raise KeyringError("Secret service unavailable")

    def delete_password(self, service: str, username: str) -> None:
        raise KeyringError("Secret service unavailable")


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: float = START_TIME) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakePlugAPI:
    """Stub for the authentication and query endpoints.

    Each authentication call issues the next token from ``tokens``. Query calls
    return ``rows`` as JSON unless the response is overridden.
    """

    def __init__(self) -> None:
        self.tokens = ["token-1", "token-2", "token-3"]
        self.auth_requests: list[dict[str, Any]] = []
        self.query_requests: list[httpx.Request] = []
        self.auth_content_type = "application/json"
        self.auth_status = 200
        self.rows: Any = [
            {"Id": 1, "Nome": "Contrato A"},
            {"Id": 2, "Nome": "Contrato B"},
        ]
        self.query_status = 200
        self.query_content_type = "application/json"
        self.query_body: bytes | None = None
        self.fail_with: Exception | None = None

    @property
    def auth_calls(self) -> int:
        return len(self.auth_requests)

    @property
    def queries(self) -> list[str]:
        return [json.loads(r.content)["sqlQuery"] for r in self.query_requests]

    def handle(self, request: httpx.Request) -> httpx.Response:
        if self.fail_with is not None:
            raise self.fail_with
        if request.url.path == "/MadrixApi/authenticate/":
            return self._authenticate(request)
        if request.url.path == "/MadrixApi/executeQuery":
            return self._execute(request)
        return httpx.Response(404, json={"message": "Not found"})

    def _authenticate(self, request: httpx.Request) -> httpx.Response:
        self.auth_requests.append(json.loads(request.content))
        if self.auth_status != 200:
            return httpx.Response(self.auth_status, json={"message": "Invalid credentials"})

        token = self.tokens[min(self.auth_calls, len(self.tokens)) - 1]
        if self.auth_content_type == "application/json":
            body = json.dumps({"token": token, "user": "user"}).encode()
        else:
            body = token.encode()
        return httpx.Response(
            200, content=body, headers={"content-type": self.auth_content_type}
        )

    def _execute(self, request: httpx.Request) -> httpx.Response:
        self.query_requests.append(request)
        if self.query_body is not None:
            return httpx.Response(
                self.query_status,
                content=self.query_body,
                headers={"content-type": self.query_content_type},
            )
        return httpx.Response(
            self.query_status,
            content=json.dumps(self.rows).encode(),
            headers={"content-type": self.query_content_type},
        )


@pytest.fixture
def memory_keyring() -> Iterator[MemoryKeyring]:
    """Install an in-memory keyring backend for the duration of a test."""
    previous = keyring.get_keyring()
    backend = MemoryKeyring()
    keyring.set_keyring(backend)
    yield backend
    keyring.set_keyring(previous)


@pytest.fixture
def unreachable_keyring() -> Iterator[UnreachableKeyring]:
    """Install a keyring backend whose every call fails."""
    previous = keyring.get_keyring()
    backend = UnreachableKeyring()
    keyring.set_keyring(backend)
    yield backend
    keyring.set_keyring(previous)


@pytest.fixture
def log_messages() -> Iterator[list[str]]:
    """Collect loguru messages emitted during a test."""
    messages: list[str] = []
    handler_id = logger.add(lambda m: messages.append(m.record["message"]), level="DEBUG")
    yield messages
    logger.remove(handler_id)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def api() -> FakePlugAPI:
    return FakePlugAPI()


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None, auth_url=AUTH_URL, query_url=QUERY_URL)


@pytest.fixture
def transport(api: FakePlugAPI) -> Iterator[PlugTransport]:
    with PlugTransport(transport=httpx.MockTransport(api.handle)) as plug_transport:
        yield plug_transport


@pytest.fixture
def manager(
    memory_keyring: MemoryKeyring,
    transport: PlugTransport,
    clock: FakeClock,
) -> CredentialsManager:
    return CredentialsManager(
        store=KeyringStore(),
        transport=transport,
        auth_url=AUTH_URL,
        clock=clock,
    )


@pytest.fixture
def client(
    memory_keyring: MemoryKeyring,
    api: FakePlugAPI,
    settings: Settings,
    clock: FakeClock,
) -> Iterator[PlugClient]:
    with PlugClient(
        settings=settings,
        transport=httpx.MockTransport(api.handle),
        clock=clock,
    ) as plug_client:
        yield plug_client


@pytest.fixture
def clean_settings_cache() -> Iterator[None]:
    """Reset the cached environment settings around a test."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
