"""plugapi - Credentials and SQL queries for the Plug API.

Stores the Plug username and password in the OS keyring (macOS Keychain,
Windows Credential Locker, or Linux Secret Service), caches the bearer token
issued by the API until it expires, and runs SQL queries against the query
endpoint, returning the rows as a :class:`Table`.

Example:
    import plugapi

    plugapi.store_credentials("myusername", "mypassword")

    contracts = plugapi.execute_query(
        "SELECT * FROM Contratos_VIEW WHERE Ano = {year}", year=2024
    )
    everything = plugapi.download_table("Contratos_VIEW")
    df = everything.to_pandas()
"""

from plugapi.client import (
    PlugClient,
    download_table,
    execute_query,
    get_valid_token,
    list_credentials,
    list_tokens,
    store_credentials,
)
from plugapi.config import Settings, get_settings
from plugapi.credentials import (
    CredentialRecord,
    CredentialsManager,
    KeyringStore,
    TokenLookup,
    TokenRecord,
)
from plugapi.exceptions import (
    APIError,
    AuthenticationError,
    PlugError,
    QueryTemplateError,
    TransportError,
    UnexpectedContentTypeError,
)
from plugapi.logging import setup_logging
from plugapi.sql import quote_identifier, quote_literal, render_sql
from plugapi.table import Table

__version__ = "0.1.0"
__all__ = [
    # Public operations
    "store_credentials",
    "get_valid_token",
    "list_credentials",
    "list_tokens",
    "execute_query",
    "download_table",
    # Client
    "PlugClient",
    "CredentialsManager",
    "KeyringStore",
    "CredentialRecord",
    "TokenRecord",
    "TokenLookup",
    "Table",
    # SQL
    "render_sql",
    "quote_literal",
    "quote_identifier",
    # Configuration
    "Settings",
    "get_settings",
    "setup_logging",
    # Exceptions
    "PlugError",
    "TransportError",
    "AuthenticationError",
    "APIError",
    "UnexpectedContentTypeError",
    "QueryTemplateError",
]
