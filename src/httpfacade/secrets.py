"""Secrets providers.

A provider resolves keys such as ``CONNECTION-STRING`` asynchronously and
can answer synchronously from its cache once a value has been read.
Values are never logged.
"""

import inspect
import os
import re
from collections.abc import Iterable, Mapping
from enum import Enum
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

import structlog
from dotenv import dotenv_values

from httpfacade.errors import SecretNotFoundError
from httpfacade.settings import AppSettings
from httpfacade.shape import get_field, is_blank


logger = structlog.get_logger()

DEFAULT_SECRETS_SOURCE = ".env"
KEY_VAULT_URL_TEMPLATE = "https://{name}.vault.azure.net"

_VALID_KEY = re.compile(r"^[A-Za-z0-9_-]+$")


class SecretKey(str, Enum):
    """Well-known secret keys."""

    CONNECTION_STRING = "CONNECTION-STRING"
    DATABASE_TYPE = "DATABASE-TYPE"
    DATABASE_NAME = "DATABASE-NAME"
    PROTOCOL = "PROTOCOL"
    HOST = "HOST"
    PORT = "PORT"
    AUTH_DATABASE = "AUTH-DATABASE"
    DEFAULT_DATABASE = "DEFAULT-DATABASE"
    USE_SSL = "USE-SSL"
    LOGIN_NAME = "LOGIN-NAME"
    LOGIN_PWD = "LOGIN-PWD"
    ADMIN_LOGIN_NAME = "ADMIN_LOGIN-NAME"
    ADMIN_LOGIN_PWD = "ADMIN_LOGIN-PWD"
    API_KEY = "API-KEY"
    ACCESS_TOKEN = "ACCESS-TOKEN"
    CLIENT_ID = "CLIENT-ID"
    CLIENT_SECRET = "CLIENT-SECRET"
    CORS_ALLOWED_ORIGIN = "CORS_ALLOWED-ORIGIN"
    KEY_VAULT_NAME = "KV-NAME"


@runtime_checkable
class SecretsProvider(Protocol):
    """Anything that can look up secrets by key."""

    async def get(self, key: str) -> str | None:
        """Resolve a secret, or None when no store holds it."""
        ...

    def get_cached_secret(self, key: str) -> str | None:
        """Return a previously resolved secret without suspending."""
        ...


@runtime_checkable
class SecretClientLike(Protocol):
    """Key vault client; ``get_secret`` may be sync or async."""

    def get_secret(self, name: str) -> Any: ...


def create_key(prefix: str, key: str) -> str:
    """Qualify ``key`` with ``prefix``.

    The key is upper-cased; a leading copy of the prefix and leading
    ``-``/``_`` separators are removed before joining with ``-``.

    Args:
        prefix: System prefix such as ``"FA"``; may be empty.
        key: Generic key.

    Returns:
        ``PREFIX-KEY`` or just ``KEY`` when there is no prefix.
    """
    prefix = prefix.strip().upper()
    part = key.strip().upper()
    if prefix and part.startswith(prefix):
        part = part[len(prefix) :]
    part = part.lstrip("-_").strip()
    return f"{prefix}-{part}" if prefix else part


def is_valid_key(key: Any) -> bool:
    """Check whether a key is a non-blank run of letters, digits, ``-`` and ``_``."""
    return isinstance(key, str) and bool(_VALID_KEY.match(key))


def resolve_secret_value(secret: Any) -> str | None:
    """Unwrap a store result to its string value."""
    if secret is None:
        return None
    if isinstance(secret, str):
        return None if is_blank(secret) else secret
    value = get_field(secret, "value", "Value")
    if value is None:
        return None
    return str(value)


class SecretsManager:
    """Base secrets provider with prefix-qualified keys and a cache.

    Subclasses implement ``get_secret`` against a concrete store.
    """

    def __init__(
        self,
        source: str | None = None,
        prefix: str = "",
        *,
        allow_cache: bool = True,
        exclude_from_cache: Iterable[str] = (),
        restrict_keys: bool = False,
    ) -> None:
        """Initialize the manager.

        Args:
            source: Store location, such as a ``.env`` path or vault name.
            prefix: System prefix applied by ``create_key``.
            allow_cache: Whether resolved secrets are cached.
            exclude_from_cache: Keys that are never cached.
            restrict_keys: Reject keys that fail ``is_valid_key``.
        """
        self._source = source or DEFAULT_SECRETS_SOURCE
        self._prefix = prefix.strip()
        self._allow_cache = allow_cache
        self._exclude = {k for k in exclude_from_cache if not is_blank(k)}
        self._restrict_keys = restrict_keys
        self._cache: dict[str, str] = {}
        self._log = logger.bind(component="secrets", store=type(self).__name__)

    @property
    def source(self) -> str:
        return self._source

    @property
    def prefix(self) -> str:
        return self._prefix

    @property
    def allow_cache(self) -> bool:
        return self._allow_cache

    def create_key(self, key: str) -> str:
        return create_key(self._prefix, key)

    def resolve_key(self, key: str) -> str:
        """Store-specific key formatting; underscores become hyphens."""
        return str(key).strip().replace("_", "-")

    def can_cache(self, key: str) -> bool:
        """Check whether the secret under ``key`` may be cached."""
        if not self._allow_cache or is_blank(key):
            return False
        candidates = {key, key.upper(), self.create_key(key)}
        return not (candidates & self._exclude)

    def cache_secret(self, key: str, secret: str | None) -> None:
        """Cache a secret under its plain, upper-cased and prefixed keys."""
        if secret is None or not self.can_cache(key):
            return
        for alias in (key, key.upper(), self.create_key(key)):
            self._cache[alias] = secret

    def clear_cache(self) -> None:
        self._cache.clear()

    def _rejects(self, key: str, raw: Any) -> bool:
        return self._restrict_keys and not (is_valid_key(key) or is_valid_key(raw))

    async def get_secret(self, key: str) -> Any:
        """Read ``key`` from the backing store.

        Returns:
            The stored value (possibly an object with ``value``), or None.
        """
        return None

    async def get(self, key: str) -> str | None:
        """Resolve a secret from the cache or the backing store.

        Tries the key as given, upper-cased and prefix-qualified.

        Args:
            key: Secret key; underscores are treated as hyphens.

        Returns:
            The secret, or None when no store holds it.
        """
        resolved = self.resolve_key(key)
        if self._rejects(resolved, key):
            self._log.debug("secret_key_rejected", key=resolved)
            return None

        cached = self.get_cached_secret(resolved)
        if cached is not None:
            return cached

        secret: str | None = None
        for candidate in dict.fromkeys(
            (resolved, resolved.upper(), self.create_key(resolved))
        ):
            secret = resolve_secret_value(await self.get_secret(candidate))
            if secret is not None:
                break

        self._log.debug("secret_lookup", key=resolved, found=secret is not None)
        if secret is not None:
            self.cache_secret(resolved, secret)
        return secret

    async def require(self, key: str) -> str:
        """Resolve a secret that must exist.

        Raises:
            SecretNotFoundError: If no store holds the key.
        """
        secret = await self.get(key)
        if secret is None:
            raise SecretNotFoundError(self.resolve_key(key))
        return secret

    def get_cached_secret(self, key: str) -> str | None:
        """Return a cached secret without touching the store.

        Args:
            key: Secret key.

        Returns:
            The cached secret, or None if it has not been resolved yet.
        """
        resolved = self.resolve_key(key)
        if self._rejects(resolved, key):
            return None
        for alias in (self.create_key(resolved), resolved, resolved.upper()):
            if alias in self._cache:
                return self._cache[alias]
        return None

    async def get_db_connection_string(self) -> str | None:
        return await self.get(SecretKey.CONNECTION_STRING.value)


class LocalSecretsManager(SecretsManager):
    """Reads secrets from the process environment and a ``.env`` file.

    Environment variables win over the file. Hyphenated keys are also
    looked up with underscores, since environment names cannot contain
    hyphens.
    """

    def __init__(
        self,
        source: str | Path | None = None,
        prefix: str = "",
        *,
        environ: Mapping[str, str] | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(str(source) if source else None, prefix, **kwargs)
        self._environ = os.environ if environ is None else environ
        self._file_values: dict[str, str | None] | None = None

    def _values(self) -> dict[str, str | None]:
        if self._file_values is None:
            path = Path(self.source)
            self._file_values = dict(dotenv_values(path)) if path.is_file() else {}
            self._log.debug(
                "secrets_file_loaded", path=str(path), keys=len(self._file_values)
            )
        return self._file_values

    async def get_secret(self, key: str) -> Any:
        values = self._values()
        for name in dict.fromkeys((key, key.replace("-", "_"))):
            if name in self._environ:
                return self._environ[name]
            if values.get(name) is not None:
                return values[name]
        return None


class KeyVaultSecretsManager(SecretsManager):
    """Reads secrets from an Azure Key Vault through an injected client.

    Key vault names cannot contain underscores, so keys are hyphenated.
    Lookup failures are treated as missing secrets and fall back to the
    cache.
    """

    def __init__(
        self,
        vault_name: str,
        prefix: str = "",
        *,
        client: SecretClientLike | None = None,
        vault_url: str | None = None,
        **kwargs: Any,
    ) -> None:
        """Initialize the manager.

        Args:
            vault_name: Key vault name.
            prefix: System prefix applied by ``create_key``.
            client: Client exposing ``get_secret(name)``, such as
                ``azure.keyvault.secrets.SecretClient`` or its aio variant.
            vault_url: Overrides the ``https://{name}.vault.azure.net`` URL.
            **kwargs: Cache options passed to ``SecretsManager``.
        """
        super().__init__(vault_name, prefix, **kwargs)
        self._vault_name = vault_name.strip().upper()
        self._vault_url = vault_url or KEY_VAULT_URL_TEMPLATE.format(
            name=vault_name.strip().lower()
        )
        self._client = client

    @property
    def vault_name(self) -> str:
        return self._vault_name

    @property
    def vault_url(self) -> str:
        return self._vault_url

    @property
    def client(self) -> SecretClientLike | None:
        return self._client

    async def get_secret(self, key: str) -> Any:
        if self._client is None:
            self._log.debug("key_vault_client_missing", vault_url=self._vault_url)
            return self.get_cached_secret(key)
        name = self.resolve_key(key)
        for candidate in dict.fromkeys((self.resolve_key(self.create_key(name)), name)):
            try:
                secret = self._client.get_secret(candidate)
                if inspect.isawaitable(secret):
                    secret = await secret
            except Exception as e:  # noqa: BLE001
                self._log.debug(
                    "key_vault_lookup_failed",
                    key=candidate,
                    error_type=type(e).__name__,
                )
                continue
            value = resolve_secret_value(secret)
            if value is not None:
                return value
        return self.get_cached_secret(key)


def secrets_manager_from_settings(
    settings: AppSettings, client: SecretClientLike | None = None
) -> SecretsManager:
    """Key vault manager when a vault is configured, else the local manager."""
    if settings.key_vault_name:
        return KeyVaultSecretsManager(
            settings.key_vault_name, settings.secrets_prefix, client=client
        )
    return LocalSecretsManager(prefix=settings.secrets_prefix)
