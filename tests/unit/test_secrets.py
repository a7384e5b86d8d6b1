"""Unit tests for secrets providers."""

from pathlib import Path
from types import SimpleNamespace
from typing import Any

import pytest

from httpfacade.errors import SecretNotFoundError
from httpfacade.secrets import (
    KeyVaultSecretsManager,
    LocalSecretsManager,
    SecretsManager,
    SecretsProvider,
    create_key,
    is_valid_key,
    resolve_secret_value,
    secrets_manager_from_settings,
)
from httpfacade.settings import AppSettings


class FakeSecretClient:
    """Synchronous key vault client backed by a dict."""

    def __init__(self, secrets: dict[str, str]) -> None:
        self.secrets = secrets
        self.calls: list[str] = []

    def get_secret(self, name: str) -> Any:
        self.calls.append(name)
        if name not in self.secrets:
            raise KeyError(name)
        return SimpleNamespace(name=name, value=self.secrets[name])


class FakeAsyncSecretClient(FakeSecretClient):
    """Asynchronous key vault client backed by a dict."""

    async def get_secret(self, name: str) -> Any:  # type: ignore[override]
        return super().get_secret(name)


@pytest.fixture
def env_file(tmp_path: Path) -> Path:
    """Create a .env file with sample secrets."""
    path = tmp_path / ".env"
    path.write_text(
        "CONNECTION_STRING=mongodb://file-host/app\n"
        "FA_HOST=db.example.com\n"
        "PORT=27017\n"
    )
    return path


class TestKeyHelpers:
    """Tests for key formatting helpers."""

    @pytest.mark.parametrize(
        ("prefix", "key", "expected"),
        [
            ("FA", "host", "FA-HOST"),
            ("fa", "FA-HOST", "FA-HOST"),
            ("FA", "_db", "FA-DB"),
            ("", "login-name", "LOGIN-NAME"),
        ],
    )
    def test_create_key(self, prefix: str, key: str, expected: str) -> None:
        """Test prefix qualification of keys."""
        assert create_key(prefix, key) == expected

    def test_is_valid_key(self) -> None:
        """Test key validation."""
        assert is_valid_key("CONNECTION-STRING")
        assert is_valid_key("api_key")
        assert not is_valid_key("bad key!")
        assert not is_valid_key("")
        assert not is_valid_key(None)

    def test_resolve_secret_value(self) -> None:
        """Test unwrapping of store results."""
        assert resolve_secret_value("x") == "x"
        assert resolve_secret_value("  ") is None
        assert resolve_secret_value(SimpleNamespace(value="v")) == "v"
        assert resolve_secret_value({"Value": 5}) == "5"
        assert resolve_secret_value(None) is None


class TestLocalSecretsManager:
    """Tests for LocalSecretsManager."""

    @pytest.mark.asyncio
    async def test_reads_file(self, env_file: Path) -> None:
        """Test that hyphenated keys are found under underscore names."""
        manager = LocalSecretsManager(env_file, environ={})

        assert await manager.get("CONNECTION-STRING") == "mongodb://file-host/app"
        assert await manager.get("connection_string") == "mongodb://file-host/app"

    @pytest.mark.asyncio
    async def test_environment_wins(self, env_file: Path) -> None:
        """Test that environment variables override the file."""
        manager = LocalSecretsManager(env_file, environ={"CONNECTION_STRING": "env-value"})

        assert await manager.get_db_connection_string() == "env-value"

    @pytest.mark.asyncio
    async def test_prefixed_lookup(self, env_file: Path) -> None:
        """Test that prefixed keys are tried after the plain key."""
        manager = LocalSecretsManager(env_file, "FA", environ={})

        assert await manager.get("HOST") == "db.example.com"
        assert manager.get_cached_secret("HOST") == "db.example.com"
        assert manager.get_cached_secret("FA-HOST") == "db.example.com"

    @pytest.mark.asyncio
    async def test_missing_file(self, tmp_path: Path) -> None:
        """Test that a missing file leaves only the environment."""
        manager = LocalSecretsManager(tmp_path / "absent.env", environ={"TOKEN": "t"})

        assert await manager.get("TOKEN") == "t"
        assert await manager.get("OTHER") is None

    @pytest.mark.asyncio
    async def test_require_raises(self, env_file: Path) -> None:
        """Test that require raises for missing secrets."""
        manager = LocalSecretsManager(env_file, environ={})

        with pytest.raises(SecretNotFoundError) as exc_info:
            await manager.require("MISSING_KEY")

        assert exc_info.value.key == "MISSING-KEY"
        assert await manager.require("PORT") == "27017"

    @pytest.mark.asyncio
    async def test_cache_controls(self, env_file: Path) -> None:
        """Test disabling the cache and excluding keys from it."""
        uncached = LocalSecretsManager(env_file, environ={}, allow_cache=False)
        excluded = LocalSecretsManager(env_file, environ={}, exclude_from_cache=["PORT"])

        await uncached.get("PORT")
        await excluded.get("PORT")

        assert uncached.get_cached_secret("PORT") is None
        assert excluded.get_cached_secret("PORT") is None

    @pytest.mark.asyncio
    async def test_clear_cache(self, env_file: Path) -> None:
        """Test that clearing the cache forgets resolved secrets."""
        manager = LocalSecretsManager(env_file, environ={})
        await manager.get("PORT")

        manager.clear_cache()

        assert manager.get_cached_secret("PORT") is None

    @pytest.mark.asyncio
    async def test_restricted_keys(self, env_file: Path) -> None:
        """Test that invalid keys are rejected when restricted."""
        manager = LocalSecretsManager(env_file, environ={"bad key!": "x"}, restrict_keys=True)

        assert await manager.get("bad key!") is None

    def test_is_secrets_provider(self, env_file: Path) -> None:
        """Test that managers satisfy the provider protocol."""
        assert isinstance(LocalSecretsManager(env_file, environ={}), SecretsProvider)

    @pytest.mark.asyncio
    async def test_base_manager_has_no_store(self) -> None:
        """Test that the base manager resolves nothing."""
        assert await SecretsManager().get("ANY") is None


class TestKeyVaultSecretsManager:
    """Tests for KeyVaultSecretsManager."""

    def test_vault_url(self) -> None:
        """Test the derived vault name and URL."""
        manager = KeyVaultSecretsManager("MyVault")

        assert manager.vault_name == "MYVAULT"
        assert manager.vault_url == "https://myvault.vault.azure.net"

    @pytest.mark.asyncio
    async def test_prefixed_key_first(self) -> None:
        """Test that the prefixed key is tried before the plain key."""
        client = FakeSecretClient({"FA-HOST": "vault-host", "HOST": "plain-host"})
        manager = KeyVaultSecretsManager("kv", "FA", client=client)

        assert await manager.get("HOST") == "vault-host"
        assert client.calls == ["FA-HOST"]

    @pytest.mark.asyncio
    async def test_cached_after_first_read(self) -> None:
        """Test that a second read is served from the cache."""
        client = FakeSecretClient({"PORT": "27017"})
        manager = KeyVaultSecretsManager("kv", client=client)

        await manager.get("PORT")
        await manager.get("PORT")

        assert client.calls == ["PORT"]

    @pytest.mark.asyncio
    async def test_async_client(self) -> None:
        """Test that async clients are awaited."""
        client = FakeAsyncSecretClient({"API-KEY": "k"})
        manager = KeyVaultSecretsManager("kv", client=client)

        assert await manager.get("API_KEY") == "k"

    @pytest.mark.asyncio
    async def test_lookup_failures_are_missing(self) -> None:
        """Test that client errors resolve to None."""
        manager = KeyVaultSecretsManager("kv", "FA", client=FakeSecretClient({}))

        assert await manager.get("HOST") is None

    @pytest.mark.asyncio
    async def test_without_client(self) -> None:
        """Test that a manager without a client resolves nothing."""
        assert await KeyVaultSecretsManager("kv").get("HOST") is None


class TestSecretsManagerFromSettings:
    """Tests for secrets_manager_from_settings."""

    def test_key_vault_when_configured(self) -> None:
        """Test that a configured vault selects the key vault manager."""
        settings = AppSettings(_env_file=None, key_vault_name="kv", secrets_prefix="FA")  # type: ignore[call-arg]

        manager = secrets_manager_from_settings(settings)

        assert isinstance(manager, KeyVaultSecretsManager)
        assert manager.prefix == "FA"

    def test_local_otherwise(self) -> None:
        """Test that the local manager is the fallback."""
        settings = AppSettings(_env_file=None, key_vault_name=None)  # type: ignore[call-arg]

        assert isinstance(secrets_manager_from_settings(settings), LocalSecretsManager)
