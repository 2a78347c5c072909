"""Tests for runtime settings and synchronization config.

Tests cover:
- Defaults (120 s timeout) and environment overrides
- Validation listing every invalid timing value
- SyncConfig construction from settings
- Logging configuration for production and development
"""

import pytest
import structlog
from pydantic import ValidationError

from chainbind import contract
from chainbind.core.config import Settings, SyncConfig, configure_logging
from chainbind.services.blockchain.provider import Web3Provider, provider_from_settings


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    """Isolate settings from the developer's environment and .env file."""
    monkeypatch.chdir(tmp_path)
    for name in (
        "APP_ENV",
        "LOG_LEVEL",
        "CHAINBIND_RPC_URL",
        "CHAINBIND_NETWORK_ID",
        "CHAINBIND_SYNC_TIMEOUT_SECONDS",
        "CHAINBIND_POLL_INTERVAL_SECONDS",
        "CHAINBIND_MAX_POLL_INTERVAL_SECONDS",
    ):
        monkeypatch.delenv(name, raising=False)
    yield
    structlog.reset_defaults()


def test_default_settings():
    settings = Settings()  # type: ignore[call-arg]

    assert settings.app_env == "development"
    assert settings.rpc_url == "http://127.0.0.1:8545"
    assert settings.network_id is None
    assert settings.sync_timeout_seconds == 120.0


def test_settings_from_environment(monkeypatch):
    monkeypatch.setenv("CHAINBIND_SYNC_TIMEOUT_SECONDS", "30")
    monkeypatch.setenv("CHAINBIND_POLL_INTERVAL_SECONDS", "0.25")
    monkeypatch.setenv("CHAINBIND_NETWORK_ID", "1337")

    settings = Settings()  # type: ignore[call-arg]
    config = SyncConfig.from_settings(settings)

    assert settings.network_id == "1337"
    assert config.timeout == 30.0
    assert config.poll_interval == 0.25
    assert config.max_poll_interval == 4.0


def test_invalid_settings_list_every_problem(monkeypatch):
    monkeypatch.setenv("CHAINBIND_SYNC_TIMEOUT_SECONDS", "0")
    monkeypatch.setenv("CHAINBIND_POLL_INTERVAL_SECONDS", "5")

    with pytest.raises(ValidationError) as exc_info:
        Settings()  # type: ignore[call-arg]

    message = str(exc_info.value)
    assert "CHAINBIND_SYNC_TIMEOUT_SECONDS must be positive" in message
    assert "CHAINBIND_MAX_POLL_INTERVAL_SECONDS must not be smaller" in message


def test_sync_config_defaults():
    config = SyncConfig()

    assert config.timeout == 120.0
    assert config.poll_interval == 0.5
    assert config.backoff == 1.5


@pytest.mark.parametrize(
    "kwargs",
    [
        {"timeout": 0},
        {"poll_interval": -1},
        {"poll_interval": 2, "max_poll_interval": 1},
        {"backoff": 0.5},
    ],
)
def test_sync_config_validation(kwargs):
    with pytest.raises(ValueError):
        SyncConfig(**kwargs)


def test_provider_from_settings(monkeypatch):
    monkeypatch.setenv("CHAINBIND_RPC_URL", "http://node.example:8545")

    provider = provider_from_settings(Settings())  # type: ignore[call-arg]

    assert isinstance(provider, Web3Provider)
    assert provider.w3.provider.endpoint_uri == "http://node.example:8545"


@pytest.mark.parametrize("app_env", ["production", "development"])
def test_configure_logging(monkeypatch, app_env):
    monkeypatch.setenv("APP_ENV", app_env)
    monkeypatch.setenv("LOG_LEVEL", "warning")

    configure_logging(Settings())  # type: ignore[call-arg]

    processors = structlog.get_config()["processors"]
    renderer = processors[-1]
    if app_env == "production":
        assert isinstance(renderer, structlog.processors.JSONRenderer)
    else:
        assert isinstance(renderer, structlog.dev.ConsoleRenderer)


def test_abstraction_configure_from_settings(monkeypatch):
    monkeypatch.setenv("CHAINBIND_RPC_URL", "http://node.example:8545")
    monkeypatch.setenv("CHAINBIND_NETWORK_ID", "5")
    monkeypatch.setenv("CHAINBIND_SYNC_TIMEOUT_SECONDS", "45")
    abstraction = contract({"abi": []})

    abstraction.configure(Settings())  # type: ignore[call-arg]

    assert isinstance(abstraction.provider, Web3Provider)
    assert abstraction.network_id == "5"
    assert abstraction.synchronization_timeout == 45.0
