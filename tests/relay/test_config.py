"""Tests for environment-driven settings."""

import pytest

from relay.config import Settings


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (
        "SERVER",
        "LOCAL_SERVER",
        "TELEGRAM_TOKEN",
        "TELEGRAM_BOT_TOKEN",
        "CONFIG",
        "RELAY_BOT_NAME",
        "RELAY_PLATFORM",
        "RELAY_PING_INTERVAL",
        "RELAY_MAX_MESSAGE_LENGTH",
        "ENV",
        "ENVIRONMENT",
        "LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    settings = Settings(_env_file=None)

    assert settings.platform == "telegram"
    assert settings.connect_timeout == 5.0
    assert settings.retry_delay == 5.0
    assert settings.reconnect_delay == 1.0
    assert settings.ping_interval == 30.0
    assert settings.max_message_length == 4096
    assert settings.endpoints == []
    assert settings.missing_required() == ["SERVER", "TELEGRAM_TOKEN", "CONFIG"]


def test_reads_environment(monkeypatch):
    monkeypatch.setenv("SERVER", "wss://hub.example.com/ws")
    monkeypatch.setenv("LOCAL_SERVER", "ws://localhost:8765")
    monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "123:abc")
    monkeypatch.setenv(
        "CONFIG", '{"broadcastConversationId": -1001, "broadcastReceiverId": 42}'
    )
    monkeypatch.setenv("RELAY_PING_INTERVAL", "10")
    monkeypatch.setenv("ENV", "production")

    settings = Settings(_env_file=None)

    assert settings.endpoints == ["wss://hub.example.com/ws", "ws://localhost:8765"]
    assert settings.telegram_token == "123:abc"
    assert settings.ping_interval == 10.0
    assert settings.is_production is True
    assert settings.missing_required() == []
    assert settings.relay_config.broadcast_conversation_id == "-1001"
    assert settings.relay_config.broadcast_receiver_id == "42"


def test_blank_values_are_unset(monkeypatch):
    monkeypatch.setenv("SERVER", "   ")
    monkeypatch.setenv("LOCAL_SERVER", "ws://localhost:8765")

    settings = Settings(_env_file=None)

    assert settings.server_url is None
    assert settings.endpoints == ["ws://localhost:8765"]
    assert "SERVER" in settings.missing_required()


def test_invalid_interval_rejected(monkeypatch):
    from pydantic import ValidationError

    monkeypatch.setenv("RELAY_PING_INTERVAL", "0")
    with pytest.raises(ValidationError):
        Settings(_env_file=None)
