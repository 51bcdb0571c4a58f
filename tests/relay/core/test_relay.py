"""Tests for the Relay orchestrator: routing between Telegram and the hub."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from telegram import Message as TelegramMessage
from telegram import User as TelegramUser
from telegram.error import TelegramError

from relay.config import Settings
from relay.core.relay import Relay
from relay.schemas.canonical import Conversation, Message, MessageType
from relay.services.connection_manager import ConnectionState
from tests.fixtures.relay_fixtures import (
    FAKE_TOKEN,
    FALLBACK,
    PRIMARY,
    channel_post_payload,
    settle,
    text_message_payload,
)

BROADCAST_CONFIG = {"broadcastConversationId": "-1001", "broadcastReceiverId": "42"}


def make_settings(**overrides):
    values = dict(
        SERVER=PRIMARY,
        LOCAL_SERVER=FALLBACK,
        TELEGRAM_TOKEN=FAKE_TOKEN,
        CONFIG=BROADCAST_CONFIG,
    )
    values.update(overrides)
    return Settings(_env_file=None, **values)


def make_plugin():
    plugin = MagicMock()
    plugin.initialize = AsyncMock()
    plugin.start = AsyncMock()
    plugin.stop = AsyncMock()
    plugin.bot.get_me = AsyncMock(
        return_value=TelegramUser(
            id=1, first_name="Relay", is_bot=True, username="relaybot"
        )
    )
    plugin.bot.send_message = AsyncMock(return_value=MagicMock(message_id=9))
    plugin.bot.send_chat_action = AsyncMock(return_value=True)
    return plugin


async def started_relay(connector, clock, settings=None, plugin=None):
    relay = Relay(
        settings or make_settings(),
        plugin=plugin or make_plugin(),
        connector=connector,
        sleep=clock.sleep,
    )
    await relay.start()
    await settle()
    return relay


@pytest.mark.asyncio
async def test_start_announces_bot(connector, clock):
    relay = await started_relay(connector, clock)

    relay.plugin.initialize.assert_awaited_once()
    relay.plugin.start.assert_awaited_once()
    assert relay.bot_name == "relaybot"
    assert relay.identity.id == 1
    init = connector.last_socket.frames("init")
    assert len(init) == 1
    assert init[0]["bot"] == "relaybot"
    assert init[0]["platform"] == "telegram"
    assert init[0]["user"] == {
        "id": 1,
        "firstName": "Relay",
        "username": "relaybot",
        "isBot": True,
    }
    assert init[0]["config"] == BROADCAST_CONFIG

    await relay.shutdown()


@pytest.mark.asyncio
async def test_configured_bot_name_wins(connector, clock):
    relay = await started_relay(
        connector, clock, settings=make_settings(RELAY_BOT_NAME="polaris")
    )

    assert connector.last_socket.frames("init")[0]["bot"] == "polaris"

    await relay.shutdown()


@pytest.mark.asyncio
async def test_message_forwarded_to_hub(connector, clock, telegram_bot):
    relay = await started_relay(connector, clock)

    await relay.handle_message(TelegramMessage.de_json(text_message_payload(), telegram_bot))

    frames = connector.last_socket.frames("message")
    assert len(frames) == 1
    message = frames[0]["message"]
    assert frames[0]["bot"] == "relaybot"
    assert message["conversation"] == {"id": "-100123", "title": "Group"}
    assert message["sender"]["username"] == "tester"
    assert message["extra"]["mentions"] == ["@bob"]

    await relay.shutdown()


@pytest.mark.asyncio
async def test_broadcast_channel_post(connector, clock, telegram_bot):
    relay = await started_relay(connector, clock)

    await relay.handle_channel_post(
        TelegramMessage.de_json(channel_post_payload(chat_id=-1001), telegram_bot)
    )

    socket = connector.last_socket
    assert socket.frames("message") == []
    broadcasts = socket.frames("broadcast")
    assert len(broadcasts) == 1
    assert broadcasts[0]["target"] == "all"
    message = broadcasts[0]["message"]
    assert message["conversation"] == {"id": "42"}
    assert message["content"] == "Big announcement"
    assert message["type"] == "text"
    assert "sender" not in message

    await relay.shutdown()


@pytest.mark.asyncio
async def test_other_channel_post_is_a_message(connector, clock, telegram_bot):
    relay = await started_relay(connector, clock)

    await relay.handle_channel_post(
        TelegramMessage.de_json(channel_post_payload(chat_id=-2002), telegram_bot)
    )

    socket = connector.last_socket
    assert socket.frames("broadcast") == []
    frames = socket.frames("message")
    assert len(frames) == 1
    assert frames[0]["message"]["conversation"]["id"] == "-2002"
    assert frames[0]["message"]["sender"] == {"id": "-2002", "title": "News"}

    await relay.shutdown()


@pytest.mark.asyncio
async def test_broadcast_without_receiver_is_skipped(connector, clock):
    settings = make_settings(CONFIG={"broadcastConversationId": "-1001"})
    relay = await started_relay(connector, clock, settings=settings)
    source = Message(conversation=Conversation(id="-1001"), content="x")

    assert await relay.broadcast("all", None, source) is False
    assert connector.last_socket.frames("broadcast") == []

    await relay.shutdown()


@pytest.mark.asyncio
async def test_broadcast_to_many_targets(connector, clock):
    relay = await started_relay(connector, clock)
    source = Message(
        id=5, conversation=Conversation(id="-1001"), content="x", type=MessageType.TEXT
    )

    assert await relay.broadcast(("a", "b"), "42", source) is True
    frame = connector.last_socket.frames("broadcast")[0]
    assert frame["target"] == ["a", "b"]
    assert "id" not in frame["message"]

    await relay.shutdown()


@pytest.mark.asyncio
async def test_hub_message_delivered_to_telegram(connector, clock):
    relay = await started_relay(connector, clock)

    connector.last_socket.feed(
        {
            "bot": "hub",
            "platform": "telegram",
            "type": "message",
            "message": {"conversation": {"id": "42"}, "content": "hi", "type": "text"},
        }
    )
    await settle()

    relay.plugin.bot.send_message.assert_awaited_once()
    kwargs = relay.plugin.bot.send_message.await_args.kwargs
    assert kwargs["chat_id"] == 42
    assert kwargs["text"] == "hi"

    await relay.shutdown()


@pytest.mark.asyncio
async def test_delivery_failure_is_logged_not_raised(connector, clock):
    plugin = make_plugin()
    plugin.bot.send_message = AsyncMock(side_effect=TelegramError("bot was blocked"))
    relay = await started_relay(connector, clock, plugin=plugin)

    result = await relay.deliver(Message(conversation=Conversation(id="42"), content="hi"))

    assert result is None
    assert relay.manager.state == ConnectionState.CONNECTED

    await relay.shutdown()


@pytest.mark.asyncio
async def test_updates_before_start_are_dropped(connector, clock, telegram_bot):
    relay = Relay(make_settings(), plugin=make_plugin(), connector=connector, sleep=clock.sleep)

    await relay.handle_message(TelegramMessage.de_json(text_message_payload(), telegram_bot))

    assert connector.calls == []


@pytest.mark.asyncio
async def test_shutdown_runs_once(connector, clock):
    relay = Relay(make_settings(), plugin=make_plugin(), connector=connector, sleep=clock.sleep)
    run_task = asyncio.create_task(relay.run())
    await settle()
    socket = connector.last_socket

    await asyncio.gather(relay.shutdown(reason="SIGTERM"), relay.shutdown(reason="SIGINT"))
    await relay.shutdown()
    await run_task

    relay.plugin.stop.assert_awaited_once()
    assert socket.close_calls == 1
    assert relay.manager.state == ConnectionState.CLOSED
