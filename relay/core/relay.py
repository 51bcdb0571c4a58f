"""
Relay orchestration: Telegram events in, hub envelopes out, and back.

Wires the Telegram channel plugin to the adapter and the connection
manager, routes broadcast-channel posts, and owns the shutdown sequence.
"""

from __future__ import annotations

import asyncio
from typing import Optional, Sequence, Union

from telegram import Message as TelegramMessage
from telegram.error import TelegramError

from relay.adapters.base import OutboundSendResult
from relay.adapters.telegram import TelegramAdapter
from relay.channels.plugins.telegram.config import TelegramConfig
from relay.channels.plugins.telegram.plugin import TelegramPlugin
from relay.commands.hub_command import HubCommand
from relay.config import Settings
from relay.core.runtime import Runtime
from relay.infra.logging_config import get_logger
from relay.schemas.canonical import Conversation, Message, User
from relay.schemas.envelope import BroadcastEnvelope, MessageEnvelope
from relay.services.connection_manager import Connector, ConnectionManager, Sleep

logger = get_logger("relay")

BROADCAST_TARGET_ALL = "all"


class Relay:
    """One relay process: one Telegram bot, one hub connection."""

    def __init__(
        self,
        settings: Settings,
        plugin: Optional[TelegramPlugin] = None,
        command: Optional[HubCommand] = None,
        connector: Optional[Connector] = None,
        sleep: Optional[Sleep] = None,
    ) -> None:
        self.settings = settings
        self.relay_config = settings.relay_config
        self.plugin = plugin or TelegramPlugin(
            TelegramConfig(bot_token=settings.telegram_token or ""),
            Runtime(
                message_handler=self.handle_message,
                channel_post_handler=self.handle_channel_post,
            ),
        )
        self.command = command or HubCommand()
        self._connector = connector
        self._sleep = sleep

        self.identity: Optional[User] = None
        self.bot_name: Optional[str] = settings.bot_name
        self.adapter: Optional[TelegramAdapter] = None
        self.manager: Optional[ConnectionManager] = None
        self._manager_task: Optional[asyncio.Task[None]] = None
        self._shutdown_task: Optional[asyncio.Task[None]] = None

    async def start(self) -> None:
        """Resolve the bot profile, start polling and the relay connection."""
        await self.plugin.initialize()
        me = await self.plugin.bot.get_me()
        self.identity = User(
            id=me.id,
            first_name=me.first_name,
            last_name=None,
            username=me.username,
            is_bot=me.is_bot,
        )
        self.bot_name = self.settings.bot_name or me.username
        self.adapter = TelegramAdapter(
            self.plugin.bot, max_message_length=self.settings.max_message_length
        )
        self.manager = ConnectionManager(
            endpoints=self.settings.endpoints,
            bot=self.bot_name,
            platform=self.settings.platform,
            identity=self.identity,
            config=self.settings.config or {},
            on_message=self.deliver,
            on_command=self.command.execute,
            connect_timeout=self.settings.connect_timeout,
            retry_delay=self.settings.retry_delay,
            reconnect_delay=self.settings.reconnect_delay,
            ping_interval=self.settings.ping_interval,
            connector=self._connector,
            sleep=self._sleep,
        )
        await self.plugin.start()
        self._manager_task = asyncio.create_task(self.manager.run())

    async def run(self) -> None:
        """Start and serve until shutdown."""
        await self.start()
        assert self._manager_task is not None
        await self._manager_task

    # Telegram -> hub

    def _normalize(self, native: TelegramMessage) -> Optional[Message]:
        if self.adapter is None:
            logger.warning("Dropping Telegram update received before start")
            return None
        try:
            return self.adapter.to_canonical(native)
        except ValueError as e:
            logger.error(
                "Failed to normalize message %s in chat %s: %s",
                native.message_id,
                native.chat_id,
                e,
            )
            return None

    async def handle_message(self, native: TelegramMessage) -> None:
        message = self._normalize(native)
        if message is None or self.manager is None:
            return
        await self.manager.send(
            MessageEnvelope(
                bot=self.bot_name, platform=self.settings.platform, message=message
            )
        )

    async def handle_channel_post(self, native: TelegramMessage) -> None:
        message = self._normalize(native)
        if message is None or self.manager is None:
            return
        broadcast_source = self.relay_config.broadcast_conversation_id
        if broadcast_source and message.conversation.id == broadcast_source:
            await self.broadcast(
                BROADCAST_TARGET_ALL,
                self.relay_config.broadcast_receiver_id,
                message,
            )
            return
        await self.manager.send(
            MessageEnvelope(
                bot=self.bot_name, platform=self.settings.platform, message=message
            )
        )

    async def broadcast(
        self,
        target: Union[str, Sequence[str]],
        conversation_id: Optional[str],
        source: Message,
    ) -> bool:
        """Ask the hub to fan ``source`` out to ``target``, addressed to ``conversation_id``."""
        if self.manager is None:
            return False
        if not conversation_id:
            logger.warning("Broadcast skipped: broadcastReceiverId is not configured")
            return False
        message = Message(
            conversation=Conversation(id=conversation_id),
            content=source.content,
            type=source.type,
            extra=source.extra,
        )
        return await self.manager.send(
            BroadcastEnvelope(
                bot=self.bot_name,
                platform=self.settings.platform,
                target=target if isinstance(target, str) else list(target),
                message=message,
            )
        )

    # Hub -> Telegram

    async def deliver(self, message: Message) -> Optional[OutboundSendResult]:
        """Send a hub message through Telegram. Failures are logged, not raised."""
        if self.adapter is None:
            return None
        try:
            return await self.adapter.send(message)
        except (TelegramError, ValueError) as e:
            logger.error(
                "Failed to deliver %s message to %s: %s",
                message.type.value,
                message.conversation.id,
                e,
            )
            return None

    # Shutdown

    async def shutdown(self, reason: Optional[str] = None) -> None:
        """Stop once; repeated signals await the same sequence."""
        if self._shutdown_task is None:
            if reason:
                logger.warning("Received %s, shutting down", reason)
            self._shutdown_task = asyncio.ensure_future(self._shutdown())
        await asyncio.shield(self._shutdown_task)

    async def _shutdown(self) -> None:
        if self.manager is not None:
            await self.manager.close()
        await self.plugin.stop()
