"""Telegram channel plugin using python-telegram-bot (v22) long polling."""

from __future__ import annotations

import contextlib
from typing import Optional

from telegram import Bot, Update
from telegram.ext import (
    Application,
    ApplicationBuilder,
    ContextTypes,
    MessageHandler,
    filters,
)

from relay.channels.base import ChannelCapabilities, ChannelMeta
from relay.core.runtime import Runtime
from relay.infra.logging_config import get_logger
from .config import TelegramConfig

logger = get_logger("telegram_plugin")


class TelegramPlugin:
    id = "telegram"
    meta = ChannelMeta(label="Telegram", docs="/channels/telegram")
    capabilities = ChannelCapabilities(
        chat_types=["direct", "group", "channel"],
        supports_polling=True,
        supports_channel_posts=True,
        supports_media=True,
    )

    def __init__(
        self,
        cfg: TelegramConfig,
        runtime: Runtime,
        application: Optional[Application] = None,
    ) -> None:
        self.cfg = cfg
        self.runtime = runtime
        self._app: Optional[Application] = application
        self._polling = False

    @property
    def bot(self) -> Bot:
        if self._app is None:
            raise RuntimeError("Telegram plugin not initialized")
        return self._app.bot

    async def initialize(self) -> None:
        """Build the application and register handlers; no network polling yet."""
        if self._app is None:
            self._app = ApplicationBuilder().token(self.cfg.bot_token).build()
        self._app.add_handler(
            MessageHandler(filters.UpdateType.MESSAGE, self._on_message)
        )
        self._app.add_handler(
            MessageHandler(filters.UpdateType.CHANNEL_POST, self._on_channel_post)
        )
        await self._app.initialize()

    async def start(self) -> None:
        if self._app is None:
            await self.initialize()
        assert self._app is not None
        await self._app.start()
        await self._app.updater.start_polling(
            drop_pending_updates=self.cfg.drop_pending_updates
        )
        self._polling = True
        logger.info("Telegram polling started")

    async def stop(self) -> None:
        if self._app is None:
            return
        if self._polling:
            self._polling = False
            with contextlib.suppress(RuntimeError):
                await self._app.updater.stop()
            with contextlib.suppress(RuntimeError):
                await self._app.stop()
        await self._app.shutdown()
        logger.info("Telegram polling stopped")

    async def _on_message(
        self, update: Update, _context: ContextTypes.DEFAULT_TYPE
    ) -> None:
        if update.message is None:
            return
        await self.runtime.message_handler(update.message)

    async def _on_channel_post(
        self, update: Update, _context: ContextTypes.DEFAULT_TYPE
    ) -> None:
        if update.channel_post is None:
            return
        await self.runtime.channel_post_handler(update.channel_post)
