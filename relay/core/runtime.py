from __future__ import annotations

from dataclasses import dataclass
from typing import Awaitable, Callable

from telegram import Message as TelegramMessage

NativeHandler = Callable[[TelegramMessage], Awaitable[None]]


@dataclass
class Runtime:
    """Callbacks a channel plugin invokes for each native event kind."""

    message_handler: NativeHandler
    channel_post_handler: NativeHandler
