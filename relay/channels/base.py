from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class ChannelMeta:
    label: str
    docs: Optional[str] = None


@dataclass(frozen=True)
class ChannelCapabilities:
    chat_types: list[str]
    supports_webhook: bool = False
    supports_polling: bool = False
    supports_channel_posts: bool = False
    supports_media: bool = False
