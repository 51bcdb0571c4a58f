from __future__ import annotations

from dataclasses import dataclass


@dataclass
class TelegramConfig:
    bot_token: str
    drop_pending_updates: bool = False
