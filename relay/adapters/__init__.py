"""Platform adapters for chat integrations."""

from relay.adapters.base import BasePlatformAdapter, OutboundSendResult
from relay.adapters.telegram import TelegramAdapter

__all__ = ["BasePlatformAdapter", "OutboundSendResult", "TelegramAdapter"]
