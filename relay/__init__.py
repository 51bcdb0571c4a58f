"""Telegram relay: bridges Telegram to a canonical hub protocol over WebSocket."""

__version__ = "0.1.0"
