"""
Platform adapter interface.

Adapters encapsulate platform-specific logic and expose the canonical
message format to the relay core.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from relay.schemas.canonical import Message


class OutboundSendResult(BaseModel):
    """Result of delivering a canonical message (one id per platform message sent)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    success: bool
    platform_message_ids: list[str] = Field(default_factory=list)


class BasePlatformAdapter(ABC):
    """Contract for platform adapters. New platforms implement this interface."""

    platform: str

    @abstractmethod
    def to_canonical(self, native: Any) -> Message:
        """Convert a native message object into a canonical message."""
        ...

    @abstractmethod
    async def send(self, message: Message) -> Optional[OutboundSendResult]:
        """Deliver a canonical message. Return None when the send is a no-op."""
        ...
