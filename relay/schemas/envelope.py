"""
Relay wire protocol envelopes.

One JSON object per socket frame, tagged by ``type``. Every envelope carries
the relay identity (``bot``) and the platform tag so a multi-platform hub can
route it.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from relay.schemas.canonical import Message, User


class EnvelopeType(str, Enum):
    INIT = "init"
    PING = "ping"
    PONG = "pong"
    MESSAGE = "message"
    BROADCAST = "broadcast"
    COMMAND = "command"


class BaseEnvelope(BaseModel):
    model_config = ConfigDict(frozen=True)

    bot: str
    platform: str

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)


class InitEnvelope(BaseEnvelope):
    type: Literal["init"] = "init"
    user: User
    config: dict[str, Any] = Field(default_factory=dict)


class PingEnvelope(BaseEnvelope):
    type: Literal["ping"] = "ping"


class PongEnvelope(BaseEnvelope):
    type: Literal["pong"] = "pong"


class MessageEnvelope(BaseEnvelope):
    type: Literal["message"] = "message"
    message: Message


class BroadcastEnvelope(BaseEnvelope):
    type: Literal["broadcast"] = "broadcast"
    target: Union[str, list[str]]
    message: Message


class CommandEnvelope(BaseEnvelope):
    """Hub command; every field beyond the header is kept as sent."""

    model_config = ConfigDict(frozen=True, extra="allow")

    type: Literal["command"] = "command"

    @property
    def payload(self) -> dict[str, Any]:
        return dict(self.model_extra or {})


Envelope = Annotated[
    Union[
        InitEnvelope,
        PingEnvelope,
        PongEnvelope,
        MessageEnvelope,
        BroadcastEnvelope,
        CommandEnvelope,
    ],
    Field(discriminator="type"),
]

_envelope_adapter: TypeAdapter[Envelope] = TypeAdapter(Envelope)


def parse_envelope(raw: Union[str, bytes]) -> Envelope:
    """
    Parse one socket frame into an envelope.

    Raises:
        pydantic.ValidationError: if the frame is not JSON or not a known envelope.
    """
    return _envelope_adapter.validate_json(raw)
