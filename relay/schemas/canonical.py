"""
Canonical message contracts for the relay.

Every platform-native message is converted into these shapes before it
crosses the relay socket, and every message the hub sends back arrives in
them. Wire keys are camelCase; attributes are snake_case.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Discriminator,
    Field,
    Tag,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

_CANONICAL_CONFIG = ConfigDict(
    alias_generator=to_camel,
    populate_by_name=True,
    frozen=True,
)


class MessageType(str, Enum):
    """Closed set of canonical content kinds."""

    TEXT = "text"
    PHOTO = "photo"
    ANIMATION = "animation"
    DOCUMENT = "document"
    AUDIO = "audio"
    VOICE = "voice"
    VIDEO = "video"
    VIDEO_NOTE = "video_note"
    STICKER = "sticker"
    FORWARD = "forward"
    UNSUPPORTED = "unsupported"


class MessageFormat(str, Enum):
    """Rendering mode of text and captions."""

    PLAIN = "plain"
    MARKDOWN = "Markdown"
    HTML = "HTML"


def _id_to_str(value: Any) -> Any:
    # 64-bit chat ids lose precision as JSON numbers in some hubs
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return str(value)
    return value


class User(BaseModel):
    """A platform user (author of a message or the relay bot itself)."""

    model_config = _CANONICAL_CONFIG

    id: int
    first_name: str
    last_name: Optional[str] = None
    username: Optional[str] = None
    is_bot: bool = False


class Conversation(BaseModel):
    """A chat, group or channel. Also the sender of authorless channel posts."""

    model_config = _CANONICAL_CONFIG

    id: str
    title: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def _normalize_id(cls, value: Any) -> Any:
        return _id_to_str(value)


class NativePayload(BaseModel):
    """Platform-native object carried opaquely as plain JSON data."""

    model_config = _CANONICAL_CONFIG

    platform: str
    data: dict[str, Any] = Field(default_factory=dict)


class Extra(BaseModel):
    """
    Optional message metadata.

    Known fields are explicit. Keys the hub sends that are not known here are
    kept in ``extensions`` instead of being dropped.
    """

    model_config = _CANONICAL_CONFIG

    urls: Optional[list[str]] = None
    mentions: Optional[list[str]] = None
    hashtags: Optional[list[str]] = None
    caption: Optional[str] = None
    format: Optional[MessageFormat] = None
    reply_markup: Optional[dict[str, Any]] = None
    preview: Optional[bool] = None
    original_message: Optional[NativePayload] = None
    via_bot_user_id: Optional[int] = None
    restriction_reason: Optional[str] = None
    # forward source
    conversation: Optional[str] = None
    message: Optional[Union[int, str]] = None
    extensions: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _collect_extensions(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        known: set[str] = set()
        for name, field in cls.model_fields.items():
            known.add(name)
            if field.alias:
                known.add(field.alias)
        unknown = {k: v for k, v in data.items() if k not in known}
        if not unknown:
            return data
        values = {k: v for k, v in data.items() if k in known}
        extensions = dict(values.get("extensions") or {})
        extensions.update(unknown)
        values["extensions"] = extensions
        return values

    @field_validator("format", mode="before")
    @classmethod
    def _normalize_format(cls, value: Any) -> Any:
        if isinstance(value, str):
            for member in MessageFormat:
                if member.value.lower() == value.lower():
                    return member
        return value

    @field_validator("conversation", mode="before")
    @classmethod
    def _normalize_conversation(cls, value: Any) -> Any:
        return _id_to_str(value)


def _sender_kind(value: Any) -> str:
    if isinstance(value, User):
        return "user"
    if isinstance(value, Conversation):
        return "conversation"
    if isinstance(value, dict) and (
        "firstName" in value or "first_name" in value or "isBot" in value
    ):
        return "user"
    return "conversation"


Sender = Annotated[
    Union[
        Annotated[User, Tag("user")],
        Annotated[Conversation, Tag("conversation")],
    ],
    Discriminator(_sender_kind),
]


class Message(BaseModel):
    """Canonical message. Any transformation produces a new instance."""

    model_config = _CANONICAL_CONFIG

    id: Optional[Union[int, str]] = None
    conversation: Conversation
    sender: Optional[Sender] = None
    content: Optional[str] = None
    type: MessageType = MessageType.TEXT
    date: Optional[int] = None
    reply: Optional[Message] = None
    extra: Extra = Field(default_factory=Extra)

    @field_validator("type", mode="before")
    @classmethod
    def _coerce_unknown_type(cls, value: Any) -> Any:
        if isinstance(value, MessageType):
            return value
        try:
            return MessageType(value)
        except ValueError:
            return MessageType.UNSUPPORTED

    @field_validator("extra", mode="before")
    @classmethod
    def _default_extra(cls, value: Any) -> Any:
        return Extra() if value is None else value

    def to_wire(self) -> dict[str, Any]:
        """Plain JSON-ready dict using wire (camelCase) keys."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class RelayConfig(BaseModel):
    """Hub configuration blob passed through in the init envelope."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="allow"
    )

    broadcast_conversation_id: Optional[str] = None
    broadcast_receiver_id: Optional[str] = None

    @field_validator("broadcast_conversation_id", "broadcast_receiver_id", mode="before")
    @classmethod
    def _normalize_ids(cls, value: Any) -> Any:
        return _id_to_str(value)
