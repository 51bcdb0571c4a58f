"""
Telegram platform adapter.

Uses python-telegram-bot for the native message objects and the Bot API
send calls. Inbound: ``telegram.Message`` -> canonical Message. Outbound:
canonical Message -> one or more Bot API calls.
"""

from __future__ import annotations

import re
from typing import Any, Optional, Union

from telegram import (
    Bot,
    ForceReply,
    InlineKeyboardMarkup,
    LinkPreviewOptions,
    MessageEntity,
    ReplyKeyboardMarkup,
    ReplyKeyboardRemove,
)
from telegram import Message as TelegramMessage
from telegram.constants import ChatAction, ParseMode
from telegram.error import TelegramError

from relay.adapters.attachments import AttachmentResolver
from relay.adapters.base import BasePlatformAdapter, OutboundSendResult
from relay.config import TELEGRAM_MAX_MESSAGE_LENGTH
from relay.infra.logging_config import get_logger
from relay.schemas.canonical import (
    Conversation,
    Extra,
    Message,
    MessageFormat,
    MessageType,
    NativePayload,
    User,
)
from relay.utils.text import html_to_markdown, split_large_message

logger = get_logger("telegram")

TELEGRAM_PLATFORM = "telegram"

# First present kind wins; text is checked before all of them
MEDIA_PRIORITY = (
    MessageType.PHOTO,
    MessageType.ANIMATION,
    MessageType.DOCUMENT,
    MessageType.AUDIO,
    MessageType.VIDEO,
    MessageType.VIDEO_NOTE,
    MessageType.STICKER,
)

ENTITY_FIELDS = {
    MessageEntity.URL: "urls",
    MessageEntity.MENTION: "mentions",
    MessageEntity.HASHTAG: "hashtags",
}

# type -> (Bot method, file argument); these carry caption and parse mode
CAPTIONED_SENDS = {
    MessageType.PHOTO: ("send_photo", "photo"),
    MessageType.ANIMATION: ("send_animation", "animation"),
    MessageType.DOCUMENT: ("send_document", "document"),
    MessageType.AUDIO: ("send_audio", "audio"),
    MessageType.VIDEO: ("send_video", "video"),
    MessageType.VOICE: ("send_voice", "voice"),
}

UNCAPTIONED_SENDS = {
    MessageType.STICKER: ("send_sticker", "sticker"),
    MessageType.VIDEO_NOTE: ("send_video_note", "video_note"),
}

CHAT_ACTIONS: dict[str, Optional[str]] = {
    "photo": ChatAction.UPLOAD_PHOTO,
    "document": ChatAction.UPLOAD_DOCUMENT,
    "video": ChatAction.UPLOAD_VIDEO,
    "audio": ChatAction.RECORD_VOICE,
    "voice": ChatAction.RECORD_VOICE,
    "location": ChatAction.FIND_LOCATION,
    "venue": ChatAction.FIND_LOCATION,
    "cancel": None,
}

_INTEGER_RE = re.compile(r"^-?\d+$")


def resolve_chat_action(message_type: Union[str, MessageType, None]) -> Optional[str]:
    """Typing indicator for a message type; ``None`` means no action."""
    if isinstance(message_type, MessageType):
        message_type = message_type.value
    return CHAT_ACTIONS.get(message_type or "text", ChatAction.TYPING)


def native_chat_id(value: Union[int, str]) -> Union[int, str]:
    """Numeric ids go to the Bot API as ints; ``@channel`` names stay strings."""
    if isinstance(value, str) and _INTEGER_RE.match(value):
        return int(value)
    return value


def build_reply_markup(data: Optional[dict[str, Any]], bot: Optional[Bot] = None):
    """Rebuild a Bot API markup object from its plain-data form."""
    if not data:
        return None
    if "inline_keyboard" in data:
        return InlineKeyboardMarkup.de_json(data, bot)
    if "keyboard" in data:
        return ReplyKeyboardMarkup.de_json(data, bot)
    if data.get("remove_keyboard"):
        return ReplyKeyboardRemove.de_json(data, bot)
    if data.get("force_reply"):
        return ForceReply.de_json(data, bot)
    logger.warning("Ignoring unknown reply markup keys: %s", sorted(data))
    return None


class TelegramAdapter(BasePlatformAdapter):
    """Telegram adapter: normalize native messages, deliver canonical ones."""

    platform = TELEGRAM_PLATFORM

    def __init__(
        self,
        bot: Bot,
        resolver: Optional[AttachmentResolver] = None,
        max_message_length: int = TELEGRAM_MAX_MESSAGE_LENGTH,
    ) -> None:
        self._bot = bot
        self._resolver = resolver or AttachmentResolver()
        self._max_message_length = max_message_length

    # Inbound

    def to_canonical(
        self, native: TelegramMessage, resolve_reply: bool = True
    ) -> Message:
        """
        Convert a native Telegram message into a canonical message.

        The inlined parent message, if any, is converted one level deep; its
        own parent is never walked.
        """
        chat = native.chat
        conversation = Conversation(id=chat.id, title=chat.title)
        author = native.from_user
        sender: Union[User, Conversation] = (
            User(
                id=author.id,
                first_name=author.first_name,
                last_name=author.last_name,
                username=author.username,
                is_bot=author.is_bot,
            )
            if author
            else conversation
        )

        content, message_type = self._classify(native)

        extra: dict[str, Any] = {
            "original_message": NativePayload(
                platform=self.platform, data=native.to_dict()
            )
        }
        if message_type == MessageType.TEXT:
            extra.update(self._extract_entities(native))
        if native.caption:
            extra["caption"] = native.caption
        if native.reply_markup is not None:
            extra["reply_markup"] = native.reply_markup.to_dict()
        if native.via_bot and native.via_bot.id > 0:
            extra["via_bot_user_id"] = native.via_bot.id
        restriction_reason = native.api_kwargs.get("restriction_reason")
        if restriction_reason:
            extra["restriction_reason"] = str(restriction_reason)

        reply = None
        if resolve_reply and native.reply_to_message is not None:
            reply = self.to_canonical(native.reply_to_message, resolve_reply=False)

        return Message(
            id=native.message_id,
            conversation=conversation,
            sender=sender,
            content=content,
            type=message_type,
            date=int(native.date.timestamp()) if native.date else None,
            reply=reply,
            extra=Extra(**extra),
        )

    @staticmethod
    def _classify(native: TelegramMessage) -> tuple[Optional[str], MessageType]:
        if native.text:
            return native.text, MessageType.TEXT
        for kind in MEDIA_PRIORITY:
            media = getattr(native, kind.value, None)
            if not media:
                continue
            first = media[0] if isinstance(media, (list, tuple)) else media
            return first.file_id, kind
        return None, MessageType.UNSUPPORTED

    @staticmethod
    def _extract_entities(native: TelegramMessage) -> dict[str, list[str]]:
        found: dict[str, list[str]] = {}
        for entity in native.entities or ():
            field = ENTITY_FIELDS.get(entity.type)
            if field:
                # parse_entity slices in UTF-16 units, like the offsets
                found.setdefault(field, []).append(native.parse_entity(entity))
        return found

    # Outbound

    async def send_chat_action(
        self, chat_id: Union[int, str], message_type: Union[str, MessageType] = "text"
    ) -> bool:
        """Show a typing indicator. Failures are logged, never raised."""
        action = resolve_chat_action(message_type)
        if action is None:
            return False
        try:
            return await self._bot.send_chat_action(chat_id=chat_id, action=action)
        except TelegramError as e:
            logger.warning("Chat action %s failed for %s: %s", action, chat_id, e)
            return False

    async def send(self, message: Message) -> Optional[OutboundSendResult]:
        """
        Deliver a canonical message through the Bot API.

        Returns:
            OutboundSendResult with one id per platform message, or None when
            the message is a no-op (empty text, unsupported type, missing
            forward source).

        Raises:
            telegram.error.TelegramError: if the Bot API rejects a send.
            ValueError: if a media reference cannot be resolved.
        """
        chat_id = native_chat_id(message.conversation.id)
        if message.type == MessageType.TEXT:
            return await self._send_text(chat_id, message)
        if message.type in CAPTIONED_SENDS or message.type in UNCAPTIONED_SENDS:
            return await self._send_media(chat_id, message)
        if message.type == MessageType.FORWARD:
            return await self._forward(chat_id, message)
        logger.debug("Skipping message of type %s for %s", message.type.value, chat_id)
        return None

    def _render(self, text: Optional[str], extra: Extra) -> Optional[str]:
        if text and extra.format == MessageFormat.HTML:
            text = html_to_markdown(text)
        return text.strip() if text else text

    @staticmethod
    def _reply_to(message: Message) -> Optional[int]:
        if message.reply is None or message.reply.id is None:
            return None
        try:
            return int(message.reply.id)
        except (TypeError, ValueError):
            return None

    async def _send_text(
        self, chat_id: Union[int, str], message: Message
    ) -> Optional[OutboundSendResult]:
        text = self._render(message.content, message.extra)
        if not text:
            return None

        await self.send_chat_action(chat_id, message.type)
        if len(text) > self._max_message_length:
            chunks = split_large_message(text, self._max_message_length)
        else:
            chunks = [text]

        reply_markup = build_reply_markup(message.extra.reply_markup, self._bot)
        reply_to = self._reply_to(message)
        preview = bool(message.extra.preview)
        sent_ids: list[str] = []
        for chunk in chunks:
            if not chunk.strip():
                continue
            sent = await self._bot.send_message(
                chat_id=chat_id,
                text=chunk,
                parse_mode=ParseMode.MARKDOWN,
                reply_markup=reply_markup,
                reply_to_message_id=reply_to,
                link_preview_options=LinkPreviewOptions(is_disabled=not preview),
            )
            sent_ids.append(str(sent.message_id))
        return OutboundSendResult(success=True, platform_message_ids=sent_ids)

    async def _send_media(
        self, chat_id: Union[int, str], message: Message
    ) -> Optional[OutboundSendResult]:
        if not message.content:
            logger.debug("Skipping %s without content for %s", message.type.value, chat_id)
            return None

        await self.send_chat_action(chat_id, message.type)
        captioned = message.type in CAPTIONED_SENDS
        method_name, file_arg = (
            CAPTIONED_SENDS[message.type] if captioned else UNCAPTIONED_SENDS[message.type]
        )
        kwargs: dict[str, Any] = {
            "chat_id": chat_id,
            "reply_to_message_id": self._reply_to(message),
        }
        if captioned:
            kwargs["caption"] = self._render(message.extra.caption, message.extra) or None
            kwargs["parse_mode"] = ParseMode.MARKDOWN

        attachment = await self._resolver.resolve(message.content)
        try:
            kwargs[file_arg] = attachment.handle
            sent = await getattr(self._bot, method_name)(**kwargs)
        finally:
            attachment.release()
        return OutboundSendResult(success=True, platform_message_ids=[str(sent.message_id)])

    async def _forward(
        self, chat_id: Union[int, str], message: Message
    ) -> Optional[OutboundSendResult]:
        source_chat = message.extra.conversation
        source_message = message.extra.message
        if not source_chat or source_message is None:
            logger.debug("Skipping forward without source for %s", chat_id)
            return None
        try:
            message_id = int(source_message)
        except (TypeError, ValueError):
            logger.warning("Skipping forward with non-numeric message id %r", source_message)
            return None

        await self.send_chat_action(chat_id, message.type)
        sent = await self._bot.forward_message(
            chat_id=chat_id,
            from_chat_id=native_chat_id(source_chat),
            message_id=message_id,
        )
        return OutboundSendResult(success=True, platform_message_ids=[str(sent.message_id)])
