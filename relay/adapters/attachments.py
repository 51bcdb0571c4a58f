"""
Attachment resolution for outbound media.

Turns the ``content`` of a canonical media message into something the
platform SDK can upload or reference. Inline payloads are written to a
temporary file which the caller must release once the send is done.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import os
import re
import tempfile
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Union

from relay.infra.logging_config import get_logger

logger = get_logger("attachments")

_URL_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.\-]*://")
_WINDOWS_DRIVE_RE = re.compile(r"^[a-zA-Z]:\\")
_NUMERIC_RE = re.compile(r"^[+-]?\d+(\.\d+)?$")

# Leading base64 characters of common media formats
_BASE64_SIGNATURES = {
    "/9j/": ".jpg",
    "iVBORw0KGgo": ".png",
    "R0lGOD": ".gif",
    "UklGR": ".webp",
    "JVBERi0": ".pdf",
    "T2dnUw": ".ogg",
    "SUQz": ".mp3",
}

TEMP_PREFIX = "relay-"


class AttachmentKind(str, Enum):
    LOCAL_FILE = "local_file"
    INLINE = "inline"
    REMOTE = "remote"
    FILE_ID = "file_id"
    OPAQUE = "opaque"


@dataclass
class ResolvedAttachment:
    """A sendable handle. ``release()`` deletes the temporary file, if any."""

    kind: AttachmentKind
    handle: Union[str, Path]
    temporary: bool = False
    _released: bool = field(default=False, repr=False)

    def release(self) -> None:
        if self._released:
            return
        self._released = True
        if self.temporary and isinstance(self.handle, Path):
            self.handle.unlink(missing_ok=True)

    async def __aenter__(self) -> ResolvedAttachment:
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.release()


def is_absolute_reference(content: str) -> bool:
    return content.startswith("/") or bool(_WINDOWS_DRIVE_RE.match(content))


def is_url(content: str) -> bool:
    return bool(_URL_RE.match(content))


def is_numeric(content: str) -> bool:
    return bool(_NUMERIC_RE.match(content))


def _guess_suffix(payload: str) -> str:
    for signature, suffix in _BASE64_SIGNATURES.items():
        if payload.startswith(signature):
            return suffix
    return ".bin"


def _write_temp_file(data: bytes, suffix: str) -> Path:
    fd, name = tempfile.mkstemp(prefix=TEMP_PREFIX, suffix=suffix)
    with os.fdopen(fd, "wb") as fh:
        fh.write(data)
    return Path(name)


class AttachmentResolver:
    """Classifies content references: absolute path, URL, numeric id, opaque id."""

    async def resolve(self, content: str) -> ResolvedAttachment:
        """
        Resolve a content reference into a sendable handle.

        Raises:
            ValueError: if an absolute-looking reference is neither an existing
                file nor a valid base64 payload.
        """
        if is_absolute_reference(content):
            path = Path(content)
            if await asyncio.to_thread(path.is_file):
                return ResolvedAttachment(AttachmentKind.LOCAL_FILE, path)
            return await self._materialize(content)
        if is_url(content):
            return ResolvedAttachment(AttachmentKind.REMOTE, content)
        if is_numeric(content):
            return ResolvedAttachment(AttachmentKind.FILE_ID, content)
        return ResolvedAttachment(AttachmentKind.OPAQUE, content)

    async def _materialize(self, payload: str) -> ResolvedAttachment:
        try:
            data = base64.b64decode("".join(payload.split()), validate=True)
        except (binascii.Error, ValueError) as e:
            raise ValueError(
                "Content is neither an existing file nor a base64 payload"
            ) from e
        path = await asyncio.to_thread(_write_temp_file, data, _guess_suffix(payload))
        logger.debug("Materialized inline attachment to %s (%d bytes)", path, len(data))
        return ResolvedAttachment(AttachmentKind.INLINE, path, temporary=True)
