"""
Text helpers for outbound delivery.

HTML from the hub is rewritten into the Markdown dialect used for sends, and
oversized texts are split on line boundaries. Pure functions, no I/O.
"""

from __future__ import annotations

import re
from typing import Callable, Union

LINE_BREAK = "\n"

_Replacement = Union[str, Callable[[re.Match], str]]


def _quote(prefix: str) -> Callable[[re.Match], str]:
    def replace(match: re.Match) -> str:
        body = re.sub(r"\r?\n", "\n> ", match.group(1))
        return prefix + body.strip()

    return replace


# Order matters: expandable quotes before plain ones, markup before unescaping.
_HTML_RULES: list[tuple[re.Pattern, _Replacement]] = [
    (re.compile(r'<a href="(.*?)">(.*?)</a>', re.IGNORECASE), r"[\2](\1)"),
    (re.compile(r"<i>(.*?)</i>", re.IGNORECASE), r"_\1_"),
    (re.compile(r"<b>(.*?)</b>", re.IGNORECASE), r"*\1*"),
    (re.compile(r"<u>(.*?)</u>", re.IGNORECASE), r"~\1~"),
    (re.compile(r"<code>(.*?)</code>", re.IGNORECASE), r"`\1`"),
    (re.compile(r"<pre>(.*?)</pre>", re.IGNORECASE), r"```\1```"),
    (
        re.compile(r"<blockquote expandable>([\s\S]*?)</blockquote>", re.IGNORECASE),
        _quote("**> "),
    ),
    (re.compile(r"<blockquote>([\s\S]*?)</blockquote>", re.IGNORECASE), _quote("> ")),
    (
        re.compile(r'<tg-emoji emoji-id="(.*?)">"(.*?)"</tg-emoji>', re.IGNORECASE),
        r"![\2](tg://emoji?id=\1)",
    ),
    (re.compile(r"&lt;", re.IGNORECASE), "<"),
    (re.compile(r"&gt;", re.IGNORECASE), ">"),
]


def html_to_markdown(text: str | None) -> str | None:
    """
    Rewrite the supported HTML subset into Markdown. Falsy input is returned as is.

    Escaped brackets are unescaped last, so ``&lt;b&gt;x&lt;/b&gt;`` becomes
    ``<b>x</b>`` and only a second pass turns that into ``*x*``.
    """
    if not text:
        return text
    for pattern, replacement in _HTML_RULES:
        text = pattern.sub(replacement, text)
    return text


def escape_html(text: str | None) -> str | None:
    """Escape angle brackets so text survives an HTML rendering pass."""
    if not text:
        return text
    return text.replace("<", "&lt;").replace(">", "&gt;")


def split_large_message(content: str | None, max_length: int) -> list[str]:
    """
    Split text into chunks of at most ``max_length`` characters on line breaks.

    Lines are packed greedily; when every line fits the limit,
    ``LINE_BREAK.join(chunks)`` gives back the input. That includes a trailing
    line break, which yields an empty last chunk when the text before it fills
    the limit. A single line longer than the limit is cut into limit-sized
    pieces.
    """
    if max_length <= 0:
        raise ValueError("max_length must be positive")
    if not content:
        return []

    chunks: list[str] = []
    current: list[str] = []
    current_length = 0

    for line in content.split(LINE_BREAK):
        while len(line) > max_length:
            if current:
                chunks.append(LINE_BREAK.join(current))
                current, current_length = [], 0
            chunks.append(line[:max_length])
            line = line[max_length:]
        if not current:
            current, current_length = [line], len(line)
        elif current_length + len(LINE_BREAK) + len(line) <= max_length:
            current.append(line)
            current_length += len(LINE_BREAK) + len(line)
        else:
            chunks.append(LINE_BREAK.join(current))
            current, current_length = [line], len(line)

    chunks.append(LINE_BREAK.join(current))
    return chunks
