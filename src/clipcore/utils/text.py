"""
Text helpers shared by the extractors.
"""

from __future__ import annotations

import re
import uuid

_WHITESPACE = re.compile(r"\s+")
_NON_WORD = re.compile(r"[\W_]+")
_SENTENCE_END = re.compile(r"[。！？!?]|\.(?=\s|$)")


def collapse_whitespace(text: str) -> str:
    """Collapse runs of whitespace into single spaces and trim."""
    return _WHITESPACE.sub(" ", text).strip()


def normalize_for_match(text: str) -> str:
    """
    Reduce text to lower-cased word characters and CJK ideographs so that
    titles and body lines can be compared regardless of punctuation.
    """
    return _NON_WORD.sub("", text).lower()


def content_hash(text: str, limit: int = 100) -> str:
    """
    Signed 32-bit rolling hash (h = h*31 + c) over the first ``limit``
    characters, rendered in base 36.
    """
    h = 0
    for ch in text[:limit]:
        h = (h * 31 + ord(ch)) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return _to_base36(h)


def _to_base36(value: int) -> str:
    digits = "0123456789abcdefghijklmnopqrstuvwxyz"
    if value == 0:
        return "0"
    sign = "-" if value < 0 else ""
    value = abs(value)
    out = []
    while value:
        value, rem = divmod(value, 36)
        out.append(digits[rem])
    return sign + "".join(reversed(out))


def first_sentence(text: str) -> str:
    """Return the first sentence of ``text`` including its terminator."""
    text = text.strip()
    match = _SENTENCE_END.search(text)
    if not match:
        return text.split("\n", 1)[0].strip()
    return text[: match.end()].strip()


def generate_id() -> str:
    return uuid.uuid4().hex[:12]
