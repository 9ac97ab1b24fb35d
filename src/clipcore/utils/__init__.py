"""Utility modules for ClipCore."""

from .atomic import atomic_write_json
from .text import collapse_whitespace, content_hash, first_sentence, generate_id, normalize_for_match

__all__ = [
    "atomic_write_json",
    "collapse_whitespace",
    "content_hash",
    "first_sentence",
    "generate_id",
    "normalize_for_match",
]
