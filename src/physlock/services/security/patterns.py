"""Identity-name pattern matching.

A pattern ``p`` is matched by the name ``p`` itself and by every name that
extends it (``p:x``, ``p:x:y`` ...). A trailing ``:$`` restricts the match to
the exact name, and ``...`` matches every name.
"""
from __future__ import annotations

from typing import Iterable

from physlock.config.const import ALL_PRINCIPALS, CHAIN_SEPARATOR

__all__ = ["matched_by", "any_matched_by", "join_name", "is_nested"]

_EXACT_SUFFIX = CHAIN_SEPARATOR + "$"


def matched_by(pattern: str, name: str) -> bool:
    if pattern == ALL_PRINCIPALS:
        return True
    if not pattern or not name:
        return False
    if pattern.endswith(_EXACT_SUFFIX):
        return name == pattern[: -len(_EXACT_SUFFIX)]
    return name == pattern or name.startswith(pattern + CHAIN_SEPARATOR)


def any_matched_by(pattern: str, names: Iterable[str]) -> bool:
    return any(matched_by(pattern, name) for name in names)


def join_name(*parts: str) -> str:
    return CHAIN_SEPARATOR.join(parts)


def is_nested(name: str) -> bool:
    return CHAIN_SEPARATOR in name
