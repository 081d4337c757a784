"""Restrictions carried by credentials.

A credential chain is usable only while every restriction on every
certificate evaluates true for the call it is presented in.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping, Sequence, Union

from .patterns import any_matched_by

__all__ = [
    "PeerPattern",
    "ExpiresAt",
    "Restriction",
    "CallFacts",
    "restriction_to_dict",
    "restriction_from_dict",
]


@dataclass(frozen=True, slots=True)
class CallFacts:
    """What a restriction is evaluated against."""

    peer_names: Sequence[str]
    now: datetime


@dataclass(frozen=True, slots=True)
class PeerPattern:
    """Usable only against a peer whose names match one of ``patterns``."""

    patterns: tuple[str, ...]

    def __init__(self, *patterns: str) -> None:
        if not patterns:
            raise ValueError("PeerPattern requires at least one pattern")
        object.__setattr__(self, "patterns", tuple(patterns))

    def holds(self, facts: CallFacts) -> bool:
        return any(any_matched_by(p, facts.peer_names) for p in self.patterns)


@dataclass(frozen=True, slots=True)
class ExpiresAt:
    at: datetime

    def __post_init__(self) -> None:
        if self.at.tzinfo is None:
            object.__setattr__(self, "at", self.at.replace(tzinfo=timezone.utc))

    def holds(self, facts: CallFacts) -> bool:
        return facts.now < self.at


Restriction = Union[PeerPattern, ExpiresAt]


def all_hold(restrictions: Iterable[Restriction], facts: CallFacts) -> bool:
    return all(r.holds(facts) for r in restrictions)


def restriction_to_dict(restriction: Restriction) -> dict[str, Any]:
    if isinstance(restriction, PeerPattern):
        return {"type": "peer", "patterns": list(restriction.patterns)}
    if isinstance(restriction, ExpiresAt):
        return {"type": "expiry", "at": restriction.at.astimezone(timezone.utc).isoformat()}
    raise TypeError(f"unsupported restriction: {restriction!r}")


def restriction_from_dict(data: Mapping[str, Any]) -> Restriction:
    kind = data.get("type")
    if kind == "peer":
        return PeerPattern(*[str(p) for p in data.get("patterns") or []])
    if kind == "expiry":
        return ExpiresAt(datetime.fromisoformat(str(data["at"])))
    raise ValueError(f"unknown restriction type {kind!r}")
