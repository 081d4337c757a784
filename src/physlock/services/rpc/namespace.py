"""Local mount table with glob-style discovery of mounted servers."""
from __future__ import annotations

import fnmatch
import logging
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterator

from physlock.services.errors import NoServersError

if TYPE_CHECKING:  # pragma: no cover
    from .runtime import Server

__all__ = ["GlobEntry", "Namespace"]

_log = logging.getLogger("physlock.rpc.namespace")


@dataclass(frozen=True, slots=True)
class GlobEntry:
    name: str
    endpoints: tuple[str, ...]
    blessing_names: tuple[str, ...]


def _segments(name: str) -> list[str]:
    return [part for part in name.strip("/").split("/") if part]


class Namespace:
    """Maps object names (``nh/lock-front_door/lock``) to running servers."""

    def __init__(self) -> None:
        self._mu = threading.Lock()
        self._mounts: dict[str, "Server"] = {}

    def mount(self, name: str, server: "Server") -> None:
        key = "/".join(_segments(name))
        with self._mu:
            current = self._mounts.get(key)
            if current is not None and current is not server:
                raise ValueError(f"{key!r} is already mounted")
            self._mounts[key] = server
        _log.info("mounted %s", key)

    def unmount(self, name: str, server: "Server") -> None:
        key = "/".join(_segments(name))
        with self._mu:
            if self._mounts.get(key) is server:
                del self._mounts[key]
                _log.info("unmounted %s", key)

    def resolve(self, name: str) -> "Server":
        key = "/".join(_segments(name))
        with self._mu:
            server = self._mounts.get(key)
        if server is None:
            raise NoServersError(key)
        return server

    def glob(self, pattern: str) -> Iterator[GlobEntry]:
        """Yield one entry per distinct name matching ``pattern`` segment-wise.

        A pattern shorter than a mounted name matches the name's prefix, so
        ``nh/lock-*`` lists every lock neighborhood regardless of the objects
        mounted below it.
        """

        wanted = _segments(pattern)
        with self._mu:
            mounts = sorted(self._mounts.items())
        found: dict[str, list["Server"]] = {}
        for key, server in mounts:
            parts = key.split("/")
            if len(parts) < len(wanted):
                continue
            if all(fnmatch.fnmatchcase(part, pat) for part, pat in zip(parts, wanted)):
                found.setdefault("/".join(parts[: len(wanted)]), []).append(server)
        for name, servers in found.items():
            yield GlobEntry(
                name=name,
                endpoints=tuple(s.endpoint for s in servers),
                blessing_names=tuple(n for s in servers for n in s.blessing_names()),
            )
