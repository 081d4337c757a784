"""Principals: a signing key plus the credentials and trust roots it holds."""
from __future__ import annotations

import json
import logging
import os
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Mapping, Sequence

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from physlock.config.const import ALL_PRINCIPALS, CHAIN_SEPARATOR

from .credentials import Certificate, Credential, chain_name, decode_key, encode_key, signing_payload
from .patterns import any_matched_by, matched_by
from .restrictions import CallFacts, Restriction

__all__ = [
    "Principal",
    "BlessingStore",
    "BlessingRoots",
    "add_to_roots",
    "displayed_names",
    "validated_names",
    "expiry",
]

_log = logging.getLogger("physlock.security.principal")

_KEY_FILE = "private_key.pem"
_BLESSINGS_FILE = "blessings.json"
_ROOTS_FILE = "roots.json"


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


def _raw_public(key: Ed25519PrivateKey) -> bytes:
    return key.public_key().public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )


def write_private_key(path: Path, key: Ed25519PrivateKey) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    pem = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    path.write_bytes(pem)
    try:
        path.chmod(0o600)
    except PermissionError:
        # best effort on platforms that do not support chmod
        pass


def _check_extension(extension: str) -> None:
    if not extension or CHAIN_SEPARATOR in extension:
        raise ValueError(f"invalid extension {extension!r}: must be non-empty and free of {CHAIN_SEPARATOR!r}")
    if extension == ALL_PRINCIPALS:
        raise ValueError(f"{ALL_PRINCIPALS!r} is reserved and cannot be used as an extension")


class BlessingRoots:
    """Root public keys this principal trusts, each for a set of name patterns."""

    def __init__(self, owner: "Principal") -> None:
        self._owner = owner
        self._roots: dict[bytes, set[str]] = {}

    def add(self, root_key: bytes, pattern: str) -> None:
        with self._owner._mu:
            self._roots.setdefault(bytes(root_key), set()).add(pattern)
        self._owner._persist()

    def recognized(self, root_key: bytes, name: str) -> bool:
        with self._owner._mu:
            patterns = set(self._roots.get(bytes(root_key), ()))
        return any(matched_by(p, name) for p in patterns)

    def dump(self) -> list[dict[str, Any]]:
        with self._owner._mu:
            return [
                {"public_key": encode_key(k), "patterns": sorted(p)}
                for k, p in self._roots.items()
            ]

    def _load(self, items: Iterable[Mapping[str, Any]]) -> None:
        for item in items:
            key = decode_key(str(item["public_key"]))
            self._roots.setdefault(key, set()).update(str(p) for p in item.get("patterns") or [])


class BlessingStore:
    """The default credential plus credentials kept for specific peers."""

    def __init__(self, owner: "Principal") -> None:
        self._owner = owner
        self._default: Credential | None = None
        self._peers: dict[str, Credential] = {}

    def _check_key(self, credential: Credential) -> None:
        if credential.public_key != self._owner.public_key:
            raise ValueError("credential is not bound to this principal's public key")

    def default(self) -> Credential | None:
        with self._owner._mu:
            return self._default

    def set_default(self, credential: Credential | None) -> None:
        """Make ``credential`` the default; ``None`` clears it."""

        if credential is not None:
            self._check_key(credential)
        with self._owner._mu:
            self._default = credential
        self._owner._persist()

    def set(self, credential: Credential | None, pattern: str) -> Credential | None:
        """Store ``credential`` for peers matching ``pattern``; ``None`` removes it.
        Returns the credential previously stored for the pattern."""

        if credential is not None:
            self._check_key(credential)
        with self._owner._mu:
            previous = self._peers.get(pattern)
            if credential is None:
                self._peers.pop(pattern, None)
            else:
                self._peers[pattern] = credential
        self._owner._persist()
        return previous

    def for_peer(self, peer_names: Sequence[str]) -> Credential | None:
        with self._owner._mu:
            selected = [cred for pattern, cred in self._peers.items() if any_matched_by(pattern, peer_names)]
        if not selected:
            return None
        return Credential.union(*selected)

    def peer_credentials(self) -> dict[str, Credential]:
        with self._owner._mu:
            return dict(self._peers)

    def dump(self) -> dict[str, Any]:
        with self._owner._mu:
            return {
                "default": self._default.to_dict() if self._default is not None else None,
                "peers": {pattern: cred.to_dict() for pattern, cred in self._peers.items()},
            }

    def _load(self, data: Mapping[str, Any]) -> None:
        default = data.get("default")
        self._default = Credential.from_dict(default) if default else None
        self._peers = {str(p): Credential.from_dict(c) for p, c in (data.get("peers") or {}).items()}


class Principal:
    """An Ed25519 identity that can issue and hold credentials.

    When ``directory`` is set every change to the store or the roots is
    written back to it, so the principal survives restarts.
    """

    def __init__(self, private_key: Ed25519PrivateKey, *, directory: Path | None = None) -> None:
        self._key = private_key
        self._public = _raw_public(private_key)
        self._dir = Path(directory) if directory is not None else None
        self._mu = threading.RLock()
        self._loading = False
        self.store = BlessingStore(self)
        self.roots = BlessingRoots(self)

    # ---------- construction ------------------------------------------------
    @classmethod
    def create(cls, name: str, *, directory: Path | None = None) -> "Principal":
        """New principal whose default credential is a self-blessing ``name``."""

        principal = cls(Ed25519PrivateKey.generate(), directory=directory)
        if directory is not None:
            write_private_key(Path(directory) / _KEY_FILE, principal._key)
        cred = principal.bless_self(name)
        principal.store.set_default(cred)
        principal.store.set(cred, ALL_PRINCIPALS)
        add_to_roots(principal, cred)
        return principal

    @classmethod
    def load(cls, directory: Path) -> "Principal":
        directory = Path(directory)
        key = serialization.load_pem_private_key((directory / _KEY_FILE).read_bytes(), password=None)
        if not isinstance(key, Ed25519PrivateKey):
            raise ValueError(f"{directory / _KEY_FILE} does not hold an Ed25519 key")
        principal = cls(key, directory=directory)
        principal._loading = True
        try:
            blessings = directory / _BLESSINGS_FILE
            if blessings.exists():
                principal.store._load(json.loads(blessings.read_text(encoding="utf-8")))
            roots = directory / _ROOTS_FILE
            if roots.exists():
                principal.roots._load(json.loads(roots.read_text(encoding="utf-8")))
        finally:
            principal._loading = False
        return principal

    @classmethod
    def load_or_create(cls, directory: Path, name: str) -> "Principal":
        if (Path(directory) / _KEY_FILE).exists():
            return cls.load(directory)
        return cls.create(name, directory=directory)

    # ---------- identity operations ------------------------------------------
    @property
    def public_key(self) -> bytes:
        return self._public

    def bless_self(self, name: str, restrictions: Sequence[Restriction] = ()) -> Credential:
        _check_extension(name)
        payload = signing_payload(None, name, self._public, restrictions)
        cert = Certificate(name, self._public, tuple(restrictions), self._key.sign(payload))
        return Credential(public_key=self._public, chains=((cert,),))

    def bless(
        self,
        public_key: bytes,
        with_credential: Credential,
        extension: str,
        restrictions: Sequence[Restriction],
    ) -> Credential:
        """Extend every chain of ``with_credential`` (held by this principal)
        with ``extension`` for ``public_key``."""

        _check_extension(extension)
        if with_credential.public_key != self._public:
            raise ValueError("can only bless with credentials bound to this principal")
        if with_credential.is_empty():
            raise ValueError("cannot bless with an empty credential")
        chains = []
        for chain in with_credential.chains:
            payload = signing_payload(chain[-1], extension, public_key, restrictions)
            cert = Certificate(extension, bytes(public_key), tuple(restrictions), self._key.sign(payload))
            chains.append(chain + (cert,))
        return Credential(public_key=bytes(public_key), chains=tuple(chains))

    def default_names(self) -> list[str]:
        default = self.store.default()
        return displayed_names(self, default) if default is not None else []

    # ---------- persistence ---------------------------------------------------
    def _persist(self) -> None:
        if self._dir is None or self._loading:
            return
        with self._mu:
            self._dir.mkdir(parents=True, exist_ok=True)
            self._write(self._dir / _BLESSINGS_FILE, self.store.dump())
            self._write(self._dir / _ROOTS_FILE, self.roots.dump())

    @staticmethod
    def _write(path: Path, payload: Any) -> None:
        tmp = path.with_suffix(path.suffix + ".tmp")
        tmp.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
        os.replace(tmp, path)


def add_to_roots(principal: Principal, credential: Credential) -> None:
    """Trust the root of every chain in ``credential`` for names under that root."""

    for chain in credential.chains:
        root = chain[0]
        principal.roots.add(root.public_key, root.extension)
        _log.debug("added root %s", root.extension)


def displayed_names(principal: Principal, credential: Credential) -> list[str]:
    """Names of ``credential`` whose roots ``principal`` recognizes.

    Restrictions are not evaluated: these are the names the holder may show
    for itself, not the names a peer would accept during a call.
    """

    recognized = principal.roots.recognized
    names: list[str] = []
    for chain in credential.verified_chains():
        name = chain_name(chain)
        if recognized(chain[0].public_key, name):
            names.append(name)
    return names


def validated_names(
    principal: Principal,
    credential: Credential | None,
    *,
    peer_names: Sequence[str],
    now: datetime | None = None,
) -> list[str]:
    """Names a verifying ``principal`` accepts from ``credential`` when talking
    to a peer called ``peer_names``: roots recognized and all restrictions hold."""

    if credential is None:
        return []
    facts = CallFacts(peer_names=tuple(peer_names), now=now or _utcnow())
    return credential.valid_chain_names(facts, principal.roots.recognized)


def expiry(credential: Credential) -> datetime | None:
    return credential.expiry()
