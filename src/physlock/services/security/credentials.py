"""Signed delegation chains ("credentials").

A chain starts with a self-signed certificate naming a root identity; every
following certificate extends the name with one extension and is signed by
the key the previous certificate was issued to. A :class:`Credential` is one
or more chains bound to the same public key; its names are the chain names.
"""
from __future__ import annotations

import base64
import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Iterable, Mapping, Sequence

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey

from physlock.config.const import CHAIN_SEPARATOR

from .restrictions import (
    CallFacts,
    ExpiresAt,
    Restriction,
    all_hold,
    restriction_from_dict,
    restriction_to_dict,
)

__all__ = ["Certificate", "Credential", "chain_expiry", "chain_name", "decode_key", "encode_key", "signing_payload", "verify_chain"]


def encode_key(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def decode_key(text: str) -> bytes:
    return base64.urlsafe_b64decode(text + "=" * (-len(text) % 4))


@dataclass(frozen=True, slots=True)
class Certificate:
    extension: str
    public_key: bytes
    restrictions: tuple[Restriction, ...]
    signature: bytes

    def to_dict(self) -> dict[str, Any]:
        return {
            "extension": self.extension,
            "public_key": encode_key(self.public_key),
            "restrictions": [restriction_to_dict(r) for r in self.restrictions],
            "signature": encode_key(self.signature),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Certificate":
        return cls(
            extension=str(data["extension"]),
            public_key=decode_key(str(data["public_key"])),
            restrictions=tuple(restriction_from_dict(r) for r in data.get("restrictions") or []),
            signature=decode_key(str(data["signature"])),
        )


Chain = tuple[Certificate, ...]


def signing_payload(
    parent: Certificate | None,
    extension: str,
    public_key: bytes,
    restrictions: Sequence[Restriction],
) -> bytes:
    """Canonical bytes signed for a certificate appended after ``parent``."""

    body = {
        "parent": encode_key(parent.signature) if parent is not None else "",
        "extension": extension,
        "public_key": encode_key(public_key),
        "restrictions": [restriction_to_dict(r) for r in restrictions],
    }
    return json.dumps(body, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def verify_chain(chain: Chain) -> bool:
    if not chain:
        return False
    parent: Certificate | None = None
    for cert in chain:
        signer = cert.public_key if parent is None else parent.public_key
        payload = signing_payload(parent, cert.extension, cert.public_key, cert.restrictions)
        try:
            Ed25519PublicKey.from_public_bytes(signer).verify(cert.signature, payload)
        except (InvalidSignature, ValueError):
            return False
        parent = cert
    return True


def chain_name(chain: Chain) -> str:
    return CHAIN_SEPARATOR.join(cert.extension for cert in chain)


def chain_expiry(chain: Chain) -> datetime | None:
    """Earliest expiry carried by any certificate of ``chain``."""

    stamps = [r.at for cert in chain for r in cert.restrictions if isinstance(r, ExpiresAt)]
    return min(stamps) if stamps else None


@dataclass(frozen=True, slots=True)
class Credential:
    """Immutable set of delegation chains bound to ``public_key``."""

    public_key: bytes
    chains: tuple[Chain, ...]

    def __post_init__(self) -> None:
        for chain in self.chains:
            if not chain or chain[-1].public_key != self.public_key:
                raise ValueError("every chain of a credential must end with the credential's public key")

    def __str__(self) -> str:
        return ",".join(self.names)

    @property
    def names(self) -> list[str]:
        """Chain names, without any root or restriction validation."""

        return [chain_name(chain) for chain in self.chains]

    def is_empty(self) -> bool:
        return not self.chains

    def verified_chains(self) -> Iterable[Chain]:
        return (chain for chain in self.chains if verify_chain(chain))

    def valid_chains(
        self,
        facts: CallFacts,
        recognized: Callable[[bytes, str], bool] | None = None,
    ) -> list[Chain]:
        """Chains that verify, whose restrictions hold for ``facts`` and, when
        ``recognized`` is given, whose root it accepts."""

        chains: list[Chain] = []
        for chain in self.verified_chains():
            if recognized is not None and not recognized(chain[0].public_key, chain_name(chain)):
                continue
            if not all(all_hold(cert.restrictions, facts) for cert in chain):
                continue
            chains.append(chain)
        return chains

    def valid_chain_names(
        self,
        facts: CallFacts,
        recognized: Callable[[bytes, str], bool] | None = None,
    ) -> list[str]:
        return [chain_name(chain) for chain in self.valid_chains(facts, recognized)]

    def expiry(self) -> datetime | None:
        """Earliest expiry carried by any certificate of any chain."""

        stamps = [stamp for stamp in map(chain_expiry, self.chains) if stamp is not None]
        return min(stamps) if stamps else None

    @classmethod
    def union(cls, *credentials: "Credential | None") -> "Credential":
        present = [c for c in credentials if c is not None and not c.is_empty()]
        if not present:
            raise ValueError("union of no credentials")
        key = present[0].public_key
        chains: list[Chain] = []
        for cred in present:
            if cred.public_key != key:
                raise ValueError("cannot union credentials bound to different public keys")
            for chain in cred.chains:
                if chain not in chains:
                    chains.append(chain)
        return cls(public_key=key, chains=tuple(chains))

    def to_dict(self) -> dict[str, Any]:
        return {
            "public_key": encode_key(self.public_key),
            "chains": [[cert.to_dict() for cert in chain] for chain in self.chains],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Credential":
        return cls(
            public_key=decode_key(str(data["public_key"])),
            chains=tuple(
                tuple(Certificate.from_dict(cert) for cert in chain) for chain in data.get("chains") or []
            ),
        )
