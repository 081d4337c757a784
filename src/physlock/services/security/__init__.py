"""In-process identity infrastructure: principals, signed credentials and restrictions."""
from .credentials import Certificate, Credential, chain_expiry, chain_name
from .patterns import any_matched_by, is_nested, join_name, matched_by
from .principal import (
    BlessingRoots,
    BlessingStore,
    Principal,
    add_to_roots,
    displayed_names,
    expiry,
    validated_names,
)
from .restrictions import CallFacts, ExpiresAt, PeerPattern, Restriction

__all__ = [
    "Certificate",
    "Credential",
    "chain_expiry",
    "chain_name",
    "any_matched_by",
    "is_nested",
    "join_name",
    "matched_by",
    "BlessingRoots",
    "BlessingStore",
    "Principal",
    "add_to_roots",
    "displayed_names",
    "expiry",
    "validated_names",
    "CallFacts",
    "ExpiresAt",
    "PeerPattern",
    "Restriction",
]
