"""Naming conventions for locks and users in the local neighborhood."""
from __future__ import annotations

import posixpath

from physlock.config.const import (
    ALL_PRINCIPALS,
    CHAIN_SEPARATOR,
    LOCK_NH_PREFIX,
    LOCK_SUFFIX,
    NH_FRIENDLY_SEPARATOR,
    NH_ROOT,
    RECVKEY_SUFFIX,
    USER_IDENTITY_PREFIX,
    USER_NH_PREFIX,
)

__all__ = [
    "is_valid_lock_name",
    "user_id",
    "lock_nh_glob_prefix",
    "user_nh_glob_prefix",
    "lock_object_name",
    "recvkey_object_name",
]


def is_valid_lock_name(name: str) -> bool:
    return bool(name) and name != ALL_PRINCIPALS and CHAIN_SEPARATOR not in name


def user_id(*names: str) -> str:
    """Comma-separated user ids for identity ``names``.

    Names under the user identity prefix lose the prefix; every name then has
    its separators replaced so it can be used as a neighborhood name.
    """

    users = []
    for name in names:
        prefix = USER_IDENTITY_PREFIX + CHAIN_SEPARATOR
        if name.startswith(prefix):
            name = name[len(prefix):]
        users.append(name.replace(CHAIN_SEPARATOR, NH_FRIENDLY_SEPARATOR))
    return ",".join(users)


def lock_nh_glob_prefix() -> str:
    return posixpath.join(NH_ROOT, LOCK_NH_PREFIX)


def user_nh_glob_prefix() -> str:
    return posixpath.join(NH_ROOT, USER_NH_PREFIX)


def lock_object_name(lock_name: str) -> str:
    return posixpath.join(lock_nh_glob_prefix() + lock_name, LOCK_SUFFIX)


def recvkey_object_name(user: str) -> str:
    return posixpath.join(user_nh_glob_prefix() + user, RECVKEY_SUFFIX)
