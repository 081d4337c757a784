"""Keys held by users: storage, listing and the grant protocol."""
from .grant import ConfirmKey, Granter, RecvKeyService, prompt_confirm, receive_key, send_key
from .store import CredentialStore, KeyEntry, KeyListing, describe_expiry

__all__ = [
    "ConfirmKey",
    "Granter",
    "RecvKeyService",
    "prompt_confirm",
    "receive_key",
    "send_key",
    "CredentialStore",
    "KeyEntry",
    "KeyListing",
    "describe_expiry",
]
