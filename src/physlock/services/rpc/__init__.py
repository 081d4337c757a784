"""In-process name resolution, discovery and RPC dispatch."""
from .context import Context, resolve_once
from .namespace import GlobEntry, Namespace
from .runtime import (
    AllowEveryone,
    Authorizer,
    CallSecurity,
    DefaultAuthorizer,
    Granter,
    Runtime,
    Server,
    ServerCall,
)

__all__ = [
    "Context",
    "resolve_once",
    "GlobEntry",
    "Namespace",
    "AllowEveryone",
    "Authorizer",
    "CallSecurity",
    "DefaultAuthorizer",
    "Granter",
    "Runtime",
    "Server",
    "ServerCall",
]
