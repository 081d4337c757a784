"""physlock: claim, share and operate physical locks with delegated keys."""

__version__ = "0.1.0"
