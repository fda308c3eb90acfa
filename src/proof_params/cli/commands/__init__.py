"""CLI command modules for proof-params."""

from .check import check, list_entries
from .fetch import fetch
from .publish import publish

__all__ = ["check", "fetch", "list_entries", "publish"]
