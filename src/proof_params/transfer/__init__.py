"""Resumable transfer of parameter files."""

from .client import TransferClient, classify_status, parse_content_range
from .retry import RetryPolicy
from .session import TransferSession

__all__ = [
    "TransferClient",
    "classify_status",
    "parse_content_range",
    "RetryPolicy",
    "TransferSession",
]
