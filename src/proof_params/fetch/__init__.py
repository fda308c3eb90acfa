"""Fetch orchestration: download, verify, retry."""

from .orchestrator import FetchOrchestrator, FetchReport, verify_cache
from .states import ALLOWED_TRANSITIONS, FetchOutcome, FetchState, InvalidTransition

__all__ = [
    "FetchOrchestrator",
    "FetchReport",
    "verify_cache",
    "ALLOWED_TRANSITIONS",
    "FetchOutcome",
    "FetchState",
    "InvalidTransition",
]
