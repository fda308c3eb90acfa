"""Publish orchestration: digest, upload, atomic commit."""

from .orchestrator import PublishAction, PublishCandidate, PublishOrchestrator

__all__ = ["PublishAction", "PublishCandidate", "PublishOrchestrator"]
