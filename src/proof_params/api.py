"""Caller-facing API for fetching, publishing and checking parameter files.

``ParameterCatalog`` wires the manifest store, transfer client and
orchestrators together from ``Settings``. The module-level ``fetch``,
``publish`` and ``verify_all`` functions build a catalog from the user's
configuration for one-off calls.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path
from typing import Optional

import httpx

from proof_params.catalog.models import ClassifierFilter, Manifest
from proof_params.catalog.store import ManifestStore
from proof_params.config import ParamsConfig, Settings
from proof_params.fetch.orchestrator import FetchOrchestrator, FetchReport, verify_cache
from proof_params.publish.orchestrator import PublishCandidate, PublishOrchestrator
from proof_params.transfer.client import TransferClient
from proof_params.transfer.retry import RetryPolicy

__all__ = [
    "ParameterCatalog",
    "fetch",
    "publish",
    "verify_all",
]

logger = logging.getLogger(__name__)


class ParameterCatalog:
    """Entry point for the fetch, publish and verify operations.

    Args:
        settings: Resolved settings; loaded from the user's config when omitted
        client: Optional pre-configured ``httpx.Client`` (e.g., carrying
            credentials) passed through to the transfer layer
        policy: Retry policy; defaults to ``settings.max_attempts`` attempts
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        client: Optional[httpx.Client] = None,
        policy: Optional[RetryPolicy] = None,
    ):
        self.settings = settings or ParamsConfig().load()
        self.store = ManifestStore(self.settings.resolved_manifest_path)
        self.policy = policy or RetryPolicy(max_attempts=self.settings.max_attempts)
        self._client = client

    @property
    def cache_dir(self) -> Path:
        return self.settings.cache_dir

    def load_manifest(self) -> Manifest:
        return self.store.load()

    def _transfer_client(self) -> TransferClient:
        return TransferClient(
            self.settings.base_url,
            client=self._client,
            timeout=self.settings.timeout,
        )

    def fetch(self, classifier_filter: ClassifierFilter = None) -> FetchReport:
        """Download and verify every entry selected by ``classifier_filter``.

        Raises:
            ManifestCorrupt: If the manifest cannot be loaded
        """
        manifest = self.store.load()
        with self._transfer_client() as transfer:
            orchestrator = FetchOrchestrator(
                manifest,
                transfer,
                self.cache_dir,
                policy=self.policy,
                workers=self.settings.workers,
                lock_timeout=self.settings.lock_timeout,
            )
            return orchestrator.run(classifier_filter)

    def _publisher(self, transfer: Optional[TransferClient]) -> PublishOrchestrator:
        return PublishOrchestrator(
            self.store,
            self.cache_dir,
            transfer,
            policy=self.policy,
            workers=self.settings.workers,
            lock_timeout=self.settings.lock_timeout,
        )

    def plan_publish(
        self,
        paths: Iterable[Path],
        classifier: Optional[str] = None,
        confirm_overwrite: bool = False,
    ) -> list[PublishCandidate]:
        """Report what ``publish`` would do without uploading or committing."""
        manifest = self.store.load()
        return self._publisher(None).plan(
            paths,
            manifest,
            classifier=classifier,
            confirm_overwrite=confirm_overwrite,
        )

    def publish(
        self,
        paths: Iterable[Path],
        classifier: Optional[str] = None,
        confirm_overwrite: bool = False,
        *,
        upload: bool = True,
    ) -> Manifest:
        """Publish ``paths`` as one batch and return the committed manifest.

        Files are uploaded first when a base URL is configured and ``upload``
        is set.

        Raises:
            ManifestCorrupt: If the manifest cannot be loaded
            PublishError: If the batch was rejected; nothing committed
            PersistenceError: If the commit failed
        """
        manifest = self.store.load()
        transfer = self._transfer_client() if upload and self.settings.base_url else None
        try:
            return self._publisher(transfer).publish(
                paths,
                manifest,
                classifier=classifier,
                confirm_overwrite=confirm_overwrite,
            )
        finally:
            if transfer is not None:
                transfer.close()

    def verify_all(self, classifier_filter: ClassifierFilter = None) -> dict[str, bool]:
        """Check local files for every selected manifest entry."""
        manifest = self.store.load()
        return verify_cache(
            manifest,
            self.cache_dir,
            classifier_filter,
            workers=self.settings.workers,
        )


def fetch(classifier_filter: ClassifierFilter = None) -> FetchReport:
    return ParameterCatalog().fetch(classifier_filter)


def publish(
    paths: Iterable[Path],
    classifier: Optional[str] = None,
    confirm_overwrite: bool = False,
) -> Manifest:
    return ParameterCatalog().publish(paths, classifier, confirm_overwrite)


def verify_all(classifier_filter: ClassifierFilter = None) -> dict[str, bool]:
    return ParameterCatalog().verify_all(classifier_filter)
