"""Publish local parameter files into the manifest.

A batch goes through four phases and commits all-or-nothing:

1. Digest (parallel): compute digest and size, derive identifier and classifier.
2. Plan: compare against the manifest; a changed digest under an existing
   identifier needs ``confirm_overwrite``.
3. Upload (parallel, optional): push new and changed files to the
   distribution endpoint.
4. Commit: under the manifest lock, atomically save the merged manifest,
   then move staged copies into the cache directory.

Any failure before the commit leaves the manifest exactly as it was.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from proof_params.catalog.models import Manifest, ParameterEntry
from proof_params.catalog.naming import classifier_for, identifier_for
from proof_params.catalog.store import ManifestStore
from proof_params.digest.hasher import check_file, digest_file, file_size
from proof_params.errors import (
    DigestMismatch,
    IoError,
    ParamsError,
    PersistenceError,
    PublishConflict,
    PublishError,
)
from proof_params.transfer.client import TransferClient
from proof_params.transfer.retry import RetryPolicy

logger = logging.getLogger(__name__)

DEFAULT_WORKERS = 4


class PublishAction(StrEnum):
    """What committing a candidate does to the manifest."""

    ADDED = "added"
    REPLACED = "replaced"
    UNCHANGED = "unchanged"


@dataclass(frozen=True)
class PublishCandidate:
    """A local file with its computed manifest entry."""

    path: Path
    entry: ParameterEntry
    action: Optional[PublishAction] = None

    @property
    def identifier(self) -> str:
        return self.entry.identifier


@dataclass
class _StagedFile:
    tmp_path: Path
    dest_path: Path


class PublishOrchestrator:
    """Digest, upload and commit batches of parameter files."""

    def __init__(
        self,
        store: ManifestStore,
        cache_dir: Path,
        transfer: Optional[TransferClient] = None,
        *,
        policy: Optional[RetryPolicy] = None,
        workers: int = DEFAULT_WORKERS,
        lock_timeout: float = 30.0,
    ):
        self.store = store
        self.cache_dir = cache_dir
        self.transfer = transfer
        self.policy = policy or RetryPolicy()
        self.workers = max(1, workers)
        self.lock_timeout = lock_timeout

    def plan(
        self,
        candidate_paths: Iterable[Path],
        manifest: Manifest,
        *,
        classifier: Optional[str] = None,
        confirm_overwrite: bool = False,
    ) -> list[PublishCandidate]:
        """Digest candidates and decide what each would do, without side effects.

        Raises:
            PublishConflict: A digest would change without ``confirm_overwrite``
            PublishError: A candidate cannot be read or classified
        """
        candidates = self._dedupe(self._digest_all(list(candidate_paths), classifier))
        planned: list[PublishCandidate] = []
        for candidate in candidates:
            existing = manifest.get(candidate.identifier)
            if existing is None:
                action = PublishAction.ADDED
            elif existing == candidate.entry:
                action = PublishAction.UNCHANGED
            else:
                if existing.digest != candidate.entry.digest and not confirm_overwrite:
                    raise PublishConflict(candidate.identifier, existing.digest, candidate.entry.digest)
                action = PublishAction.REPLACED
            planned.append(PublishCandidate(candidate.path, candidate.entry, action))
        return planned

    def publish(
        self,
        candidate_paths: Iterable[Path],
        manifest: Manifest,
        *,
        classifier: Optional[str] = None,
        confirm_overwrite: bool = False,
    ) -> Manifest:
        """Publish a batch of files and return the committed manifest.

        Args:
            candidate_paths: Local parameter files
            manifest: Manifest loaded at the start of the run
            classifier: Classifier for every candidate; derived from each
                file's ``.meta`` sidecar when omitted
            confirm_overwrite: Allow replacing an existing identifier's digest

        Returns:
            The updated manifest (``manifest`` itself if nothing changed)

        Raises:
            PublishConflict: Digest change without confirmation
            PublishError: Digest, upload or staging failure; nothing committed
            PersistenceError: The manifest could not be committed
        """
        planned = self.plan(
            candidate_paths,
            manifest,
            classifier=classifier,
            confirm_overwrite=confirm_overwrite,
        )
        pending = [c for c in planned if c.action != PublishAction.UNCHANGED]
        for candidate in planned:
            logger.info("%s: %s", candidate.identifier, candidate.action)
        if not pending:
            logger.info("Nothing to publish; manifest unchanged")
            return manifest

        if self.transfer is not None:
            self._upload_all(pending)
        else:
            logger.debug("No distribution endpoint configured; skipping upload")

        updated = manifest.with_entries(c.entry for c in pending)
        staged = self._stage_all(pending)
        try:
            with self.store.lock(self.lock_timeout):
                on_disk = self.store.load()
                if on_disk != manifest:
                    raise PersistenceError(
                        f"Manifest {self.store.path} changed since it was loaded; re-run publish"
                    )
                self.store.save(updated)
        except Exception:
            self._discard_staged(staged)
            raise

        self._install_staged(staged)
        logger.info("Published %d parameter file(s)", len(pending))
        return updated

    def _digest_one(self, path: Path, classifier: Optional[str]) -> PublishCandidate:
        if not path.is_file():
            raise PublishError(f"Candidate {path} is not a file")

        resolved_classifier = classifier_for(path, classifier)
        if not resolved_classifier:
            raise PublishError(
                f"Cannot determine classifier for {path}: pass a classifier "
                f"or provide {path.with_suffix('.meta').name} with a sector_size"
            )

        try:
            size = file_size(path)
            digest = digest_file(path)
        except IoError as exc:
            raise PublishError(str(exc)) from exc

        try:
            entry = ParameterEntry(
                identifier=identifier_for(path),
                digest=digest,
                size=size,
                classifier=resolved_classifier,
            )
        except ValidationError as exc:
            raise PublishError(f"Invalid candidate {path}: {exc}") from exc

        logger.debug("%s: digest %s, %d bytes", entry.identifier, digest, size)
        return PublishCandidate(path, entry)

    def _digest_all(self, paths: list[Path], classifier: Optional[str]) -> list[PublishCandidate]:
        with ThreadPoolExecutor(max_workers=self.workers) as pool:
            return list(pool.map(lambda p: self._digest_one(p, classifier), paths))

    def _dedupe(self, candidates: list[PublishCandidate]) -> list[PublishCandidate]:
        by_id: dict[str, PublishCandidate] = {}
        for candidate in candidates:
            previous = by_id.get(candidate.identifier)
            if previous is None:
                by_id[candidate.identifier] = candidate
            elif previous.entry != candidate.entry:
                raise PublishError(
                    f"Batch contains two different files named {candidate.identifier}: "
                    f"{previous.path} and {candidate.path}"
                )
        return [by_id[identifier] for identifier in sorted(by_id)]

    def _upload_one(self, candidate: PublishCandidate) -> None:
        url = self.transfer.url_for(candidate.identifier)
        self.policy.call(lambda: self.transfer.upload(url, candidate.path))
        logger.info("Uploaded %s", candidate.identifier)

    def _upload_all(self, candidates: list[PublishCandidate]) -> None:
        errors: list[str] = []
        with ThreadPoolExecutor(max_workers=self.workers) as pool:
            futures = {pool.submit(self._upload_one, c): c for c in candidates}
            for future in as_completed(futures):
                try:
                    future.result()
                except ParamsError as exc:
                    logger.error("Upload of %s failed: %s", futures[future].identifier, exc)
                    errors.append(str(exc))
        if errors:
            raise PublishError(
                f"{len(errors)} upload(s) failed; manifest not updated: " + "; ".join(sorted(errors))
            )

    def _stage_all(self, candidates: list[PublishCandidate]) -> list[_StagedFile]:
        """Copy candidates that live outside the cache directory next to their destination."""
        staged: list[_StagedFile] = []
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            for candidate in candidates:
                dest = self.cache_dir / candidate.identifier
                if candidate.path.resolve() == dest.resolve():
                    continue
                fd, tmp_name = tempfile.mkstemp(
                    dir=self.cache_dir,
                    prefix=f".{candidate.identifier}.",
                    suffix=".staged",
                )
                os.close(fd)
                tmp_path = Path(tmp_name)
                staged.append(_StagedFile(tmp_path, dest))
                shutil.copyfile(candidate.path, tmp_path)
                check_file(tmp_path, candidate.entry)
        except DigestMismatch as exc:
            self._discard_staged(staged)
            raise PublishError(f"Candidate changed while publishing: {exc}") from exc
        except (OSError, IoError) as exc:
            self._discard_staged(staged)
            raise PublishError(f"Cannot stage files into {self.cache_dir}: {exc}") from exc
        return staged

    def _discard_staged(self, staged: list[_StagedFile]) -> None:
        for item in staged:
            try:
                item.tmp_path.unlink(missing_ok=True)
            except OSError as exc:
                logger.warning("Could not remove staged file %s: %s", item.tmp_path, exc)

    def _install_staged(self, staged: list[_StagedFile]) -> None:
        for item in staged:
            try:
                os.replace(item.tmp_path, item.dest_path)
            except OSError as exc:
                raise IoError(item.dest_path, f"manifest committed but cache copy failed: {exc}") from exc
