"""Fetch and verify parameter files listed in the manifest.

Each selected identifier runs through the state machine in
``proof_params.fetch.states`` on a bounded thread pool. Failures are
isolated per identifier: the run always completes the whole requested set
and returns a ``FetchReport`` with one ``FetchOutcome`` per identifier.

Resume rules:
- A partial file shorter than the manifest size resumes from its length.
- A full-size file with the wrong digest, or an oversized file, is deleted
  and the next attempt starts from zero. A digest mismatch never resumes,
  including one found after completing a resumed download.

Per-identifier lock files live under ``<cache_dir>/.locks/``, not beside the
parameter files.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Any, Optional

from filelock import FileLock, Timeout

from proof_params.catalog.models import ClassifierFilter, Manifest, ParameterEntry
from proof_params.digest.hasher import check_file, verify
from proof_params.errors import (
    DigestMismatch,
    IoError,
    ParamsError,
    PermanentTransferError,
    RangeNotSatisfiable,
    TransientTransferError,
)
from proof_params.transfer.client import TransferClient
from proof_params.transfer.retry import RetryPolicy
from proof_params.transfer.session import TransferSession

from .states import FetchOutcome, FetchState, is_terminal

logger = logging.getLogger(__name__)

DEFAULT_WORKERS = 4
LOCK_DIRNAME = ".locks"


class FetchReport(Mapping[str, FetchOutcome]):
    """Per-identifier outcomes of a fetch run, ordered by identifier."""

    def __init__(self, outcomes: Mapping[str, FetchOutcome]):
        self._outcomes = dict(sorted(outcomes.items()))

    def __getitem__(self, identifier: str) -> FetchOutcome:
        return self._outcomes[identifier]

    def __iter__(self) -> Iterator[str]:
        return iter(self._outcomes)

    def __len__(self) -> int:
        return len(self._outcomes)

    @property
    def ok(self) -> bool:
        """True when every requested identifier ended verified."""
        return all(outcome.ok for outcome in self._outcomes.values())

    @property
    def verified(self) -> list[str]:
        return [i for i, o in self._outcomes.items() if o.ok]

    @property
    def failed(self) -> list[str]:
        return [i for i, o in self._outcomes.items() if o.state == FetchState.FAILED]

    def to_dict(self) -> dict[str, Any]:
        return {identifier: outcome.to_dict() for identifier, outcome in self._outcomes.items()}


class FetchOrchestrator:
    """Drive transfer and verification for a set of manifest entries."""

    def __init__(
        self,
        manifest: Manifest,
        transfer: TransferClient,
        cache_dir: Path,
        *,
        policy: Optional[RetryPolicy] = None,
        workers: int = DEFAULT_WORKERS,
        lock_timeout: float = 30.0,
    ):
        self.manifest = manifest
        self.transfer = transfer
        self.cache_dir = cache_dir
        self.policy = policy or RetryPolicy()
        self.workers = max(1, workers)
        self.lock_timeout = lock_timeout

    def path_for(self, identifier: str) -> Path:
        return self.cache_dir / identifier

    def lock_path_for(self, identifier: str) -> Path:
        """Lock file for an identifier, kept out of the cache listing."""
        return self.cache_dir / LOCK_DIRNAME / f"{identifier}.lock"

    def run(self, classifier_filter: ClassifierFilter = None) -> FetchReport:
        """Fetch every entry selected by ``classifier_filter``.

        Returns:
            FetchReport with an outcome for each selected identifier

        Raises:
            IoError: If the cache directory cannot be created
        """
        entries = self.manifest.entries_for(classifier_filter)
        if not entries:
            logger.warning("No manifest entries match classifier filter %r", classifier_filter)
            return FetchReport({})

        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise IoError(self.cache_dir, str(exc)) from exc

        logger.info("Fetching %d parameter file(s) into %s", len(entries), self.cache_dir)
        outcomes: dict[str, FetchOutcome] = {}
        with ThreadPoolExecutor(max_workers=self.workers) as pool:
            futures = [pool.submit(self.fetch_one, entry) for entry in entries]
            for future in as_completed(futures):
                outcome = future.result()
                outcomes[outcome.identifier] = outcome

        report = FetchReport(outcomes)
        logger.info("Fetch finished: %d verified, %d failed", len(report.verified), len(report.failed))
        return report

    def fetch_one(self, entry: ParameterEntry) -> FetchOutcome:
        """Run the state machine for one entry; never raises ParamsError."""
        outcome = FetchOutcome(entry.identifier)
        dest = self.path_for(entry.identifier)
        lock_path = self.lock_path_for(entry.identifier)
        lock = FileLock(lock_path, timeout=self.lock_timeout)

        try:
            lock_path.parent.mkdir(parents=True, exist_ok=True)
            with lock:
                self._drive(entry, dest, outcome)
        except Timeout:
            outcome.fail(f"{entry.identifier} is locked by another process")
        except (ParamsError, OSError) as exc:
            if not is_terminal(outcome.state):
                outcome.fail(str(exc))

        if outcome.ok:
            logger.info("%s verified (%s)", entry.identifier, " -> ".join(outcome.history))
        else:
            logger.error("%s failed: %s", entry.identifier, outcome.error)
        return outcome

    def _drive(self, entry: ParameterEntry, dest: Path, outcome: FetchOutcome) -> None:
        session = TransferSession.start(entry.identifier, dest, entry.size)

        if session.is_oversized:
            logger.warning(
                "%s: local file has %d bytes, expected %d; discarding",
                entry.identifier,
                session.received,
                entry.size,
            )
            session.discard()

        if session.is_complete:
            logger.debug("%s: full-size local file present, verifying", entry.identifier)
            outcome.transition(FetchState.VERIFYING)
            self._verify(entry, session, outcome)

        url: Optional[str] = None
        while not is_terminal(outcome.state):
            if url is None:
                url = self.transfer.url_for(entry.identifier)
            if outcome.state == FetchState.RETRYING:
                self.policy.wait(outcome.attempts)

            outcome.transition(FetchState.DOWNLOADING)
            outcome.attempts += 1
            resume_from = session.resume_from
            if resume_from:
                logger.info("%s: resuming at byte %d of %d", entry.identifier, resume_from, entry.size)

            try:
                written = self.transfer.download(url, dest, resume_from)
            except RangeNotSatisfiable as exc:
                session.discard()
                self._retry_or_fail(outcome, exc)
                continue
            except TransientTransferError as exc:
                outcome.bytes_downloaded += max(0, session.refresh() - resume_from)
                self._retry_or_fail(outcome, exc)
                continue
            except PermanentTransferError as exc:
                outcome.fail(str(exc))
                return

            outcome.bytes_downloaded += written
            session.refresh()
            outcome.transition(FetchState.VERIFYING)
            self._verify(entry, session, outcome)

    def _verify(self, entry: ParameterEntry, session: TransferSession, outcome: FetchOutcome) -> None:
        try:
            check_file(session.dest_path, entry)
        except DigestMismatch as exc:
            if exc.is_short:
                logger.warning("%s; will resume", exc)
            else:
                logger.warning("%s; discarding local file", exc)
                session.discard()
            self._retry_or_fail(outcome, exc)
            return

        outcome.error = None
        outcome.transition(FetchState.VERIFIED)

    def _retry_or_fail(self, outcome: FetchOutcome, exc: ParamsError) -> None:
        if self.policy.exhausted(outcome.attempts):
            outcome.fail(f"{exc} (after {outcome.attempts} attempt(s))")
            return
        logger.warning("%s: %s; retrying", outcome.identifier, exc)
        outcome.error = str(exc)
        outcome.transition(FetchState.RETRYING)


def verify_cache(
    manifest: Manifest,
    cache_dir: Path,
    classifier_filter: ClassifierFilter = None,
    *,
    workers: int = DEFAULT_WORKERS,
) -> dict[str, bool]:
    """Check every selected entry's local file against the manifest.

    Missing or unreadable files count as invalid.

    Returns:
        Mapping of identifier to validity, ordered by identifier
    """
    entries = manifest.entries_for(classifier_filter)

    def _check(entry: ParameterEntry) -> tuple[str, bool]:
        try:
            return entry.identifier, verify(cache_dir / entry.identifier, entry)
        except IoError as exc:
            logger.error("%s", exc)
            return entry.identifier, False

    with ThreadPoolExecutor(max_workers=max(1, workers)) as pool:
        results = dict(pool.map(_check, entries))

    invalid = [identifier for identifier, valid in results.items() if not valid]
    if invalid:
        logger.warning("%d of %d parameter file(s) invalid", len(invalid), len(results))
    return dict(sorted(results.items()))
