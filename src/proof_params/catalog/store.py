"""Load and persist the parameter manifest.

The manifest on disk is always a complete snapshot: ``save_manifest`` writes
to a temporary file in the same directory and atomically replaces the
destination with ``os.replace``. Output is canonical JSON (sorted keys,
two-space indent, trailing newline) so load-then-save is byte-identical.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from filelock import FileLock, Timeout
from pydantic import ValidationError

from proof_params.errors import ManifestCorrupt, PersistenceError

from .models import Manifest, ParameterEntry

logger = logging.getLogger(__name__)

MANIFEST_FILENAME = "parameters.json"


def manifest_to_json(manifest: Manifest) -> str:
    """Serialize a manifest to canonical JSON text."""
    return (
        json.dumps(
            manifest.to_dict(),
            sort_keys=True,
            indent=2,
            ensure_ascii=False,
        )
        + "\n"
    )


def manifest_from_json(text: str, source: Path | str = "<string>") -> Manifest:
    """Parse manifest JSON text, raising ManifestCorrupt on any malformed entry."""
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ManifestCorrupt(source, f"invalid JSON: {exc}") from exc

    if not isinstance(data, dict):
        raise ManifestCorrupt(source, f"expected a JSON object, got {type(data).__name__}")

    entries: list[ParameterEntry] = []
    for identifier, record in data.items():
        if not isinstance(record, dict):
            raise ManifestCorrupt(source, f"entry {identifier!r} is not an object")
        if "identifier" in record:
            raise ManifestCorrupt(source, f"entry {identifier!r} has unexpected field 'identifier'")
        try:
            entries.append(ParameterEntry.from_record(identifier, record))
        except ValidationError as exc:
            raise ManifestCorrupt(source, f"entry {identifier!r}: {exc}") from exc

    return Manifest(entries)


def load_manifest(path: Path) -> Manifest:
    """Load a manifest from ``path``.

    Returns an empty manifest when the file does not exist (first run).

    Raises:
        ManifestCorrupt: If the file exists but cannot be parsed
    """
    if not path.exists():
        logger.debug("No manifest at %s; starting empty", path)
        return Manifest()

    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ManifestCorrupt(path, f"unreadable: {exc}") from exc

    manifest = manifest_from_json(text, source=path)
    logger.debug("Loaded %d manifest entries from %s", len(manifest), path)
    return manifest


def save_manifest(manifest: Manifest, path: Path) -> None:
    """Atomically write ``manifest`` to ``path`` (temp file + rename).

    Raises:
        PersistenceError: If the temp write or rename fails; the previous
            manifest file is left untouched
    """
    payload = manifest_to_json(manifest)

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        # Same directory keeps the rename on one filesystem
        fd, tmp_path = tempfile.mkstemp(
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
        )
    except OSError as exc:
        raise PersistenceError(f"Cannot create temporary manifest next to {path}: {exc}") from exc

    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(payload)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_path, path)
    except OSError as exc:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise PersistenceError(f"Failed to write manifest {path}: {exc}") from exc

    logger.info("Committed manifest with %d entries to %s", len(manifest), path)


class ManifestStore:
    """Manifest file at a fixed path, with a lock for single-writer commits."""

    def __init__(self, path: Path):
        self.path = path
        self.lock_path = path.with_name(path.name + ".lock")

    def load(self) -> Manifest:
        return load_manifest(self.path)

    def save(self, manifest: Manifest) -> None:
        save_manifest(manifest, self.path)

    @contextmanager
    def lock(self, timeout: float = 30.0) -> Iterator[None]:
        """Hold the manifest write lock for the duration of the block.

        Raises:
            PersistenceError: If the lock cannot be acquired within ``timeout``
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)
        lock = FileLock(self.lock_path, timeout=timeout)
        try:
            lock.acquire()
        except Timeout as exc:
            raise PersistenceError(
                f"Cannot acquire lock on {self.path}. Another publish may be running."
            ) from exc
        try:
            yield
        finally:
            lock.release()
