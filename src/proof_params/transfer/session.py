"""In-flight state of one file's download."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from proof_params.digest.hasher import file_size


@dataclass
class TransferSession:
    """Ephemeral download state; only the partial file on disk outlives it.

    Attributes:
        identifier: Manifest identifier being fetched
        dest_path: Final location of the file in the cache directory
        expected_size: Size recorded in the manifest
        received: Bytes currently on disk at ``dest_path``
    """

    identifier: str
    dest_path: Path
    expected_size: int
    received: int = 0

    @classmethod
    def start(cls, identifier: str, dest_path: Path, expected_size: int) -> TransferSession:
        session = cls(identifier=identifier, dest_path=dest_path, expected_size=expected_size)
        session.refresh()
        return session

    def refresh(self) -> int:
        """Re-read the partial file size from disk."""
        self.received = file_size(self.dest_path) or 0
        return self.received

    @property
    def is_complete(self) -> bool:
        return self.received == self.expected_size

    @property
    def is_oversized(self) -> bool:
        return self.received > self.expected_size

    @property
    def resume_from(self) -> int:
        """Offset for the next request; 0 unless a usable partial exists."""
        if 0 < self.received < self.expected_size:
            return self.received
        return 0

    def discard(self) -> None:
        """Delete the partial file so the next attempt restarts from zero."""
        self.dest_path.unlink(missing_ok=True)
        self.received = 0
