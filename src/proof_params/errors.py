"""Exception hierarchy for parameter fetch, verification and publishing."""

from __future__ import annotations

from pathlib import Path


class ParamsError(Exception):
    """Base exception for parameter catalog errors."""
    pass


class ConfigError(ParamsError):
    """Configuration file or environment value is invalid."""
    pass


class IoError(ParamsError):
    """Local filesystem read or write failed."""

    def __init__(self, path: Path | str, reason: str):
        self.path = Path(path)
        self.reason = reason
        super().__init__(f"I/O error on {self.path}: {reason}")


class TransferError(ParamsError):
    """Base exception for remote transfer failures."""

    def __init__(self, url: str, reason: str, status_code: int | None = None):
        self.url = url
        self.reason = reason
        self.status_code = status_code
        detail = f" (HTTP {status_code})" if status_code is not None else ""
        super().__init__(f"Transfer of {url} failed{detail}: {reason}")


class TransientTransferError(TransferError):
    """Network-level failure the caller should retry."""
    pass


class RangeNotSatisfiable(TransientTransferError):
    """Remote rejected the resume offset; the partial file must be discarded."""
    pass


class PermanentTransferError(TransferError):
    """Unrecoverable transfer failure (not found, auth rejected, bad URL)."""
    pass


class DigestMismatch(ParamsError):
    """File bytes do not match the expected digest or size."""

    def __init__(
        self,
        identifier: str,
        *,
        expected_digest: str,
        actual_digest: str | None = None,
        expected_size: int | None = None,
        actual_size: int | None = None,
    ):
        self.identifier = identifier
        self.expected_digest = expected_digest
        self.actual_digest = actual_digest
        self.expected_size = expected_size
        self.actual_size = actual_size

        if actual_digest is None:
            message = (
                f"Size mismatch for {identifier}: "
                f"expected {expected_size} bytes, found {actual_size}"
            )
        else:
            message = (
                f"Digest mismatch for {identifier}: "
                f"expected {expected_digest}, computed {actual_digest}"
            )
        super().__init__(message)

    @property
    def is_short(self) -> bool:
        """True when the file is only shorter than expected (resumable)."""
        return (
            self.actual_digest is None
            and self.actual_size is not None
            and self.expected_size is not None
            and self.actual_size < self.expected_size
        )


class ManifestCorrupt(ParamsError):
    """Manifest file exists but cannot be parsed into well-formed entries."""

    def __init__(self, path: Path | str, reason: str):
        self.path = Path(path)
        self.reason = reason
        super().__init__(f"Manifest {self.path} is corrupt: {reason}")


class PersistenceError(ParamsError):
    """Manifest commit failed; the previous manifest file is untouched."""
    pass


class PublishError(ParamsError):
    """Publish batch failed and was not committed."""
    pass


class PublishConflict(PublishError):
    """Publishing would replace an existing entry's digest without confirmation."""

    def __init__(self, identifier: str, existing_digest: str, new_digest: str):
        self.identifier = identifier
        self.existing_digest = existing_digest
        self.new_digest = new_digest
        super().__init__(
            f"{identifier} is already published with digest {existing_digest}; "
            f"new file has digest {new_digest}. "
            f"Re-run with --confirm-overwrite to replace it."
        )
