"""Canonical digests for parameter files.

Parameter files can be several gigabytes, so content is streamed through
BLAKE2b-512 in fixed-size chunks. The canonical digest is the first 32
lowercase hex characters of the BLAKE2b-512 output.
"""

from __future__ import annotations

import hashlib
import logging
from pathlib import Path
from typing import Optional

from proof_params.catalog.models import ParameterEntry
from proof_params.errors import DigestMismatch, IoError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1 << 20
DIGEST_HEX_LENGTH = 32


def digest_bytes(data: bytes) -> str:
    """Canonical digest of an in-memory byte string."""
    return hashlib.blake2b(data).hexdigest()[:DIGEST_HEX_LENGTH]


def digest_file(file_path: Path, chunk_size: int = CHUNK_SIZE) -> str:
    """Compute the canonical digest of a file's bytes.

    Reads in ``chunk_size`` pieces to bound memory independent of file size.
    The result does not depend on ``chunk_size``.

    Args:
        file_path: Path to file to hash
        chunk_size: Read size in bytes

    Returns:
        32-character lowercase hex string

    Raises:
        IoError: If the file cannot be opened or read

    Examples:
        >>> from pathlib import Path
        >>> import tempfile
        >>> with tempfile.NamedTemporaryFile(delete=False) as f:
        ...     _ = f.write(b'parameters')
        ...     path = Path(f.name)
        >>> digest_file(path) == digest_file(path, chunk_size=3)
        True
        >>> len(digest_file(path))
        32
    """
    hasher = hashlib.blake2b()
    try:
        with open(file_path, "rb") as f:
            while chunk := f.read(chunk_size):
                hasher.update(chunk)
    except FileNotFoundError as e:
        raise IoError(file_path, "file not found") from e
    except PermissionError as e:
        raise IoError(file_path, "permission denied") from e
    except OSError as e:
        raise IoError(file_path, str(e)) from e

    return hasher.hexdigest()[:DIGEST_HEX_LENGTH]


def file_size(file_path: Path) -> Optional[int]:
    """Size of ``file_path`` in bytes, or None if it does not exist."""
    try:
        return file_path.stat().st_size
    except FileNotFoundError:
        return None
    except OSError as e:
        raise IoError(file_path, str(e)) from e


def check_file(file_path: Path, expected: ParameterEntry) -> None:
    """Check ``file_path`` against ``expected``, raising on any difference.

    Size is compared first so truncated or oversized files fail without
    hashing.

    Raises:
        DigestMismatch: If the size or digest differs (or the file is missing)
        IoError: If the file cannot be read
    """
    actual_size = file_size(file_path)
    if actual_size != expected.size:
        raise DigestMismatch(
            expected.identifier,
            expected_digest=expected.digest,
            expected_size=expected.size,
            actual_size=actual_size,
        )

    actual_digest = digest_file(file_path)
    if actual_digest != expected.digest:
        raise DigestMismatch(
            expected.identifier,
            expected_digest=expected.digest,
            actual_digest=actual_digest,
            expected_size=expected.size,
            actual_size=actual_size,
        )


def verify(file_path: Path, expected: ParameterEntry) -> bool:
    """Return True if ``file_path`` has exactly the size and digest of ``expected``."""
    try:
        check_file(file_path, expected)
    except DigestMismatch as e:
        logger.debug("%s", e)
        return False
    return True
