"""Digest computation and verification for parameter files."""

from .hasher import CHUNK_SIZE, DIGEST_HEX_LENGTH, check_file, digest_bytes, digest_file, file_size, verify

__all__ = [
    "CHUNK_SIZE",
    "DIGEST_HEX_LENGTH",
    "check_file",
    "digest_bytes",
    "digest_file",
    "file_size",
    "verify",
]
