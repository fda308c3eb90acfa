"""Derive manifest identifiers and classifiers from candidate files.

The identifier is the file name. The classifier comes from the caller or,
failing that, from the ``sector_size`` recorded in the sidecar ``.meta``
JSON file written next to every generated parameter file.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

META_SUFFIX = ".meta"

_SIZE_UNITS = (
    ("TiB", 1 << 40),
    ("GiB", 1 << 30),
    ("MiB", 1 << 20),
    ("KiB", 1 << 10),
)


def identifier_for(path: Path) -> str:
    """Manifest identifier for a candidate file."""
    return path.name


def format_sector_size(sector_size: int) -> str:
    """Format a sector size in bytes as a classifier tag.

    Examples:
        >>> format_sector_size(2048)
        'sector-2KiB'
        >>> format_sector_size(34359738368)
        'sector-32GiB'
        >>> format_sector_size(1000)
        'sector-1000B'
    """
    for unit, scale in _SIZE_UNITS:
        if sector_size >= scale and sector_size % scale == 0:
            return f"sector-{sector_size // scale}{unit}"
    return f"sector-{sector_size}B"


def meta_path_for(path: Path) -> Path:
    return path.with_suffix(META_SUFFIX)


def read_sector_size(path: Path) -> Optional[int]:
    """Read ``sector_size`` from the sidecar metadata file, if present.

    Returns None when there is no sidecar or it carries no usable value.
    """
    meta_path = meta_path_for(path)
    if not meta_path.is_file():
        return None
    try:
        data = json.loads(meta_path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return None
    if not isinstance(data, dict):
        return None
    sector_size = data.get("sector_size")
    if isinstance(sector_size, bool) or not isinstance(sector_size, int) or sector_size <= 0:
        return None
    return sector_size


def classifier_for(path: Path, explicit: Optional[str] = None) -> Optional[str]:
    """Classifier for a candidate: ``explicit`` if given, else from its metadata."""
    if explicit:
        return explicit
    sector_size = read_sector_size(path)
    if sector_size is None:
        return None
    return format_sector_size(sector_size)
