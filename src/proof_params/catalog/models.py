"""Manifest data model for parameter files.

Defines the immutable ``ParameterEntry`` record and the ``Manifest`` mapping
of identifier to entry. Entries are validated on construction; the manifest
is never mutated in place, ``with_entries`` returns a replacement.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, StrictInt, field_validator

VERSION_PATTERN = re.compile(r"^(v\d+)-")

ClassifierFilter = Optional[Union[str, Iterable[str]]]


class ParameterEntry(BaseModel):
    """One parameter file as recorded in the manifest.

    Attributes:
        identifier: File name, unique within the manifest and stable across versions
        digest: Lowercase hex digest of the file's exact bytes
        size: Expected byte length
        classifier: Proof configuration tag (e.g., 'sector-32GiB')
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    identifier: str = Field(
        ...,
        min_length=1,
        description="File name of the parameter file (e.g., 'v28-...-0-0-0170db1f.params')",
    )
    digest: str = Field(
        ...,
        min_length=1,
        pattern=r"^[0-9a-f]+$",
        description="Lowercase hex digest of the file content",
    )
    size: StrictInt = Field(..., ge=0, description="Expected size in bytes")
    classifier: str = Field(
        ...,
        min_length=1,
        description="Proof configuration tag used to select subsets (e.g., 'sector-2KiB')",
    )

    @field_validator("identifier")
    @classmethod
    def validate_identifier(cls, v: str) -> str:
        """Identifiers name files directly in the cache directory."""
        if "/" in v or "\\" in v or v in (".", "..") or v != v.strip():
            raise ValueError(f"identifier must be a plain file name; got {v!r}")
        return v

    @property
    def version(self) -> Optional[str]:
        """Leading version tag of the identifier (e.g., 'v28'), if any."""
        match = VERSION_PATTERN.match(self.identifier)
        return match.group(1) if match else None

    def matches(self, classifier_filter: ClassifierFilter) -> bool:
        """Return True if this entry is selected by ``classifier_filter``."""
        if classifier_filter is None:
            return True
        if isinstance(classifier_filter, str):
            return self.classifier == classifier_filter
        return self.classifier in set(classifier_filter)

    def to_record(self) -> dict[str, Any]:
        """Manifest JSON record for this entry (identifier is the key)."""
        return {
            "classifier": self.classifier,
            "digest": self.digest,
            "size": self.size,
        }

    @classmethod
    def from_record(cls, identifier: str, record: dict[str, Any]) -> ParameterEntry:
        return cls(identifier=identifier, **record)


@dataclass(frozen=True)
class ManifestDiff:
    """Identifiers that differ between two manifests."""

    added: list[str] = field(default_factory=list)
    changed: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.added or self.changed or self.removed)


class Manifest(Mapping[str, ParameterEntry]):
    """Immutable mapping of identifier to ``ParameterEntry``."""

    def __init__(self, entries: Iterable[ParameterEntry] = ()):
        by_id: dict[str, ParameterEntry] = {}
        for entry in entries:
            if entry.identifier in by_id and by_id[entry.identifier] != entry:
                raise ValueError(f"Duplicate identifier in manifest: {entry.identifier}")
            by_id[entry.identifier] = entry
        self._entries = dict(sorted(by_id.items()))

    def __getitem__(self, identifier: str) -> ParameterEntry:
        return self._entries[identifier]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Manifest):
            return self._entries == other._entries
        return NotImplemented

    def __hash__(self) -> int:
        return hash(tuple(self._entries.values()))

    def __repr__(self) -> str:
        return f"Manifest({len(self._entries)} entries)"

    @property
    def classifiers(self) -> list[str]:
        """Distinct classifiers present, sorted."""
        return sorted({entry.classifier for entry in self._entries.values()})

    def entries_for(self, classifier_filter: ClassifierFilter = None) -> list[ParameterEntry]:
        """Return entries selected by ``classifier_filter``, sorted by identifier.

        Args:
            classifier_filter: None for every entry, a classifier string, or an
                iterable of classifiers

        Returns:
            List of matching entries
        """
        if classifier_filter is not None and not isinstance(classifier_filter, str):
            classifier_filter = frozenset(classifier_filter)
        return [e for e in self._entries.values() if e.matches(classifier_filter)]

    def with_entries(self, entries: Iterable[ParameterEntry]) -> Manifest:
        """Return a new manifest with ``entries`` added or replacing same-identifier entries."""
        merged = dict(self._entries)
        for entry in entries:
            merged[entry.identifier] = entry
        return Manifest(merged.values())

    def diff(self, other: Manifest) -> ManifestDiff:
        """Describe how ``other`` differs from this manifest."""
        added = sorted(set(other) - set(self))
        removed = sorted(set(self) - set(other))
        changed = sorted(
            identifier
            for identifier in set(self) & set(other)
            if self[identifier] != other[identifier]
        )
        return ManifestDiff(added=added, changed=changed, removed=removed)

    def to_dict(self) -> dict[str, dict[str, Any]]:
        return {identifier: entry.to_record() for identifier, entry in self._entries.items()}
