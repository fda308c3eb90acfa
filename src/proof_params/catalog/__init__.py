"""Parameter manifest: data model, persistence and naming rules."""

from .models import ClassifierFilter, Manifest, ManifestDiff, ParameterEntry
from .naming import classifier_for, format_sector_size, identifier_for
from .store import (
    MANIFEST_FILENAME,
    ManifestStore,
    load_manifest,
    manifest_from_json,
    manifest_to_json,
    save_manifest,
)

__all__ = [
    "ClassifierFilter",
    "Manifest",
    "ManifestDiff",
    "ParameterEntry",
    "classifier_for",
    "format_sector_size",
    "identifier_for",
    "MANIFEST_FILENAME",
    "ManifestStore",
    "load_manifest",
    "manifest_from_json",
    "manifest_to_json",
    "save_manifest",
]
