"""Unit tests for ParameterEntry and Manifest."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from proof_params.catalog.models import Manifest, ParameterEntry

ID_32G = "v28-stacked-proof-of-replication-merkletree-poseidon_hasher-8-8-0-sha256_hasher-82a357d2.params"
ID_2K = "v28-stacked-proof-of-replication-merkletree-poseidon_hasher-8-0-0-sha256_hasher-032d3138.vk"


def entry(identifier: str, digest: str = "ab" * 16, size: int = 10, classifier: str = "sector-2KiB"):
    return ParameterEntry(identifier=identifier, digest=digest, size=size, classifier=classifier)


class TestParameterEntry:
    """Validation and derived fields of ParameterEntry."""

    def test_valid_entry(self):
        e = entry(ID_32G, classifier="sector-32GiB")
        assert e.identifier == ID_32G
        assert e.classifier == "sector-32GiB"
        assert e.to_record() == {"classifier": "sector-32GiB", "digest": "ab" * 16, "size": 10}

    def test_version_tag(self):
        assert entry(ID_32G).version == "v28"
        assert entry("custom.params").version is None

    def test_entries_are_immutable(self):
        e = entry(ID_2K)
        with pytest.raises(ValidationError):
            e.digest = "cd" * 16

    @pytest.mark.parametrize(
        "field,value",
        [
            ("digest", "ABCDEF"),
            ("digest", "not-hex"),
            ("digest", ""),
            ("size", -1),
            ("size", True),
            ("size", "10"),
            ("classifier", ""),
            ("identifier", "../escape.params"),
            ("identifier", "dir/file.params"),
            ("identifier", ".."),
        ],
    )
    def test_rejects_malformed_fields(self, field, value):
        data = {"identifier": ID_2K, "digest": "ab" * 16, "size": 10, "classifier": "sector-2KiB"}
        data[field] = value
        with pytest.raises(ValidationError):
            ParameterEntry(**data)

    def test_rejects_unknown_fields(self):
        with pytest.raises(ValidationError):
            ParameterEntry.from_record(ID_2K, {"digest": "ab", "size": 1, "classifier": "x", "cid": "Qm"})


class TestManifest:
    """Mapping behaviour, filtering and immutability of Manifest."""

    def test_empty_manifest(self):
        manifest = Manifest()
        assert len(manifest) == 0
        assert manifest.entries_for("sector-2KiB") == []

    def test_entries_for_string_filter(self):
        manifest = Manifest(
            [
                entry("b.params", classifier="sector-32GiB"),
                entry("a.params", classifier="sector-32GiB"),
                entry("c.vk", classifier="sector-2KiB"),
            ]
        )
        selected = manifest.entries_for("sector-32GiB")
        assert [e.identifier for e in selected] == ["a.params", "b.params"]

    def test_entries_for_iterable_and_none(self):
        manifest = Manifest(
            [
                entry("a.params", classifier="sector-32GiB"),
                entry("b.params", classifier="sector-64GiB"),
                entry("c.vk", classifier="sector-2KiB"),
            ]
        )
        assert len(manifest.entries_for(None)) == 3
        selected = manifest.entries_for(["sector-2KiB", "sector-64GiB"])
        assert [e.identifier for e in selected] == ["b.params", "c.vk"]
        assert manifest.classifiers == ["sector-2KiB", "sector-32GiB", "sector-64GiB"]

    def test_duplicate_conflicting_identifiers_rejected(self):
        with pytest.raises(ValueError, match="Duplicate identifier"):
            Manifest([entry("a.params", size=1), entry("a.params", size=2)])

    def test_with_entries_returns_new_manifest(self):
        original = Manifest([entry("a.params")])
        replacement = entry("a.params", digest="cd" * 16)
        updated = original.with_entries([replacement, entry("b.params")])

        assert original["a.params"].digest == "ab" * 16
        assert len(original) == 1
        assert updated["a.params"].digest == "cd" * 16
        assert set(updated) == {"a.params", "b.params"}

    def test_equality(self):
        assert Manifest([entry("a.params"), entry("b.params")]) == Manifest([entry("b.params"), entry("a.params")])
        assert Manifest([entry("a.params")]) != Manifest([entry("a.params", size=11)])

    def test_diff(self):
        before = Manifest([entry("keep.params"), entry("change.params"), entry("drop.params")])
        after = Manifest([entry("keep.params"), entry("change.params", size=99), entry("new.params")])

        diff = before.diff(after)

        assert diff.added == ["new.params"]
        assert diff.changed == ["change.params"]
        assert diff.removed == ["drop.params"]
        assert not diff.is_empty
        assert before.diff(before).is_empty
