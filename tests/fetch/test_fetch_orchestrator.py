"""End-to-end fetch runs against the in-memory endpoint."""

from __future__ import annotations

import pytest

from proof_params.catalog.models import Manifest
from proof_params.fetch.orchestrator import FetchOrchestrator, verify_cache
from proof_params.fetch.states import FetchState
from proof_params.transfer.client import TransferClient
from proof_params.transfer.retry import RetryPolicy

SIZE = 1024


def payload(seed: int) -> bytes:
    return bytes((seed + i) % 251 for i in range(SIZE))


@pytest.fixture
def transfer(remote, http_client) -> TransferClient:
    return TransferClient(remote.base_url, client=http_client, chunk_size=64)


@pytest.fixture
def cache_dir(tmp_path):
    return tmp_path / "cache"


def orchestrator(manifest, transfer, cache_dir, policy, workers=2):
    return FetchOrchestrator(manifest, transfer, cache_dir, policy=policy, workers=workers)


class TestFetchRun:
    def test_classifier_run_recovers_corrupt_local_file(
        self, remote, transfer, cache_dir, make_entry, no_sleep_policy
    ):
        files = {
            "v28-a.params": payload(1),
            "v28-b.params": payload(2),
            "v28-c.params": payload(3),
            "v28-small.vk": payload(4),
        }
        remote.objects.update(files)
        manifest = Manifest(
            [
                make_entry("v28-a.params", files["v28-a.params"], "sector-32GiB"),
                make_entry("v28-b.params", files["v28-b.params"], "sector-32GiB"),
                make_entry("v28-c.params", files["v28-c.params"], "sector-32GiB"),
                make_entry("v28-small.vk", files["v28-small.vk"], "sector-2KiB"),
            ]
        )
        cache_dir.mkdir()
        (cache_dir / "v28-b.params").write_bytes(files["v28-b.params"][:100])
        corrupt = bytearray(files["v28-c.params"])
        corrupt[10] ^= 0xFF
        (cache_dir / "v28-c.params").write_bytes(bytes(corrupt))

        report = orchestrator(manifest, transfer, cache_dir, no_sleep_policy).run("sector-32GiB")

        assert report.ok
        assert list(report) == ["v28-a.params", "v28-b.params", "v28-c.params"]
        for identifier in report:
            assert (cache_dir / identifier).read_bytes() == files[identifier]

        assert report["v28-c.params"].retried
        assert report["v28-c.params"].history == [
            "pending",
            "verifying",
            "retrying",
            "downloading",
            "verifying",
            "verified",
        ]
        assert report["v28-b.params"].bytes_downloaded == SIZE - 100
        assert remote.requested("v28-b.params")[0].headers["Range"] == "bytes=100-"
        assert remote.requested("v28-small.vk") == []
        assert not (cache_dir / "v28-small.vk").exists()

    def test_resumed_partial_with_wrong_prefix_restarts_from_zero(
        self, remote, transfer, cache_dir, make_entry, no_sleep_policy
    ):
        data = payload(5)
        remote.objects["a.params"] = data
        cache_dir.mkdir()
        (cache_dir / "a.params").write_bytes(b"\x00" * 100)
        manifest = Manifest([make_entry("a.params", data)])

        outcome = orchestrator(manifest, transfer, cache_dir, no_sleep_policy).run(None)["a.params"]

        assert outcome.ok
        assert outcome.attempts == 2
        assert outcome.history == [
            "pending",
            "downloading",
            "verifying",
            "retrying",
            "downloading",
            "verifying",
            "verified",
        ]
        first, second = remote.requested("a.params")
        assert first.headers["Range"] == "bytes=100-"
        assert "Range" not in second.headers
        assert (cache_dir / "a.params").read_bytes() == data

    def test_lock_files_stay_out_of_cache_listing(
        self, remote, transfer, cache_dir, make_entry, no_sleep_policy
    ):
        remote.objects["a.params"] = b"alpha"
        remote.objects["b.vk"] = b"beta"
        manifest = Manifest([make_entry("a.params", b"alpha"), make_entry("b.vk", b"beta")])
        orch = orchestrator(manifest, transfer, cache_dir, no_sleep_policy)

        assert orch.run(None).ok

        assert sorted(p.name for p in cache_dir.iterdir() if not p.name.startswith(".")) == [
            "a.params",
            "b.vk",
        ]
        assert list(cache_dir.glob("*.lock")) == []
        assert orch.lock_path_for("a.params") == cache_dir / ".locks" / "a.params.lock"

    def test_valid_local_file_makes_no_request(
        self, remote, transfer, cache_dir, make_entry, no_sleep_policy
    ):
        data = payload(7)
        cache_dir.mkdir()
        (cache_dir / "a.params").write_bytes(data)
        manifest = Manifest([make_entry("a.params", data)])

        report = orchestrator(manifest, transfer, cache_dir, no_sleep_policy).run(None)

        assert report["a.params"].ok
        assert report["a.params"].attempts == 0
        assert remote.requests == []

    def test_transient_failure_then_success(
        self, remote, transfer, cache_dir, make_entry, no_sleep_policy
    ):
        data = payload(8)
        remote.objects["a.params"] = data
        remote.fail_next("a.params", 503)
        manifest = Manifest([make_entry("a.params", data)])

        outcome = orchestrator(manifest, transfer, cache_dir, no_sleep_policy).run(None)["a.params"]

        assert outcome.ok
        assert outcome.attempts == 2
        assert outcome.retried
        assert (cache_dir / "a.params").read_bytes() == data

    def test_backoff_waits_between_attempts(self, remote, transfer, cache_dir, make_entry):
        sleeps = []
        data = payload(9)
        remote.objects["a.params"] = data
        remote.fail_next("a.params", 500, 500)
        manifest = Manifest([make_entry("a.params", data)])
        policy = RetryPolicy(max_attempts=3, backoff_base=0.25, sleep=sleeps.append)

        outcome = orchestrator(manifest, transfer, cache_dir, policy).run(None)["a.params"]

        assert outcome.ok
        assert sleeps == [0.25, 0.5]

    def test_exhausted_retries_keep_partial(
        self, remote, transfer, cache_dir, make_entry, no_sleep_policy
    ):
        data = payload(10)
        remote.objects["a.params"] = data
        remote.fail_next("a.params", ("drop", 128), ("drop", 128), ("drop", 128))
        manifest = Manifest([make_entry("a.params", data)])

        report = orchestrator(manifest, transfer, cache_dir, no_sleep_policy).run(None)
        outcome = report["a.params"]

        assert not report.ok
        assert report.failed == ["a.params"]
        assert outcome.state == FetchState.FAILED
        assert outcome.attempts == 3
        assert "after 3 attempt(s)" in outcome.error
        assert (cache_dir / "a.params").read_bytes() == data[:128]

    def test_partial_resumes_on_next_run(
        self, remote, transfer, cache_dir, make_entry, no_sleep_policy
    ):
        data = payload(11)
        remote.objects["a.params"] = data
        remote.fail_next("a.params", ("drop", 256), ("drop", 256), ("drop", 256))
        manifest = Manifest([make_entry("a.params", data)])
        orch = orchestrator(manifest, transfer, cache_dir, no_sleep_policy)
        assert not orch.run(None).ok

        outcome = orch.run(None)["a.params"]

        assert outcome.ok
        assert outcome.bytes_downloaded == SIZE - 256
        assert (cache_dir / "a.params").read_bytes() == data

    def test_permanent_failure_is_isolated(
        self, remote, transfer, cache_dir, make_entry, no_sleep_policy
    ):
        good = payload(12)
        remote.objects["good.params"] = good
        manifest = Manifest(
            [make_entry("good.params", good), make_entry("gone.params", payload(13))]
        )

        report = orchestrator(manifest, transfer, cache_dir, no_sleep_policy).run(None)

        assert report["good.params"].ok
        gone = report["gone.params"]
        assert gone.state == FetchState.FAILED
        assert gone.attempts == 1
        assert not gone.retried
        assert "not found" in gone.error
        assert len(remote.requested("gone.params")) == 1

    def test_wrong_bytes_from_remote_fail_and_are_removed(
        self, remote, transfer, cache_dir, make_entry, no_sleep_policy
    ):
        remote.objects["a.params"] = payload(20)
        manifest = Manifest([make_entry("a.params", payload(21))])

        outcome = orchestrator(manifest, transfer, cache_dir, no_sleep_policy).run(None)["a.params"]

        assert outcome.state == FetchState.FAILED
        assert outcome.attempts == 3
        assert "Digest mismatch" in outcome.error
        assert not (cache_dir / "a.params").exists()
        assert all("Range" not in r.headers for r in remote.requested("a.params"))

    def test_oversized_local_file_restarts(
        self, remote, transfer, cache_dir, make_entry, no_sleep_policy
    ):
        data = payload(22)
        remote.objects["a.params"] = data
        cache_dir.mkdir()
        (cache_dir / "a.params").write_bytes(data + b"trailing garbage")
        manifest = Manifest([make_entry("a.params", data)])

        outcome = orchestrator(manifest, transfer, cache_dir, no_sleep_policy).run(None)["a.params"]

        assert outcome.ok
        assert outcome.attempts == 1
        assert (cache_dir / "a.params").read_bytes() == data
        assert "Range" not in remote.requested("a.params")[0].headers

    def test_unknown_classifier_is_empty_report(self, transfer, cache_dir, make_entry, no_sleep_policy):
        manifest = Manifest([make_entry("a.params", b"x")])

        report = orchestrator(manifest, transfer, cache_dir, no_sleep_policy).run("sector-64GiB")

        assert len(report) == 0
        assert report.ok
        assert not cache_dir.exists()

    def test_missing_base_url_fails_every_download(self, cache_dir, make_entry, no_sleep_policy):
        manifest = Manifest([make_entry("a.params", b"x"), make_entry("b.params", b"y")])

        report = orchestrator(manifest, TransferClient(), cache_dir, no_sleep_policy).run(None)

        assert report.failed == ["a.params", "b.params"]


class TestVerifyCache:
    def test_reports_each_entry(self, cache_dir, make_entry):
        cache_dir.mkdir()
        (cache_dir / "good.params").write_bytes(b"good")
        (cache_dir / "bad.params").write_bytes(b"bXd!")
        manifest = Manifest(
            [
                make_entry("good.params", b"good"),
                make_entry("bad.params", b"bad!"),
                make_entry("missing.params", b"gone"),
                make_entry("other.vk", b"other", classifier="sector-32GiB"),
            ]
        )

        results = verify_cache(manifest, cache_dir, "sector-2KiB")

        assert results == {"bad.params": False, "good.params": True, "missing.params": False}
