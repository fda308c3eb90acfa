"""Shared fixtures: an in-memory distribution endpoint and manifest helpers."""

from __future__ import annotations

from pathlib import Path
from typing import Callable
from urllib.parse import unquote

import httpx
import pytest

from proof_params.catalog.models import ParameterEntry
from proof_params.digest.hasher import digest_bytes
from proof_params.transfer.retry import RetryPolicy

BASE_URL = "https://params.example.com/ipfs"


class DroppingStream(httpx.SyncByteStream):
    """Response body that sends ``data[:cut]`` and then drops the connection."""

    def __init__(self, data: bytes, cut: int):
        self.data = data
        self.cut = cut

    def __iter__(self):
        yield self.data[: self.cut]
        raise httpx.ReadError("connection reset by peer")


class FakeRemote:
    """Distribution endpoint backed by a dict, served through httpx.MockTransport.

    Supports ranged GET and PUT. ``fail_next`` queues failures per identifier:
    an int is answered as that HTTP status, an exception class is raised as a
    transport error, and ``("drop", n)`` sends ``n`` bytes then resets.
    """

    def __init__(self, base_url: str = BASE_URL):
        self.base_url = base_url
        self.objects: dict[str, bytes] = {}
        self.uploads: dict[str, bytes] = {}
        self.requests: list[httpx.Request] = []
        self.failures: dict[str, list] = {}
        self.ignore_range = False

    def fail_next(self, identifier: str, *failures) -> None:
        self.failures.setdefault(identifier, []).extend(failures)

    def requested(self, identifier: str, method: str = "GET") -> list[httpx.Request]:
        return [
            r
            for r in self.requests
            if r.method == method and unquote(r.url.path.rsplit("/", 1)[-1]) == identifier
        ]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        identifier = unquote(request.url.path.rsplit("/", 1)[-1])

        queue = self.failures.get(identifier)
        failure = queue.pop(0) if queue else None
        if isinstance(failure, int):
            return httpx.Response(failure)
        if isinstance(failure, type) and issubclass(failure, Exception):
            raise failure("simulated transport failure", request=request)

        if request.method == "PUT":
            self.uploads[identifier] = request.content
            self.objects[identifier] = request.content
            return httpx.Response(201)

        data = self.objects.get(identifier)
        if data is None:
            return httpx.Response(404)

        if isinstance(failure, tuple) and failure[0] == "drop":
            return httpx.Response(200, stream=DroppingStream(data, failure[1]))

        range_header = request.headers.get("Range")
        if range_header and not self.ignore_range:
            start = int(range_header.removeprefix("bytes=").rstrip("-"))
            if start >= len(data):
                return httpx.Response(416)
            return httpx.Response(
                206,
                content=data[start:],
                headers={"Content-Range": f"bytes {start}-{len(data) - 1}/{len(data)}"},
            )
        return httpx.Response(200, content=data)

    def client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self.handler))


@pytest.fixture
def remote() -> FakeRemote:
    return FakeRemote()


@pytest.fixture
def http_client(remote: FakeRemote):
    client = remote.client()
    yield client
    client.close()


@pytest.fixture
def no_sleep_policy() -> RetryPolicy:
    """Three attempts, no real waiting."""
    return RetryPolicy(max_attempts=3, sleep=lambda seconds: None)


@pytest.fixture
def make_entry() -> Callable[..., ParameterEntry]:
    def _make(identifier: str, data: bytes, classifier: str = "sector-2KiB") -> ParameterEntry:
        return ParameterEntry(
            identifier=identifier,
            digest=digest_bytes(data),
            size=len(data),
            classifier=classifier,
        )

    return _make


@pytest.fixture
def write_file(tmp_path: Path) -> Callable[..., Path]:
    def _write(name: str, data: bytes, directory: Path | None = None) -> Path:
        target_dir = directory or tmp_path / "work"
        target_dir.mkdir(parents=True, exist_ok=True)
        path = target_dir / name
        path.write_bytes(data)
        return path

    return _write
