"""Shared fixtures: in-memory HTTP and tarball builders."""

import io
import logging
import tarfile
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple, Union

import httpx
import pytest

from solr_installer.infrastructure.checksums import HttpChecksumStore
from tenacity import wait_none


class RecordingTransport(httpx.MockTransport):
    """MockTransport that remembers every request it served."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]):
        self.requests: List[httpx.Request] = []

        def _record(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return handler(request)

        super().__init__(_record)

    @property
    def urls(self) -> List[str]:
        return [str(r.url) for r in self.requests]


class _Body(httpx.AsyncByteStream):
    """Unread response body, so clients can stream it raw like a real socket."""

    def __init__(self, data: bytes):
        self.data = data

    async def __aiter__(self):
        yield self.data


def routes(table: Dict[Tuple[str, str], Union[int, httpx.Response, Exception]]):
    """Builds a handler from {(method, url): status | response | exception}."""

    def handler(request: httpx.Request) -> httpx.Response:
        outcome = table.get((request.method, str(request.url)), 404)
        if isinstance(outcome, Exception):
            raise outcome
        if isinstance(outcome, httpx.Response):
            return httpx.Response(
                outcome.status_code,
                headers=outcome.headers,
                stream=_Body(b"".join(outcome.stream)),
            )
        return httpx.Response(outcome)

    return handler


@pytest.fixture
def test_logger():
    logger = logging.getLogger("solr-installer-test")
    logger.setLevel(logging.DEBUG)
    return logger


@pytest.fixture
def no_retry_wait(monkeypatch):
    """Removes the backoff sleep between checksum fetch retries."""
    monkeypatch.setattr(
        HttpChecksumStore._fetch_remote_digest.retry, "wait", wait_none()
    )


def dir_entry(name: str, mode: int = 0o755) -> tarfile.TarInfo:
    info = tarfile.TarInfo(name)
    info.type = tarfile.DIRTYPE
    info.mode = mode
    return info


def symlink_entry(name: str, target: str) -> tarfile.TarInfo:
    info = tarfile.TarInfo(name)
    info.type = tarfile.SYMTYPE
    info.linkname = target
    info.mode = 0o777
    return info


def file_entry(name: str, mode: int = 0o644) -> tarfile.TarInfo:
    info = tarfile.TarInfo(name)
    info.mode = mode
    return info


Member = Tuple[tarfile.TarInfo, Optional[bytes]]


def write_tgz(path: Path, members: List[Member], fmt=tarfile.GNU_FORMAT) -> Path:
    """Writes a gzip tarball with the given (header, content) members in order."""
    with tarfile.open(path, "w:gz", format=fmt) as tar:
        for info, content in members:
            if content is None:
                tar.addfile(info)
            else:
                info.size = len(content)
                tar.addfile(info, io.BytesIO(content))
    return path


def read_tgz(path: Path) -> Dict[str, Tuple[str, int, Optional[bytes], str]]:
    """Maps member name to (kind, mode, content, linkname)."""
    result = {}
    with tarfile.open(path, "r:gz") as tar:
        for info in tar:
            if info.isdir():
                kind, content = "dir", None
            elif info.issym():
                kind, content = "symlink", None
            else:
                kind, content = "file", tar.extractfile(info).read()
            result[info.name] = (kind, info.mode & 0o7777, content, info.linkname)
    return result


@pytest.fixture
def distribution_members() -> List[Member]:
    """A miniature Solr tarball layout."""
    return [
        (dir_entry("solr-9.0.0/"), None),
        (dir_entry("solr-9.0.0/bin/"), None),
        (file_entry("solr-9.0.0/bin/solr", 0o755), b"#!/bin/sh\necho solr\n"),
        (dir_entry("solr-9.0.0/server/"), None),
        (dir_entry("solr-9.0.0/server/solr/"), None),
        (file_entry("solr-9.0.0/server/solr/solr.xml"), b"<solr/>\n"),
        (symlink_entry("solr-9.0.0/bin/solr-link", "solr"), None),
    ]
