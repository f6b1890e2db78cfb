"""Digest lookup, caching and verification."""

import asyncio
import hashlib
import logging

import httpx
import pytest

from solr_installer.application.domain import ChecksumAlgorithm
from solr_installer.application.exceptions import (
    ChecksumFetchError,
    ChecksumMismatchError,
    ChecksumUnavailableError,
    VerificationError,
)
from solr_installer.infrastructure.checksums import (
    HttpChecksumStore,
    marker_path,
    sidecar_path,
)

from conftest import RecordingTransport, routes

BASE = "https://archive.apache.org/dist/lucene/solr/9.0.0/"
PAYLOAD = b"not really a tarball, but bytes all the same\n" * 100
SHA512_URL = BASE + "solr-9.0.0.tgz.sha512"
SHA1_URL = BASE + "solr-9.0.0.tgz.sha1"


def _digest(name, data=PAYLOAD):
    return hashlib.new(name, data).hexdigest()


@pytest.fixture
def target(tmp_path):
    path = tmp_path / "solr-9.0.0.tgz"
    path.write_bytes(PAYLOAD)
    return path


def _store(table, force_check=False):
    transport = RecordingTransport(routes(table))
    store = HttpChecksumStore(
        httpx.AsyncClient(transport=transport), force_check=force_check
    )
    return store, transport


def test_matching_sha512_sidecar_never_requests_sha1(target):
    sidecar_path(target, ChecksumAlgorithm.SHA512).write_text(_digest("sha512"))
    store, transport = _store({})

    record = asyncio.run(store.verify(target, BASE))

    assert record.algorithm is ChecksumAlgorithm.SHA512
    assert record.value == _digest("sha512")
    assert transport.requests == []


def test_remote_sha512_is_fetched_and_cached(target):
    body = f"{_digest('sha512')}  solr-9.0.0.tgz\n"
    store, transport = _store({("GET", SHA512_URL): httpx.Response(200, text=body)})

    record = asyncio.run(store.verify(target, BASE))

    assert record.algorithm is ChecksumAlgorithm.SHA512
    assert transport.urls == [SHA512_URL]
    assert sidecar_path(target, ChecksumAlgorithm.SHA512).read_text() == _digest("sha512")
    assert not sidecar_path(target, ChecksumAlgorithm.SHA1).exists()


def test_sha512_mismatch_is_fatal_even_with_valid_sha1(target):
    store, transport = _store(
        {
            ("GET", SHA512_URL): httpx.Response(200, text="0" * 128),
            ("GET", SHA1_URL): httpx.Response(200, text=_digest("sha1")),
        }
    )

    with pytest.raises(ChecksumMismatchError) as excinfo:
        asyncio.run(store.verify(target, BASE))

    assert excinfo.value.algorithm is ChecksumAlgorithm.SHA512
    assert excinfo.value.actual == _digest("sha512")
    assert SHA1_URL not in transport.urls
    assert not marker_path(target).exists()


def test_absent_sha512_falls_back_to_sha1(target):
    store, transport = _store(
        {("GET", SHA1_URL): httpx.Response(200, text=_digest("sha1").upper())}
    )

    record = asyncio.run(store.verify(target, BASE))

    assert record.algorithm is ChecksumAlgorithm.SHA1
    assert transport.urls == [SHA512_URL, SHA1_URL]


def test_no_published_checksum_is_unavailable(target):
    store, _ = _store({})

    with pytest.raises(ChecksumUnavailableError):
        asyncio.run(store.verify(target, BASE))


def test_empty_sidecar_is_ignored_and_refetched(target):
    sidecar_path(target, ChecksumAlgorithm.SHA512).write_text("")
    store, transport = _store(
        {("GET", SHA512_URL): httpx.Response(200, text=_digest("sha512"))}
    )

    digest = asyncio.run(
        store.find_digest(target, ChecksumAlgorithm.SHA512, BASE)
    )

    assert digest == _digest("sha512")
    assert transport.urls == [SHA512_URL]


def test_find_digest_reports_absent_on_404(target):
    store, _ = _store({})

    assert asyncio.run(store.find_digest(target, ChecksumAlgorithm.SHA1, BASE)) is None
    assert not sidecar_path(target, ChecksumAlgorithm.SHA1).exists()


@pytest.mark.parametrize("status", [429, 500, 503])
def test_transient_status_is_retried_then_fails_instead_of_skipping(
    target, status, no_retry_wait
):
    # an unexpected status is neither "absent" nor a digest: SHA-1 is not tried
    store, transport = _store(
        {
            ("GET", SHA512_URL): status,
            ("GET", SHA1_URL): httpx.Response(200, text=_digest("sha1")),
        }
    )

    with pytest.raises(ChecksumFetchError):
        asyncio.run(store.verify(target, BASE))

    assert transport.urls == [SHA512_URL] * 3


@pytest.mark.parametrize("status", [401, 403, 410])
def test_non_transient_status_fails_without_retrying(target, status, no_retry_wait):
    store, transport = _store(
        {
            ("GET", SHA512_URL): status,
            ("GET", SHA1_URL): httpx.Response(200, text=_digest("sha1")),
        }
    )

    with pytest.raises(ChecksumFetchError):
        asyncio.run(store.verify(target, BASE))

    assert transport.urls == [SHA512_URL]


@pytest.mark.parametrize(
    "body",
    [
        "<html><body>Mirror maintenance</body></html>",
        "",
        "abc123  solr-9.0.0.tgz",
        _digest("sha1"),
        "z" * 128,
    ],
)
def test_body_that_is_not_a_digest_is_rejected_and_not_cached(target, body):
    store, transport = _store(
        {
            ("GET", SHA512_URL): httpx.Response(200, text=body),
            ("GET", SHA1_URL): httpx.Response(200, text=_digest("sha1")),
        }
    )

    with pytest.raises(ChecksumFetchError):
        asyncio.run(store.verify(target, BASE))

    assert not sidecar_path(target, ChecksumAlgorithm.SHA512).exists()
    assert transport.urls == [SHA512_URL]


def test_transient_failure_recovers_on_retry(target, no_retry_wait):
    responses = iter([httpx.Response(503), httpx.Response(200, text=_digest("sha512"))])
    transport = RecordingTransport(lambda request: next(responses))
    store = HttpChecksumStore(httpx.AsyncClient(transport=transport))

    record = asyncio.run(store.verify(target, BASE))

    assert record.algorithm is ChecksumAlgorithm.SHA512
    assert len(transport.requests) == 2


def test_connection_error_is_retried(target, no_retry_wait):
    attempts = []

    def handler(request):
        attempts.append(request)
        if len(attempts) == 1:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(200, text=_digest("sha512"))

    store = HttpChecksumStore(
        httpx.AsyncClient(transport=httpx.MockTransport(handler))
    )

    record = asyncio.run(store.verify(target, BASE))

    assert record.algorithm is ChecksumAlgorithm.SHA512
    assert len(attempts) == 2


def test_verification_marker_skips_rehashing(target, caplog):
    caplog.set_level(logging.INFO)
    store, transport = _store(
        {("GET", SHA512_URL): httpx.Response(200, text=_digest("sha512"))}
    )
    asyncio.run(store.verify(target, BASE))
    assert marker_path(target).read_text().split() == ["sha512", _digest("sha512")]

    sidecar_path(target, ChecksumAlgorithm.SHA512).write_text("f" * 128)
    record = asyncio.run(store.verify(target, BASE))

    assert record.value == _digest("sha512")
    assert "already verified" in caplog.text


def test_force_check_ignores_marker(target):
    marker_path(target).write_text(f"sha512 {_digest('sha512')}\n")
    sidecar_path(target, ChecksumAlgorithm.SHA512).write_text("f" * 128)
    store, _ = _store({}, force_check=True)

    with pytest.raises(ChecksumMismatchError):
        asyncio.run(store.verify(target, BASE))


@pytest.mark.parametrize("content", [None, b""])
def test_missing_or_empty_target_fails_verification(tmp_path, content):
    target = tmp_path / "solr-9.0.0.tgz"
    if content is not None:
        target.write_bytes(content)
    store, transport = _store({})

    with pytest.raises(VerificationError):
        asyncio.run(store.verify(target, BASE))
    assert transport.requests == []
