"""
Infrastructure adapter for fetching, caching and checking published digests.
"""

import asyncio
import hashlib
import logging
import os
import re
from pathlib import Path
from typing import Optional

import httpx

from ..application.domain import (
    ALGORITHM_PREFERENCE,
    ChecksumAlgorithm,
    ChecksumRecord,
    ChecksumStore,
)
from ..application.exceptions import (
    ChecksumFetchError,
    ChecksumMismatchError,
    ChecksumUnavailableError,
    VerificationError,
)

from .decorators import retry_on_transient_error

_MARKER_SUFFIX = ".verified"
_HEX_DIGITS = re.compile(r"[0-9a-fA-F]+")


def sidecar_path(target: Path, algorithm: ChecksumAlgorithm) -> Path:
    """The local file caching the published digest of `target`."""
    return target.with_name(f"{target.name}.{algorithm.extension}")


def marker_path(target: Path) -> Path:
    """The local file recording a successful verification of `target`."""
    return target.with_name(target.name + _MARKER_SUFFIX)


def _first_token(text: str) -> Optional[str]:
    tokens = text.split()
    return tokens[0] if tokens else None


def _looks_like_digest(token: Optional[str], algorithm: ChecksumAlgorithm) -> bool:
    return bool(token) and len(token) == algorithm.hex_length and \
        _HEX_DIGITS.fullmatch(token) is not None


def _read_first_token(path: Path) -> Optional[str]:
    try:
        if path.stat().st_size == 0:
            return None
        return _first_token(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return None


def _write_atomically(path: Path, text: str):
    part_path = path.with_name(path.name + ".part")
    try:
        part_path.write_text(text, encoding="utf-8")
        os.replace(part_path, path)
    finally:
        part_path.unlink(missing_ok=True)


class HttpChecksumStore(ChecksumStore):
    """
    An adapter that implements the ChecksumStore port against the Apache
    distribution site.

    Digests are tried strongest first. A missing digest moves on to the next
    algorithm; a digest that does not match is always fatal.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        force_check: bool = False,
        timeout: float = 10.0,
        chunk_size: int = 65536,
        logger: Optional[logging.Logger] = None,
    ):
        """Initializes the checksum store."""
        self.client = client
        self.force_check = force_check
        self.timeout = timeout
        self.chunk_size = chunk_size
        self.logger = logger or logging.getLogger(self.__class__.__name__)

    @retry_on_transient_error
    async def _fetch_remote_digest(self, url: str) -> Optional[str]:
        """
        GETs a published checksum file.

        Returns the body on 200 and None on 404. Every other status is
        ambiguous (the file may well exist) and is raised; overload statuses
        are retried.
        """

        self.logger.info(f"Checking for checksum at {url}")
        response = await self.client.get(url, timeout=self.timeout)

        if response.status_code == 200:
            return response.text
        if response.status_code == 404:
            return None

        self.logger.warning(
            f"Unexpected response from download site for {url}: "
            f"{response.status_code}"
        )
        raise httpx.HTTPStatusError(
            f"Unexpected status {response.status_code} for {url}",
            request=response.request,
            response=response,
        )

    async def find_digest(
        self, target: Path, algorithm: ChecksumAlgorithm, remote_base: str
    ) -> Optional[str]:
        """
        Returns the published digest of `target` for one algorithm.

        A non-empty local sidecar wins; otherwise the remote checksum file is
        fetched and its first token is cached as the sidecar.

        Args:
            target: The cached archive.
            algorithm: The digest algorithm.
            remote_base: URL prefix the checksum file name is appended to.

        Returns:
            The hex digest, or None if the remote reports it absent.

        Raises:
            ChecksumFetchError: If the remote answered ambiguously even after
                                retries, or served something that is not
                                a digest.
        """

        sidecar = sidecar_path(target, algorithm)
        cached = _read_first_token(sidecar)
        if cached:
            return cached

        url = remote_base + sidecar.name
        try:
            body = await self._fetch_remote_digest(url)
        except (httpx.HTTPStatusError, httpx.TransportError) as e:
            raise ChecksumFetchError(
                f"Could not fetch {algorithm.extension} checksum from {url}: {e}"
            ) from e

        if body is None:
            self.logger.warning(
                f"{algorithm.extension} checksum not found on remote"
            )
            return None

        digest = _first_token(body)
        if not _looks_like_digest(digest, algorithm):
            # e.g. an HTML error page served with 200; never cache it
            raise ChecksumFetchError(
                f"Response from {url} is not a {algorithm.extension} digest: "
                f"{(digest or '')[:40]!r}"
            )

        self.logger.info(f"Writing {sidecar}")
        target.parent.mkdir(parents=True, exist_ok=True)
        _write_atomically(sidecar, digest)
        return digest

    async def _calculate_digest(
        self, file_path: Path, algorithm: ChecksumAlgorithm
    ) -> str:
        """Perform the blocking I/O work of hashing a file."""

        self.logger.info(
            f"Computing {algorithm.extension} checksum for {file_path.name}..."
        )

        hasher = hashlib.new(algorithm.hashlib_name)

        def _read_and_hash():
            with open(file_path, "rb") as f:
                while chunk := f.read(self.chunk_size):
                    hasher.update(chunk)
            return hasher.hexdigest()

        return await asyncio.to_thread(_read_and_hash)

    def _load_marker(self, target: Path) -> Optional[ChecksumRecord]:
        marker = marker_path(target)
        try:
            algorithm_name, value = marker.read_text(encoding="utf-8").split()[:2]
            return ChecksumRecord(
                algorithm=ChecksumAlgorithm(algorithm_name),
                value=value,
                source_path=sidecar_path(target, ChecksumAlgorithm(algorithm_name)),
            )
        except (FileNotFoundError, ValueError):
            return None

    async def verify(self, target: Path, remote_base: str) -> ChecksumRecord:
        """
        Guarantee the archive is verified, checking hashes only if necessary.

        This public method fulfills the ChecksumStore port contract. It
        honors a '.verified' marker from an earlier run unless 'force_check'
        is set.

        Args:
            target: The cached archive to check.
            remote_base: URL prefix of the published checksum files.

        Returns:
            The record of the digest that matched.

        Raises:
            VerificationError: If the archive is missing or empty.
            ChecksumMismatchError: If a published digest does not match.
            ChecksumUnavailableError: If no algorithm has a published digest.
            ChecksumFetchError: If a digest could not be fetched reliably.
        """

        if not target.is_file() or target.stat().st_size == 0:
            raise VerificationError(f"{target} is missing or empty")

        if not self.force_check:
            record = self._load_marker(target)
            if record is not None:
                self.logger.info(
                    f"Checksum for {target.name} already verified. Skipping."
                )
                return record

        for algorithm in ALGORITHM_PREFERENCE:
            expected = await self.find_digest(target, algorithm, remote_base)
            if expected is None:
                continue

            computed = await self._calculate_digest(target, algorithm)
            if computed.lower() != expected.lower():
                self.logger.warning(
                    f"Checksum {expected!r} for {algorithm.extension} does not "
                    f"match computed value {computed!r}"
                )
                raise ChecksumMismatchError(
                    f"Checksum mismatch for {target.name} "
                    f"({algorithm.extension}). Expected {expected}, "
                    f"got {computed}",
                    algorithm=algorithm,
                    expected=expected,
                    actual=computed,
                )

            _write_atomically(
                marker_path(target), f"{algorithm.extension} {computed}\n"
            )
            self.logger.info(
                f"Checksum for {target.name} verified successfully "
                f"({algorithm.extension})."
            )
            return ChecksumRecord(
                algorithm=algorithm,
                value=computed,
                source_path=sidecar_path(target, algorithm),
            )

        raise ChecksumUnavailableError(
            f"No published checksum available for {target.name}"
        )
