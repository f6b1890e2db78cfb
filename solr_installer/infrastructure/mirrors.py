"""HTTP implementation of the MirrorResolver port."""

import asyncio
import logging
from typing import Any, List, Optional, Sequence

import httpx
import pydantic

from ..application.domain import MirrorCandidate, MirrorResolver
from ..application.exceptions import APIError, MirrorNotFoundError

from .api_models import MirrorListing
from .base_client import BaseClient


def _force_https(uri: str) -> str:
    if uri.lower().startswith("http://"):
        return "https://" + uri[len("http://"):]
    return uri


class HttpMirrorResolver(BaseClient, MirrorResolver):
    """
    Finds a mirror that actually serves the requested release.

    The closest mirror often lacks older releases, so the resolver ranks a
    few mirrors from the listing, then the backup site, then the permanent
    archive host, and probes them in that order.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        listing_url: str,
        archive_base_url: str,
        default_path_info: str,
        mirror_count: int = 3,
        probe_timeout: float = 2.0,
        concurrent: bool = True,
        timeout: float = 10.0,
        logger: Optional[logging.Logger] = None,
    ):
        """Initializes the resolver adapter."""
        super().__init__(client, listing_url, logger)
        self.archive_base_url = archive_base_url
        self.default_path_info = default_path_info
        self.mirror_count = max(1, mirror_count)
        self.probe_timeout = probe_timeout
        self.concurrent = concurrent
        self.timeout = timeout

    async def _execute_fetch(self, version: str) -> Any:
        """Executes the raw HTTP GET request for the mirror listing."""
        url = self.base_url.format(version=version)
        self.logger.debug(f"Finding download location for {version!r} from {url}")
        response = await self.client.get(url, timeout=self.timeout)
        response.raise_for_status()
        return response.json()

    async def _fetch_listing(self, version: str) -> MirrorListing:
        try:
            raw_data = await self._execute_fetch(version)
            return MirrorListing.model_validate(raw_data)
        except (httpx.HTTPError, ValueError, pydantic.ValidationError) as e:
            raise APIError(f"Mirror listing for {version} unavailable: {e}") from e

    def _build_candidates(
        self, listing: MirrorListing, path_info: str, filename: str
    ) -> List[MirrorCandidate]:
        servers = []
        if listing.preferred:
            servers.append(listing.preferred)
        servers.extend(listing.http)
        servers = servers[: self.mirror_count]

        # the US backup site as a first last resort
        if len(listing.backup) > 1:
            servers.append(listing.backup[1])

        # the archive host keeps every release, so it always goes last
        servers.append(self.archive_base_url)

        candidates = []
        seen = set()
        for server in servers:
            candidate = MirrorCandidate(
                base_uri=_force_https(server),
                path_info=path_info,
                filename=filename,
                rank=len(candidates),
            )
            if candidate.uri in seen:
                continue
            seen.add(candidate.uri)
            candidates.append(candidate)

        return candidates

    async def resolve(
        self, version: str, filename: str
    ) -> List[MirrorCandidate]:
        """
        Builds the rank-ordered, de-duplicated list of download candidates.

        A broken listing endpoint does not stop resolution: the archive host
        alone is returned, addressed with the configured default path.

        Args:
            version: The release version to locate.
            filename: The archive file name on the mirrors.

        Returns:
            Candidates ordered best first; the archive host is always last.
        """

        try:
            listing = await self._fetch_listing(version)
            path_info = listing.path_info or self.default_path_info.format(
                version=version
            )
        except APIError as e:
            self.logger.warning(f"{e}. Falling back to the archive site.")
            listing = MirrorListing()
            path_info = self.default_path_info.format(version=version)

        candidates = self._build_candidates(listing, path_info, filename)
        self.logger.debug(
            f"Mirror candidates for {version}: {[c.uri for c in candidates]}"
        )
        return candidates

    async def _probe_one(self, candidate: MirrorCandidate) -> bool:
        """Issues a HEAD request; any transport failure counts as a miss."""
        self.logger.debug(f"Trying {candidate.uri}")
        try:
            response = await self.client.head(
                candidate.uri,
                timeout=self.probe_timeout,
                follow_redirects=False,
            )
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            self.logger.debug(f"Exception encountered probing {candidate.uri}: {e!r}")
            return False

        self.logger.debug(f"Result for {candidate.uri} is {response.status_code}")
        return response.is_success

    async def _probe_sequential(
        self, ordered: Sequence[MirrorCandidate]
    ) -> Optional[MirrorCandidate]:
        for candidate in ordered:
            if await self._probe_one(candidate):
                return candidate
        return None

    async def _probe_concurrent(
        self, ordered: Sequence[MirrorCandidate]
    ) -> Optional[MirrorCandidate]:
        tasks = [
            asyncio.create_task(self._probe_one(candidate))
            for candidate in ordered
        ]
        try:
            # Awaiting in rank order keeps the best-ranked success the winner
            # even when a worse candidate answers first.
            for candidate, task in zip(ordered, tasks):
                if await task:
                    return candidate
            return None
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

    async def probe(
        self, candidates: Sequence[MirrorCandidate]
    ) -> Optional[MirrorCandidate]:
        """
        Returns the best-ranked candidate answering a HEAD probe with 2xx.

        Args:
            candidates: Candidates in any order; `rank` decides precedence.

        Returns:
            The winning candidate, or None if every probe failed.
        """

        ordered = sorted(candidates, key=lambda c: c.rank)
        if not ordered:
            return None
        if self.concurrent:
            return await self._probe_concurrent(ordered)
        return await self._probe_sequential(ordered)

    async def find_download_uri(
        self, version: str, filename: str
    ) -> MirrorCandidate:
        """
        Resolves candidates for `version` and probes them.

        Raises:
            MirrorNotFoundError: If no candidate responded.
        """

        candidates = await self.resolve(version, filename)
        found = await self.probe(candidates)
        if found is None:
            raise MirrorNotFoundError(
                f"Cannot find a mirror for {filename}; tried "
                f"{len(candidates)} location(s)."
            )

        self.logger.info(f"Using mirror {found.uri}")
        return found
