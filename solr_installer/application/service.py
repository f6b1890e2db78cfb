"""
The core application service, containing pure business logic.

This module defines the orchestrator (DistributionService) that takes a
DistributionRequest through resolve, download, verify and then either unpack
or repack, while owning the on-disk cache layout.
"""

import logging
import os
from pathlib import Path
from typing import Optional, Sequence

from tqdm.contrib.logging import logging_redirect_tqdm

from .domain import (
    ChecksumRecord,
    ChecksumStore,
    DistributionRequest,
    Downloader,
    Extractor,
    MirrorResolver,
    Repacker,
)
from .exceptions import ChecksumMismatchError, ConfigurationError


class DistributionService:
    """Fetches, verifies and installs or repacks one distribution."""

    def __init__(
        self,
        resolver: MirrorResolver,
        downloader: Downloader,
        checksums: ChecksumStore,
        extractor: Extractor,
        repacker: Repacker,
        checksum_base_url: str,
        logger: Optional[logging.Logger] = None,
    ):
        """Initializes the service with its dependencies (ports)."""
        self.resolver = resolver
        self.downloader = downloader
        self.checksums = checksums
        self.extractor = extractor
        self.repacker = repacker
        self.checksum_base_url = checksum_base_url
        self.logger = logger or logging.getLogger(self.__class__.__name__)

    def _checksum_base(self, request: DistributionRequest) -> str:
        base = self.checksum_base_url.format(
            version=request.version, name=request.name
        )
        return base if base.endswith("/") else base + "/"

    def _prepare_cache(self, request: DistributionRequest):
        cache_dir = Path(request.cache_dir)
        if cache_dir.exists() and not cache_dir.is_dir():
            raise ConfigurationError(
                f"Cannot cache files in {cache_dir}: it is not a directory"
            )
        if not cache_dir.is_dir():
            self.logger.info(f"Creating cache for downloads in {cache_dir}")
            cache_dir.mkdir(parents=True, exist_ok=True)

    def _quarantine(self, target: Path) -> Path:
        """Moves a corrupt download aside so the next run fetches it again."""
        bad_path = target.with_name(target.name + ".bad")
        os.replace(target, bad_path)
        self.logger.warning(f"Moved corrupt download to {bad_path}")
        return bad_path

    def is_installed(self, request: DistributionRequest) -> bool:
        """The server binary in the install dir marks a finished install."""
        return request.installed_marker.exists()

    async def fetch(self, request: DistributionRequest) -> Path:
        """
        Ensures the tarball is in the cache, downloading it if needed.

        Raises:
            MirrorNotFoundError: If no mirror serves the release.
            DownloadError: If the transfer fails.
        """

        self._prepare_cache(request)
        target = request.target
        if target.is_file() and target.stat().st_size > 0:
            self.logger.debug(f"Using cached {target}")
            return target

        # a fresh download invalidates any verification of a previous file
        request.verification_marker.unlink(missing_ok=True)

        mirror = await self.resolver.find_download_uri(
            request.version, request.filename
        )
        self.logger.info(
            f"Fetching {request.name} {request.version} from {mirror.uri}"
        )
        return await self.downloader.download(mirror.uri, target)

    async def verify(self, request: DistributionRequest) -> ChecksumRecord:
        """
        Checks the cached tarball against its published checksum.

        A mismatching tarball is quarantined before the error propagates.
        """

        try:
            return await self.checksums.verify(
                request.target, self._checksum_base(request)
            )
        except ChecksumMismatchError:
            self._quarantine(request.target)
            raise

    async def download(self, request: DistributionRequest) -> Path:
        """Fetches the tarball if necessary and verifies it."""
        target = await self.fetch(request)
        await self.verify(request)
        return target

    async def _extract(self, request: DistributionRequest) -> Path:
        self.logger.info(
            f"Unpacking {request.name} {request.version} to {request.output_dir}"
        )
        await self.extractor.extract(request.target, Path(request.output_dir))
        return request.install_dir

    async def unpack(self, request: DistributionRequest) -> Path:
        """
        Extracts the cached tarball into the output directory.

        The tarball is verified first; an unverified cache file is never
        installed.
        """
        await self.verify(request)
        return await self._extract(request)

    async def install(self, request: DistributionRequest) -> Path:
        """
        Executes the full pipeline unless the release is already installed.

        Args:
            request: The distribution to install.

        Returns:
            The installation directory.
        """

        if self.is_installed(request):
            self.logger.info(
                f"{request.name} {request.version} already installed in "
                f"{request.install_dir}"
            )
            return request.install_dir

        self.logger.info(
            f"{request.name} {request.version} not found. Installing"
        )
        with logging_redirect_tqdm():
            await self.download(request)
        return await self._extract(request)

    async def repack(
        self,
        request: DistributionRequest,
        destination: Path,
        extra_files: Sequence[Path],
    ) -> Path:
        """
        Builds a copy of the verified tarball with extra library files.

        Args:
            request: The distribution to start from.
            destination: Path of the new tarball.
            extra_files: Library files to add to the distribution.

        Returns:
            The path of the new tarball.
        """

        with logging_redirect_tqdm():
            await self.download(request)
        self.logger.info(
            f"Repacking {request.filename} into {destination} with "
            f"{len(extra_files)} extra file(s)"
        )
        return await self.repacker.add_libraries(
            request.target, Path(destination), extra_files
        )
