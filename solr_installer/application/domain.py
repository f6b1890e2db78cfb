"""
This module defines the core domain models for the application.

These classes represent the pure, technology-agnostic entities and data
structures that the installation pipeline operates on, together with the
ports (interfaces) that infrastructure adapters implement.
"""

import dataclasses
import enum
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional, Sequence
from urllib.parse import urljoin


# --- Domain Models ---

@dataclasses.dataclass(frozen=True)
class DistributionRequest:
    """
    A single request to obtain a versioned server distribution.

    Every on-disk location the pipeline touches is derived from these
    values, so a request fully describes the cache and install layout.
    """

    version: str
    output_dir: Path
    cache_dir: Path
    name: str = "solr"
    server_binary: str = "solr"

    @property
    def basename(self) -> str:
        return f"{self.name}-{self.version}"

    @property
    def filename(self) -> str:
        return f"{self.basename}.tgz"

    @property
    def target(self) -> Path:
        """The cached tarball."""
        return Path(self.cache_dir) / self.filename

    @property
    def verification_marker(self) -> Path:
        """Records that `target` passed checksum verification."""
        return Path(self.cache_dir) / f"{self.filename}.verified"

    @property
    def install_dir(self) -> Path:
        return Path(self.output_dir) / self.basename

    @property
    def installed_marker(self) -> Path:
        """File whose presence means the distribution is already installed."""
        return self.install_dir / "bin" / self.server_binary


@dataclasses.dataclass(frozen=True)
class MirrorCandidate:
    """A ranked location that may host the distribution archive."""

    base_uri: str
    path_info: str
    filename: str
    rank: int

    @property
    def uri(self) -> str:
        base = self.base_uri if self.base_uri.endswith("/") else self.base_uri + "/"
        path_info = self.path_info.strip("/")
        directory = urljoin(base, path_info + "/") if path_info else base
        return urljoin(directory, self.filename)


class ChecksumAlgorithm(enum.Enum):
    """Digest algorithms published alongside the distribution."""

    SHA512 = "sha512"
    SHA1 = "sha1"

    @property
    def extension(self) -> str:
        return self.value

    @property
    def hashlib_name(self) -> str:
        return self.value

    @property
    def hex_length(self) -> int:
        """Number of hex characters in a digest of this algorithm."""
        return {"sha512": 128, "sha1": 40}[self.value]


# Strongest first; the first algorithm with a published digest decides.
ALGORITHM_PREFERENCE = (ChecksumAlgorithm.SHA512, ChecksumAlgorithm.SHA1)


@dataclasses.dataclass(frozen=True)
class ChecksumRecord:
    """A digest that was successfully checked against a cached file."""

    algorithm: ChecksumAlgorithm
    value: str
    source_path: Path


class EntryKind(enum.Enum):
    FILE = "file"
    DIRECTORY = "directory"
    SYMLINK = "symlink"
    OTHER = "other"


@dataclasses.dataclass(frozen=True)
class ArchiveEntry:
    """
    One materializable entry of a tar stream.

    `full_name` is the name after any long-name continuation record has been
    applied, never the truncated header name.
    """

    full_name: str
    kind: EntryKind
    mode: int
    size: int = 0
    link_target: Optional[str] = None


# --- Ports (Interfaces) ---

class MirrorResolver(ABC):
    """A port for locating a reachable copy of the distribution."""

    @abstractmethod
    async def resolve(
        self, version: str, filename: str
    ) -> List[MirrorCandidate]:
        """Builds the rank-ordered list of candidate locations."""
        pass

    @abstractmethod
    async def probe(
        self, candidates: Sequence[MirrorCandidate]
    ) -> Optional[MirrorCandidate]:
        """Returns the best-ranked candidate that responds, or None."""
        pass

    @abstractmethod
    async def find_download_uri(
        self, version: str, filename: str
    ) -> MirrorCandidate:
        """
        Resolves and probes in one step.
        Raises MirrorNotFoundError if nothing responds.
        """
        pass


class Downloader(ABC):
    """A port for any file downloader."""

    @abstractmethod
    async def download(self, uri: str, destination: Path) -> Path:
        """Downloads a single file to a destination path."""
        pass


class ChecksumStore(ABC):
    """A port for obtaining and checking published digests."""

    @abstractmethod
    async def find_digest(
        self, target: Path, algorithm: ChecksumAlgorithm, remote_base: str
    ) -> Optional[str]:
        """Returns the published digest for `target`, or None if absent."""
        pass

    @abstractmethod
    async def verify(self, target: Path, remote_base: str) -> ChecksumRecord:
        """
        Verifies the integrity of a cached file.
        Raises ChecksumMismatchError or ChecksumUnavailableError.
        """
        pass


class Extractor(ABC):
    """A port for unpacking a distribution archive."""

    @abstractmethod
    async def extract(self, source: Path, destination: Path) -> Path:
        """Materializes the archive's tree under `destination`."""
        pass


class Repacker(ABC):
    """A port for producing a new archive with extra library files."""

    @abstractmethod
    async def add_libraries(
        self, source: Path, destination: Path, extra_files: Sequence[Path]
    ) -> Path:
        """
        Copies `source` into `destination`, adding `extra_files`.
        Raises MissingInjectionTargetError if there is nowhere to add them.
        """
        pass
