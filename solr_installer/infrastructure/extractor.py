"""
Infrastructure adapter that unpacks a distribution tarball onto disk.
"""

import asyncio
import dataclasses
import logging
import os
import shutil
from pathlib import Path
from typing import List, Optional, Tuple

from ..application.domain import ArchiveEntry, EntryKind, Extractor
from ..application.exceptions import ArchiveReadError, UnsafeArchiveEntryError

from .archive import READ_ERRORS, open_stream, scan_entries


@dataclasses.dataclass
class _ExtractState:
    """Directory modes are applied last so read-only dirs keep accepting children."""

    directory_modes: List[Tuple[Path, int]] = dataclasses.field(
        default_factory=list
    )
    entries: int = 0


def _remove(path: Path):
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    else:
        path.unlink()


def _exists(path: Path) -> bool:
    return path.exists() or path.is_symlink()


class TarExtractor(Extractor):
    """
    An adapter that implements the Extractor port for gzip-compressed tars.

    Extraction overwrites whatever already exists at an entry's path. If the
    native reader fails on the archive, the system `tar` is used instead.
    """

    def __init__(
        self, tar_command: str = "tar", logger: Optional[logging.Logger] = None
    ):
        """Initializes the extractor."""
        self.tar_command = tar_command
        self.logger = logger or logging.getLogger(self.__class__.__name__)

    def _resolve_destination(self, root: Path, entry: ArchiveEntry) -> Path:
        parts = Path(entry.full_name).parts
        unsafe = os.path.isabs(entry.full_name) or ".." in parts
        destination = root.joinpath(*parts)
        if not unsafe and parts:
            # a symlink extracted earlier must not redirect later entries
            real_root = os.path.realpath(root)
            real_parent = os.path.realpath(destination.parent)
            unsafe = os.path.commonpath([real_root, real_parent]) != real_root
        if unsafe:
            raise UnsafeArchiveEntryError(
                f"Entry {entry.full_name!r} would be extracted outside {root}"
            )
        return destination

    def _write_directory(self, path: Path, entry: ArchiveEntry, state: _ExtractState):
        if _exists(path) and (path.is_symlink() or not path.is_dir()):
            _remove(path)
        path.mkdir(parents=True, exist_ok=True)
        state.directory_modes.append((path, entry.mode))

    def _write_file(self, path: Path, entry: ArchiveEntry, content):
        if _exists(path) and (path.is_symlink() or not path.is_file()):
            _remove(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "wb") as out_fh:
            shutil.copyfileobj(content, out_fh)
        os.chmod(path, entry.mode)

    def _write_symlink(self, path: Path, entry: ArchiveEntry):
        if _exists(path):
            _remove(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        os.symlink(entry.link_target, path)

    def _blocking_extract(self, source: Path, destination: Path) -> int:
        """Streams every entry of `source` into `destination` in order."""
        state = _ExtractState()
        with open_stream(source) as tar:
            for entry, _info, content in scan_entries(tar):
                path = self._resolve_destination(destination, entry)
                if entry.kind is EntryKind.DIRECTORY:
                    self._write_directory(path, entry, state)
                elif entry.kind is EntryKind.FILE:
                    self._write_file(path, entry, content)
                elif entry.kind is EntryKind.SYMLINK:
                    self._write_symlink(path, entry)
                else:
                    self.logger.debug(f"Ignoring entry {entry.full_name}")
                    continue
                state.entries += 1

        for path, mode in reversed(state.directory_modes):
            os.chmod(path, mode)
        return state.entries

    async def _run_native_tar(self, source: Path, destination: Path):
        """Last resort: let the system tar read archives tarfile cannot."""
        process = await asyncio.create_subprocess_exec(
            self.tar_command, "xzf", str(source), "-C", str(destination),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        _, stderr = await process.communicate()
        if process.returncode != 0:
            raise ArchiveReadError(
                f"Native tar failed to extract {source.name} "
                f"(exit {process.returncode}): "
                f"{stderr.decode(errors='replace').strip()}"
            )

    async def extract(self, source: Path, destination: Path) -> Path:
        """
        Materializes the archive's file tree under `destination`.

        Args:
            source: The gzip-compressed tarball.
            destination: Directory the archive's paths are relative to.

        Returns:
            The destination directory.

        Raises:
            UnsafeArchiveEntryError: If an entry escapes `destination`.
            ArchiveReadError: If both the native reader and the system tar
                              fail.
        """

        self.logger.debug(f"Extracting {source} to {destination}")
        destination.mkdir(parents=True, exist_ok=True)
        try:
            count = await asyncio.to_thread(
                self._blocking_extract, source, destination
            )
            self.logger.info(f"Extracted {count} entries from {source.name}")
        except READ_ERRORS as e:
            self.logger.warning(
                f"Unable to extract {source.name} natively ({e!r}); "
                f"falling back to {self.tar_command}"
            )
            try:
                await self._run_native_tar(source, destination)
            except OSError as e:
                raise ArchiveReadError(
                    f"Could not run {self.tar_command}: {e}"
                ) from e
        return destination
