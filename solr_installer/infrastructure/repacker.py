"""
Infrastructure adapter that rebuilds a distribution tarball with extra
library files added, without unpacking it to disk.
"""

import asyncio
import copy
import dataclasses
import gzip
import logging
import os
import posixpath
import shutil
import stat
import tarfile
import tempfile
from pathlib import Path
from typing import Optional, Sequence, Set

from ..application.domain import EntryKind, Repacker
from ..application.exceptions import ArchiveReadError, MissingInjectionTargetError

from .archive import READ_ERRORS, open_stream, scan_entries


@dataclasses.dataclass
class _RepackState:
    injection_root: Optional[str] = None
    directories: Set[str] = dataclasses.field(default_factory=set)
    injection_root_mode: int = 0o755
    entries: int = 0


def _directory_name(name: str) -> str:
    return name.rstrip("/") + "/"


class TarRepacker(Repacker):
    """
    An adapter that implements the Repacker port for gzip-compressed tars.

    Every source entry is copied unchanged. Extra files are appended under
    `<library root>/<library_subdir>/`, where the library root is the first
    directory whose name ends with `library_root_suffix`.
    """

    def __init__(
        self,
        library_root_suffix: str = "server/solr/",
        library_subdir: str = "lib",
        chunk_size: int = 1 << 20,
        logger: Optional[logging.Logger] = None,
    ):
        """Initializes the repacker."""
        self.library_root_suffix = _directory_name(library_root_suffix)
        self.library_subdir = library_subdir.strip("/")
        self.chunk_size = chunk_size
        self.logger = logger or logging.getLogger(self.__class__.__name__)

    def _copy_entries(self, source: Path, writer: tarfile.TarFile) -> _RepackState:
        state = _RepackState()
        with open_stream(source) as tar:
            for entry, info, content in scan_entries(tar):
                header = copy.copy(info)
                header.name = entry.full_name

                if entry.kind is EntryKind.DIRECTORY:
                    name = _directory_name(entry.full_name)
                    state.directories.add(name)
                    if state.injection_root is None and \
                            name.endswith(self.library_root_suffix):
                        state.injection_root = name
                        state.injection_root_mode = entry.mode
                    writer.addfile(header)
                elif entry.kind is EntryKind.FILE:
                    writer.addfile(header, content)
                else:
                    # symlinks and other special entries carry no data
                    writer.addfile(header)
                state.entries += 1
        return state

    def _add_file(self, writer: tarfile.TarFile, path: Path, arcname: str):
        file_stat = path.stat()
        header = tarfile.TarInfo(arcname)
        header.size = file_stat.st_size
        header.mode = stat.S_IMODE(file_stat.st_mode)
        header.mtime = int(file_stat.st_mtime)
        with open(path, "rb") as in_fh:
            writer.addfile(header, in_fh)

    def _append_libraries(
        self,
        writer: tarfile.TarFile,
        state: _RepackState,
        extra_files: Sequence[Path],
    ):
        library_dir = _directory_name(
            posixpath.join(state.injection_root, self.library_subdir)
            if self.library_subdir else state.injection_root
        )
        if library_dir not in state.directories:
            header = tarfile.TarInfo(library_dir)
            header.type = tarfile.DIRTYPE
            header.mode = state.injection_root_mode
            writer.addfile(header)

        for extra in extra_files:
            path = Path(extra)
            if not path.is_file():
                self.logger.warning(f"Skipping missing library file {path}")
                continue
            arcname = library_dir + path.name
            self.logger.info(f"Adding {path.name} as {arcname}")
            self._add_file(writer, path, arcname)

    def _compress(self, tar_fh, destination: Path):
        part_path = destination.with_name(destination.name + ".part")
        destination.parent.mkdir(parents=True, exist_ok=True)
        try:
            with gzip.open(part_path, "wb") as gz_fh:
                shutil.copyfileobj(tar_fh, gz_fh, self.chunk_size)
            os.replace(part_path, destination)
        finally:
            part_path.unlink(missing_ok=True)

    def _blocking_repack(
        self, source: Path, destination: Path, extra_files: Sequence[Path]
    ) -> Path:
        with tempfile.TemporaryFile(suffix=".tar") as tar_fh:
            with tarfile.open(
                fileobj=tar_fh, mode="w", format=tarfile.GNU_FORMAT
            ) as writer:
                try:
                    state = self._copy_entries(source, writer)
                except READ_ERRORS as e:
                    raise ArchiveReadError(
                        f"Failed to read {source.name}: {e}"
                    ) from e

                if state.injection_root is None:
                    raise MissingInjectionTargetError(
                        f"No directory ending in {self.library_root_suffix!r} "
                        f"found in {source.name}"
                    )
                self._append_libraries(writer, state, extra_files)

            self.logger.info(
                f"Copied {state.entries} entries from {source.name} into "
                f"{destination.name}"
            )
            tar_fh.seek(0)
            self._compress(tar_fh, destination)
        return destination

    async def add_libraries(
        self, source: Path, destination: Path, extra_files: Sequence[Path]
    ) -> Path:
        """
        Re-packs `source` into `destination` with `extra_files` added.

        Args:
            source: The original gzip-compressed tarball.
            destination: Path of the new tarball; written only on success.
            extra_files: Library files to add. Missing paths are skipped.

        Returns:
            The destination path.

        Raises:
            ArchiveReadError: If the source cannot be read.
            MissingInjectionTargetError: If the source has no library root.
        """

        return await asyncio.to_thread(
            self._blocking_repack, Path(source), Path(destination), extra_files
        )
