"""
Streaming access to gzip-compressed tar archives.

Both the extractor and the repacker walk an archive strictly in stream
order. This module turns raw tar members into `ArchiveEntry` values and
applies GNU long-name continuation records on the way.
"""

import dataclasses
import stat
import tarfile
from typing import IO, Iterator, NamedTuple, Optional

from ..application.domain import ArchiveEntry, EntryKind

# Name of the synthetic entry GNU tar emits ahead of an entry whose name does
# not fit the 100-byte header field.
GNU_LONGLINK = "././@LongLink"

# Errors the native reader raises for archives it cannot handle.
READ_ERRORS = (tarfile.TarError, EOFError, OSError, UnicodeDecodeError)


class ScannedEntry(NamedTuple):
    entry: ArchiveEntry
    info: tarfile.TarInfo
    content: Optional[IO[bytes]]


@dataclasses.dataclass
class _ScanState:
    """State carried from one member of the stream to the next."""

    pending_name: Optional[str] = None

    def take_name(self, header_name: str) -> str:
        name, self.pending_name = self.pending_name, None
        return name or header_name


def entry_kind(info: tarfile.TarInfo) -> EntryKind:
    if info.isdir():
        return EntryKind.DIRECTORY
    if info.isreg():
        return EntryKind.FILE
    if info.issym():
        return EntryKind.SYMLINK
    return EntryKind.OTHER


def _read_long_name(tar: tarfile.TarFile, info: tarfile.TarInfo) -> str:
    payload = tar.extractfile(info).read()
    return payload.rstrip(b"\0").decode(tar.encoding or "utf-8").strip()


def open_stream(source, mode: str = "r|gz") -> tarfile.TarFile:
    """Opens an archive for one forward pass."""
    return tarfile.open(source, mode)


def scan_entries(tar: tarfile.TarFile) -> Iterator[ScannedEntry]:
    """
    Yields every materializable member of a stream-mode tar.

    `tarfile` consumes long-name records with the GNU 'L' type itself. Some
    writers emit `././@LongLink` as an ordinary file instead; those are
    captured here and applied to the entry that follows. Either way the
    record is never yielded.

    The `content` stream of a file entry must be consumed before the
    iterator is advanced.
    """

    state = _ScanState()
    for info in tar:
        if info.name == GNU_LONGLINK:
            state.pending_name = _read_long_name(tar, info)
            continue

        full_name = state.take_name(info.name)
        kind = entry_kind(info)
        entry = ArchiveEntry(
            full_name=full_name,
            kind=kind,
            mode=stat.S_IMODE(info.mode),
            size=info.size if kind is EntryKind.FILE else 0,
            link_target=info.linkname if kind is EntryKind.SYMLINK else None,
        )
        content = tar.extractfile(info) if kind is EntryKind.FILE else None
        yield ScannedEntry(entry, info, content)
