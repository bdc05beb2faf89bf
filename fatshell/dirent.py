"""Directory streams over a file table."""

from __future__ import annotations

from types import TracebackType
from typing import Iterator

from fatshell.vfs import Dirent, FileTable, OpenFlags

DIR_BUFFER_SIZE = 512


class DirStream:
    """Iterates the entries of a directory opened on a file table."""

    def __init__(self, files: FileTable, fd: int) -> None:
        self.files = files
        self.fd = fd
        self.closed = False
        self._entries: list[Dirent] = []
        self._position = 0

    def readdir(self) -> Dirent | None:
        """Return the next entry, or None when the directory is exhausted."""
        if self._position >= len(self._entries):
            self._entries = self.files.getdents64(self.fd, DIR_BUFFER_SIZE)
            self._position = 0
            if not self._entries:
                return None
        entry = self._entries[self._position]
        self._position += 1
        return entry

    def __iter__(self) -> Iterator[Dirent]:
        while (entry := self.readdir()) is not None:
            yield entry

    def close(self) -> None:
        if not self.closed:
            self.files.close(self.fd)
            self.closed = True

    def __enter__(self) -> "DirStream":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()


def opendir(files: FileTable, name: str) -> DirStream:
    """Open the directory ``name`` for reading."""
    return DirStream(files, files.open(name, OpenFlags.DIRECTORY | OpenFlags.RDONLY))


def fdopendir(files: FileTable, fd: int) -> DirStream:
    """Wrap an already opened directory descriptor."""
    return DirStream(files, fd)