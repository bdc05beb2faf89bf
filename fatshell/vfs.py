"""Per-process open file table over standard streams and a FAT32 volume."""

from __future__ import annotations

import errno
import struct
import sys
from dataclasses import dataclass
from enum import IntEnum, IntFlag
from typing import BinaryIO

from fatshell.fat32 import Fat32Error, Fat32Handle, Fat32Volume

MAX_PATH_LENGTH = 80
MAX_FILE_NUMBER = 16

FILE_READABLE = 0x1
FILE_WRITABLE = 0x2

AT_FDCWD = -100
STDIN_FILENO = 0
STDOUT_FILENO = 1
STDERR_FILENO = 2

NR_OPEN = 56
NR_CLOSE = 57
NR_GETDENTS64 = 61
NR_LSEEK = 62
NR_READ = 63
NR_WRITE = 64
NR_EXIT = 93
NR_GETPID = 172
NR_MUNMAP = 215
NR_CLONE = 220
NR_EXECVE = 221
NR_MMAP = 222
NR_WAITPID = 260


class OpenFlags(IntFlag):
    """Flags accepted by :meth:`FileTable.open`."""

    RDONLY = 0x0001
    WRONLY = 0x0002
    RDWR = 0x0003
    CREAT = 0x0100
    EXCL = 0x0200
    NOCTTY = 0x0400
    TRUNC = 0x1000
    APPEND = 0x2000
    NONBLOCK = 0x4000
    LARGEFILE = 0x100000
    DIRECTORY = 0x200000


class Whence(IntEnum):
    SET = 0
    CUR = 1
    END = 2


class DirentType(IntEnum):
    UNKNOWN = 0
    FIFO = 1
    CHR = 2
    DIR = 4
    BLK = 6
    REG = 8
    LNK = 10
    SOCK = 12
    WHT = 14


class FsType(IntEnum):
    FAT32 = 0x1
    EXT2 = 0x2


_DIRENT = struct.Struct("<QQHB12sx")
DIRENT_SIZE = _DIRENT.size


def _field_text(raw: bytes) -> str:
    for stop in (b" ", b"\0"):
        raw = raw.split(stop, 1)[0]
    return raw.decode("latin-1")


@dataclass(frozen=True)
class Dirent:
    """One directory record as returned by :meth:`FileTable.getdents64`."""

    d_ino: int
    d_off: int
    d_reclen: int
    d_type: DirentType
    d_name: bytes

    def pack(self) -> bytes:
        return _DIRENT.pack(
            self.d_ino, self.d_off, self.d_reclen, int(self.d_type), self.d_name
        )

    @classmethod
    def unpack(cls, data: bytes) -> "Dirent":
        if len(data) < DIRENT_SIZE:
            raise ValueError(f"dirent must be {DIRENT_SIZE} bytes, got {len(data)}")
        ino, off, reclen, dtype, name = _DIRENT.unpack_from(data)
        return cls(ino, off, reclen, DirentType(dtype), name)

    @property
    def name(self) -> str:
        """The 8.3 name; the extension is shown for regular files only."""
        base = _field_text(self.d_name[:8])
        ext = _field_text(self.d_name[8:11])
        if self.d_type == DirentType.REG and ext:
            return f"{base}.{ext}"
        return base


@dataclass
class OpenFile:
    """An entry of the file table."""

    path: str
    flags: int
    perms: int
    fs_type: FsType | None = None
    handle: Fat32Handle | None = None
    stream: BinaryIO | None = None
    cfo: int = 0

    @property
    def readable(self) -> bool:
        return bool(self.perms & FILE_READABLE)

    @property
    def writable(self) -> bool:
        return bool(self.perms & FILE_WRITABLE)


def get_fs_type(path: str) -> FsType | None:
    """Tell which file system a path belongs to by its mount prefix."""
    if path.startswith("/fat32/"):
        return FsType.FAT32
    if path.startswith("/ext2/"):
        return FsType.EXT2
    return None


def get_perm(flags: int) -> int:
    """Translate open flags to readable/writable permission bits."""
    perms = 0
    if flags & OpenFlags.RDONLY:
        perms |= FILE_READABLE
    if flags & OpenFlags.WRONLY:
        perms |= FILE_WRITABLE
    return perms


class FileTable:
    """Descriptors 0-2 are the standard streams; the rest open FAT32 paths."""

    def __init__(
        self,
        volume: Fat32Volume | None = None,
        stdin: BinaryIO | None = None,
        stdout: BinaryIO | None = None,
        stderr: BinaryIO | None = None,
    ) -> None:
        self.volume = volume
        self._stdout = stdout if stdout is not None else sys.stdout.buffer
        self._files: list[OpenFile | None] = [None] * MAX_FILE_NUMBER
        self._files[STDIN_FILENO] = OpenFile(
            "<stdin>", OpenFlags.RDONLY, FILE_READABLE,
            stream=stdin if stdin is not None else sys.stdin.buffer,
        )
        self._files[STDOUT_FILENO] = OpenFile(
            "<stdout>", OpenFlags.WRONLY, FILE_WRITABLE, stream=self._stdout
        )
        self._files[STDERR_FILENO] = OpenFile(
            "<stderr>", OpenFlags.WRONLY, FILE_WRITABLE,
            stream=stderr if stderr is not None else sys.stderr.buffer,
        )

    def _get(self, fd: int) -> OpenFile:
        if not 0 <= fd < MAX_FILE_NUMBER or self._files[fd] is None:
            raise OSError(errno.EBADF, f"file descriptor {fd} is not open")
        return self._files[fd]  # type: ignore[return-value]

    def open(self, path: str, flags: int) -> int:
        """Open ``path`` and return the lowest free descriptor."""
        if len(path) >= MAX_PATH_LENGTH:
            raise OSError(errno.ENAMETOOLONG, "path too long", path)
        fd = next((i for i, f in enumerate(self._files) if f is None), None)
        if fd is None:
            raise OSError(errno.EMFILE, "too many open files", path)
        fs_type = get_fs_type(path)
        if fs_type is None:
            raise OSError(errno.ENOENT, "unknown file system type", path)
        if fs_type == FsType.EXT2:
            raise OSError(errno.EOPNOTSUPP, "ext2 is not supported", path)
        if self.volume is None:
            raise OSError(errno.ENODEV, "no FAT32 volume mounted", path)
        if flags & OpenFlags.DIRECTORY:
            handle = self.volume.open_dir(path)
        else:
            handle = self.volume.open_file(path)
        if handle.cluster == 0:
            raise Fat32Error(errno.ENOENT, "file has no data clusters", path)
        self._files[fd] = OpenFile(path, flags, get_perm(flags), fs_type, handle)
        return fd

    def close(self, fd: int) -> None:
        self._get(fd)
        self._files[fd] = None

    def lseek(self, fd: int, offset: int, whence: int) -> int:
        """Move the file offset and return its new value."""
        file = self._get(fd)
        if file.handle is None or self.volume is None:
            raise OSError(errno.ESPIPE, "illegal seek")
        whence = Whence(whence)
        if whence == Whence.SET:
            position = offset
        elif whence == Whence.CUR:
            position = file.cfo + offset
        else:
            position = self.volume.file_size(file.handle) + offset
        if position < 0:
            raise OSError(errno.EINVAL, "negative file offset")
        file.cfo = position
        return position

    def _read_stream(self, stream: BinaryIO, count: int) -> bytes:
        chunks = []
        for _ in range(count):
            ch = stream.read(1)
            if not ch:
                break
            chunks.append(ch)
            self._stdout.write(ch)
        self._stdout.flush()
        return b"".join(chunks)

    def read(self, fd: int, count: int) -> bytes:
        """Read up to ``count`` bytes; standard input echoes what it reads."""
        file = self._get(fd)
        if not file.readable:
            raise PermissionError(errno.EBADF, "not open for reading", file.path)
        if count < 0:
            raise ValueError("count must not be negative")
        if file.stream is not None:
            return self._read_stream(file.stream, count)
        assert file.handle is not None and self.volume is not None
        if file.handle.is_dir:
            raise IsADirectoryError(errno.EISDIR, "is a directory", file.path)
        data = self.volume.read(file.handle, file.cfo, count)
        file.cfo += len(data)
        return data

    def write(self, fd: int, data: bytes) -> int:
        """Write ``data`` at the current offset and return the bytes written."""
        file = self._get(fd)
        if not file.writable:
            raise PermissionError(errno.EBADF, "not open for writing", file.path)
        payload = bytes(data)
        if file.stream is not None:
            file.stream.write(payload)
            file.stream.flush()
            return len(payload)
        assert file.handle is not None and self.volume is not None
        if file.handle.is_dir:
            raise IsADirectoryError(errno.EISDIR, "is a directory", file.path)
        written = self.volume.write(file.handle, file.cfo, payload)
        file.cfo += written
        return written

    def getdents64(self, fd: int, count: int) -> list[Dirent]:
        """Return the entries found in the next ``count`` bytes of a directory."""
        file = self._get(fd)
        if file.handle is None or not file.handle.is_dir or self.volume is None:
            raise NotADirectoryError(errno.ENOTDIR, "not a directory", file.path)
        entries, consumed = self.volume.read_dir(file.handle, file.cfo, count)
        file.cfo += consumed
        return [
            Dirent(
                0,
                (i + 1) * DIRENT_SIZE,
                DIRENT_SIZE,
                DirentType.DIR if entry.is_directory else DirentType.REG,
                (entry.name + entry.ext).ljust(12, b"\0"),
            )
            for i, entry in enumerate(entries)
        ]