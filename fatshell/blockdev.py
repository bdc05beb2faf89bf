"""Sector-addressed access to a raw disk image."""

from __future__ import annotations

import os
from types import TracebackType

SECTOR_SIZE = 512
BOOT_SIGNATURE = b"\x55\xaa"


class BlockDevice:
    """A disk image read and written in whole 512-byte sectors."""

    def __init__(self, path: str | os.PathLike[str], writable: bool = False) -> None:
        self.path = os.fspath(path)
        self.writable = writable
        self._file = open(self.path, "r+b" if writable else "rb")
        self.sector_count = os.fstat(self._file.fileno()).st_size // SECTOR_SIZE

    @property
    def closed(self) -> bool:
        return self._file.closed

    def _check_sector(self, sector: int) -> None:
        if self._file.closed:
            raise ValueError("block device is closed")
        if not 0 <= sector < self.sector_count:
            raise IndexError(
                f"sector {sector} outside device of {self.sector_count} sectors"
            )

    def read_sector(self, sector: int) -> bytes:
        """Return the 512 bytes stored at ``sector``."""
        self._check_sector(sector)
        self._file.seek(sector * SECTOR_SIZE)
        data = self._file.read(SECTOR_SIZE)
        if len(data) != SECTOR_SIZE:
            raise IOError(f"short read at sector {sector}")
        return data

    def write_sector(self, sector: int, data: bytes | bytearray | memoryview) -> None:
        """Store exactly one sector of ``data`` at ``sector``."""
        if not self.writable:
            raise PermissionError("block device was opened read-only")
        self._check_sector(sector)
        payload = bytes(data)
        if len(payload) != SECTOR_SIZE:
            raise ValueError(
                f"sector data must be {SECTOR_SIZE} bytes, got {len(payload)}"
            )
        self._file.seek(sector * SECTOR_SIZE)
        self._file.write(payload)
        self._file.flush()

    def has_boot_signature(self) -> bool:
        """Tell whether sector 0 ends with the 0x55 0xAA boot signature."""
        if self.sector_count == 0:
            return False
        return self.read_sector(0)[510:512] == BOOT_SIGNATURE

    def close(self) -> None:
        self._file.close()

    def __enter__(self) -> "BlockDevice":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()