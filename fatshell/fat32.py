"""FAT32 volumes on a sector-addressed block device."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import Iterator

from fatshell.blockdev import SECTOR_SIZE, BlockDevice
from fatshell.mbr import linux_partitions

INVALID_CLUSTER = 0x0FFFFFF8
CLUSTER_MASK = 0x0FFFFFFF
DIR_ENTRY_SIZE = 32
ENTRIES_PER_SECTOR = SECTOR_SIZE // DIR_ENTRY_SIZE
NAME_LENGTH = 8
ATTR_VOLUME_ID = 0x08
ATTR_DIRECTORY = 0x10
DELETED_MARK = 0xE5
END_MARK = 0x00
BOOT_SIGNATURE = 0xAA55

_BPB = struct.Struct("<3s8sHBHBHHBHHHIIIHHIHH12sBBBI11s8s420sH")
_DIR_ENTRY = struct.Struct("<8s3sBBBHHHHHHHI")
_SIZE_FIELD_OFFSET = 28


class Fat32Error(OSError):
    """Raised when a FAT32 lookup or transfer fails."""


@dataclass(frozen=True)
class BootSector:
    """The BIOS parameter block found in the first sector of a FAT32 volume."""

    jmp_boot: bytes
    oem_name: bytes
    bytes_per_sec: int
    sec_per_clus: int
    rsvd_sec_cnt: int
    num_fats: int
    root_ent_cnt: int
    tot_sec16: int
    media: int
    fat_sz16: int
    sec_per_trk: int
    num_heads: int
    hidd_sec: int
    tot_sec32: int
    fat_sz32: int
    ext_flags: int
    fs_ver: int
    root_clus: int
    fs_info: int
    bk_boot_sec: int
    reserved: bytes
    drv_num: int
    reserved1: int
    boot_sig: int
    vol_id: int
    vol_lab: bytes
    fil_sys_type: bytes
    boot_code: bytes
    boot_sector_signature: int

    @classmethod
    def parse(cls, data: bytes) -> "BootSector":
        if len(data) < _BPB.size:
            raise ValueError(f"boot sector must be {_BPB.size} bytes, got {len(data)}")
        return cls(*_BPB.unpack_from(data))


@dataclass(frozen=True)
class DirEntry:
    """A 32-byte short-name directory entry."""

    name: bytes
    ext: bytes
    attr: int
    lcase: int
    ctime_cs: int
    ctime: int
    cdate: int
    adate: int
    starthi: int
    time: int
    date: int
    startlow: int
    size: int

    @classmethod
    def parse(cls, data: bytes) -> "DirEntry":
        if len(data) < _DIR_ENTRY.size:
            raise ValueError(
                f"directory entry must be {_DIR_ENTRY.size} bytes, got {len(data)}"
            )
        return cls(*_DIR_ENTRY.unpack_from(data))

    @property
    def is_end(self) -> bool:
        return self.name[0] == END_MARK

    @property
    def is_deleted(self) -> bool:
        return self.name[0] == DELETED_MARK

    @property
    def is_directory(self) -> bool:
        return bool(self.attr & ATTR_DIRECTORY)

    @property
    def is_label_or_long_name(self) -> bool:
        return bool(self.attr & ATTR_VOLUME_ID)

    @property
    def start_cluster(self) -> int:
        return self.startlow | (self.starthi << 16)

    @property
    def key(self) -> bytes:
        """The 8-byte base name with blanks turned into NUL bytes."""
        return bytes(0 if byte == 0x20 else byte for byte in self.name)


@dataclass(frozen=True)
class Fat32Handle:
    """Where an opened file or directory lives on the volume.

    ``dir_cluster`` and ``dir_index`` locate the entry describing it; the root
    directory has no such entry and uses ``0`` and ``-1``.
    """

    cluster: int
    dir_cluster: int
    dir_index: int
    is_dir: bool = False


def _is_chain_end(cluster: int) -> bool:
    return cluster < 2 or cluster >= INVALID_CLUSTER


def _name_key(component: str) -> bytes:
    try:
        raw = component.encode("ascii")
    except UnicodeEncodeError as exc:
        raise Fat32Error(f"{component}: invalid name") from exc
    return raw.upper()[:NAME_LENGTH].ljust(NAME_LENGTH, b"\0")


def _split_path(path: str) -> list[str]:
    """Drop the mount component and return the remaining path components."""
    _, _, rest = path.lstrip("/").partition("/")
    return [part for part in rest.split("/") if part]


class Fat32Volume:
    """A FAT32 file system starting at sector ``lba`` of a block device."""

    def __init__(self, device: BlockDevice, lba: int) -> None:
        self.device = device
        self.lba = lba
        self.boot = BootSector.parse(device.read_sector(lba))
        if self.boot.bytes_per_sec != SECTOR_SIZE:
            raise Fat32Error(
                f"unsupported sector size {self.boot.bytes_per_sec}"
            )
        if self.boot.sec_per_clus == 0:
            raise Fat32Error("boot sector gives zero sectors per cluster")
        self.first_fat_sec = lba + self.boot.rsvd_sec_cnt
        self.sec_per_cluster = self.boot.sec_per_clus
        self.first_data_sec = self.first_fat_sec + self.boot.num_fats * self.boot.fat_sz32
        self.fat_sz = self.boot.fat_sz32
        self.root_cluster = self.boot.root_clus
        self.cluster_bytes = self.sec_per_cluster * SECTOR_SIZE

    def cluster_to_sector(self, cluster: int) -> int:
        return (cluster - 2) * self.sec_per_cluster + self.first_data_sec

    def sector_to_cluster(self, sector: int) -> int:
        return (sector - self.first_data_sec) // self.sec_per_cluster + 2

    def next_cluster(self, cluster: int) -> int:
        """Return the FAT entry that follows ``cluster`` in its chain."""
        offset = cluster * 4
        data = self.device.read_sector(self.first_fat_sec + offset // SECTOR_SIZE)
        (value,) = struct.unpack_from("<I", data, offset % SECTOR_SIZE)
        return value & CLUSTER_MASK

    def _chain(self, start: int) -> Iterator[int]:
        seen: set[int] = set()
        cluster = start
        while not _is_chain_end(cluster):
            if cluster in seen:
                raise Fat32Error(f"cluster chain loops at {cluster:#x}")
            seen.add(cluster)
            yield cluster
            cluster = self.next_cluster(cluster)

    def _read_cluster(self, cluster: int) -> bytes:
        first = self.cluster_to_sector(cluster)
        return b"".join(
            self.device.read_sector(first + i) for i in range(self.sec_per_cluster)
        )

    def _dir_slots(self, cluster: int) -> Iterator[tuple[int, int, DirEntry]]:
        per_cluster = self.cluster_bytes // DIR_ENTRY_SIZE
        for current in self._chain(cluster):
            data = self._read_cluster(current)
            for index in range(per_cluster):
                start = index * DIR_ENTRY_SIZE
                yield current, index, DirEntry.parse(data[start:start + DIR_ENTRY_SIZE])

    def _search(self, dir_cluster: int, key: bytes, want_dir: bool, path: str) -> Fat32Handle:
        for cluster, index, entry in self._dir_slots(dir_cluster):
            if entry.is_end:
                break
            if entry.is_deleted or entry.is_label_or_long_name:
                continue
            if entry.is_directory != want_dir:
                continue
            if entry.key == key:
                return Fat32Handle(entry.start_cluster, cluster, index, want_dir)
        raise Fat32Error(f"{path}: no such file or directory")

    def _resolve(self, path: str) -> tuple[int, str] | None:
        """Return the parent directory's cluster and the final name, or None for root."""
        components = _split_path(path)
        if not components:
            return None
        cluster = self.root_cluster
        for component in components[:-1]:
            found = self._search(cluster, _name_key(component), True, path)
            cluster = found.cluster or self.root_cluster
        return cluster, components[-1]

    def open_file(self, path: str) -> Fat32Handle:
        """Locate the regular file named by ``path``."""
        resolved = self._resolve(path)
        if resolved is None:
            raise Fat32Error(f"{path}: not a file")
        parent, name = resolved
        return self._search(parent, _name_key(name), False, path)

    def open_dir(self, path: str) -> Fat32Handle:
        """Locate the directory named by ``path``; an empty path is the root."""
        resolved = self._resolve(path)
        if resolved is not None:
            parent, name = resolved
            found = self._search(parent, _name_key(name), True, path)
            if found.cluster:
                return found
        return Fat32Handle(self.root_cluster, 0, -1, True)

    def _entry_location(self, handle: Fat32Handle) -> tuple[int, int]:
        sector = self.cluster_to_sector(handle.dir_cluster) + handle.dir_index // ENTRIES_PER_SECTOR
        return sector, (handle.dir_index % ENTRIES_PER_SECTOR) * DIR_ENTRY_SIZE

    def file_size(self, handle: Fat32Handle) -> int:
        """Size in bytes: the entry's size for files, the chain's span for directories."""
        if handle.is_dir:
            return sum(1 for _ in self._chain(handle.cluster)) * self.cluster_bytes
        sector, offset = self._entry_location(handle)
        data = self.device.read_sector(sector)
        return DirEntry.parse(data[offset:offset + DIR_ENTRY_SIZE]).size

    def read(self, handle: Fat32Handle, offset: int, length: int) -> bytes:
        """Return up to ``length`` bytes of the file starting at ``offset``."""
        if offset < 0:
            raise ValueError("offset must not be negative")
        length = min(length, self.file_size(handle) - offset)
        if length <= 0:
            return b""
        chain = list(self._chain(handle.cluster))
        first, skip = divmod(offset, self.cluster_bytes)
        last = (offset + length - 1) // self.cluster_bytes
        if last >= len(chain):
            raise Fat32Error("cluster chain is shorter than the file")
        data = b"".join(self._read_cluster(c) for c in chain[first:last + 1])
        return data[skip:skip + length]

    def read_dir(self, handle: Fat32Handle, offset: int, length: int) -> tuple[list[DirEntry], int]:
        """List live entries in ``length`` bytes of a directory from ``offset``.

        Returns the entries and the number of directory bytes consumed; the
        scan stops at the end-of-directory marker.
        """
        if offset < 0:
            raise ValueError("offset must not be negative")
        length = min(length, self.file_size(handle) - offset)
        if length <= 0:
            return [], 0
        chain = list(self._chain(handle.cluster))
        cache: dict[int, bytes] = {}
        entries: list[DirEntry] = []
        for pos in range(offset, offset + length - DIR_ENTRY_SIZE + 1, DIR_ENTRY_SIZE):
            index, within = divmod(pos, self.cluster_bytes)
            if index >= len(chain):
                break
            if index not in cache:
                cache[index] = self._read_cluster(chain[index])
            entry = DirEntry.parse(cache[index][within:within + DIR_ENTRY_SIZE])
            if entry.is_end:
                return entries, pos - offset
            if entry.is_deleted or entry.is_label_or_long_name:
                continue
            entries.append(entry)
        return entries, length

    def write(self, handle: Fat32Handle, offset: int, data: bytes) -> int:
        """Write ``data`` at ``offset`` within the allocated clusters; return its length."""
        if offset < 0:
            raise ValueError("offset must not be negative")
        payload = bytes(data)
        if not payload:
            return 0
        size = None if handle.is_dir else self.file_size(handle)
        chain = list(self._chain(handle.cluster))
        end = offset + len(payload)
        if (end - 1) // self.cluster_bytes >= len(chain):
            raise Fat32Error("write extends past the end of the cluster chain")
        pos = offset
        done = 0
        while done < len(payload):
            index, within = divmod(pos, self.cluster_bytes)
            sector_index, sector_offset = divmod(within, SECTOR_SIZE)
            sector = self.cluster_to_sector(chain[index]) + sector_index
            count = min(SECTOR_SIZE - sector_offset, len(payload) - done)
            buf = bytearray(self.device.read_sector(sector))
            buf[sector_offset:sector_offset + count] = payload[done:done + count]
            self.device.write_sector(sector, buf)
            pos += count
            done += count
        if size is not None and end > size:
            sector, entry_offset = self._entry_location(handle)
            buf = bytearray(self.device.read_sector(sector))
            struct.pack_into("<I", buf, entry_offset + _SIZE_FIELD_OFFSET, end)
            self.device.write_sector(sector, buf)
        return done


def is_fat32(device: BlockDevice, lba: int) -> bool:
    """Tell whether the sector at ``lba`` carries a boot sector signature."""
    return BootSector.parse(device.read_sector(lba)).boot_sector_signature == BOOT_SIGNATURE


def mount(device: BlockDevice) -> Fat32Volume:
    """Open the first Linux-type MBR partition that holds a FAT32 volume."""
    for entry in linux_partitions(device):
        if is_fat32(device, entry.lba_first_sector):
            return Fat32Volume(device, entry.lba_first_sector)
    raise Fat32Error("no FAT32 partition found")