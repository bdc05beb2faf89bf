"""Master boot record partition table."""

from __future__ import annotations

import struct
from dataclasses import dataclass

from fatshell.blockdev import SECTOR_SIZE, BlockDevice

MBR_MAX_PARTITIONS = 4
PARTITION_TABLE_OFFSET = 446
PARTITION_ENTRY_SIZE = 16
LINUX_PARTITION_TYPE = 0x83

_ENTRY = struct.Struct("<B3sB3sII")


@dataclass(frozen=True)
class PartitionEntry:
    """One of the four primary partition slots of an MBR."""

    number: int
    status: int
    chs_first_sector: bytes
    type: int
    chs_last_sector: bytes
    lba_first_sector: int
    sector_count: int


def parse_partition_table(sector: bytes) -> list[PartitionEntry]:
    """Decode the four partition entries of an MBR sector."""
    if len(sector) < SECTOR_SIZE:
        raise ValueError(f"MBR sector must be {SECTOR_SIZE} bytes, got {len(sector)}")
    entries = []
    for number in range(1, MBR_MAX_PARTITIONS + 1):
        offset = PARTITION_TABLE_OFFSET + (number - 1) * PARTITION_ENTRY_SIZE
        status, chs_first, ptype, chs_last, lba, count = _ENTRY.unpack_from(
            sector, offset
        )
        entries.append(
            PartitionEntry(number, status, chs_first, ptype, chs_last, lba, count)
        )
    return entries


def linux_partitions(device: BlockDevice) -> list[PartitionEntry]:
    """Return the partitions of type 0x83 listed in the device's MBR."""
    return [
        entry
        for entry in parse_partition_table(device.read_sector(0))
        if entry.type == LINUX_PARTITION_TYPE
    ]