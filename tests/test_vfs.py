import errno
import io
import struct

import pytest

from fatshell.blockdev import BlockDevice
from fatshell.fat32 import mount
from fatshell.vfs import (
    DIRENT_SIZE,
    Dirent,
    DirentType,
    FileTable,
    FsType,
    OpenFlags,
    Whence,
    get_fs_type,
    get_perm,
)

SECTOR = 512
LBA = 1
HELLO = b"hello, world\n"
ABC = b"abc"


def _entry(name, ext, attr, cluster, size):
    return struct.pack(
        "<8s3sBBBHHHHHHHI",
        name.ljust(8), ext.ljust(3), attr, 0, 0, 0, 0, 0,
        cluster >> 16, 0, 0, cluster & 0xFFFF, size,
    )


def _cluster_offset(cluster):
    return (LBA + 3 + cluster - 2) * SECTOR


def build_image():
    image = bytearray(SECTOR * 16)
    struct.pack_into("<B3sB3sII", image, 446, 0, b"\0" * 3, 0x83, b"\0" * 3, LBA, 15)
    image[510:512] = b"\x55\xaa"
    bpb = LBA * SECTOR
    struct.pack_into("<HBHB", image, bpb + 11, 512, 1, 2, 1)
    struct.pack_into("<I", image, bpb + 36, 1)
    struct.pack_into("<I", image, bpb + 44, 2)
    image[bpb + 510:bpb + 512] = b"\x55\xaa"
    fat = (LBA + 2) * SECTOR
    struct.pack_into("<6I", image, fat, 0x0FFFFFF8, *([0x0FFFFFFF] * 5))
    root = b"".join([
        _entry(b"FATSHELL", b"", 0x08, 0, 0),
        _entry(b"HELLO", b"TXT", 0x20, 3, len(HELLO)),
        _entry(b"\xe5GONE", b"TXT", 0x20, 6, 0),
        _entry(b"SUB", b"", 0x10, 4, 0),
    ])
    image[_cluster_offset(2):_cluster_offset(2) + len(root)] = root
    image[_cluster_offset(3):_cluster_offset(3) + len(HELLO)] = HELLO
    sub = _entry(b"A", b"TXT", 0x20, 5, len(ABC))
    image[_cluster_offset(4):_cluster_offset(4) + len(sub)] = sub
    image[_cluster_offset(5):_cluster_offset(5) + len(ABC)] = ABC
    return bytes(image)


@pytest.fixture
def volume(tmp_path):
    path = tmp_path / "disk.img"
    path.write_bytes(build_image())
    with BlockDevice(path, writable=True) as device:
        yield mount(device)


@pytest.fixture
def streams():
    return io.BytesIO(b"ab"), io.BytesIO(), io.BytesIO()


@pytest.fixture
def table(volume, streams):
    return FileTable(volume, *streams)


def test_get_fs_type():
    assert get_fs_type("/fat32/hello") == FsType.FAT32
    assert get_fs_type("/ext2/hello") == FsType.EXT2
    assert get_fs_type("/fat32") is None
    assert get_fs_type("/tmp/x") is None


def test_get_perm():
    assert get_perm(OpenFlags.RDONLY) == 1
    assert get_perm(OpenFlags.WRONLY) == 2
    assert get_perm(OpenFlags.RDWR) == 3
    assert get_perm(OpenFlags.DIRECTORY) == 0


def test_open_uses_first_free_descriptor(table):
    assert table.open("/fat32/hello", OpenFlags.RDONLY) == 3
    assert table.open("/fat32/hello", OpenFlags.RDONLY) == 4


def test_read_whole_file(table):
    fd = table.open("/fat32/hello", OpenFlags.RDONLY)
    assert table.read(fd, 100) == HELLO
    assert table.read(fd, 100) == b""


def test_read_in_pieces(table):
    fd = table.open("/fat32/hello", OpenFlags.RDONLY)
    parts = [table.read(fd, 4) for _ in range(5)]
    assert b"".join(parts) == HELLO
    assert all(len(p) <= 4 for p in parts)


def test_read_file_in_subdirectory(table):
    fd = table.open("/fat32/sub/a", OpenFlags.RDONLY)
    assert table.read(fd, 10) == ABC


def test_lseek(table):
    fd = table.open("/fat32/hello", OpenFlags.RDONLY)
    assert table.lseek(fd, 7, Whence.SET) == 7
    assert table.read(fd, 5) == HELLO[7:12]
    assert table.lseek(fd, -2, Whence.CUR) == 10
    assert table.lseek(fd, 0, Whence.END) == len(HELLO)
    assert table.read(fd, 5) == b""


def test_lseek_invalid_whence(table):
    fd = table.open("/fat32/hello", OpenFlags.RDONLY)
    with pytest.raises(ValueError):
        table.lseek(fd, 0, 9)


def test_lseek_on_stream(table):
    with pytest.raises(OSError) as info:
        table.lseek(1, 0, Whence.SET)
    assert info.value.errno == errno.ESPIPE


def test_write_then_read_back(table):
    fd = table.open("/fat32/hello", OpenFlags.RDWR)
    assert table.write(fd, b"HELLO") == 5
    table.lseek(fd, 0, Whence.SET)
    assert table.read(fd, 100) == b"HELLO" + HELLO[5:]


def test_write_extends_size(table):
    fd = table.open("/fat32/hello", OpenFlags.RDWR)
    table.lseek(fd, 0, Whence.END)
    table.write(fd, b"more")
    assert table.lseek(fd, 0, Whence.END) == len(HELLO) + 4
    table.lseek(fd, 0, Whence.SET)
    assert table.read(fd, 100) == HELLO + b"more"


def test_write_read_only_file(table):
    fd = table.open("/fat32/hello", OpenFlags.RDONLY)
    with pytest.raises(PermissionError):
        table.write(fd, b"x")


def test_read_write_only_file(table):
    fd = table.open("/fat32/hello", OpenFlags.WRONLY)
    with pytest.raises(PermissionError):
        table.read(fd, 1)


def test_open_missing(table):
    with pytest.raises(OSError):
        table.open("/fat32/missing", OpenFlags.RDONLY)


@pytest.mark.parametrize("path", ["/ext2/hello", "/other/hello"])
def test_open_other_file_systems(table, path):
    with pytest.raises(OSError):
        table.open(path, OpenFlags.RDONLY)


def test_too_many_files(table):
    for _ in range(13):
        table.open("/fat32/hello", OpenFlags.RDONLY)
    with pytest.raises(OSError) as info:
        table.open("/fat32/hello", OpenFlags.RDONLY)
    assert info.value.errno == errno.EMFILE


def test_close(table):
    fd = table.open("/fat32/hello", OpenFlags.RDONLY)
    table.close(fd)
    with pytest.raises(OSError) as info:
        table.read(fd, 1)
    assert info.value.errno == errno.EBADF
    assert table.open("/fat32/hello", OpenFlags.RDONLY) == fd


def test_stdin_echoes(table, streams):
    _, stdout, _ = streams
    assert table.read(0, 2) == b"ab"
    assert stdout.getvalue() == b"ab"


def test_stdout_and_stderr(table, streams):
    _, stdout, stderr = streams
    assert table.write(1, b"out") == 3
    assert table.write(2, b"err") == 3
    assert stdout.getvalue() == b"out"
    assert stderr.getvalue() == b"err"


def test_getdents_root(table):
    fd = table.open("/fat32/", OpenFlags.RDONLY | OpenFlags.DIRECTORY)
    entries = table.getdents64(fd, 512)
    assert [e.name for e in entries] == ["HELLO.TXT", "SUB"]
    assert [e.d_type for e in entries] == [DirentType.REG, DirentType.DIR]
    assert [e.d_off for e in entries] == [DIRENT_SIZE, 2 * DIRENT_SIZE]
    assert all(e.d_reclen == DIRENT_SIZE for e in entries)
    assert table.getdents64(fd, 512) == []


def test_getdents_subdirectory(table):
    fd = table.open("/fat32/sub", OpenFlags.RDONLY | OpenFlags.DIRECTORY)
    assert [e.name for e in table.getdents64(fd, 512)] == ["A.TXT"]


def test_read_directory_and_getdents_file(table):
    dfd = table.open("/fat32/sub", OpenFlags.RDONLY | OpenFlags.DIRECTORY)
    ffd = table.open("/fat32/hello", OpenFlags.RDONLY)
    with pytest.raises(IsADirectoryError):
        table.read(dfd, 10)
    with pytest.raises(NotADirectoryError):
        table.getdents64(ffd, 512)


def test_dirent_round_trip():
    dirent = Dirent(0, 32, 32, DirentType.REG, b"HELLO   TXT\0")
    packed = dirent.pack()
    assert len(packed) == DIRENT_SIZE
    assert Dirent.unpack(packed) == dirent


def test_dirent_name_hides_extension_of_directories():
    assert Dirent(0, 0, 0, DirentType.DIR, b"SUB     X  \0").name == "SUB"