# fatshell

`fatshell` works with raw disk images that hold an MBR partition table and a
FAT32 partition. It finds the partition, walks directories, reads files and
overwrites their contents in place. It also has an interactive shell for
quick inspection.

## Installing

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## The shell

```
fatshell disk.img
fatshell --read-only disk.img
```

The shell opens the image for writing, or read-only when `--read-only` is
given. It mounts the first MBR partition of type `0x83` that carries a boot
sector signature, then shows a `SHELL > ` prompt. Input is echoed. A line
ends at carriage return or newline, and DEL erases the last character. The
shell stops at `exit` or at the end of input.

Paths start with `/fat32/`. Commands:

- `echo TEXT` or `echo "quoted text"`: print the text.
- `ls /fat32/DIR`: list a directory. Directories are shown by name.
  Regular files are shown as `NAME.EXT`.
- `cat /fat32/FILE`: print a file. Each chunk read is reported as a
  `num_chars = N` line. NUL bytes are shown as `x`. A `$` line is added
  when the file does not end in a newline.
- `edit /fat32/FILE OFFSET "text"`: overwrite bytes at a decimal offset in
  an existing file. The recorded size grows if the write passes the end,
  but only within the clusters already allocated to the file.
- `exit`: print `Exiting shell...` and leave.

A line that starts with `/` is run as an external program. It gets no
arguments and an empty environment, and its output is printed once it
finishes. Any other line gives `Command not supported: ...`.

### Names

Lookups compare only the 8-character base name of a short (8.3) directory
entry. The name is upper-cased before the comparison. Leave the extension
out of the path: `HELLO.TXT` is opened as `/fat32/hello`. Long file names
and volume labels are skipped.

## Using it from Python

```python
from fatshell.blockdev import BlockDevice
from fatshell.fat32 import mount
from fatshell.vfs import FileTable, OpenFlags
from fatshell.dirent import opendir

with BlockDevice("disk.img", writable=False) as device:
    volume = mount(device)
    files = FileTable(volume, None, None, None)

    fd = files.open("/fat32/HELLO", OpenFlags.RDONLY)
    print(files.read(fd, 512))
    files.close(fd)

    with opendir(files, "/fat32/") as directory:
        for entry in directory:
            print(entry.name, entry.d_type)
```

`FileTable` reserves descriptors 0 to 2 for standard input, output and error.
When you pass `None` for a stream, it uses the process's own stream. Reading
from descriptor 0 echoes each byte to standard output. Failures are raised as
`OSError` subclasses. `fatshell.fat32.Fat32Error` covers lookup and cluster
chain problems.

The modules:

- `fatshell.blockdev`: `BlockDevice`, which reads and writes 512-byte
  sectors of an image file.
- `fatshell.mbr`: `parse_partition_table` and `linux_partitions`.
- `fatshell.fat32`: `mount`, `is_fat32`, `Fat32Volume` (`open_file`,
  `open_dir`, `read`, `read_dir`, `write`, `file_size`), `BootSector` and
  `DirEntry`.
- `fatshell.vfs`: `FileTable` (`open`, `close`, `lseek`, `read`, `write`,
  `getdents64`), `Dirent`, and the `OpenFlags`, `Whence`, `DirentType` and
  `FsType` enums.
- `fatshell.dirent`: `opendir`, `fdopendir` and the iterable `DirStream`.
- `fatshell.printf`: `format_printf` and `vfprintf`. They support the flags
  `#0- +`, width and precision (including `*` and `*N$`), the length
  modifiers `hh h l ll z t j`, the conversions `d i o u x X c s p n`, and
  `%N$` argument positions. Errors raise `FormatError`.
- `fatshell.scanf`: `scanf` reads `%d`, `%c` and `%s` fields from a binary
  stream and can echo what it reads. Errors raise `ScanError`.
- `fatshell.heap`: `SlabHeap` models a slab allocator with power-of-two
  size classes. It hands out and takes back addresses only and holds no
  memory.
- `fatshell.rand`: `Random`, a 64-bit linear congruential generator that
  returns 31-bit values.
- `fatshell.shell`: `Shell` and `main`, which is the `fatshell` command.

## What it does not do

- It cannot create, delete or rename files or directories.
- It does not allocate new clusters, so files cannot grow past their
  existing cluster chain.
- Only FAT32 is supported. `/ext2/` paths are rejected, and paths under any
  other prefix are unknown.
- Only one FAT32 partition is mounted: the first suitable one.