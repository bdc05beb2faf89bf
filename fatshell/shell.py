"""An interactive shell over a FAT32 disk image."""

from __future__ import annotations

import argparse
import subprocess
import sys
from typing import BinaryIO, Sequence

from fatshell.blockdev import BlockDevice
from fatshell.dirent import fdopendir
from fatshell.fat32 import mount
from fatshell.printf import CLEAR, YELLOW, format_printf
from fatshell.vfs import FileTable, OpenFlags, Whence

PROMPT = YELLOW + "SHELL > " + CLEAR
CAT_BUF_SIZE = 509


def get_param(text: str) -> str:
    """Return the first blank-separated word of ``text``."""
    return text.lstrip(" ").split(" ", 1)[0]


def get_string(text: str) -> str:
    """Return a double-quoted string, or the first word when unquoted."""
    stripped = text.lstrip(" ")
    if stripped.startswith('"'):
        return stripped[1:].split('"', 1)[0]
    return get_param(stripped)


def _atoi(text: str) -> int:
    value = 0
    for ch in text:
        value = value * 10 + ord(ch) - ord("0")
    return value


class Shell:
    """Reads command lines from ``stdin`` and runs them against a file table."""

    def __init__(self, files: FileTable, stdin: BinaryIO, stdout: BinaryIO) -> None:
        self.files = files
        self.stdin = stdin
        self.stdout = stdout

    def _out(self, data: bytes) -> None:
        self.stdout.write(data)
        self.stdout.flush()

    def _printf(self, fmt: str, *args: object) -> None:
        self._out(format_printf(fmt, *args).encode("latin-1", "replace"))

    def parse_cmd(self, line: str) -> bool:
        """Run one command line; return True when the shell should exit."""
        if line.startswith("echo"):
            content = get_string(line[4:])
            self._out(content.encode("latin-1", "replace") + b"\n")
        elif line.startswith("ls"):
            self._ls(line[2:])
        elif line.startswith("cat"):
            self._cat(line[3:])
        elif line.startswith("edit"):
            self._edit(line[4:])
        elif line.startswith("exit"):
            self._printf("Exiting shell...\n")
            return True
        elif line.startswith("/"):
            self._execute(line)
        else:
            self._printf("Command not supported: %s\n", line)
        return False

    def _ls(self, rest: str) -> None:
        path = get_param(rest)
        try:
            fd = self.files.open(path, OpenFlags.RDONLY | OpenFlags.DIRECTORY)
        except OSError:
            self._printf("can't open file: %s\n", path)
            return
        with fdopendir(self.files, fd) as dirp:
            for entry in dirp:
                self._printf("%s\n", entry.name)

    def _cat(self, rest: str) -> None:
        path = get_param(rest)
        try:
            fd = self.files.open(path, OpenFlags.RDONLY)
        except OSError:
            self._printf("can't open file: %s\n", path)
            return
        last = b""
        try:
            while True:
                chunk = self.files.read(fd, CAT_BUF_SIZE)
                self._printf("num_chars = %d\n", len(chunk))
                if not chunk:
                    if last != b"\n":
                        self._printf("$\n")
                    break
                self._out(chunk.replace(b"\0", b"x"))
                last = chunk[-1:]
        finally:
            self.files.close(fd)

    def _edit(self, rest: str) -> None:
        path = get_param(rest)
        rest = rest.lstrip(" ")[len(path):]
        offset_text = get_param(rest)
        rest = rest.lstrip(" ")[len(offset_text):]
        content = get_string(rest)
        try:
            fd = self.files.open(path, OpenFlags.RDWR)
        except OSError:
            self._printf("can't open file: %s\n", path)
            return
        try:
            self.files.lseek(fd, _atoi(offset_text), Whence.SET)
            self.files.write(fd, content.encode("latin-1", "replace"))
        except OSError:
            self._printf("can't write file: %s\n", path)
        finally:
            self.files.close(fd)

    def _execute(self, line: str) -> None:
        try:
            proc = subprocess.Popen(
                [line],
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                env={},
            )
        except OSError:
            self._printf("can't execute: %s\n", line)
            return
        self._printf("waiting for child process %d ...\n", proc.pid)
        output, _ = proc.communicate()
        self._out(output)

    def run(self) -> None:
        """Prompt, echo and execute lines until ``exit`` or end of input."""
        self._printf("%s", PROMPT)
        line = bytearray()
        while ch := self.stdin.read(1):
            if ch == b"\x7f":
                if line:
                    self._out(b"\b \b")
                    line.pop()
                continue
            if ch == b"\r":
                self._out(b"\n")
            self._out(ch)
            if ch in (b"\r", b"\n"):
                if self.parse_cmd(line.decode("latin-1")):
                    return
                line.clear()
                self._printf("%s", PROMPT)
            else:
                line += ch


def main(argv: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="fatshell", description="Interactive shell over a FAT32 disk image."
    )
    parser.add_argument("image", help="raw disk image with an MBR partition table")
    parser.add_argument(
        "--read-only", action="store_true", help="open the image without write access"
    )
    args = parser.parse_args(argv)
    try:
        device = BlockDevice(args.image, writable=not args.read_only)
    except OSError as exc:
        print(f"fatshell: {exc}", file=sys.stderr)
        return 1
    with device:
        try:
            volume = mount(device)
        except (OSError, ValueError, IndexError) as exc:
            print(f"fatshell: {exc}", file=sys.stderr)
            return 1
        stdin = sys.stdin.buffer
        stdout = sys.stdout.buffer
        files = FileTable(volume, stdin, stdout, sys.stderr.buffer)
        Shell(files, stdin, stdout).run()
    return 0