import io
import struct
import sys

import pytest

from fatshell.blockdev import BlockDevice
from fatshell.fat32 import mount
from fatshell.shell import PROMPT, Shell, get_param, get_string, main
from fatshell.vfs import FileTable

_EOC = 0x0FFFFFFF


def _dir_entry(name, ext, attr, cluster, size):
    return struct.pack(
        "<8s3sBBBHHHHHHHI",
        name.ljust(8),
        ext.ljust(3),
        attr,
        0, 0, 0, 0, 0,
        cluster >> 16,
        0, 0,
        cluster & 0xFFFF,
        size,
    )


def _build_image(path):
    sectors = [bytearray(512) for _ in range(9)]
    mbr = sectors[0]
    struct.pack_into("<B3sB3sII", mbr, 446, 0, b"\0" * 3, 0x83, b"\0" * 3, 1, 8)
    mbr[510:512] = b"\x55\xaa"
    boot = sectors[1]
    struct.pack_into("<H", boot, 11, 512)
    boot[13] = 1
    struct.pack_into("<H", boot, 14, 2)
    boot[16] = 1
    struct.pack_into("<I", boot, 36, 1)
    struct.pack_into("<I", boot, 44, 2)
    struct.pack_into("<H", boot, 510, 0xAA55)
    struct.pack_into("<6I", sectors[3], 0, 0x0FFFFFF8, _EOC, _EOC, _EOC, _EOC, _EOC)
    sectors[4][0:32] = _dir_entry(b"HELLO", b"TXT", 0x20, 3, 12)
    sectors[4][32:64] = _dir_entry(b"DOCS", b"", 0x10, 4, 0)
    sectors[5][0:12] = b"hello world\n"
    sectors[6][0:32] = _dir_entry(b"NOTE", b"TXT", 0x20, 5, 3)
    sectors[7][0:3] = b"a\0b"
    path.write_bytes(b"".join(bytes(s) for s in sectors))


@pytest.fixture
def image(tmp_path):
    path = tmp_path / "disk.img"
    _build_image(path)
    return path


@pytest.fixture
def env(image):
    device = BlockDevice(image, writable=True)
    out = io.BytesIO()
    files = FileTable(mount(device), io.BytesIO(), out, io.BytesIO())
    yield files, out
    device.close()


def _shell(env, data=b""):
    files, out = env
    return Shell(files, io.BytesIO(data), out), out


def test_get_param_takes_first_word():
    assert get_param("  abc def") == "abc"


def test_get_string_quoted():
    assert get_string(' "a b" c') == "a b"


def test_get_string_unquoted():
    assert get_string("x y") == "x"


def test_get_string_unterminated_quote():
    assert get_string('"abc') == "abc"


def test_echo_quoted(env):
    shell, out = _shell(env)
    assert shell.parse_cmd('echo "hi there"') is False
    assert out.getvalue() == b"hi there\n"


def test_echo_word(env):
    shell, out = _shell(env)
    shell.parse_cmd("echo   word more")
    assert out.getvalue() == b"word\n"


def test_exit(env):
    shell, out = _shell(env)
    assert shell.parse_cmd("exit") is True
    assert out.getvalue() == b"Exiting shell...\n"


def test_unknown_command(env):
    shell, out = _shell(env)
    assert shell.parse_cmd("foo") is False
    assert out.getvalue() == b"Command not supported: foo\n"


def test_ls_root(env):
    shell, out = _shell(env)
    shell.parse_cmd("ls /fat32/")
    assert out.getvalue() == b"HELLO.TXT\nDOCS\n"


def test_ls_subdirectory(env):
    shell, out = _shell(env)
    shell.parse_cmd("ls /fat32/docs")
    assert out.getvalue() == b"NOTE.TXT\n"


def test_ls_bad_path(env):
    shell, out = _shell(env)
    shell.parse_cmd("ls /nope")
    assert out.getvalue() == b"can't open file: /nope\n"


def test_cat_file(env):
    shell, out = _shell(env)
    shell.parse_cmd("cat /fat32/hello")
    assert out.getvalue() == b"num_chars = 12\nhello world\nnum_chars = 0\n"


def test_cat_replaces_nul_and_marks_missing_newline(env):
    shell, out = _shell(env)
    shell.parse_cmd("cat /fat32/docs/note")
    assert out.getvalue() == b"num_chars = 3\naxbnum_chars = 0\n$\n"


def test_cat_missing_file(env):
    shell, out = _shell(env)
    shell.parse_cmd("cat /fat32/absent")
    assert out.getvalue() == b"can't open file: /fat32/absent\n"


def test_edit_overwrites(env):
    shell, out = _shell(env)
    shell.parse_cmd("edit /fat32/hello 0 HOWDY")
    shell.parse_cmd("cat /fat32/hello")
    assert b"HOWDY world\n" in out.getvalue()


def test_edit_extends_file(env):
    shell, out = _shell(env)
    shell.parse_cmd('edit /fat32/hello 12 "!!"')
    shell.parse_cmd("cat /fat32/hello")
    assert out.getvalue().endswith(b"hello world\n!!num_chars = 0\n$\n")


def test_execute_missing_program(env):
    shell, out = _shell(env)
    shell.parse_cmd("/nonexistent/prog")
    assert out.getvalue() == b"can't execute: /nonexistent/prog\n"


def test_run_reads_lines_until_exit(env):
    shell, out = _shell(env, b"echo hi\rexit\recho never\r")
    shell.run()
    expected = (
        PROMPT.encode() + b"echo hi\n\r" + b"hi\n"
        + PROMPT.encode() + b"exit\n\r" + b"Exiting shell...\n"
    )
    assert out.getvalue() == expected


def test_run_handles_backspace(env):
    shell, out = _shell(env, b"echp\x7fo ok\r")
    shell.run()
    value = out.getvalue()
    assert b"\b \b" in value
    assert b"ok\n" in value
    assert b"Command not supported" not in value


def test_main_runs_shell(image, monkeypatch):
    stdout = io.TextIOWrapper(io.BytesIO())
    monkeypatch.setattr(sys, "stdin", io.TextIOWrapper(io.BytesIO(b"ls /fat32/\r")))
    monkeypatch.setattr(sys, "stdout", stdout)
    monkeypatch.setattr(sys, "stderr", io.TextIOWrapper(io.BytesIO()))
    assert main([str(image)]) == 0
    assert b"HELLO.TXT\nDOCS\n" in stdout.buffer.getvalue()


def test_main_missing_image(tmp_path, capsys):
    assert main([str(tmp_path / "missing.img")]) == 1
    assert "fatshell:" in capsys.readouterr().err


def test_main_image_without_fat32(tmp_path, capsys):
    path = tmp_path / "blank.img"
    path.write_bytes(bytes(512))
    assert main([str(path)]) == 1
    assert "no FAT32 partition" in capsys.readouterr().err