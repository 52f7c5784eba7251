"""Tests for AdbFiles with adb stood in by unittest.mock."""
import base64
import subprocess
from unittest import mock

import pytest

from appmover.files import AdbFiles, LocalFiles, device_files


def completed(stdout="", returncode=0, stderr=""):
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


@pytest.fixture
def adb():
    with mock.patch("appmover.files.subprocess.run") as run:
        yield run


def test_device_files_picks_implementation():
    assert isinstance(device_files(None), LocalFiles)
    assert isinstance(device_files("emulator-5554"), AdbFiles)


def test_listdir(adb):
    adb.return_value = completed("com.foo-1.apk\ncom.bar-1.apk\n")
    assert AdbFiles("serial").listdir("/system/app") == ["com.foo-1.apk", "com.bar-1.apk"]
    argv = adb.call_args[0][0]
    assert argv[:4] == [argv[0], "-s", "serial", "shell"]
    assert argv[4] == "ls /system/app"


def test_listdir_missing(adb):
    adb.return_value = completed("", returncode=1)
    assert AdbFiles("serial").listdir("/nope") is None


def test_size(adb):
    adb.return_value = completed("4096\n")
    assert AdbFiles("serial").size("/system/app/com.foo-1.apk") == 4096
    adb.return_value = completed("NOT_FOUND\n")
    assert AdbFiles("serial").size("/nope") == 0


def test_read_write_bytes(adb):
    payload = b"\x01\x03Foo"
    adb.return_value = completed(base64.b64encode(payload).decode() + "\n")
    assert AdbFiles("serial").read_bytes("/sdcard/x.metadata") == payload

    adb.return_value = completed("", returncode=1, stderr="Read-only file system")
    with pytest.raises(OSError):
        AdbFiles("serial").write_bytes("/sdcard/x.metadata", payload)


def test_timeout_is_os_error(adb):
    adb.side_effect = subprocess.TimeoutExpired(cmd="adb", timeout=30)
    files = AdbFiles("serial")
    assert files.listdir("/system/app") is None
    assert not files.exists("/system/app")
    with pytest.raises(OSError):
        files.read_bytes("/sdcard/x.metadata")


def test_free_bytes(adb):
    adb.return_value = completed(
        "Filesystem 1K-blocks Used Available Use% Mounted on\n"
        "/dev/fuse 1000 200 800 20% /storage/emulated\n"
    )
    assert AdbFiles("serial").free_bytes("/sdcard") == 800 * 1024
