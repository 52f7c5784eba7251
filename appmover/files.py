"""
Direct (non-privileged) file access to the device.

LocalFiles is used when running on the device itself, AdbFiles when running
on a host with the device attached over adb. Both expose the same methods.
"""
import base64
import logging
import os
import shlex
import shutil
import subprocess
from typing import List, Optional

from .config import ADB_BINARY
from .parsing import parse_df_free_kb

logger = logging.getLogger(__name__)


class LocalFiles:
    """File access through the local filesystem."""

    def listdir(self, path: str) -> Optional[List[str]]:
        """Directory entries in listing order, or None if unreadable."""
        try:
            return os.listdir(path)
        except OSError:
            return None

    def exists(self, path: str) -> bool:
        return os.path.exists(path)

    def isdir(self, path: str) -> bool:
        return os.path.isdir(path)

    def makedirs(self, path: str) -> bool:
        try:
            os.makedirs(path, exist_ok=True)
            return True
        except OSError as e:
            logger.warning("Could not create %s: %s", path, e)
            return False

    def size(self, path: str) -> int:
        try:
            return os.path.getsize(path)
        except OSError:
            return 0

    def read_bytes(self, path: str) -> bytes:
        with open(path, "rb") as f:
            return f.read()

    def write_bytes(self, path: str, data: bytes) -> None:
        with open(path, "wb") as f:
            f.write(data)

    def remove(self, path: str) -> bool:
        try:
            os.remove(path)
            return True
        except OSError as e:
            logger.warning("Could not remove %s: %s", path, e)
            return False

    def free_bytes(self, path: str) -> Optional[int]:
        try:
            return shutil.disk_usage(path).free
        except OSError:
            return None


class AdbFiles:
    """File access through a non-root `adb shell` on a specific device."""

    def __init__(self, device_serial: str, timeout: int = 30):
        self.device_serial = device_serial
        self.timeout = timeout

    def _shell(self, command: str) -> subprocess.CompletedProcess:
        try:
            return subprocess.run(
                [ADB_BINARY, "-s", self.device_serial, "shell", command],
                capture_output=True, text=True, timeout=self.timeout
            )
        except subprocess.TimeoutExpired as e:
            raise OSError(f"Timeout running '{command}' on {self.device_serial}") from e

    def _ok(self, command: str) -> bool:
        try:
            return self._shell(command).returncode == 0
        except OSError as e:
            logger.warning("%s", e)
            return False

    def listdir(self, path: str) -> Optional[List[str]]:
        try:
            result = self._shell(f"ls {shlex.quote(path)}")
        except OSError as e:
            logger.warning("%s", e)
            return None
        if result.returncode != 0:
            return None
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    def exists(self, path: str) -> bool:
        return self._ok(f"test -e {shlex.quote(path)}")

    def isdir(self, path: str) -> bool:
        return self._ok(f"test -d {shlex.quote(path)}")

    def makedirs(self, path: str) -> bool:
        return self._ok(f"mkdir -p {shlex.quote(path)}")

    def size(self, path: str) -> int:
        try:
            result = self._shell(f"stat -c%s {shlex.quote(path)} 2>/dev/null || echo 'NOT_FOUND'")
        except OSError:
            return 0
        try:
            return int(result.stdout.strip())
        except ValueError:
            return 0

    def read_bytes(self, path: str) -> bytes:
        result = self._shell(f"base64 {shlex.quote(path)}")
        if result.returncode != 0:
            raise OSError(result.stderr.strip() or f"Failed to read {path}")
        return base64.b64decode("".join(result.stdout.split()))

    def write_bytes(self, path: str, data: bytes) -> None:
        # Use echo with base64 for reliable transfer
        encoded = base64.b64encode(data).decode()
        result = self._shell(f"echo '{encoded}' | base64 -d > {shlex.quote(path)}")
        if result.returncode != 0:
            raise OSError(result.stderr.strip() or f"Failed to write {path}")

    def remove(self, path: str) -> bool:
        return self._ok(f"rm -f {shlex.quote(path)}")

    def free_bytes(self, path: str) -> Optional[int]:
        try:
            result = self._shell(f"df {shlex.quote(path)}")
        except OSError:
            return None
        free_kb = parse_df_free_kb(result.stdout.splitlines())
        return free_kb * 1024 if free_kb is not None else None


def device_files(device_serial: Optional[str]):
    """Pick the file access matching where the channel runs."""
    if device_serial:
        return AdbFiles(device_serial)
    return LocalFiles()
