"""
Shell command lines used by the locator and the engines.
"""
import shlex

from .config import BUSYBOX


def _bb(*parts: str) -> str:
    prefix = [BUSYBOX] if BUSYBOX else []
    return " ".join(prefix + list(parts))


def list_dir(path: str) -> str:
    return _bb("ls", shlex.quote(path))


def list_dir_grep(path: str, pattern: str) -> str:
    return f"{list_dir(path)} | grep {shlex.quote(pattern)}"


def move(source: str, target: str) -> str:
    return _bb("mv", "-f", shlex.quote(source), shlex.quote(target))


def remove(path: str) -> str:
    return _bb("rm", "-f", shlex.quote(path))


def remove_tree(path: str) -> str:
    return _bb("rm", "-rf", shlex.quote(path))


def disk_free(path: str) -> str:
    return _bb("df", shlex.quote(path))


def remount(mount_point: str, writable: bool) -> str:
    mode = "rw" if writable else "ro"
    return f"mount -o remount,{mode} {shlex.quote(mount_point)}"


def reboot() -> str:
    return "reboot"


def busybox_probe() -> str:
    return _bb("true")
