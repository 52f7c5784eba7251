"""
Data models and enums for Android App Mover.
"""
from dataclasses import dataclass, field
from enum import Enum, IntEnum, IntFlag
from typing import Optional, List
import posixpath

from .config import (
    DATA_ROOT, SYSTEM_ROOT, EXTERNAL_STORAGE, TRASH_DIR,
    CODE_CACHE_DIR, PRIVATE_DATA_ROOT, APP_SUBDIR,
    APK_EXT, ODEX_EXT, METADATA_EXT
)


class ShellType(Enum):
    NON_ROOT = "non_root"
    ROOT = "root"


class Partition(Enum):
    DATA = "data"
    SYSTEM = "system"
    TRASH = TRASH_DIR


class ErrorKind(IntEnum):
    """Outcome of every operation. Values are stable."""
    NONE = 0
    ACCESS_OUTPUT_FILE = 1
    INVALID_CONTEXT = 3
    BUSYBOX = 6
    NOT_EXISTING = 7
    INSUFFICIENT_SPACE = 8
    REMOUNT_SYSTEM = 9
    NO_ROOT_ACCESS = 10
    NO_EXTERNAL_STORAGE = 11
    TIMEOUT = 12
    COMMAND_FAILED = 13
    ALREADY_EXISTING = 14
    INTERNAL = 15
    ODEX_NOT_SUPPORTED = 16
    ROOT_DENIED = 17


class MoveFlags(IntFlag):
    NONE = 0
    OVERWRITE = 0x0001
    REBOOT = 0x0002
    WIPE_DATA = 0x0010
    WIPE_CACHE = 0x0020
    INCLUDE_ICON = 0x0100
    LAUNCHABLE_ONLY = 0x0200
    IGNORE_ODEXED = 0x0400


@dataclass
class PartitionLayout:
    """Where each partition lives on the device."""
    data_root: str = DATA_ROOT
    system_root: str = SYSTEM_ROOT
    external_storage: str = EXTERNAL_STORAGE
    trash_dir: str = TRASH_DIR
    code_cache_dir: str = CODE_CACHE_DIR
    private_data_root: str = PRIVATE_DATA_ROOT

    def root(self, partition: Partition) -> str:
        if partition == Partition.TRASH:
            return posixpath.join(self.external_storage, self.trash_dir)
        if partition == Partition.SYSTEM:
            return self.system_root
        return self.data_root

    def app_dir(self, partition: Partition) -> str:
        return posixpath.join(self.root(partition), APP_SUBDIR)

    def private_data_dir(self, package: str) -> str:
        return posixpath.join(self.private_data_root, package)


@dataclass(frozen=True)
class FileLocation:
    """A package's primary file on one partition."""
    partition: Partition
    path: str


@dataclass(frozen=True)
class PackageFile:
    location: FileLocation
    odex_path: Optional[str] = None
    metadata_path: Optional[str] = None

    @property
    def path(self) -> str:
        return self.location.path


def companion_path(primary_path: str, extension: str) -> str:
    """Path of a companion file sharing the primary file's base name."""
    return posixpath.splitext(primary_path)[0] + extension


def odex_path_for(primary_path: str) -> str:
    return companion_path(primary_path, ODEX_EXT)


def metadata_path_for(primary_path: str) -> str:
    return companion_path(primary_path, METADATA_EXT)


def apk_path_for(companion: str) -> str:
    return companion_path(companion, APK_EXT)


@dataclass
class CommandResult:
    """Exit classification plus the lines the shell emitted, in order."""
    error: ErrorKind
    output: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error == ErrorKind.NONE


@dataclass
class PackageMetadata:
    """Contents of a trash sidecar file."""
    filename: str = ""
    package_name: str = ""
    partition: str = ""
    label: str = ""
    icon: Optional[bytes] = None
    launchable: bool = False

    def is_empty(self) -> bool:
        return not self.package_name


@dataclass
class BatchResult:
    """Final outcome of a relocation or wipe batch."""
    error: ErrorKind
    output: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error == ErrorKind.NONE
