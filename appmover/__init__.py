"""
Android App Mover - relocates app packages between the data partition, the
system partition and a trash folder on external storage.
"""
from .models import (
    ShellType, Partition, ErrorKind, MoveFlags, PartitionLayout,
    FileLocation, PackageFile, CommandResult, PackageMetadata, BatchResult
)
from .shell import ChannelError, ShellSession, CommandChannel
from .files import LocalFiles, AdbFiles
from .locator import PartitionLocator
from .space import SpaceChecker, FitResult
from .metadata import MetadataStore, DictRegistry, ShellRegistry, RegistryEntry
from .relocation import RelocationEngine
from .wipe import WipeEngine
from .manager import AppManager

__all__ = [
    # Models
    "ShellType",
    "Partition",
    "ErrorKind",
    "MoveFlags",
    "PartitionLayout",
    "FileLocation",
    "PackageFile",
    "CommandResult",
    "PackageMetadata",
    "BatchResult",
    # Shell
    "ChannelError",
    "ShellSession",
    "CommandChannel",
    "LocalFiles",
    "AdbFiles",
    # Components
    "PartitionLocator",
    "SpaceChecker",
    "FitResult",
    "MetadataStore",
    "DictRegistry",
    "ShellRegistry",
    "RegistryEntry",
    "RelocationEngine",
    "WipeEngine",
    "AppManager",
]
