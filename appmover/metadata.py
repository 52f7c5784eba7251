"""
Sidecar metadata for packages parked in trash.

Once an APK leaves its partition the package registry can no longer tell its
label or icon, so a small sidecar file is written next to it:

    [version:1][len:1][label][len:1][package][len:1][partition][icon to EOF]
"""
import logging
import posixpath
import shlex
from dataclasses import dataclass
from typing import Dict, List, Optional, Protocol

from .config import METADATA_VERSION, METADATA_EXT
from .models import ErrorKind, MoveFlags, PackageMetadata, apk_path_for

logger = logging.getLogger(__name__)

MAX_FIELD_LENGTH = 255


@dataclass
class RegistryEntry:
    label: str
    icon: Optional[bytes] = None
    launchable: bool = False


class PackageRegistry(Protocol):
    def lookup(self, package: str) -> Optional[RegistryEntry]: ...


class DictRegistry:
    """In-memory package registry, keyed by package name."""

    def __init__(self, entries: Optional[Dict[str, RegistryEntry]] = None):
        self.entries = dict(entries or {})

    def add(self, package: str, label: str, icon: Optional[bytes] = None, launchable: bool = False):
        self.entries[package] = RegistryEntry(label, icon, launchable)

    def lookup(self, package: str) -> Optional[RegistryEntry]:
        return self.entries.get(package)


class ShellRegistry:
    """
    Registry backed by the device package manager.

    pm cannot report labels or icons from the shell, so the label falls back
    to the package name and no icon is stored.
    """

    def __init__(self, shell):
        self.shell = shell

    def lookup(self, package: str) -> Optional[RegistryEntry]:
        quoted = shlex.quote(package)
        if not self.shell.run(f"pm path {quoted}").ok:
            return None
        result = self.shell.run(f"cmd package resolve-activity --brief {quoted}")
        launchable = result.ok and any("/" in line for line in result.output)
        return RegistryEntry(label=package, launchable=launchable)


def _field(value: str) -> bytes:
    data = value.encode("utf-8")[:MAX_FIELD_LENGTH]
    return bytes([len(data)]) + data


def encode_metadata(label: str, package: str, partition: str, icon: Optional[bytes]) -> bytes:
    return (bytes([METADATA_VERSION]) + _field(label) + _field(package)
            + _field(partition) + (icon or b""))


def decode_metadata(data: bytes, include_icon: bool = False) -> PackageMetadata:
    """
    Parse sidecar bytes. A foreign version or a truncated file gives an
    empty record.
    """
    info = PackageMetadata()
    if not data or data[0] != METADATA_VERSION:
        return info

    pos = 1
    fields: List[str] = []
    for _ in range(3):
        if pos >= len(data):
            return PackageMetadata()
        length = data[pos]
        pos += 1
        if pos + length > len(data):
            return PackageMetadata()
        fields.append(data[pos:pos + length].decode("utf-8", errors="ignore"))
        pos += length

    info.label, info.package_name, info.partition = fields
    if include_icon:
        info.icon = data[pos:]
    return info


class MetadataStore:
    """Reads and writes sidecar files through the device files."""

    def __init__(self, files, registry: Optional[PackageRegistry] = None):
        self.files = files
        self.registry = registry

    def write(self, package: str, label: str, partition_of_origin: str,
              icon: Optional[bytes], sidecar_path: str) -> ErrorKind:
        data = encode_metadata(label, package, partition_of_origin, icon)
        try:
            self.files.write_bytes(sidecar_path, data)
        except OSError as e:
            logger.warning("Could not write %s: %s", sidecar_path, e)
            return ErrorKind.ACCESS_OUTPUT_FILE
        logger.debug("Wrote %s (%d bytes)", sidecar_path, len(data))
        return ErrorKind.NONE

    def write_from_registry(self, package: str, partition_of_origin: str, sidecar_path: str) -> ErrorKind:
        """Resolve label and icon from the registry, then write the sidecar."""
        entry = self.registry.lookup(package) if self.registry else None
        if entry is None:
            logger.warning("No registry entry for %s", package)
            return ErrorKind.INVALID_CONTEXT
        return self.write(package, entry.label, partition_of_origin, entry.icon, sidecar_path)

    def read(self, sidecar_path: str, include_icon: bool = False) -> PackageMetadata:
        try:
            data = self.files.read_bytes(sidecar_path)
        except OSError as e:
            logger.warning("Could not read %s: %s", sidecar_path, e)
            return PackageMetadata()

        info = decode_metadata(data, include_icon)
        if info.is_empty():
            logger.warning("Unsupported or damaged sidecar %s", sidecar_path)
            return info
        info.filename = apk_path_for(sidecar_path)
        return info

    def delete(self, sidecar_path: str) -> bool:
        return self.files.remove(sidecar_path)

    def list_trash(self, trash_app_dir: str, flags: MoveFlags = MoveFlags.NONE) -> List[PackageMetadata]:
        """Metadata of every package in trash, in listing order."""
        include_icon = bool(flags & MoveFlags.INCLUDE_ICON)
        packages = []
        for name in self.files.listdir(trash_app_dir) or []:
            if not name.endswith(METADATA_EXT):
                continue
            info = self.read(posixpath.join(trash_app_dir, name), include_icon)
            if info.is_empty():
                continue
            entry = self.registry.lookup(info.package_name) if self.registry else None
            info.launchable = bool(entry and entry.launchable)
            if flags & MoveFlags.LAUNCHABLE_ONLY and not info.launchable:
                continue
            packages.append(info)
        return packages
