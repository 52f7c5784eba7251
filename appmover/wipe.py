"""
Permanent deletion of packages.
"""
import logging
import posixpath
from typing import Iterable, List

from . import commands
from .config import APK_EXT, METADATA_EXT
from .models import (
    Partition, PartitionLayout, ErrorKind, MoveFlags,
    odex_path_for, metadata_path_for, apk_path_for
)
from .parsing import match_package, cached_packages

logger = logging.getLogger(__name__)


class WipeEngine:
    """Deletes package files, code-cache entries and private data."""

    def __init__(self, shell, locator, layout: PartitionLayout = None):
        self.shell = shell
        self.locator = locator
        self.layout = layout or locator.layout
        self.output: List[str] = []

    def _run(self, command: str) -> ErrorKind:
        result = self.shell.run(command)
        self.output.extend(result.output)
        return result.error

    def wipe(self, packages: Iterable[str], partition: Partition,
             flags: MoveFlags = MoveFlags.NONE) -> ErrorKind:
        """
        Delete packages from partition.

        A missing package is reported as NOT_EXISTING without stopping the
        others; its cache entries and private data are left alone. Any failed
        deletion aborts the batch.
        """
        self.output = []
        packages = list(dict.fromkeys(packages))

        remounted = False
        if partition == Partition.SYSTEM:
            if self._run(commands.remount(self.layout.system_root, writable=True)) != ErrorKind.NONE:
                return ErrorKind.REMOUNT_SYSTEM
            remounted = True

        try:
            return self._wipe(packages, partition, flags)
        finally:
            if remounted:
                if self._run(commands.remount(self.layout.system_root, writable=False)) != ErrorKind.NONE:
                    logger.warning("Could not remount %s read-only", self.layout.system_root)

    def _wipe(self, packages: List[str], partition: Partition, flags: MoveFlags) -> ErrorKind:
        error, names = self.locator.list_app_dir(partition)
        if error not in (ErrorKind.NONE, ErrorKind.NOT_EXISTING):
            return error

        app_dir = self.layout.app_dir(partition)
        entries = set(names)
        suffixes = (APK_EXT, METADATA_EXT) if partition == Partition.TRASH else (APK_EXT,)
        result = ErrorKind.NONE
        found = []

        for package in packages:
            name = match_package(names, package, suffixes)
            if name is None:
                self.output.append(f"{package}: {ErrorKind.NOT_EXISTING.name}")
                result = ErrorKind.NOT_EXISTING
                continue

            primary = apk_path_for(posixpath.join(app_dir, name))
            for path in (primary, odex_path_for(primary), metadata_path_for(primary)):
                if posixpath.basename(path) not in entries:
                    continue
                error = self._run(commands.remove(path))
                if error != ErrorKind.NONE:
                    self.output.append(f"{package}: cannot delete {path}")
                    return error
            self.output.append(f"{package}: deleted from {partition.value}")
            found.append(package)

        if flags & MoveFlags.WIPE_CACHE:
            error = self._wipe_cache(found)
            if error != ErrorKind.NONE:
                return error

        if flags & MoveFlags.WIPE_DATA:
            for package in found:
                error = self._run(commands.remove_tree(self.layout.private_data_dir(package)))
                if error != ErrorKind.NONE:
                    self.output.append(f"{package}: cannot delete private data")
                    return error

        return result

    def _wipe_cache(self, packages: List[str]) -> ErrorKind:
        cache_dir = self.layout.code_cache_dir
        listing = self.shell.run(commands.list_dir(cache_dir))
        if listing.error != ErrorKind.NONE:
            self.output.extend(listing.output)
            return listing.error

        wanted = set(packages)
        for entry in listing.output:
            if not wanted.intersection(cached_packages(entry)):
                continue
            logger.debug("Removing cache entry %s", entry)
            error = self._run(commands.remove(posixpath.join(cache_dir, entry)))
            if error != ErrorKind.NONE:
                return error
        return ErrorKind.NONE
