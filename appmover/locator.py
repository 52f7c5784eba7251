"""
Finding package files on a partition.

SYSTEM and TRASH are readable without root and are listed directly. DATA is
not, so it is listed through the privileged shell.
"""
import logging
import posixpath
from typing import Dict, List, Optional, Tuple

from . import commands
from .config import APK_EXT, METADATA_EXT
from .models import (
    Partition, PartitionLayout, ErrorKind, FileLocation, PackageFile,
    odex_path_for, metadata_path_for, apk_path_for
)
from .parsing import match_package, classify_listing, package_from_filename

logger = logging.getLogger(__name__)


def _suffixes(partition: Partition) -> Tuple[str, ...]:
    if partition == Partition.TRASH:
        return (APK_EXT, METADATA_EXT)
    return (APK_EXT,)


class PartitionLocator:
    """Locates package files. All methods are free of side effects."""

    def __init__(self, shell, files, layout: Optional[PartitionLayout] = None):
        self.shell = shell
        self.files = files
        self.layout = layout or PartitionLayout()

    @staticmethod
    def is_restricted(partition: Partition) -> bool:
        return partition == Partition.DATA

    def locate(self, package: str, partition: Partition) -> Tuple[ErrorKind, Optional[FileLocation]]:
        """
        Find the primary file of package on partition.

        Returns (NONE, location) when found, (NOT_EXISTING, None) when the
        package is not there, or the error that prevented the search.
        """
        app_dir = self.layout.app_dir(partition)
        suffixes = _suffixes(partition)

        if self.is_restricted(partition):
            result = self.shell.run(commands.list_dir_grep(app_dir, package))
            if result.error == ErrorKind.NONE:
                error, name = classify_listing(result.output, package, suffixes)
            elif result.error == ErrorKind.COMMAND_FAILED:
                # not found --> this is not an error
                return ErrorKind.NOT_EXISTING, None
            else:
                logger.debug("Listing %s failed: %s", app_dir, result.error.name)
                for line in result.output:
                    logger.debug(line)
                return result.error, None
        else:
            name = match_package(self.files.listdir(app_dir) or [], package, suffixes)
            error = ErrorKind.NONE if name else ErrorKind.NOT_EXISTING

        if error != ErrorKind.NONE:
            return error, None

        path = posixpath.join(app_dir, name)
        if path.endswith(METADATA_EXT):
            path = apk_path_for(path)
        logger.debug("Found %s", path)
        return ErrorKind.NONE, FileLocation(partition, path)

    def exists(self, package: str, partition: Partition) -> ErrorKind:
        return self.locate(package, partition)[0]

    def path_exists(self, path: str, partition: Partition) -> bool:
        if self.is_restricted(partition):
            return self.shell.run(commands.list_dir(path)).error == ErrorKind.NONE
        return self.files.exists(path)

    def package_file(self, location: FileLocation) -> PackageFile:
        """Attach the odex and sidecar companions that exist next to location."""
        odex = odex_path_for(location.path)
        metadata = metadata_path_for(location.path)
        return PackageFile(
            location,
            odex_path=odex if self.path_exists(odex, location.partition) else None,
            metadata_path=metadata if self.path_exists(metadata, location.partition) else None,
        )

    def list_app_dir(self, partition: Partition) -> Tuple[ErrorKind, List[str]]:
        """Entries of the partition's app directory, in listing order."""
        app_dir = self.layout.app_dir(partition)
        if self.is_restricted(partition):
            result = self.shell.run(commands.list_dir(app_dir))
            return result.error, result.output if result.error == ErrorKind.NONE else []
        names = self.files.listdir(app_dir)
        if names is None:
            return ErrorKind.NOT_EXISTING, []
        return ErrorKind.NONE, names

    def list_package_files(self, partition: Partition) -> Tuple[ErrorKind, Dict[str, PackageFile]]:
        """Every package on the partition, keyed by package name, from one listing."""
        error, names = self.list_app_dir(partition)
        if error != ErrorKind.NONE:
            return error, {}

        app_dir = self.layout.app_dir(partition)
        entries = set(names)
        packages: Dict[str, PackageFile] = {}
        for name in names:
            package = package_from_filename(name)
            if not package or package in packages:
                continue
            path = posixpath.join(app_dir, name)
            odex = odex_path_for(path)
            metadata = metadata_path_for(path)
            packages[package] = PackageFile(
                FileLocation(partition, path),
                odex_path=odex if posixpath.basename(odex) in entries else None,
                metadata_path=metadata if posixpath.basename(metadata) in entries else None,
            )
        return ErrorKind.NONE, packages
