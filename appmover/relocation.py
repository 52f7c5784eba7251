"""
Moving packages between partitions.

A batch is validated completely before anything is touched. After that the
packages are moved one by one and the batch stops at the first failure.
Packages moved before the failure stay where they are: there is no rollback.
"""
import logging
from typing import Iterable, List

from . import commands
from .models import (
    Partition, PartitionLayout, ErrorKind, MoveFlags, FileLocation,
    odex_path_for, metadata_path_for
)

logger = logging.getLogger(__name__)


class RelocationEngine:
    """
    Moves packages from a source to a target partition.

    The system partition is remounted read-write while it is involved and
    always remounted read-only afterwards, whatever the outcome.
    """

    def __init__(self, shell, locator, space, metadata, layout: PartitionLayout = None):
        self.shell = shell
        self.locator = locator
        self.space = space
        self.metadata = metadata
        self.layout = layout or locator.layout
        self.output: List[str] = []

    def _run(self, command: str) -> ErrorKind:
        result = self.shell.run(command)
        self.output.extend(result.output)
        return result.error

    def _note(self, message: str) -> None:
        self.output.append(message)
        logger.info(message)

    def move(self, packages: Iterable[str], source: Partition, target: Partition,
             flags: MoveFlags = MoveFlags.NONE) -> ErrorKind:
        """
        Move packages from source to target.

        Returns the first error encountered, or NONE. Diagnostic lines of the
        batch are left in self.output.
        """
        self.output = []
        packages = list(dict.fromkeys(packages))
        if source == target:
            self._note(f"Source and target are both {source.value}")
            return ErrorKind.ALREADY_EXISTING

        # check disk space before touching anything
        sources = {}
        for package in packages:
            fit = self.space.check(package, source, target)
            if fit.error != ErrorKind.NONE:
                self._note(f"{package}: {fit.error.name}")
                return fit.error
            sources[package] = fit.location

        # create trash if not existing
        if target == Partition.TRASH:
            trash_app_dir = self.layout.app_dir(Partition.TRASH)
            files = self.locator.files
            if not files.isdir(trash_app_dir) and not files.makedirs(trash_app_dir):
                self._note(f"Cannot create {trash_app_dir}")
                return ErrorKind.NO_EXTERNAL_STORAGE

        remounted = False
        if Partition.SYSTEM in (source, target):
            if self._run(commands.remount(self.layout.system_root, writable=True)) != ErrorKind.NONE:
                self._note(f"Cannot remount {self.layout.system_root} read-write")
                return ErrorKind.REMOUNT_SYSTEM
            remounted = True

        error = ErrorKind.NONE
        try:
            for package in packages:
                error = self._move_package(package, sources[package], source, target, flags)
                if error != ErrorKind.NONE:
                    # immediately abort on any errors
                    self._note(f"{package}: {error.name}")
                    break
                self._note(f"{package}: moved from {source.value} to {target.value}")
        finally:
            if remounted:
                self._remount_read_only()

        if error == ErrorKind.NONE and flags & MoveFlags.REBOOT:
            self._note("Rebooting")
            self.shell.send(commands.reboot())

        return error

    def _remount_read_only(self) -> None:
        if self._run(commands.remount(self.layout.system_root, writable=False)) != ErrorKind.NONE:
            logger.warning("Could not remount %s read-only", self.layout.system_root)

    def _move_package(self, package: str, location: FileLocation, source: Partition,
                      target: Partition, flags: MoveFlags) -> ErrorKind:
        source_path = location.path
        source_dir = self.layout.app_dir(source) + "/"
        if not source_path.startswith(source_dir):
            logger.error("Tracked path %s is outside %s", source_path, source_dir)
            return ErrorKind.INTERNAL

        trash_involved = Partition.TRASH in (source, target)
        odex = odex_path_for(source_path)
        has_odex = self.locator.path_exists(odex, source)
        if has_odex and not trash_involved:
            return ErrorKind.ODEX_NOT_SUPPORTED

        target_path = self.layout.app_dir(target) + "/" + source_path[len(source_dir):]

        # Decided before the sidecar is written: a fresh sidecar in trash
        # would otherwise count as an existing package.
        delete_only = False
        if not flags & MoveFlags.OVERWRITE:
            exists, existing = self.locator.locate(package, target)
            if exists == ErrorKind.NONE and self.locator.path_exists(existing.path, target):
                # App is already existing in target partition, so just remove it from source partition
                delete_only = True
            elif exists == ErrorKind.NONE:
                # only an orphaned sidecar is there
                logger.warning("Ignoring %s without package file", existing.path)
            elif exists != ErrorKind.NOT_EXISTING:
                return exists

        sidecar_written = None
        if target == Partition.TRASH and not delete_only:
            sidecar = metadata_path_for(target_path)
            result = self.metadata.write_from_registry(package, source.value, sidecar)
            if result == ErrorKind.NONE:
                sidecar_written = sidecar
            else:
                logger.warning("Metadata for %s not written: %s", package, result.name)

        if delete_only:
            command = commands.remove(source_path)
        else:
            command = commands.move(source_path, target_path)
        logger.debug(command)

        error = self._run(command)
        if error != ErrorKind.NONE:
            if sidecar_written and not self.metadata.delete(sidecar_written):
                logger.warning("Orphaned sidecar %s left in trash", sidecar_written)
            return error

        if source == Partition.TRASH:
            sidecar = metadata_path_for(source_path)
            if self.locator.files.exists(sidecar) and not self.metadata.delete(sidecar):
                logger.warning("Orphaned sidecar %s left in trash", sidecar)

        if has_odex:
            if delete_only:
                error = self._run(commands.remove(odex))
            else:
                error = self._run(commands.move(odex, odex_path_for(target_path)))

        return error
