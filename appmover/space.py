"""
Free space checks before a package is moved.
"""
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from . import commands
from .models import Partition, ErrorKind, FileLocation
from .parsing import parse_df_free_kb

logger = logging.getLogger(__name__)


@dataclass
class FitResult:
    error: ErrorKind
    location: Optional[FileLocation] = None
    required: int = 0


class SpaceChecker:
    """
    Decides whether a package fits on a target partition.

    Trash lives on external storage, so its capacity comes from
    external_space_available (a predicate taking the required bytes).
    Other partitions are measured with df through the shell.
    """

    def __init__(self, locator, external_space_available: Optional[Callable[[int], bool]] = None):
        self.locator = locator
        self.external_space_available = external_space_available or self._external_space_available

    def _external_space_available(self, required: int) -> bool:
        free = self.locator.files.free_bytes(self.locator.layout.external_storage)
        logger.debug("Available space on external storage: %s bytes", free)
        return free is not None and free >= required

    def free_space(self, partition: Partition) -> int:
        """Free bytes on partition, 0 if it cannot be determined."""
        root = self.locator.layout.root(partition)
        result = self.locator.shell.run(commands.disk_free(root))
        if result.error != ErrorKind.NONE:
            logger.debug("df %s failed: %s", root, result.error.name)
            return 0
        free_kb = parse_df_free_kb(result.output)
        return free_kb * 1024 if free_kb is not None else 0

    def check(self, package: str, source: Partition, target: Partition) -> FitResult:
        error, location = self.locator.locate(package, source)
        if error != ErrorKind.NONE:
            return FitResult(ErrorKind.NOT_EXISTING if error == ErrorKind.NOT_EXISTING else error)

        required = self.locator.files.size(location.path)
        logger.debug("Found %s --> required disk space: %d bytes", location.path, required)

        if target == Partition.TRASH:
            if not self.external_space_available(required):
                return FitResult(ErrorKind.INSUFFICIENT_SPACE, location, required)
        else:
            free = self.free_space(target)
            logger.debug("Available disk space on %s: %d bytes", target.value, free)
            if required < 1 or free < required:
                return FitResult(ErrorKind.INSUFFICIENT_SPACE, location, required)

        return FitResult(ErrorKind.NONE, location, required)

    def fits(self, package: str, source: Partition, target: Partition) -> ErrorKind:
        return self.check(package, source, target).error

    def fits_on_partition(self, package: str, target: Partition) -> ErrorKind:
        """
        Like fits(), but searches the source among the other partitions.

        ALREADY_EXISTING when no other partition holds the package.
        """
        for partition in Partition:
            if partition == target:
                continue
            if self.locator.exists(package, partition) == ErrorKind.NONE:
                return self.fits(package, partition, target)
        return ErrorKind.ALREADY_EXISTING
