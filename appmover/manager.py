"""
AppManager: runs relocation and wipe batches on worker threads.
"""
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from contextlib import ExitStack, contextmanager
from typing import Callable, Iterable, Iterator, List, Optional, Sequence, Tuple, Union

from . import commands
from .config import MAX_WORKERS, DEVICE_SERIAL
from .files import device_files
from .locator import PartitionLocator
from .metadata import MetadataStore, ShellRegistry
from .models import (
    Partition, PartitionLayout, ErrorKind, MoveFlags, FileLocation,
    PackageFile, PackageMetadata, BatchResult
)
from .relocation import RelocationEngine
from .shell import CommandChannel, ChannelError
from .space import SpaceChecker
from .wipe import WipeEngine

logger = logging.getLogger(__name__)

Callback = Optional[Callable[[BatchResult], None]]


class AppManager:
    """
    Entry point for moving, trashing and wiping packages on one device.

    Batches (move, wipe and friends) run on a thread pool and return a
    Future[BatchResult]. Batches touching a common partition run one after
    the other. Queries run on the caller's thread.
    """

    def __init__(self, device_serial: Optional[str] = DEVICE_SERIAL,
                 layout: Optional[PartitionLayout] = None,
                 channel=None, files=None, registry=None,
                 max_workers: int = MAX_WORKERS):
        self.device_serial = device_serial
        self.layout = layout or PartitionLayout()
        self.channel = channel or CommandChannel(device_serial)
        self.files = files or device_files(device_serial)
        self.registry = registry
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="appmover")
        self._partition_locks = {partition: threading.Lock() for partition in Partition}

    # ==================== Plumbing ====================

    @contextmanager
    def _locked(self, partitions: Iterable[Partition]) -> Iterator[None]:
        # Fixed order so that two batches never wait on each other's locks
        with ExitStack() as stack:
            for partition in sorted(set(partitions), key=lambda p: p.value):
                stack.enter_context(self._partition_locks[partition])
            yield

    def _registry_for(self, session):
        return self.registry if self.registry is not None else ShellRegistry(session)

    def _submit(self, partitions: Sequence[Partition], work: Callable, privileged: bool = True,
                callback: Callback = None) -> "Future[BatchResult]":
        def task() -> BatchResult:
            with self._locked(partitions):
                try:
                    session = self.channel.open(privileged)
                except ChannelError as e:
                    logger.warning("Cannot open shell: %s", e)
                    return BatchResult(e.kind, [str(e)])
                try:
                    return work(session)
                finally:
                    self.channel.close(session)

        future = self._executor.submit(task)
        if callback is not None:
            future.add_done_callback(lambda f: callback(f.result()))
        return future

    def _query(self, privileged: bool, work: Callable, default):
        try:
            session = self.channel.open(privileged)
        except ChannelError as e:
            logger.warning("Cannot open shell: %s", e)
            return e.kind, default
        try:
            return work(session)
        finally:
            self.channel.close(session)

    def _locator(self, session) -> PartitionLocator:
        return PartitionLocator(session, self.files, self.layout)

    # ==================== Batches ====================

    def move(self, packages: Iterable[str], source: Partition, target: Partition,
             flags: MoveFlags = MoveFlags.NONE, callback: Callback = None) -> "Future[BatchResult]":
        """Move packages from source to target."""
        packages = list(packages)

        def work(session) -> BatchResult:
            locator = self._locator(session)
            engine = RelocationEngine(
                session, locator, SpaceChecker(locator),
                MetadataStore(self.files, self._registry_for(session)), self.layout
            )
            logger.info("Moving %s from %s to %s", packages, source.value, target.value)
            error = engine.move(packages, source, target, flags)
            logger.info("Move finished: %s", error.name)
            return BatchResult(error, engine.output)

        return self._submit([source, target], work, callback=callback)

    def wipe(self, packages: Iterable[str], partition: Partition,
             flags: MoveFlags = MoveFlags.NONE, callback: Callback = None) -> "Future[BatchResult]":
        """Delete packages from partition for good."""
        packages = list(packages)
        partitions = [partition]
        if flags & (MoveFlags.WIPE_CACHE | MoveFlags.WIPE_DATA):
            partitions.append(Partition.DATA)

        def work(session) -> BatchResult:
            engine = WipeEngine(session, self._locator(session), self.layout)
            logger.info("Wiping %s from %s", packages, partition.value)
            error = engine.wipe(packages, partition, flags)
            logger.info("Wipe finished: %s", error.name)
            return BatchResult(error, engine.output)

        return self._submit(partitions, work, callback=callback)

    def install_system_app(self, package: str, flags: MoveFlags = MoveFlags.NONE,
                           callback: Callback = None) -> "Future[BatchResult]":
        """Turn an installed app into a system app."""
        return self.move([package], Partition.DATA, Partition.SYSTEM,
                         flags | MoveFlags.OVERWRITE, callback)

    def uninstall_system_app(self, package: str, flags: MoveFlags = MoveFlags.NONE,
                             callback: Callback = None) -> "Future[BatchResult]":
        """Turn a system app back into a regular installed app."""
        return self.move([package], Partition.SYSTEM, Partition.DATA, flags, callback)

    def move_to_trash(self, packages: Iterable[str], source: Partition,
                      flags: MoveFlags = MoveFlags.NONE, callback: Callback = None) -> "Future[BatchResult]":
        return self.move(packages, source, Partition.TRASH, flags, callback)

    def restore_from_trash(self, packages: Iterable[str], target: Partition,
                           flags: MoveFlags = MoveFlags.NONE, callback: Callback = None) -> "Future[BatchResult]":
        return self.move(packages, Partition.TRASH, target, flags, callback)

    def send(self, command_list: Union[str, Sequence[str]], privileged: bool = True,
             timeout_ms: int = 0, callback: Callback = None) -> "Future[BatchResult]":
        """Run raw shell commands as one batch."""
        def work(session) -> BatchResult:
            result = session.run(command_list, timeout_ms)
            return BatchResult(result.error, result.output)

        return self._submit([], work, privileged=privileged, callback=callback)

    # ==================== Queries ====================

    def locate(self, package: str, partition: Partition) -> Tuple[ErrorKind, Optional[FileLocation]]:
        return self._query(True, lambda s: self._locator(s).locate(package, partition), None)

    def fits(self, package: str, source: Partition, target: Partition) -> ErrorKind:
        def work(session):
            return SpaceChecker(self._locator(session)).fits(package, source, target), None

        return self._query(True, work, None)[0]

    def fits_on_partition(self, package: str, target: Partition) -> ErrorKind:
        def work(session):
            return SpaceChecker(self._locator(session)).fits_on_partition(package, target), None

        return self._query(True, work, None)[0]

    def list_packages(self, partition: Partition,
                      flags: MoveFlags = MoveFlags.NONE) -> Tuple[ErrorKind, List[PackageFile]]:
        """Packages on partition, filtered by IGNORE_ODEXED and LAUNCHABLE_ONLY."""
        def work(session):
            error, found = self._locator(session).list_package_files(partition)
            if error != ErrorKind.NONE:
                return error, []
            registry = self._registry_for(session)
            packages = []
            for package, package_file in found.items():
                if flags & MoveFlags.IGNORE_ODEXED and package_file.odex_path:
                    continue
                if flags & MoveFlags.LAUNCHABLE_ONLY:
                    entry = registry.lookup(package)
                    if not (entry and entry.launchable):
                        continue
                packages.append(package_file)
            return ErrorKind.NONE, packages

        return self._query(True, work, [])

    def list_trash(self, flags: MoveFlags = MoveFlags.NONE) -> Tuple[ErrorKind, List[PackageMetadata]]:
        """Metadata of the packages in trash."""
        def work(session):
            store = MetadataStore(self.files, self._registry_for(session))
            return ErrorKind.NONE, store.list_trash(self.layout.app_dir(Partition.TRASH), flags)

        return self._query(False, work, [])

    def got_root(self) -> bool:
        try:
            session = self.channel.open(True)
        except ChannelError as e:
            logger.info("No root: %s", e)
            return False
        self.channel.close(session)
        return True

    def got_busybox(self) -> bool:
        def work(session):
            return session.run(commands.busybox_probe()).error, None

        error, _ = self._query(False, work, None)
        return error == ErrorKind.NONE

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
