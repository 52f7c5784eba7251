"""
MCP Tool definitions for Android App Mover.

Every tool returns a plain text block starting with a STATUS line, followed by
details and, where it helps, an Action line telling the caller what to do next.
"""
from typing import List, Optional

from mcp.server.fastmcp import FastMCP

from appmover import AppManager, BatchResult, ErrorKind, MoveFlags, Partition

# Global app manager instance
_manager = AppManager()

# How long a tool waits for a batch to finish
BATCH_WAIT_SECONDS = 600

_ACTIONS = {
    ErrorKind.NOT_EXISTING: "Check the package name with locate_package.",
    ErrorKind.INSUFFICIENT_SPACE: "Free up space on the target or pick another target.",
    ErrorKind.REMOUNT_SYSTEM: "The system partition could not be made writable. Is it verity-protected?",
    ErrorKind.NO_ROOT_ACCESS: "Root the device or install su.",
    ErrorKind.ROOT_DENIED: "Grant root access in the su prompt on the device.",
    ErrorKind.NO_EXTERNAL_STORAGE: "Mount external storage before using the trash.",
    ErrorKind.TIMEOUT: "The device is slow or stuck. Retry, or reconnect the device.",
    ErrorKind.BUSYBOX: "Install busybox or set APPMOVER_BUSYBOX.",
    ErrorKind.ODEX_NOT_SUPPORTED: "Odexed packages can only be moved to or from trash.",
    ErrorKind.ALREADY_EXISTING: "The package is already on the target partition.",
}

_PARTITIONS = {
    "data": Partition.DATA,
    "system": Partition.SYSTEM,
    "trash": Partition.TRASH,
}


def _parse_partition(name: str) -> Optional[Partition]:
    return _PARTITIONS.get((name or "").strip().lower())


def _bad_partition(name: str) -> str:
    return (f"STATUS: ERROR\nReason: Unknown partition '{name}'.\n"
            f"Action: Use one of {', '.join(_PARTITIONS)}.")


def format_error(error: ErrorKind, subject: str, output: Optional[List[str]] = None) -> str:
    lines = [f"STATUS: {error.name}", subject, f"Code: {int(error)}"]
    if error in _ACTIONS:
        lines.append(f"Action: {_ACTIONS[error]}")
    if output:
        lines.append("OUTPUT:")
        lines.extend(output)
    return "\n".join(lines)


def format_batch(result: BatchResult, subject: str) -> str:
    """Render a finished batch."""
    if not result.ok:
        return format_error(result.error, subject, result.output)
    lines = ["STATUS: SUCCESS", subject]
    if result.output:
        lines.append("OUTPUT:")
        lines.extend(result.output)
    return "\n".join(lines)


def register_tools(mcp: FastMCP):
    """Register all MCP tools with the server."""

    # ==================== TOOL 1: locate_package ====================
    @mcp.tool()
    def locate_package(package: str, partition: str = "data") -> str:
        """
        Find the APK of a package on a partition.

        Args:
            package: Package name, e.g. "com.example.app"
            partition: "data", "system" or "trash"

        Returns the full path of the package file, or NOT_EXISTING.
        """
        target = _parse_partition(partition)
        if target is None:
            return _bad_partition(partition)
        error, location = _manager.locate(package, target)
        if error != ErrorKind.NONE:
            return format_error(error, f"Package: {package}")
        return f"STATUS: FOUND\nPackage: {package}\nPartition: {target.value}\nPath: {location.path}"

    # ==================== TOOL 2: check_space ====================
    @mcp.tool()
    def check_space(package: str, target: str, source: str = None) -> str:
        """
        Check whether a package fits on the target partition.

        Args:
            package: Package name
            target: "data", "system" or "trash"
            source: Partition holding the package. Omit to search the others.
        """
        target_partition = _parse_partition(target)
        if target_partition is None:
            return _bad_partition(target)
        subject = f"Package: {package}\nTarget: {target_partition.value}"
        if source:
            source_partition = _parse_partition(source)
            if source_partition is None:
                return _bad_partition(source)
            error = _manager.fits(package, source_partition, target_partition)
        else:
            error = _manager.fits_on_partition(package, target_partition)
        if error != ErrorKind.NONE:
            return format_error(error, subject)
        return f"STATUS: FITS\n{subject}"

    # ==================== TOOL 3: move_packages ====================
    @mcp.tool()
    def move_packages(packages: List[str], source: str, target: str,
                      overwrite: bool = False, reboot: bool = False) -> str:
        """
        Move packages between partitions. All packages are checked first; the
        batch stops at the first failure, without undoing earlier moves.

        Args:
            packages: Package names
            source: "data", "system" or "trash"
            target: "data", "system" or "trash"
            overwrite: Replace the package on the target if it is already there
            reboot: Reboot the device after a successful batch
        """
        source_partition = _parse_partition(source)
        target_partition = _parse_partition(target)
        if source_partition is None:
            return _bad_partition(source)
        if target_partition is None:
            return _bad_partition(target)

        flags = MoveFlags.NONE
        if overwrite:
            flags |= MoveFlags.OVERWRITE
        if reboot:
            flags |= MoveFlags.REBOOT

        future = _manager.move(packages, source_partition, target_partition, flags)
        result = future.result(timeout=BATCH_WAIT_SECONDS)
        return format_batch(result, f"Moved: {', '.join(packages)}\n"
                                    f"From: {source_partition.value}\nTo: {target_partition.value}")

    # ==================== TOOL 4: wipe_packages ====================
    @mcp.tool()
    def wipe_packages(packages: List[str], partition: str,
                      wipe_data: bool = False, wipe_cache: bool = False) -> str:
        """
        Permanently delete packages. This cannot be undone.

        Args:
            packages: Package names
            partition: "data", "system" or "trash"
            wipe_data: Also delete the private data directories
            wipe_cache: Also delete the code-cache entries
        """
        target = _parse_partition(partition)
        if target is None:
            return _bad_partition(partition)

        flags = MoveFlags.NONE
        if wipe_data:
            flags |= MoveFlags.WIPE_DATA
        if wipe_cache:
            flags |= MoveFlags.WIPE_CACHE

        result = _manager.wipe(packages, target, flags).result(timeout=BATCH_WAIT_SECONDS)
        return format_batch(result, f"Wiped: {', '.join(packages)}\nPartition: {target.value}")

    # ==================== TOOL 5: list_trash ====================
    @mcp.tool()
    def list_trash(launchable_only: bool = False) -> str:
        """
        List the packages parked in trash, with label and partition of origin.

        Args:
            launchable_only: Only list packages that have a launcher activity
        """
        flags = MoveFlags.LAUNCHABLE_ONLY if launchable_only else MoveFlags.NONE
        error, packages = _manager.list_trash(flags)
        if error != ErrorKind.NONE:
            return format_error(error, "Trash")
        if not packages:
            return "STATUS: EMPTY\nTrash is empty."
        lines = [f"STATUS: FOUND_{len(packages)}_PACKAGE(S)", ""]
        for info in packages:
            lines.append(f"  {info.package_name}: {info.label} (from {info.partition})")
        return "\n".join(lines)

    # ==================== TOOL 6: check_root ====================
    @mcp.tool()
    def check_root() -> str:
        """
        Check root and busybox availability on the device.
        Run this first: every move needs root.
        """
        root = _manager.got_root()
        busybox = _manager.got_busybox()
        status = "READY" if root and busybox else "NOT_READY"
        lines = [f"STATUS: {status}", f"Root: {'yes' if root else 'no'}",
                 f"Busybox: {'yes' if busybox else 'no'}"]
        if not root:
            lines.append(f"Action: {_ACTIONS[ErrorKind.NO_ROOT_ACCESS]}")
        elif not busybox:
            lines.append(f"Action: {_ACTIONS[ErrorKind.BUSYBOX]}")
        return "\n".join(lines)
