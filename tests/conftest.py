"""
Shared fixtures: a fake root shell that executes the engines' commands
against a partition layout built in a temporary directory.
"""
import os
import shlex
import shutil
import sys
from pathlib import Path

import pytest

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from appmover.files import LocalFiles
from appmover.metadata import DictRegistry
from appmover.models import CommandResult, ErrorKind, Partition, PartitionLayout
from appmover.shell import ChannelError


class FakeShell:
    """
    Stands in for a root ShellSession. Understands the handful of busybox
    commands the engines emit and records every command it sees.
    """

    def __init__(self):
        self.commands = []
        self.sent = []
        self.free_kb = {}
        self.fail_on = set()
        self.mounts = {}

    def run(self, commands, timeout_ms=0):
        if isinstance(commands, str):
            commands = [commands]
        output = []
        result = CommandResult(ErrorKind.NONE)
        for command in commands:
            result = self._run_one(command)
            output.extend(result.output)
        return CommandResult(result.error, output)

    def send(self, command):
        self.sent.append(command)

    def _run_one(self, command):
        self.commands.append(command)
        if any(pattern in command for pattern in self.fail_on):
            return CommandResult(ErrorKind.COMMAND_FAILED, [f"{command}: failed"])

        if " | grep " in command:
            listing, pattern = command.split(" | grep ", 1)
            result = self._run_one(listing)
            self.commands.pop()
            if not result.ok:
                return result
            needle = shlex.split(pattern)[0]
            lines = [line for line in result.output if needle in line]
            return CommandResult(ErrorKind.NONE if lines else ErrorKind.COMMAND_FAILED, lines)

        argv = shlex.split(command)
        if argv and argv[0] == "busybox":
            argv = argv[1:]
        name, args = argv[0], argv[1:]

        if name == "ls":
            path = args[-1]
            if os.path.isdir(path):
                return CommandResult(ErrorKind.NONE, sorted(os.listdir(path)))
            if os.path.exists(path):
                return CommandResult(ErrorKind.NONE, [path])
            return CommandResult(ErrorKind.COMMAND_FAILED, [f"ls: {path}: No such file or directory"])
        if name == "mv":
            try:
                os.replace(args[-2], args[-1])
            except OSError as e:
                return CommandResult(ErrorKind.COMMAND_FAILED, [str(e)])
            return CommandResult(ErrorKind.NONE)
        if name == "rm":
            path = args[-1]
            if os.path.isdir(path) and "-rf" in args:
                shutil.rmtree(path)
            elif os.path.lexists(path):
                os.remove(path)
            return CommandResult(ErrorKind.NONE)
        if name == "mkdir":
            os.makedirs(args[-1], exist_ok=True)
            return CommandResult(ErrorKind.NONE)
        if name == "df":
            path = args[-1]
            kb = self.free_kb.get(path, 10 * 1024 * 1024)
            return CommandResult(ErrorKind.NONE, [
                "Filesystem 1K-blocks Used Available Use% Mounted on",
                f"/dev/block/fake 20971520 1000 {kb} 1% {path}",
            ])
        if name == "mount":
            mode = args[1].split(",")[1]
            self.mounts[args[-1]] = mode
            return CommandResult(ErrorKind.NONE)
        if name == "true":
            return CommandResult(ErrorKind.NONE)
        return CommandResult(ErrorKind.COMMAND_FAILED, [f"{name}: not found"])

    def mount_commands(self):
        return [c for c in self.commands if c.startswith("mount ")]


class FakeChannel:
    """Hands out the same FakeShell for every session."""

    def __init__(self, shell, root=True):
        self.shell = shell
        self.root = root
        self.opened = []
        self.closed = 0

    def open(self, privileged=True):
        if privileged and not self.root:
            raise ChannelError(ErrorKind.ROOT_DENIED, "root access denied")
        self.opened.append(privileged)
        return self.shell

    def close(self, session):
        self.closed += 1


class Device:
    """Temporary partition tree plus helpers to populate it."""

    def __init__(self, root: Path):
        self.layout = PartitionLayout(
            data_root=str(root / "data"),
            system_root=str(root / "system"),
            external_storage=str(root / "sdcard"),
            code_cache_dir=str(root / "data" / "dalvik-cache"),
            private_data_root=str(root / "data" / "data"),
        )
        for partition in (Partition.DATA, Partition.SYSTEM):
            os.makedirs(self.layout.app_dir(partition))
        os.makedirs(self.layout.external_storage)
        os.makedirs(self.layout.code_cache_dir)
        os.makedirs(self.layout.private_data_root)
        self.shell = FakeShell()
        self.files = LocalFiles()
        self.registry = DictRegistry()

    def path(self, partition: Partition, name: str) -> str:
        return os.path.join(self.layout.app_dir(partition), name)

    def add(self, partition: Partition, name: str, size: int = 100) -> str:
        path = self.path(partition, name)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "wb") as f:
            f.write(b"x" * size)
        return path

    def has(self, partition: Partition, name: str) -> bool:
        return os.path.exists(self.path(partition, name))


@pytest.fixture
def device(tmp_path):
    return Device(tmp_path)


@pytest.fixture
def shell():
    return FakeShell()
