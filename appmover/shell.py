"""
Shell sessions and the command channel built on top of them.

A ShellSession wraps one interactive shell (local or `adb shell`), optionally
escalated with su. Commands are framed with id-tagged markers so output of an
interrupted command is never mistaken for output of the next one.
"""
import logging
import threading
import time
import uuid
from contextlib import contextmanager
from typing import Iterator, Optional, Sequence, Union

import pexpect

from .config import (
    ADB_BINARY, LOCAL_SHELL, DEVICE_SERIAL, SHELL_PROMPT_PATTERNS,
    DEFAULT_COMMAND_TIMEOUT_MS, SU_TIMEOUT, SEND_GRACE_SECONDS
)
from .models import ShellType, ErrorKind, CommandResult
from .parsing import wrap_commands, end_pattern, parse_tagged_output

logger = logging.getLogger(__name__)


class ChannelError(Exception):
    """Raised when a shell session cannot be opened."""

    def __init__(self, kind: ErrorKind, message: str):
        super().__init__(message)
        self.kind = kind


class ShellSession:
    """
    A single interactive shell session, local or on an adb device.
    Can be root or non-root.
    """

    def __init__(self, shell_id: str, device_serial: Optional[str], shell_type: ShellType):
        self.shell_id = shell_id
        self.device_serial = device_serial
        self.shell_type = shell_type
        self._process: Optional[pexpect.spawn] = None
        self._is_connected: bool = False
        self._last_activity: float = 0
        self._last_send: float = 0
        self._command_id: int = 0
        self._lock = threading.Lock()

    @property
    def privileged(self) -> bool:
        return self.shell_type == ShellType.ROOT

    def _spawn_command(self) -> str:
        if self.device_serial:
            return f"{ADB_BINARY} -s {self.device_serial} shell"
        return LOCAL_SHELL

    def connect(self) -> None:
        """Establish the shell connection. Raises ChannelError on failure."""
        with self._lock:
            self._connect()

    def _connect(self) -> None:
        if self._is_connected and self._process and self._process.isalive():
            return

        try:
            self._process = pexpect.spawn(
                self._spawn_command(),
                encoding="utf-8",
                codec_errors="replace",
                timeout=30,
                maxread=65536,
                searchwindowsize=4096
            )

            # Wait for prompt
            try:
                self._process.expect(SHELL_PROMPT_PATTERNS, timeout=10)
            except pexpect.TIMEOUT:
                self._process.sendline("")
                try:
                    self._process.expect(SHELL_PROMPT_PATTERNS, timeout=5)
                except (pexpect.TIMEOUT, pexpect.EOF):
                    self._force_close()
                    raise ChannelError(ErrorKind.COMMAND_FAILED,
                                       f"{self.shell_id}: could not detect shell prompt")

            if self.privileged:
                self._escalate()

            self._is_connected = True
            self._last_activity = time.time()
            logger.debug("Shell %s connected (%s)", self.shell_id, self.shell_type.value)

        except pexpect.EOF:
            self._force_close()
            raise ChannelError(ErrorKind.COMMAND_FAILED,
                               f"{self.shell_id}: shell process exited during startup")
        except pexpect.ExceptionPexpect as e:
            self._force_close()
            raise ChannelError(ErrorKind.COMMAND_FAILED, f"{self.shell_id}: {e}")

    def _escalate(self) -> None:
        self._process.sendline("su")
        index = self._process.expect([
            r'#\s*$',
            r'denied|not allowed',
            r'not found|No such file',
            r'waiting|confirm|allow',
            pexpect.TIMEOUT
        ], timeout=SU_TIMEOUT)

        if index == 0:
            # Verify root
            self._process.sendline("id")
            try:
                self._process.expect(r'uid=0', timeout=5)
                self._process.expect(SHELL_PROMPT_PATTERNS, timeout=5)
            except (pexpect.TIMEOUT, pexpect.EOF):
                self._force_close()
                raise ChannelError(ErrorKind.NO_ROOT_ACCESS,
                                   f"{self.shell_id}: su succeeded but uid != 0")
        elif index == 1:
            self._force_close()
            raise ChannelError(ErrorKind.ROOT_DENIED, f"{self.shell_id}: root access denied")
        elif index == 2:
            self._force_close()
            raise ChannelError(ErrorKind.NO_ROOT_ACCESS, f"{self.shell_id}: su not found")
        elif index == 3:
            self._force_close()
            raise ChannelError(ErrorKind.ROOT_DENIED,
                               f"{self.shell_id}: root permission was not granted")
        else:
            self._force_close()
            raise ChannelError(ErrorKind.ROOT_DENIED, f"{self.shell_id}: timeout during su")

    def _force_close(self):
        """Force close without graceful exit."""
        if self._process:
            try:
                self._process.close(force=True)
            except (OSError, pexpect.ExceptionPexpect):
                pass
        self._process = None
        self._is_connected = False

    def close(self) -> None:
        """Gracefully close the shell. Safe to call more than once."""
        with self._lock:
            if self._process:
                try:
                    # give a sent command time to start before the shell hangs up
                    pending = self._last_send + SEND_GRACE_SECONDS - time.time()
                    if pending > 0:
                        time.sleep(pending)
                    if self.privileged:
                        self._process.sendline("exit")  # Exit su
                        time.sleep(0.1)
                    self._process.sendline("exit")  # Exit shell
                    time.sleep(0.1)
                    self._process.close()
                except (OSError, pexpect.ExceptionPexpect):
                    self._force_close()
            self._process = None
            self._is_connected = False

    def is_alive(self) -> bool:
        """Check if shell is alive."""
        if not self._is_connected or not self._process:
            return False
        return self._process.isalive()

    def _interrupt(self) -> None:
        """Stop a stuck command with Ctrl+C and wait for the prompt to come back."""
        try:
            self._process.sendcontrol('c')
            self._process.expect(SHELL_PROMPT_PATTERNS, timeout=2)
        except pexpect.TIMEOUT:
            logger.warning("Shell %s did not return to a prompt after Ctrl+C", self.shell_id)
        except (pexpect.EOF, OSError):
            self._is_connected = False

    def run(self, commands: Union[str, Sequence[str]], timeout_ms: int = 0) -> CommandResult:
        """
        Run one or more commands and collect their output.

        The commands are joined with ';' so the exit status is the one of the
        last command. A timeout_ms of 0 uses DEFAULT_COMMAND_TIMEOUT_MS.
        """
        if isinstance(commands, str):
            commands = [commands]
        if not timeout_ms:
            timeout_ms = DEFAULT_COMMAND_TIMEOUT_MS

        with self._lock:
            if not self.is_alive():
                try:
                    self._connect()
                except ChannelError as e:
                    return CommandResult(e.kind, [str(e)])

            self._command_id += 1
            command_id = self._command_id
            logger.debug("Cmd %s/%d: %s", self.shell_id, command_id, "; ".join(commands))

            try:
                self._process.sendline(wrap_commands(command_id, commands))
                self._process.expect(end_pattern(command_id), timeout=timeout_ms / 1000.0)
            except pexpect.TIMEOUT:
                output = parse_tagged_output(command_id, self._process.before or "")
                logger.warning("Cmd %s/%d timed out after %d ms", self.shell_id, command_id, timeout_ms)
                self._interrupt()
                return CommandResult(ErrorKind.TIMEOUT, output)
            except pexpect.EOF:
                output = parse_tagged_output(command_id, self._process.before or "")
                self._is_connected = False
                output.append("Shell connection lost.")
                return CommandResult(ErrorKind.COMMAND_FAILED, output)
            except OSError as e:
                self._is_connected = False
                return CommandResult(ErrorKind.COMMAND_FAILED, [str(e)])

            exit_code = int(self._process.match.group(1))
            output = parse_tagged_output(command_id, self._process.before or "")
            self._last_activity = time.time()

            for line in output:
                logger.debug("ID %d: %s", command_id, line)

            error = ErrorKind.NONE if exit_code == 0 else ErrorKind.COMMAND_FAILED
            return CommandResult(error, output)

    def send(self, command: str) -> None:
        """Send a command without waiting for it to finish."""
        with self._lock:
            if not self.is_alive():
                logger.warning("Shell %s not connected, dropping '%s'", self.shell_id, command)
                return
            try:
                self._process.sendline(command)
                self._last_send = time.time()
            except (OSError, pexpect.ExceptionPexpect) as e:
                logger.warning("Shell %s failed to send '%s': %s", self.shell_id, command, e)

    def get_status(self) -> dict:
        """Get shell status as dict."""
        return {
            "shell_id": self.shell_id,
            "device": self.device_serial or "local",
            "type": self.shell_type.value,
            "connected": self._is_connected and self.is_alive(),
            "commands_run": self._command_id,
            "idle_seconds": time.time() - self._last_activity if self._last_activity else None
        }


class CommandChannel:
    """
    Opens shell sessions and runs command batches on them.

    Every session keeps its own command counter; nothing is shared between
    sessions.
    """

    def __init__(self, device_serial: Optional[str] = DEVICE_SERIAL):
        self.device_serial = device_serial

    def _generate_shell_id(self, shell_type: ShellType) -> str:
        """Generate unique shell ID."""
        serial = self.device_serial or "local"
        short_serial = serial[:8] if len(serial) > 8 else serial
        type_suffix = "root" if shell_type == ShellType.ROOT else "user"
        return f"{short_serial}_{type_suffix}_{uuid.uuid4().hex[:4]}"

    def open(self, privileged: bool = True) -> ShellSession:
        """Start a connected session. Raises ChannelError."""
        shell_type = ShellType.ROOT if privileged else ShellType.NON_ROOT
        session = ShellSession(self._generate_shell_id(shell_type), self.device_serial, shell_type)
        session.connect()
        return session

    def run(self, session: ShellSession, commands: Union[str, Sequence[str]],
            timeout_ms: int = 0) -> CommandResult:
        return session.run(commands, timeout_ms)

    def close(self, session: Optional[ShellSession]) -> None:
        if session is None:
            return
        try:
            session.close()
        except Exception:
            logger.exception("Error closing shell %s", session.shell_id)

    @contextmanager
    def session(self, privileged: bool = True) -> Iterator[ShellSession]:
        session = self.open(privileged)
        try:
            yield session
        finally:
            self.close(session)
