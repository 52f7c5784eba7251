"""Tests for ShellSession and CommandChannel with a scripted pexpect process."""
import re
from unittest import mock

import pexpect
import pytest

from appmover.models import ErrorKind, ShellType
from appmover.shell import ChannelError, CommandChannel, ShellSession


class ScriptedProcess:
    """
    Replays one (before, after) pair per expect() call. `after` is the text
    the pattern is matched against, or pexpect.TIMEOUT / pexpect.EOF.
    """

    def __init__(self, script):
        self.script = list(script)
        self.sent = []
        self.controls = []
        self.before = ""
        self.match = None
        self.closed = False

    def isalive(self):
        return not self.closed

    def sendline(self, line):
        self.sent.append(line)

    def sendcontrol(self, char):
        self.controls.append(char)

    def expect(self, pattern, timeout=None):
        before, after = self.script.pop(0)
        self.before = before
        if after is pexpect.TIMEOUT:
            raise pexpect.TIMEOUT("timed out")
        if after is pexpect.EOF:
            raise pexpect.EOF("eof")
        if isinstance(pattern, list):
            return after if isinstance(after, int) else 0
        self.match = re.search(pattern, after)
        return 0

    def close(self, force=False):
        self.closed = True


def connected_session(script, shell_type=ShellType.NON_ROOT):
    session = ShellSession("test_user_0000", None, shell_type)
    session._process = ScriptedProcess(script)
    session._is_connected = True
    return session


def test_run_collects_output_between_markers():
    session = connected_session([
        ('echo "__RTX_""1_BEGIN__"; ls\r\n__RTX_1_BEGIN__\r\nfoo\r\nbar\r\n', "__RTX_1_END_0__"),
    ])
    result = session.run("ls")
    assert result.error == ErrorKind.NONE
    assert result.output == ["foo", "bar"]


def test_nonzero_exit_is_command_failed():
    session = connected_session([("__RTX_1_BEGIN__\r\nls: nope\r\n", "__RTX_1_END_1__")])
    result = session.run("ls /nope")
    assert result.error == ErrorKind.COMMAND_FAILED
    assert result.output == ["ls: nope"]


def test_timeout_returns_partial_output_and_interrupts():
    session = connected_session([
        ("__RTX_1_BEGIN__\r\nfirst\r\nsecond\r\n", pexpect.TIMEOUT),
        ("", "$ "),
    ])
    result = session.run("sleep 100", timeout_ms=50)
    assert result.error == ErrorKind.TIMEOUT
    assert result.output == ["first", "second"]
    assert session._process.controls == ["c"]


def test_late_output_of_interrupted_command_is_ignored():
    session = connected_session([
        ("__RTX_1_BEGIN__\r\n", pexpect.TIMEOUT),
        ("", "$ "),
        ("late\r\n__RTX_1_END_130__\r\n__RTX_2_BEGIN__\r\nfresh\r\n", "__RTX_2_END_0__"),
    ])
    assert session.run("slow", timeout_ms=10).error == ErrorKind.TIMEOUT
    result = session.run("fast")
    assert result.error == ErrorKind.NONE
    assert result.output == ["fresh"]


def test_command_ids_are_per_session():
    first = connected_session([("__RTX_1_BEGIN__\r\n", "__RTX_1_END_0__")])
    second = connected_session([("__RTX_1_BEGIN__\r\n", "__RTX_1_END_0__")])
    first.run("true")
    second.run("true")
    assert "1_BEGIN" in first._process.sent[0]
    assert "1_BEGIN" in second._process.sent[0]


def test_multiple_commands_share_one_frame():
    session = connected_session([("__RTX_1_BEGIN__\r\n", "__RTX_1_END_0__")])
    session.run(["cd /data", "ls"])
    assert len(session._process.sent) == 1
    assert "cd /data; ls" in session._process.sent[0]


def test_eof_marks_session_dead():
    session = connected_session([("__RTX_1_BEGIN__\r\n", pexpect.EOF)])
    result = session.run("reboot")
    assert result.error == ErrorKind.COMMAND_FAILED
    assert result.output[-1] == "Shell connection lost."
    assert not session.is_alive()


def test_send_does_not_wait():
    session = connected_session([])
    session.send("reboot")
    assert session._process.sent == ["reboot"]


def test_close_waits_for_sent_command_before_exit():
    session = connected_session([], ShellType.ROOT)
    session.send("reboot")
    process = session._process
    sent_at_sleep = []

    def sleep(seconds):
        sent_at_sleep.append((seconds, list(process.sent)))

    with mock.patch("appmover.shell.time.sleep", side_effect=sleep):
        session.close()
    first_wait, sent_before = sent_at_sleep[0]
    assert first_wait > 1
    assert sent_before == ["reboot"]
    assert process.sent == ["reboot", "exit", "exit"]
    assert process.closed


def test_close_without_send_does_not_wait():
    session = connected_session([])
    with mock.patch("appmover.shell.time.sleep") as sleep:
        session.close()
    assert [c.args[0] for c in sleep.call_args_list] == [0.1]


def test_close_is_idempotent():
    session = connected_session([])
    session.close()
    session.close()
    assert not session.is_alive()


class TestEscalation:
    def _session(self, script):
        session = ShellSession("test_root_0000", None, ShellType.ROOT)
        session._process = ScriptedProcess(script)
        return session

    def test_denied(self):
        session = self._session([("", 1)])
        with pytest.raises(ChannelError) as exc:
            session._escalate()
        assert exc.value.kind == ErrorKind.ROOT_DENIED

    def test_su_missing(self):
        session = self._session([("", 2)])
        with pytest.raises(ChannelError) as exc:
            session._escalate()
        assert exc.value.kind == ErrorKind.NO_ROOT_ACCESS

    def test_granted(self):
        session = self._session([("", 0), ("", "uid=0(root)"), ("", "# ")])
        session._escalate()
        assert session._process.sent == ["su", "id"]


def test_channel_open_raises_on_failure():
    channel = CommandChannel(device_serial=None)
    error = ChannelError(ErrorKind.NO_ROOT_ACCESS, "su not found")
    with mock.patch.object(ShellSession, "connect", side_effect=error):
        with pytest.raises(ChannelError) as exc:
            channel.open(privileged=True)
    assert exc.value.kind == ErrorKind.NO_ROOT_ACCESS


def test_channel_session_closes_on_exit():
    channel = CommandChannel(device_serial="emulator-5554")
    with mock.patch.object(ShellSession, "connect"), \
            mock.patch.object(ShellSession, "close") as close:
        with channel.session(privileged=False) as session:
            assert session.shell_type == ShellType.NON_ROOT
            assert session.shell_id.startswith("emulator_user_")
    close.assert_called_once()


def test_channel_run_and_status():
    session = connected_session([("__RTX_1_BEGIN__\r\nok\r\n", "__RTX_1_END_0__")])
    result = CommandChannel(device_serial=None).run(session, "echo ok")
    assert result.output == ["ok"]
    status = session.get_status()
    assert status["device"] == "local"
    assert status["commands_run"] == 1
    assert status["connected"] is True
