import signal
import subprocess

import psutil
import pytest

from procnet_inspect import control
from procnet_inspect.control import KillOutcome, kill
from procnet_inspect.models import Protocol, ResolvedSocket, SocketRecord, TcpState

NO_SUCH_PID = 2 ** 22 + 12345


def _socket(inode, pid, program=None):
    rec = SocketRecord(Protocol.TCP, "127.0.0.1", 8000 + inode, "0.0.0.0", 0, TcpState.LISTEN, inode, 1000)
    return ResolvedSocket(socket=rec, pid=pid, program=program)


@pytest.fixture
def sleeper():
    p = subprocess.Popen(["sleep", "30"])
    yield p
    if p.poll() is None:
        p.kill()
    p.wait()


def test_kill_live_process(sleeper):
    (res,) = kill([sleeper.pid])
    assert res.outcome is KillOutcome.SIGNALED
    assert res.ok
    assert res.program == "sleep"
    assert sleeper.wait(timeout=10) == -signal.SIGTERM


def test_kill_with_other_signal(sleeper):
    (res,) = kill([sleeper.pid], signal.SIGKILL)
    assert res.detail == "SIGKILL"
    assert sleeper.wait(timeout=10) == -signal.SIGKILL


def test_not_found():
    (res,) = kill([NO_SUCH_PID])
    assert res.outcome is KillOutcome.NOT_FOUND
    assert not res.ok


def test_permission_denied(monkeypatch):
    class Denied:
        def __init__(self, pid):
            self.pid = pid

        def name(self):
            return "init"

        def send_signal(self, sig):
            raise psutil.AccessDenied(self.pid)

    monkeypatch.setattr(control.psutil, "Process", Denied)
    (res,) = kill([1])
    assert res.outcome is KillOutcome.PERMISSION_DENIED
    assert res.program == "init"


def test_sockets_deduplicated_and_sorted(monkeypatch):
    sent = []

    class Recorder:
        def __init__(self, pid):
            if pid == NO_SUCH_PID:
                raise psutil.NoSuchProcess(pid)
            self.pid = pid

        def name(self):
            return "ignored"

        def send_signal(self, sig):
            sent.append(self.pid)

    monkeypatch.setattr(control.psutil, "Process", Recorder)
    targets = [
        _socket(1, 300, "nginx"),
        _socket(2, 100, "sshd"),
        _socket(3, 300, "nginx"),
        _socket(4, None),
        NO_SUCH_PID,
        100,
    ]
    results = kill(targets)
    assert [r.pid for r in results] == [100, 300, NO_SUCH_PID]
    assert [r.outcome for r in results] == [KillOutcome.SIGNALED, KillOutcome.SIGNALED, KillOutcome.NOT_FOUND]
    assert results[1].program == "nginx"
    assert sent == [100, 300]


def test_group_pids_are_rejected_per_pid(monkeypatch):
    looked_up = []

    class Recorder:
        def __init__(self, pid):
            looked_up.append(pid)
            raise psutil.NoSuchProcess(pid)

    monkeypatch.setattr(control.psutil, "Process", Recorder)
    results = kill([NO_SUCH_PID, 0, -5])
    assert [r.pid for r in results] == [-5, 0, NO_SUCH_PID]
    assert all(r.outcome is KillOutcome.NOT_FOUND for r in results)
    assert results[0].detail == "invalid pid -5"
    # 0 and -5 never reach the signal call
    assert looked_up == [NO_SUCH_PID]
