"""Long-running `top -b` sampler on a pseudo-terminal.

Two threads per stream: the producer reads and parses pty lines and appends
them to a FIFO, the consumer drains the FIFO into the pid -> latest row
snapshot. Both share one condition variable; the pty handle has its own
lock because the producer reads it while the close path closes it.
"""
from __future__ import annotations
import errno
import fcntl
import logging
import os
import queue
import signal
import struct
import subprocess
import termios
import threading
from collections import deque
from enum import Enum
from typing import Deque, Dict, Optional

from ..errors import RowParseError, StreamError, StreamStartError
from ..models import SampleRow
from .command import TopConfig
from .parse import HEADERS, parse_row, should_skip

log = logging.getLogger(__name__)

PTY_ROWS, PTY_COLS = 50, 512


class StreamState(Enum):
    CREATED = "created"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"


def _set_winsize(fd: int, rows: int, cols: int) -> None:
    fcntl.ioctl(fd, termios.TIOCSWINSZ, struct.pack("HHHH", rows, cols, 0, 0))


def _signame(num: int) -> str:
    try:
        return signal.Signals(num).name
    except ValueError:
        return str(num)


class Stream:
    # seconds to let the producer drain the pty after the sampler exited
    drain_timeout = 2.0

    def __init__(self, cfg: Optional[TopConfig] = None):
        self.cfg = cfg or TopConfig()
        self._proc: Optional[subprocess.Popen] = None

        self._pty_lock = threading.Lock()
        self._pty = None

        # queue, snapshot and end-of-stream facts
        self._cond = threading.Condition()
        self._queue: Deque[SampleRow] = deque()
        self._snapshot: Dict[int, SampleRow] = {}
        self._producer_done = False
        self._read_error: Optional[OSError] = None
        self._returncode: Optional[int] = None

        # only the first fatal error is ever delivered
        self.errors: "queue.Queue[StreamError]" = queue.Queue(maxsize=1)

        self._state_lock = threading.Lock()
        self._state = StreamState.CREATED
        self._kill_requested = False
        self._ready = threading.Event()

        self._producer: Optional[threading.Thread] = None
        self._consumer: Optional[threading.Thread] = None

    @property
    def state(self) -> StreamState:
        with self._state_lock:
            return self._state

    def _set_state(self, st: StreamState, only_from: Optional[StreamState] = None) -> None:
        with self._state_lock:
            if only_from is None or self._state is only_from:
                self._state = st

    def start(self, timeout: Optional[float] = None) -> "Stream":
        """Launch the sampler and block until the first row is in the snapshot."""
        with self._state_lock:
            if self._state is not StreamState.CREATED:
                raise StreamError(f"stream already {self._state.value}")
            self._state = StreamState.STARTING
        try:
            self.cfg.check()
            master, slave = os.openpty()
            try:
                _set_winsize(slave, PTY_ROWS, PTY_COLS)
                self._proc = subprocess.Popen(
                    self.cfg.argv(), stdin=slave, stdout=slave, stderr=slave,
                    close_fds=True, start_new_session=True,
                )
            except OSError as err:
                os.close(master)
                raise StreamStartError(f"cannot launch {self.cfg.exec_path!r}: {err}") from err
            finally:
                os.close(slave)
        except StreamStartError:
            self._set_state(StreamState.STOPPED)
            raise

        self._pty = os.fdopen(master, "rb")
        log.debug("started %s (pid %d)", " ".join(self.cfg.argv()), self._proc.pid)

        self._producer = threading.Thread(target=self._enqueue, name="top-producer", daemon=True)
        self._consumer = threading.Thread(target=self._dequeue, name="top-consumer", daemon=True)
        self._producer.start()
        self._consumer.start()

        if not self._ready.wait(timeout):
            self.stop()
            raise StreamStartError(f"no rows from {self.cfg.exec_path!r} within {timeout}s")
        with self._cond:
            started = bool(self._snapshot)
        if not started:
            err = self.error()
            self._close(kill=False)
            msg = f"{self.cfg.exec_path!r} exited before printing a process row"
            raise StreamStartError(f"{msg}: {err}" if err else msg)
        return self

    def stop(self) -> None:
        """Kill the sampler and wait for both threads. Idempotent."""
        self._close(kill=True)

    def wait(self) -> None:
        """Let the sampler finish on its own (iteration limit), then join."""
        self._close(kill=False)

    def latest(self) -> Dict[int, SampleRow]:
        with self._cond:
            return dict(self._snapshot)

    def error(self, timeout: Optional[float] = None) -> Optional[StreamError]:
        """The fatal stream error, if any; blocks up to `timeout` seconds when given."""
        try:
            if timeout:
                return self.errors.get(timeout=timeout)
            return self.errors.get_nowait()
        except queue.Empty:
            return None

    def __enter__(self) -> "Stream":
        if self.state is StreamState.CREATED:
            self.start()
        return self

    def __exit__(self, *exc) -> None:
        self.stop()

    def _enqueue(self) -> None:
        read_err: Optional[OSError] = None
        while True:
            with self._pty_lock:
                if self._pty is None or self._pty.closed:
                    break
                try:
                    data = self._pty.readline()
                except OSError as err:
                    # EIO: every slave fd is closed, the sampler is gone
                    if err.errno != errno.EIO:
                        read_err = err
                    break
            if not data:
                break

            line = data.decode("utf-8", errors="replace").strip()
            if not line or should_skip(line):
                continue
            fields = line.split()
            if len(fields) != len(HEADERS):
                log.debug("drop line with %d columns: %r", len(fields), line)
                continue
            try:
                row = parse_row(fields)
            except RowParseError as err:
                log.debug("drop row: %s", err)
                continue

            with self._cond:
                self._queue.append(row)
                self._cond.notify()

        if read_err is not None and self._proc.poll() is None:
            self._proc.kill()
        rc = self._proc.wait()
        with self._cond:
            self._read_error = read_err
            self._returncode = rc
            self._producer_done = True
            self._cond.notify()

    def _dequeue(self) -> None:
        with self._cond:
            while True:
                while not self._queue and not self._producer_done:
                    self._cond.wait()
                if not self._queue:
                    break
                row = self._queue.popleft()
                self._snapshot[row.pid] = row
                if not self._ready.is_set():
                    self._set_state(StreamState.RUNNING, only_from=StreamState.STARTING)
                    self._ready.set()
            err = self._classify_end()

        if err is not None:
            log.warning("top stream: %s", err)
            try:
                self.errors.put_nowait(err)
            except queue.Full:
                pass
        self._ready.set()

    def _classify_end(self) -> Optional[StreamError]:
        with self._state_lock:
            if self._kill_requested:
                return None
        exe = self.cfg.exec_path
        if self._read_error is not None:
            return StreamError(f"reading {exe!r} output failed: {self._read_error}")
        rc = self._returncode
        if rc is None or rc == 0:
            return None
        if rc < 0:
            return StreamError(f"{exe!r} terminated by signal {_signame(-rc)}")
        return StreamError(f"{exe!r} exited with status {rc}")

    def _close(self, kill: bool) -> None:
        with self._state_lock:
            st = self._state
            if st in (StreamState.CREATED, StreamState.STOPPED):
                return
            if st is not StreamState.STOPPING:
                self._state = StreamState.STOPPING
                if kill:
                    self._kill_requested = True
        if st is StreamState.STOPPING:
            # another caller is already tearing down
            self._join()
            return

        if kill and self._proc.poll() is None:
            # the sampler leads its own session; take its children along so
            # none of them keeps the pty slave open
            try:
                os.killpg(self._proc.pid, signal.SIGKILL)
            except ProcessLookupError:
                pass
        self._proc.wait()

        # the producer reads whatever is still buffered in the pty and ends
        # on EIO once the last slave fd is gone
        self._producer.join(self.drain_timeout)
        if self._producer.is_alive():
            # a leftover child of the sampler still holds the slave
            log.debug("pty still open after %ss, killing process group", self.drain_timeout)
            try:
                os.killpg(self._proc.pid, signal.SIGKILL)
            except ProcessLookupError:
                pass
            self._producer.join()
        self._consumer.join()

        with self._pty_lock:
            if not self._pty.closed:
                self._pty.close()
        self._set_state(StreamState.STOPPED)
        log.debug("stream stopped (returncode %s)", self._proc.returncode)

    def _join(self) -> None:
        for t in (self._producer, self._consumer):
            if t is not None and t is not threading.current_thread():
                t.join()
