from __future__ import annotations
import threading
import time
from typing import List, Optional

from .models import ResolvedSocket
from .top.stream import Stream


class SocketState:
    """Latest collector output shared with the web layer; read and write under `lock`."""

    def __init__(self):
        self.lock = threading.Lock()
        self.sockets: List[ResolvedSocket] = []
        self.updated_at: float = 0.0
        self.last_error: Optional[str] = None
        self.stream: Optional[Stream] = None
        self.stream_error: Optional[str] = None

    def publish(self, sockets: List[ResolvedSocket]) -> None:
        with self.lock:
            self.sockets = sockets
            self.updated_at = time.time()
            self.last_error = None

    def fail(self, err: Exception) -> None:
        with self.lock:
            self.last_error = str(err)

    def snapshot(self) -> List[ResolvedSocket]:
        with self.lock:
            return list(self.sockets)

    def poll_stream(self) -> Optional[str]:
        """Fatal top stream error, kept once it has been taken off the stream."""
        stream = self.stream
        err = stream.error() if stream is not None else None
        with self.lock:
            if err is not None:
                self.stream_error = str(err)
            return self.stream_error
