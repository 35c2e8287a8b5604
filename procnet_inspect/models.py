from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class Protocol(str, Enum):
    TCP = "tcp"
    TCP6 = "tcp6"

    def __str__(self) -> str:
        return self.value


class TcpState(str, Enum):
    ESTABLISHED = "ESTABLISHED"
    SYN_SENT = "SYN_SENT"
    SYN_RECV = "SYN_RECV"
    FIN_WAIT1 = "FIN_WAIT1"
    FIN_WAIT2 = "FIN_WAIT2"
    TIME_WAIT = "TIME_WAIT"
    CLOSE = "CLOSE"
    CLOSE_WAIT = "CLOSE_WAIT"
    LAST_ACK = "LAST_ACK"
    LISTEN = "LISTEN"
    CLOSING = "CLOSING"
    UNKNOWN = "UNKNOWN"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class SocketRecord:
    protocol: Protocol
    local_ip: str
    local_port: int
    remote_ip: str
    remote_port: int
    state: TcpState
    inode: int
    uid: int
    tx_queue: int = 0
    rx_queue: int = 0


@dataclass(frozen=True)
class FdEntry:
    pid: int
    fd: int
    inode: int


@dataclass(frozen=True)
class ResolvedSocket:
    socket: SocketRecord
    pid: Optional[int] = None       # None: no readable fd references the inode
    program: Optional[str] = None
    user: str = ""

    @property
    def protocol(self) -> Protocol:
        return self.socket.protocol

    @property
    def local_port(self) -> int:
        return self.socket.local_port

    @property
    def remote_port(self) -> int:
        return self.socket.remote_port

    @property
    def state(self) -> TcpState:
        return self.socket.state

    @property
    def inode(self) -> int:
        return self.socket.inode

    def to_dict(self) -> dict:
        s = self.socket
        return {
            "protocol": s.protocol.value,
            "program": self.program,
            "pid": self.pid,
            "state": s.state.value,
            "local_ip": s.local_ip,
            "local_port": s.local_port,
            "remote_ip": s.remote_ip,
            "remote_port": s.remote_port,
            "inode": s.inode,
            "uid": s.uid,
            "user": self.user,
        }


@dataclass(frozen=True)
class SampleRow:
    """One process line of `top -b` output."""
    pid: int
    user: str
    priority: str
    nice: str
    virt: str
    virt_bytes: int
    virt_human: str
    res: str
    res_bytes: int
    res_human: str
    shr: str
    shr_bytes: int
    shr_human: str
    state: str
    status: str
    cpu_percent: float
    mem_percent: float
    cpu_time: str
    command: str

    def to_dict(self) -> dict:
        return {
            "pid": self.pid,
            "user": self.user,
            "priority": self.priority,
            "nice": self.nice,
            "virt": self.virt_human,
            "virt_bytes": self.virt_bytes,
            "res": self.res_human,
            "res_bytes": self.res_bytes,
            "shr": self.shr_human,
            "shr_bytes": self.shr_bytes,
            "status": self.status,
            "cpu_percent": self.cpu_percent,
            "mem_percent": self.mem_percent,
            "cpu_time": self.cpu_time,
            "command": self.command,
        }
