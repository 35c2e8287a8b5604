from __future__ import annotations
import logging
import os
import pwd
from typing import Callable, Dict, Iterable, List, Optional

from ..models import Protocol, ResolvedSocket, SocketRecord
from .fdindex import FdInodeIndex
from .nettcp import read_table

log = logging.getLogger(__name__)

NameLookup = Callable[[int], Optional[str]]


def process_name(pid: int, proc_root: str = "/proc") -> Optional[str]:
    """Program name from /proc/<pid>/comm, else the basename of its exe link."""
    base = os.path.join(proc_root, str(pid))
    try:
        with open(os.path.join(base, "comm"), "r", encoding="utf-8", errors="replace") as f:
            name = f.read().strip()
        if name:
            return name
    except OSError:
        pass
    try:
        return os.path.basename(os.readlink(os.path.join(base, "exe")))
    except OSError:
        return None


def user_name(uid: int) -> str:
    try:
        return pwd.getpwuid(uid).pw_name
    except KeyError:
        return str(uid)


class SocketResolver:
    """Joins socket table snapshots with an FdInodeIndex."""

    def __init__(self, proc_root: str = "/proc", name_lookup: Optional[NameLookup] = None):
        self.proc_root = proc_root
        self.name_lookup = name_lookup or (lambda pid: process_name(pid, proc_root))

    def read(self, protocols: Iterable[Protocol], pid: Optional[int] = None) -> List[SocketRecord]:
        records: List[SocketRecord] = []
        for proto in protocols:
            records.extend(read_table(Protocol(proto), pid=pid, proc_root=self.proc_root))
        return records

    def resolve(self, protocols: Iterable[Protocol], index: Optional[FdInodeIndex] = None,
                pid: Optional[int] = None) -> List[ResolvedSocket]:
        records = self.read(protocols, pid=pid)
        if index is None:
            index = FdInodeIndex.build(self.proc_root)
        return self.attach(records, index)

    def attach(self, records: Iterable[SocketRecord], index: FdInodeIndex) -> List[ResolvedSocket]:
        names: Dict[int, Optional[str]] = {}
        users: Dict[int, str] = {}
        out: List[ResolvedSocket] = []
        unresolved = 0
        for rec in records:
            owner = index.lookup(rec.inode)
            program = None
            if owner is None:
                unresolved += 1
            else:
                if owner not in names:
                    names[owner] = self.name_lookup(owner)
                program = names[owner]
            if rec.uid not in users:
                users[rec.uid] = user_name(rec.uid)
            out.append(ResolvedSocket(socket=rec, pid=owner, program=program, user=users[rec.uid]))
        log.debug("resolved %d sockets, %d without owner", len(out), unresolved)
        return out


def resolve_sockets(protocols: Iterable[Protocol], index: Optional[FdInodeIndex] = None,
                    proc_root: str = "/proc", name_lookup: Optional[NameLookup] = None,
                    pid: Optional[int] = None) -> List[ResolvedSocket]:
    return SocketResolver(proc_root, name_lookup).resolve(protocols, index=index, pid=pid)
