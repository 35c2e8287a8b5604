from __future__ import annotations
import logging
import os
import re
from typing import Dict, Iterator, List, Optional

from ..models import FdEntry

log = logging.getLogger(__name__)

SOCKET_RE = re.compile(r"^socket:\[(?P<inode>\d+)\]$")


def list_pids(proc_root: str = "/proc") -> List[int]:
    """Numeric entries under the process root, ascending."""
    pids = []
    for name in os.listdir(proc_root):
        if name.isdigit():
            pids.append(int(name))
    pids.sort()
    return pids


def socket_inode(target: str) -> Optional[int]:
    m = SOCKET_RE.match(target.strip())
    return int(m.group("inode")) if m else None


def scan_pid(pid: int, proc_root: str = "/proc") -> List[FdEntry]:
    """Socket descriptors of one process.

    Raises OSError when the fd directory itself can't be listed; a
    descriptor that vanishes while being read is skipped.
    """
    fd_dir = os.path.join(proc_root, str(pid), "fd")
    names = os.listdir(fd_dir)
    out: List[FdEntry] = []
    for name in sorted(names, key=lambda n: int(n) if n.isdigit() else -1):
        if not name.isdigit():
            continue
        try:
            target = os.readlink(os.path.join(fd_dir, name))
        except OSError as err:
            log.debug("readlink %s/%s: %s", fd_dir, name, err)
            continue
        inode = socket_inode(target)
        if inode is not None:
            out.append(FdEntry(pid=pid, fd=int(name), inode=inode))
    return out


class FdInodeIndex:
    """inode -> pid index built from every readable /proc/<pid>/fd.

    Several processes may hold the same socket (fds inherited across fork);
    the first one found, in ascending pid order, owns the inode here. This
    is a best-effort mapping, not an authoritative owner list.
    """

    def __init__(self, entries: List[FdEntry]):
        self.entries = list(entries)
        self._by_inode: Dict[int, int] = {}
        for e in self.entries:
            self._by_inode.setdefault(e.inode, e.pid)

    @classmethod
    def build(cls, proc_root: str = "/proc") -> "FdInodeIndex":
        entries: List[FdEntry] = []
        skipped = 0
        for pid in list_pids(proc_root):
            try:
                entries.extend(scan_pid(pid, proc_root))
            except OSError as err:
                # process exited mid-scan, or its fds are not ours to read
                skipped += 1
                log.debug("skip pid %d: %s", pid, err)
        log.debug("fd index: %d socket fds, %d pids skipped", len(entries), skipped)
        return cls(entries)

    def lookup(self, inode: int) -> Optional[int]:
        return self._by_inode.get(inode)

    def pids(self) -> List[int]:
        return sorted({e.pid for e in self.entries})

    def __contains__(self, inode: object) -> bool:
        return inode in self._by_inode

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[FdEntry]:
        return iter(self.entries)
