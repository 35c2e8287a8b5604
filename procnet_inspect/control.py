from __future__ import annotations
import logging
import signal
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Optional, Union

import psutil

from .models import ResolvedSocket

log = logging.getLogger(__name__)

Target = Union[int, ResolvedSocket]


class KillOutcome(str, Enum):
    SIGNALED = "signaled"
    NOT_FOUND = "not_found"
    PERMISSION_DENIED = "permission_denied"


@dataclass(frozen=True)
class KillResult:
    pid: int
    program: Optional[str]
    outcome: KillOutcome
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.outcome is KillOutcome.SIGNALED

    def to_dict(self) -> dict:
        return {"pid": self.pid, "program": self.program,
                "outcome": self.outcome.value, "detail": self.detail}


def _collect(targets: Iterable[Target]) -> Dict[int, Optional[str]]:
    pids: Dict[int, Optional[str]] = {}
    for t in targets:
        if isinstance(t, ResolvedSocket):
            if t.pid is None:
                continue
            if pids.get(t.pid) is None:
                pids[t.pid] = t.program
        else:
            pids.setdefault(int(t), None)
    return pids


def send_signal(pid: int, sig: int = signal.SIGTERM, program: Optional[str] = None) -> KillResult:
    # 0 and negative pids would address process groups
    if pid <= 0:
        return KillResult(pid, program, KillOutcome.NOT_FOUND, f"invalid pid {pid}")
    try:
        proc = psutil.Process(pid)
        if program is None:
            try:
                program = proc.name()
            except psutil.Error:
                pass
        proc.send_signal(sig)
    except psutil.NoSuchProcess as err:
        return KillResult(pid, program, KillOutcome.NOT_FOUND, str(err))
    except psutil.AccessDenied as err:
        return KillResult(pid, program, KillOutcome.PERMISSION_DENIED, str(err))
    except ValueError as err:
        return KillResult(pid, program, KillOutcome.NOT_FOUND, str(err))
    return KillResult(pid, program, KillOutcome.SIGNALED, signal.Signals(sig).name)


def kill(targets: Iterable[Target], sig: int = signal.SIGTERM) -> List[KillResult]:
    """Signal every distinct owning pid once, in ascending pid order.

    Sockets without an owner are skipped. Each pid gets its own result; one
    failure does not stop the others.
    """
    results = []
    for pid, program in sorted(_collect(targets).items()):
        res = send_signal(pid, sig, program)
        if res.ok:
            log.info("sent %s to %d (%s)", res.detail, pid, program or "?")
        else:
            log.warning("could not signal %d: %s", pid, res.detail)
        results.append(res)
    return results
