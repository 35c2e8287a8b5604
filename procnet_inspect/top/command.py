from __future__ import annotations
import os
import subprocess
from dataclasses import dataclass
from typing import List

from ..errors import StreamStartError
from ..models import SampleRow
from .parse import parse_output

DEFAULT_EXEC_PATH = "/usr/bin/top"


@dataclass
class TopConfig:
    exec_path: str = DEFAULT_EXEC_PATH
    limit: int = 0             # -n, iterations before top exits; 0 runs until killed
    interval: float = 0.0      # -d, seconds between iterations; 0 keeps top's default
    pid: int = 0               # -p, watch a single process

    def flags(self) -> List[str]:
        # batch mode is not optional: interactive output carries highlighting
        # and cursor control the parser can't read
        fs = ["-b"]
        if self.limit > 0:
            fs += ["-n", str(self.limit)]
        if self.interval > 0:
            fs += ["-d", f"{self.interval:.2f}"]
        if self.pid > 0:
            fs += ["-p", str(self.pid)]
        return fs

    def argv(self) -> List[str]:
        return [self.exec_path] + self.flags()

    def check(self) -> None:
        if not self.exec_path or not os.path.isfile(self.exec_path):
            raise StreamStartError(f"{self.exec_path!r} does not exist")
        if not os.access(self.exec_path, os.X_OK):
            raise StreamStartError(f"{self.exec_path!r} is not executable")


def get(exec_path: str = DEFAULT_EXEC_PATH, pid: int = 0, timeout: float = 30.0) -> List[SampleRow]:
    """Run top once (`-b -n 1`) and parse everything it printed."""
    cfg = TopConfig(exec_path=exec_path, limit=1, pid=pid)
    cfg.check()
    proc = subprocess.run(cfg.argv(), stdout=subprocess.PIPE, stderr=subprocess.STDOUT,
                          text=True, timeout=timeout, check=True)
    return parse_output(proc.stdout)
