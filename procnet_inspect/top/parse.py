"""Parser for `top -b` process lines.

Memory columns carry an optional unit suffix:

  (none) KiB = 1024 bytes
  m      MiB = 1024 KiB
  g      GiB = 1024 MiB
  t      TiB = 1024 GiB
"""
from __future__ import annotations
import re
from typing import List, Sequence, Tuple, Union

import humanize

from ..errors import RowParseError
from ..models import SampleRow
from ..utils.net import parse_dec

HEADERS = ("PID", "USER", "PR", "NI", "VIRT", "RES", "SHR", "S", "%CPU", "%MEM", "TIME+", "COMMAND")

(IDX_PID, IDX_USER, IDX_PR, IDX_NI, IDX_VIRT, IDX_RES, IDX_SHR,
 IDX_S, IDX_CPU, IDX_MEM, IDX_TIME, IDX_COMMAND) = range(len(HEADERS))

# banner lines printed before each iteration's process list
SKIP_PREFIXES = (
    "top -",
    "Tasks: ",
    "Threads: ",
    "%Cpu(s): ",
    "Cpu(s): ",
    "KiB Mem : ",
    "KiB Swap: ",
    "MiB Mem : ",
    "MiB Swap: ",
    "GiB Mem : ",
    "GiB Swap: ",
    "Mem: ",
    "Swap: ",
    "PID ",
)

UNIT_SHIFT = {"m": 20, "g": 30, "t": 40}

# plain non-negative decimals only: no sign, exponent, "_", inf or nan
_NUM_RE = re.compile(r"[0-9]+(?:\.[0-9]*)?|\.[0-9]+")

STATUS = {
    "D": "D (uninterruptible sleep)",
    "R": "R (running)",
    "S": "S (sleeping)",
    "T": "T (stopped by job control signal)",
    "t": "t (stopped by debugger during trace)",
    "Z": "Z (zombie)",
    "I": "I (idle)",
    "X": "X (dead)",
}


def should_skip(line: str) -> bool:
    return line.startswith(SKIP_PREFIXES)


def humanize_bytes(n: int) -> str:
    """SI units, one decimal below 10 ('5.4 GB'), whole numbers above ('54 GB')."""
    scaled = float(n)
    while scaled >= 1000:
        scaled /= 1000
    return humanize.naturalsize(n, format="%.1f" if scaled < 10 else "%.0f")


def parse_number(s: str) -> float:
    if not _NUM_RE.fullmatch(s):
        raise ValueError(f"not a number: {s!r}")
    return float(s)


def parse_memory(s: str) -> Tuple[int, str]:
    """'50.883g' -> (53687091200, '54 GB'). Fractions are truncated before scaling."""
    s = s.strip()
    shift = 10
    if s and s[-1] in UNIT_SHIFT:
        shift = UNIT_SHIFT[s[-1]]
        s = s[:-1]
    bts = int(parse_number(s)) << shift
    return bts, humanize_bytes(bts)


def parse_status(s: str) -> str:
    ns = s.strip()[:1]
    return STATUS.get(ns, f"unknown process {s!r}")


def parse_row(row: Union[str, Sequence[str]]) -> SampleRow:
    """Parse one process line (or its whitespace-split fields)."""
    if isinstance(row, str):
        line = row
        fs = row.split()
    else:
        fs = list(row)
        line = " ".join(fs)
    if len(fs) != len(HEADERS):
        raise RowParseError("*", line, f"expected {len(HEADERS)} columns, got {len(fs)}")

    try:
        pid = parse_dec(fs[IDX_PID])
    except ValueError as err:
        raise RowParseError("PID", line, str(err)) from err

    mem = {}
    for idx in (IDX_VIRT, IDX_RES, IDX_SHR):
        try:
            mem[idx] = parse_memory(fs[idx])
        except ValueError as err:
            raise RowParseError(HEADERS[idx], line, str(err)) from err

    pct = {}
    for idx in (IDX_CPU, IDX_MEM):
        try:
            pct[idx] = parse_number(fs[idx])
        except ValueError as err:
            raise RowParseError(HEADERS[idx], line, str(err)) from err

    return SampleRow(
        pid=pid,
        user=fs[IDX_USER],
        priority=fs[IDX_PR],
        nice=fs[IDX_NI],
        virt=fs[IDX_VIRT],
        virt_bytes=mem[IDX_VIRT][0],
        virt_human=mem[IDX_VIRT][1],
        res=fs[IDX_RES],
        res_bytes=mem[IDX_RES][0],
        res_human=mem[IDX_RES][1],
        shr=fs[IDX_SHR],
        shr_bytes=mem[IDX_SHR][0],
        shr_human=mem[IDX_SHR][1],
        state=fs[IDX_S],
        status=parse_status(fs[IDX_S]),
        cpu_percent=pct[IDX_CPU],
        mem_percent=pct[IDX_MEM],
        cpu_time=fs[IDX_TIME],
        command=fs[IDX_COMMAND],
    )


def parse_output(text: str) -> List[SampleRow]:
    """Parse a complete batch-mode output; any bad process line fails the call."""
    rows: List[SampleRow] = []
    for line in text.splitlines():
        line = line.strip()
        if not line or should_skip(line):
            continue
        rows.append(parse_row(line))
    return rows
