from __future__ import annotations
import re
from dataclasses import dataclass
from typing import Any, Callable, Iterable, List, Mapping, Optional, Tuple, TypeVar, Union

from .errors import ConflictingFilter, InvalidFilter
from .models import Protocol, ResolvedSocket, SampleRow

T = TypeVar("T", ResolvedSocket, SampleRow)


def program_matcher(pattern: str) -> Callable[[str], bool]:
    """Build a name predicate.

    '/re/' and '/re/i' are regular expressions (searched, the latter case
    insensitive); anything else matches names ending with `pattern`.
    """
    flags = 0
    body = None
    if pattern.startswith('/') and pattern.endswith(('/i', '/I')) and len(pattern) > 3:
        body, flags = pattern[1:-2], re.IGNORECASE
    elif pattern.startswith('/') and pattern.endswith('/') and len(pattern) > 2:
        body = pattern[1:-1]
    if body is None:
        return lambda name: name.endswith(pattern)
    try:
        rx = re.compile(body, flags)
    except re.error as err:
        raise InvalidFilter(f"invalid program pattern {pattern!r}: {err}") from err
    return lambda name: rx.search(name) is not None


@dataclass
class Filter:
    program: str = ""
    program_match: Optional[Callable[[str], bool]] = None
    pid: int = 0
    tcp: bool = False
    tcp6: bool = False
    local_port: int = 0
    remote_port: int = 0
    limit: int = 0

    def __post_init__(self):
        if (self.program or self.program_match is not None) and self.pid > 0:
            raise ConflictingFilter(("program", "pid"),
                                    f"can't filter both by program {self.program!r} and pid {self.pid}")
        if self.local_port > 0 and self.remote_port > 0:
            raise ConflictingFilter(("local_port", "remote_port"),
                                    f"can't query by both local ({self.local_port}) and remote ({self.remote_port}) ports")
        if self.limit < 0:
            raise InvalidFilter(f"limit must be >= 0, got {self.limit}")
        if self.program and self.program_match is None:
            self.program_match = program_matcher(self.program)
        if not self.tcp and not self.tcp6:
            self.tcp = self.tcp6 = True

    @property
    def protocols(self) -> Tuple[Protocol, ...]:
        out = []
        if self.tcp:
            out.append(Protocol.TCP)
        if self.tcp6:
            out.append(Protocol.TCP6)
        return tuple(out)

    def _match_program(self, name: Optional[str]) -> bool:
        if self.program_match is None:
            return True
        return name is not None and self.program_match(name)

    def match_socket(self, rs: ResolvedSocket) -> bool:
        if rs.protocol not in self.protocols:
            return False
        if self.pid > 0 and rs.pid != self.pid:
            return False
        if not self._match_program(rs.program):
            return False
        if self.local_port > 0 and rs.local_port != self.local_port:
            return False
        if self.remote_port > 0 and rs.remote_port != self.remote_port:
            return False
        return True

    def match_row(self, row: SampleRow) -> bool:
        if self.pid > 0 and row.pid != self.pid:
            return False
        return self._match_program(row.command)

    def match(self, item: Union[ResolvedSocket, SampleRow]) -> bool:
        if isinstance(item, ResolvedSocket):
            return self.match_socket(item)
        return self.match_row(item)

    def apply(self, items: Iterable[T]) -> List[T]:
        """Matching items in input order, cut to `limit` when set."""
        out = [it for it in items if self.match(it)]
        if self.limit > 0:
            out = out[:self.limit]
        return out

    @classmethod
    def from_mapping(cls, m: Mapping[str, Any]) -> "Filter":
        """Build from loosely typed options (query strings, config, argparse)."""
        proto = str(m.get("protocol") or "").lower()
        if proto not in ("", "all", "tcp", "tcp6"):
            raise InvalidFilter(f"unknown protocol {proto!r}")
        return cls(
            program=str(m.get("program") or ""),
            pid=_int_opt(m, "pid"),
            tcp=proto == "tcp" or _bool_opt(m, "tcp"),
            tcp6=proto == "tcp6" or _bool_opt(m, "tcp6"),
            local_port=_int_opt(m, "local_port"),
            remote_port=_int_opt(m, "remote_port"),
            limit=_int_opt(m, "limit"),
        )

    @classmethod
    def from_args(cls, args) -> "Filter":
        return cls.from_mapping(vars(args))


def _int_opt(m: Mapping[str, Any], key: str) -> int:
    v = m.get(key)
    if v in (None, ""):
        return 0
    try:
        return int(v)
    except (TypeError, ValueError) as err:
        raise InvalidFilter(f"{key} must be an integer, got {v!r}") from err


def _bool_opt(m: Mapping[str, Any], key: str) -> bool:
    v = m.get(key)
    if isinstance(v, str):
        return v.strip().lower() not in ("", "0", "false", "no", "off")
    return bool(v)
