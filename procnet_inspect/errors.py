from __future__ import annotations
from typing import Sequence


class InspectError(Exception):
    """Base class for errors raised by procnet_inspect."""


class MalformedTable(InspectError):
    """A kernel socket table could not be parsed; the whole read is rejected."""

    def __init__(self, source: str, line: str, reason: str):
        self.source = source
        self.line = line
        self.reason = reason
        super().__init__(f"malformed table {source or '<text>'}: {reason} (line {line!r})")


class RowParseError(InspectError):
    """One line of sampler output could not be turned into a row."""

    def __init__(self, column: str, line: str, reason: str = ""):
        self.column = column
        self.line = line
        self.reason = reason
        msg = f"cannot parse column {column}"
        if reason:
            msg += f": {reason}"
        super().__init__(f"{msg} (row {line!r})")


class InvalidFilter(InspectError, ValueError):
    """A filter option has a value that can never match anything sensible."""


class ConflictingFilter(InvalidFilter):
    def __init__(self, options: Sequence[str], detail: str = ""):
        self.options = tuple(options)
        msg = "conflicting filter options: " + ", ".join(self.options)
        if detail:
            msg += f" ({detail})"
        super().__init__(msg)


class StreamError(InspectError):
    """The sampler stream failed after it was started."""


class StreamStartError(StreamError):
    """The sampler could not be launched or died before the first row."""


class ConfigError(InspectError):
    """A config file could not be read or holds a value of the wrong type."""
