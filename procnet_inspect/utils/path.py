from __future__ import annotations
import os
from pathlib import Path
from shutil import which
from typing import Optional

PACKAGE_DIR = Path(__file__).parent.parent.resolve()


def to_abs_path(p: Optional[str | os.PathLike]) -> Optional[Path]:
    """Convert p to an absolute path.
    Sequence:
      1) Absolute: expanduser+resolve
      2) Relative to CWD, if it exists there
      3) Relative to the package folder
    """
    if not p:
        return None
    pp = Path(p).expanduser()
    if pp.is_absolute():
        return pp.resolve()
    cwd_path = Path.cwd() / pp
    if cwd_path.exists():
        return cwd_path.resolve()
    return (PACKAGE_DIR / pp).resolve()


def which_exec(p: Optional[str | os.PathLike]) -> Optional[str]:
    """Resolve an executable name or path; bare names are looked up on $PATH."""
    if not p:
        return None
    s = os.fspath(p)
    if os.sep not in s:
        found = which(s)
        if found:
            return found
    # no resolve(): multi-call binaries dispatch on the link name
    return os.path.abspath(os.path.expanduser(s))
