from __future__ import annotations
import json
import logging
from dataclasses import dataclass, fields
from typing import Any, Mapping, Optional

import yaml

from .errors import ConfigError
from .top.command import DEFAULT_EXEC_PATH
from .utils.path import to_abs_path, which_exec

log = logging.getLogger(__name__)


@dataclass
class CFG:
    proc_root: str = "/proc"
    top_exec: str = DEFAULT_EXEC_PATH
    top_interval: float = 0.0       # seconds between top iterations; 0 keeps top's default
    top_limit: int = 0              # top iterations; 0 runs until stopped
    collect_interval: float = 1.0   # seconds between socket resolution passes (serve)
    host: str = "127.0.0.1"
    port: int = 8765
    log_level: str = "WARNING"

    def update(self, data: Mapping[str, Any]) -> "CFG":
        known = {f.name for f in fields(self)}
        for k, v in data.items():
            if k not in known:
                log.debug("ignoring unknown config key %r", k)
                continue
            if v is None:
                continue
            cur = getattr(self, k)
            try:
                setattr(self, k, type(cur)(v))
            except (TypeError, ValueError) as err:
                raise ConfigError(f"config key {k!r}: {err}") from err
        return self


# argparse dest -> CFG field
ARG_FIELDS = {
    "proc_root": "proc_root",
    "top_exec": "top_exec",
    "interval": "top_interval",
    "iterations": "top_limit",
    "collect_interval": "collect_interval",
    "host": "host",
    "port": "port",
    "log_level": "log_level",
}


def load_config(path: Optional[str]) -> CFG:
    """Read a YAML (.yaml/.yml) or JSON config; a missing file yields defaults."""
    cfg = CFG()
    if not path:
        return cfg
    p = to_abs_path(path)
    if not p.exists():
        print(f"[warn] config not found: {p}")
        return cfg
    txt = p.read_text(encoding="utf-8")
    try:
        data = yaml.safe_load(txt) if p.suffix in (".yaml", ".yml") else json.loads(txt)
    except (yaml.YAMLError, json.JSONDecodeError) as err:
        raise ConfigError(f"config {p}: {err}") from err
    if data is None:
        return cfg
    if not isinstance(data, dict):
        raise ConfigError(f"config {p}: expected a mapping at top level")
    return cfg.update(data)


def init_cfg_from_args(args) -> CFG:
    cfg = load_config(getattr(args, "config", None))
    overrides = {}
    for dest, name in ARG_FIELDS.items():
        v = getattr(args, dest, None)
        if v is not None:
            overrides[name] = v
    cfg.update(overrides)
    cfg.top_exec = which_exec(cfg.top_exec) or DEFAULT_EXEC_PATH
    return cfg
