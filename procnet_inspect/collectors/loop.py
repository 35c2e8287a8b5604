from __future__ import annotations
import logging
import threading
from typing import Optional

from ..config import CFG
from ..errors import MalformedTable
from ..models import Protocol
from ..state import SocketState
from .resolver import SocketResolver

log = logging.getLogger(__name__)


def collect_once(resolver: SocketResolver, state: SocketState) -> int:
    try:
        sockets = resolver.resolve((Protocol.TCP, Protocol.TCP6))
    except (MalformedTable, OSError) as err:
        # keep serving the previous pass
        log.warning("socket collection failed: %s", err)
        state.fail(err)
        return -1
    state.publish(sockets)
    return len(sockets)


def collector_loop(cfg: CFG, state: SocketState, interval: Optional[float] = None,
                   stop_event: Optional[threading.Event] = None):
    if interval is None:
        interval = cfg.collect_interval
    stop_event = stop_event or threading.Event()
    resolver = SocketResolver(cfg.proc_root)
    while not stop_event.is_set():
        n = collect_once(resolver, state)
        if n >= 0:
            log.debug("collected %d sockets", n)
        stop_event.wait(interval)
