from __future__ import annotations
import argparse
import logging
import signal
import subprocess
import sys
import threading
from typing import List, Optional

from .collectors import SocketResolver, collector_loop
from .config import CFG, init_cfg_from_args
from .control import kill
from .errors import InspectError, StreamError
from .filters import Filter
from .models import ResolvedSocket, SampleRow
from .state import SocketState
from .top import Stream, TopConfig, get as top_get
from .web import create_app

SS_HEADER = ("PROTOCOL", "PROGRAM", "PID", "STATE", "LOCAL", "REMOTE", "USER", "INODE")
PS_HEADER = ("PID", "USER", "S", "%CPU", "%MEM", "VIRT", "RES", "SHR", "TIME+", "COMMAND")


def _add_filter_args(ap: argparse.ArgumentParser, sockets: bool = True):
    ap.add_argument('-s', '--program', type=str, default=None,
                    help="program name suffix, or /regex/ (/regex/i ignores case)")
    ap.add_argument('--pid', type=int, default=None)
    ap.add_argument('-t', '--top', dest='limit', type=int, default=None, help='limit the number of results')
    if sockets:
        ap.add_argument('-c', '--protocol', choices=('tcp', 'tcp6', 'all'), default='all')
        ap.add_argument('-l', '--local-port', type=int, default=None)
        ap.add_argument('-r', '--remote-port', type=int, default=None)


def parse_args(argv: Optional[List[str]] = None):
    ap = argparse.ArgumentParser(description='Linux TCP socket to process inspector')
    ap.add_argument('--config', type=str, default=None, help='YAML or JSON config file')
    ap.add_argument('--proc-root', type=str, default=None)
    ap.add_argument('--top-exec', type=str, default=None, help='path of the top binary')
    ap.add_argument('--log-level', type=str, default=None)
    sub = ap.add_subparsers(dest='cmd', required=True)

    ss = sub.add_parser('ss', help="inspect /proc/net/tcp,tcp6 with owning processes")
    _add_filter_args(ss)
    ss.add_argument('--kill', action='store_true', help='send SIGTERM to the owners of the listed sockets')

    ps = sub.add_parser('ps', help='sample processes through top')
    _add_filter_args(ps, sockets=False)
    ps.add_argument('-w', '--watch', action='store_true', help='keep sampling until interrupted')
    ps.add_argument('-d', '--interval', type=float, default=None, help='seconds between samples')
    ps.add_argument('-n', '--iterations', type=int, default=None, help='stop after n samples')

    kp = sub.add_parser('kill', help='signal processes by pid or by the sockets they own')
    kp.add_argument('pids', type=int, nargs='*')
    _add_filter_args(kp)
    kp.add_argument('--signal', type=str, default='TERM')

    sv = sub.add_parser('serve', help='serve the JSON API')
    sv.add_argument('--host', type=str, default=None)
    sv.add_argument('--port', type=int, default=None)
    sv.add_argument('--collect-interval', type=float, default=None)
    sv.add_argument('--with-top', action='store_true', help='keep a top stream running for /api/processes')
    return ap.parse_args(argv)


def _endpoint(ip: str, port: int) -> str:
    return f"[{ip}]:{port}" if ":" in ip else f"{ip}:{port}"


def format_sockets(sockets: List[ResolvedSocket]) -> str:
    lines = ["\t".join(SS_HEADER)]
    for rs in sockets:
        s = rs.socket
        lines.append("\t".join((
            s.protocol.value, rs.program or "-", str(rs.pid) if rs.pid is not None else "-",
            s.state.value, _endpoint(s.local_ip, s.local_port), _endpoint(s.remote_ip, s.remote_port),
            rs.user, str(s.inode),
        )))
    return "\n".join(lines)


def format_rows(rows: List[SampleRow]) -> str:
    lines = ["\t".join(PS_HEADER)]
    for r in rows:
        lines.append("\t".join((
            str(r.pid), r.user, r.state, f"{r.cpu_percent:.1f}", f"{r.mem_percent:.1f}",
            r.virt_human, r.res_human, r.shr_human, r.cpu_time, r.command,
        )))
    return "\n".join(lines)


def parse_signal(name: str) -> signal.Signals:
    name = name.strip().upper()
    if name.isdigit():
        return signal.Signals(int(name))
    if not name.startswith("SIG"):
        name = "SIG" + name
    return signal.Signals[name]


def cmd_ss(cfg: CFG, args) -> int:
    flt = Filter.from_args(args)
    resolver = SocketResolver(cfg.proc_root)
    sockets = flt.apply(resolver.resolve(flt.protocols))
    print(format_sockets(sockets))
    if args.kill:
        for res in kill(sockets):
            print(f"[*] {res.pid}\t{res.program or '-'}\t{res.outcome.value}\t{res.detail}")
    return 0


def cmd_kill(cfg: CFG, args) -> int:
    try:
        sig = parse_signal(args.signal)
    except (KeyError, ValueError):
        print(f"[error] unknown signal {args.signal!r}", file=sys.stderr)
        return 2
    targets: list = list(args.pids)
    flt = Filter.from_args(args)
    if flt.program_match is not None or flt.pid or flt.local_port or flt.remote_port:
        targets += flt.apply(SocketResolver(cfg.proc_root).resolve(flt.protocols))
    if not targets:
        print("[warn] nothing to signal")
        return 1
    results = kill(targets, sig)
    for res in results:
        print(f"{res.pid}\t{res.program or '-'}\t{res.outcome.value}\t{res.detail}")
    return 0 if all(r.ok for r in results) else 1


def _print_latest(stream: Stream, flt: Filter):
    rows = sorted(stream.latest().values(), key=lambda r: r.pid)
    print(format_rows(flt.apply(rows)), flush=True)


def cmd_ps(cfg: CFG, args) -> int:
    flt = Filter.from_args(args)
    if not args.watch:
        try:
            rows = top_get(cfg.top_exec, pid=flt.pid)
        except (subprocess.SubprocessError, OSError) as err:
            raise StreamError(f"{cfg.top_exec!r} failed: {err}") from err
        print(format_rows(flt.apply(rows)))
        return 0

    tcfg = TopConfig(exec_path=cfg.top_exec, limit=cfg.top_limit, interval=cfg.top_interval, pid=flt.pid)
    with Stream(tcfg) as stream:
        if tcfg.limit > 0:
            stream.wait()
        else:
            try:
                while True:
                    _print_latest(stream, flt)
                    err = stream.error(timeout=cfg.top_interval or 3.0)
                    if err is not None:
                        raise err
                    print()
            except KeyboardInterrupt:
                print("[*] interrupted")
                return 0
    err = stream.error()
    if err is not None:
        raise err
    _print_latest(stream, flt)
    return 0


def cmd_serve(cfg: CFG, args) -> int:
    state = SocketState()
    stop = threading.Event()
    t = threading.Thread(target=collector_loop, args=(cfg, state, cfg.collect_interval, stop),
                         name="collector", daemon=True)
    t.start()
    if args.with_top:
        tcfg = TopConfig(exec_path=cfg.top_exec, interval=cfg.top_interval)
        state.stream = Stream(tcfg).start(timeout=10.0)

    app = create_app(cfg, state)
    print(f"[*] Serving on http://{cfg.host}:{cfg.port}")
    try:
        app.run(host=cfg.host, port=cfg.port, debug=False, use_reloader=False)
    finally:
        stop.set()
        if state.stream is not None:
            state.stream.stop()
    return 0


COMMANDS = {"ss": cmd_ss, "ps": cmd_ps, "kill": cmd_kill, "serve": cmd_serve}


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    try:
        cfg = init_cfg_from_args(args)
        logging.basicConfig(level=getattr(logging, cfg.log_level.upper(), logging.WARNING),
                            format="%(levelname)s %(name)s: %(message)s")
        return COMMANDS[args.cmd](cfg, args)
    except InspectError as err:
        print(f"[error] {err}", file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())
