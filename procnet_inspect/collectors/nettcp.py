"""Reader for the kernel TCP socket tables (/proc/net/tcp, /proc/net/tcp6)."""
from __future__ import annotations
import os
from typing import List, Optional

from ..errors import MalformedTable
from ..models import Protocol, SocketRecord, TcpState
from ..utils.net import parse_dec, parse_hex, split_hex_endpoint

# sl local_address rem_address st tx_queue:rx_queue tr:tm->when retrnsmt uid timeout inode
IDX_SL, IDX_LOCAL, IDX_REMOTE, IDX_ST, IDX_QUEUE, IDX_TIMER, IDX_RETRNSMT, IDX_UID, IDX_TIMEOUT, IDX_INODE = range(10)
MIN_COLUMNS = IDX_INODE + 1

# include/net/tcp_states.h
TCP_STATES = {
    0x01: TcpState.ESTABLISHED,
    0x02: TcpState.SYN_SENT,
    0x03: TcpState.SYN_RECV,
    0x04: TcpState.FIN_WAIT1,
    0x05: TcpState.FIN_WAIT2,
    0x06: TcpState.TIME_WAIT,
    0x07: TcpState.CLOSE,
    0x08: TcpState.CLOSE_WAIT,
    0x09: TcpState.LAST_ACK,
    0x0A: TcpState.LISTEN,
    0x0B: TcpState.CLOSING,
}


def table_path(protocol: Protocol, pid: Optional[int] = None, proc_root: str = "/proc") -> str:
    if pid:
        return os.path.join(proc_root, str(pid), "net", protocol.value)
    return os.path.join(proc_root, "net", protocol.value)


def read_table(protocol: Protocol, pid: Optional[int] = None, proc_root: str = "/proc") -> List[SocketRecord]:
    """Read one snapshot of the socket table for `protocol`.

    With `pid` set, the table is read through /proc/<pid>/net, i.e. as seen
    from that process' network namespace.
    """
    protocol = Protocol(protocol)
    path = table_path(protocol, pid, proc_root)
    with open(path, "r", encoding="ascii", errors="replace") as f:
        text = f.read()
    return parse_table(text, protocol, source=path)


def parse_table(text: str, protocol: Protocol, source: str = "") -> List[SocketRecord]:
    protocol = Protocol(protocol)
    records: List[SocketRecord] = []
    header_seen = False
    for line in text.splitlines():
        fs = line.split()
        if not fs:
            continue
        if not header_seen:
            if fs[0] != "sl":
                raise MalformedTable(source, line, "first line must be the column header")
            header_seen = True
            continue
        if len(fs) < MIN_COLUMNS:
            raise MalformedTable(source, line, f"expected at least {MIN_COLUMNS} columns, got {len(fs)}")
        records.append(_parse_line(fs, protocol, source, line))
    return records


def _parse_line(fs: List[str], protocol: Protocol, source: str, line: str) -> SocketRecord:
    ipv6 = protocol is Protocol.TCP6
    try:
        parse_dec(fs[IDX_SL].rstrip(":"))
        lip, lport = split_hex_endpoint(fs[IDX_LOCAL], ipv6=ipv6)
        rip, rport = split_hex_endpoint(fs[IDX_REMOTE], ipv6=ipv6)
        st = parse_hex(fs[IDX_ST])
        tx, _, rx = fs[IDX_QUEUE].partition(":")
        tx_queue = parse_hex(tx)
        rx_queue = parse_hex(rx) if rx else 0
        uid = parse_dec(fs[IDX_UID])
        parse_dec(fs[IDX_TIMEOUT])
        inode = parse_dec(fs[IDX_INODE])
    except ValueError as err:
        raise MalformedTable(source, line, str(err)) from err
    return SocketRecord(
        protocol=protocol,
        local_ip=lip,
        local_port=lport,
        remote_ip=rip,
        remote_port=rport,
        state=TCP_STATES.get(st, TcpState.UNKNOWN),
        inode=inode,
        uid=uid,
        tx_queue=tx_queue,
        rx_queue=rx_queue,
    )
