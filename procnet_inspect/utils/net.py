from __future__ import annotations
import re, socket, struct
from typing import Tuple

_HEX_RE = re.compile(r"[0-9A-Fa-f]+")
_DEC_RE = re.compile(r"[0-9]+")

def parse_hex(s: str) -> int:
    if not _HEX_RE.fullmatch(s):
        raise ValueError(f"not a hex number: {s!r}")
    return int(s, 16)

def parse_dec(s: str) -> int:
    # int() alone would take "24_001" or " 7"
    if not _DEC_RE.fullmatch(s):
        raise ValueError(f"not a decimal number: {s!r}")
    return int(s, 10)

# /proc/net/tcp* prints addresses as host-order (little endian) 32-bit words.

def ipv4_from_dword(dw: int) -> str:
    return socket.inet_ntoa(struct.pack('<I', dw & 0xFFFFFFFF))

def ipv6_from_bytes(b: bytes) -> str:
    return socket.inet_ntop(socket.AF_INET6, b)

def ipv4_from_hex(h: str) -> str:
    """'0100007F' -> '127.0.0.1'"""
    if len(h) != 8:
        raise ValueError(f"ipv4 address must be 8 hex digits, got {h!r}")
    return ipv4_from_dword(parse_hex(h))

def ipv6_from_hex(h: str) -> str:
    """'00000000000000000000000001000000' -> '::1'"""
    if len(h) != 32:
        raise ValueError(f"ipv6 address must be 32 hex digits, got {h!r}")
    words = [parse_hex(h[i:i + 8]) for i in range(0, 32, 8)]
    return ipv6_from_bytes(struct.pack('<4I', *words))

def split_hex_endpoint(s: str, ipv6: bool = False) -> Tuple[str, int]:
    """Decode 'ADDR:PORT' as found in /proc/net/tcp{,6}."""
    host, sep, port = s.partition(':')
    if not sep or len(port) != 4:
        raise ValueError(f"cannot parse endpoint {s!r}")
    ip = ipv6_from_hex(host) if ipv6 else ipv4_from_hex(host)
    return ip, parse_hex(port)
