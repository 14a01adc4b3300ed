from __future__ import annotations
from typing import Optional

MAX_PORT = 0xFFFF


def ipv4_octets(ip: str) -> Optional[tuple[int, int, int, int]]:
    """'192.168.1.7' -> (192, 168, 1, 7); None if not a dotted quad."""
    parts = (ip or "").split(".")
    if len(parts) != 4:
        return None
    try:
        octets = tuple(int(p) for p in parts)
    except ValueError:
        return None
    if any(o < 0 or o > 255 for o in octets):
        return None
    return octets  # type: ignore[return-value]


def is_ipv4(ip: str) -> bool:
    return ipv4_octets(ip) is not None

