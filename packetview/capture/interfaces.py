from __future__ import annotations
import socket

import psutil

from ..models import InterfaceInfo


def list_interfaces() -> list[InterfaceInfo]:
    """Host interfaces with their first IPv4 address and link state."""
    try:
        stats = psutil.net_if_stats()
        addrs = psutil.net_if_addrs()
    except (OSError, RuntimeError):
        return []
    out: list[InterfaceInfo] = []
    for name in sorted(set(stats) | set(addrs)):
        ip = next((a.address for a in addrs.get(name, []) if a.family == socket.AF_INET), None)
        st = stats.get(name)
        out.append(InterfaceInfo(name=name, ip=ip, is_up=bool(st and st.isup)))
    return out


def up_interface_names() -> list[str]:
    return [i.name for i in list_interfaces() if i.is_up]
