from __future__ import annotations
from ..models import DeviceType
from ..utils.net import ipv4_octets

SPECIAL_PREFIXES = ("127.", "255.", "224.", "239.")
SPECIAL_ADDRESSES = {"0.0.0.0", "255.255.255.255"}

def is_special_address(ip: str) -> bool:
    """Loopback, broadcast, multicast and unspecified addresses never become devices."""
    return ip in SPECIAL_ADDRESSES or ip.startswith(SPECIAL_PREFIXES)

def is_private(ip: str) -> bool:
    o = ipv4_octets(ip)
    if not o:
        return False
    if o[0] == 10: return True
    if o[0] == 172 and 16 <= o[1] <= 31: return True
    if o[0] == 192 and o[1] == 168: return True
    return False

def detect_device_type(ip: str) -> DeviceType:
    o = ipv4_octets(ip)
    if not o or is_special_address(ip):
        return DeviceType.UNKNOWN
    if o[3] == 1 and is_private(ip):
        return DeviceType.GATEWAY
    return DeviceType.HOST
