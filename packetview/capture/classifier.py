"""tcpdump text line -> Packet.

Accepted shapes (tcpdump -n -l -t -q -e and friends):

    IP 192.168.1.1.80 > 192.168.1.2.54321: Flags [S], seq 0, win 65535, length 0
    IP 10.0.0.1.53 > 192.168.1.1.54321: UDP, length 1024
    IP 192.168.1.1 > 192.168.1.2: ICMP echo request, id 12345, seq 0, length 64
    aa:bb:cc:dd:ee:ff > 11:22:33:44:55:66, ethertype IPv4 (0x0800), length 74: IP ...
    e4:c7:67:60:ed:57 > 00:1b:21:95:54:d1, IPv4, length 1466: 1.2.3.4.443 > 5.6.7.8.54980: tcp 1400

Anything else (headers, ARP, IPv6, summaries) classifies as None.
"""
from __future__ import annotations
import re
from typing import Optional

from ..config import PROTOCOL_PORTS
from ..models import Packet, Protocol, now_ms
from ..utils.net import MAX_PORT, is_ipv4

MAC_PAIR_RE = re.compile(r"^(?P<src>[a-fA-F0-9:]{17})\s*>\s*(?P<dst>[a-fA-F0-9:]{17}),")
# 'ethertype IPv4 (0x0800), length 74: <segment>' or 'IPv4, length 1466: <segment>'
IPV4_MARKER_RE = re.compile(r"\bIPv4\b[^:]*:\s*")
IP_MARKER = "IP "
ADDR_RE = re.compile(
    r"(?P<src>\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3})\.?(?P<sport>\d*)\s*>\s*"
    r"(?P<dst>\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3})\.?(?P<dport>\d*):")
LENGTH_RE = re.compile(r"\blength\s+(?P<n>\d+)")
QUIET_TCP_RE = re.compile(r"\btcp\s+(?P<n>\d+)")
UNSPECIFIED = "0.0.0.0"


def split_link_layer(line: str) -> tuple[Optional[tuple[str, str]], Optional[str]]:
    """Return ((src_mac, dst_mac), network_segment) for '-e' lines.

    (None, line) when there is no MAC prefix; (macs, None) when the prefix is
    there but no network-layer marker follows it.
    """
    m = MAC_PAIR_RE.match(line)
    if not m:
        return None, line
    macs = (m.group("src").lower(), m.group("dst").lower())
    rest = line[m.end():]
    v4 = IPV4_MARKER_RE.search(rest)
    if v4:
        return macs, rest[v4.end():]
    idx = rest.find(IP_MARKER)
    if idx != -1:
        return macs, rest[idx:]
    return macs, None


def _size(segment: str, tcp: bool) -> int:
    m = LENGTH_RE.search(segment)
    if not m and tcp:
        m = QUIET_TCP_RE.search(segment)
    return int(m.group("n")) if m else 0


def _transport(tail: str) -> Protocol:
    if "UDP" in tail:
        return Protocol.UDP
    if "ICMP" in tail:
        return Protocol.ICMP
    if "Flags" in tail:
        return Protocol.TCP
    # unknown transports are counted as TCP
    return Protocol.TCP


def _refine(proto: Protocol, sport: int, dport: int, tail: str) -> Protocol:
    dns = PROTOCOL_PORTS["DNS"]
    if sport == dns or dport == dns:
        return Protocol.DNS
    if proto is not Protocol.TCP:
        return proto
    handshake_only = "seq" not in tail and "ack" not in tail
    if sport == PROTOCOL_PORTS["HTTP"] and handshake_only:
        return Protocol.HTTP
    if sport == PROTOCOL_PORTS["HTTPS"] and handshake_only:
        return Protocol.HTTPS
    if sport == PROTOCOL_PORTS["SSH"]:
        return Protocol.SSH
    return proto


def _classify(line: str, interface: Optional[str]) -> Optional[Packet]:
    if not line or not line.strip():
        return None
    line = line.strip()

    macs, segment = split_link_layer(line)
    if segment is None:
        return None

    m = ADDR_RE.search(segment)
    if not m:
        return None
    src, dst = m.group("src"), m.group("dst")
    if src == UNSPECIFIED or dst == UNSPECIFIED:
        return None
    if not (is_ipv4(src) and is_ipv4(dst)):
        return None
    sport = int(m.group("sport") or 0)
    dport = int(m.group("dport") or 0)
    if sport > MAX_PORT or dport > MAX_PORT:
        return None

    tail = segment[m.end():]
    proto = _transport(tail)
    if proto is Protocol.ICMP:
        sport = dport = 0
    size = _size(tail, proto is Protocol.TCP)
    proto = _refine(proto, sport, dport, tail)

    pkt = Packet(
        timestamp=now_ms(),
        source_ip=src, dest_ip=dst,
        source_port=sport, dest_port=dport,
        protocol=proto, size=size,
        interface=interface,
    )
    if macs:
        pkt.source_mac, pkt.dest_mac = macs
        pkt.info = f"MAC: {macs[0]} -> {macs[1]}"
    return pkt


def classify(line: str, interface: Optional[str] = None) -> Optional[Packet]:
    """Classify one capture line; never raises."""
    try:
        return _classify(line, interface)
    except Exception:
        return None
