from __future__ import annotations
import logging
import threading
from typing import Callable, Optional

from ..models import Connection, ConnKey, Device, NetworkState, Packet, Protocol, now_ms
from .heuristics import detect_device_type, is_special_address

log = logging.getLogger(__name__)

# called once per new device with (device, every other known device)
Placer = Callable[[Device, list[Device]], None]

DEFAULT_TTL_MS = 300_000


class NetworkStateStore:
    """Devices and connections folded from the packet stream.

    Every public method takes ``lock``; callers that must read and serialize a
    snapshot atomically can hold it themselves (it is re-entrant).
    """

    def __init__(self, device_ttl_ms: int = DEFAULT_TTL_MS,
                 connection_ttl_ms: int = DEFAULT_TTL_MS,
                 placer: Optional[Placer] = None):
        self.lock = threading.RLock()
        self.device_ttl_ms = device_ttl_ms
        self.connection_ttl_ms = connection_ttl_ms
        self.placer = placer
        self._devices: dict[str, Device] = {}
        self._connections: dict[ConnKey, Connection] = {}

    def ingest(self, packet: Packet) -> None:
        size = packet.size if isinstance(packet.size, int) and packet.size > 0 else 0
        with self.lock:
            src = self._touch_device(packet.source_ip, packet.source_mac, packet.timestamp)
            dst = self._touch_device(packet.dest_ip, packet.dest_mac, packet.timestamp)
            if src:
                src.traffic_out += size
            if dst:
                dst.traffic_in += size
            self._touch_connection(packet, size)

    def _touch_device(self, ip: str, mac: str, ts: int) -> Optional[Device]:
        if is_special_address(ip):
            log.debug("skipping special address %s", ip)
            return None
        dev = self._devices.get(ip)
        if dev is None:
            dev = Device(ip=ip, type=detect_device_type(ip), mac=mac or "", last_seen=ts)
            others = list(self._devices.values())
            self._devices[ip] = dev
            if self.placer:
                try:
                    self.placer(dev, others)
                except Exception:
                    log.exception("placing new device %s failed", ip)
            log.debug("new device %s mac=%s type=%s at (%.0f, %.0f)",
                      ip, dev.mac or "N/A", dev.type.value, dev.x, dev.y)
        elif mac and not dev.mac:
            dev.mac = mac
            log.debug("mac for %s learned: %s", ip, mac)
        dev.last_seen = max(dev.last_seen, ts)
        return dev

    def _touch_connection(self, packet: Packet, size: int) -> Connection:
        key: ConnKey = (packet.source_ip, packet.source_port,
                        packet.dest_ip, packet.dest_port, packet.protocol)
        conn = self._connections.get(key)
        if conn is None:
            conn = Connection(*key, last_seen=packet.timestamp)
            self._connections[conn.key] = conn
            log.debug("new connection %s", conn.id)
        conn.packets += 1
        conn.traffic += size
        conn.last_seen = max(conn.last_seen, packet.timestamp)
        if conn.packets % 100 == 0:
            log.debug("connection %s: %d packets, %d bytes", conn.id, conn.packets, conn.traffic)
        return conn

    def snapshot(self, now: Optional[int] = None) -> NetworkState:
        """Active records only: age strictly below the TTL."""
        now = now_ms() if now is None else now
        with self.lock:
            devices = [d for d in self._devices.values()
                       if now - d.last_seen < self.device_ttl_ms]
            conns = [c for c in self._connections.values()
                     if now - c.last_seen < self.connection_ttl_ms]
        return NetworkState(devices=devices, connections=conns)

    def clear(self) -> None:
        with self.lock:
            log.info("clearing %d devices and %d connections",
                     len(self._devices), len(self._connections))
            self._devices.clear()
            self._connections.clear()

    def get_device(self, ip: str) -> Optional[Device]:
        with self.lock:
            return self._devices.get(ip)

    def get_connection(self, source_ip: str, source_port: int, dest_ip: str,
                       dest_port: int, protocol: Protocol) -> Optional[Connection]:
        with self.lock:
            return self._connections.get((source_ip, source_port, dest_ip, dest_port, protocol))

    def all_devices(self) -> list[Device]:
        with self.lock:
            return list(self._devices.values())

    def all_connections(self) -> list[Connection]:
        with self.lock:
            return list(self._connections.values())

