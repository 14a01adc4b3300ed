from __future__ import annotations
import itertools
import logging
import threading
from collections import deque
from typing import Optional

from .capture.interfaces import up_interface_names
from .capture.supervisor import CaptureError, CaptureSupervisor, CommandBuilder
from .config import CFG
from .models import (CaptureFailure, ErrorMessage, Message, NetworkStateMessage, Packet,
                     PacketMessage)
from .topology.layout import LayoutResolver
from .topology.state import NetworkStateStore

log = logging.getLogger(__name__)


class Engine:
    """Wires capture -> state store -> layout and keeps a short event backlog for pollers."""

    def __init__(self, cfg: CFG, command: Optional[CommandBuilder] = None):
        self.cfg = cfg
        self.layout = LayoutResolver(cfg.canvas_width, cfg.canvas_height)
        self.store = NetworkStateStore(cfg.device_ttl_ms, cfg.connection_ttl_ms,
                                       placer=self.layout.place_new_device)
        self.supervisor = CaptureSupervisor(on_packet=self.on_packet, on_error=self.on_error,
                                            command=command, tcpdump_path=cfg.tcpdump_path)
        self._events: deque[tuple[int, Message]] = deque(maxlen=cfg.event_buffer)
        self._seq = itertools.count(1)
        self._events_lock = threading.Lock()
        self._snapshots = 0

    def _publish(self, msg: Message) -> None:
        with self._events_lock:
            self._events.append((next(self._seq), msg))

    def on_packet(self, packet: Packet) -> None:
        self.store.ingest(packet)
        self._publish(PacketMessage(packet))

    def on_error(self, failure: CaptureFailure) -> None:
        self._publish(ErrorMessage(failure))

    def events_since(self, seq: int = 0) -> tuple[int, list[Message]]:
        """(last sequence number, messages newer than seq)."""
        with self._events_lock:
            items = [(s, m) for s, m in self._events if s > seq]
            last = self._events[-1][0] if self._events else seq
        return last, [m for _, m in items]

    def network_state(self, now: Optional[int] = None) -> NetworkStateMessage:
        """Active snapshot; every cfg.layout_every-th call also relaxes the layout.

        Call with ``store.lock`` held when the result is serialized right away.
        """
        with self.store.lock:
            state = self.store.snapshot(now)
            self._snapshots += 1
            if self._snapshots >= self.cfg.layout_every:
                self._snapshots = 0
                self.layout.resolve_all(state.devices)
        return NetworkStateMessage(state)

    def auto_start(self) -> list[str]:
        if not (self.cfg.auto_capture and self.cfg.packet_capture):
            log.info("auto-capture disabled")
            return []
        names = self.cfg.interfaces or up_interface_names()
        if not names:
            log.info("no active interfaces available for auto-capture")
            return []
        try:
            return self.supervisor.start_interfaces(names, self.cfg.default_filter)
        except CaptureError as e:
            log.error("auto-capture failed: %s", e)
            return []

    def shutdown(self) -> None:
        self.supervisor.stop_all()
