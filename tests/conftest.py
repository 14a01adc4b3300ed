from __future__ import annotations

import sys
import time

import pytest

from packetview.config import CFG
from packetview.engine import Engine
from packetview.models import Packet, Protocol
from packetview.topology.state import NetworkStateStore

# stand-ins for tcpdump, run with the current interpreter
IDLE = "import time\nwhile True: time.sleep(0.5)"
MISSING_BINARY = "/nonexistent/packetview-test/tcpdump"


def fake_command(scripts: dict[str, str] | None = None, missing: set[str] | None = None):
    scripts = scripts or {}
    missing = missing or set()

    def build(interface, bpf):
        if interface in missing:
            return [MISSING_BINARY, "-i", interface]
        return [sys.executable, "-u", "-c", scripts.get(interface, IDLE)]
    return build


def wait_for(predicate, timeout: float = 5.0, interval: float = 0.02) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


def make_packet(src="192.168.1.10", dst="192.168.1.20", sport=50000, dport=443,
                proto=Protocol.TCP, size=100, ts=1_000_000, **kw) -> Packet:
    return Packet(timestamp=ts, source_ip=src, dest_ip=dst, source_port=sport,
                  dest_port=dport, protocol=proto, size=size, **kw)


@pytest.fixture()
def store() -> NetworkStateStore:
    return NetworkStateStore()


@pytest.fixture()
def cfg() -> CFG:
    return CFG(auto_capture=False)


@pytest.fixture()
def engine(cfg):
    eng = Engine(cfg, command=fake_command())
    yield eng
    eng.shutdown()


@pytest.fixture(autouse=True)
def clear_env(monkeypatch):
    for key in ("PORT", "TCPDUMP_PATH", "DEBUG", "DISABLE_AUTO_CAPTURE", "DISABLE_PACKET_CAPTURE"):
        monkeypatch.delenv(key, raising=False)
    yield
