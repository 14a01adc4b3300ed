from __future__ import annotations
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union


def now_ms() -> int:
    return int(time.time() * 1000)


class Protocol(str, Enum):
    TCP = "TCP"
    UDP = "UDP"
    ICMP = "ICMP"
    HTTP = "HTTP"
    HTTPS = "HTTPS"
    DNS = "DNS"
    SSH = "SSH"
    FTP = "FTP"
    SMTP = "SMTP"
    OTHER = "OTHER"


class DeviceType(str, Enum):
    HOST = "HOST"
    GATEWAY = "GATEWAY"
    UNKNOWN = "UNKNOWN"


@dataclass
class Packet:
    timestamp: int
    source_ip: str
    dest_ip: str
    source_port: int
    dest_port: int
    protocol: Protocol
    size: int = 0
    info: Optional[str] = None  # 'MAC: aa:.. -> bb:..'
    source_mac: str = ""
    dest_mac: str = ""
    interface: Optional[str] = None


@dataclass
class Device:
    ip: str
    type: DeviceType
    mac: str = ""
    traffic_in: int = 0
    traffic_out: int = 0
    last_seen: int = 0
    x: float = 0.0
    y: float = 0.0

    @property
    def total_traffic(self) -> int:
        return self.traffic_in + self.traffic_out


ConnKey = tuple[str, int, str, int, Protocol]


@dataclass
class Connection:
    source_ip: str
    source_port: int
    dest_ip: str
    dest_port: int
    protocol: Protocol
    traffic: int = 0
    packets: int = 0
    last_seen: int = 0
    id: str = field(init=False)

    def __post_init__(self):
        self.id = f"{self.source_ip}:{self.source_port}-{self.dest_ip}:{self.dest_port}-{self.protocol.value}"

    @property
    def key(self) -> ConnKey:
        return (self.source_ip, self.source_port, self.dest_ip, self.dest_port, self.protocol)


@dataclass
class NetworkState:
    devices: list[Device] = field(default_factory=list)
    connections: list[Connection] = field(default_factory=list)


@dataclass
class InterfaceInfo:
    name: str
    description: str = "Network Interface"
    ip: Optional[str] = None
    is_up: bool = False


@dataclass
class CaptureFailure:
    interface: str
    message: str
    kind: str = "runtime"  # 'launch' | 'runtime'
    exit_code: Optional[int] = None


# --- wire envelopes: one variant per message kind ---------------------------

class MessageType(str, Enum):
    PACKET = "PACKET"
    NETWORK_STATE = "NETWORK_STATE"
    INTERFACE_LIST = "INTERFACE_LIST"
    ERROR = "ERROR"


@dataclass
class PacketMessage:
    data: Packet
    timestamp: int = field(default_factory=now_ms)
    type: MessageType = field(default=MessageType.PACKET, init=False)


@dataclass
class NetworkStateMessage:
    data: NetworkState
    timestamp: int = field(default_factory=now_ms)
    type: MessageType = field(default=MessageType.NETWORK_STATE, init=False)


@dataclass
class InterfaceListMessage:
    data: list[InterfaceInfo]
    timestamp: int = field(default_factory=now_ms)
    type: MessageType = field(default=MessageType.INTERFACE_LIST, init=False)


@dataclass
class ErrorMessage:
    data: CaptureFailure
    timestamp: int = field(default_factory=now_ms)
    type: MessageType = field(default=MessageType.ERROR, init=False)


Message = Union[PacketMessage, NetworkStateMessage, InterfaceListMessage, ErrorMessage]
