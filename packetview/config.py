from __future__ import annotations
import json
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Optional

import yaml

BASE_DIR = Path(__file__).parent.resolve()

@dataclass
class CFG:
    host: str = "0.0.0.0"
    port: int = 3001
    debug: bool = False
    auto_capture: bool = True
    packet_capture: bool = True
    tcpdump_path: str = "tcpdump"
    default_filter: Optional[str] = None
    interfaces: list[str] = field(default_factory=list)
    device_ttl_ms: int = 300_000
    connection_ttl_ms: int = 300_000
    canvas_width: float = 2000.0
    canvas_height: float = 1500.0
    layout_every: int = 10
    event_buffer: int = 1000

# tcpdump: -n no name resolution, -l line buffered, -t no timestamp,
# -q quiet transport summary, -e link-level header
TCPDUMP_FLAGS = ["-n", "-l", "-t", "-q", "-e"]

DIAGNOSTIC_MARKERS = (
    "listening on",
    "verbose output suppressed",
    "packets captured",
    "packets received by filter",
    "packets dropped by kernel",
)

PROTOCOL_PORTS = {
    "HTTP": 80, "HTTPS": 443, "DNS": 53, "SSH": 22,
}

# layout
BASE_RADIUS = 25.0
TRAFFIC_RADIUS_DIVISOR = 10_000.0
MAX_TRAFFIC_BONUS = 15.0
COLLISION_MARGIN = 50.0
CANVAS_PADDING = 50.0
FULL_PASS_ITERATIONS = 50
SINGLE_PASS_ITERATIONS = 100

_TRUE = {"1", "true", "yes", "on"}


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "").strip().lower() in _TRUE


def to_abs_path(p: Optional[str | os.PathLike]) -> Optional[Path]:
    """Absolute paths are kept; relative ones resolve against CWD first, then the package dir."""
    if not p:
        return None
    pp = Path(p).expanduser()
    if pp.is_absolute():
        return pp.resolve()
    in_cwd = Path.cwd() / pp
    if in_cwd.exists():
        return in_cwd.resolve()
    return (BASE_DIR / pp).resolve()


def load_config_file(path: Optional[str]) -> dict[str, Any]:
    """Read a YAML (.yaml/.yml) or JSON mapping of CFG overrides. Unknown keys are dropped."""
    p = to_abs_path(path)
    if not p:
        return {}
    if not p.exists():
        print(f"[warn] config not found: {p}")
        return {}
    txt = p.read_text(encoding="utf-8")
    data = yaml.safe_load(txt) if p.suffix in (".yaml", ".yml") else json.loads(txt)
    if not isinstance(data, dict):
        print(f"[warn] config {p} is not a mapping, ignored")
        return {}
    known = {f.name for f in fields(CFG)}
    unknown = sorted(set(data) - known)
    if unknown:
        print(f"[warn] config {p}: unknown keys ignored: {', '.join(unknown)}")
    return {k: v for k, v in data.items() if k in known}


def init_cfg_from_args(args) -> CFG:
    cfg = CFG()
    for k, v in load_config_file(getattr(args, "config", None)).items():
        setattr(cfg, k, v)

    # environment beats the file, explicit flags beat both
    if os.environ.get("PORT"):
        try:
            cfg.port = int(os.environ["PORT"])
        except ValueError:
            print(f"[warn] PORT={os.environ['PORT']!r} is not a number, using {cfg.port}")
    if os.environ.get("TCPDUMP_PATH"):
        cfg.tcpdump_path = os.environ["TCPDUMP_PATH"]
    cfg.debug = cfg.debug or _env_flag("DEBUG")
    if _env_flag("DISABLE_AUTO_CAPTURE"):
        cfg.auto_capture = False
    if _env_flag("DISABLE_PACKET_CAPTURE"):
        cfg.packet_capture = False

    if getattr(args, "port", None) is not None:
        cfg.port = args.port
    if getattr(args, "host", None):
        cfg.host = args.host
    if getattr(args, "debug", False):
        cfg.debug = True
    if getattr(args, "no_auto_capture", False):
        cfg.auto_capture = False
    if getattr(args, "tcpdump", None):
        cfg.tcpdump_path = args.tcpdump
    if getattr(args, "filter", None):
        cfg.default_filter = args.filter
    if getattr(args, "interfaces", ""):
        cfg.interfaces = [x.strip() for x in args.interfaces.split(",") if x.strip()]
    if getattr(args, "ttl", None) is not None:
        cfg.device_ttl_ms = cfg.connection_ttl_ms = int(args.ttl * 1000)
    if getattr(args, "layout_every", None) is not None:
        cfg.layout_every = max(1, args.layout_every)
    return cfg
