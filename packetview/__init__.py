"""Live device/connection map fed by per-interface tcpdump subprocesses."""

__version__ = "0.1.0"
