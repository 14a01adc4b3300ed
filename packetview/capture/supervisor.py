from __future__ import annotations
import logging
import subprocess
import threading
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional

from ..config import DIAGNOSTIC_MARKERS, TCPDUMP_FLAGS
from ..models import CaptureFailure, Packet
from .classifier import classify

log = logging.getLogger(__name__)

PacketHandler = Callable[[Packet], None]
ErrorHandler = Callable[[CaptureFailure], None]
# (interface, filter) -> argv
CommandBuilder = Callable[[str, Optional[str]], list[str]]


class CaptureError(Exception):
    pass


class CaptureConflictError(CaptureError):
    def __init__(self, interfaces: Iterable[str]):
        self.interfaces = sorted(interfaces)
        super().__init__(f"Capture already in progress on interfaces: {', '.join(self.interfaces)}")


class CaptureLaunchError(CaptureError):
    def __init__(self, interface: str, reason: str):
        self.interface = interface
        self.reason = reason
        super().__init__(f"Failed to start capture on {interface}: {reason}")


def tcpdump_command(tcpdump_path: str = "tcpdump") -> CommandBuilder:
    def build(interface: str, bpf: Optional[str]) -> list[str]:
        argv = [tcpdump_path, "-i", interface, *TCPDUMP_FLAGS]
        if bpf:
            argv.append(bpf)  # one argv element, tcpdump joins it itself
        return argv
    return build


def is_diagnostic(line: str) -> bool:
    return any(m in line for m in DIAGNOSTIC_MARKERS)


@dataclass
class _Capture:
    name: str
    filter: Optional[str]
    proc: subprocess.Popen
    packet_count: int = 0
    rejected_count: int = 0
    stopped: threading.Event = field(default_factory=threading.Event)


class CaptureSupervisor:
    """One capture subprocess per interface; a failing interface never takes down the others."""

    def __init__(self, on_packet: Optional[PacketHandler] = None,
                 on_error: Optional[ErrorHandler] = None,
                 command: Optional[CommandBuilder] = None,
                 tcpdump_path: str = "tcpdump"):
        self.on_packet = on_packet
        self.on_error = on_error
        self.command = command or tcpdump_command(tcpdump_path)
        self._lock = threading.Lock()
        self._captures: dict[str, _Capture] = {}
        self._pending: set[str] = set()
        self._total = 0

    # --- lifecycle ------------------------------------------------------

    def start_interfaces(self, names: Iterable[str], filter: Optional[str] = None) -> list[str]:
        wanted = list(dict.fromkeys(n for n in names if n))
        if not wanted:
            raise ValueError("At least one interface must be specified")
        with self._lock:
            busy = [n for n in wanted if n in self._captures or n in self._pending]
            if busy:
                raise CaptureConflictError(busy)
            # reserved while spawning; Popen runs outside the lock
            self._pending.update(wanted)
        started: list[_Capture] = []
        try:
            for name in wanted:
                started.append(self._launch(name, filter))
        except Exception as e:
            # all-or-nothing: undo what this call started
            for c in started:
                self._terminate(c)
                threading.Thread(target=self._reap, args=(c,), daemon=True).start()
            with self._lock:
                self._pending.difference_update(wanted)
            log.error("%s; rolled back %d interface(s) of this request", e, len(started))
            if isinstance(e, CaptureLaunchError):
                self._emit_error(CaptureFailure(interface=e.interface, message=str(e), kind="launch"))
            raise
        with self._lock:
            self._pending.difference_update(wanted)
            for cap in started:
                self._captures[cap.name] = cap
            active = len(self._captures)
        for cap in started:
            self._spawn_readers(cap)
        log.info("capture started on %s (filter=%s); active: %d",
                 ", ".join(wanted), filter or "none", active)
        return wanted

    def _launch(self, name: str, bpf: Optional[str]) -> _Capture:
        argv = self.command(name, bpf)
        log.debug("spawning %s", argv)
        try:
            proc = subprocess.Popen(
                argv, stdin=subprocess.DEVNULL, stdout=subprocess.PIPE, stderr=subprocess.PIPE,
                text=True, bufsize=1, errors="replace")
        except OSError as e:
            raise CaptureLaunchError(name, e.strerror or str(e)) from e
        except ValueError as e:
            # e.g. an embedded NUL in the interface name or filter
            raise CaptureLaunchError(name, str(e)) from e
        return _Capture(name=name, filter=bpf, proc=proc)

    def stop_interface(self, name: str) -> None:
        with self._lock:
            cap = self._captures.pop(name, None)
            if cap:
                cap.stopped.set()
        if not cap:
            log.debug("no capture running on %s", name)
            return
        self._terminate(cap)
        log.info("capture stopped on %s after %d packets; active: %d",
                 name, cap.packet_count, len(self._captures))

    def stop_all(self) -> None:
        with self._lock:
            caps = list(self._captures.values())
            self._captures.clear()
            for cap in caps:
                cap.stopped.set()
            total, self._total = self._total, 0
        for cap in caps:
            self._terminate(cap)
        if caps:
            log.info("all captures stopped (%d interfaces, %d packets this session)", len(caps), total)

    @staticmethod
    def _terminate(cap: _Capture) -> None:
        cap.stopped.set()
        try:
            cap.proc.terminate()
        except (ProcessLookupError, OSError):
            pass  # already gone

    @staticmethod
    def _reap(cap: _Capture) -> None:
        cap.proc.wait()
        for stream in (cap.proc.stdout, cap.proc.stderr):
            if stream:
                stream.close()

    # --- queries --------------------------------------------------------

    def status(self) -> dict:
        with self._lock:
            return {
                "active": bool(self._captures),
                "interfaces": [
                    {"name": c.name, "packet_count": c.packet_count,
                     "filter": c.filter, "rejected_count": c.rejected_count}
                    for c in self._captures.values()
                ],
            }

    def active_interfaces(self) -> list[str]:
        with self._lock:
            return list(self._captures)

    @property
    def total_packet_count(self) -> int:
        with self._lock:
            return self._total

    # --- stream readers -------------------------------------------------

    def _spawn_readers(self, cap: _Capture) -> None:
        for target, stream in ((self._read_stdout, "stdout"), (self._read_stderr, "stderr")):
            threading.Thread(target=target, args=(cap,), daemon=True,
                             name=f"capture-{cap.name}-{stream}").start()

    def _read_stdout(self, cap: _Capture) -> None:
        try:
            for raw in cap.proc.stdout:
                if cap.stopped.is_set():
                    continue  # drain without counting
                pkt = classify(raw, cap.name)
                with self._lock:
                    if cap.stopped.is_set():
                        continue
                    if pkt is None:
                        cap.rejected_count += 1
                    else:
                        cap.packet_count += 1
                        self._total += 1
                if pkt is None:
                    log.debug("unparsed line on %s: %s", cap.name, raw.rstrip())
                    continue
                if self.on_packet:
                    try:
                        self.on_packet(pkt)
                    except Exception:
                        log.exception("packet handler failed for %s", cap.name)
        except (OSError, ValueError):
            log.debug("stdout of %s closed", cap.name)
        self._on_exit(cap, cap.proc.wait())

    def _read_stderr(self, cap: _Capture) -> None:
        try:
            for raw in cap.proc.stderr:
                msg = raw.strip()
                if not msg:
                    continue
                if is_diagnostic(msg):
                    log.debug("[%s] %s", cap.name, msg)
                    continue
                if cap.stopped.is_set():
                    continue
                self._emit_error(CaptureFailure(interface=cap.name, message=msg))
        except (OSError, ValueError):
            log.debug("stderr of %s closed", cap.name)

    def _on_exit(self, cap: _Capture, code: Optional[int]) -> None:
        with self._lock:
            if self._captures.get(cap.name) is cap:
                del self._captures[cap.name]
        if cap.stopped.is_set():
            log.debug("capture on %s exited after stop (code %s)", cap.name, code)
            return
        # negative codes mean killed by a signal
        if code is not None and code > 0:
            self._emit_error(CaptureFailure(
                interface=cap.name, message=f"tcpdump on {cap.name} exited with code {code}",
                exit_code=code))
        else:
            log.info("capture on %s ended (code %s)", cap.name, code)

    def _emit_error(self, failure: CaptureFailure) -> None:
        log.error("[%s] %s", failure.interface, failure.message)
        if self.on_error:
            try:
                self.on_error(failure)
            except Exception:
                log.exception("error handler failed for %s", failure.interface)
