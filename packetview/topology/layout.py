from __future__ import annotations
import logging
import math
import random
import threading
from typing import Iterable, Optional

from ..config import (BASE_RADIUS, CANVAS_PADDING, COLLISION_MARGIN, FULL_PASS_ITERATIONS,
                      MAX_TRAFFIC_BONUS, SINGLE_PASS_ITERATIONS, TRAFFIC_RADIUS_DIVISOR)
from ..models import Device

log = logging.getLogger(__name__)


def device_radius(device: Device) -> float:
    bonus = min(max(device.total_traffic, 0) / TRAFFIC_RADIUS_DIVISOR, MAX_TRAFFIC_BONUS)
    return BASE_RADIUS + bonus


def min_distance(a: Device, b: Device) -> float:
    return device_radius(a) + device_radius(b) + COLLISION_MARGIN


def _push_apart(a: Device, b: Device) -> bool:
    """Move a and b half the overlap each, away from each other. True on collision."""
    need = min_distance(a, b)
    dx, dy = b.x - a.x, b.y - a.y
    dist = math.hypot(dx, dy)
    if dist >= need:
        return False
    # coincident centers: atan2(0, 0) == 0, so they separate along x
    angle = math.atan2(dy, dx)
    force = (need - dist) / 2
    ox, oy = math.cos(angle) * force, math.sin(angle) * force
    a.x -= ox; a.y -= oy
    b.x += ox; b.y += oy
    return True


class LayoutResolver:
    """Pairwise repulsion keeping device circles apart on a bounded canvas.

    O(n^2) per iteration, which is fine for tens of devices.
    """

    def __init__(self, width: float = 2000.0, height: float = 1500.0,
                 rng: Optional[random.Random] = None):
        self.width = width
        self.height = height
        self.rng = rng or random.Random()
        self._lock = threading.Lock()

    def _sanitize(self, d: Device) -> None:
        if not (math.isfinite(d.x) and math.isfinite(d.y)):
            d.x, d.y = self.width / 2, self.height / 2

    def clamp(self, d: Device) -> None:
        self._sanitize(d)
        d.x = max(CANVAS_PADDING, min(self.width - CANVAS_PADDING, d.x))
        d.y = max(CANVAS_PADDING, min(self.height - CANVAS_PADDING, d.y))

    def place_new_device(self, device: Device, existing: Iterable[Device]) -> int:
        """Random start, then push the newcomer (and whoever it hits) apart."""
        with self._lock:
            others = [d for d in existing if d is not device]
            device.x = self.rng.random() * self.width
            device.y = self.rng.random() * self.height
            for d in others:
                self._sanitize(d)
            moved: set[int] = set()
            it = 0
            while it < SINGLE_PASS_ITERATIONS:
                hit = False
                for other in others:
                    # other is pushed along +angle, the newcomer along -angle
                    if _push_apart(device, other):
                        hit = True
                        moved.add(id(other))
                if not hit:
                    break
                it += 1
            self.clamp(device)
            for d in others:
                if id(d) in moved:
                    self.clamp(d)
            return it

    def resolve_all(self, devices: Iterable[Device]) -> int:
        """Relax every pair until no collisions remain or the cap is hit; returns iterations."""
        with self._lock:
            devs = sorted(devices, key=lambda d: d.ip)
            for d in devs:
                self._sanitize(d)
            it = 0
            while it < FULL_PASS_ITERATIONS:
                hit = False
                for i in range(len(devs)):
                    for j in range(i + 1, len(devs)):
                        if _push_apart(devs[i], devs[j]):
                            hit = True
                if not hit:
                    break
                it += 1
                for d in devs:
                    self.clamp(d)
            if it >= FULL_PASS_ITERATIONS:
                log.debug("layout: iteration cap reached with %d devices", len(devs))
            return it
