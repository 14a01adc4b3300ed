from __future__ import annotations

import math
import random

from packetview.config import (BASE_RADIUS, CANVAS_PADDING, FULL_PASS_ITERATIONS,
                               MAX_TRAFFIC_BONUS)
from packetview.models import Device, DeviceType
from packetview.topology.layout import LayoutResolver, device_radius, min_distance


def dev(ip, x=1000.0, y=750.0, traffic=0):
    return Device(ip=ip, type=DeviceType.HOST, traffic_in=traffic, x=x, y=y)


def dist(a, b):
    return math.hypot(a.x - b.x, a.y - b.y)


def test_radius_saturates():
    assert device_radius(dev('10.0.0.2')) == BASE_RADIUS
    assert device_radius(dev('10.0.0.2', traffic=50_000)) == BASE_RADIUS + 5
    assert device_radius(dev('10.0.0.2', traffic=10**12)) == BASE_RADIUS + MAX_TRAFFIC_BONUS


def test_coincident_pair_separates():
    a, b = dev('10.0.0.2'), dev('10.0.0.3')
    iterations = LayoutResolver().resolve_all([a, b])
    assert dist(a, b) >= min_distance(a, b) - 1e-9 or iterations == FULL_PASS_ITERATIONS
    # separated along the x axis, each moved half the overlap
    assert a.y == b.y == 750.0
    assert math.isclose(a.x, 1000 - min_distance(a, b) / 2)


def test_no_collision_means_no_movement():
    a, b = dev('10.0.0.2', 200, 200), dev('10.0.0.3', 900, 900)
    assert LayoutResolver().resolve_all([a, b]) == 0
    assert (a.x, a.y, b.x, b.y) == (200, 200, 900, 900)


def test_cluster_resolves_within_bounds():
    rng = random.Random(7)
    devices = [dev(f'10.0.0.{i}', 1000 + rng.uniform(-5, 5), 750 + rng.uniform(-5, 5)) for i in range(2, 14)]
    iterations = LayoutResolver().resolve_all(devices)
    for d in devices:
        assert CANVAS_PADDING <= d.x <= 2000 - CANVAS_PADDING
        assert CANVAS_PADDING <= d.y <= 1500 - CANVAS_PADDING
    collisions = sum(1 for i, a in enumerate(devices) for b in devices[i + 1:]
                     if dist(a, b) < min_distance(a, b) - 1e-6)
    assert collisions == 0 or iterations == FULL_PASS_ITERATIONS


def test_deterministic_for_same_input():
    def run():
        ds = [dev('10.0.0.3', 1000, 750), dev('10.0.0.2', 1001, 752), dev('10.0.0.4', 998, 749)]
        LayoutResolver().resolve_all(ds)
        return [(d.ip, round(d.x, 6), round(d.y, 6)) for d in ds]
    assert run() == run()


def test_non_finite_coordinates_are_recovered():
    a = dev('10.0.0.2', float('nan'), float('inf'))
    b = dev('10.0.0.3', 100, 100)
    LayoutResolver().resolve_all([a, b])
    assert math.isfinite(a.x) and math.isfinite(a.y)


def test_place_new_device_avoids_existing():
    existing = [dev('10.0.0.2', 1000, 750)]
    new = dev('10.0.0.3')
    resolver = LayoutResolver(rng=random.Random(3))
    resolver.place_new_device(new, existing)
    assert CANVAS_PADDING <= new.x <= 2000 - CANVAS_PADDING
    assert CANVAS_PADDING <= new.y <= 1500 - CANVAS_PADDING
    assert dist(new, existing[0]) >= min_distance(new, existing[0]) - 1e-6


def test_place_new_device_alone_only_randomizes():
    resolver = LayoutResolver(width=400, height=300, rng=random.Random(1))
    d = dev('10.0.0.2', 0, 0)
    assert resolver.place_new_device(d, [d]) == 0
    assert CANVAS_PADDING <= d.x <= 400 - CANVAS_PADDING
    assert CANVAS_PADDING <= d.y <= 300 - CANVAS_PADDING
