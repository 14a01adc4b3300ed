from __future__ import annotations

import threading

import pytest

from conftest import make_packet
from packetview.models import DeviceType, Protocol
from packetview.topology.state import NetworkStateStore

TTL = 300_000
T0 = 10_000_000


def test_devices_created_for_both_endpoints(store):
    store.ingest(make_packet(src='192.168.1.10', dst='8.8.8.8', size=60, ts=T0))
    src, dst = store.get_device('192.168.1.10'), store.get_device('8.8.8.8')
    assert src.traffic_out == 60 and src.traffic_in == 0
    assert dst.traffic_in == 60 and dst.traffic_out == 0
    assert src.last_seen == dst.last_seen == T0


@pytest.mark.parametrize('ip, kind', [
    ('192.168.1.1', DeviceType.GATEWAY),
    ('10.0.0.1', DeviceType.GATEWAY),
    ('172.16.5.1', DeviceType.GATEWAY),
    ('192.168.1.50', DeviceType.HOST),
    ('8.8.4.1', DeviceType.HOST),
    ('172.40.0.1', DeviceType.HOST),
])
def test_device_type(store, ip, kind):
    store.ingest(make_packet(src=ip, dst='192.168.1.77'))
    assert store.get_device(ip).type is kind


def test_device_type_is_fixed_at_creation(store):
    store.ingest(make_packet(src='192.168.1.1', dst='192.168.1.77'))
    dev = store.get_device('192.168.1.1')
    store.ingest(make_packet(src='192.168.1.1', dst='192.168.1.78', ts=T0))
    assert store.get_device('192.168.1.1') is dev
    assert dev.type is DeviceType.GATEWAY


@pytest.mark.parametrize('special', ['255.255.255.255', '224.0.0.251', '239.255.255.250', '127.0.0.1'])
def test_special_addresses_never_become_devices(store, special):
    store.ingest(make_packet(src='192.168.1.10', dst=special, proto=Protocol.UDP, size=40))
    assert store.get_device(special) is None
    assert store.get_device('192.168.1.10').traffic_out == 40
    # the connection is still recorded
    assert store.get_connection('192.168.1.10', 50000, special, 443, Protocol.UDP) is not None


def test_repeated_ingest_accumulates_exactly(store):
    pkt = make_packet(size=250, ts=T0)
    for _ in range(7):
        store.ingest(pkt)
    conn = store.get_connection('192.168.1.10', 50000, '192.168.1.20', 443, Protocol.TCP)
    assert conn.packets == 7
    assert conn.traffic == 7 * 250
    assert store.get_device('192.168.1.10').traffic_out == 7 * 250
    assert store.get_device('192.168.1.20').traffic_in == 7 * 250
    assert len(store.all_connections()) == 1


def test_direction_and_ports_make_distinct_connections(store):
    store.ingest(make_packet(src='10.0.0.2', dst='10.0.0.3', sport=1000, dport=80))
    store.ingest(make_packet(src='10.0.0.3', dst='10.0.0.2', sport=80, dport=1000))
    store.ingest(make_packet(src='10.0.0.2', dst='10.0.0.3', sport=1001, dport=80))
    store.ingest(make_packet(src='10.0.0.2', dst='10.0.0.3', sport=1000, dport=80, proto=Protocol.HTTP))
    assert len(store.all_connections()) == 4
    assert len(store.all_devices()) == 2


def test_connection_id_format(store):
    store.ingest(make_packet(src='10.0.0.2', dst='10.0.0.3', sport=1000, dport=53, proto=Protocol.DNS))
    (conn,) = store.all_connections()
    assert conn.id == '10.0.0.2:1000-10.0.0.3:53-DNS'


def test_out_of_order_delivery_keeps_latest_timestamp(store):
    store.ingest(make_packet(ts=T0 + 500))
    store.ingest(make_packet(ts=T0))
    assert store.get_device('192.168.1.10').last_seen == T0 + 500
    (conn,) = store.all_connections()
    assert conn.last_seen == T0 + 500
    assert conn.packets == 2


def test_mac_backfilled_but_never_overwritten(store):
    store.ingest(make_packet(src='192.168.1.10'))
    assert store.get_device('192.168.1.10').mac == ''
    store.ingest(make_packet(src='192.168.1.10', source_mac='aa:bb:cc:dd:ee:ff'))
    assert store.get_device('192.168.1.10').mac == 'aa:bb:cc:dd:ee:ff'
    store.ingest(make_packet(src='192.168.1.10', source_mac='11:22:33:44:55:66'))
    assert store.get_device('192.168.1.10').mac == 'aa:bb:cc:dd:ee:ff'


def test_destination_mac_goes_to_destination(store):
    store.ingest(make_packet(source_mac='aa:aa:aa:aa:aa:aa', dest_mac='bb:bb:bb:bb:bb:bb'))
    assert store.get_device('192.168.1.20').mac == 'bb:bb:bb:bb:bb:bb'


def test_snapshot_ttl_boundary(store):
    store.ingest(make_packet(src='192.168.1.10', dst='192.168.1.20', ts=T0))
    fresh = store.snapshot(now=T0 + TTL - 1)
    assert {d.ip for d in fresh.devices} == {'192.168.1.10', '192.168.1.20'}
    assert len(fresh.connections) == 1
    stale = store.snapshot(now=T0 + TTL + 1)
    assert stale.devices == [] and stale.connections == []
    # soft deletion: records survive
    assert len(store.all_devices()) == 2


def test_snapshot_is_lists(store):
    store.ingest(make_packet())
    snap = store.snapshot(now=T0)
    assert isinstance(snap.devices, list)
    assert isinstance(snap.connections, list)


def test_custom_ttl():
    s = NetworkStateStore(device_ttl_ms=1000, connection_ttl_ms=5000)
    s.ingest(make_packet(ts=T0))
    snap = s.snapshot(now=T0 + 2000)
    assert snap.devices == []
    assert len(snap.connections) == 1


def test_zero_size_packet(store):
    store.ingest(make_packet(size=0))
    (conn,) = store.all_connections()
    assert conn.packets == 1 and conn.traffic == 0


def test_clear(store):
    store.ingest(make_packet())
    store.clear()
    assert store.all_devices() == [] and store.all_connections() == []
    assert store.snapshot(now=T0).devices == []


def test_placer_called_once_per_new_device():
    seen = []
    s = NetworkStateStore(placer=lambda dev, others: seen.append((dev.ip, sorted(o.ip for o in others))))
    s.ingest(make_packet(src='10.0.0.2', dst='10.0.0.3'))
    s.ingest(make_packet(src='10.0.0.2', dst='10.0.0.3'))
    assert seen == [('10.0.0.2', []), ('10.0.0.3', ['10.0.0.2'])]


def test_failing_placer_does_not_break_ingest():
    def boom(dev, others):
        raise RuntimeError('nope')
    s = NetworkStateStore(placer=boom)
    s.ingest(make_packet())
    assert len(s.all_devices()) == 2


def test_concurrent_ingest(store):
    def worker(n):
        for _ in range(500):
            store.ingest(make_packet(src=f'10.0.{n}.2', dst='10.0.9.9', size=2))

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert store.get_device('10.0.9.9').traffic_in == 4 * 500 * 2
    assert sum(c.packets for c in store.all_connections()) == 2000


@pytest.mark.parametrize('bad', [-500, None, 'x', 1.5])
def test_bad_size_counts_as_zero(store, bad):
    store.ingest(make_packet(size=100, ts=T0))
    store.ingest(make_packet(size=bad, ts=T0 + 1))
    assert store.get_device('192.168.1.10').traffic_out == 100
    assert store.get_device('192.168.1.20').traffic_in == 100
    (conn,) = store.all_connections()
    assert (conn.packets, conn.traffic, conn.last_seen) == (2, 100, T0 + 1)


def test_connections_are_keyed_by_five_tuple(store):
    store.ingest(make_packet())
    (conn,) = store.all_connections()
    assert store.get_connection(*conn.key) is conn
