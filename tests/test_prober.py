import asyncio
import struct

import pytest

from lan_discovery.discovery import DEFAULT_DISCOVERY_INTERVAL, Advertiser, Prober
from lan_discovery.errors import PlatformUnsupported
from lan_discovery.transport import BroadcastTransport
from lan_discovery.wire import JsonCodec, decode_envelope, encode_envelope, peek_handshake

from .conftest import FOREIGN_HANDSHAKE, HANDSHAKE, wait_until


class Found:
    """Collects on_found calls."""

    def __init__(self):
        self.items = []

    def __call__(self, response, address):
        self.items.append((response, address))


@pytest.fixture
async def prober():
    p = Prober(JsonCodec(), JsonCodec())
    yield p
    await p.stop_discovery()


async def start(prober, server, found, **kwargs):
    """Probe a single loopback 'server' transport instead of the broadcast address."""
    kwargs.setdefault('interval', 60)
    await prober.start_discovery(
        server.local_address[1], HANDSHAKE, lambda: {'want': 'servers'}, found,
        broadcast_address='127.0.0.1', **kwargs,
    )


async def test_round_trip_with_advertiser(prober):
    advertiser = Advertiser(JsonCodec(), JsonCodec())
    requests = []

    def responder(request, address):
        requests.append((request, address))
        return {'server_id': 99, 'name': 'lobby'}

    await advertiser.start_advertising(0, HANDSHAKE, responder, host='127.0.0.1')
    try:
        found = Found()
        await prober.start_discovery(
            advertiser.local_address[1], HANDSHAKE, lambda: {'mode': 'any'}, found,
            interval=60, broadcast_address='127.0.0.1',
        )

        await wait_until(lambda: found.items)
        await asyncio.sleep(0.1)

        assert len(requests) == 1
        assert requests[0][0] == {'mode': 'any'}
        assert requests[0][1][1] == prober.local_address[1]
        assert found.items == [({'server_id': 99, 'name': 'lobby'}, advertiser.local_address)]
    finally:
        await advertiser.stop_advertising()


async def test_first_broadcast_is_immediate(prober, peer):
    await start(prober, peer, Found())

    data, addr = await asyncio.wait_for(peer.receive_from(), 0.5)

    assert decode_envelope(data, JsonCodec()) == (HANDSHAKE, {'want': 'servers'})
    assert addr[1] == prober.local_address[1]


async def test_foreign_and_malformed_responses_are_dropped(peer):
    drops = []
    prober = Prober(JsonCodec(), JsonCodec(), on_drop=lambda d, a, r: drops.append(r))
    found = Found()
    await start(prober, peer, found)
    try:
        _, client = await asyncio.wait_for(peer.receive_from(), 1.0)

        peer.send_to(encode_envelope(FOREIGN_HANDSHAKE, {'server_id': 1}, JsonCodec()), client)
        peer.send_to(struct.pack('>q', HANDSHAKE) + b'\x00not-json', client)
        peer.send_to(b'tiny', client)
        peer.send_to(encode_envelope(HANDSHAKE, {'server_id': 2}, JsonCodec()), client)

        await wait_until(lambda: found.items)
        await asyncio.sleep(0.05)

        assert [r for r, _ in found.items] == [{'server_id': 2}]
        assert drops == ['handshake', 'malformed', 'malformed']
        assert prober.is_discovering
    finally:
        await prober.stop_discovery()


async def test_duplicate_answers_from_several_interfaces_are_all_reported(prober, peer):
    second_nic = await BroadcastTransport.open(0, '127.0.0.1')
    try:
        found = Found()
        await start(prober, peer, found)
        _, client = await asyncio.wait_for(peer.receive_from(), 1.0)

        answer = encode_envelope(HANDSHAKE, {'server_id': 7}, JsonCodec())
        peer.send_to(answer, client)
        second_nic.send_to(answer, client)

        await wait_until(lambda: len(found.items) == 2)

        assert [r for r, _ in found.items] == [{'server_id': 7}, {'server_id': 7}]
        assert {a for _, a in found.items} == {peer.local_address, second_nic.local_address}
    finally:
        second_nic.close()


async def test_broadcast_cadence(peer):
    prober = Prober(JsonCodec(), JsonCodec())
    prober.MIN_INTERVAL = 0.05
    received = []

    async def collect():
        while True:
            data, _ = await peer.receive_from()
            received.append(data)

    collector = asyncio.create_task(collect())
    try:
        await start(prober, peer, Found(), interval=0.2)
        await asyncio.sleep(1.0)
        await prober.stop_discovery()
        await asyncio.sleep(0.05)
    finally:
        collector.cancel()

    # 5 intervals in the window: sends at 0, 0.2, ..., 0.8 (and maybe 1.0)
    assert 4 <= len(received) <= 7
    assert all(peek_handshake(d) == HANDSHAKE for d in received)
    assert prober.get_stats()['broadcasts'] == len(received)


def test_interval_is_clamped():
    prober = Prober(JsonCodec(), JsonCodec())

    assert prober.clamp_interval(0.01) == Prober.MIN_INTERVAL
    assert prober.clamp_interval(3600) == Prober.MAX_INTERVAL
    assert prober.clamp_interval(3) == 3


@pytest.mark.parametrize('interval', [float('nan'), float('inf'), float('-inf')])
def test_non_finite_interval_falls_back_to_default(interval):
    prober = Prober(JsonCodec(), JsonCodec())

    assert prober.clamp_interval(interval) == DEFAULT_DISCOVERY_INTERVAL


async def test_nan_interval_does_not_flood(prober, peer):
    await start(prober, peer, Found(), interval=float('nan'))
    await asyncio.sleep(0.2)

    assert prober.get_stats()['broadcasts'] == 1


async def test_unsendable_request_is_reported_as_failure(prober):
    await prober.start_discovery(
        0, HANDSHAKE, dict, Found(), interval=60, broadcast_address='127.0.0.1',
    )
    await asyncio.sleep(0.05)

    assert prober.broadcast_request() is False
    stats = prober.get_stats()
    assert stats['broadcasts'] == 0
    assert stats['broadcast_failures'] == 2


async def test_stop_from_inside_callback(peer):
    prober = Prober(JsonCodec(), JsonCodec())

    async def on_found(response, address):
        await prober.stop_discovery()

    await start(prober, peer, on_found)
    _, client = await asyncio.wait_for(peer.receive_from(), 1.0)
    peer.send_to(encode_envelope(HANDSHAKE, {}, JsonCodec()), client)

    await wait_until(lambda: not prober.is_discovering)
    await prober.stop_discovery()


async def test_stop_is_idempotent(prober, peer):
    await prober.stop_discovery()
    await start(prober, peer, Found())

    await prober.stop_discovery()
    await prober.stop_discovery()

    assert not prober.is_discovering
    assert prober.broadcast_request() is False


async def test_restart_closes_previous_socket(prober, peer):
    await start(prober, peer, Found())
    old_transport = prober._session.transport

    await start(prober, peer, Found())

    assert old_transport.is_closed
    assert not prober._session.transport.is_closed


async def test_request_factory_errors_do_not_stop_probing(prober, peer):
    def broken_factory():
        raise RuntimeError('no request for you')

    await prober.start_discovery(
        peer.local_address[1], HANDSHAKE, broken_factory, Found(),
        interval=60, broadcast_address='127.0.0.1',
    )
    await asyncio.sleep(0.05)

    assert prober.is_discovering
    assert prober.get_stats()['broadcast_failures'] >= 1
    assert prober.broadcast_request() is False


async def test_callback_errors_are_contained(prober, peer):
    calls = []

    def on_found(response, address):
        calls.append(response)
        raise ValueError('callback bug')

    await start(prober, peer, on_found)
    _, client = await asyncio.wait_for(peer.receive_from(), 1.0)
    peer.send_to(encode_envelope(HANDSHAKE, 1, JsonCodec()), client)
    peer.send_to(encode_envelope(HANDSHAKE, 2, JsonCodec()), client)

    await wait_until(lambda: len(calls) == 2)

    assert prober.get_stats()['callback_errors'] == 2


async def test_unsupported_platform():
    prober = Prober(JsonCodec(), JsonCodec(), platform_check=lambda: False)

    with pytest.raises(PlatformUnsupported):
        await prober.start_discovery(47777, HANDSHAKE, dict, Found())

    assert not prober.is_discovering
