import asyncio

import pytest

from lanpeers.discovery import (
    PeerTable,
    UpsertResult,
    DiscoveryBroadcaster,
    BroadcastResponder,
    ResponseListener,
)
from lanpeers.protocol import PeerMessage, decode, encode

DISCOVERY_PORT = 9005
RESPONSE_PORT = 9006


async def wait_for(predicate, timeout=2.0):
    async def poll():
        while not predicate():
            await asyncio.sleep(0.01)
    await asyncio.wait_for(poll(), timeout)


class Process:
    """One simulated node: three roles on three endpoints of one host."""

    def __init__(self, network, ip, identity):
        self.identity = identity
        self.table = PeerTable()
        self.broadcaster = DiscoveryBroadcaster(
            identity,
            network.endpoint(ip),
            broadcast_address=("255.255.255.255", DISCOVERY_PORT),
            interval=60,
        )
        self.responder = BroadcastResponder(
            identity, network.endpoint(ip, DISCOVERY_PORT), response_port=RESPONSE_PORT
        )
        self.listener = ResponseListener(
            network.endpoint(ip, RESPONSE_PORT), self.table, identity=identity
        )
        self.tasks = []

    def start_listening(self):
        self.tasks = [
            asyncio.create_task(self.responder.run()),
            asyncio.create_task(self.listener.run()),
        ]

    async def stop(self):
        for task in self.tasks:
            task.cancel()
        await asyncio.gather(*self.tasks, return_exceptions=True)


@pytest.mark.asyncio
async def test_responder_replies_to_discovery(network, alice, bob):
    endpoint = network.endpoint("10.0.0.2", DISCOVERY_PORT)
    responder = BroadcastResponder(bob, endpoint, response_port=RESPONSE_PORT)

    sent = await responder.handle_datagram(
        encode(PeerMessage.discovery(alice)), ("10.0.0.1", 50123)
    )

    assert sent is True
    data, addr = endpoint.sent[0]
    assert addr == ("10.0.0.1", RESPONSE_PORT)
    reply = decode(data)
    assert (reply.token, reply.display_name, reply.is_response) == ("BBBBBBBBBB", "bob", True)


@pytest.mark.asyncio
async def test_responder_ignores_own_broadcast(network, alice):
    endpoint = network.endpoint("10.0.0.1", DISCOVERY_PORT)
    responder = BroadcastResponder(alice, endpoint)

    sent = await responder.handle_datagram(
        encode(PeerMessage.discovery(alice)), ("10.0.0.1", 50123)
    )

    assert sent is False
    assert endpoint.sent == []


@pytest.mark.asyncio
async def test_responder_ignores_responses(network, alice, bob):
    endpoint = network.endpoint("10.0.0.2", DISCOVERY_PORT)
    responder = BroadcastResponder(bob, endpoint)

    sent = await responder.handle_datagram(
        encode(PeerMessage.response(alice)), ("10.0.0.1", 50123)
    )

    assert sent is False
    assert endpoint.sent == []


@pytest.mark.asyncio
@pytest.mark.parametrize("data", [b"", b"hello world", b"\x20" + b"\x10" + b"A" * 14])
async def test_responder_ignores_malformed(network, bob, data):
    endpoint = network.endpoint("10.0.0.2", DISCOVERY_PORT)
    responder = BroadcastResponder(bob, endpoint)

    assert await responder.handle_datagram(data, ("10.0.0.1", 50123)) is False
    assert endpoint.sent == []


@pytest.mark.asyncio
async def test_responder_survives_send_failure(network, alice, bob):
    endpoint = network.endpoint("10.0.0.2", DISCOVERY_PORT)
    endpoint.fail_sends = True
    responder = BroadcastResponder(bob, endpoint)

    assert await responder.handle_datagram(
        encode(PeerMessage.discovery(alice)), ("10.0.0.1", 50123)
    ) is False
    assert responder.responded_count == 0


@pytest.mark.asyncio
async def test_listener_upserts_sender(network, alice, bob):
    table = PeerTable()
    listener = ResponseListener(network.endpoint("10.0.0.1", RESPONSE_PORT), table, identity=alice)

    result = await listener.handle_datagram(
        encode(PeerMessage.response(bob)), ("10.0.0.2", DISCOVERY_PORT)
    )

    assert result is UpsertResult.ADDED
    peer = table.get("BBBBBBBBBB")
    assert (peer.address, peer.display_name) == ("10.0.0.2", "bob")


@pytest.mark.asyncio
async def test_listener_drops_malformed(network, alice):
    table = PeerTable()
    listener = ResponseListener(network.endpoint("10.0.0.1", RESPONSE_PORT), table)

    assert await listener.handle_datagram(b"\x00\x01garbage", ("10.0.0.2", 9005)) is None
    assert len(table) == 0


@pytest.mark.asyncio
async def test_listener_ignores_own_token(network, alice):
    table = PeerTable()
    listener = ResponseListener(network.endpoint("10.0.0.1", RESPONSE_PORT), table, identity=alice)

    assert await listener.handle_datagram(
        encode(PeerMessage.response(alice)), ("10.0.0.1", 9005)
    ) is None
    assert len(table) == 0


@pytest.mark.asyncio
async def test_listener_reports_sightings(network, bob):
    sightings = []
    listener = ResponseListener(
        network.endpoint("10.0.0.1", RESPONSE_PORT),
        PeerTable(),
        on_sighting=lambda message, ip, result: sightings.append((message.token, ip, result)),
    )

    await listener.handle_datagram(encode(PeerMessage.response(bob)), ("10.0.0.2", 9005))
    await listener.handle_datagram(encode(PeerMessage.response(bob)), ("10.0.0.2", 9005))

    assert sightings == [
        ("BBBBBBBBBB", "10.0.0.2", UpsertResult.ADDED),
        ("BBBBBBBBBB", "10.0.0.2", UpsertResult.UPDATED),
    ]


@pytest.mark.asyncio
async def test_broadcaster_sends_discovery(network, alice):
    endpoint = network.endpoint("10.0.0.1")
    broadcaster = DiscoveryBroadcaster(alice, endpoint, broadcast_address=("255.255.255.255", 9005))

    assert await broadcaster.send_once() is True

    data, addr = endpoint.sent[0]
    assert addr == ("255.255.255.255", 9005)
    message = decode(data)
    assert (message.token, message.display_name, message.is_response) == ("AAAAAAAAAA", "alice", False)


@pytest.mark.asyncio
async def test_broadcaster_keeps_running_after_send_failures(network, alice):
    endpoint = network.endpoint("10.0.0.1")
    endpoint.fail_sends = True
    broadcaster = DiscoveryBroadcaster(alice, endpoint, interval=0.01)

    task = asyncio.create_task(broadcaster.run())
    await wait_for(lambda: broadcaster.failed_count >= 3)

    endpoint.fail_sends = False
    await wait_for(lambda: broadcaster.sent_count >= 1)

    assert not task.done()
    task.cancel()
    await asyncio.gather(task, return_exceptions=True)
    assert not broadcaster.is_running


@pytest.mark.asyncio
async def test_listener_loop_stops_on_cancel(network, alice):
    listener = ResponseListener(network.endpoint("10.0.0.1", RESPONSE_PORT), PeerTable())
    task = asyncio.create_task(listener.run())
    await wait_for(lambda: listener.is_running)

    task.cancel()
    await asyncio.gather(task, return_exceptions=True)

    assert not listener.is_running


@pytest.mark.asyncio
async def test_listener_loop_survives_malformed_traffic(network, bob):
    endpoint = network.endpoint("10.0.0.1", RESPONSE_PORT)
    table = PeerTable()
    listener = ResponseListener(endpoint, table)
    task = asyncio.create_task(listener.run())

    endpoint.inbox.put_nowait((b"junk", ("10.0.0.9", 1234)))
    endpoint.inbox.put_nowait((encode(PeerMessage.response(bob)), ("10.0.0.2", 9005)))
    await wait_for(lambda: len(table) == 1)

    task.cancel()
    await asyncio.gather(task, return_exceptions=True)


@pytest.mark.asyncio
async def test_discovery_exchange_between_two_processes(network, alice, bob):
    a = Process(network, "10.0.0.1", alice)
    b = Process(network, "10.0.0.2", bob)
    a.start_listening()
    b.start_listening()

    try:
        await a.broadcaster.send_once()
        await wait_for(lambda: len(a.table) == 1)
    finally:
        await a.stop()
        await b.stop()

    peers = a.table.snapshot()
    assert len(peers) == 1
    assert (peers[0].token, peers[0].display_name, peers[0].address) == ("BBBBBBBBBB", "bob", "10.0.0.2")

    # A suppressed its own broadcast; B never broadcast so learned nothing
    assert a.responder.responded_count == 0
    assert b.responder.responded_count == 1
    assert len(b.table) == 0


def test_receive_loop_requires_datagram_handler(network):
    from lanpeers.discovery.broadcast import _ReceiveLoop

    class Incomplete(_ReceiveLoop):
        pass

    with pytest.raises(TypeError):
        Incomplete(network.endpoint("10.0.0.1", DISCOVERY_PORT))
