import asyncio

import pytest

from lanpeers.discovery import UDPEndpoint, SocketSetupError, PeerTable, ResponseListener
from lanpeers.protocol import PeerMessage, encode

# TEST-NET-3, never assigned to a local interface
UNASSIGNED_IP = "203.0.113.1"


@pytest.mark.asyncio
async def test_loopback_datagram():
    receiver = UDPEndpoint.bind(0, "127.0.0.1", broadcast=False)
    sender = UDPEndpoint.bind(0, "127.0.0.1", broadcast=False)

    try:
        await sender.sendto(b"ping", receiver.local_address)
        data, addr = await asyncio.wait_for(receiver.recvfrom(), 2.0)
    finally:
        sender.close()
        receiver.close()

    assert data == b"ping"
    assert addr == sender.local_address


def test_bind_failure_is_setup_error():
    with pytest.raises(SocketSetupError):
        UDPEndpoint.bind(0, UNASSIGNED_IP)


def test_setup_error_is_os_error():
    assert issubclass(SocketSetupError, OSError)


def test_broadcaster_socket_opens_and_closes():
    endpoint = UDPEndpoint.broadcaster()
    assert not endpoint.is_closed

    endpoint.close()
    endpoint.close()
    assert endpoint.is_closed


@pytest.mark.asyncio
async def test_closed_endpoint_refuses_io():
    endpoint = UDPEndpoint.bind(0, "127.0.0.1")
    endpoint.close()

    with pytest.raises(ConnectionError):
        await endpoint.recvfrom()
    with pytest.raises(ConnectionError):
        await endpoint.sendto(b"x", ("127.0.0.1", 9))


@pytest.mark.asyncio
async def test_response_listener_over_real_socket(bob):
    table = PeerTable()
    endpoint = UDPEndpoint.bind(0, "127.0.0.1", broadcast=False)
    listener = ResponseListener(endpoint, table)
    task = asyncio.create_task(listener.run())

    sender = UDPEndpoint.bind(0, "127.0.0.1", broadcast=False)
    try:
        await sender.sendto(encode(PeerMessage.response(bob)), endpoint.local_address)

        async def poll():
            while len(table) == 0:
                await asyncio.sleep(0.01)
        await asyncio.wait_for(poll(), 2.0)
    finally:
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        sender.close()
        endpoint.close()

    peer = table.get("BBBBBBBBBB")
    assert (peer.address, peer.display_name) == ("127.0.0.1", "bob")
