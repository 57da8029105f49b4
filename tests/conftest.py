import asyncio

import pytest

from lanpeers.protocol import Identity

BROADCAST_IP = "255.255.255.255"


class FakeEndpoint:
    """In-memory stand-in for UDPEndpoint attached to a FakeNetwork."""

    def __init__(self, network, ip, port):
        self.network = network
        self.ip = ip
        self.port = port
        self.inbox = asyncio.Queue()
        self.sent = []
        self.fail_sends = False
        self.is_closed = False

    @property
    def local_address(self):
        return (self.ip, self.port)

    async def recvfrom(self):
        if self.is_closed:
            raise ConnectionError("Endpoint closed")
        return await self.inbox.get()

    async def sendto(self, data, addr):
        if self.fail_sends:
            raise OSError("Network is unreachable")
        self.sent.append((data, addr))
        self.network.deliver(data, self.local_address, addr)

    def close(self):
        self.is_closed = True


class FakeNetwork:
    """Routes datagrams between FakeEndpoints, including broadcasts."""

    def __init__(self):
        self.endpoints = {}
        self._next_port = 50000

    def endpoint(self, ip, port=None):
        if port is None:
            self._next_port += 1
            port = self._next_port
        endpoint = FakeEndpoint(self, ip, port)
        self.endpoints[(ip, port)] = endpoint
        return endpoint

    def deliver(self, data, source, dest):
        ip, port = dest
        if ip == BROADCAST_IP:
            targets = [e for (_, p), e in self.endpoints.items() if p == port]
        else:
            target = self.endpoints.get(dest)
            targets = [target] if target else []

        for target in targets:
            if not target.is_closed:
                target.inbox.put_nowait((data, source))


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def network():
    return FakeNetwork()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def alice():
    return Identity(token="AAAAAAAAAA", display_name="alice")


@pytest.fixture
def bob():
    return Identity(token="BBBBBBBBBB", display_name="bob")
