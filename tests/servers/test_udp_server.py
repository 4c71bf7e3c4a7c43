"""
Brief: End-to-end tests for the listening UDP endpoint.

Inputs:
  - None

Outputs:
  - None
"""

import asyncio
import socket
import threading
import time

import httpx
import pytest
from dnslib import DNSRecord

from splitdns.classifier import DomainClassifier
from splitdns.servers.router import QueryRouter
from splitdns.servers.transports.udp import udp_query
from splitdns.servers.udp_server import serve_udp, start_udp_listener


class _RegionalStub:
    def __init__(self):
        self.sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        self.sock.bind(("127.0.0.1", 0))
        self.addr = self.sock.getsockname()
        self.received = []
        self._stop = False
        self.thread = threading.Thread(target=self._loop, daemon=True)

    def start(self):
        self.thread.start()
        time.sleep(0.02)

    def _loop(self):
        while not self._stop:
            try:
                self.sock.settimeout(0.2)
                data, peer = self.sock.recvfrom(4096)
            except Exception:
                continue
            self.received.append(data)
            try:
                self.sock.sendto(b"R" + data, peer)
            except Exception:
                pass

    def close(self):
        self._stop = True
        try:
            self.sock.close()
        except Exception:
            pass


@pytest.fixture
def regional_stub():
    s = _RegionalStub()
    s.start()
    try:
        yield s
    finally:
        s.close()


def _make_router(regional_port, posted):
    def handler(request):
        posted.append(request.content)
        return httpx.Response(200, content=b"S" + request.content)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    router = QueryRouter(
        DomainClassifier.from_domains(["cn"]),
        "127.0.0.1",
        "https://doh.test/dns-query",
        regional_port=regional_port,
        http_client=client,
    )
    return router, client


def test_udp_listener_routes_both_paths(regional_stub):
    """
    Brief: A real client gets regional and DoH answers relayed byte-for-byte.

    Inputs:
      - regional_stub: local UDP resolver

    Outputs:
      - None: Asserts both responses and upstream payloads
    """
    regional_q = DNSRecord.question("baidu.cn").pack()
    secure_q = DNSRecord.question("google.com").pack()
    posted = []

    async def scenario():
        router, client = _make_router(regional_stub.addr[1], posted)
        transport, _ = await start_udp_listener("127.0.0.1", 0, router)
        try:
            port = transport.get_extra_info("sockname")[1]
            return await asyncio.wait_for(
                asyncio.gather(
                    udp_query("127.0.0.1", port, regional_q),
                    udp_query("127.0.0.1", port, secure_q),
                ),
                3,
            )
        finally:
            transport.close()
            await client.aclose()

    regional_resp, secure_resp = asyncio.run(scenario())
    assert regional_resp == b"R" + regional_q
    assert secure_resp == b"S" + secure_q
    assert regional_stub.received == [regional_q]
    assert posted == [secure_q]


def test_serve_udp_stops_and_closes_client():
    posted = []

    async def scenario():
        router, client = _make_router(53, posted)
        router._owns_client = True
        stop = asyncio.Event()
        task = asyncio.create_task(serve_udp("127.0.0.1", 0, router, stop))
        await asyncio.sleep(0.05)
        assert router.transport is not None
        stop.set()
        await asyncio.wait_for(task, 2)
        return router.transport.is_closing(), client.is_closed

    closing, client_closed = asyncio.run(scenario())
    assert closing is True
    assert client_closed is True
    assert posted == []
