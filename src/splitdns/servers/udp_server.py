import asyncio
import logging
from typing import Optional, Tuple

from .router import QueryRouter

logger = logging.getLogger("splitdns.server")


class DNSProxyProtocol(asyncio.DatagramProtocol):
    """
    Listening UDP endpoint: every datagram becomes its own routing task.

    Example use:
        This protocol is created by serve_udp and is not typically
        instantiated directly.
    """

    def __init__(self, router: QueryRouter) -> None:
        self.router = router
        self.transport: Optional[asyncio.DatagramTransport] = None

    def connection_made(self, transport) -> None:
        self.transport = transport
        self.router.attach(transport)
        sockname = transport.get_extra_info("sockname")
        logger.info("UDP server is listening on %s:%s", sockname[0], sockname[1])

    def datagram_received(self, data: bytes, addr: Tuple[str, int]) -> None:
        self.router.spawn(data, addr)

    def error_received(self, exc: Exception) -> None:
        # ICMP errors from earlier sends to clients; the listener keeps running.
        logger.debug("UDP listener error: %s", exc)


async def start_udp_listener(
    host: str, port: int, router: QueryRouter
) -> Tuple[asyncio.DatagramTransport, DNSProxyProtocol]:
    """
    Brief: Bind the listening datagram socket and attach it to the router.

    Inputs:
    - host: listen address
    - port: listen port (0 picks an ephemeral port)
    - router: QueryRouter handling each datagram

    Outputs:
    - (transport, protocol); the caller owns the transport and must close it.
    """
    loop = asyncio.get_running_loop()
    transport, protocol = await loop.create_datagram_endpoint(
        lambda: DNSProxyProtocol(router), local_addr=(host, int(port))
    )
    return transport, protocol


async def serve_udp(
    host: str,
    port: int,
    router: QueryRouter,
    stop: Optional[asyncio.Event] = None,
) -> None:
    """
    Brief: Serve the proxy on host:port until stop is set.

    Inputs:
    - host: listen address
    - port: listen port
    - router: QueryRouter
    - stop: optional event; when None the server runs until cancelled

    Outputs:
    - None. The listening socket and the router's HTTP client are released on
      every exit path.

    Example:
        >>> # doctest: +SKIP
        >>> asyncio.run(serve_udp('0.0.0.0', 5300, router))
    """
    stop = stop or asyncio.Event()
    transport = None
    try:
        transport, _ = await start_udp_listener(host, port, router)
        await stop.wait()
    finally:
        if transport is not None:
            logger.info("Stopping UDP server")
            transport.close()
        await router.aclose()
