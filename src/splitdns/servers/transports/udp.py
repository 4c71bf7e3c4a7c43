import asyncio
from typing import Optional, Tuple


class RegionalForwardError(Exception):
    """
    Brief: DNS-over-UDP forwarding error on the regional path.

    Inputs:
    - message: description

    Outputs:
    - Exception instance
    """

    pass


class _OneShotProtocol(asyncio.DatagramProtocol):
    """Resolves a future with the first datagram received on the endpoint."""

    def __init__(self, loop: asyncio.AbstractEventLoop) -> None:
        self.reply: asyncio.Future = loop.create_future()

    def datagram_received(self, data: bytes, addr: Tuple[str, int]) -> None:
        if not self.reply.done():
            self.reply.set_result(data)

    def error_received(self, exc: Exception) -> None:
        if not self.reply.done():
            self.reply.set_exception(exc)

    def connection_lost(self, exc: Optional[Exception]) -> None:
        if not self.reply.done():
            self.reply.set_exception(
                exc or ConnectionError("transient socket closed before reply")
            )


async def udp_query(host: str, port: int, query: bytes) -> bytes:
    """
    Brief: Send one query over a transient UDP socket and await one reply.

    Inputs:
    - host: upstream resolver host/IP
    - port: upstream UDP port
    - query: wire-format DNS query bytes, sent unmodified

    Outputs:
    - bytes: the first datagram received back, verbatim

    No timeout is applied: without a reply the call waits until cancelled. The
    transient socket is closed on every exit path.

    Example:
        >>> # doctest: +SKIP
        >>> asyncio.run(udp_query('223.5.5.5', 53, query))
    """
    loop = asyncio.get_running_loop()
    try:
        transport, protocol = await loop.create_datagram_endpoint(
            lambda: _OneShotProtocol(loop), remote_addr=(host, int(port))
        )
    except OSError as e:
        raise RegionalForwardError(f"UDP error: {e}") from e
    try:
        transport.sendto(query)
        return await protocol.reply
    except OSError as e:
        raise RegionalForwardError(f"UDP error: {e}") from e
    finally:
        transport.close()
