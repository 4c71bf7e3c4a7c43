"""Decode, classify and forward each inbound query down one of two paths.

Per query: Received -> Decoded -> Classified -> ForwardingRegional or
ForwardingSecure -> Relayed or Dropped. There are no retries, no timeouts and
no cap on in-flight queries; a failed forward is logged and the client gets no
answer.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, Set, Tuple

import httpx
from dnslib import QTYPE

from ..classifier import DomainClassifier
from ..context import with_new_context_async
from ..domain import ForwardingDecision
from ..wire import extract_question
from .transports.doh import DoHError, doh_query, make_client
from .transports.udp import RegionalForwardError, udp_query

logger = logging.getLogger("splitdns.router")

DNS_PORT = 53

Address = Tuple[str, int]


class QueryRouter:
    """
    Routes raw DNS queries to a regional resolver or a DoH resolver.

    Inputs:
      - classifier: DomainClassifier built from the reference list
      - regional_host: regional resolver address (plain UDP)
      - secure_url: DoH endpoint URL
      - regional_port: regional resolver port (standard DNS port by default)
      - http_client: optional httpx.AsyncClient; one is created when omitted
        and the router then owns it.

    Example use:
        >>> # doctest: +SKIP
        >>> router = QueryRouter(classifier, "223.5.5.5", "https://1.1.1.1/dns-query")
        >>> router.attach(listen_transport)
        >>> router.spawn(data, ("192.0.2.10", 40000))
    """

    def __init__(
        self,
        classifier: DomainClassifier,
        regional_host: str,
        secure_url: str,
        *,
        regional_port: int = DNS_PORT,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.classifier = classifier
        self.regional_host = regional_host
        self.regional_port = int(regional_port)
        self.secure_url = secure_url
        self._owns_client = http_client is None
        self.http_client = http_client if http_client is not None else make_client()
        self.transport: Optional[asyncio.DatagramTransport] = None
        self._tasks: Set[asyncio.Task] = set()

    def attach(self, transport: asyncio.DatagramTransport) -> None:
        """Bind the listening transport used to relay responses to clients."""
        self.transport = transport

    def spawn(self, data: bytes, client: Address) -> asyncio.Task:
        """
        Brief: Start independent processing of one datagram.

        Inputs:
          - data: raw query bytes
          - client: (host, port) of the requester

        Outputs:
          - asyncio.Task running route(); a strong reference is held until it
            finishes.
        """
        task = asyncio.get_running_loop().create_task(self.route(data, client))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def route(self, data: bytes, client: Address) -> bool:
        """
        Brief: Process one query under a fresh correlation id.

        Inputs:
          - data: raw query bytes (never modified)
          - client: (host, port) of the requester

        Outputs:
          - bool: True when a response was relayed, False when dropped.
        """
        return await with_new_context_async(self._route, data, client)

    async def _route(self, data: bytes, client: Address) -> bool:
        question = extract_question(data)
        qtype_name = (
            QTYPE.get(question.qtype, f"TYPE{question.qtype}")
            if question.qtype is not None
            else "?"
        )
        logger.info(
            "Received DNS query %s %s from %s:%s",
            question.domain,
            qtype_name,
            client[0],
            client[1],
        )

        decision = self.classifier.classify(question.domain)
        logger.info("Domain %s classified %s", question.domain, decision.value)

        try:
            if decision is ForwardingDecision.REGIONAL:
                logger.info(
                    "Forwarding to regional server %s:%d",
                    self.regional_host,
                    self.regional_port,
                )
                response = await udp_query(self.regional_host, self.regional_port, data)
            else:
                logger.info("Forwarding to DoH server %s", self.secure_url)
                response = await doh_query(self.http_client, self.secure_url, data)
        except RegionalForwardError as e:
            logger.error(
                "Regional forward to %s:%d failed, dropping query: %s",
                self.regional_host,
                self.regional_port,
                e,
            )
            return False
        except DoHError as e:
            logger.error(
                "DoH forward to %s failed, dropping query: %s", self.secure_url, e
            )
            return False
        except Exception:  # pragma: no cover - outermost per-query guard
            logger.exception("Unexpected error forwarding query, dropping")
            return False

        return self._relay(response, client, decision)

    def _relay(self, response: bytes, client: Address, decision: ForwardingDecision) -> bool:
        transport = self.transport
        if transport is None or transport.is_closing():
            logger.error("Listening socket unavailable, dropping response")
            return False
        try:
            transport.sendto(response, client)
        except OSError as e:
            logger.error("Failed to relay response to %s:%s: %s", client[0], client[1], e)
            return False
        logger.info(
            "Successfully forwarded %s response to client %s:%s",
            decision.value,
            client[0],
            client[1],
        )
        return True

    async def aclose(self) -> None:
        """Close the HTTP client when this router created it."""
        if self._owns_client:
            await self.http_client.aclose()
