import importlib.metadata
import urllib.parse
from typing import Dict, Optional

import httpx

try:
    SPLITDNS_VERSION = importlib.metadata.version("splitdns")
except (
    Exception
):  # pragma: no cover - metadata missing when not installed
    SPLITDNS_VERSION = "unknown"

DNS_MESSAGE = "application/dns-message"


class DoHError(Exception):
    """
    Brief: DNS-over-HTTPS transport error on the secure path.

    Inputs:
    - message: Description of the error

    Outputs:
    - Exception instance
    """

    pass


def make_client(**kwargs) -> httpx.AsyncClient:
    """
    Brief: Build the shared AsyncClient used for secure forwards.

    Inputs:
    - kwargs: extra httpx.AsyncClient arguments (e.g. transport for tests)

    Outputs:
    - httpx.AsyncClient with no request timeout and no connection cap, so a
      stalled upstream holds only its own request and concurrency is unbounded.
      Redirects are followed; 307/308 replay the POST body.
    """
    kwargs.setdefault("timeout", None)
    kwargs.setdefault("follow_redirects", True)
    kwargs.setdefault(
        "limits", httpx.Limits(max_connections=None, max_keepalive_connections=20)
    )
    return httpx.AsyncClient(**kwargs)


async def doh_query(
    client: httpx.AsyncClient,
    url: str,
    query: bytes,
    *,
    headers: Optional[Dict[str, str]] = None,
) -> bytes:
    """
    Brief: POST a wire-format DNS query to a DoH endpoint (RFC 8484).

    Inputs:
    - client: shared httpx.AsyncClient
    - url: DoH endpoint, e.g. https://1.1.1.1/dns-query
    - query: wire-format DNS query bytes, sent unmodified as the body
    - headers: optional extra headers

    Outputs:
    - bytes: response body, verbatim

    Raises DoHError for unsupported schemes, transport errors and non-2xx
    statuses.
    """
    parsed = urllib.parse.urlparse(url)
    if parsed.scheme not in ("https", "http"):
        raise DoHError(f"Unsupported URL scheme: {parsed.scheme}")

    extra_headers = {k: v for (k, v) in (headers or {}).items()}
    if not any(k.lower() == "user-agent" for k in extra_headers):
        extra_headers["User-Agent"] = f"splitdns v{SPLITDNS_VERSION}"
    hdrs = {"Content-Type": DNS_MESSAGE, "Accept": DNS_MESSAGE, **extra_headers}

    try:
        resp = await client.post(url, content=query, headers=hdrs)
    except httpx.HTTPError as e:
        raise DoHError(f"Network error: {e}") from e
    if not resp.is_success:
        raise DoHError(f"HTTP {resp.status_code}: {resp.reason_phrase}")
    return resp.content
