from __future__ import annotations

import argparse
import asyncio
import logging
import signal
from typing import List, Optional

from .classifier import DomainClassifier
from .config.config_parser import ProxyConfig, load_config
from .config.logging_config import init_logging
from .domain_file import ReferenceLoadError
from .servers.router import QueryRouter
from .servers.udp_server import serve_udp


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description=(
            "DNS proxy forwarding listed domains to a regional resolver and "
            "everything else over DNS-over-HTTPS"
        )
    )
    parser.add_argument("--config", default=None, help="Path to optional YAML config")
    parser.add_argument(
        "-f", "--domain-file", dest="domain_file", help="Reference domain list file"
    )
    parser.add_argument("-p", "--port", type=int, help="UDP listen port (default 5300)")
    parser.add_argument("--host", help="UDP listen address (default 0.0.0.0)")
    parser.add_argument(
        "-c",
        "--regional-server",
        dest="regional_server",
        help="Regional DNS server for listed domains (default 223.5.5.5)",
    )
    parser.add_argument(
        "-t",
        "--secure-server",
        dest="secure_server",
        help="DoH endpoint for other domains (default https://1.1.1.1/dns-query)",
    )
    parser.add_argument(
        "--log-level", dest="log_level", help="debug, info, warn, error, crit"
    )
    return parser


async def run_proxy(
    cfg: ProxyConfig,
    classifier: DomainClassifier,
    stop: Optional[asyncio.Event] = None,
) -> None:
    """
    Brief: Run the proxy until SIGINT/SIGTERM or until stop is set.

    Inputs:
      - cfg: validated ProxyConfig
      - classifier: DomainClassifier, fully built before the listener binds
      - stop: optional event used to request shutdown

    Outputs:
      - None
    """
    stop = stop or asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except (NotImplementedError, RuntimeError):  # pragma: no cover - platform
            pass

    router = QueryRouter(classifier, cfg.regional_server, cfg.secure_server)
    await serve_udp(cfg.listen.host, cfg.listen.port, router, stop)


def main(argv: List[str] | None = None) -> int:
    """
    Main entry point for the proxy.
    Parses arguments, loads configuration and the reference list, then serves.

    Args:
        argv: Command-line arguments.

    Returns:
        An exit code.

    Example use:
        CLI:
            PYTHONPATH=src python -m splitdns.main -f china_domains.txt -p 5300
    """
    args = build_parser().parse_args(argv)

    try:
        cfg = load_config(args)
    except ValueError as exc:
        print(str(exc))
        return 1

    init_logging(cfg.logging)
    logger = logging.getLogger("splitdns.main")

    # The reference list must be loaded before any query is accepted.
    try:
        classifier = DomainClassifier.from_file(cfg.domain_file)
    except ReferenceLoadError as e:
        logger.error("%s", e)
        return 1

    logger.info(
        "Regional server %s, DoH server %s, listening on %s:%d",
        cfg.regional_server,
        cfg.secure_server,
        cfg.listen.host,
        cfg.listen.port,
    )
    try:
        asyncio.run(run_proxy(cfg, classifier))
    except OSError as e:
        logger.error("UDP listener failed: %s", e)
        return 1
    except KeyboardInterrupt:  # pragma: no cover - interactive
        pass
    return 0


if __name__ == "__main__":
    raise SystemExit(main())  # pragma: no cover
