"""
Brief: Tests for splitdns.config.logging_config init_logging and formatters.

Inputs:
  - None

Outputs:
  - None
"""

import asyncio
import logging
import logging.handlers
from pathlib import Path

import httpx
import pytest

from splitdns.classifier import DomainClassifier
from splitdns.config.logging_config import (
    BracketLevelFormatter,
    SyslogFormatter,
    init_logging,
    install_request_id_factory,
    uninstall_request_id_factory,
)
from splitdns.context import request_context
from splitdns.servers.router import QueryRouter


@pytest.fixture(autouse=True)
def restore_root_logger():
    """
    Brief: Restore root handlers, level and record factory after each test.

    Inputs:
      - None

    Outputs:
      - None
    """
    root = logging.getLogger()
    level = root.level
    yield
    for h in list(root.handlers):
        if isinstance(h.formatter, (BracketLevelFormatter, SyslogFormatter)):
            root.removeHandler(h)
            h.close()
    root.setLevel(level)
    logging.captureWarnings(False)
    uninstall_request_id_factory()


def test_init_logging_adds_stderr_handler():
    init_logging({"level": "debug"})
    root = logging.getLogger()
    assert root.level == logging.DEBUG
    assert any(isinstance(h, logging.StreamHandler) for h in root.handlers)


def test_init_logging_file_handler_writes_request_id(tmp_path):
    """
    Brief: File entries carry the level tag and the active correlation id.

    Inputs:
      - tmp_path: pytest fixture

    Outputs:
      - None: Asserts message, tag and ids in file
    """
    log_path = tmp_path / "logs" / "splitdns.log"
    init_logging({"level": "info", "file": str(log_path), "stderr": False})
    log = logging.getLogger("splitdns.test")
    log.info("outside message")
    with request_context("req-123"):
        log.info("inside message")
    for h in logging.getLogger().handlers:
        h.flush()
    content = Path(log_path).read_text(encoding="utf-8")
    assert "[info] splitdns.test [-]: outside message" in content
    assert "[info] splitdns.test [req-123]: inside message" in content


def test_record_factory_tags_records(caplog):
    install_request_id_factory()
    install_request_id_factory()
    caplog.set_level(logging.INFO, logger="splitdns.test")
    log = logging.getLogger("splitdns.test")
    with request_context("abc"):
        log.info("tagged")
    log.info("untagged")
    assert [r.req_id for r in caplog.records] == ["abc", "-"]


def test_init_logging_syslog_success(monkeypatch):
    created = {}

    class DummySysLogHandler(logging.Handler):
        LOG_USER = 8
        LOG_LOCAL0 = 128

        def __init__(self, address=None, facility=None):
            super().__init__()
            created["address"] = address
            created["facility"] = facility

        def setFormatter(self, fmt):
            created["formatter"] = fmt
            super().setFormatter(fmt)

        def emit(self, record):
            pass

    monkeypatch.setattr(logging.handlers, "SysLogHandler", DummySysLogHandler)
    init_logging({"syslog": True, "stderr": False})
    assert created["address"] == "/dev/log"
    assert isinstance(created["formatter"], SyslogFormatter)

    created.clear()
    init_logging({"syslog": {"address": ("localhost", 514), "facility": "LOCAL0"}})
    assert created.get("address") == ("localhost", 514)
    assert created.get("facility") == 128


def test_unknown_level_defaults_to_info():
    init_logging({"level": "chatty", "stderr": False})
    assert logging.getLogger().level == logging.INFO


def test_formatters_produce_expected_tags():
    fmt = BracketLevelFormatter(
        fmt="%(asctime)s %(level_tag)s %(name)s [%(req_id)s]: %(message)s"
    )
    rec = logging.LogRecord("n", logging.ERROR, __file__, 1, "m", (), None)
    out = fmt.format(rec)
    assert "[error] n [-]: m" in out
    assert out.split(" ", 1)[0].endswith("Z")

    rec2 = logging.LogRecord("n", logging.WARNING, __file__, 1, "w", (), None)
    rec2.req_id = "r1"
    assert SyslogFormatter().format(rec2) == "[warn] n [r1]: w"


class _Sink:
    def __init__(self):
        self.sent = []

    def sendto(self, data, addr):
        self.sent.append((data, addr))

    def is_closing(self):
        return False


def test_file_log_survives_non_utf8_label(tmp_path):
    """
    Brief: A query whose label bytes are not UTF-8 is logged and still relayed.

    Inputs:
      - tmp_path: pytest fixture

    Outputs:
      - None: Asserts escaped label in the file and the relayed response
    """
    log_path = tmp_path / "splitdns.log"
    init_logging({"level": "info", "file": str(log_path), "stderr": False})
    query = (
        b"\x12\x34\x01\x00\x00\x01\x00\x00\x00\x00\x00\x00"
        + b"\x02\xff\xfe\x03com\x00"
        + b"\x00\x01\x00\x01"
    )

    def handler(request):
        return httpx.Response(200, content=b"\x12\x34answer")

    async def scenario():
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        router = QueryRouter(
            DomainClassifier.from_domains(["cn"]),
            "127.0.0.1",
            "https://doh.test/dns-query",
            http_client=client,
        )
        sink = _Sink()
        router.attach(sink)
        try:
            return await router.route(query, ("192.0.2.10", 40000)), sink
        finally:
            await client.aclose()

    relayed, sink = asyncio.run(scenario())
    for h in logging.getLogger().handlers:
        h.flush()
    content = log_path.read_text(encoding="utf-8")
    assert relayed is True
    assert sink.sent == [(b"\x12\x34answer", ("192.0.2.10", 40000))]
    assert "Received DNS query \\udcff\\udcfe.com A from 192.0.2.10:40000" in content
    assert "Successfully forwarded secure response" in content


def test_syslog_formatter_escapes_non_utf8_label():
    rec = logging.LogRecord(
        "n", logging.INFO, __file__, 1, "query %s", ("\udcff.cn",), None
    )
    out = SyslogFormatter().format(rec)
    out.encode("utf-8")
    assert out == "[info] n [-]: query \\udcff.cn"
