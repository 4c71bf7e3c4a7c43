from __future__ import annotations

import logging
import logging.handlers
import os
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from ..context import get_current_id

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "crit": logging.CRITICAL,
    "critical": logging.CRITICAL,
}

NO_REQUEST_ID = "-"

_base_record_factory = None


def install_request_id_factory() -> None:
    """
    Tag every LogRecord with ``req_id``, the current correlation id.

    Records created outside a request scope get ``-``. Installing twice is a
    no-op.
    """
    global _base_record_factory
    if _base_record_factory is not None:
        return
    base = logging.getLogRecordFactory()

    def factory(*args, **kwargs):
        record = base(*args, **kwargs)
        record.req_id = get_current_id() or NO_REQUEST_ID
        return record

    _base_record_factory = base
    logging.setLogRecordFactory(factory)


def uninstall_request_id_factory() -> None:
    global _base_record_factory
    if _base_record_factory is None:
        return
    logging.setLogRecordFactory(_base_record_factory)
    _base_record_factory = None


class SyslogFormatter(logging.Formatter):
    """Formatter for syslog output without timestamps (syslog adds its own)."""

    _TAGS = {
        logging.DEBUG: "[debug]",
        logging.INFO: "[info]",
        logging.WARNING: "[warn]",
        logging.ERROR: "[error]",
        logging.CRITICAL: "[crit]",
    }

    def format(self, record):
        """Add level_tag attribute and format without timestamp."""
        record.level_tag = self._TAGS.get(record.levelno, f"[lvl{record.levelno}]")
        req_id = getattr(record, "req_id", NO_REQUEST_ID)
        line = f"{record.level_tag} {record.name} [{req_id}]: {record.getMessage()}"
        # SysLogHandler encodes strictly as UTF-8.
        return line.encode("utf-8", "backslashreplace").decode("utf-8")


class BracketLevelFormatter(logging.Formatter):
    """Bracketed lowercase level tags, UTC timestamps and the request id."""

    _TAGS = {
        logging.DEBUG: "[debug]",
        logging.INFO: "[info]",
        logging.WARNING: "[warn]",
        logging.ERROR: "[error]",
        logging.CRITICAL: "[crit]",
    }

    def formatTime(self, record, datefmt=None):
        """Format the record time as UTC ISO-8601 with Z suffix."""
        return datetime.fromtimestamp(record.created, timezone.utc).strftime(
            "%Y-%m-%dT%H:%M:%SZ"
        )

    def format(self, record):
        """Add level_tag (and req_id when missing) and format the record."""
        record.level_tag = self._TAGS.get(record.levelno, f"[lvl{record.levelno}]")
        if not hasattr(record, "req_id"):
            record.req_id = NO_REQUEST_ID
        return super().format(record)


def init_logging(cfg: Optional[Dict[str, Any]]) -> None:
    """
    Initialize logging configuration based on the provided config.

    Args:
        cfg: Logging configuration dictionary with optional keys:
            - level: debug, info, warn, error, crit (default: info)
            - stderr: boolean to log to stderr (default: True)
            - file: string path to log file (optional)
            - syslog: boolean or dict to enable syslog logging (optional)
                Can be a boolean (True uses defaults) or a dict with:
                - address: Unix socket path (default: /dev/log)
                - facility: syslog facility (default: USER)

    Example config:
        {
            "level": "info",
            "stderr": True,
            "file": "./splitdns.log",
            "syslog": True
        }
    """
    cfg = cfg or {}

    install_request_id_factory()

    level_str = str(cfg.get("level", "info")).lower()
    level = _LEVELS.get(level_str, logging.INFO)

    fmt = "%(asctime)s %(level_tag)s %(name)s [%(req_id)s]: %(message)s"
    formatter = BracketLevelFormatter(fmt=fmt)

    root = logging.getLogger()
    root.setLevel(level)

    # Remove existing handlers to avoid duplicates
    for h in list(root.handlers):
        root.removeHandler(h)

    if cfg.get("stderr", True):
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(formatter)
        root.addHandler(stderr_handler)

    file_path = cfg.get("file")
    if isinstance(file_path, str) and file_path.strip():
        path = os.path.abspath(os.path.expanduser(file_path.strip()))
        os.makedirs(os.path.dirname(path), exist_ok=True)
        # Decoded labels may carry surrogate escapes for non-UTF-8 bytes.
        file_handler = logging.FileHandler(
            path, mode="a", encoding="utf-8", errors="backslashreplace"
        )
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    syslog_cfg = cfg.get("syslog")
    if syslog_cfg:
        try:
            if isinstance(syslog_cfg, dict):
                address = syslog_cfg.get("address", "/dev/log")
                facility = getattr(
                    logging.handlers.SysLogHandler,
                    f"LOG_{syslog_cfg.get('facility', 'USER').upper()}",
                    logging.handlers.SysLogHandler.LOG_USER,
                )
            else:
                address = "/dev/log"
                facility = logging.handlers.SysLogHandler.LOG_USER

            syslog_handler = logging.handlers.SysLogHandler(
                address=address, facility=facility
            )
            syslog_handler.setFormatter(SyslogFormatter())
            root.addHandler(syslog_handler)
        except (
            OSError,
            ValueError,
        ) as e:  # pragma: no cover - environment-specific: syslog socket may be absent
            root.warning(f"Failed to configure syslog: {e}")

    logging.captureWarnings(True)
