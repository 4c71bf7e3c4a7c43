"""Configuration parsing and normalization helpers for splitdns.

Brief:
  Settings come from an optional YAML file and from CLI flags; flags win.
  The merged mapping is validated with the ProxyConfig pydantic model.

Inputs:
  - YAML config paths and argparse namespaces

Outputs:
  - ProxyConfig instances
"""

from __future__ import annotations

import argparse
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, Field

DEFAULT_REGIONAL_SERVER = "223.5.5.5"
DEFAULT_SECURE_SERVER = "https://1.1.1.1/dns-query"
DEFAULT_LISTEN_HOST = "0.0.0.0"
DEFAULT_LISTEN_PORT = 5300


class ListenConfig(BaseModel):
    """Brief: Listening socket address.

    Inputs:
      - host: bind address.
      - port: bind port (0 picks an ephemeral port).
    """

    host: str = Field(default=DEFAULT_LISTEN_HOST)
    port: int = Field(default=DEFAULT_LISTEN_PORT, ge=0, le=65535)

    class Config:
        extra = "forbid"


class ProxyConfig(BaseModel):
    """Brief: Typed configuration model validated at startup.

    Inputs:
      - domain_file: path to the newline-delimited reference domain list.
      - regional_server: plain-DNS resolver used for matching domains.
      - secure_server: DoH endpoint used for everything else.
      - listen: ListenConfig.
      - logging: mapping passed to init_logging.

    Outputs:
      - ProxyConfig instance with normalized types.
    """

    domain_file: str
    regional_server: str = Field(default=DEFAULT_REGIONAL_SERVER)
    secure_server: str = Field(default=DEFAULT_SECURE_SERVER)
    listen: ListenConfig = Field(default_factory=ListenConfig)
    logging: Dict[str, Any] = Field(default_factory=dict)

    class Config:
        extra = "forbid"


def read_config_file(config_path: Optional[str]) -> Dict[str, Any]:
    """Brief: Read a YAML configuration file into a mapping.

    Inputs:
      - config_path: path to YAML, or None for an empty configuration.

    Outputs:
      - dict: parsed mapping (empty when the file is empty).

    Raises:
      - ValueError: when the file cannot be read or its root is not a mapping.
    """

    if not config_path:
        return {}
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            cfg = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise ValueError(f"Cannot read config file {config_path}: {exc}") from exc

    if not isinstance(cfg, dict):
        raise ValueError("Configuration root must be a mapping")
    return cfg


def _apply_cli_overrides(cfg: Dict[str, Any], args: argparse.Namespace) -> Dict[str, Any]:
    """Brief: Overlay explicitly given CLI flags onto a config mapping.

    Inputs:
      - cfg: mapping from the YAML file (not mutated).
      - args: argparse namespace; attributes left as None are ignored.

    Outputs:
      - dict: merged mapping.
    """

    merged = dict(cfg)
    listen = dict(merged.get("listen") or {})
    log_cfg = dict(merged.get("logging") or {})

    for attr in ("domain_file", "regional_server", "secure_server"):
        val = getattr(args, attr, None)
        if val is not None:
            merged[attr] = val
    if getattr(args, "host", None) is not None:
        listen["host"] = args.host
    if getattr(args, "port", None) is not None:
        listen["port"] = args.port
    if getattr(args, "log_level", None) is not None:
        log_cfg["level"] = args.log_level

    if listen:
        merged["listen"] = listen
    if log_cfg:
        merged["logging"] = log_cfg
    return merged


def load_config(args: argparse.Namespace) -> ProxyConfig:
    """Brief: Build the validated runtime configuration.

    Inputs:
      - args: parsed CLI namespace (config, domain_file, port, ...).

    Outputs:
      - ProxyConfig.

    Raises:
      - ValueError: for unreadable files or invalid/missing settings.

    Example:
      >>> ns = argparse.Namespace(config=None, domain_file="cn.txt", port=None)
      >>> load_config(ns).listen.port
      5300
    """

    cfg = _apply_cli_overrides(read_config_file(getattr(args, "config", None)), args)
    try:
        return ProxyConfig(**cfg)
    except Exception as exc:
        raise ValueError(f"Invalid configuration: {exc}") from exc
