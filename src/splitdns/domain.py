from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Tuple, Union


@dataclass(frozen=True)
class Domain:
    """Brief: An ordered sequence of DNS labels, most-specific label first.

    Inputs:
      - labels: tuple of non-empty label strings (e.g. ("example", "com")).

    Outputs:
      - Domain instance; str() joins labels with '.' and renders the root
        domain (no labels) as '.'.

    Example:
        >>> str(Domain(("example", "com")))
        'example.com'
        >>> str(Domain(()))
        '.'
    """

    labels: Tuple[str, ...]

    @classmethod
    def from_text(cls, text: str) -> "Domain":
        """Brief: Split a presentation-format name on '.' into a Domain.

        Inputs:
          - text: domain name such as 'www.example.com' or '.'.

        Outputs:
          - Domain: labels in reading order. Only the bare root '.' maps to the
            zero-label domain; no case folding is applied.

        Example:
            >>> Domain.from_text("Example.COM").labels
            ('Example', 'COM')
        """
        if text in ("", "."):
            return cls(())
        return cls(tuple(text.split(".")))

    @property
    def is_root(self) -> bool:
        return not self.labels

    def __str__(self) -> str:
        if not self.labels:
            return "."
        return ".".join(self.labels)


class _Malformed:
    """Sentinel returned by the decoder when label boundaries cannot be found."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "MALFORMED_DOMAIN"

    def __str__(self) -> str:
        return "[malformed_domain]"

    def __bool__(self) -> bool:
        return False


MALFORMED_DOMAIN = _Malformed()

DecodedDomain = Union[Domain, _Malformed]


class ForwardingDecision(str, enum.Enum):
    """Outcome of classification: which forwarding path a query takes."""

    REGIONAL = "regional"
    SECURE = "secure"
