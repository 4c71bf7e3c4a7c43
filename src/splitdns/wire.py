"""Best-effort extraction of the question name from a raw DNS query.

Only the first question name is read. The 12-byte header is skipped without
validation and the trailing four bytes (QTYPE + QCLASS) are excluded from the
label scan. Compression pointers are recognized but not followed.
"""

from __future__ import annotations

import logging
from typing import List, NamedTuple, Optional

from .domain import MALFORMED_DOMAIN, DecodedDomain, Domain

logger = logging.getLogger(__name__)

HEADER_LEN = 12
QTYPE_QCLASS_LEN = 4
UNKNOWN_DOMAIN = "[unknown_domain]"


class MalformedQuery(Exception):
    """
    Brief: A label length points past the end of the question section.

    Inputs:
    - message: description

    Outputs:
    - Exception instance
    """

    pass


class Question(NamedTuple):
    domain: DecodedDomain
    qtype: Optional[int]
    qclass: Optional[int]


def _question_section(buffer: bytes) -> bytes:
    end = max(HEADER_LEN, len(buffer) - QTYPE_QCLASS_LEN)
    return bytes(buffer[HEADER_LEN:end])


def _read_labels(section: bytes) -> tuple[List[str], int]:
    """
    Brief: Walk length-prefixed labels until the root terminator.

    Inputs:
    - section: question-name bytes (header and QTYPE/QCLASS already removed)

    Outputs:
    - (labels, offset): decoded labels in reading order and the offset just
      past the last byte consumed.

    Raises MalformedQuery when a label runs past the end of the section. A
    compression pointer stops the scan and returns what was collected.
    """
    offset = 0
    labels: List[str] = []
    while offset < len(section):
        length = section[offset]
        if length == 0:
            offset += 1
            break
        if (length & 0xC0) == 0xC0:
            logger.warning(
                "DNS pointer encountered in domain name, partial name might be returned"
            )
            break
        offset += 1
        if offset + length > len(section):
            raise MalformedQuery(
                f"label length {length} at offset {offset - 1} exceeds question section"
            )
        labels.append(
            section[offset : offset + length].decode("utf-8", "surrogateescape")
        )
        offset += length
    return labels, offset


def _fallback_name(section: bytes) -> Domain:
    """Copy bytes up to the first zero as one opaque name."""
    raw = section.split(b"\x00", 1)[0]
    return Domain((raw.decode("latin-1") or UNKNOWN_DOMAIN,))


def extract_domain(buffer: bytes) -> DecodedDomain:
    """
    Brief: Extract the queried domain name from a raw DNS query.

    Inputs:
    - buffer: wire-format DNS query bytes (untrusted)

    Outputs:
    - Domain, or MALFORMED_DOMAIN when label boundaries cannot be determined.
      Never raises for malformed input.

    Example:
        >>> from dnslib import DNSRecord
        >>> str(extract_domain(DNSRecord.question("example.com").pack()))
        'example.com'
    """
    section = _question_section(buffer)
    try:
        labels, offset = _read_labels(section)
    except MalformedQuery as e:
        logger.warning("Malformed DNS query: %s", e)
        return MALFORMED_DOMAIN

    if not labels and offset <= 1:
        if offset == 1 and section[0] == 0:
            return Domain(())
        logger.warning(
            "Could not parse any labels from domain part: %s", section.hex()
        )
        return _fallback_name(section)

    return Domain(tuple(labels))


def extract_question(buffer: bytes) -> Question:
    """
    Brief: Extract the domain plus the trailing QTYPE/QCLASS of a query.

    Inputs:
    - buffer: wire-format DNS query bytes

    Outputs:
    - Question(domain, qtype, qclass); qtype/qclass are None when the buffer is
      too short to hold a header and the fixed question trailer.
    """
    domain = extract_domain(buffer)
    if len(buffer) < HEADER_LEN + QTYPE_QCLASS_LEN:
        return Question(domain, None, None)
    trailer = bytes(buffer[-QTYPE_QCLASS_LEN:])
    qtype = int.from_bytes(trailer[:2], "big")
    qclass = int.from_bytes(trailer[2:], "big")
    return Question(domain, qtype, qclass)
