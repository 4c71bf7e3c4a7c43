from __future__ import annotations

import logging
import os
from typing import Iterator, List

logger = logging.getLogger(__name__)


class ReferenceLoadError(Exception):
    """
    Brief: The domain reference file could not be read.

    Inputs:
    - message: description

    Outputs:
    - Exception instance
    """

    pass


def _iter_domain_lines(path: str) -> Iterator[str]:
    """
    Yield stripped, non-empty lines from a UTF-8 file.

    There is no comment syntax: every non-blank line is a domain.
    """
    with open(path, "r", encoding="utf-8") as fh:
        for raw in fh:
            line = raw.strip()
            if not line:
                continue
            yield line


def load_domain_file(path: str) -> List[str]:
    """
    Brief: Read a newline-delimited list of reference domains.

    Inputs:
      - path: absolute path, or path relative to the current working directory.

    Outputs:
      - list[str]: domains in file order, surrounding whitespace removed.

    Raises ReferenceLoadError when the file is missing, unreadable or not UTF-8.

    Example:
        >>> # doctest: +SKIP
        >>> load_domain_file("china_domains.txt")[:2]
        ['cn', 'baidu.com']
    """
    full = path if os.path.isabs(path) else os.path.abspath(path)
    logger.debug("Opening reference domain file %s", full)
    try:
        return list(_iter_domain_lines(full))
    except (OSError, UnicodeDecodeError) as e:
        raise ReferenceLoadError(f"Cannot load domain file {full}: {e}") from e
