"""Label-aligned suffix matching of domains against a reference list.

Domains are inserted TLD-first, so "www.example.cn" becomes the path
cn -> example -> www. A query matches when the walk from the root passes
through a node that terminates a registered entry, which means the query is
either equal to that entry or a subdomain of it on label boundaries. A raw
string suffix is never enough: "cn" matches "example.cn" but not "bacn".

Nodes live in parallel lists addressed by integer index. The structure is
built once at startup and only read afterwards, so concurrent lookups need no
locking.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Union

from .domain import Domain, DecodedDomain, ForwardingDecision
from .domain_file import load_domain_file

logger = logging.getLogger(__name__)

_ROOT = 0


def _as_domain(domain: Union[DecodedDomain, str]):
    if isinstance(domain, str):
        return Domain.from_text(domain)
    return domain


class DomainTrie:
    """Suffix trie keyed by domain labels, read right to left."""

    def __init__(self) -> None:
        self._children: List[Dict[str, int]] = [{}]
        self._terminal: List[bool] = [False]
        self._count = 0

    @classmethod
    def build(cls, domains: Iterable[Union[Domain, str]]) -> "DomainTrie":
        """
        Brief: Construct a trie from an iterable of reference domains.

        Inputs:
          - domains: Domain objects or presentation strings.

        Outputs:
          - DomainTrie with every entry registered.

        Example:
            >>> trie = DomainTrie.build(["cn", "example.com"])
            >>> trie.matches("www.example.com"), trie.matches("bacn")
            (True, False)
        """
        trie = cls()
        for d in domains:
            trie.add(d)
        return trie

    @property
    def node_count(self) -> int:
        return len(self._children)

    def __len__(self) -> int:
        return self._count

    def _new_node(self) -> int:
        self._children.append({})
        self._terminal.append(False)
        return len(self._children) - 1

    def add(self, domain: Union[Domain, str]) -> None:
        """
        Brief: Register a domain and, implicitly, all of its subdomains.

        Inputs:
          - domain: Domain or presentation string.

        Outputs:
          - None. Re-adding an existing entry is a no-op.
        """
        d = _as_domain(domain)
        if not isinstance(d, Domain) or d.is_root:
            logger.warning("Ignoring reference entry without labels: %r", domain)
            return
        if "" in d.labels:
            logger.warning("Ignoring reference entry with an empty label: %r", domain)
            return
        node = _ROOT
        for label in reversed(d.labels):
            child = self._children[node].get(label)
            if child is None:
                child = self._new_node()
                self._children[node][label] = child
            node = child
        if not self._terminal[node]:
            self._terminal[node] = True
            self._count += 1

    def matches(self, domain: Union[DecodedDomain, str]) -> bool:
        """
        Brief: Test whether a domain equals or is a subdomain of an entry.

        Inputs:
          - domain: Domain, presentation string, or MALFORMED_DOMAIN.

        Outputs:
          - bool: True on the first registered node along the walk. The walk
            stops at the first missing label; siblings are never tried.
        """
        d = _as_domain(domain)
        if not isinstance(d, Domain):
            return False
        node = _ROOT
        for label in reversed(d.labels):
            child = self._children[node].get(label)
            if child is None:
                return False
            if self._terminal[child]:
                return True
            node = child
        return False


class DomainClassifier:
    """Maps a decoded query domain onto a ForwardingDecision."""

    def __init__(self, trie: DomainTrie) -> None:
        self.trie = trie

    @classmethod
    def from_domains(cls, domains: Iterable[Union[Domain, str]]) -> "DomainClassifier":
        return cls(DomainTrie.build(domains))

    @classmethod
    def from_file(cls, path: str) -> "DomainClassifier":
        """
        Brief: Load a newline-delimited reference file and build the trie.

        Inputs:
          - path: file path (relative paths resolve against the cwd).

        Outputs:
          - DomainClassifier. Raises ReferenceLoadError when unreadable.
        """
        domains = load_domain_file(path)
        classifier = cls.from_domains(domains)
        logger.info(
            "Loaded %d reference domains from %s (%d trie nodes)",
            len(classifier.trie),
            path,
            classifier.trie.node_count,
        )
        return classifier

    def is_match(self, domain: Union[DecodedDomain, str]) -> bool:
        return self.trie.matches(domain)

    def classify(self, domain: Union[DecodedDomain, str]) -> ForwardingDecision:
        if self.trie.matches(domain):
            return ForwardingDecision.REGIONAL
        return ForwardingDecision.SECURE
