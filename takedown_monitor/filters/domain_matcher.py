"""
Deterministic URL classification against the Site Registry.

Matches a result's host against the illegal and legal domain sets, including
subdomains of registered entries. Anything not covered by either set is
``unknown`` and is handed on to LLM judgment.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Iterable, Optional

from takedown_monitor.features.schema import ClassifiedResult, MatchStatus, SearchResult
from takedown_monitor.utils.domain_utils import normalize_domain, parent_domains

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RegistrySnapshot:
    """Point-in-time copy of the illegal/legal domain sets."""

    illegal: frozenset = field(default_factory=frozenset)
    legal: frozenset = field(default_factory=frozenset)

    @classmethod
    def from_lists(cls, illegal: Iterable[str] = (), legal: Iterable[str] = ()) -> "RegistrySnapshot":
        return cls(
            illegal=frozenset(d for d in map(normalize_domain, illegal) if d),
            legal=frozenset(d for d in map(normalize_domain, legal) if d),
        )


@dataclass(frozen=True)
class MatchResult:
    status: MatchStatus
    matched_domain: Optional[str] = None


class DomainMatcher:
    """
    Classify URLs as illegal, legal or unknown.

    A host ``H`` matches a registry entry ``E`` when ``H == E`` or ``H`` ends
    with ``"." + E``. The illegal set is consulted first, so a host covered by
    both sets is illegal.

    Args:
        snapshot: Registry sets to match against. Build a fresh one per run.

    Examples:
        >>> matcher = DomainMatcher(RegistrySnapshot.from_lists(illegal=["piratesite.cc"]))
        >>> matcher.classify("https://sub.piratesite.cc/ch1").status
        <MatchStatus.ILLEGAL: 'illegal'>
    """

    def __init__(self, snapshot: RegistrySnapshot):
        self.snapshot = snapshot

    @classmethod
    def from_lists(cls, illegal: Iterable[str] = (), legal: Iterable[str] = ()) -> "DomainMatcher":
        return cls(RegistrySnapshot.from_lists(illegal, legal))

    def classify_host(self, host: str) -> MatchResult:
        candidates = list(parent_domains(host))
        if not candidates:
            return MatchResult(MatchStatus.UNKNOWN)

        for status, domains in (
            (MatchStatus.ILLEGAL, self.snapshot.illegal),
            (MatchStatus.LEGAL, self.snapshot.legal),
        ):
            for candidate in candidates:
                if candidate in domains:
                    return MatchResult(status, candidate)

        return MatchResult(MatchStatus.UNKNOWN)

    def classify(self, url: str) -> MatchResult:
        """
        Classify a URL (or bare host) by its domain.

        Args:
            url: Absolute URL or host

        Returns:
            MatchResult with status and the registry entry that matched
        """
        return self.classify_host(normalize_domain(url))

    def classify_results(self, results: list[SearchResult]) -> list[ClassifiedResult]:
        """
        Classify search results, attaching status and matched registry entry.

        The result's URL is authoritative; its ``domain`` field is only used
        when the URL has no parsable host.
        """
        classified = []
        for result in results:
            match = self.classify(result.url)
            if match.status is MatchStatus.UNKNOWN and not normalize_domain(result.url):
                match = self.classify(result.domain)

            classified.append(
                ClassifiedResult(
                    title=result.title,
                    domain=normalize_domain(result.domain) or normalize_domain(result.url),
                    url=result.url,
                    search_query=result.search_query,
                    page=result.page,
                    rank=result.rank,
                    snippet=result.snippet,
                    status=match.status,
                    matched_domain=match.matched_domain,
                )
            )

        counts = Counter(r.status for r in classified)
        logger.info(
            "Classified %d results: %d illegal, %d legal, %d unknown",
            len(classified),
            counts[MatchStatus.ILLEGAL],
            counts[MatchStatus.LEGAL],
            counts[MatchStatus.UNKNOWN],
        )
        return classified
