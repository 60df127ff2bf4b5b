"""Group unknown search results into per-domain evidence bundles."""

from typing import Iterable

from takedown_monitor.features.schema import ClassifiedResult, DomainInfo, MatchStatus
from takedown_monitor.utils.domain_utils import normalize_domain

MAX_SNIPPETS_PER_DOMAIN = 5


class DomainAggregator:
    """
    Build one DomainInfo per unknown domain.

    Snippets are distinct, non-empty and capped at ``max_snippets``; URLs and
    titles keep every distinct value in first-seen order. Output is sorted by
    URL count (descending) and then by domain.
    """

    def __init__(self, max_snippets: int = MAX_SNIPPETS_PER_DOMAIN):
        self.max_snippets = max_snippets

    def aggregate(self, results: Iterable[ClassifiedResult]) -> list[DomainInfo]:
        grouped: dict[str, DomainInfo] = {}

        for result in results:
            if result.status is not MatchStatus.UNKNOWN:
                continue

            domain = normalize_domain(result.domain) or normalize_domain(result.url)
            if not domain:
                continue

            info = grouped.setdefault(domain, DomainInfo(domain=domain))

            if result.url and result.url not in info.urls:
                info.urls.append(result.url)
            if result.title and result.title not in info.titles:
                info.titles.append(result.title)

            snippet = (result.snippet or "").strip()
            if snippet and snippet not in info.snippets and len(info.snippets) < self.max_snippets:
                info.snippets.append(snippet)

        return sorted(grouped.values(), key=lambda info: (-len(info.urls), info.domain))
