from __future__ import annotations

from takedown_monitor.features.aggregator import DomainAggregator
from takedown_monitor.features.schema import ClassifiedResult, MatchStatus


def _classified(url: str, domain: str, status=MatchStatus.UNKNOWN, title="Solo Leveling", snippet=None):
    return ClassifiedResult(
        title=title,
        domain=domain,
        url=url,
        search_query=f"{title} raw",
        page=1,
        rank=1,
        snippet=snippet,
        status=status,
    )


def test_every_unknown_result_lands_in_exactly_one_domain_info() -> None:
    results = [
        _classified("https://a.io/1", "a.io"),
        _classified("https://a.io/2", "A.io"),
        _classified("https://b.io/1", "b.io"),
        _classified("https://c.io/1", "c.io", status=MatchStatus.ILLEGAL),
        _classified("https://a.io/3", "a.io", title="Omniscient Reader"),
    ]

    infos = DomainAggregator().aggregate(results)

    domains = [info.domain for info in infos]
    assert sorted(domains) == ["a.io", "b.io"]
    assert len(domains) == len(set(domains))

    by_domain = {info.domain: info for info in infos}
    for result in results:
        if result.status is MatchStatus.UNKNOWN:
            assert result.url in by_domain[result.domain.lower()].urls

    assert by_domain["a.io"].titles == ["Solo Leveling", "Omniscient Reader"]


def test_snippets_are_distinct_non_empty_and_capped() -> None:
    results = [
        _classified(f"https://a.io/{i}", "a.io", snippet=snippet)
        for i, snippet in enumerate(["s1", "s1", "", None, "s2", "s3", "s4", "s5", "s6"])
    ]

    [info] = DomainAggregator().aggregate(results)

    assert info.snippets == ["s1", "s2", "s3", "s4", "s5"]
    assert len(info.urls) == 9


def test_duplicate_urls_are_kept_once() -> None:
    results = [_classified("https://a.io/1", "a.io"), _classified("https://a.io/1", "a.io")]
    [info] = DomainAggregator().aggregate(results)
    assert info.urls == ["https://a.io/1"]


def test_sorted_by_url_count_then_domain() -> None:
    results = [
        _classified("https://z.io/1", "z.io"),
        _classified("https://b.io/1", "b.io"),
        _classified("https://m.io/1", "m.io"),
        _classified("https://m.io/2", "m.io"),
    ]

    infos = DomainAggregator().aggregate(results)

    assert [info.domain for info in infos] == ["m.io", "b.io", "z.io"]


def test_no_unknown_results() -> None:
    assert DomainAggregator().aggregate([_classified("https://x.io/", "x.io", status=MatchStatus.LEGAL)]) == []
