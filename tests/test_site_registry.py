from __future__ import annotations

import pytest

from takedown_monitor.features.schema import MatchStatus, SiteType


def test_add_normalizes_and_snapshot_reflects_it(registry) -> None:
    assert registry.add("https://WWW.PirateSite.cc/ch1", SiteType.ILLEGAL) == "piratesite.cc"
    registry.add("webtoons.com", "legal")

    snapshot = registry.snapshot()
    assert snapshot.illegal == frozenset({"piratesite.cc"})
    assert snapshot.legal == frozenset({"webtoons.com"})
    assert registry.matcher().classify("https://m.piratesite.cc/x").status is MatchStatus.ILLEGAL


def test_add_is_idempotent(registry) -> None:
    registry.add("piratesite.cc", SiteType.ILLEGAL)
    registry.add("piratesite.cc", SiteType.ILLEGAL)
    assert registry.list_domains(SiteType.ILLEGAL) == ["piratesite.cc"]


def test_add_moves_domain_between_lists(registry) -> None:
    registry.add("gray.io", SiteType.LEGAL)
    registry.add("gray.io", SiteType.ILLEGAL)

    assert registry.contains("gray.io", SiteType.ILLEGAL)
    assert not registry.contains("gray.io", SiteType.LEGAL)


def test_add_apex(registry) -> None:
    assert registry.add("w17.sololevelinganime.com", SiteType.ILLEGAL, apex=True) == "sololevelinganime.com"


def test_add_rejects_empty_domain(registry) -> None:
    with pytest.raises(ValueError):
        registry.add("   ", SiteType.ILLEGAL)


def test_remove(registry) -> None:
    registry.add("piratesite.cc", SiteType.ILLEGAL)

    assert registry.remove("piratesite.cc", SiteType.LEGAL) == 0
    assert registry.remove("www.piratesite.cc") == 1
    assert registry.list_domains() == []


def test_seed_counts_new_domains_and_keeps_lists_disjoint(registry) -> None:
    registry.add("gray.io", SiteType.LEGAL)

    added = registry.seed(["a.io", "www.a.io", "b.io", "gray.io", ""], SiteType.ILLEGAL)
    again = registry.seed(["a.io"], SiteType.ILLEGAL)

    assert added == 3
    assert again == 0
    assert registry.list_domains(SiteType.ILLEGAL) == ["a.io", "b.io", "gray.io"]
    assert registry.list_domains(SiteType.LEGAL) == []
