from __future__ import annotations

import pytest

from takedown_monitor.exceptions import PendingReviewNotFound
from takedown_monitor.features.schema import (
    EXCLUDED_URL_REASON,
    REPORT_STATUS_UNREPORTED,
    FailureKind,
    FinalResult,
    FinalStatus,
    Judgment,
    MatchStatus,
    ReviewAction,
    SiteType,
    Verdict,
)


def _enqueue(queue, domain, urls, judgment=Verdict.UNCERTAIN, reason="unclear", **kwargs):
    return queue.enqueue(domain, urls, ["Solo Leveling"], judgment, reason, **kwargs)


def _pending_result(session_id: str, url: str, domain: str) -> FinalResult:
    return FinalResult(
        session_id=session_id,
        title="Solo Leveling",
        url=url,
        domain=domain,
        search_query="Solo Leveling raw",
        page=1,
        rank=1,
        status=MatchStatus.UNKNOWN,
        final_status=FinalStatus.PENDING,
        llm_judgment=Verdict.UNCERTAIN,
        llm_reason="unclear",
        snippet="read raw online",
    )


def test_enqueue_same_domain_merges_urls(queue) -> None:
    _enqueue(queue, "unknownsite.io", ["https://unknownsite.io/1", "https://unknownsite.io/2"])
    item = _enqueue(
        queue,
        "unknownsite.io",
        ["https://unknownsite.io/3", "https://unknownsite.io/4", "https://unknownsite.io/5"],
        judgment=Verdict.LIKELY_ILLEGAL,
        reason="reader pages",
        session_id="s2",
    )

    items = queue.list_pending()
    assert len(items) == 1
    assert len(items[0].urls) == 5
    assert items[0].urls[:2] == ["https://unknownsite.io/1", "https://unknownsite.io/2"]
    assert item.llm_judgment is Verdict.LIKELY_ILLEGAL
    assert item.llm_reason == "reader pages"
    assert item.session_id == "s2"


def test_enqueue_overlapping_urls_are_not_duplicated(queue) -> None:
    _enqueue(queue, "a.io", ["https://a.io/1", "https://a.io/2"])
    item = _enqueue(queue, "www.A.io", ["https://a.io/2", "https://a.io/3"])

    assert item.domain == "a.io"
    assert item.urls == ["https://a.io/1", "https://a.io/2", "https://a.io/3"]
    assert item.titles == ["Solo Leveling"]


def test_list_retryable_selects_only_technical_failures(queue) -> None:
    _enqueue(queue, "genuine.io", ["https://genuine.io/"])
    _enqueue(queue, "timeout.io", ["https://timeout.io/"], reason="timeout", failure_kind=FailureKind.TIMEOUT)
    _enqueue(queue, "judged.io", ["https://judged.io/"], judgment=Verdict.LIKELY_LEGAL)

    assert [item.domain for item in queue.list_retryable()] == ["timeout.io"]


def test_update_judgment(queue) -> None:
    item = _enqueue(queue, "a.io", ["https://a.io/"], failure_kind=FailureKind.AUTH_ERROR)

    updated = queue.update_judgment(item.id, Judgment("a.io", Verdict.LIKELY_ILLEGAL, "raw chapters", 0.8))

    assert updated.llm_judgment is Verdict.LIKELY_ILLEGAL
    assert updated.failure_kind is FailureKind.NONE
    assert queue.list_retryable() == []


def test_approve_registers_illegal_tracks_urls_and_deletes(queue, registry, results, report_tracking) -> None:
    results.save(
        [
            _pending_result("s1", "https://unknownsite.io/1", "unknownsite.io"),
            _pending_result("s2", "https://unknownsite.io/2", "unknownsite.io"),
        ]
    )
    item = _enqueue(
        queue,
        "unknownsite.io",
        ["https://unknownsite.io/1", "https://unknownsite.io/2", "https://unknownsite.io/3"],
        session_id="s2",
    )

    outcome = queue.resolve(item.id, ReviewAction.APPROVE)

    assert outcome.success
    assert outcome.tracked_urls == 3
    assert registry.contains("unknownsite.io", SiteType.ILLEGAL)
    assert queue.list_pending() == []

    tracked = report_tracking.by_session("s2")
    assert {row["url"] for row in tracked} == {"https://unknownsite.io/2", "https://unknownsite.io/3"}
    assert all(row["report_status"] == REPORT_STATUS_UNREPORTED for row in tracked)
    assert [row["url"] for row in report_tracking.by_session("s1")] == ["https://unknownsite.io/1"]


def test_approve_marks_excluded_urls(queue, report_tracking) -> None:
    report_tracking.exclude("https://unknownsite.io/")
    item = _enqueue(queue, "unknownsite.io", ["https://unknownsite.io/", "https://unknownsite.io/ch1"], session_id="s1")

    queue.resolve(item.id, "approve")

    reasons = {row["url"]: row["reason"] for row in report_tracking.by_session("s1")}
    assert reasons == {"https://unknownsite.io/": EXCLUDED_URL_REASON, "https://unknownsite.io/ch1": None}


def test_reject_registers_legal_without_tracking(queue, registry, report_tracking) -> None:
    item = _enqueue(queue, "publisher.com", ["https://publisher.com/"], session_id="s1")

    outcome = queue.resolve(item.id, ReviewAction.REJECT)

    assert outcome.tracked_urls == 0
    assert registry.contains("publisher.com", SiteType.LEGAL)
    assert report_tracking.by_session("s1") == []
    assert queue.list_pending() == []


@pytest.mark.parametrize("action", list(ReviewAction))
def test_resolve_leaves_domain_out_of_the_opposite_list(queue, registry, action) -> None:
    registry.add("gray.io", action.site_type.opposite)
    item = _enqueue(queue, "gray.io", ["https://gray.io/"], session_id="s1")

    queue.resolve(item.id, action)

    assert registry.contains("gray.io", action.site_type)
    assert not registry.contains("gray.io", action.site_type.opposite)


def test_resolve_missing_item(queue) -> None:
    with pytest.raises(PendingReviewNotFound):
        queue.resolve(12345, ReviewAction.APPROVE)


def test_resolve_with_backfill_updates_stored_pending_results(queue, results) -> None:
    results.save([_pending_result("s1", "https://a.io/1", "a.io")])
    item = _enqueue(queue, "a.io", ["https://a.io/1"], session_id="s1")

    queue.resolve(item.id, ReviewAction.APPROVE, backfill=True)

    [stored] = results.by_session("s1")
    assert stored.final_status is FinalStatus.ILLEGAL
    assert stored.reviewed_at is not None


def test_resolve_without_backfill_keeps_history(queue, results) -> None:
    results.save([_pending_result("s1", "https://a.io/1", "a.io")])
    item = _enqueue(queue, "a.io", ["https://a.io/1"], session_id="s1")

    queue.resolve(item.id, ReviewAction.REJECT)

    assert results.by_session("s1")[0].final_status is FinalStatus.PENDING


def test_bulk_resolve_reports_each_item(queue, registry) -> None:
    first = _enqueue(queue, "a.io", ["https://a.io/"], session_id="s1")
    second = _enqueue(queue, "b.io", ["https://b.io/"], session_id="s1")
    queue.resolve(first.id, ReviewAction.APPROVE)  # resolved concurrently

    outcomes = queue.bulk_resolve([first.id, second.id, 999], ReviewAction.APPROVE)

    assert [o.success for o in outcomes] == [False, True, False]
    assert outcomes[0].error
    assert outcomes[1].domain == "b.io"
    assert registry.list_domains(SiteType.ILLEGAL) == ["a.io", "b.io"]


def test_recheck_resolves_items_covered_by_registry(queue, registry, report_tracking) -> None:
    _enqueue(queue, "cdn.piratesite.cc", ["https://cdn.piratesite.cc/1"], session_id="s1")
    _enqueue(queue, "shop.publisher.com", ["https://shop.publisher.com/"], session_id="s1")
    _enqueue(queue, "still-unknown.io", ["https://still-unknown.io/"], session_id="s1")

    registry.add("piratesite.cc", SiteType.ILLEGAL)
    registry.add("publisher.com", SiteType.LEGAL)

    summary = queue.recheck()

    assert (summary.illegal, summary.legal, summary.remaining) == (1, 1, 1)
    assert summary.tracked_urls == 1
    assert [item.domain for item in queue.list_pending()] == ["still-unknown.io"]
    assert [row["url"] for row in report_tracking.by_session("s1")] == ["https://cdn.piratesite.cc/1"]
