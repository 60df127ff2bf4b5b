"""
Monitoring pipeline.

Search results for every monitored title flow through three stages:

1. deterministic matching against the Site Registry,
2. batched LLM judgment of the domains the registry does not know,
3. the Pending Review Queue, where a human confirms every judged domain.

``ResultClassifier.run_classification`` performs one classification pass for a
session; ``run_monitoring`` wraps it with search collection and session
bookkeeping. ``run_deep_monitoring`` revisits a finished session with
site-scoped queries against the illegal domains it surfaced most often.
"""

import logging
from datetime import datetime
from typing import Callable, Iterable, Optional

from takedown_monitor.collectors.base import BaseCollector
from takedown_monitor.exceptions import ConfigurationError
from takedown_monitor.features.aggregator import DomainAggregator
from takedown_monitor.features.schema import (
    DeepRunSummary,
    DeepTarget,
    DeepTargetResult,
    DomainInfo,
    FinalResult,
    FinalStatus,
    Judgment,
    MatchStatus,
    RetrySummary,
    RunSummary,
    SearchResult,
    Verdict,
)
from takedown_monitor.models.judgment_engine import JudgmentEngine
from takedown_monitor.storage.database import Database, get_database
from takedown_monitor.storage.models import utcnow
from takedown_monitor.storage.pending_queue import PendingReviewQueue
from takedown_monitor.storage.results import (
    DetectionResultStore,
    ReportTrackingStore,
    SessionStore,
    TrackingEntry,
)
from takedown_monitor.storage.site_registry import SiteRegistry
from takedown_monitor.storage.titles import TitleStore
from takedown_monitor.utils.domain_utils import normalize_domain
from takedown_monitor.utils.rate_limiter import NO_DELAY, BatchDelay

logger = logging.getLogger(__name__)

DEEP_MIN_URLS = 5

VERDICT_TO_FINAL_STATUS = {
    Verdict.LIKELY_ILLEGAL: FinalStatus.ILLEGAL,
    Verdict.LIKELY_LEGAL: FinalStatus.LEGAL,
    Verdict.UNCERTAIN: FinalStatus.PENDING,
}


class ResultClassifier:
    """
    Classify one session's search results and persist the outcome.

    Known domains are decided by the registry. Unknown domains are judged by
    the LLM: ``likely_illegal`` URLs count as illegal for this session's report
    and ``likely_legal`` as legal, while every judged domain is also queued for
    a permanent human decision. A run never writes to the Site Registry.
    """

    def __init__(
        self,
        registry: SiteRegistry,
        engine: JudgmentEngine,
        queue: PendingReviewQueue,
        results: DetectionResultStore,
        sessions: SessionStore,
        report_tracking: ReportTrackingStore,
        aggregator: Optional[DomainAggregator] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.registry = registry
        self.engine = engine
        self.queue = queue
        self.results = results
        self.sessions = sessions
        self.report_tracking = report_tracking
        self.aggregator = aggregator or DomainAggregator()
        self.clock = clock

    @classmethod
    def from_database(cls, db: Database, engine: JudgmentEngine) -> "ResultClassifier":
        registry = SiteRegistry(db)
        results = DetectionResultStore(db)
        report_tracking = ReportTrackingStore(db)
        return cls(
            registry=registry,
            engine=engine,
            queue=PendingReviewQueue(db, registry, report_tracking, results),
            results=results,
            sessions=SessionStore(db),
            report_tracking=report_tracking,
        )

    def run_classification(self, search_results: Iterable[SearchResult], session_id: str) -> list[FinalResult]:
        """
        Classify, judge, persist and roll up one batch of search results.

        Re-running with the same input and session leaves the stored rows unchanged.

        Args:
            search_results: Results to classify (duplicate URLs keep the first occurrence)
            session_id: Monitoring session the results belong to

        Returns:
            One FinalResult per distinct URL, in input order
        """
        run_at = self.clock()
        unique = _dedupe_by_url(search_results)

        # Fresh registry read per run
        classified = self.registry.matcher().classify_results(unique)

        unknown = [r for r in classified if r.status is MatchStatus.UNKNOWN]
        judgments: dict[str, Judgment] = {}
        if unknown:
            domain_infos = self.aggregator.aggregate(unknown)
            logger.info("Judging %d unknown domains (%d results)", len(domain_infos), len(unknown))
            judgments = self.engine.judge_batch(domain_infos, session_id=session_id)
            self._enqueue(domain_infos, judgments, session_id)

        final_results = []
        for result in classified:
            judgment = None
            reviewed_at = None

            if result.status is MatchStatus.ILLEGAL:
                final_status = FinalStatus.ILLEGAL
                reviewed_at = run_at
            elif result.status is MatchStatus.LEGAL:
                final_status = FinalStatus.LEGAL
                reviewed_at = run_at
            else:
                judgment = judgments.get(result.domain)
                final_status = VERDICT_TO_FINAL_STATUS[judgment.judgment] if judgment else FinalStatus.PENDING

            final_results.append(
                FinalResult(
                    session_id=session_id,
                    title=result.title,
                    url=result.url,
                    domain=result.domain,
                    search_query=result.search_query,
                    page=result.page,
                    rank=result.rank,
                    status=result.status,
                    final_status=final_status,
                    llm_judgment=judgment.judgment if judgment else None,
                    llm_reason=judgment.reason if judgment else None,
                    snippet=result.snippet,
                    reviewed_at=reviewed_at,
                )
            )

        self.results.save(final_results)

        self.report_tracking.register(
            TrackingEntry(r.session_id, r.url, r.domain, r.title)
            for r in final_results
            if r.final_status is FinalStatus.ILLEGAL
        )

        counts = self.results.counts(session_id)
        self.sessions.update_counts(session_id, counts)
        logger.info(
            "Session %s: %d results (%d illegal, %d legal, %d pending)",
            session_id,
            counts.total,
            counts.illegal,
            counts.legal,
            counts.pending,
        )
        return final_results

    def _enqueue(self, domain_infos: list[DomainInfo], judgments: dict[str, Judgment], session_id: str) -> None:
        for info in domain_infos:
            judgment = judgments[info.domain]
            self.queue.enqueue(
                info.domain,
                info.urls,
                info.titles,
                judgment.judgment,
                judgment.reason,
                failure_kind=judgment.failure_kind,
                session_id=session_id,
                confidence=judgment.confidence,
            )
        logger.info("Queued %d domains for review", len(domain_infos))


def _dedupe_by_url(results: Iterable[SearchResult]) -> list[SearchResult]:
    seen = set()
    unique = []
    for result in results:
        if result.url in seen:
            continue
        seen.add(result.url)
        unique.append(result)
    return unique


def build_query(title: str, keyword: str) -> str:
    keyword = keyword.strip()
    return f"{title} {keyword}" if keyword else title


def search_query(
    collector: BaseCollector,
    query: str,
    title: str,
    max_pages: int = 3,
    max_results: int = 30,
) -> list[SearchResult]:
    """
    Fetch up to ``max_pages`` pages for one query.

    Ranks are global across pages and capped at ``max_results``. A failed
    page is skipped; an empty page ends the query.
    """
    results: list[SearchResult] = []
    rank = 1

    for page in range(1, max_pages + 1):
        response = collector.collect(query, page)
        if not response.success:
            logger.warning("Skipping page %d of %r: %s", page, query, response.error)
            continue

        hits = response.data or []
        if not hits:
            break

        for hit in hits:
            if rank > max_results:
                break
            results.append(
                SearchResult(
                    title=title,
                    domain=normalize_domain(hit["link"]),
                    url=hit["link"],
                    search_query=query,
                    page=page,
                    rank=rank,
                    snippet=hit.get("snippet") or None,
                )
            )
            rank += 1

        if rank > max_results:
            break

    return results


def collect_search_results(
    titles: list[str],
    keywords: list[str],
    collector: BaseCollector,
    max_pages: int = 3,
    max_results: int = 30,
    delay: BatchDelay = NO_DELAY,
) -> list[SearchResult]:
    """
    Search every title x keyword combination.

    Args:
        titles: Monitored titles
        keywords: Query suffixes; an empty keyword searches the title alone
        collector: Search oracle client
        max_pages: Pages fetched per query
        max_results: Results kept per query
        delay: Pause between queries

    Returns:
        Search results with duplicate URLs removed (first occurrence wins)
    """
    keywords = keywords or [""]
    queries = [(title, build_query(title, keyword)) for title in titles for keyword in keywords]

    all_results: list[SearchResult] = []
    seen_urls = set()

    for index, (title, query) in enumerate(queries, start=1):
        logger.info("[%d/%d] Searching %r", index, len(queries), query)
        found = search_query(collector, query, title, max_pages=max_pages, max_results=max_results)

        added = 0
        for result in found:
            if result.url not in seen_urls:
                seen_urls.add(result.url)
                all_results.append(result)
                added += 1
        logger.info("  %d results (%d new)", len(found), added)

        if index < len(queries):
            delay.wait()

    logger.info("Search complete: %d unique URLs", len(all_results))
    return all_results


def run_monitoring(
    db: Optional[Database] = None,
    titles: Optional[list[str]] = None,
    keywords: Optional[list[str]] = None,
    collector: Optional[BaseCollector] = None,
    engine: Optional[JudgmentEngine] = None,
    session_id: Optional[str] = None,
) -> RunSummary:
    """
    Run a full monitoring session: search, classify, persist.

    Raises:
        ConfigurationError: No titles to monitor, or a required API key is
            missing. Raised before any external call.
    """
    from takedown_monitor.config import config

    db = db or get_database()
    titles = titles if titles is not None else TitleStore(db).list_current()
    if not titles:
        raise ConfigurationError("No titles to monitor")

    missing = config.missing_credentials(search=collector is None, judgment=engine is None)
    if missing:
        raise ConfigurationError(f"Missing credentials: {', '.join(missing)}")

    if collector is None:
        from takedown_monitor.collectors.serper import SerperCollector

        collector = SerperCollector()
    engine = engine or JudgmentEngine.from_config()
    keywords = keywords if keywords is not None else config.SEARCH_KEYWORDS

    classifier = ResultClassifier.from_database(db, engine)
    session_id = session_id or SessionStore.new_session_id()
    classifier.sessions.create(session_id)
    logger.info("Session %s: %d titles x %d keywords", session_id, len(titles), len(keywords or [""]))

    try:
        search_results = collect_search_results(
            titles,
            keywords,
            collector,
            max_pages=config.SEARCH_MAX_PAGES,
            max_results=config.SEARCH_MAX_RESULTS,
            delay=BatchDelay(config.SEARCH_DELAY_MIN, config.SEARCH_DELAY_MAX),
        )
        final_results = classifier.run_classification(search_results, session_id)
    except Exception as e:
        logger.error("Session %s failed: %s", session_id, e)
        classifier.sessions.fail(session_id, str(e))
        raise

    classifier.sessions.complete(session_id)
    return RunSummary(
        session_id=session_id,
        results=final_results,
        counts=classifier.results.counts(session_id),
        searched=len(search_results),
    )


def reprocess_failed_judgments(
    queue: PendingReviewQueue,
    engine: JudgmentEngine,
    results: DetectionResultStore,
    batch_size: Optional[int] = None,
) -> RetrySummary:
    """
    Re-judge pending items that are uncertain because of a technical failure.

    Substantively uncertain items are left alone. Evidence is rebuilt from the
    item's URLs and titles plus snippets found in stored results.
    """
    items = queue.list_retryable()
    summary = RetrySummary(retried=len(items))
    if not items:
        logger.info("No failed judgments to retry")
        return summary

    snippets = results.snippets_for_domains(item.domain for item in items)
    domain_infos = [
        DomainInfo(
            domain=item.domain,
            snippets=snippets.get(item.domain, []),
            urls=list(item.urls),
            titles=list(item.titles),
        )
        for item in items
    ]

    logger.info("Retrying %d failed judgments", len(items))
    judgments = engine.judge_batch(domain_infos, batch_size=batch_size)

    for item in items:
        judgment = judgments[item.domain]
        queue.update_judgment(item.id, judgment)
        if judgment.is_failure:
            summary.still_failed += 1
        else:
            summary.recovered += 1

    logger.info("Retry complete: %d recovered, %d still failing", summary.recovered, summary.still_failed)
    return summary


def scan_deep_targets(
    results: DetectionResultStore,
    registry: SiteRegistry,
    session_id: str,
    min_urls: int = DEEP_MIN_URLS,
) -> list[DeepTarget]:
    """
    Find illegal domains that surfaced often enough in a session to search directly.

    Results are grouped per (title, domain) for domains the registry holds as
    illegal. A group with at least ``min_urls`` distinct URLs becomes a target
    whose query scopes the session's most productive search query to the
    domain: ``"{query} site:{domain}"``.

    Args:
        results: Persisted results
        registry: Site Registry (parent-domain entries count)
        session_id: Session to scan
        min_urls: Distinct URLs a group needs to become a target

    Returns:
        Targets, most URLs first
    """
    matcher = registry.matcher()
    groups: dict[tuple[str, str], dict[str, set[str]]] = {}

    for result in results.by_session(session_id):
        if matcher.classify_host(result.domain).status is not MatchStatus.ILLEGAL:
            continue
        by_query = groups.setdefault((result.title, result.domain), {})
        by_query.setdefault(result.search_query, set()).add(result.url)

    targets = []
    for (title, domain), by_query in groups.items():
        url_count = len(set().union(*by_query.values()))
        if url_count < min_urls:
            continue

        # Stable sort: ties keep the first query seen
        breakdown = sorted(((query, len(urls)) for query, urls in by_query.items()), key=lambda kv: -kv[1])
        base_keyword = breakdown[0][0]
        targets.append(
            DeepTarget(
                session_id=session_id,
                title=title,
                domain=domain,
                url_count=url_count,
                base_keyword=base_keyword,
                deep_query=f"{base_keyword} site:{domain}",
                keyword_breakdown=breakdown,
            )
        )

    targets.sort(key=lambda t: -t.url_count)
    logger.info("Session %s: %d deep monitoring targets", session_id, len(targets))
    return targets


def run_deep_monitoring(
    classifier: ResultClassifier,
    collector: BaseCollector,
    session_id: str,
    targets: Optional[list[DeepTarget]] = None,
    min_urls: int = DEEP_MIN_URLS,
    max_pages: int = 3,
    max_results: int = 30,
    delay: BatchDelay = NO_DELAY,
) -> DeepRunSummary:
    """
    Run site-scoped follow-up searches for a session and classify what is new.

    Only URLs the session does not already hold are classified. They go
    through the same classification pass as a regular run, so new illegal URLs
    reach report tracking and the session counters are refreshed. A failing
    target is recorded in its result and the remaining targets still run.

    Args:
        classifier: Classifier bound to the session's database
        collector: Search oracle client
        session_id: Session to extend
        targets: Targets to search (default: ``scan_deep_targets``)
        min_urls: Threshold used when scanning for targets
        max_pages: Pages fetched per target
        max_results: Results kept per target
        delay: Pause between targets
    """
    if targets is None:
        targets = scan_deep_targets(classifier.results, classifier.registry, session_id, min_urls)

    summary = DeepRunSummary(session_id=session_id)
    if not targets:
        logger.info("Session %s: nothing to deep monitor", session_id)
        return summary

    seen_urls = classifier.results.urls_for_session(session_id)

    for index, target in enumerate(targets, start=1):
        outcome = DeepTargetResult(target=target)
        logger.info("[%d/%d] Deep search %r", index, len(targets), target.deep_query)

        try:
            found = _dedupe_by_url(
                search_query(collector, target.deep_query, target.title, max_pages=max_pages, max_results=max_results)
            )
            new = [r for r in found if r.url not in seen_urls]
            seen_urls.update(r.url for r in new)
            outcome.results_count = len(found)
            outcome.new_urls_count = len(new)

            if new:
                final_results = classifier.run_classification(new, session_id)
                outcome.illegal = sum(1 for r in final_results if r.final_status is FinalStatus.ILLEGAL)
                outcome.legal = sum(1 for r in final_results if r.final_status is FinalStatus.LEGAL)
                outcome.pending = sum(1 for r in final_results if r.final_status is FinalStatus.PENDING)
        except Exception as e:
            logger.warning("Deep search for %s failed: %s", target.domain, e)
            outcome.error = str(e)

        logger.info("  %d results (%d new)", outcome.results_count, outcome.new_urls_count)
        summary.targets.append(outcome)
        summary.new_urls += outcome.new_urls_count

        if index < len(targets):
            delay.wait()

    classifier.sessions.record_deep_monitoring(session_id, len(targets), summary.new_urls)
    logger.info("Deep monitoring of %s complete: %d new URLs", session_id, summary.new_urls)
    return summary
