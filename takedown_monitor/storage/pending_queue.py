"""
Pending Review Queue.

Durable, one-item-per-domain queue of LLM-judged domains awaiting a human
approve/reject decision. Resolving an item writes the decision into the Site
Registry, so later runs classify the domain deterministically.
"""

import logging
from typing import Iterable, Optional, Union

from sqlalchemy import select
from sqlalchemy.orm import Session

from takedown_monitor.exceptions import PendingReviewNotFound
from takedown_monitor.features.schema import (
    FailureKind,
    FinalStatus,
    Judgment,
    MatchStatus,
    PendingReviewItem,
    RecheckSummary,
    ResolveOutcome,
    ReviewAction,
    Verdict,
)
from takedown_monitor.storage.database import Database, insert_ignore
from takedown_monitor.storage.models import DetectionResult, PendingReview
from takedown_monitor.storage.results import DetectionResultStore, ReportTrackingStore, TrackingEntry
from takedown_monitor.storage.site_registry import SiteRegistry
from takedown_monitor.utils.domain_utils import normalize_domain

logger = logging.getLogger(__name__)


def _ordered_union(existing: Iterable[str], new: Iterable[str]) -> list[str]:
    merged = list(existing)
    seen = set(merged)
    for value in new:
        if value and value not in seen:
            merged.append(value)
            seen.add(value)
    return merged


def _to_item(row: PendingReview) -> PendingReviewItem:
    return PendingReviewItem(
        id=row.id,
        domain=row.domain,
        urls=list(row.urls or []),
        titles=list(row.titles or []),
        llm_judgment=Verdict(row.llm_judgment) if row.llm_judgment else None,
        llm_reason=row.llm_reason,
        failure_kind=FailureKind(row.failure_kind or FailureKind.NONE.value),
        session_id=row.session_id,
        created_at=row.created_at,
    )


class PendingReviewQueue:
    """
    Repository over ``pending_reviews`` plus the resolve workflow.

    Args:
        db: Database
        registry: Site Registry that receives resolved decisions
        report_tracking: Receives the URLs of approved (illegal) domains
        results: Persisted results, used to find every URL seen for a domain
    """

    def __init__(
        self,
        db: Database,
        registry: SiteRegistry,
        report_tracking: ReportTrackingStore,
        results: DetectionResultStore,
    ):
        self.db = db
        self.registry = registry
        self.report_tracking = report_tracking
        self.results = results

    # ------------------------------------------------------------------
    # Queue
    # ------------------------------------------------------------------

    def enqueue(
        self,
        domain: str,
        urls: Iterable[str],
        titles: Iterable[str],
        judgment: Optional[Union[Verdict, str]],
        reason: Optional[str],
        failure_kind: FailureKind = FailureKind.NONE,
        session_id: Optional[str] = None,
        confidence: Optional[float] = None,
    ) -> PendingReviewItem:
        """
        Add a domain to the queue, merging into its open item if there is one.

        URLs and titles are unioned in first-seen order; judgment, reason,
        failure kind and session are replaced by the latest values.
        """
        domain = normalize_domain(domain)
        if not domain:
            raise ValueError("enqueue requires a domain")

        urls = _ordered_union([], urls)
        titles = _ordered_union([], titles)
        fields = {
            "llm_judgment": Verdict(judgment).value if judgment else None,
            "llm_reason": reason,
            "llm_confidence": confidence,
            "failure_kind": FailureKind(failure_kind).value,
            "session_id": session_id,
        }

        with self.db.session_scope() as session:
            row = self._by_domain(session, domain)
            if row is None:
                inserted = insert_ignore(
                    session,
                    PendingReview,
                    [{"domain": domain, "urls": urls, "titles": titles, **fields}],
                    ["domain"],
                )
                row = self._by_domain(session, domain)
                if inserted:
                    return _to_item(row)

            # Existing item, or one inserted concurrently since the lookup
            row.urls = _ordered_union(row.urls or [], urls)
            row.titles = _ordered_union(row.titles or [], titles)
            for name, value in fields.items():
                setattr(row, name, value)
            session.flush()
            return _to_item(row)

    def list_pending(self) -> list[PendingReviewItem]:
        stmt = select(PendingReview).order_by(PendingReview.created_at, PendingReview.id)
        with self.db.session_scope() as session:
            return [_to_item(row) for row in session.scalars(stmt).all()]

    def list_retryable(self) -> list[PendingReviewItem]:
        """Items that are uncertain because of a technical judgment failure."""
        stmt = (
            select(PendingReview)
            .where(
                PendingReview.llm_judgment == Verdict.UNCERTAIN.value,
                PendingReview.failure_kind != FailureKind.NONE.value,
            )
            .order_by(PendingReview.id)
        )
        with self.db.session_scope() as session:
            return [_to_item(row) for row in session.scalars(stmt).all()]

    def get(self, item_id: int) -> PendingReviewItem:
        with self.db.session_scope() as session:
            return _to_item(self._require(session, item_id))

    def get_by_domain(self, domain: str) -> Optional[PendingReviewItem]:
        with self.db.session_scope() as session:
            row = self._by_domain(session, normalize_domain(domain))
            return _to_item(row) if row else None

    def update_judgment(self, item_id: int, judgment: Judgment) -> PendingReviewItem:
        """Replace an item's verdict (used when re-judging technical failures)."""
        with self.db.session_scope() as session:
            row = self._require(session, item_id)
            row.llm_judgment = Verdict(judgment.judgment).value
            row.llm_reason = judgment.reason
            row.llm_confidence = judgment.confidence
            row.failure_kind = FailureKind(judgment.failure_kind).value
            session.flush()
            return _to_item(row)

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def resolve(
        self,
        item_id: int,
        action: Union[ReviewAction, str],
        backfill: bool = False,
    ) -> ResolveOutcome:
        """
        Apply a human decision to a pending item.

        ``approve`` registers the domain as illegal and hands every URL seen for
        it to report tracking; ``reject`` registers it as legal. The item is
        deleted in the same transaction.

        Args:
            item_id: Pending item id
            action: approve or reject
            backfill: Also update stored ``pending`` results for the domain

        Raises:
            PendingReviewNotFound: If the item does not exist
        """
        action = ReviewAction(action)

        with self.db.session_scope() as session:
            row = self._require(session, item_id)
            item = _to_item(row)

            self.registry.add(item.domain, action.site_type, session=session)

            tracked = 0
            if action is ReviewAction.APPROVE:
                tracked = self._track_domain_urls(session, item)

            if backfill:
                status = FinalStatus.ILLEGAL if action is ReviewAction.APPROVE else FinalStatus.LEGAL
                updated = self.results.backfill_domain(item.domain, status, session=session)
                logger.info("Backfilled %d stored results for %s", updated, item.domain)

            session.delete(row)

        logger.info("Resolved %s as %s (%d URLs tracked)", item.domain, action.site_type.value, tracked)
        return ResolveOutcome(
            item_id=item_id,
            action=action,
            success=True,
            domain=item.domain,
            tracked_urls=tracked,
        )

    def bulk_resolve(
        self,
        item_ids: Iterable[int],
        action: Union[ReviewAction, str],
        backfill: bool = False,
    ) -> list[ResolveOutcome]:
        """
        Resolve several items independently.

        A failure on one id is reported in its outcome and does not stop the rest.
        """
        action = ReviewAction(action)
        outcomes = []

        for item_id in item_ids:
            try:
                outcomes.append(self.resolve(item_id, action, backfill=backfill))
            except PendingReviewNotFound as e:
                logger.warning("%s", e)
                outcomes.append(ResolveOutcome(item_id=item_id, action=action, success=False, error=str(e)))
            except Exception as e:
                logger.error("Failed to resolve pending item %s: %s", item_id, e)
                outcomes.append(ResolveOutcome(item_id=item_id, action=action, success=False, error=str(e)))

        succeeded = sum(1 for o in outcomes if o.success)
        logger.info("Bulk %s: %d succeeded, %d failed", action.value, succeeded, len(outcomes) - succeeded)
        return outcomes

    def recheck(self) -> RecheckSummary:
        """
        Auto-resolve items whose domain is now covered by the Site Registry.

        Covers domains registered by another path (manual edits, imports)
        after the item was queued, including parent-domain entries.
        """
        matcher = self.registry.matcher()
        summary = RecheckSummary()

        for item in self.list_pending():
            match = matcher.classify_host(item.domain)
            if match.status is MatchStatus.UNKNOWN:
                summary.remaining += 1
                continue

            with self.db.session_scope() as session:
                row = session.get(PendingReview, item.id)
                if row is None:
                    continue

                if match.status is MatchStatus.ILLEGAL:
                    summary.tracked_urls += self._track_domain_urls(session, item)
                    summary.illegal += 1
                else:
                    summary.legal += 1
                session.delete(row)

            logger.info("Recheck: %s now %s via %s", item.domain, match.status.value, match.matched_domain)

        logger.info(
            "Recheck complete: %d illegal, %d legal, %d remaining",
            summary.illegal,
            summary.legal,
            summary.remaining,
        )
        return summary

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _track_domain_urls(self, session: Session, item: PendingReviewItem) -> int:
        """Register every URL seen for the item's domain into report tracking."""
        rows = session.execute(
            select(DetectionResult.session_id, DetectionResult.url, DetectionResult.title)
            .where(DetectionResult.domain == item.domain)
            .order_by(DetectionResult.id)
        ).all()

        entries = [TrackingEntry(sid, url, item.domain, title) for sid, url, title in rows]
        known = {url for _, url, _ in rows}

        # URLs only known from the queue item itself
        leftover = [url for url in item.urls if url not in known]
        if leftover:
            if item.session_id:
                titles = item.titles if len(item.titles) == len(item.urls) else []
                title_by_url = dict(zip(item.urls, titles))
                entries.extend(
                    TrackingEntry(item.session_id, url, item.domain, title_by_url.get(url)) for url in leftover
                )
            else:
                logger.warning("%s: %d URLs have no session and were not tracked", item.domain, len(leftover))

        return self.report_tracking.register(entries, session=session)

    @staticmethod
    def _by_domain(session: Session, domain: str) -> Optional[PendingReview]:
        return session.scalars(select(PendingReview).where(PendingReview.domain == domain)).first()

    @staticmethod
    def _require(session: Session, item_id: int) -> PendingReview:
        row = session.get(PendingReview, item_id)
        if row is None:
            raise PendingReviewNotFound(item_id)
        return row
