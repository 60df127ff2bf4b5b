"""Persistence for Final Results, monitoring sessions and report tracking."""

import logging
from collections import Counter
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from takedown_monitor.features.schema import (
    EXCLUDED_URL_REASON,
    REPORT_STATUS_UNREPORTED,
    FinalResult,
    FinalStatus,
    MatchStatus,
    SessionCounts,
    SessionStatus,
    Verdict,
)
from takedown_monitor.storage.database import Database, insert_ignore
from takedown_monitor.storage.models import DetectionResult, ExcludedUrl, MonitoringSession, ReportTracking, utcnow

logger = logging.getLogger(__name__)


@dataclass
class TrackingEntry:
    """URL handed to report tracking."""

    session_id: str
    url: str
    domain: str
    title: Optional[str] = None


def _to_final_result(row: DetectionResult) -> FinalResult:
    return FinalResult(
        session_id=row.session_id,
        title=row.title,
        url=row.url,
        domain=row.domain,
        search_query=row.search_query,
        page=row.page,
        rank=row.rank,
        status=MatchStatus(row.status),
        final_status=FinalStatus(row.final_status),
        llm_judgment=Verdict(row.llm_judgment) if row.llm_judgment else None,
        llm_reason=row.llm_reason,
        snippet=row.snippet,
        reviewed_at=row.reviewed_at,
    )


def _to_row(result: FinalResult) -> dict:
    return {
        "session_id": result.session_id,
        "title": result.title,
        "url": result.url,
        "domain": result.domain,
        "search_query": result.search_query,
        "page": result.page,
        "rank": result.rank,
        "status": MatchStatus(result.status).value,
        "llm_judgment": Verdict(result.llm_judgment).value if result.llm_judgment else None,
        "llm_reason": result.llm_reason,
        "final_status": FinalStatus(result.final_status).value,
        "snippet": result.snippet,
        "reviewed_at": result.reviewed_at,
    }


class DetectionResultStore:
    """``detection_results``: one row per (session, URL)."""

    def __init__(self, db: Database):
        self.db = db

    def save(self, results: Iterable[FinalResult]) -> int:
        """
        Persist results, ignoring rows already stored for the same (session, URL).

        Returns:
            Number of new rows
        """
        rows = [_to_row(r) for r in results]
        with self.db.session_scope() as session:
            inserted = insert_ignore(session, DetectionResult, rows, ["session_id", "url"])

        logger.info("Saved %d new results (%d duplicates ignored)", inserted, len(rows) - inserted)
        return inserted

    def by_session(self, session_id: str) -> list[FinalResult]:
        stmt = (
            select(DetectionResult)
            .where(DetectionResult.session_id == session_id)
            .order_by(DetectionResult.title, DetectionResult.search_query, DetectionResult.rank)
        )
        with self.db.session_scope() as session:
            return [_to_final_result(row) for row in session.scalars(stmt).all()]

    def urls_for_session(self, session_id: str) -> set[str]:
        stmt = select(DetectionResult.url).where(DetectionResult.session_id == session_id)
        with self.db.session_scope() as session:
            return set(session.scalars(stmt).all())

    def snippets_for_domains(self, domains: Iterable[str], limit: int = 5) -> dict[str, list[str]]:
        """Distinct stored snippets per domain (most recent first), at most ``limit`` each."""
        domains = list(domains)
        if not domains:
            return {}

        stmt = (
            select(DetectionResult.domain, DetectionResult.snippet)
            .where(DetectionResult.domain.in_(domains), DetectionResult.snippet.is_not(None))
            .order_by(DetectionResult.id.desc())
        )
        snippets: dict[str, list[str]] = {d: [] for d in domains}
        with self.db.session_scope() as session:
            for domain, snippet in session.execute(stmt):
                snippet = snippet.strip()
                bucket = snippets[domain]
                if snippet and snippet not in bucket and len(bucket) < limit:
                    bucket.append(snippet)
        return snippets

    def counts(self, session_id: str, session: Optional[Session] = None) -> SessionCounts:
        """Rollup counters computed from persisted rows."""
        stmt = (
            select(DetectionResult.final_status, func.count())
            .where(DetectionResult.session_id == session_id)
            .group_by(DetectionResult.final_status)
        )
        if session is None:
            with self.db.session_scope() as own_session:
                by_status = Counter(dict(own_session.execute(stmt).all()))
        else:
            by_status = Counter(dict(session.execute(stmt).all()))

        return SessionCounts(
            total=sum(by_status.values()),
            illegal=by_status[FinalStatus.ILLEGAL.value],
            legal=by_status[FinalStatus.LEGAL.value],
            pending=by_status[FinalStatus.PENDING.value],
        )

    def backfill_domain(self, domain: str, final_status: FinalStatus, session: Optional[Session] = None) -> int:
        """
        Apply a human decision to stored ``pending`` rows of a domain.

        Rows already marked illegal or legal keep their status.

        Returns:
            Number of rows updated
        """
        stmt = (
            update(DetectionResult)
            .where(
                DetectionResult.domain == domain,
                DetectionResult.final_status == FinalStatus.PENDING.value,
            )
            .values(final_status=FinalStatus(final_status).value, reviewed_at=utcnow())
        )
        if session is None:
            with self.db.session_scope() as own_session:
                return own_session.execute(stmt).rowcount or 0
        return session.execute(stmt).rowcount or 0


class SessionStore:
    """``sessions``: lifecycle and rollup counters of monitoring runs."""

    def __init__(self, db: Database):
        self.db = db

    @staticmethod
    def new_session_id(now: Optional[datetime] = None) -> str:
        return (now or datetime.now()).strftime("%Y-%m-%dT%H-%M-%S")

    def create(self, session_id: str) -> None:
        """Start (or restart) a session in ``running`` state."""
        with self.db.session_scope() as session:
            row = session.get(MonitoringSession, session_id)
            if row is None:
                session.add(MonitoringSession(id=session_id, status=SessionStatus.RUNNING.value))
            else:
                row.status = SessionStatus.RUNNING.value
                row.completed_at = None
                row.error = None

    def update_counts(self, session_id: str, counts: SessionCounts) -> None:
        """Upsert the rollup counters for a session."""
        with self.db.session_scope() as session:
            row = session.get(MonitoringSession, session_id)
            if row is None:
                row = MonitoringSession(id=session_id, status=SessionStatus.RUNNING.value)
                session.add(row)

            row.results_total = counts.total
            row.results_illegal = counts.illegal
            row.results_legal = counts.legal
            row.results_pending = counts.pending

    def record_deep_monitoring(self, session_id: str, targets: int, new_urls: int) -> None:
        with self.db.session_scope() as session:
            row = session.get(MonitoringSession, session_id)
            if row is None:
                row = MonitoringSession(id=session_id, status=SessionStatus.COMPLETED.value)
                session.add(row)

            row.deep_monitoring_executed = True
            row.deep_targets_count = targets
            row.deep_new_urls = new_urls

    def complete(self, session_id: str) -> None:
        self._finish(session_id, SessionStatus.COMPLETED)

    def fail(self, session_id: str, error: str) -> None:
        self._finish(session_id, SessionStatus.FAILED, error)

    def _finish(self, session_id: str, status: SessionStatus, error: Optional[str] = None) -> None:
        with self.db.session_scope() as session:
            row = session.get(MonitoringSession, session_id)
            if row is None:
                row = MonitoringSession(id=session_id)
                session.add(row)

            row.status = status.value
            row.completed_at = utcnow()
            row.error = error

    def get(self, session_id: str) -> Optional[dict]:
        with self.db.session_scope() as session:
            row = session.get(MonitoringSession, session_id)
            return row.to_dict() if row else None


class ReportTrackingStore:
    """
    ``report_tracking``: takedown state of illegal URLs.

    Entries start ``unreported``. URLs on the exclusion list are still tracked
    but carry the reason "website main page".
    """

    def __init__(self, db: Database):
        self.db = db

    def register(self, entries: Iterable[TrackingEntry], session: Optional[Session] = None) -> int:
        """
        Register URLs for takedown tracking; existing (session, URL) pairs are left untouched.

        Args:
            entries: URLs to track
            session: Join an existing transaction instead of opening one

        Returns:
            Number of newly tracked URLs
        """
        entries = list(entries)
        if not entries:
            return 0

        if session is None:
            with self.db.session_scope() as own_session:
                return self._register(own_session, entries)
        return self._register(session, entries)

    def _register(self, session: Session, entries: list[TrackingEntry]) -> int:
        excluded = set(session.scalars(select(ExcludedUrl.url)).all())

        rows = [
            {
                "session_id": entry.session_id,
                "url": entry.url,
                "domain": entry.domain,
                "title": entry.title,
                "report_status": REPORT_STATUS_UNREPORTED,
                "reason": EXCLUDED_URL_REASON if entry.url in excluded else None,
            }
            for entry in entries
        ]
        inserted = insert_ignore(session, ReportTracking, rows, ["session_id", "url"])

        auto_excluded = sum(1 for row in rows if row["reason"])
        logger.info(
            "Report tracking: %d registered, %d already tracked, %d excluded",
            inserted,
            len(rows) - inserted,
            auto_excluded,
        )
        return inserted

    def by_session(self, session_id: str) -> list[dict]:
        stmt = select(ReportTracking).where(ReportTracking.session_id == session_id).order_by(ReportTracking.id)
        with self.db.session_scope() as session:
            return [row.to_dict() for row in session.scalars(stmt).all()]

    def exclude(self, url: str) -> bool:
        """Add a URL to the exclusion list. Returns False if it was already there."""
        with self.db.session_scope() as session:
            return insert_ignore(session, ExcludedUrl, [{"url": url}], ["url"]) > 0
