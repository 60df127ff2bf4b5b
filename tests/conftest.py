from __future__ import annotations

from typing import Callable, Optional

import pytest

from takedown_monitor.features.schema import SearchResult
from takedown_monitor.models.judgment_engine import JudgmentEngine
from takedown_monitor.models.oracle import JudgmentOracle
from takedown_monitor.monitor import ResultClassifier
from takedown_monitor.storage.database import Database
from takedown_monitor.storage.pending_queue import PendingReviewQueue
from takedown_monitor.storage.results import DetectionResultStore, ReportTrackingStore, SessionStore
from takedown_monitor.storage.site_registry import SiteRegistry

from fakes import ScriptedOracle


@pytest.fixture
def db():
    database = Database("sqlite://")
    database.create_all()
    yield database
    database.dispose()


@pytest.fixture
def registry(db) -> SiteRegistry:
    return SiteRegistry(db)


@pytest.fixture
def results(db) -> DetectionResultStore:
    return DetectionResultStore(db)


@pytest.fixture
def report_tracking(db) -> ReportTrackingStore:
    return ReportTrackingStore(db)


@pytest.fixture
def sessions(db) -> SessionStore:
    return SessionStore(db)


@pytest.fixture
def queue(db, registry, report_tracking, results) -> PendingReviewQueue:
    return PendingReviewQueue(db, registry, report_tracking, results)


@pytest.fixture
def oracle() -> ScriptedOracle:
    return ScriptedOracle()


@pytest.fixture
def make_classifier(db) -> Callable[[JudgmentOracle], ResultClassifier]:
    def _make(judgment_oracle: JudgmentOracle, batch_size: int = 20) -> ResultClassifier:
        return ResultClassifier.from_database(db, JudgmentEngine(judgment_oracle, batch_size=batch_size))

    return _make


@pytest.fixture
def make_result() -> Callable[..., SearchResult]:
    def _make(
        url: str,
        title: str = "Solo Leveling",
        snippet: Optional[str] = None,
        rank: int = 1,
        page: int = 1,
        domain: Optional[str] = None,
    ) -> SearchResult:
        from takedown_monitor.utils.domain_utils import normalize_domain

        return SearchResult(
            title=title,
            domain=domain or normalize_domain(url),
            url=url,
            search_query=f"{title} manga",
            page=page,
            rank=rank,
            snippet=snippet,
        )

    return _make
