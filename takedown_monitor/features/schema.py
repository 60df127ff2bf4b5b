"""Data schemas for search results, classifications, judgments and reviews."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


class SiteType(str, Enum):
    """Site Registry list a domain belongs to."""

    ILLEGAL = "illegal"
    LEGAL = "legal"

    @property
    def opposite(self) -> "SiteType":
        return SiteType.LEGAL if self is SiteType.ILLEGAL else SiteType.ILLEGAL


class MatchStatus(str, Enum):
    """Outcome of deterministic list matching."""

    ILLEGAL = "illegal"
    LEGAL = "legal"
    UNKNOWN = "unknown"


class Verdict(str, Enum):
    """Judgment oracle verdict for one domain."""

    LIKELY_ILLEGAL = "likely_illegal"
    LIKELY_LEGAL = "likely_legal"
    UNCERTAIN = "uncertain"


class FailureKind(str, Enum):
    """
    Why a judgment is technically uncertain.

    ``NONE`` marks a substantive verdict (including a genuine "uncertain").
    Every other kind is a technical failure that the retry flow may resubmit.
    """

    NONE = "none"
    AUTH_ERROR = "auth_error"
    PARSE_ERROR = "parse_error"
    TIMEOUT = "timeout"
    RATE_LIMITED = "rate_limited"
    ORACLE_ERROR = "oracle_error"

    @property
    def retryable(self) -> bool:
        return self is not FailureKind.NONE


class FinalStatus(str, Enum):
    """Authoritative per-URL classification used for reporting."""

    ILLEGAL = "illegal"
    LEGAL = "legal"
    PENDING = "pending"


class ReviewAction(str, Enum):
    """Human decision on a pending review item."""

    APPROVE = "approve"  # -> illegal
    REJECT = "reject"  # -> legal

    @property
    def site_type(self) -> SiteType:
        return SiteType.ILLEGAL if self is ReviewAction.APPROVE else SiteType.LEGAL


class SessionStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


REPORT_STATUS_UNREPORTED = "unreported"
EXCLUDED_URL_REASON = "website main page"


@dataclass
class SearchResult:
    """One ranked hit from the search oracle for a (title x keyword) query."""

    title: str
    domain: str
    url: str
    search_query: str
    page: int
    rank: int
    snippet: Optional[str] = None


@dataclass
class ClassifiedResult(SearchResult):
    """Search result after Domain Matcher classification."""

    status: MatchStatus = MatchStatus.UNKNOWN
    matched_domain: Optional[str] = None


@dataclass
class DomainInfo:
    """
    Evidence bundle for one unknown domain.

    This is the unit of work submitted to the LLM Judgment Engine.
    """

    domain: str
    snippets: list[str] = field(default_factory=list)
    urls: list[str] = field(default_factory=list)
    titles: list[str] = field(default_factory=list)


@dataclass
class Judgment:
    """Verdict for one domain, merged onto every result sharing the domain."""

    domain: str
    judgment: Verdict
    reason: str
    confidence: Optional[float] = None
    failure_kind: FailureKind = FailureKind.NONE

    @property
    def is_failure(self) -> bool:
        return self.failure_kind.retryable


@dataclass
class FinalResult:
    """Persisted per-URL record of a monitoring session."""

    session_id: str
    title: str
    url: str
    domain: str
    search_query: str
    page: int
    rank: int
    status: MatchStatus
    final_status: FinalStatus
    llm_judgment: Optional[Verdict] = None
    llm_reason: Optional[str] = None
    snippet: Optional[str] = None
    reviewed_at: Optional[datetime] = None


@dataclass
class PendingReviewItem:
    """Domain awaiting a human approve/reject decision."""

    id: int
    domain: str
    urls: list[str]
    titles: list[str]
    llm_judgment: Optional[Verdict] = None
    llm_reason: Optional[str] = None
    failure_kind: FailureKind = FailureKind.NONE
    session_id: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass
class ResolveOutcome:
    """Per-item result of a (bulk) resolve."""

    item_id: int
    action: ReviewAction
    success: bool
    domain: Optional[str] = None
    tracked_urls: int = 0
    error: Optional[str] = None


@dataclass
class RecheckSummary:
    """Counts from reconciling the pending queue with the Site Registry."""

    illegal: int = 0
    legal: int = 0
    remaining: int = 0
    tracked_urls: int = 0


@dataclass
class SessionCounts:
    """Session-level rollup counters."""

    total: int = 0
    illegal: int = 0
    legal: int = 0
    pending: int = 0


@dataclass
class RetrySummary:
    """Outcome of re-judging technically failed pending items."""

    retried: int = 0
    recovered: int = 0
    still_failed: int = 0


@dataclass
class RunSummary:
    """Result of a full monitoring run."""

    session_id: str
    results: list[FinalResult] = field(default_factory=list)
    counts: SessionCounts = field(default_factory=SessionCounts)
    searched: int = 0


@dataclass
class DeepTarget:
    """Illegal domain worth a site-scoped follow-up search for one title."""

    session_id: str
    title: str
    domain: str
    url_count: int
    base_keyword: str
    deep_query: str
    keyword_breakdown: list[tuple[str, int]] = field(default_factory=list)


@dataclass
class DeepTargetResult:
    """Outcome of the follow-up search for one target."""

    target: DeepTarget
    results_count: int = 0
    new_urls_count: int = 0
    illegal: int = 0
    legal: int = 0
    pending: int = 0
    error: Optional[str] = None


@dataclass
class DeepRunSummary:
    """Result of deep monitoring a session."""

    session_id: str
    targets: list[DeepTargetResult] = field(default_factory=list)
    new_urls: int = 0


# Column order of exported session reports
REPORT_COLUMNS = (
    "title",
    "domain",
    "url",
    "search_query",
    "page",
    "rank",
    "status",
    "llm_judgment",
    "llm_reason",
    "final_status",
    "reviewed_at",
)
