"""SQLAlchemy ORM models for registry, queue, results and report tracking."""

from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, DateTime, Float, Integer, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base

from takedown_monitor.features.schema import FailureKind, REPORT_STATUS_UNREPORTED, SessionStatus

Base = declarative_base()

JSONList = JSON().with_variant(JSONB(), "postgresql")


def utcnow() -> datetime:
    """Naive UTC timestamp (stored without time zone)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class BaseModel(Base):
    """Common id and timestamp columns."""

    __abstract__ = True

    id = Column(Integer, primary_key=True, autoincrement=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    def to_dict(self):
        return {c.name: getattr(self, c.name) for c in self.__table__.columns}


class Site(BaseModel):
    __tablename__ = "sites"
    __table_args__ = (UniqueConstraint("domain", "type", name="uq_sites_domain_type"),)

    domain = Column(String(255), nullable=False, index=True)
    type = Column(String(16), nullable=False)


class PendingReview(BaseModel):
    __tablename__ = "pending_reviews"

    domain = Column(String(255), nullable=False, unique=True)
    urls = Column(JSONList, nullable=False, default=list)
    titles = Column(JSONList, nullable=False, default=list)
    llm_judgment = Column(String(32))
    llm_reason = Column(Text)
    llm_confidence = Column(Float)
    failure_kind = Column(String(32), nullable=False, default=FailureKind.NONE.value)
    session_id = Column(String(64))
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class DetectionResult(BaseModel):
    __tablename__ = "detection_results"
    __table_args__ = (UniqueConstraint("session_id", "url", name="uq_detection_results_session_url"),)

    session_id = Column(String(64), nullable=False, index=True)
    title = Column(Text, nullable=False)
    url = Column(Text, nullable=False)
    domain = Column(String(255), nullable=False, index=True)
    search_query = Column(Text, nullable=False)
    page = Column(Integer, nullable=False)
    rank = Column(Integer, nullable=False)
    status = Column(String(16), nullable=False)
    llm_judgment = Column(String(32))
    llm_reason = Column(Text)
    final_status = Column(String(16), nullable=False)
    snippet = Column(Text)
    reviewed_at = Column(DateTime)


class MonitoringSession(BaseModel):
    __tablename__ = "sessions"

    id = Column(String(64), primary_key=True)
    status = Column(String(16), nullable=False, default=SessionStatus.RUNNING.value)
    results_total = Column(Integer, nullable=False, default=0)
    results_illegal = Column(Integer, nullable=False, default=0)
    results_legal = Column(Integer, nullable=False, default=0)
    results_pending = Column(Integer, nullable=False, default=0)
    deep_monitoring_executed = Column(Boolean, nullable=False, default=False)
    deep_targets_count = Column(Integer, nullable=False, default=0)
    deep_new_urls = Column(Integer, nullable=False, default=0)
    completed_at = Column(DateTime)
    error = Column(Text)


class ReportTracking(BaseModel):
    __tablename__ = "report_tracking"
    __table_args__ = (UniqueConstraint("session_id", "url", name="uq_report_tracking_session_url"),)

    session_id = Column(String(64), nullable=False, index=True)
    url = Column(Text, nullable=False)
    domain = Column(String(255), nullable=False, index=True)
    title = Column(Text)
    report_status = Column(String(32), nullable=False, default=REPORT_STATUS_UNREPORTED)
    reason = Column(Text)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class ExcludedUrl(BaseModel):
    __tablename__ = "excluded_urls"

    url = Column(Text, nullable=False, unique=True)


class Title(BaseModel):
    __tablename__ = "titles"

    name = Column(Text, nullable=False, unique=True)
    is_current = Column(Boolean, nullable=False, default=True)
