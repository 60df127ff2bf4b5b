"""Persistence: registry, pending queue, results, sessions and report tracking."""

from takedown_monitor.storage.database import Database, get_database
from takedown_monitor.storage.pending_queue import PendingReviewQueue
from takedown_monitor.storage.results import (
    DetectionResultStore,
    ReportTrackingStore,
    SessionStore,
    TrackingEntry,
)
from takedown_monitor.storage.site_registry import SiteRegistry
from takedown_monitor.storage.titles import TitleStore

__all__ = [
    "Database",
    "get_database",
    "PendingReviewQueue",
    "DetectionResultStore",
    "ReportTrackingStore",
    "SessionStore",
    "TrackingEntry",
    "SiteRegistry",
    "TitleStore",
]
