"""Exception types shared across the monitoring pipeline."""

from typing import Optional

from takedown_monitor.features.schema import FailureKind


class MonitorError(Exception):
    """Base class for all takedown-monitor errors."""


class ConfigurationError(MonitorError):
    """Missing credential or input that makes a run impossible."""


class OracleError(MonitorError):
    """
    Failure of an external judgment oracle call.

    Carries the failure kind so the Judgment Engine can record why a batch
    degraded to ``uncertain``.
    """

    def __init__(self, kind: FailureKind, message: str):
        super().__init__(message)
        self.kind = kind
        self.message = message

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"


class PendingReviewNotFound(MonitorError):
    """Pending review item does not exist (already resolved or never created)."""

    def __init__(self, item_id: int, detail: Optional[str] = None):
        super().__init__(detail or f"Pending review item {item_id} not found")
        self.item_id = item_id
