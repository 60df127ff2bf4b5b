"""Base collector class for search oracle clients."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

from takedown_monitor.utils.rate_limiter import TokenBucketRateLimiter


@dataclass
class CollectorResult:
    """
    Standard result object returned by collectors.

    Attributes:
        query: Search query that was sent
        page: 1-based result page
        success: Whether the request succeeded
        data: Collected data (list of organic hits for search collectors)
        error: Error message if collection failed
    """

    query: str
    page: int
    success: bool
    data: Optional[Any] = None
    error: Optional[str] = None


class BaseCollector(ABC):
    """
    Abstract base class for search collectors.

    Collectors never raise for request failures; they return an unsuccessful
    CollectorResult so one bad query cannot stop a run.
    """

    def __init__(self, name: str):
        self.name = name

    @abstractmethod
    def collect(self, query: str, page: int = 1) -> CollectorResult:
        """
        Fetch one page of results for a query.

        Args:
            query: Search query
            page: 1-based page number

        Returns:
            CollectorResult with success status and data
        """
        raise NotImplementedError(f"{self.name} must implement collect()")

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name='{self.name}')"


class RemoteCollector(BaseCollector):
    """
    Base class for collectors that call a remote API.

    These collectors require rate limiting and error handling.
    """

    def __init__(self, name: str, rate_limit: Optional[float] = None):
        """
        Initialize remote collector.

        Args:
            name: Human-readable name
            rate_limit: Requests per second (None = no limit)
        """
        super().__init__(name)
        self.rate_limit = rate_limit
        self._rate_limiter = TokenBucketRateLimiter(rate_limit) if rate_limit else None

    def _apply_rate_limit(self) -> None:
        """Apply rate limiting before making a request."""
        if self._rate_limiter:
            self._rate_limiter.acquire()
