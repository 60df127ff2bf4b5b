"""
Google search collector via the Serper.dev API.

POSTs ``{q, gl, hl, num, page}`` with an ``X-API-KEY`` header and returns the
``organic`` hits of one result page.
"""

import logging
from typing import Optional

import httpx

from takedown_monitor.collectors.base import CollectorResult, RemoteCollector
from takedown_monitor.config import config
from takedown_monitor.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class SerperCollector(RemoteCollector):
    """
    Search oracle client.

    Args:
        api_key: Serper API key (defaults to config)
        api_url: Endpoint (defaults to config)
        results_per_page: ``num`` sent with each request
        country: ``gl`` parameter
        language: ``hl`` parameter
        rate_limit: Requests per second (defaults to config)
        timeout: HTTP request timeout in seconds (defaults to config)
        transport: httpx transport override (tests use ``httpx.MockTransport``)

    Raises:
        ConfigurationError: If no API key is available
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        api_url: Optional[str] = None,
        results_per_page: Optional[int] = None,
        country: str = "us",
        language: str = "en",
        rate_limit: Optional[float] = None,
        timeout: Optional[int] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.api_key = api_key or config.SERPER_API_KEY
        if not self.api_key:
            raise ConfigurationError("SERPER_API_KEY is not set")

        self.api_url = api_url or config.SERPER_API_URL
        self.results_per_page = results_per_page or config.SEARCH_RESULTS_PER_PAGE
        self.country = country
        self.language = language
        self.timeout = timeout or config.HTTP_TIMEOUT

        super().__init__(name="Serper", rate_limit=rate_limit or config.SEARCH_RATE_LIMIT)
        self.client = httpx.Client(
            timeout=self.timeout,
            headers={"X-API-KEY": self.api_key, "Content-Type": "application/json"},
            transport=transport,
        )

    def collect(self, query: str, page: int = 1) -> CollectorResult:
        """
        Fetch one page of organic results.

        Returns:
            CollectorResult whose data is a list of ``{title, link, snippet, position}``
        """
        self._apply_rate_limit()

        payload = {
            "q": query,
            "gl": self.country,
            "hl": self.language,
            "num": self.results_per_page,
            "page": page,
        }

        try:
            response = self.client.post(self.api_url, json=payload)
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPStatusError as e:
            logger.warning("Search failed for %r page %d: HTTP %d", query, page, e.response.status_code)
            return CollectorResult(
                query=query, page=page, success=False, error=f"HTTP {e.response.status_code}"
            )
        except httpx.HTTPError as e:
            logger.warning("Search failed for %r page %d: %s", query, page, e)
            return CollectorResult(query=query, page=page, success=False, error=str(e) or e.__class__.__name__)
        except ValueError as e:
            logger.warning("Search returned invalid JSON for %r page %d", query, page)
            return CollectorResult(query=query, page=page, success=False, error=f"Invalid JSON: {e}")

        organic = body.get("organic") if isinstance(body, dict) else None
        hits = [hit for hit in (organic or []) if isinstance(hit, dict) and hit.get("link")]
        return CollectorResult(query=query, page=page, success=True, data=hits)

    def close(self) -> None:
        self.client.close()

    def __enter__(self) -> "SerperCollector":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
