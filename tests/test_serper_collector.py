from __future__ import annotations

import json

import httpx
import pytest

from takedown_monitor.collectors.serper import SerperCollector
from takedown_monitor.config import Config
from takedown_monitor.exceptions import ConfigurationError


def _collector(handler) -> SerperCollector:
    return SerperCollector(
        api_key="serper-test",
        api_url="https://serper.test/search",
        results_per_page=10,
        rate_limit=1000,
        transport=httpx.MockTransport(handler),
    )


def test_collect_posts_query_and_returns_organic_hits() -> None:
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["api_key"] = request.headers["X-API-KEY"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={
                "organic": [
                    {"title": "Solo Leveling Raw", "link": "https://piratesite.cc/ch1", "snippet": "read", "position": 1},
                    {"title": "no link", "position": 2},
                ]
            },
        )

    with _collector(handler) as collector:
        result = collector.collect("Solo Leveling raw", page=2)

    assert result.success
    assert result.page == 2
    assert [hit["link"] for hit in result.data] == ["https://piratesite.cc/ch1"]
    assert seen["api_key"] == "serper-test"
    assert seen["body"] == {"q": "Solo Leveling raw", "gl": "us", "hl": "en", "num": 10, "page": 2}


def test_collect_without_organic_results() -> None:
    with _collector(lambda request: httpx.Response(200, json={"searchParameters": {}})) as collector:
        result = collector.collect("nothing")

    assert result.success
    assert result.data == []


def test_http_error_is_returned_not_raised() -> None:
    with _collector(lambda request: httpx.Response(500, text="upstream")) as collector:
        result = collector.collect("Solo Leveling")

    assert not result.success
    assert result.error == "HTTP 500"


def test_transport_error_is_returned_not_raised() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    with _collector(handler) as collector:
        result = collector.collect("Solo Leveling")

    assert not result.success
    assert "refused" in result.error


def test_invalid_json_is_returned_not_raised() -> None:
    with _collector(lambda request: httpx.Response(200, text="<html>")) as collector:
        result = collector.collect("Solo Leveling")

    assert not result.success
    assert result.error.startswith("Invalid JSON")


def test_missing_api_key(monkeypatch) -> None:
    monkeypatch.setattr(Config, "SERPER_API_KEY", None)
    with pytest.raises(ConfigurationError):
        SerperCollector()
