from __future__ import annotations

from typing import Any, Optional

from takedown_monitor.collectors.base import BaseCollector, CollectorResult
from takedown_monitor.exceptions import OracleError
from takedown_monitor.features.schema import DomainInfo, FailureKind
from takedown_monitor.models.oracle import JudgmentOracle


class ScriptedOracle(JudgmentOracle):
    """Answers from a domain -> (judgment, reason) table and records every batch."""

    def __init__(
        self,
        verdicts: Optional[dict[str, tuple[str, str]]] = None,
        default: tuple[str, str] = ("uncertain", "not enough evidence"),
        fail_batches: Optional[dict[int, FailureKind]] = None,
    ):
        self.verdicts = verdicts or {}
        self.default = default
        self.fail_batches = fail_batches or {}
        self.calls: list[list[str]] = []

    def judge(
        self,
        domain_infos: list[DomainInfo],
        session_id: Optional[str] = None,
        batch_number: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        self.calls.append([info.domain for info in domain_infos])

        if batch_number in self.fail_batches:
            raise OracleError(self.fail_batches[batch_number], "scripted failure")

        records = []
        for info in domain_infos:
            judgment, reason = self.verdicts.get(info.domain, self.default)
            records.append({"domain": info.domain, "judgment": judgment, "reason": reason})
        return records

    @property
    def judged_domains(self) -> list[str]:
        return [domain for batch in self.calls for domain in batch]


class RawOracle(JudgmentOracle):
    """Returns fixed raw records regardless of input."""

    def __init__(self, records: list[dict[str, Any]]):
        self.records = records

    def judge(self, domain_infos, session_id: Optional[str] = None, batch_number: Optional[int] = None):
        return self.records


class StaticCollector(BaseCollector):
    """Serves canned organic hits per (query, page); unknown pages are empty."""

    def __init__(self, pages: dict[tuple[str, int], Any]):
        super().__init__(name="Static")
        self.pages = pages
        self.requests: list[tuple[str, int]] = []

    def collect(self, query: str, page: int = 1) -> CollectorResult:
        self.requests.append((query, page))
        hits = self.pages.get((query, page), [])
        if isinstance(hits, str):
            return CollectorResult(query=query, page=page, success=False, error=hits)
        return CollectorResult(query=query, page=page, success=True, data=hits)


def hits(*urls: str) -> list[dict[str, Any]]:
    return [
        {"title": f"hit {i}", "link": url, "snippet": f"snippet for {url}", "position": i}
        for i, url in enumerate(urls, start=1)
    ]
