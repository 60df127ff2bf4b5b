"""
LLM Judgment Engine.

Submits unknown domains to a judgment oracle in fixed-size batches and turns
whatever comes back into exactly one ``Judgment`` per requested domain. A
failed batch never aborts the run: its domains degrade to ``uncertain`` with a
diagnostic reason and a ``FailureKind`` the retry flow can select on.
"""

import logging
from typing import Any, Optional

from takedown_monitor.exceptions import OracleError
from takedown_monitor.features.schema import DomainInfo, FailureKind, Judgment, Verdict
from takedown_monitor.models.oracle import JudgmentOracle
from takedown_monitor.utils.domain_utils import normalize_domain
from takedown_monitor.utils.rate_limiter import NO_DELAY, BatchDelay

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 20

FAILURE_REASONS = {
    FailureKind.AUTH_ERROR: "API key error",
    FailureKind.PARSE_ERROR: "parse error",
    FailureKind.TIMEOUT: "timeout",
    FailureKind.RATE_LIMITED: "rate limited",
    FailureKind.ORACLE_ERROR: "judgment service error",
}


def failure_judgment(domain: str, kind: FailureKind, detail: Optional[str] = None) -> Judgment:
    """Technical-failure judgment: uncertain, with a reason naming the failure class."""
    reason = FAILURE_REASONS.get(kind, kind.value)
    if detail:
        reason = f"{reason}: {detail}"
    return Judgment(domain=domain, judgment=Verdict.UNCERTAIN, reason=reason, failure_kind=kind)


def _parse_confidence(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        confidence = float(value)
    except (TypeError, ValueError):
        return None
    return confidence if 0.0 <= confidence <= 1.0 else None


class JudgmentEngine:
    """
    Batched domain judgment with per-batch failure isolation.

    Args:
        oracle: Judgment oracle to call once per batch
        batch_size: Domains per oracle call
        delay: Pause between consecutive batches (not after the last one)
    """

    def __init__(
        self,
        oracle: JudgmentOracle,
        batch_size: int = DEFAULT_BATCH_SIZE,
        delay: BatchDelay = NO_DELAY,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be positive")

        self.oracle = oracle
        self.batch_size = batch_size
        self.delay = delay

    @classmethod
    def from_config(cls, oracle: Optional[JudgmentOracle] = None) -> "JudgmentEngine":
        from takedown_monitor.config import config
        from takedown_monitor.models.oracle import OpenAIJudgmentOracle

        return cls(
            oracle=oracle or OpenAIJudgmentOracle.from_config(),
            batch_size=config.JUDGMENT_BATCH_SIZE,
            delay=BatchDelay(config.JUDGMENT_DELAY_MIN, config.JUDGMENT_DELAY_MAX),
        )

    def judge_batch(
        self,
        domain_infos: list[DomainInfo],
        session_id: Optional[str] = None,
        batch_size: Optional[int] = None,
    ) -> dict[str, Judgment]:
        """
        Judge every domain, one oracle call per batch.

        Args:
            domain_infos: Evidence bundles, one per domain
            session_id: Monitoring session, forwarded to the oracle
            batch_size: Override for this call

        Returns:
            Dict mapping domain -> Judgment, with an entry for every input domain
        """
        size = batch_size or self.batch_size
        batches = [domain_infos[i:i + size] for i in range(0, len(domain_infos), size)]
        judgments: dict[str, Judgment] = {}

        for index, batch in enumerate(batches, start=1):
            logger.info("Judging batch %d/%d (%d domains)", index, len(batches), len(batch))

            judgments.update(self._judge_one(batch, session_id, index))

            if index < len(batches):
                waited = self.delay.wait()
                if waited:
                    logger.debug("Waited %.1fs before next batch", waited)

        failed = sum(1 for j in judgments.values() if j.is_failure)
        if failed:
            logger.warning("%d of %d domains could not be judged", failed, len(judgments))
        return judgments

    def _judge_one(
        self, batch: list[DomainInfo], session_id: Optional[str], batch_number: int
    ) -> dict[str, Judgment]:
        try:
            records = self.oracle.judge(batch, session_id=session_id, batch_number=batch_number)
        except OracleError as e:
            logger.warning("Batch %d failed: %s", batch_number, e)
            return {info.domain: failure_judgment(info.domain, e.kind, e.message) for info in batch}
        except Exception as e:
            logger.warning("Batch %d failed unexpectedly: %s: %s", batch_number, e.__class__.__name__, e)
            return {
                info.domain: failure_judgment(info.domain, FailureKind.ORACLE_ERROR, e.__class__.__name__)
                for info in batch
            }

        requested = {info.domain for info in batch}
        received: dict[str, Judgment] = {}

        for record in records:
            domain = normalize_domain(str(record.get("domain") or ""))
            if domain not in requested or domain in received:
                continue

            try:
                verdict = Verdict(record.get("judgment"))
            except ValueError:
                received[domain] = failure_judgment(
                    domain, FailureKind.PARSE_ERROR, f"invalid verdict {record.get('judgment')!r}"
                )
                continue

            received[domain] = Judgment(
                domain=domain,
                judgment=verdict,
                reason=str(record.get("reason") or ""),
                confidence=_parse_confidence(record.get("confidence")),
            )

        missing = [info.domain for info in batch if info.domain not in received]
        if missing:
            logger.warning("Batch %d: no verdict for %d domains", batch_number, len(missing))
            for domain in missing:
                received[domain] = failure_judgment(domain, FailureKind.PARSE_ERROR, "missing from response")

        return {info.domain: received[info.domain] for info in batch}
