"""Domain judgment models."""

from takedown_monitor.models.judgment_engine import JudgmentEngine
from takedown_monitor.models.oracle import JudgmentOracle, OpenAIJudgmentOracle

__all__ = ["JudgmentEngine", "JudgmentOracle", "OpenAIJudgmentOracle"]
