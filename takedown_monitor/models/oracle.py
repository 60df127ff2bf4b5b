"""
Judgment oracle clients.

A judgment oracle receives evidence for a batch of domains and returns one
raw verdict record per domain. Any failure is raised as ``OracleError`` with
the matching ``FailureKind``; the Judgment Engine turns those into
``uncertain`` judgments.
"""

import json
import logging
import re
from abc import ABC, abstractmethod
from typing import Any, Optional

import openai
from openai import OpenAI

from takedown_monitor.exceptions import OracleError
from takedown_monitor.features.schema import DomainInfo, FailureKind

logger = logging.getLogger(__name__)

# Evidence sent per domain
PROMPT_MAX_SNIPPETS = 3
PROMPT_MAX_URLS = 5
PROMPT_MAX_TITLES = 5

SYSTEM_PROMPT = (
    "You are an analyst who identifies websites that distribute copyrighted "
    "comics, manga and webtoons without authorization. Answer with JSON only."
)

_FENCED_JSON = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```")


def build_prompt(
    domain_infos: list[DomainInfo],
    criteria: str = "",
    session_id: Optional[str] = None,
    batch_number: Optional[int] = None,
) -> str:
    """
    Build the user prompt for one judgment batch.

    Args:
        domain_infos: Evidence bundles for the batch
        criteria: Optional extra judgment criteria
        session_id: Monitoring session, included as a header when given
        batch_number: 1-based batch index within the session

    Returns:
        Prompt text
    """
    header = ""
    if session_id:
        header = f"[Monitoring session: {session_id}"
        if batch_number:
            header += f" - batch {batch_number}"
        header += "]\n\n"

    domains = [
        {
            "domain": info.domain,
            "snippets": info.snippets[:PROMPT_MAX_SNIPPETS],
            "urls": info.urls[:PROMPT_MAX_URLS],
            "titles": info.titles[:PROMPT_MAX_TITLES],
        }
        for info in domain_infos
    ]

    sections = [
        f"{header}Decide for each of the following {len(domain_infos)} domains whether "
        "it is an unauthorized distribution (piracy) site.",
        "## Verdicts\n"
        "- likely_illegal: piracy indicators such as chapter/episode reader pages, "
        "raw or scanlation keywords, ad-heavy reader layouts\n"
        "- likely_legal: official publisher, store, news or database site\n"
        "- uncertain: not enough evidence",
    ]
    if criteria:
        sections.append(f"## Additional criteria\n{criteria}")

    sections.append(
        "## Domains\n```json\n" + json.dumps({"domains": domains}, ensure_ascii=False, indent=2) + "\n```"
    )
    sections.append(
        "## Response format\n"
        "Reply with this JSON and nothing else:\n"
        "```json\n"
        '{"results": [{"domain": "example.com", '
        '"judgment": "likely_illegal|likely_legal|uncertain", '
        '"confidence": 0.0, "reason": "short justification"}]}\n'
        "```"
    )
    return "\n\n".join(sections)


def parse_verdicts(text: Optional[str]) -> list[dict[str, Any]]:
    """
    Extract verdict records from an oracle reply.

    Accepts JSON optionally wrapped in a fenced code block, either a bare list
    or an object with a ``results`` list. Non-object entries are dropped.

    Raises:
        OracleError: PARSE_ERROR when no verdict list can be read
    """
    if not text or not text.strip():
        raise OracleError(FailureKind.PARSE_ERROR, "empty response")

    match = _FENCED_JSON.search(text)
    payload = match.group(1) if match else text

    try:
        parsed = json.loads(payload.strip())
    except json.JSONDecodeError as e:
        raise OracleError(FailureKind.PARSE_ERROR, f"response is not valid JSON ({e.msg})") from e

    if isinstance(parsed, dict):
        parsed = parsed.get("results")

    if not isinstance(parsed, list):
        raise OracleError(FailureKind.PARSE_ERROR, "response has no results list")

    return [item for item in parsed if isinstance(item, dict)]


class JudgmentOracle(ABC):
    """External classification service for batches of domains."""

    @abstractmethod
    def judge(
        self,
        domain_infos: list[DomainInfo],
        session_id: Optional[str] = None,
        batch_number: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        """
        Judge one batch.

        Returns:
            Raw records with ``domain``, ``judgment``, ``reason`` and optionally
            ``confidence``. May be partial or contain unexpected domains.

        Raises:
            OracleError: When the call fails or the reply cannot be parsed
        """
        raise NotImplementedError


class OpenAIJudgmentOracle(JudgmentOracle):
    """
    Judgment oracle backed by an OpenAI-compatible chat completions API.

    Args:
        api_key: API key (a missing key fails every batch with AUTH_ERROR)
        base_url: Alternate endpoint for compatible providers
        model: Model name
        timeout: Request timeout in seconds
        criteria: Extra judgment criteria appended to each prompt
        client: Preconfigured client, mainly for tests
    """

    def __init__(
        self,
        api_key: Optional[str],
        base_url: Optional[str] = None,
        model: str = "gpt-4o-mini",
        timeout: float = 120.0,
        criteria: str = "",
        temperature: float = 0.0,
        client: Optional[OpenAI] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url
        self.model = model
        self.timeout = timeout
        self.criteria = criteria
        self.temperature = temperature
        self._client = client

    @classmethod
    def from_config(cls) -> "OpenAIJudgmentOracle":
        from takedown_monitor.config import config

        return cls(
            api_key=config.LLM_API_KEY,
            base_url=config.LLM_BASE_URL,
            model=config.LLM_MODEL_NAME,
            timeout=config.LLM_TIMEOUT,
            criteria=config.load_criteria(),
        )

    @property
    def client(self) -> OpenAI:
        if self._client is None:
            self._client = OpenAI(
                api_key=self.api_key,
                base_url=self.base_url,
                timeout=self.timeout,
                max_retries=0,
            )
        return self._client

    def judge(
        self,
        domain_infos: list[DomainInfo],
        session_id: Optional[str] = None,
        batch_number: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        if not self.api_key and self._client is None:
            raise OracleError(FailureKind.AUTH_ERROR, "API key not set")

        prompt = build_prompt(domain_infos, self.criteria, session_id, batch_number)

        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                temperature=self.temperature,
            )
        except (openai.AuthenticationError, openai.PermissionDeniedError) as e:
            raise OracleError(FailureKind.AUTH_ERROR, f"API key rejected ({e.__class__.__name__})") from e
        except openai.RateLimitError as e:
            raise OracleError(FailureKind.RATE_LIMITED, "rate limited by judgment service") from e
        except openai.APITimeoutError as e:
            raise OracleError(FailureKind.TIMEOUT, f"no response within {self.timeout:g}s") from e
        except openai.APIError as e:
            raise OracleError(FailureKind.ORACLE_ERROR, f"judgment service error ({e.__class__.__name__})") from e

        if not response.choices:
            raise OracleError(FailureKind.PARSE_ERROR, "response has no choices")

        content = response.choices[0].message.content
        logger.debug("Judgment response (%d chars) for batch %s", len(content or ""), batch_number)
        return parse_verdicts(content)
