"""LLM-generated writeup and Quick Start steps for a featured repository.

Uses litellm for provider-agnostic access. The model is asked for a bare
JSON object with ``writeup`` (string) and ``quickStart`` (list of
strings); responses wrapped in code fences or surrounded by prose are
tolerated, anything else raises ``WriteupError``.
"""

from __future__ import annotations

import json
import re
from typing import TYPE_CHECKING, Any

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from tenacity import RetryError, retry, stop_after_attempt, wait_exponential

from repo_radar.exceptions import WriteupError

if TYPE_CHECKING:
    from repo_radar.config import WriteupSettings
    from repo_radar.models import SearchCandidate

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

_MAX_RETRIES = 3
_BACKOFF_MIN_SECONDS = 1
_BACKOFF_MAX_SECONDS = 10
_DEFAULT_TIMEOUT_SECONDS = 60.0

_JSON_FENCE_RE = re.compile(r"```(?:json)?\s*\n?(.*?)\n?\s*```", re.DOTALL)
_JSON_BRACE_RE = re.compile(r"\{.*\}", re.DOTALL)

_SYSTEM_PROMPT = "You are a technical writer for AI developers."

_USER_TEMPLATE = """\
Given a GitHub repository, produce a JSON response with exactly two fields:
- "writeup": 2-3 paragraph summary for AI developers explaining what the \
project does and why it matters
- "quickStart": array of 3-5 strings, each a concise step to get started \
(install, configure, run)

Repository name: {full_name}
Description: {description}
Stars: {stars}
Language: {language}
Topics: {topics}
README (truncated):
{readme}

Respond with ONLY valid JSON, no markdown fences, no extra text."""


class Writeup(BaseModel):
    """Validated LLM output."""

    model_config = ConfigDict(populate_by_name=True)

    writeup: str = Field(min_length=1)
    quick_start: list[str] = Field(alias="quickStart", min_length=1)


def _extract_json(text: str) -> dict[str, Any]:
    """Extract a JSON object from LLM response text.

    Handles a bare object, one wrapped in markdown code fences, or one
    surrounded by explanation text.

    Raises:
        ValueError: If no JSON object can be extracted.
    """
    text = text.strip()

    try:
        result = json.loads(text)
        if isinstance(result, dict):
            return result
    except json.JSONDecodeError:
        pass

    for pattern, group in ((_JSON_FENCE_RE, 1), (_JSON_BRACE_RE, 0)):
        match = pattern.search(text)
        if not match:
            continue
        try:
            result = json.loads(match.group(group).strip())
        except json.JSONDecodeError:
            continue
        if isinstance(result, dict):
            return result

    raise ValueError(f"Could not extract JSON from response: {text[:200]}")


def parse_writeup(text: str) -> Writeup:
    """Parse and shape-check a raw model response.

    Raises:
        WriteupError: If the response is not JSON or lacks the expected
            ``writeup`` string and ``quickStart`` list.
    """
    try:
        data = _extract_json(text)
        return Writeup.model_validate(data)
    except (ValueError, ValidationError) as exc:
        raise WriteupError(f"Unexpected writeup response: {exc}") from exc


def build_prompt(candidate: SearchCandidate, readme: str) -> str:
    return _USER_TEMPLATE.format(
        full_name=candidate.full_name,
        description=candidate.description or "No description",
        stars=candidate.stars,
        language=candidate.language or "Unknown",
        topics=", ".join(candidate.topics) or "none",
        readme=readme,
    )


class WriteupGenerator:
    """Generates the featured-project writeup with one LLM call."""

    def __init__(
        self,
        model: str = "gemini/gemini-2.5-flash",
        temperature: float = 0.4,
        max_tokens: int = 2048,
        *,
        timeout: float = _DEFAULT_TIMEOUT_SECONDS,
        attempts: int = _MAX_RETRIES,
        backoff_min: float = _BACKOFF_MIN_SECONDS,
        backoff_max: float = _BACKOFF_MAX_SECONDS,
    ) -> None:
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout
        self.attempts = attempts
        self.backoff_min = backoff_min
        self.backoff_max = backoff_max

    @classmethod
    def from_settings(cls, settings: WriteupSettings) -> WriteupGenerator:
        return cls(
            model=settings.model,
            temperature=settings.temperature,
            max_tokens=settings.max_tokens,
            timeout=settings.timeout,
            attempts=settings.attempts,
        )

    async def _call_with_retry(self, messages: list[dict[str, Any]]) -> Any:
        """Call litellm.acompletion with tenacity retry.

        Raises:
            RetryError: If all retry attempts fail.
        """
        import litellm

        @retry(
            stop=stop_after_attempt(self.attempts),
            wait=wait_exponential(min=self.backoff_min, max=self.backoff_max),
            reraise=False,
        )
        async def _do_call() -> Any:
            return await litellm.acompletion(
                model=self.model,
                messages=messages,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                timeout=self.timeout,
            )

        return await _do_call()

    async def generate(self, candidate: SearchCandidate, readme: str) -> Writeup:
        """Ask the model for a writeup and Quick Start steps.

        Args:
            candidate: Repository metadata.
            readme: README text, already truncated.

        Returns:
            The validated writeup.

        Raises:
            WriteupError: If every call fails or the response has the
                wrong shape.
        """
        messages = [
            {"role": "system", "content": _SYSTEM_PROMPT},
            {"role": "user", "content": build_prompt(candidate, readme)},
        ]
        try:
            response = await self._call_with_retry(messages)
        except RetryError as exc:
            cause = exc.last_attempt.exception()
            logger.error(
                "writeup_call_failed",
                full_name=candidate.full_name,
                model=self.model,
                attempts=self.attempts,
                error=str(cause),
            )
            raise WriteupError(
                f"Writeup generation with {self.model} failed after "
                f"{self.attempts} attempts: {cause}"
            ) from cause

        content = response.choices[0].message.content or ""
        try:
            result = parse_writeup(content)
        except WriteupError:
            logger.error(
                "writeup_parse_failed",
                full_name=candidate.full_name,
                response=content[:500],
            )
            raise

        logger.info(
            "writeup_generated",
            full_name=candidate.full_name,
            words=len(result.writeup.split()),
            steps=len(result.quick_start),
        )
        return result
