"""Oracle protocols, response validation and retry policy.

Concrete backends live in :mod:`iconic.classification.engine`; everything here
is backend-agnostic so tests and alternative providers can reuse it.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from dataclasses import dataclass
from typing import (
    Awaitable,
    Callable,
    Dict,
    List,
    Mapping,
    Optional,
    Protocol,
    Sequence,
    TypeVar,
)

from iconic.config.models import OracleSettings

from .errors import OracleError, OracleRateLimitError, OracleResponseError

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

SUGGESTION_SAMPLE_SIZE = 50

_LINE_COMMENT = re.compile(r"//.*$", re.MULTILINE)


class ClassificationOracle(Protocol):
    """Backend that assigns categories to bundle names."""

    async def categorize(
        self,
        names: Sequence[str],
        categories: Sequence[str],
        *,
        multi_tag: bool,
        relaxed: bool,
    ) -> Dict[str, List[str]]:
        """Return tags for every name the backend is confident about.

        Names absent from the result were not classified. Tags are drawn from
        ``categories`` and the first tag is the primary category.
        """


class CategorySuggester(Protocol):
    """Backend that proposes a refined category list."""

    async def suggest_categories(
        self, sample_names: Sequence[str], categories: Sequence[str]
    ) -> List[str]:
        """Return a category list informed by ``sample_names``."""


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt cap and delays shared by every oracle request.

    Attributes:
        max_attempts: Attempts before the last error is raised.
        base_delay: Seconds multiplied by ``2 ** attempt`` for rate-limit backoff.
        extra_delay: Seconds added to every rate-limit backoff.
        malformed_delay: Seconds to wait before retrying a malformed response.
    """

    max_attempts: int = 3
    base_delay: float = 2.0
    extra_delay: float = 1.0
    malformed_delay: float = 1.0

    @classmethod
    def from_settings(cls, settings: OracleSettings) -> "RetryPolicy":
        return cls(
            max_attempts=settings.max_attempts,
            base_delay=settings.rate_limit_base_delay,
            extra_delay=settings.rate_limit_extra_delay,
            malformed_delay=settings.malformed_retry_delay,
        )

    def backoff(self, attempt: int) -> float:
        """Delay after the rate-limited ``attempt`` (zero-based)."""
        return (2**attempt) * self.base_delay + self.extra_delay


async def call_with_retry(
    request: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Run ``request`` until it succeeds or the attempt cap is reached.

    Rate-limit errors back off exponentially and malformed responses are
    retried after a short pause. Any other :class:`OracleError` is raised at
    once.

    Raises:
        OracleError: The last error once retries are exhausted, or the first
            non-retryable error.
    """

    last_error: Optional[OracleError] = None
    for attempt in range(policy.max_attempts):
        try:
            return await request()
        except OracleRateLimitError as exc:
            last_error = exc
            delay = policy.backoff(attempt)
            LOGGER.warning("Rate limit hit (attempt %d); retrying in %.1fs.", attempt + 1, delay)
            await sleep(delay)
        except OracleResponseError as exc:
            last_error = exc
            LOGGER.warning("Malformed oracle response (attempt %d): %s", attempt + 1, exc)
            await sleep(policy.malformed_delay)
    raise last_error or OracleError("Oracle request was not attempted.")


def is_rate_limit(exc: BaseException) -> bool:
    """Whether a backend exception signals HTTP 429 / rate limiting."""
    for attr in ("status_code", "status", "code"):
        if getattr(exc, attr, None) == 429:
            return True
    message = str(exc).lower()
    return "429" in message or "rate limit" in message or "ratelimit" in message


def clean_json(text: str) -> str:
    """Strip Markdown code fences and ``//`` comments around a JSON payload."""
    clean = text.strip()
    if clean.startswith("```json"):
        clean = clean[7:]
    elif clean.startswith("```"):
        clean = clean[3:]
    if clean.endswith("```"):
        clean = clean[:-3]
    clean = _LINE_COMMENT.sub("", clean)
    return clean.strip()


def parse_json_object(text: Optional[str]) -> Dict[str, object]:
    """Parse a backend answer into a JSON object.

    Raises:
        OracleResponseError: If the answer is not a JSON object.
    """
    try:
        data = json.loads(clean_json(text or "{}") or "{}")
    except json.JSONDecodeError as exc:
        raise OracleResponseError(f"Invalid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise OracleResponseError("Expected a JSON object.")
    return data


def validate_assignments(
    raw: Mapping[str, object],
    names: Sequence[str],
    categories: Sequence[str],
) -> Dict[str, List[str]]:
    """Keep only known names whose tags match known categories.

    Category matching is case-insensitive and results use the exact casing of
    ``categories``. Names whose answer is missing, empty or entirely unknown are
    left out of the result.
    """

    by_lower = {}
    for category in categories:
        by_lower.setdefault(category.lower(), category)

    validated: Dict[str, List[str]] = {}
    for name in names:
        values = raw.get(name)
        if not isinstance(values, list):
            continue
        tags = [
            by_lower[value.lower()]
            for value in values
            if isinstance(value, str) and value.lower() in by_lower
        ]
        tags = list(dict.fromkeys(tags))
        if tags:
            validated[name] = tags
    return validated


__all__ = [
    "CategorySuggester",
    "ClassificationOracle",
    "RetryPolicy",
    "SUGGESTION_SAMPLE_SIZE",
    "call_with_retry",
    "clean_json",
    "is_rate_limit",
    "parse_json_object",
    "validate_assignments",
]
