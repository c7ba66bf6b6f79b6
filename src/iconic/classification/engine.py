"""DSPy-backed classification and category-suggestion oracle."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Awaitable, Callable, Dict, List, Optional, Sequence

import dspy

from iconic.config.models import OracleSettings

from .errors import MissingCredentialError, OracleError, OracleRateLimitError
from .oracle import (
    SUGGESTION_SAMPLE_SIZE,
    RetryPolicy,
    call_with_retry,
    is_rate_limit,
    parse_json_object,
    validate_assignments,
)

LOGGER = logging.getLogger(__name__)


class CategorizeSignature(dspy.Signature):
    """You are an expert audio librarian. Identify each plugin's type (for
    example "Pro-Q 3" is an EQ) and match it to the best categories from the
    provided list. Answer with a JSON object mapping every plugin name to a list
    of categories; the first category is the primary one and is mandatory."""

    plugins: str = dspy.InputField(desc="JSON array of plugin names")
    categories: str = dspy.InputField(desc="JSON array of allowed categories")
    guidance: str = dspy.InputField(desc="Matching rules for this request")
    assignments: str = dspy.OutputField(desc='JSON object: {"PluginName": ["Primary", ...]}')


class SuggestCategoriesSignature(dspy.Signature):
    """Create a refined, comprehensive list of categories for organizing these
    audio plugins. Keep valid existing categories and add new ones when the
    plugins suggest a need (for example many EQ plugins warrant an "Equalizer"
    category)."""

    plugins: str = dspy.InputField(desc="JSON array of sample plugin names")
    categories: str = dspy.InputField(desc="JSON array of the current categories")
    result: str = dspy.OutputField(desc='JSON object with a "categories" array of strings')


class DSPyOracle:
    """Classify bundle names and suggest category lists with a DSPy program."""

    def __init__(
        self,
        settings: Optional[OracleSettings] = None,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Configure the language model used for every request.

        Args:
            settings: Oracle configuration (model, credential, retry policy).
            sleep: Awaitable used for retry delays.

        Raises:
            MissingCredentialError: If neither an API key nor a custom endpoint is configured.
            OracleError: If DSPy rejects the language-model configuration.
        """

        self._settings = settings or OracleSettings()
        if not self._settings.has_credential:
            raise MissingCredentialError(
                "An API key is required for classification. "
                "Set `oracle.api_key` via `iconic config set` or ICONIC__ORACLE__API_KEY."
            )
        self._policy = RetryPolicy.from_settings(self._settings)
        self._sleep = sleep
        self._lm = self._build_language_model()
        self._categorize = dspy.Predict(CategorizeSignature)
        self._suggest = dspy.Predict(SuggestCategoriesSignature)

    async def categorize(
        self,
        names: Sequence[str],
        categories: Sequence[str],
        *,
        multi_tag: bool,
        relaxed: bool,
    ) -> Dict[str, List[str]]:
        """Return validated tags for the names the model is confident about.

        Raises:
            OracleError: When retries are exhausted or the request fails outright.
        """

        if not names or not categories:
            return {}

        guidance = " ".join(
            [
                "If unsure, make your best guess."
                if relaxed
                else "If completely unsure about a plugin, return null for it.",
                "You may assign multiple relevant categories."
                if multi_tag
                else "Only assign ONE category per plugin.",
            ]
        )

        async def request() -> Dict[str, List[str]]:
            prediction = await self._invoke(
                self._categorize,
                plugins=json.dumps(list(names)),
                categories=json.dumps(list(categories)),
                guidance=guidance,
            )
            raw = parse_json_object(getattr(prediction, "assignments", None))
            return validate_assignments(raw, names, categories)

        result = await call_with_retry(request, self._policy, sleep=self._sleep)
        LOGGER.debug("Oracle classified %d of %d names.", len(result), len(names))
        return result

    async def suggest_categories(
        self, sample_names: Sequence[str], categories: Sequence[str]
    ) -> List[str]:
        """Propose a category list; falls back to ``categories`` on an empty answer."""

        async def request() -> List[str]:
            prediction = await self._invoke(
                self._suggest,
                plugins=json.dumps(list(sample_names)[:SUGGESTION_SAMPLE_SIZE]),
                categories=json.dumps(list(categories)),
            )
            data = parse_json_object(getattr(prediction, "result", None))
            suggested = data.get("categories")
            if not isinstance(suggested, list):
                return list(categories)
            cleaned = [item.strip() for item in suggested if isinstance(item, str) and item.strip()]
            return cleaned or list(categories)

        return await call_with_retry(request, self._policy, sleep=self._sleep)

    async def _invoke(self, program, **inputs):
        try:
            return await asyncio.to_thread(program, lm=self._lm, **inputs)
        except Exception as exc:  # pragma: no cover - backend/network errors
            if is_rate_limit(exc):
                raise OracleRateLimitError(str(exc)) from exc
            raise OracleError(f"Oracle request failed: {exc}") from exc

    def _build_language_model(self):
        lm_kwargs: dict[str, object] = {
            "model": self._settings.model,
            "temperature": self._settings.temperature,
            "max_tokens": self._settings.max_tokens,
        }
        if self._settings.api_base_url:
            lm_kwargs["api_base"] = self._settings.api_base_url
        if self._settings.api_key is not None:
            lm_kwargs["api_key"] = self._settings.api_key
        try:
            return dspy.LM(**lm_kwargs)
        except Exception as exc:  # pragma: no cover - DSPy configuration errors
            raise OracleError(
                "Unable to configure the DSPy language model. Verify the `oracle` settings."
            ) from exc


__all__ = ["CategorizeSignature", "DSPyOracle", "SuggestCategoriesSignature"]
