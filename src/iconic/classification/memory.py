"""Rule memory learned from user corrections."""

from __future__ import annotations

import logging
from typing import Dict, Iterable, Mapping, Optional

from iconic.ingestion.fingerprint import normalize_identity
from iconic.state.models import LearnedRule

LOGGER = logging.getLogger(__name__)

CONFIDENCE_THRESHOLD = 2


class RuleMemory:
    """Per-identity tag rules whose confidence grows with repetition.

    Rules are keyed by :func:`normalize_identity` of the bundle name, so
    ``Serum (2)`` and ``Serum x64`` share one rule. A rule is replaced, never
    mutated; callers may hold on to a returned rule safely.
    """

    def __init__(
        self,
        rules: Optional[Mapping[str, LearnedRule]] = None,
        *,
        threshold: int = CONFIDENCE_THRESHOLD,
    ) -> None:
        self._rules: Dict[str, LearnedRule] = dict(rules or {})
        self.threshold = threshold

    def __len__(self) -> int:
        return len(self._rules)

    def __contains__(self, key: object) -> bool:
        return key in self._rules

    def record_correction(self, name: str, tags: Iterable[str]) -> Optional[LearnedRule]:
        """Learn that ``tags`` were applied to a bundle called ``name``.

        Re-applying the same tag set in any order increments the rule count;
        a different set replaces the rule with a count of one.

        Args:
            name: Display name of the corrected bundle.
            tags: Tags the user applied, primary first.

        Returns:
            Optional[LearnedRule]: The stored rule, or ``None`` when ``name``
            normalizes to an empty key.
        """

        key = normalize_identity(name)
        if not key:
            return None
        tags = list(dict.fromkeys(tags))
        existing = self._rules.get(key)
        if existing is not None and sorted(existing.tags) == sorted(tags):
            rule = LearnedRule(tags=tags, count=existing.count + 1)
        else:
            rule = LearnedRule(tags=tags, count=1)
        self._rules[key] = rule
        LOGGER.debug("Learned %s -> %s (count %d).", key, tags, rule.count)
        return rule

    def lookup(self, name: str) -> Optional[LearnedRule]:
        """Return the rule for the bundle called ``name``, if any."""
        key = normalize_identity(name)
        if not key:
            return None
        return self._rules.get(key)

    def forget(self, key: str) -> bool:
        """Drop the rule stored under the normalized ``key``.

        Returns:
            bool: ``True`` when a rule was removed.
        """
        return self._rules.pop(key, None) is not None

    def is_strong(self, rule: Optional[LearnedRule]) -> bool:
        """Whether ``rule`` is confident enough to bypass the oracle."""
        return rule is not None and bool(rule.tags) and rule.count >= self.threshold

    def items(self):
        return self._rules.items()

    def snapshot(self) -> Dict[str, LearnedRule]:
        """Return a copy suitable for the ``manualOverrides`` field of the state file."""
        return dict(self._rules)

    @classmethod
    def from_snapshot(
        cls,
        data: Mapping[str, object],
        *,
        threshold: int = CONFIDENCE_THRESHOLD,
    ) -> "RuleMemory":
        """Build a memory from stored rules, accepting legacy bare tag lists."""
        rules: Dict[str, LearnedRule] = {}
        for key, value in data.items():
            if isinstance(value, LearnedRule):
                rules[key] = value
            elif isinstance(value, list):
                rules[key] = LearnedRule(tags=value, count=1)
            else:
                rules[key] = LearnedRule.model_validate(value)
        return cls(rules, threshold=threshold)


__all__ = ["CONFIDENCE_THRESHOLD", "RuleMemory"]
