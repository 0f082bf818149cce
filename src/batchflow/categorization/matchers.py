"""Pure rule matching.

A rule's match type is a closed set (exact, contains, regex). Each variant has
one evaluation function; regex patterns are compiled once and cached, and a
pattern that does not compile is rejected when the rule is created, not when
it is first matched.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Callable
from uuid import UUID

from batchflow.core.constants import MatchType, RuleField
from batchflow.core.exceptions import ValidationError

_WS = re.compile(r"\s+")


def _norm(text: str | None) -> str:
    return _WS.sub(" ", (text or "").strip().upper())


def normalize_merchant(name: str | None) -> str:
    """Normalize a merchant string into a stable exact-match key.

    Used for merchant history lookups and duplicate checks; this is not fuzzy
    matching.
    """
    return _norm(name)


def _fold(text: str | None) -> str:
    return _WS.sub(" ", (text or "").strip()).lower()


@lru_cache(maxsize=2048)
def compile_pattern(value: str) -> re.Pattern[str]:
    """Compile a regex rule value (case-insensitive). Raises re.error."""
    return re.compile(value, re.IGNORECASE)


def validate_pattern(match_type: MatchType | str, value: str) -> None:
    """Reject rule values that cannot match anything for their match type."""
    match_type = MatchType(match_type)
    if not value or not value.strip():
        raise ValidationError("RULE_001", {"reason": "empty pattern"})
    if match_type is MatchType.REGEX:
        try:
            compile_pattern(value)
        except re.error as e:
            raise ValidationError("RULE_001", {"reason": str(e)}) from e


def _match_exact(rule: "CompiledRule", text: str) -> bool:
    return _fold(text) == _fold(rule.value)


def _match_contains(rule: "CompiledRule", text: str) -> bool:
    return _fold(rule.value) in _fold(text)


def _match_regex(rule: "CompiledRule", text: str) -> bool:
    return rule.pattern is not None and rule.pattern.search(text) is not None


_MATCHERS: dict[MatchType, Callable[["CompiledRule", str], bool]] = {
    MatchType.EXACT: _match_exact,
    MatchType.CONTAINS: _match_contains,
    MatchType.REGEX: _match_regex,
}


@dataclass(frozen=True)
class CompiledRule:
    """A stored rule ready to evaluate."""

    rule_id: UUID
    category_id: UUID
    field: RuleField
    match_type: MatchType
    value: str
    pattern: re.Pattern[str] | None = None

    def matches(self, merchant_name: str | None, description: str | None) -> bool:
        text = merchant_name if self.field is RuleField.MERCHANT_NAME else description
        if not text:
            return False
        return _MATCHERS[self.match_type](self, text)


def compile_rule(rule) -> CompiledRule:
    """Build a CompiledRule from a CategoryRule row."""
    match_type = MatchType(rule.match_type)
    pattern = compile_pattern(rule.value) if match_type is MatchType.REGEX else None
    return CompiledRule(
        rule_id=rule.id,
        category_id=rule.category_id,
        field=RuleField(rule.field),
        match_type=match_type,
        value=rule.value,
        pattern=pattern,
    )
