"""Unit tests for rule matching and merchant normalization."""
from uuid import uuid4

import pytest

from batchflow.categorization.matchers import (
    CompiledRule,
    compile_pattern,
    normalize_merchant,
    validate_pattern,
)
from batchflow.core.constants import MatchType, RuleField
from batchflow.core.exceptions import ValidationError


def _rule(match_type: MatchType, value: str, field: RuleField = RuleField.MERCHANT_NAME):
    return CompiledRule(
        rule_id=uuid4(),
        category_id=uuid4(),
        field=field,
        match_type=match_type,
        value=value,
        pattern=compile_pattern(value) if match_type is MatchType.REGEX else None,
    )


class TestNormalizeMerchant:
    def test_uppercases_and_trims(self):
        assert normalize_merchant("  Starbucks ") == "STARBUCKS"

    def test_collapses_internal_whitespace(self):
        assert normalize_merchant("whole   foods\tmarket") == "WHOLE FOODS MARKET"

    def test_none_and_blank(self):
        assert normalize_merchant(None) == ""
        assert normalize_merchant("   ") == ""


class TestExactMatch:
    def test_case_insensitive(self):
        assert _rule(MatchType.EXACT, "Starbucks").matches("STARBUCKS", None)

    def test_whitespace_is_folded(self):
        assert _rule(MatchType.EXACT, "Whole Foods").matches("  whole   foods ", None)

    def test_partial_does_not_match(self):
        assert not _rule(MatchType.EXACT, "Starbucks").matches("Starbucks #1234", None)


class TestContainsMatch:
    def test_substring(self):
        assert _rule(MatchType.CONTAINS, "uber").matches("UBER *TRIP HELP.UBER.COM", None)

    def test_no_match(self):
        assert not _rule(MatchType.CONTAINS, "lyft").matches("UBER *TRIP", None)


class TestRegexMatch:
    def test_search_is_case_insensitive(self):
        assert _rule(MatchType.REGEX, r"^amzn\s*mktp").matches("AMZN Mktp US*2K4", None)

    def test_no_match(self):
        assert not _rule(MatchType.REGEX, r"^netflix$").matches("NETFLIX.COM", None)


class TestRuleField:
    def test_description_rule_ignores_merchant(self):
        rule = _rule(MatchType.CONTAINS, "rent", field=RuleField.DESCRIPTION)
        assert not rule.matches("Rent Co", None)
        assert rule.matches("ACME", "Monthly RENT payment")

    def test_missing_text_never_matches(self):
        assert not _rule(MatchType.CONTAINS, "a").matches(None, None)


class TestValidatePattern:
    def test_valid_regex(self):
        validate_pattern(MatchType.REGEX, r"^UBER\s+")

    def test_invalid_regex_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_pattern(MatchType.REGEX, "([unclosed")
        assert exc_info.value.error_code == "RULE_001"
        assert exc_info.value.http_status == 400

    def test_blank_pattern_rejected(self):
        with pytest.raises(ValidationError):
            validate_pattern(MatchType.CONTAINS, "   ")

    def test_non_regex_values_are_not_compiled(self):
        # Would be an invalid regex, but is a fine substring.
        validate_pattern("contains", "([")
