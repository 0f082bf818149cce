"""Transaction categorization.

Rules are user-authored data evaluated by pure matchers; merchant history and
the AI categorizer are fallbacks consulted only when no rule matches.
"""

from .engine import CategorizationEngine
from .flags import detect_flags
from .matchers import normalize_merchant, validate_pattern

__all__ = ["CategorizationEngine", "detect_flags", "normalize_merchant", "validate_pattern"]
