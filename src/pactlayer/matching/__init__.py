"""
Matcher engine.

Decides whether an observed value structurally satisfies an expected one,
using matching rules keyed by path where literal equality is too strict.
"""

from .engine import MatchResult, Mismatch, matches, render, shape_of
from .matchers import EachLike, Equality, Includes, Like, Matcher, Term, extract_example, extract_rules
from .rules import MatchingRule, MatchingRules, RuleKind, join_path, parse_path

__all__ = [
    "MatchResult",
    "Mismatch",
    "matches",
    "render",
    "shape_of",
    "Matcher",
    "Like",
    "EachLike",
    "Term",
    "Includes",
    "Equality",
    "extract_example",
    "extract_rules",
    "MatchingRule",
    "MatchingRules",
    "RuleKind",
    "join_path",
    "parse_path",
]
