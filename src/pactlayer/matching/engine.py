"""
Structural matcher.

Compares an expected JSON tree against an actual one, applying matching
rules by path. Objects in ``actual`` may carry keys the expectation does not
mention; consumers only assert on the fields they use.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

from pactlayer.core.errors import MatchMismatch
from pactlayer.matching.rules import (
    MatchingRule,
    MatchingRules,
    RuleKind,
    format_path,
    parse_path,
)

_EMPTY_RULES = MatchingRules()


def shape_of(value: Any) -> str:
    """Shape class of a JSON value: null, boolean, number, string, array or object."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (list, tuple)):
        return "array"
    if isinstance(value, Mapping):
        return "object"
    return type(value).__name__


@dataclass(frozen=True)
class Mismatch:
    """One difference between expected and actual."""

    path: str
    expected: Any
    actual: Any
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "expected": self.expected,
            "actual": self.actual,
            "message": self.message,
        }


@dataclass
class MatchResult:
    """Outcome of a comparison; truthy when nothing mismatched."""

    mismatches: list[Mismatch] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.mismatches

    def __bool__(self) -> bool:
        return self.ok

    def extend(self, other: MatchResult) -> MatchResult:
        self.mismatches.extend(other.mismatches)
        return self

    def raise_for_mismatch(self, message: str = "Actual value does not match expectation") -> None:
        if self.mismatches:
            raise MatchMismatch(message, self.mismatches)


def matches(
    expected: Any,
    actual: Any,
    rules: MatchingRules | Mapping[str, MatchingRule] | None = None,
    path: str = "$",
) -> MatchResult:
    """
    Check that ``actual`` satisfies ``expected`` under ``rules``.

    Args:
        expected: Expected JSON value (the example recorded in the contract)
        actual: Observed JSON value
        rules: Matching rules keyed by path
        path: Location of ``expected`` within the rule tree, e.g. ``$.body``

    Returns:
        MatchResult listing mismatches in traversal order
    """
    if rules is None:
        rules = _EMPTY_RULES
    elif not isinstance(rules, MatchingRules):
        rules = MatchingRules(rules)

    result = MatchResult()
    _compare(expected, actual, parse_path(path), rules, None, result.mismatches)
    return result


def render(value: Any) -> str | None:
    """String form used by regex and include rules; None for arrays and objects."""
    if isinstance(value, str):
        return value
    if shape_of(value) in ("array", "object"):
        return None
    return json.dumps(value)


def _compare(
    expected: Any,
    actual: Any,
    tokens: tuple[Any, ...],
    rules: MatchingRules,
    cascade: MatchingRule | None,
    out: list[Mismatch],
) -> None:
    rule = rules.rule_for(tokens)
    if rule is not None:
        _apply_rule(rule, expected, actual, tokens, rules, out)
    elif cascade is not None:
        _compare_shape(expected, actual, tokens, rules, cascade, out)
    else:
        _compare_literal(expected, actual, tokens, rules, out)


def _apply_rule(
    rule: MatchingRule,
    expected: Any,
    actual: Any,
    tokens: tuple[Any, ...],
    rules: MatchingRules,
    out: list[Mismatch],
) -> None:
    path = format_path(tokens)

    if rule.kind is RuleKind.EQUALITY:
        if not _deep_equal(expected, actual):
            out.append(Mismatch(path, expected, actual, f"Expected {expected!r} but received {actual!r}"))
        return

    if rule.kind is RuleKind.REGEX:
        rendered = render(actual)
        if rendered is None or re.fullmatch(rule.regex or "", rendered) is None:
            out.append(
                Mismatch(path, rule.describe(), actual, f"Expected {actual!r} to match /{rule.regex}/")
            )
        return

    if rule.kind is RuleKind.INCLUDE:
        rendered = render(actual)
        needle = rule.value if rule.value is not None else render(expected) or ""
        if rendered is None or needle not in rendered:
            out.append(
                Mismatch(path, rule.describe(), actual, f"Expected {actual!r} to include {needle!r}")
            )
        return

    # RuleKind.TYPE
    if shape_of(expected) != shape_of(actual):
        out.append(_shape_mismatch(path, expected, actual))
        return

    if shape_of(actual) == "array":
        if rule.min is not None and len(actual) < rule.min:
            out.append(
                Mismatch(
                    path,
                    rule.describe(),
                    actual,
                    f"Expected at least {rule.min} element(s) but received {len(actual)}",
                )
            )
        if rule.max is not None and len(actual) > rule.max:
            out.append(
                Mismatch(
                    path,
                    rule.describe(),
                    actual,
                    f"Expected at most {rule.max} element(s) but received {len(actual)}",
                )
            )
        if expected:
            template = expected[0]
            # Elements past the minimum only count towards the length.
            checked = actual[: rule.min] if rule.min is not None else actual
            for index, item in enumerate(checked):
                _compare(template, item, tokens + (index,), rules, rule, out)
        return

    if shape_of(actual) == "object":
        _compare_object(expected, actual, tokens, rules, rule, out)


def _compare_shape(
    expected: Any,
    actual: Any,
    tokens: tuple[Any, ...],
    rules: MatchingRules,
    cascade: MatchingRule,
    out: list[Mismatch],
) -> None:
    path = format_path(tokens)
    if shape_of(expected) != shape_of(actual):
        out.append(_shape_mismatch(path, expected, actual))
        return
    if shape_of(actual) == "object":
        _compare_object(expected, actual, tokens, rules, cascade, out)
    elif shape_of(actual) == "array":
        _compare_array(expected, actual, tokens, rules, cascade, out)


def _compare_literal(
    expected: Any,
    actual: Any,
    tokens: tuple[Any, ...],
    rules: MatchingRules,
    out: list[Mismatch],
) -> None:
    path = format_path(tokens)
    expected_shape, actual_shape = shape_of(expected), shape_of(actual)
    if expected_shape != actual_shape:
        out.append(_shape_mismatch(path, expected, actual))
    elif expected_shape == "object":
        _compare_object(expected, actual, tokens, rules, None, out)
    elif expected_shape == "array":
        _compare_array(expected, actual, tokens, rules, None, out)
    elif expected != actual:
        out.append(Mismatch(path, expected, actual, f"Expected {expected!r} but received {actual!r}"))


def _compare_object(
    expected: Mapping[str, Any],
    actual: Mapping[str, Any],
    tokens: tuple[Any, ...],
    rules: MatchingRules,
    cascade: MatchingRule | None,
    out: list[Mismatch],
) -> None:
    for key, value in expected.items():
        child = tokens + (key,)
        if key not in actual:
            out.append(
                Mismatch(format_path(child), value, None, f"Expected key {key!r} but it was missing")
            )
            continue
        _compare(value, actual[key], child, rules, cascade, out)


def _compare_array(
    expected: Sequence[Any],
    actual: Sequence[Any],
    tokens: tuple[Any, ...],
    rules: MatchingRules,
    cascade: MatchingRule | None,
    out: list[Mismatch],
) -> None:
    if len(expected) != len(actual):
        out.append(
            Mismatch(
                format_path(tokens),
                expected,
                actual,
                f"Expected an array of length {len(expected)} but received {len(actual)}",
            )
        )
    for index, (e, a) in enumerate(zip(expected, actual)):
        _compare(e, a, tokens + (index,), rules, cascade, out)


def _shape_mismatch(path: str, expected: Any, actual: Any) -> Mismatch:
    return Mismatch(
        path,
        expected,
        actual,
        f"Expected a value of type {shape_of(expected)} but received {shape_of(actual)} ({actual!r})",
    )


def _deep_equal(expected: Any, actual: Any) -> bool:
    if shape_of(expected) != shape_of(actual):
        return False
    if shape_of(expected) == "object":
        return set(expected) == set(actual) and all(
            _deep_equal(expected[k], actual[k]) for k in expected
        )
    if shape_of(expected) == "array":
        return len(expected) == len(actual) and all(
            _deep_equal(e, a) for e, a in zip(expected, actual)
        )
    return expected == actual
