"""
Request and response comparison on top of the structural matcher.

Header and query names compare case-insensitively; header values compare
after normalising the whitespace around commas.
"""

from __future__ import annotations

import json
from typing import Any, Iterable, Mapping

from pactlayer.contract.models import Request, Response
from pactlayer.matching.engine import MatchResult, Mismatch, matches
from pactlayer.matching.rules import MatchingRules, RuleKind, join_path


def normalize_headers(headers: Mapping[str, str] | Iterable[tuple[str, str]] | None) -> dict[str, str]:
    """Lower-case header names, joining repeated headers with ', '."""
    if headers is None:
        return {}
    if hasattr(headers, "multi_items"):
        pairs = headers.multi_items()
    elif isinstance(headers, Mapping):
        pairs = headers.items()
    else:
        pairs = headers

    normalized: dict[str, str] = {}
    for name, value in pairs:
        key = name.lower()
        normalized[key] = f"{normalized[key]}, {value}" if key in normalized else str(value)
    return normalized


def normalize_query(query: Mapping[str, Any] | Iterable[tuple[str, str]] | None) -> dict[str, list[str]]:
    if query is None:
        return {}
    if hasattr(query, "multi_items"):
        pairs = query.multi_items()
    elif isinstance(query, Mapping):
        pairs = [
            (k, item) for k, v in query.items() for item in (v if isinstance(v, list) else [v])
        ]
    else:
        pairs = query

    normalized: dict[str, list[str]] = {}
    for name, value in pairs:
        normalized.setdefault(name.lower(), []).append(str(value))
    return normalized


def decode_body(raw: bytes | str | None, content_type: str | None = None) -> Any:
    """Decode a payload: JSON when declared (or when it parses as JSON), text otherwise."""
    if raw is None or len(raw) == 0:
        return None
    text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
    is_json = content_type is not None and "json" in content_type.lower()
    if is_json or (content_type is None and text.lstrip()[:1] in ("{", "[")):
        try:
            return json.loads(text)
        except json.JSONDecodeError:
            return text
    return text


def match_request(expected: Request, actual: Request) -> MatchResult:
    """Compare an inbound request with an interaction's expected request."""
    rules = expected.matching_rules
    result = MatchResult()

    if expected.method != actual.method.upper():
        result.mismatches.append(
            Mismatch(
                "$.method",
                expected.method,
                actual.method,
                f"Expected method {expected.method} but received {actual.method.upper()}",
            )
        )

    result.extend(matches(expected.path, actual.path, rules, path="$.path"))

    if expected.query is not None:
        result.mismatches.extend(_match_query(expected.query, actual.query, rules))
    if expected.headers is not None:
        result.mismatches.extend(_match_headers(expected.headers, actual.headers, rules))
    result.mismatches.extend(_match_body(expected.body, actual.body, rules))
    return result


def match_response(
    expected: Response,
    status: int,
    headers: Mapping[str, str] | None,
    body: Any,
) -> MatchResult:
    """Compare a provider's actual response with the expected response."""
    rules = expected.matching_rules
    result = MatchResult()

    if expected.status != status:
        result.mismatches.append(
            Mismatch(
                "$.status",
                expected.status,
                status,
                f"Expected status {expected.status} but received {status}",
            )
        )
    if expected.headers is not None:
        result.mismatches.extend(_match_headers(expected.headers, headers, rules))
    result.mismatches.extend(_match_body(expected.body, body, rules))
    return result


def _match_headers(
    expected: Mapping[str, str],
    actual: Mapping[str, str] | None,
    rules: MatchingRules,
) -> list[Mismatch]:
    actual_headers = normalize_headers(actual)
    mismatches: list[Mismatch] = []
    for name, value in expected.items():
        path = join_path("$.headers", name)
        observed = actual_headers.get(name.lower())
        if observed is None:
            mismatches.append(Mismatch(path, value, None, f"Expected header {name!r} but it was missing"))
            continue
        mismatches.extend(
            matches(_normalize_value(value), _normalize_value(observed), rules, path=path).mismatches
        )
    return mismatches


def _match_query(
    expected: Mapping[str, list[str]],
    actual: Mapping[str, Any] | None,
    rules: MatchingRules,
) -> list[Mismatch]:
    actual_query = normalize_query(actual)
    mismatches: list[Mismatch] = []
    for name, values in expected.items():
        path = join_path("$.query", name)
        observed = actual_query.get(name.lower())
        if observed is None:
            mismatches.append(
                Mismatch(path, values, None, f"Expected query parameter {name!r} but it was missing")
            )
            continue

        rule = rules.rule_for(("$", "query", name))
        if rule is not None and rule.kind is not RuleKind.TYPE and values:
            for value in observed:
                mismatches.extend(matches(values[0], value, rules, path=path).mismatches)
        else:
            mismatches.extend(matches(list(values), observed, rules, path=path).mismatches)
    return mismatches


def _match_body(expected: Any, actual: Any, rules: MatchingRules) -> list[Mismatch]:
    if expected is None:
        return []
    if actual is None:
        return [Mismatch("$.body", expected, None, "Expected a body but none was received")]
    return matches(expected, actual, rules, path="$.body").mismatches


def _normalize_value(value: str) -> str:
    return ", ".join(part.strip() for part in str(value).split(","))
