"""
Matchers used when declaring interactions.

Consumers describe flexible expectations by wrapping example values::

    body = {
        "id": Like(42),
        "status": Term(r"active|suspended", "active"),
        "items": EachLike({"sku": Like("A-1"), "qty": Like(1)}, minimum=1),
    }

``extract_example`` turns such a tree into the concrete value stored in the
contract (and served by the mock provider); ``extract_rules`` produces the
matching rules that let the real provider return different values of the
same shape.
"""

from __future__ import annotations

import re
from typing import Any, Mapping

from pactlayer.matching.rules import WILDCARD, MatchingRule, join_path


class Matcher:
    """Base class for values that carry a matching rule."""

    def example(self) -> Any:
        raise NotImplementedError

    def rules(self, path: str) -> dict[str, MatchingRule]:
        raise NotImplementedError


class Like(Matcher):
    """Match any value with the same shape as ``sample``."""

    def __init__(self, sample: Any) -> None:
        self.sample = sample

    def example(self) -> Any:
        return extract_example(self.sample)

    def rules(self, path: str) -> dict[str, MatchingRule]:
        return {path: MatchingRule.type(), **extract_rules(self.sample, path)}

    def __repr__(self) -> str:
        return f"Like({self.sample!r})"


class EachLike(Matcher):
    """
    An array with at least ``minimum`` elements, each shaped like ``template``.

    The example repeats the template ``minimum`` times (at least once) so the
    mock provider serves a realistic payload.
    """

    def __init__(self, template: Any, minimum: int = 1, maximum: int | None = None) -> None:
        if minimum < 0:
            raise ValueError("minimum must be >= 0")
        if maximum is not None and maximum < max(minimum, 1):
            raise ValueError("maximum must be >= minimum and >= 1")
        self.template = template
        self.minimum = minimum
        self.maximum = maximum

    def example(self) -> Any:
        item = extract_example(self.template)
        return [item for _ in range(max(self.minimum, 1))]

    def rules(self, path: str) -> dict[str, MatchingRule]:
        rules = {path: MatchingRule.type(min=self.minimum, max=self.maximum)}
        rules.update(extract_rules(self.template, join_path(path, WILDCARD)))
        return rules

    def __repr__(self) -> str:
        return f"EachLike({self.template!r}, minimum={self.minimum}, maximum={self.maximum})"


class Term(Matcher):
    """Match a value whose string form fully matches ``pattern``."""

    def __init__(self, pattern: str, sample: Any) -> None:
        rendered = sample if isinstance(sample, str) else str(sample)
        if re.fullmatch(pattern, rendered) is None:
            raise ValueError(f"Example {sample!r} does not match /{pattern}/")
        self.pattern = pattern
        self.sample = sample

    def example(self) -> Any:
        return self.sample

    def rules(self, path: str) -> dict[str, MatchingRule]:
        return {path: MatchingRule.pattern(self.pattern)}

    def __repr__(self) -> str:
        return f"Term({self.pattern!r}, {self.sample!r})"


class Includes(Matcher):
    """Match a string containing ``value``."""

    def __init__(self, value: str, sample: str | None = None) -> None:
        if sample is not None and value not in sample:
            raise ValueError(f"Example {sample!r} does not include {value!r}")
        self.value = value
        self.sample = sample if sample is not None else value

    def example(self) -> Any:
        return self.sample

    def rules(self, path: str) -> dict[str, MatchingRule]:
        return {path: MatchingRule.includes(self.value)}


class Equality(Matcher):
    """Require an exact value, even inside a ``Like`` subtree."""

    def __init__(self, sample: Any) -> None:
        self.sample = sample

    def example(self) -> Any:
        return extract_example(self.sample)

    def rules(self, path: str) -> dict[str, MatchingRule]:
        return {path: MatchingRule.equality()}


def extract_example(value: Any) -> Any:
    """Replace every matcher in ``value`` by its example."""
    if isinstance(value, Matcher):
        return value.example()
    if isinstance(value, Mapping):
        return {k: extract_example(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [extract_example(v) for v in value]
    return value


def extract_rules(value: Any, path: str = "$") -> dict[str, MatchingRule]:
    """Collect the matching rules declared anywhere inside ``value``."""
    if isinstance(value, Matcher):
        return value.rules(path)
    rules: dict[str, MatchingRule] = {}
    if isinstance(value, Mapping):
        for key, item in value.items():
            rules.update(extract_rules(item, join_path(path, key)))
    elif isinstance(value, (list, tuple)):
        for index, item in enumerate(value):
            rules.update(extract_rules(item, join_path(path, index)))
    return rules
