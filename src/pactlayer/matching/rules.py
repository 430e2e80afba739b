"""
Matching rules and the paths they are registered under.

Rules are keyed by JSON-path-like expressions rooted at ``$``:

    $.body.items[*].id        every element's ``id`` field
    $.body.items              the array itself (e.g. a minimum length)
    $.body['odd.key']         keys that are not plain identifiers
    $.headers.Content-Type    header values (names are case-insensitive)
    $.query.page              query parameter values
    $.path                    the request path

A ``type`` rule cascades: everything below the path it is registered on is
compared by shape only, unless a more specific rule says otherwise.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterator, Mapping, Sequence, Union

from pactlayer.core.errors import ContractValidationError

PathToken = Union[str, int]


class _Wildcard:
    """Path token matching any key or index."""

    def __repr__(self) -> str:
        return "*"


WILDCARD = _Wildcard()

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_\-]*$")
# Sections whose keys compare case-insensitively.
_CASE_INSENSITIVE_SECTIONS = ("headers", "query")


class RuleKind(str, Enum):
    """Kinds of matching rule understood by the engine."""

    EQUALITY = "equality"
    TYPE = "type"
    REGEX = "regex"
    INCLUDE = "include"


@dataclass(frozen=True)
class MatchingRule:
    """A predicate used in place of literal equality at one path."""

    kind: RuleKind
    regex: str | None = None
    value: str | None = None
    min: int | None = None
    max: int | None = None

    @classmethod
    def equality(cls) -> MatchingRule:
        return cls(RuleKind.EQUALITY)

    @classmethod
    def type(cls, min: int | None = None, max: int | None = None) -> MatchingRule:
        return cls(RuleKind.TYPE, min=min, max=max)

    @classmethod
    def min_array_like(cls, minimum: int) -> MatchingRule:
        """Array of at least ``minimum`` elements, the first ``minimum`` shaped like the template."""
        return cls(RuleKind.TYPE, min=minimum)

    @classmethod
    def pattern(cls, regex: str) -> MatchingRule:
        return cls(RuleKind.REGEX, regex=regex)

    @classmethod
    def includes(cls, value: str) -> MatchingRule:
        return cls(RuleKind.INCLUDE, value=value)

    @property
    def cascades(self) -> bool:
        """True when the rule governs the shape of the whole subtree."""
        return self.kind is RuleKind.TYPE

    def describe(self) -> str:
        if self.kind is RuleKind.REGEX:
            return f"a value matching /{self.regex}/"
        if self.kind is RuleKind.INCLUDE:
            return f"a value including {self.value!r}"
        if self.kind is RuleKind.TYPE:
            bounds = []
            if self.min is not None:
                bounds.append(f"min {self.min}")
            if self.max is not None:
                bounds.append(f"max {self.max}")
            return "a value of the same type" + (f" ({', '.join(bounds)})" if bounds else "")
        return "an equal value"

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"match": self.kind.value}
        if self.regex is not None:
            data["regex"] = self.regex
        if self.value is not None:
            data["value"] = self.value
        if self.min is not None:
            data["min"] = self.min
        if self.max is not None:
            data["max"] = self.max
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], path: str = "$") -> MatchingRule:
        """
        Parse a rule definition.

        ``match`` may be omitted when it can be implied: a bare ``regex``
        means a regex rule, a bare ``min``/``max`` means a type rule.
        """
        if not isinstance(data, Mapping):
            raise ContractValidationError(
                f"Matching rule at {path} must be a mapping", {"path": path}
            )

        match = data.get("match")
        if match is None:
            if "regex" in data:
                match = RuleKind.REGEX.value
            elif "min" in data or "max" in data:
                match = RuleKind.TYPE.value
            else:
                raise ContractValidationError(
                    f"Matching rule at {path} has no 'match' kind", {"path": path}
                )

        try:
            kind = RuleKind(match)
        except ValueError:
            raise ContractValidationError(
                f"Unknown matching rule kind '{match}' at {path}", {"path": path}
            ) from None

        minimum = _bound(data.get("min"), "min", path)
        maximum = _bound(data.get("max"), "max", path)
        if minimum is not None and maximum is not None and minimum > maximum:
            raise ContractValidationError(
                f"Matching rule at {path} has min greater than max", {"path": path}
            )

        regex = data.get("regex")
        if kind is RuleKind.REGEX:
            if not isinstance(regex, str):
                raise ContractValidationError(
                    f"Regex rule at {path} requires a 'regex' string", {"path": path}
                )
            try:
                re.compile(regex)
            except re.error as e:
                raise ContractValidationError(
                    f"Invalid regex at {path}: {e}", {"path": path}
                ) from e

        value = data.get("value")
        if kind is RuleKind.INCLUDE and not isinstance(value, str):
            raise ContractValidationError(
                f"Include rule at {path} requires a 'value' string", {"path": path}
            )

        return cls(
            kind=kind,
            regex=regex if kind is RuleKind.REGEX else None,
            value=value if kind is RuleKind.INCLUDE else None,
            min=minimum,
            max=maximum,
        )


def _bound(raw: Any, name: str, path: str) -> int | None:
    if raw is None:
        return None
    if isinstance(raw, bool) or not isinstance(raw, int) or raw < 0:
        raise ContractValidationError(
            f"Matching rule '{name}' at {path} must be a non-negative integer",
            {"path": path},
        )
    return raw


_TOKEN = re.compile(
    r"""
    \.(?P<name>[^.\[\]]+)          # .name
    | \[\*\]                       # [*]
    | \[(?P<index>\d+)\]           # [3]
    | \['(?P<quoted>[^']*)'\]      # ['key']
    """,
    re.VERBOSE,
)


def parse_path(path: str) -> tuple[Any, ...]:
    """Split a rule path into tokens; ``*`` becomes ``WILDCARD``."""
    if not path.startswith("$"):
        raise ContractValidationError(f"Rule path must start with '$': {path!r}", {"path": path})

    tokens: list[Any] = ["$"]
    pos = 1
    while pos < len(path):
        m = _TOKEN.match(path, pos)
        if m is None:
            raise ContractValidationError(f"Invalid rule path: {path!r}", {"path": path})
        if m.group("name") is not None:
            name = m.group("name")
            tokens.append(WILDCARD if name == "*" else name)
        elif m.group("index") is not None:
            tokens.append(int(m.group("index")))
        elif m.group("quoted") is not None:
            tokens.append(m.group("quoted"))
        else:
            tokens.append(WILDCARD)
        pos = m.end()
    return tuple(tokens)


def join_path(path: str, key: PathToken | _Wildcard) -> str:
    """Append a key or index to a rule path."""
    if key is WILDCARD:
        return f"{path}[*]"
    if isinstance(key, int):
        return f"{path}[{key}]"
    if _IDENTIFIER.match(key):
        return f"{path}.{key}"
    return f"{path}['{key}']"


def format_path(tokens: Sequence[Any]) -> str:
    path = "$"
    for token in tokens[1:]:
        path = join_path(path, token)
    return path


def _normalise(tokens: tuple[Any, ...]) -> tuple[Any, ...]:
    if len(tokens) > 2 and tokens[1] in _CASE_INSENSITIVE_SECTIONS and isinstance(tokens[2], str):
        return tokens[:2] + (tokens[2].lower(),) + tokens[3:]
    return tokens


class MatchingRules:
    """
    Ordered, read-only collection of rules keyed by path.

    Header and query names are looked up case-insensitively.
    """

    def __init__(self, rules: Mapping[str, MatchingRule] | None = None) -> None:
        self._rules: dict[str, MatchingRule] = dict(rules or {})
        self._parsed = [(_normalise(parse_path(p)), rule) for p, rule in self._rules.items()]

    def __len__(self) -> int:
        return len(self._rules)

    def __iter__(self) -> Iterator[str]:
        return iter(self._rules)

    def __bool__(self) -> bool:
        return bool(self._rules)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, MatchingRules):
            return NotImplemented
        return self._rules == other._rules

    def __repr__(self) -> str:
        return f"MatchingRules({self._rules!r})"

    def items(self):
        return self._rules.items()

    def get(self, path: str) -> MatchingRule | None:
        return self._rules.get(path)

    def merged(self, other: Mapping[str, MatchingRule] | MatchingRules) -> MatchingRules:
        combined = dict(self._rules)
        combined.update(other.items())
        return MatchingRules(combined)

    def rule_for(self, tokens: Sequence[Any]) -> MatchingRule | None:
        """
        Find the most specific rule registered for exactly this location.

        Exact tokens weigh more than wildcards; ties go to the rule
        registered last.
        """
        target = _normalise(tuple(tokens))
        best: MatchingRule | None = None
        best_weight = 0
        for rule_tokens, rule in self._parsed:
            if len(rule_tokens) != len(target):
                continue
            weight = _weight(rule_tokens, target)
            if weight and weight >= best_weight:
                best, best_weight = rule, weight
        return best

    def to_dict(self) -> dict[str, dict[str, Any]]:
        return {path: rule.to_dict() for path, rule in self._rules.items()}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> MatchingRules:
        if not data:
            return cls()
        if not isinstance(data, Mapping):
            raise ContractValidationError("matchingRules must be a mapping")
        rules: dict[str, MatchingRule] = {}
        for path, definition in data.items():
            parse_path(path)
            rules[path] = MatchingRule.from_dict(definition, path)
        return cls(rules)


def _weight(rule_tokens: tuple[Any, ...], target: tuple[Any, ...]) -> int:
    weight = 1
    for expected, actual in zip(rule_tokens, target):
        if expected is WILDCARD:
            continue
        if expected != actual:
            return 0
        weight *= 2
    return weight
