"""
Models for consumer/provider contracts.

All models are frozen; "changing" an interaction or contract returns a new
instance via ``dataclasses.replace``.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field, replace
from typing import Any, Iterable, Mapping, Optional

from pactlayer.core.errors import ContractValidationError
from pactlayer.matching.rules import MatchingRules

DEFAULT_SPECIFICATION_VERSION = "2.0.0"


def _query_values(query: Mapping[str, Any]) -> dict[str, list[str]]:
    """Query parameters as a mapping of name to list of string values."""
    normalized: dict[str, list[str]] = {}
    for name, value in query.items():
        values = list(value) if isinstance(value, (list, tuple)) else [value]
        normalized[name] = [str(v) for v in values]
    return normalized


@dataclass(frozen=True)
class ProviderState:
    """A named precondition the provider establishes before an interaction."""

    name: str
    params: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.name:
            raise ContractValidationError("Provider state name must not be empty")
        object.__setattr__(self, "params", copy.deepcopy(dict(self.params)))


@dataclass(frozen=True)
class Request:
    """Expected request: literal example values plus request-side rules."""

    method: str
    path: str
    query: Optional[dict[str, list[str]]] = None
    headers: Optional[dict[str, str]] = None
    body: Any = None
    matching_rules: MatchingRules = field(default_factory=MatchingRules)

    def __post_init__(self) -> None:
        object.__setattr__(self, "method", self.method.upper())
        if self.query is not None:
            object.__setattr__(self, "query", _query_values(self.query))
        if self.headers is not None:
            object.__setattr__(self, "headers", dict(self.headers))
        object.__setattr__(self, "body", copy.deepcopy(self.body))
        if not isinstance(self.matching_rules, MatchingRules):
            object.__setattr__(self, "matching_rules", MatchingRules(self.matching_rules))


@dataclass(frozen=True)
class Response:
    """Expected response: literal example values plus response-side rules."""

    status: int = 200
    headers: Optional[dict[str, str]] = None
    body: Any = None
    matching_rules: MatchingRules = field(default_factory=MatchingRules)

    def __post_init__(self) -> None:
        if self.headers is not None:
            object.__setattr__(self, "headers", dict(self.headers))
        object.__setattr__(self, "body", copy.deepcopy(self.body))
        if not isinstance(self.matching_rules, MatchingRules):
            object.__setattr__(self, "matching_rules", MatchingRules(self.matching_rules))


@dataclass(frozen=True)
class Interaction:
    """One request/response exchange between consumer and provider."""

    description: str
    request: Request
    response: Response
    provider_states: tuple[ProviderState, ...] = ()

    def __post_init__(self) -> None:
        if not self.description:
            raise ContractValidationError("Interaction description must not be empty")
        object.__setattr__(self, "provider_states", tuple(self.provider_states))

    @property
    def provider_state(self) -> Optional[ProviderState]:
        """First (usually only) provider state, if any."""
        return self.provider_states[0] if self.provider_states else None

    def with_provider_state(self, name: str, **params: Any) -> Interaction:
        return replace(self, provider_states=self.provider_states + (ProviderState(name, params),))

    def with_response(self, response: Response) -> Interaction:
        return replace(self, response=response)


@dataclass(frozen=True)
class Contract:
    """
    Ordered interactions between exactly one consumer and one provider.

    Descriptions are unique: an identical duplicate collapses into the first
    occurrence, a conflicting duplicate is a ContractValidationError.
    """

    consumer: str
    provider: str
    interactions: tuple[Interaction, ...] = ()
    specification_version: str = DEFAULT_SPECIFICATION_VERSION
    metadata: Mapping[str, Any] = field(default_factory=dict, compare=False)

    def __post_init__(self) -> None:
        if not self.consumer or not self.provider:
            raise ContractValidationError("Contract requires consumer and provider names")
        object.__setattr__(self, "interactions", _unique(self.interactions))
        object.__setattr__(self, "metadata", dict(self.metadata))

    def __len__(self) -> int:
        return len(self.interactions)

    @property
    def descriptions(self) -> list[str]:
        return [i.description for i in self.interactions]

    def interaction(self, description: str) -> Interaction:
        for interaction in self.interactions:
            if interaction.description == description:
                return interaction
        raise KeyError(description)

    def with_interaction(self, interaction: Interaction) -> Contract:
        return replace(self, interactions=self.interactions + (interaction,))

    def merge(self, other: Contract) -> Contract:
        """Combine two contracts for the same consumer/provider pair."""
        if (self.consumer, self.provider) != (other.consumer, other.provider):
            raise ContractValidationError(
                "Cannot merge contracts for different pacticipants",
                {
                    "left": f"{self.consumer}->{self.provider}",
                    "right": f"{other.consumer}->{other.provider}",
                },
            )
        return replace(self, interactions=self.interactions + other.interactions)


def _unique(interactions: Iterable[Interaction]) -> tuple[Interaction, ...]:
    seen: dict[str, Interaction] = {}
    for interaction in interactions:
        existing = seen.get(interaction.description)
        if existing is None:
            seen[interaction.description] = interaction
        elif existing != interaction:
            raise ContractValidationError(
                f"Duplicate interaction description with different content: "
                f"'{interaction.description}'",
                {"description": interaction.description},
            )
    return tuple(seen.values())
