"""
Contract document codec.

Reads and writes the JSON pact document::

    {
      "consumer": {"name": "web"},
      "provider": {"name": "orders"},
      "interactions": [
        {
          "description": "a request for order 42",
          "providerState": "order 42 exists",
          "request": {"method": "GET", "path": "/orders/42"},
          "response": {
            "status": 200,
            "body": {"id": 42},
            "matchingRules": {"$.body.id": {"match": "type"}}
          }
        }
      ],
      "metadata": {"pactSpecification": {"version": "2.0.0"}}
    }

Matching rules are written in the flat form (full paths such as
``$.body.id``). The nested form used by later pact specification versions
(``{"body": {"$.id": {"matchers": [...]}}}``) is accepted on read.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any, Mapping
from urllib.parse import parse_qs

import structlog

from pactlayer import __version__
from pactlayer.contract.models import (
    DEFAULT_SPECIFICATION_VERSION,
    Contract,
    Interaction,
    ProviderState,
    Request,
    Response,
)
from pactlayer.core.errors import ContractValidationError
from pactlayer.matching.rules import MatchingRules, join_path

logger = structlog.get_logger()

_NESTED_RULE_SECTIONS = {"body": "body", "header": "headers", "headers": "headers", "query": "query", "path": "path"}


# === Encoding ===


def contract_to_dict(contract: Contract) -> dict[str, Any]:
    """Render a contract as a pact document."""
    metadata = dict(contract.metadata)
    metadata["pactSpecification"] = {"version": contract.specification_version}
    metadata.setdefault("pactlayer", {"version": __version__})
    return {
        "consumer": {"name": contract.consumer},
        "provider": {"name": contract.provider},
        "interactions": [interaction_to_dict(i) for i in contract.interactions],
        "metadata": metadata,
    }


def interaction_to_dict(interaction: Interaction) -> dict[str, Any]:
    data: dict[str, Any] = {"description": interaction.description}

    states = interaction.provider_states
    if len(states) == 1 and not states[0].params:
        data["providerState"] = states[0].name
    elif states:
        data["providerStates"] = [{"name": s.name, "params": dict(s.params)} for s in states]

    data["request"] = _request_to_dict(interaction.request)
    data["response"] = _response_to_dict(interaction.response)
    return data


def _request_to_dict(request: Request) -> dict[str, Any]:
    data: dict[str, Any] = {"method": request.method, "path": request.path}
    if request.query is not None:
        data["query"] = {k: list(v) for k, v in request.query.items()}
    if request.headers is not None:
        data["headers"] = dict(request.headers)
    if request.body is not None:
        data["body"] = request.body
    if request.matching_rules:
        data["matchingRules"] = request.matching_rules.to_dict()
    return data


def _response_to_dict(response: Response) -> dict[str, Any]:
    data: dict[str, Any] = {"status": response.status}
    if response.headers is not None:
        data["headers"] = dict(response.headers)
    if response.body is not None:
        data["body"] = response.body
    if response.matching_rules:
        data["matchingRules"] = response.matching_rules.to_dict()
    return data


def dumps(contract: Contract, indent: int | None = 2) -> str:
    return json.dumps(contract_to_dict(contract), indent=indent)


def content_hash(contract: Contract) -> str:
    """
    Stable identifier of a contract's content.

    Metadata is excluded so that re-publishing the same interactions from a
    different tool version yields the same hash.
    """
    document = contract_to_dict(contract)
    document.pop("metadata")
    canonical = json.dumps(document, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


# === Decoding ===


def contract_from_dict(data: Any) -> Contract:
    """
    Parse and validate a pact document.

    Raises:
        ContractValidationError: if the document is malformed or inconsistent
    """
    if not isinstance(data, Mapping):
        raise ContractValidationError("Contract document must be a JSON object")

    consumer = _pacticipant_name(data, "consumer")
    provider = _pacticipant_name(data, "provider")

    raw_interactions = data.get("interactions", [])
    if not isinstance(raw_interactions, list):
        raise ContractValidationError("'interactions' must be a list")

    interactions = []
    for index, raw in enumerate(raw_interactions):
        try:
            interactions.append(_interaction_from_dict(raw))
        except ContractValidationError as e:
            raise ContractValidationError(
                f"Interaction {index}: {e.message}", {**e.details, "index": index}
            ) from e

    metadata = dict(data.get("metadata") or {})
    declared = metadata.pop("pactSpecification", None) or metadata.pop("pact-specification", None) or {}
    version = declared.get("version", DEFAULT_SPECIFICATION_VERSION) if isinstance(declared, Mapping) else DEFAULT_SPECIFICATION_VERSION

    return Contract(
        consumer=consumer,
        provider=provider,
        interactions=tuple(interactions),
        specification_version=str(version),
        metadata=metadata,
    )


def loads(text: str | bytes) -> Contract:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ContractValidationError(f"Contract document is not valid JSON: {e}") from e
    return contract_from_dict(data)


def _pacticipant_name(data: Mapping[str, Any], role: str) -> str:
    section = data.get(role)
    name = section.get("name") if isinstance(section, Mapping) else None
    if not isinstance(name, str) or not name:
        raise ContractValidationError(f"Contract is missing {role}.name", {"field": role})
    return name


def _interaction_from_dict(raw: Any) -> Interaction:
    if not isinstance(raw, Mapping):
        raise ContractValidationError("interaction must be an object")

    description = raw.get("description")
    if not isinstance(description, str) or not description:
        raise ContractValidationError("interaction requires a description")

    return Interaction(
        description=description,
        request=_request_from_dict(raw.get("request"), description),
        response=_response_from_dict(raw.get("response"), description),
        provider_states=_states_from_dict(raw),
    )


def _states_from_dict(raw: Mapping[str, Any]) -> tuple[ProviderState, ...]:
    states = raw.get("providerStates")
    if states is not None:
        if not isinstance(states, list):
            raise ContractValidationError("'providerStates' must be a list")
        parsed = []
        for state in states:
            if not isinstance(state, Mapping) or not isinstance(state.get("name"), str):
                raise ContractValidationError("provider state requires a name")
            params = state.get("params") or {}
            if not isinstance(params, Mapping):
                raise ContractValidationError("provider state params must be an object")
            parsed.append(ProviderState(state["name"], params))
        return tuple(parsed)

    state = raw.get("providerState") or raw.get("provider_state")
    if state is None:
        return ()
    if not isinstance(state, str):
        raise ContractValidationError("'providerState' must be a string")
    return (ProviderState(state),)


def _request_from_dict(raw: Any, description: str) -> Request:
    if not isinstance(raw, Mapping):
        raise ContractValidationError("interaction requires a request", {"description": description})

    method = raw.get("method")
    path = raw.get("path", "/")
    if not isinstance(method, str) or not method:
        raise ContractValidationError("request requires a method", {"description": description})
    if not isinstance(path, str) or not path.startswith("/"):
        raise ContractValidationError(
            "request path must start with '/'", {"description": description, "path": path}
        )

    return Request(
        method=method,
        path=path,
        query=_query_from_raw(raw.get("query")),
        headers=_headers_from_raw(raw.get("headers")),
        body=raw.get("body"),
        matching_rules=_rules_from_raw(raw.get("matchingRules")),
    )


def _response_from_dict(raw: Any, description: str) -> Response:
    if not isinstance(raw, Mapping):
        raise ContractValidationError("interaction requires a response", {"description": description})

    status = raw.get("status", 200)
    if isinstance(status, bool) or not isinstance(status, int) or not 100 <= status <= 599:
        raise ContractValidationError(
            "response status must be an HTTP status code",
            {"description": description, "status": status},
        )

    return Response(
        status=status,
        headers=_headers_from_raw(raw.get("headers")),
        body=raw.get("body"),
        matching_rules=_rules_from_raw(raw.get("matchingRules")),
    )


def _query_from_raw(raw: Any) -> dict[str, list[str]] | None:
    if raw is None:
        return None
    if isinstance(raw, str):
        return {k: v for k, v in parse_qs(raw, keep_blank_values=True).items()}
    if not isinstance(raw, Mapping):
        raise ContractValidationError("request query must be a string or an object")
    query: dict[str, list[str]] = {}
    for key, value in raw.items():
        if isinstance(value, list):
            query[key] = [str(v) for v in value]
        else:
            query[key] = [str(value)]
    return query


def _headers_from_raw(raw: Any) -> dict[str, str] | None:
    if raw is None:
        return None
    if not isinstance(raw, Mapping):
        raise ContractValidationError("headers must be an object")
    return {
        str(k): ", ".join(str(x) for x in v) if isinstance(v, list) else str(v)
        for k, v in raw.items()
    }


def _rules_from_raw(raw: Any) -> MatchingRules:
    if not raw:
        return MatchingRules()
    if not isinstance(raw, Mapping):
        raise ContractValidationError("matchingRules must be an object")
    if all(isinstance(k, str) and k.startswith("$") for k in raw):
        return MatchingRules.from_dict(raw)
    return MatchingRules.from_dict(_flatten_nested_rules(raw))


def _flatten_nested_rules(raw: Mapping[str, Any]) -> dict[str, Any]:
    """Convert ``{"body": {"$.id": {"matchers": [...]}}}`` into flat paths."""
    flat: dict[str, Any] = {}
    for section, entries in raw.items():
        target = _NESTED_RULE_SECTIONS.get(section)
        if target is None:
            raise ContractValidationError(f"Unknown matchingRules section '{section}'")
        if target == "path":
            flat["$.path"] = _first_matcher(entries, "$.path")
            continue
        if not isinstance(entries, Mapping):
            raise ContractValidationError(f"matchingRules.{section} must be an object")
        for key, definition in entries.items():
            if target == "body":
                path = "$.body" + key[1:] if key.startswith("$") else join_path("$.body", key)
            else:
                path = join_path(f"$.{target}", key)
            flat[path] = _first_matcher(definition, path)
    return flat


def _first_matcher(definition: Any, path: str) -> Any:
    if isinstance(definition, Mapping) and "matchers" in definition:
        matchers = definition.get("matchers") or []
        if not matchers:
            raise ContractValidationError(f"No matchers defined at {path}", {"path": path})
        if len(matchers) > 1:
            logger.warning("multiple_matchers_ignored", path=path, count=len(matchers))
        return matchers[0]
    return definition


# === Files ===


def pact_file_name(consumer: str, provider: str) -> str:
    return f"{consumer}-{provider}.json".lower().replace(" ", "_")


def load_contract(path: str | Path) -> Contract:
    """Read a pact file from disk."""
    file_path = Path(path)
    try:
        text = file_path.read_text(encoding="utf-8")
    except FileNotFoundError as e:
        raise ContractValidationError(f"Pact file not found: {file_path}", {"path": str(file_path)}) from e
    return loads(text)


def save_contract(contract: Contract, path: str | Path) -> Path:
    """Write a pact file, replacing any existing content."""
    file_path = Path(path)
    file_path.parent.mkdir(parents=True, exist_ok=True)
    file_path.write_text(dumps(contract) + "\n", encoding="utf-8")
    logger.info("pact_written", path=str(file_path), interactions=len(contract))
    return file_path


def write_pact(contract: Contract, pact_dir: str | Path, *, merge: bool = True) -> Path:
    """
    Write ``contract`` into ``pact_dir/<consumer>-<provider>.json``.

    With ``merge`` set, interactions already in the file are kept and the
    new ones appended, so several test modules can contribute to one pact.
    """
    path = Path(pact_dir) / pact_file_name(contract.consumer, contract.provider)
    if merge and path.exists():
        contract = load_contract(path).merge(contract)
    return save_contract(contract, path)
