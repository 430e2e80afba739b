"""
Contract model.

Interactions recorded by a consumer's tests against the mock provider,
persisted as a pact document and replayed by the provider verifier.
"""

from .document import (
    content_hash,
    contract_from_dict,
    contract_to_dict,
    dumps,
    load_contract,
    loads,
    pact_file_name,
    save_contract,
    write_pact,
)
from .models import Contract, Interaction, ProviderState, Request, Response

__all__ = [
    "Contract",
    "Interaction",
    "ProviderState",
    "Request",
    "Response",
    "content_hash",
    "contract_from_dict",
    "contract_to_dict",
    "dumps",
    "loads",
    "load_contract",
    "save_contract",
    "write_pact",
    "pact_file_name",
]
