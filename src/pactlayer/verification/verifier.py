"""
Provider verifier.

Replays every interaction of a contract against a running provider and
compares the real responses with the expected ones.
"""

from __future__ import annotations

import asyncio
import time
from typing import Iterable, Optional

import httpx
import structlog

from pactlayer.contract.models import Contract, Interaction, Request
from pactlayer.core.errors import StateSetupError, TransportError
from pactlayer.logging import bind_context
from pactlayer.matching.http import decode_body, match_response
from pactlayer.verification.models import InteractionResult, Outcome, VerificationResult
from pactlayer.verification.states import StateHandlerRegistry

logger = structlog.get_logger()


class ContractVerifier:
    """
    Verifies a provider honours a contract.

    Interactions run sequentially in document order: provider states are
    often cumulative, and the request for an interaction is only sent once
    its states are set up. A failing interaction never stops the run.
    """

    def __init__(
        self,
        provider_base_url: str,
        state_handlers: Optional[StateHandlerRegistry] = None,
        *,
        timeout: float = 30.0,
        custom_headers: Optional[dict[str, str]] = None,
        provider_version: Optional[str] = None,
    ):
        """
        Initialize verifier.

        Args:
            provider_base_url: Base URL of the running provider
            state_handlers: Registry of provider state setup handlers
            timeout: Timeout in seconds for each provider and state call
            custom_headers: Headers added to (or replacing those of) every request
            provider_version: Provider version recorded in the result
        """
        self.provider_base_url = provider_base_url.rstrip("/")
        self.state_handlers = state_handlers or StateHandlerRegistry()
        self.timeout = timeout
        self.custom_headers = custom_headers or {}
        self.provider_version = provider_version

    async def verify_contract(self, contract: Contract) -> VerificationResult:
        """
        Verify all interactions in a contract.

        Args:
            contract: The contract to replay

        Returns:
            VerificationResult with one entry per interaction
        """
        result = VerificationResult(
            consumer=contract.consumer,
            provider=contract.provider,
            provider_base_url=self.provider_base_url,
            provider_version=self.provider_version,
        )
        log = bind_context(consumer=contract.consumer, provider=contract.provider)
        log.info("verification_started", interactions=len(contract))

        async with httpx.AsyncClient(base_url=self.provider_base_url, timeout=self.timeout) as client:
            for interaction in contract.interactions:
                outcome = await self._verify_interaction(client, interaction)
                log.info(
                    "interaction_verified",
                    description=interaction.description,
                    outcome=outcome.outcome.value,
                    mismatches=len(outcome.mismatches),
                )
                result.results.append(outcome)

        log.info("verification_finished", success=result.passed, failed=len(result.failures))
        return result

    async def verify_interaction(self, interaction: Interaction) -> InteractionResult:
        """Verify a single interaction outside of a contract run."""
        async with httpx.AsyncClient(base_url=self.provider_base_url, timeout=self.timeout) as client:
            return await self._verify_interaction(client, interaction)

    async def _verify_interaction(
        self,
        client: httpx.AsyncClient,
        interaction: Interaction,
    ) -> InteractionResult:
        started = time.perf_counter()
        ready = []
        try:
            for state in interaction.provider_states:
                await self.state_handlers.setup(state, timeout=self.timeout)
                ready.append(state)

            response = await self._send(client, interaction.request)
            body = decode_body(response.content, response.headers.get("content-type"))
            match = match_response(interaction.response, response.status_code, response.headers, body)
            return InteractionResult(
                description=interaction.description,
                outcome=Outcome.PASS if match.ok else Outcome.FAIL,
                mismatches=match.mismatches,
                duration_ms=_elapsed_ms(started),
            )
        except (StateSetupError, TransportError) as e:
            logger.warning(
                "interaction_error",
                description=interaction.description,
                error_type=type(e).__name__,
                error=e.message,
            )
            return InteractionResult(
                description=interaction.description,
                outcome=Outcome.ERROR,
                error_type=type(e).__name__,
                error=e.message,
                duration_ms=_elapsed_ms(started),
            )
        finally:
            for state in reversed(ready):
                try:
                    await self.state_handlers.teardown(state, timeout=self.timeout)
                except StateSetupError as e:
                    logger.warning("provider_state_teardown_failed", state=state.name, error=e.message)

    async def _send(self, client: httpx.AsyncClient, request: Request) -> httpx.Response:
        headers = dict(request.headers or {})
        headers.update(self.custom_headers)

        content: bytes | None = None
        json_body = None
        if isinstance(request.body, str):
            content = request.body.encode("utf-8")
        elif request.body is not None:
            json_body = request.body

        params = [(k, v) for k, values in (request.query or {}).items() for v in values]
        try:
            return await client.request(
                request.method,
                request.path,
                params=params or None,
                headers=headers,
                content=content,
                json=json_body,
            )
        except httpx.TimeoutException as e:
            raise TransportError(
                f"Timeout after {self.timeout}s calling {request.method} {request.path}",
                {"url": self.provider_base_url},
            ) from e
        except httpx.HTTPError as e:
            raise TransportError(
                f"Cannot reach provider at {self.provider_base_url}: {e}",
                {"url": self.provider_base_url},
            ) from e


def _elapsed_ms(started: float) -> float:
    return (time.perf_counter() - started) * 1000


async def verify_all(
    contracts: Iterable[Contract],
    provider_base_url: str,
    state_handlers: Optional[StateHandlerRegistry] = None,
    *,
    timeout: float = 30.0,
    custom_headers: Optional[dict[str, str]] = None,
    provider_version: Optional[str] = None,
) -> list[VerificationResult]:
    """Verify independent contracts concurrently, one sequential run each."""
    verifier = ContractVerifier(
        provider_base_url,
        state_handlers,
        timeout=timeout,
        custom_headers=custom_headers,
        provider_version=provider_version,
    )
    return list(await asyncio.gather(*(verifier.verify_contract(c) for c in contracts)))


def verify(
    contract: Contract,
    provider_base_url: str,
    state_handlers: Optional[StateHandlerRegistry] = None,
    *,
    timeout: float = 30.0,
    custom_headers: Optional[dict[str, str]] = None,
    provider_version: Optional[str] = None,
) -> VerificationResult:
    """Synchronous entry point: verify ``contract`` against ``provider_base_url``."""
    verifier = ContractVerifier(
        provider_base_url,
        state_handlers,
        timeout=timeout,
        custom_headers=custom_headers,
        provider_version=provider_version,
    )
    return asyncio.run(verifier.verify_contract(contract))
