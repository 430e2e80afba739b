"""
Async client for the broker HTTP API.

Reads are retried with backoff; publications are sent once, since a publish
that failed ambiguously may already have been stored.
"""

from __future__ import annotations

import re
from typing import Any, Iterable, List, Optional
from urllib.parse import quote

import httpx
import structlog

from pactlayer.broker.models import CanIDeployResult, PactForVerification
from pactlayer.clients.base import BaseHTTPClient, PermanentHTTPError
from pactlayer.contract.document import content_hash, contract_from_dict, contract_to_dict
from pactlayer.contract.models import Contract
from pactlayer.core.errors import PublishConflictError
from pactlayer.verification.models import VerificationResult

logger = structlog.get_logger()

_PACT_VERSION_RE = re.compile(r"/pact-version/([^/]+)")


def _q(value: str) -> str:
    return quote(value, safe="")


class PactBrokerClient(BaseHTTPClient):
    """
    Broker API client.

    Authenticates with a bearer token when one is given, otherwise with
    basic auth when a username is given.
    """

    def __init__(
        self,
        base_url: str,
        *,
        token: str | None = None,
        username: str | None = None,
        password: str | None = None,
        timeout: float = 30.0,
        max_retries: int = 3,
        backoff_factor: float = 2.0,
    ) -> None:
        super().__init__(
            base_url,
            timeout=timeout,
            max_retries=max_retries,
            backoff_factor=backoff_factor,
        )
        self._token = token
        self._username = username
        self._password = password

    def _headers(self) -> dict[str, str]:
        headers = super()._headers()
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    def _auth(self) -> httpx.Auth | tuple[str, str] | None:
        if not self._token and self._username:
            return (self._username, self._password or "")
        return None

    # === Consumer side ===

    async def publish(
        self,
        contract: Contract,
        consumer_version: str,
        tags: Iterable[str] = (),
    ) -> str:
        """
        Publish ``contract`` for ``consumer_version`` and return its pact version.

        Raises:
            PublishConflictError: different content is already published for
                this consumer version
            TransportError: the broker could not be reached
        """
        path = (
            f"/pacts/provider/{_q(contract.provider)}"
            f"/consumer/{_q(contract.consumer)}/version/{_q(consumer_version)}"
        )
        try:
            response = await self.put(path, json=contract_to_dict(contract))
        except PermanentHTTPError as exc:
            if exc.status_code == 409:
                raise PublishConflictError(
                    f"Broker rejected {contract.consumer} version {consumer_version}: "
                    "a different pact is already published",
                    {"consumer": contract.consumer, "consumer_version": consumer_version},
                ) from exc
            raise

        for tag in tags:
            await self.tag_version(contract.consumer, consumer_version, tag)

        pact_version = _pact_version_from(response) or content_hash(contract)
        logger.info(
            "pact_published",
            consumer=contract.consumer,
            provider=contract.provider,
            consumer_version=consumer_version,
            pact_version=pact_version,
        )
        return pact_version

    async def tag_version(self, pacticipant: str, version: str, tag: str) -> None:
        await self.put(f"/pacticipants/{_q(pacticipant)}/versions/{_q(version)}/tags/{_q(tag)}")

    # === Provider side ===

    async def fetch_pending(
        self,
        provider: str,
        tags: Iterable[str] = ("main",),
    ) -> List[PactForVerification]:
        """
        Fetch the pacts ``provider`` must verify.

        The latest pact from every consumer plus the latest pact for each of
        ``tags``; a provider or tag the broker has never seen yields nothing.
        """
        hrefs: List[str] = []
        for index in [f"/pacts/provider/{_q(provider)}/latest"] + [
            f"/pacts/provider/{_q(provider)}/latest/{_q(tag)}" for tag in tags
        ]:
            for link in await self._pact_links(index):
                href = link.get("href")
                if href and href not in hrefs:
                    hrefs.append(href)

        pacts: List[PactForVerification] = []
        for href in hrefs:
            document = await self.get(href)
            contract = contract_from_dict(document)
            links = document.get("_links") or {}
            pact_version = _pact_version_from(document) or content_hash(contract)
            pacts.append(
                PactForVerification(
                    contract=contract,
                    pact_version=pact_version,
                    href=href,
                    verification_results_href=(links.get("pb:publish-verification-results") or {}).get("href"),
                )
            )

        logger.info("pacts_fetched", provider=provider, count=len(pacts))
        return pacts

    async def _pact_links(self, path: str) -> List[dict[str, Any]]:
        try:
            data = await self.get(path)
        except PermanentHTTPError as exc:
            if exc.status_code == 404:
                return []
            raise
        return list((data.get("_links") or {}).get("pacts") or [])

    async def publish_verification_result(
        self,
        pact: PactForVerification,
        result: VerificationResult,
        provider_version: Optional[str] = None,
    ) -> dict[str, Any]:
        """Publish ``result`` for ``pact`` (sent once, never retried)."""
        version = provider_version or result.provider_version
        if not version:
            raise ValueError("A provider version is required to publish verification results")

        url = pact.verification_results_href or (
            f"/pacts/provider/{_q(pact.contract.provider)}/consumer/{_q(pact.contract.consumer)}"
            f"/pact-version/{pact.pact_version}/verification-results"
        )
        response = await self.post(url, json=result.to_broker_payload(version))
        logger.info(
            "verification_published",
            consumer=pact.contract.consumer,
            provider=pact.contract.provider,
            provider_version=version,
            success=result.passed,
        )
        return response

    # === Deployment ===

    async def record_deployment(self, pacticipant: str, version: str, environment: str) -> None:
        await self.post(
            f"/pacticipants/{_q(pacticipant)}/versions/{_q(version)}/deployments/{_q(environment)}"
        )
        logger.info("deployment_recorded", pacticipant=pacticipant, version=version, environment=environment)

    async def can_i_deploy(self, pacticipant: str, version: str, environment: str) -> CanIDeployResult:
        data = await self.get(
            "/can-i-deploy",
            params={"pacticipant": pacticipant, "version": version, "environment": environment},
        )
        return CanIDeployResult.from_dict(data, pacticipant, version, environment)


def _pact_version_from(document: Any) -> Optional[str]:
    if not isinstance(document, dict):
        return None
    href = ((document.get("_links") or {}).get("self") or {}).get("href", "")
    match = _PACT_VERSION_RE.search(href)
    return match.group(1) if match else None
