"""
In-memory broker store.

Versioned and append-mostly: pacts are stored per consumer version and never
edited in place, verification results accumulate, and the only record that
is replaced is "which version is currently deployed in an environment".
"""

from __future__ import annotations

import itertools
import threading
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

import structlog

from pactlayer.broker.models import (
    CanIDeployResult,
    MatrixRow,
    PactPublication,
    VerificationRecord,
)
from pactlayer.contract.document import content_hash
from pactlayer.contract.models import Contract
from pactlayer.core.errors import PublishConflictError

logger = structlog.get_logger()


def _now() -> datetime:
    return datetime.now(timezone.utc)


class BrokerStore:
    """
    Central store of contracts, verification results and deployments.

    Args:
        allow_overwrite: Accept different content for an already-published
            consumer version instead of raising PublishConflictError
    """

    def __init__(self, allow_overwrite: bool = False) -> None:
        self.allow_overwrite = allow_overwrite
        self._lock = threading.RLock()
        self._sequence = itertools.count(1)
        self._pacts: Dict[Tuple[str, str, str], PactPublication] = {}
        self._tags: Dict[Tuple[str, str], Set[str]] = {}
        self._verifications: List[VerificationRecord] = []
        self._deployments: Dict[Tuple[str, str], str] = {}

    # === Publishing ===

    def publish(
        self,
        contract: Contract,
        consumer_version: str,
        tags: Iterable[str] = (),
        branch: Optional[str] = None,
    ) -> PactPublication:
        """
        Store ``contract`` for ``consumer_version``.

        Publishing identical content again is a no-op; other consumer
        versions are never touched.

        Raises:
            PublishConflictError: different content already exists for this
                consumer version and overwrites are not allowed
        """
        key = (contract.consumer, contract.provider, consumer_version)
        pact_version = content_hash(contract)
        with self._lock:
            existing = self._pacts.get(key)
            if existing is not None and existing.pact_version != pact_version:
                if not self.allow_overwrite:
                    raise PublishConflictError(
                        f"A different pact is already published for {contract.consumer} "
                        f"version {consumer_version}",
                        {
                            "consumer": contract.consumer,
                            "provider": contract.provider,
                            "consumer_version": consumer_version,
                        },
                    )
                existing = None

            if existing is None:
                publication = PactPublication(
                    consumer=contract.consumer,
                    provider=contract.provider,
                    consumer_version=consumer_version,
                    pact_version=pact_version,
                    contract=contract,
                    published_at=_now(),
                    sequence=next(self._sequence),
                )
                self._pacts[key] = publication
                logger.info(
                    "pact_published",
                    consumer=contract.consumer,
                    provider=contract.provider,
                    consumer_version=consumer_version,
                    pact_version=pact_version,
                )
            else:
                publication = existing

            for tag in list(tags) + ([branch] if branch else []):
                self.tag_version(contract.consumer, consumer_version, tag)
            return publication

    def tag_version(self, pacticipant: str, version: str, tag: str) -> None:
        with self._lock:
            self._tags.setdefault((pacticipant, version), set()).add(tag)

    def tags(self, pacticipant: str, version: str) -> Set[str]:
        with self._lock:
            return set(self._tags.get((pacticipant, version), set()))

    # === Lookup ===

    def pact(self, provider: str, consumer: str, consumer_version: str) -> Optional[PactPublication]:
        with self._lock:
            return self._pacts.get((consumer, provider, consumer_version))

    def pact_by_version(self, provider: str, consumer: str, pact_version: str) -> Optional[PactPublication]:
        with self._lock:
            matches = [
                p
                for p in self._pacts.values()
                if p.provider == provider and p.consumer == consumer and p.pact_version == pact_version
            ]
        return max(matches, key=lambda p: p.sequence) if matches else None

    def latest_pacts(self, provider: str, tags: Iterable[str] = ()) -> List[PactPublication]:
        """
        Pacts ``provider`` must verify.

        The latest pact from each consumer, plus the latest pact from each
        consumer carrying one of ``tags``; duplicates by content are dropped.
        """
        wanted = list(tags)
        with self._lock:
            publications = sorted(
                (p for p in self._pacts.values() if p.provider == provider),
                key=lambda p: p.sequence,
            )
            latest: Dict[Tuple[str, Optional[str]], PactPublication] = {}
            for publication in publications:
                latest[(publication.consumer, None)] = publication
                version_tags = self._tags.get((publication.consumer, publication.consumer_version), set())
                for tag in wanted:
                    if tag in version_tags:
                        latest[(publication.consumer, tag)] = publication

        selected: List[PactPublication] = []
        seen: Set[Tuple[str, str]] = set()
        for publication in sorted(latest.values(), key=lambda p: p.sequence):
            ident = (publication.consumer, publication.pact_version)
            if ident not in seen:
                seen.add(ident)
                selected.append(publication)
        return selected

    def latest_pacts_for_tag(self, provider: str, tag: str) -> List[PactPublication]:
        """Latest pact per consumer among versions tagged ``tag``."""
        with self._lock:
            latest: Dict[str, PactPublication] = {}
            for publication in sorted(self._pacts.values(), key=lambda p: p.sequence):
                if publication.provider != provider:
                    continue
                if tag in self._tags.get((publication.consumer, publication.consumer_version), set()):
                    latest[publication.consumer] = publication
        return sorted(latest.values(), key=lambda p: p.sequence)

    # === Verification ===

    def record_verification(
        self,
        provider: str,
        consumer: str,
        pact_version: str,
        provider_version: str,
        success: bool,
        payload: Optional[dict[str, Any]] = None,
    ) -> VerificationRecord:
        """
        Record a verification result.

        Raises:
            KeyError: if no pact with ``pact_version`` exists for the pair
        """
        if self.pact_by_version(provider, consumer, pact_version) is None:
            raise KeyError(f"Unknown pact version {pact_version} for {consumer} -> {provider}")
        with self._lock:
            record = VerificationRecord(
                provider=provider,
                consumer=consumer,
                pact_version=pact_version,
                provider_version=provider_version,
                success=success,
                verified_at=_now(),
                sequence=next(self._sequence),
                payload=dict(payload or {}),
            )
            self._verifications.append(record)
        logger.info(
            "verification_recorded",
            provider=provider,
            consumer=consumer,
            provider_version=provider_version,
            success=success,
        )
        return record

    def latest_verification(
        self,
        provider: str,
        pact_version: str,
        provider_version: str,
    ) -> Optional[VerificationRecord]:
        with self._lock:
            for record in reversed(self._verifications):
                if (
                    record.provider == provider
                    and record.pact_version == pact_version
                    and record.provider_version == provider_version
                ):
                    return record
        return None

    # === Deployments ===

    def record_deployment(self, pacticipant: str, version: str, environment: str) -> None:
        """Mark ``version`` as the one currently deployed to ``environment``."""
        with self._lock:
            self._deployments[(pacticipant, environment)] = version
        logger.info("deployment_recorded", pacticipant=pacticipant, version=version, environment=environment)

    def deployed_version(self, pacticipant: str, environment: str) -> Optional[str]:
        with self._lock:
            return self._deployments.get((pacticipant, environment))

    def can_i_deploy(self, pacticipant: str, version: str, environment: str) -> CanIDeployResult:
        """
        Decide whether ``pacticipant`` at ``version`` is safe to deploy.

        Every pact involving it must have a passing verification against the
        counterpart version currently deployed in ``environment``.
        """
        rows: List[MatrixRow] = []
        with self._lock:
            pacts = list(self._pacts.values())
            deployments = dict(self._deployments)

        # Our pacts as a consumer, against the providers in the environment.
        for publication in pacts:
            if publication.consumer != pacticipant or publication.consumer_version != version:
                continue
            provider_version = deployments.get((publication.provider, environment))
            rows.append(self._matrix_row(publication, provider_version, environment))

        # Pacts of consumers in the environment, against us as the provider.
        for (consumer, env), consumer_version in deployments.items():
            if env != environment or consumer == pacticipant:
                continue
            publication = self.pact(pacticipant, consumer, consumer_version)
            if publication is not None:
                rows.append(self._matrix_row(publication, version, environment))

        if not rows:
            reason = f"No contracts involve {pacticipant} version {version}"
            deployable = True
        elif all(r.success is True for r in rows):
            reason = "All required verification results are published and successful"
            deployable = True
        else:
            problems = [r.reason for r in rows if r.success is not True]
            reason = "; ".join(problems)
            deployable = False

        return CanIDeployResult(
            pacticipant=pacticipant,
            version=version,
            environment=environment,
            deployable=deployable,
            reason=reason,
            matrix=rows,
        )

    def _matrix_row(
        self,
        publication: PactPublication,
        provider_version: Optional[str],
        environment: str,
    ) -> MatrixRow:
        row = MatrixRow(
            consumer=publication.consumer,
            consumer_version=publication.consumer_version,
            provider=publication.provider,
            provider_version=provider_version,
            pact_version=publication.pact_version,
            success=None,
        )
        if provider_version is None:
            row.reason = f"No version of {publication.provider} is deployed to {environment}"
            return row

        record = self.latest_verification(publication.provider, publication.pact_version, provider_version)
        if record is None:
            row.reason = (
                f"No verification result for {publication.consumer} {publication.consumer_version} "
                f"by {publication.provider} {provider_version}"
            )
        else:
            row.success = record.success
            row.reason = (
                "Verification passed"
                if record.success
                else f"Verification by {publication.provider} {provider_version} failed"
            )
        return row
