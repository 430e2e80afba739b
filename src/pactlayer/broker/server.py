"""
HTTP surface of the broker, backed by a BrokerStore.

Resources are linked with ``_links`` so a verifier only needs the provider
name to discover what it must verify and where to publish results.
"""

from __future__ import annotations

from typing import Any
from urllib.parse import quote

import structlog
from fastapi import APIRouter, Body, Depends, FastAPI, Header, HTTPException, Request, status
from pydantic import BaseModel, Field

import pactlayer
from pactlayer.broker.models import PactPublication
from pactlayer.broker.store import BrokerStore
from pactlayer.contract.document import contract_from_dict, contract_to_dict
from pactlayer.core.errors import ContractValidationError, PublishConflictError

router = APIRouter()
health_router = APIRouter()
logger = structlog.get_logger()


class HealthResponse(BaseModel):
    status: str
    version: str = pactlayer.__version__


class VerificationResultsRequest(BaseModel):
    success: bool
    provider_version: str = Field(alias="providerApplicationVersion", min_length=1)
    test_results: list[dict[str, Any]] = Field(default_factory=list, alias="testResults")


class DeploymentResponse(BaseModel):
    pacticipant: str
    version: str
    environment: str


def get_store(request: Request) -> BrokerStore:
    return request.app.state.store


def require_token(
    request: Request,
    authorization: str | None = Header(default=None),
) -> None:
    token = request.app.state.token
    if token and authorization != f"Bearer {token}":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid broker token")


def _base(request: Request) -> str:
    return str(request.base_url).rstrip("/")


def _q(value: str) -> str:
    return quote(value, safe="")


def _pact_href(request: Request, publication: PactPublication) -> str:
    return (
        f"{_base(request)}/pacts/provider/{_q(publication.provider)}"
        f"/consumer/{_q(publication.consumer)}/pact-version/{publication.pact_version}"
    )


def _pact_document(request: Request, publication: PactPublication) -> dict[str, Any]:
    href = _pact_href(request, publication)
    document = contract_to_dict(publication.contract)
    document["_links"] = {
        "self": {"href": href, "name": publication.consumer_version},
        "pb:publish-verification-results": {"href": f"{href}/verification-results"},
    }
    return document


def _pact_list(request: Request, provider: str, publications: list[PactPublication]) -> dict[str, Any]:
    return {
        "_links": {
            "self": {"href": str(request.url)},
            "provider": {"name": provider},
            "pacts": [
                {
                    "href": _pact_href(request, p),
                    "title": f"Pact between {p.consumer} ({p.consumer_version}) and {p.provider}",
                    "name": p.consumer,
                }
                for p in publications
            ],
        }
    }


@health_router.get("/health", response_model=HealthResponse, status_code=status.HTTP_200_OK)
async def health_check() -> HealthResponse:
    """Basic health check endpoint."""
    return HealthResponse(status="healthy")


@router.put("/pacts/provider/{provider}/consumer/{consumer}/version/{version}")
async def publish_pact(
    provider: str,
    consumer: str,
    version: str,
    request: Request,
    payload: dict[str, Any] = Body(...),  # noqa: B008
    store: BrokerStore = Depends(get_store),  # noqa: B008
) -> dict[str, Any]:
    try:
        contract = contract_from_dict(payload)
    except ContractValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.message) from exc

    if contract.consumer != consumer or contract.provider != provider:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=(
                f"Pact is between {contract.consumer} and {contract.provider}, "
                f"not {consumer} and {provider}"
            ),
        )

    try:
        publication = store.publish(contract, version)
    except PublishConflictError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=exc.message) from exc
    return _pact_document(request, publication)


@router.get("/pacts/provider/{provider}/consumer/{consumer}/version/{version}")
async def get_pact(
    provider: str,
    consumer: str,
    version: str,
    request: Request,
    store: BrokerStore = Depends(get_store),  # noqa: B008
) -> dict[str, Any]:
    publication = store.pact(provider, consumer, version)
    if publication is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Pact not found")
    return _pact_document(request, publication)


@router.get("/pacts/provider/{provider}/latest")
async def latest_pacts(
    provider: str,
    request: Request,
    store: BrokerStore = Depends(get_store),  # noqa: B008
) -> dict[str, Any]:
    return _pact_list(request, provider, store.latest_pacts(provider))


@router.get("/pacts/provider/{provider}/latest/{tag}")
async def latest_tagged_pacts(
    provider: str,
    tag: str,
    request: Request,
    store: BrokerStore = Depends(get_store),  # noqa: B008
) -> dict[str, Any]:
    return _pact_list(request, provider, store.latest_pacts_for_tag(provider, tag))


@router.get("/pacts/provider/{provider}/consumer/{consumer}/pact-version/{pact_version}")
async def get_pact_version(
    provider: str,
    consumer: str,
    pact_version: str,
    request: Request,
    store: BrokerStore = Depends(get_store),  # noqa: B008
) -> dict[str, Any]:
    publication = store.pact_by_version(provider, consumer, pact_version)
    if publication is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Pact version not found")
    return _pact_document(request, publication)


@router.post(
    "/pacts/provider/{provider}/consumer/{consumer}/pact-version/{pact_version}/verification-results",
    status_code=status.HTTP_201_CREATED,
)
async def publish_verification_results(
    provider: str,
    consumer: str,
    pact_version: str,
    payload: VerificationResultsRequest,
    store: BrokerStore = Depends(get_store),  # noqa: B008
) -> dict[str, Any]:
    try:
        record = store.record_verification(
            provider,
            consumer,
            pact_version,
            payload.provider_version,
            payload.success,
            payload.model_dump(by_alias=True),
        )
    except KeyError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Pact version not found") from exc
    return record.to_dict()


@router.put(
    "/pacticipants/{pacticipant}/versions/{version}/tags/{tag}",
    status_code=status.HTTP_201_CREATED,
)
async def tag_version(
    pacticipant: str,
    version: str,
    tag: str,
    store: BrokerStore = Depends(get_store),  # noqa: B008
) -> dict[str, Any]:
    store.tag_version(pacticipant, version, tag)
    return {"pacticipant": pacticipant, "version": version, "tag": tag}


@router.post(
    "/pacticipants/{pacticipant}/versions/{version}/deployments/{environment}",
    status_code=status.HTTP_201_CREATED,
    response_model=DeploymentResponse,
)
async def record_deployment(
    pacticipant: str,
    version: str,
    environment: str,
    store: BrokerStore = Depends(get_store),  # noqa: B008
) -> DeploymentResponse:
    store.record_deployment(pacticipant, version, environment)
    return DeploymentResponse(pacticipant=pacticipant, version=version, environment=environment)


@router.get("/can-i-deploy")
async def can_i_deploy(
    pacticipant: str,
    version: str,
    environment: str,
    store: BrokerStore = Depends(get_store),  # noqa: B008
) -> dict[str, Any]:
    result = store.can_i_deploy(pacticipant, version, environment)
    logger.info(
        "can_i_deploy_checked",
        pacticipant=pacticipant,
        version=version,
        environment=environment,
        deployable=result.deployable,
    )
    return result.to_dict()


def create_broker_app(store: BrokerStore | None = None, *, token: str | None = None) -> FastAPI:
    """
    Build the broker ASGI app.

    Args:
        store: Backing store (a fresh in-memory store by default)
        token: When set, every request except ``/health`` must carry
            ``Authorization: Bearer <token>``
    """
    app = FastAPI(title="PactLayer Broker", version=pactlayer.__version__)
    app.state.store = store or BrokerStore()
    app.state.token = token

    app.include_router(health_router, tags=["health"])
    app.include_router(router, dependencies=[Depends(require_token)], tags=["broker"])
    return app
