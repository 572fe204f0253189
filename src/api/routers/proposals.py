from dataclasses import dataclass
from typing import Annotated, List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Path, Query, Response, status

from src.api.routers import negotiation_config
from src.api.routers.negotiation_http_errors import (
    HTTP_422_UNPROCESSABLE,
    raise_negotiation_http_exception,
)
from src.core.negotiation import (
    CallerContext,
    NegotiationRepository,
    NotificationFanout,
    ProposalCreateRequest,
    ProposalEditRequest,
    ProposalLifecycleError,
    ProposalListingService,
    ProposalListResponse,
    ProposalRecord,
    ProposalRespondRequest,
    ProposalStats,
    ProposalSummary,
    ProposalThreadService,
    ProposalWorkflowService,
)
from src.core.negotiation.models import PartyRole, ProposalSort, ProposalStatus

router = APIRouter(tags=["Proposal Negotiation"])


@dataclass(frozen=True)
class NegotiationServices:
    repository: NegotiationRepository
    fanout: NotificationFanout
    workflow: ProposalWorkflowService
    threads: ProposalThreadService
    listing: ProposalListingService


_SERVICES: Optional[NegotiationServices] = None


def build_services(repository: NegotiationRepository) -> NegotiationServices:
    fanout = NotificationFanout(
        repository=repository,
        max_attempts=negotiation_config.notification_max_delivery_attempts(),
    )
    return NegotiationServices(
        repository=repository,
        fanout=fanout,
        workflow=ProposalWorkflowService(repository=repository, fanout=fanout),
        threads=ProposalThreadService(repository=repository, fanout=fanout),
        listing=ProposalListingService(repository=repository),
    )


def get_negotiation_services() -> NegotiationServices:
    global _SERVICES
    if _SERVICES is None:
        try:
            repository = negotiation_config.build_repository()
        except RuntimeError as exc:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)
            ) from exc
        except Exception as exc:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="NEGOTIATION_POSTGRES_CONNECTION_FAILED",
            ) from exc
        _SERVICES = build_services(repository)
    return _SERVICES


def drain_notification_outbox() -> int:
    if _SERVICES is None:
        return 0
    return _SERVICES.fanout.retry_pending()


def reset_negotiation_services_for_tests() -> None:
    global _SERVICES
    _SERVICES = None


def assert_lifecycle_enabled() -> None:
    if not negotiation_config.lifecycle_enabled():
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="NEGOTIATION_LIFECYCLE_DISABLED",
        )


def get_caller(
    caller_id: Annotated[
        Optional[str],
        Header(
            alias="X-Caller-Id",
            description="Caller identity resolved by the upstream identity gateway.",
            examples=["usr_sponsor_01"],
        ),
    ] = None,
    caller_role: Annotated[
        Optional[PartyRole],
        Header(
            alias="X-Caller-Role",
            description="Caller role resolved by the upstream identity gateway.",
            examples=["SPONSOR"],
        ),
    ] = None,
) -> CallerContext:
    if not caller_id or not caller_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="CALLER_IDENTITY_REQUIRED",
        )
    return CallerContext(user_id=caller_id.strip(), role=caller_role)


Services = Annotated[NegotiationServices, Depends(get_negotiation_services)]
Caller = Annotated[CallerContext, Depends(get_caller)]
ProposalId = Annotated[
    str, Path(description="Proposal identifier.", examples=["prp_0a1b2c3d4e5f"])
]


def _resolve_role(role: Optional[PartyRole], caller: CallerContext) -> PartyRole:
    resolved = role or caller.role
    if resolved is None:
        raise HTTPException(
            status_code=HTTP_422_UNPROCESSABLE,
            detail="ROLE_REQUIRED: pass role or X-Caller-Role",
        )
    return resolved


@router.post(
    "/proposals",
    response_model=ProposalRecord,
    status_code=status.HTTP_201_CREATED,
    summary="Create Proposal",
    description=(
        "Creates a pending proposal from the calling sponsor to a creator and notifies the "
        "creator."
    ),
)
def create_proposal(
    payload: ProposalCreateRequest, caller: Caller, services: Services
) -> ProposalRecord:
    assert_lifecycle_enabled()
    try:
        return services.workflow.create_proposal(caller=caller, payload=payload)
    except ProposalLifecycleError as exc:
        raise_negotiation_http_exception(exc)


@router.get(
    "/proposals",
    response_model=ProposalListResponse,
    status_code=status.HTTP_200_OK,
    summary="List Proposals",
    description="Lists sent (SPONSOR) or received (CREATOR) proposals with offset pagination.",
)
def list_proposals(
    caller: Caller,
    services: Services,
    role: Annotated[
        Optional[PartyRole],
        Query(description="Which side of the negotiation to list.", examples=["CREATOR"]),
    ] = None,
    proposal_status: Annotated[
        Optional[ProposalStatus],
        Query(alias="status", description="Status filter.", examples=["PENDING"]),
    ] = None,
    search: Annotated[
        Optional[str],
        Query(description="Case-insensitive subject/message search.", examples=["spring"]),
    ] = None,
    sort: Annotated[ProposalSort, Query(description="Sort order.")] = "newest",
    limit: Annotated[int, Query(ge=1, le=100, description="Page size.")] = 10,
    offset: Annotated[int, Query(ge=0, description="Rows to skip.")] = 0,
) -> ProposalListResponse:
    assert_lifecycle_enabled()
    try:
        return services.listing.list_proposals(
            user_id=caller.user_id,
            role=_resolve_role(role, caller),
            status=proposal_status,
            search=search,
            sort=sort,
            limit=limit,
            offset=offset,
        )
    except ProposalLifecycleError as exc:
        raise_negotiation_http_exception(exc)


@router.get(
    "/proposals/attention",
    response_model=List[ProposalSummary],
    status_code=status.HTTP_200_OK,
    summary="List Proposals Needing Attention",
    description="Returns proposals ordered by priority score, highest first.",
)
def list_attention_queue(
    caller: Caller,
    services: Services,
    role: Annotated[Optional[PartyRole], Query(description="Negotiation side.")] = None,
    limit: Annotated[int, Query(ge=1, le=100, description="Maximum rows.")] = 10,
) -> List[ProposalSummary]:
    assert_lifecycle_enabled()
    try:
        return services.listing.attention_queue(
            user_id=caller.user_id, role=_resolve_role(role, caller), limit=limit
        )
    except ProposalLifecycleError as exc:
        raise_negotiation_http_exception(exc)


@router.get(
    "/proposals/stats",
    response_model=ProposalStats,
    status_code=status.HTTP_200_OK,
    summary="Get Proposal Statistics",
    description="Sent/received totals, decision counts and response rate for the caller.",
)
def get_proposal_stats(caller: Caller, services: Services) -> ProposalStats:
    assert_lifecycle_enabled()
    try:
        return services.listing.proposal_stats(user_id=caller.user_id)
    except ProposalLifecycleError as exc:
        raise_negotiation_http_exception(exc)


@router.get(
    "/proposals/{proposal_id}",
    response_model=ProposalRecord,
    status_code=status.HTTP_200_OK,
    summary="Get Proposal",
)
def get_proposal(proposal_id: ProposalId, caller: Caller, services: Services) -> ProposalRecord:
    assert_lifecycle_enabled()
    try:
        return services.workflow.get_proposal(proposal_id=proposal_id, caller=caller)
    except ProposalLifecycleError as exc:
        raise_negotiation_http_exception(exc)


@router.patch(
    "/proposals/{proposal_id}",
    response_model=ProposalRecord,
    status_code=status.HTTP_200_OK,
    summary="Edit Pending Proposal",
    description="Sponsor-only edit of subject, message, budget range or timeline while pending.",
)
def edit_proposal(
    proposal_id: ProposalId,
    patch: ProposalEditRequest,
    caller: Caller,
    services: Services,
) -> ProposalRecord:
    assert_lifecycle_enabled()
    try:
        return services.workflow.edit_proposal(proposal_id=proposal_id, caller=caller, patch=patch)
    except ProposalLifecycleError as exc:
        raise_negotiation_http_exception(exc)


@router.post(
    "/proposals/{proposal_id}/response",
    response_model=ProposalRecord,
    status_code=status.HTTP_200_OK,
    summary="Respond To Proposal",
    description="Creator-only accept or reject of a pending proposal; notifies the sponsor.",
)
def respond_to_proposal(
    proposal_id: ProposalId,
    payload: ProposalRespondRequest,
    caller: Caller,
    services: Services,
) -> ProposalRecord:
    assert_lifecycle_enabled()
    try:
        return services.workflow.respond_to_proposal(
            proposal_id=proposal_id, caller=caller, payload=payload
        )
    except ProposalLifecycleError as exc:
        raise_negotiation_http_exception(exc)


@router.post(
    "/proposals/{proposal_id}/archive",
    response_model=ProposalRecord,
    status_code=status.HTTP_200_OK,
    summary="Archive Answered Proposal",
)
def archive_proposal(
    proposal_id: ProposalId, caller: Caller, services: Services
) -> ProposalRecord:
    assert_lifecycle_enabled()
    try:
        return services.workflow.archive_proposal(proposal_id=proposal_id, caller=caller)
    except ProposalLifecycleError as exc:
        raise_negotiation_http_exception(exc)


@router.delete(
    "/proposals/{proposal_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete Proposal",
    description="Sponsor-only removal; the proposal disappears from every view.",
)
def delete_proposal(proposal_id: ProposalId, caller: Caller, services: Services) -> Response:
    assert_lifecycle_enabled()
    try:
        services.workflow.delete_proposal(proposal_id=proposal_id, caller=caller)
    except ProposalLifecycleError as exc:
        raise_negotiation_http_exception(exc)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
