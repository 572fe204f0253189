from typing import Annotated

from fastapi import Query, status

from src.api.routers import proposals as shared
from src.api.routers.negotiation_http_errors import raise_negotiation_http_exception
from src.core.negotiation import (
    MessageListResponse,
    MessagePostRequest,
    ProposalLifecycleError,
    ProposalMessageRecord,
)


@shared.router.post(
    "/proposals/{proposal_id}/messages",
    response_model=ProposalMessageRecord,
    status_code=status.HTTP_201_CREATED,
    summary="Post Proposal Message",
    description=(
        "Appends a message to the proposal thread and notifies the counterparty. Either party "
        "may post in any status; removed proposals return 404."
    ),
)
def post_proposal_message(
    proposal_id: shared.ProposalId,
    payload: MessagePostRequest,
    caller: shared.Caller,
    services: shared.Services,
) -> ProposalMessageRecord:
    shared.assert_lifecycle_enabled()
    try:
        return services.threads.post_message(
            proposal_id=proposal_id,
            caller=caller,
            content=payload.content,
            attachment=payload.attachment,
        )
    except ProposalLifecycleError as exc:
        raise_negotiation_http_exception(exc)


@shared.router.get(
    "/proposals/{proposal_id}/messages",
    response_model=MessageListResponse,
    status_code=status.HTTP_200_OK,
    summary="List Proposal Messages",
    description=(
        "Returns the thread newest first. With `mark_as_read=true` the counterparty's "
        "messages are marked read before the page is assembled."
    ),
)
def list_proposal_messages(
    proposal_id: shared.ProposalId,
    caller: shared.Caller,
    services: shared.Services,
    limit: Annotated[int, Query(ge=1, le=100, description="Page size.")] = 20,
    offset: Annotated[int, Query(ge=0, description="Rows to skip.")] = 0,
    mark_as_read: Annotated[
        bool, Query(description="Mark the counterparty's messages as read.")
    ] = False,
) -> MessageListResponse:
    shared.assert_lifecycle_enabled()
    try:
        return services.threads.list_messages(
            proposal_id=proposal_id,
            caller=caller,
            limit=limit,
            offset=offset,
            mark_as_read=mark_as_read,
        )
    except ProposalLifecycleError as exc:
        raise_negotiation_http_exception(exc)
