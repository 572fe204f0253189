from typing import Annotated, Optional

from fastapi import APIRouter, Path, Query, status

from src.api.routers import proposals as shared
from src.api.routers.negotiation_http_errors import raise_negotiation_http_exception
from src.core.negotiation import (
    NotificationListResponse,
    NotificationRecord,
    ProposalLifecycleError,
)
from src.core.negotiation.models import NotificationType

router = APIRouter(tags=["Proposal Notifications"])


@router.get(
    "/notifications",
    response_model=NotificationListResponse,
    status_code=status.HTTP_200_OK,
    summary="List Notifications",
    description=(
        "Lists the caller's notifications newest first. `unread_count` always covers every "
        "unread notification of the caller, independent of the filters."
    ),
)
def list_notifications(
    caller: shared.Caller,
    services: shared.Services,
    notification_type: Annotated[
        Optional[NotificationType],
        Query(alias="type", description="Notification type filter.", examples=["NEW_MESSAGE"]),
    ] = None,
    is_read: Annotated[Optional[bool], Query(description="Read-state filter.")] = None,
    limit: Annotated[int, Query(ge=1, le=100, description="Page size.")] = 20,
    offset: Annotated[int, Query(ge=0, description="Rows to skip.")] = 0,
) -> NotificationListResponse:
    shared.assert_lifecycle_enabled()
    try:
        return services.fanout.list_by_user(
            caller=caller,
            notification_type=notification_type,
            is_read=is_read,
            limit=limit,
            offset=offset,
        )
    except ProposalLifecycleError as exc:
        raise_negotiation_http_exception(exc)


@router.post(
    "/notifications/{notification_id}/read",
    response_model=NotificationRecord,
    status_code=status.HTTP_200_OK,
    summary="Mark Notification Read",
    description="Recipient-only; marking an already read notification is a no-op.",
)
def mark_notification_read(
    notification_id: Annotated[
        str, Path(description="Notification identifier.", examples=["ntf_0a1b2c3d4e5f"])
    ],
    caller: shared.Caller,
    services: shared.Services,
) -> NotificationRecord:
    shared.assert_lifecycle_enabled()
    try:
        return services.fanout.mark_read(notification_id=notification_id, caller=caller)
    except ProposalLifecycleError as exc:
        raise_negotiation_http_exception(exc)
