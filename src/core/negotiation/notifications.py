import logging
import uuid
from datetime import datetime, timezone
from threading import Lock
from typing import Callable, Iterable, Optional

from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.wait import wait_base

from src.core.negotiation.errors import (
    ProposalAuthorizationError,
    ProposalNotFoundError,
    ProposalPersistenceError,
)
from src.core.negotiation.models import (
    CallerContext,
    MessagePostedEvent,
    NotificationEvent,
    NotificationListResponse,
    NotificationRecord,
    NotificationType,
    ProposalCreatedEvent,
    ProposalRespondedEvent,
)
from src.core.negotiation.repository import NegotiationRepository

logger = logging.getLogger(__name__)

DEFAULT_MAX_DELIVERY_ATTEMPTS = 3


def build_notification(
    event: NotificationEvent, *, notification_id: str, created_at: datetime
) -> NotificationRecord:
    """Render the single notification record an event produces for its recipient.

    Titles and bodies are fixed templates; the only user-authored text that
    reaches a notification is the short sanitized excerpt carried on the event.
    """
    notification_type: NotificationType
    if isinstance(event, ProposalCreatedEvent):
        notification_type = "NEW_PROPOSAL"
        title = "New proposal received"
        content = f'You received a new proposal: "{event.subject_excerpt}"'
    elif isinstance(event, ProposalRespondedEvent):
        if event.decision == "ACCEPTED":
            notification_type = "PROPOSAL_ACCEPTED"
            title = "Proposal accepted"
            content = f'Your proposal "{event.subject_excerpt}" was accepted.'
        else:
            notification_type = "PROPOSAL_REJECTED"
            title = "Proposal declined"
            content = f'Your proposal "{event.subject_excerpt}" was declined.'
    elif isinstance(event, MessagePostedEvent):
        notification_type = "NEW_MESSAGE"
        title = "New message"
        content = f'New message on your proposal: "{event.message_excerpt}"'
    else:
        raise TypeError(f"unsupported notification event: {type(event).__name__}")

    return NotificationRecord(
        notification_id=notification_id,
        user_id=event.recipient_id,
        type=notification_type,
        title=title,
        content=content,
        proposal_id=event.proposal_id,
        content_id=event.content_id,
        is_read=False,
        read_at=None,
        created_at=created_at,
    )


# Transient store failures: retried with backoff, then parked in the outbox.
TRANSIENT_WRITE_ERRORS: tuple[type[BaseException], ...] = (
    ProposalPersistenceError,
    ConnectionError,
    TimeoutError,
)


class NotificationFanout:
    def __init__(
        self,
        *,
        repository: NegotiationRepository,
        max_attempts: int = DEFAULT_MAX_DELIVERY_ATTEMPTS,
        retry_wait: Optional[wait_base] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._repository = repository
        self._max_attempts = max(1, max_attempts)
        self._clock = clock or _utc_now
        self._lock = Lock()
        self._pending: list[NotificationRecord] = []
        self._retrying = Retrying(
            stop=stop_after_attempt(self._max_attempts),
            wait=retry_wait or wait_exponential(multiplier=0.1, min=0.1, max=2),
            retry=retry_if_exception_type(TRANSIENT_WRITE_ERRORS),
            after=self._log_failed_attempt,
            reraise=True,
        )

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def emit(self, event: NotificationEvent) -> Optional[NotificationRecord]:
        self.retry_pending()
        notification = build_notification(
            event,
            notification_id=f"ntf_{uuid.uuid4().hex[:12]}",
            created_at=self._clock(),
        )
        if self._deliver(notification):
            return notification
        with self._lock:
            self._pending.append(notification)
        return None

    def emit_all(self, events: Iterable[NotificationEvent]) -> list[NotificationRecord]:
        delivered = []
        for event in events:
            notification = self.emit(event)
            if notification is not None:
                delivered.append(notification)
        return delivered

    def retry_pending(self) -> int:
        """Write parked notifications oldest first, one attempt each.

        Stops at the first transient failure so an ongoing outage costs a
        single store call; whatever is left stays parked in order.
        """
        with self._lock:
            parked, self._pending = self._pending, []
        delivered = 0
        for index, notification in enumerate(parked):
            try:
                self._repository.create_notification(notification)
            except TRANSIENT_WRITE_ERRORS:
                with self._lock:
                    self._pending = parked[index:] + self._pending
                break
            delivered += 1
        if delivered:
            logger.info(
                "notification.outbox_drained",
                extra={"extra_fields": {"delivered": delivered}},
            )
        return delivered

    def mark_read(self, *, notification_id: str, caller: CallerContext) -> NotificationRecord:
        notification = self._repository.get_notification(notification_id=notification_id)
        if notification is None:
            raise ProposalNotFoundError("notification not found", code="NOTIFICATION_NOT_FOUND")
        if not caller.user_id or notification.user_id != caller.user_id:
            raise ProposalAuthorizationError(
                "only the recipient can mark this notification as read",
                code="RECIPIENT_REQUIRED",
            )
        if notification.is_read:
            return notification
        updated = self._repository.mark_notification_read(
            notification_id=notification_id, read_at=self._clock()
        )
        if updated is None:
            raise ProposalNotFoundError("notification not found", code="NOTIFICATION_NOT_FOUND")
        return updated

    def list_by_user(
        self,
        *,
        caller: CallerContext,
        notification_type: Optional[NotificationType] = None,
        is_read: Optional[bool] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> NotificationListResponse:
        if not caller.user_id:
            raise ProposalAuthorizationError(
                "an authenticated caller is required", code="CALLER_REQUIRED"
            )
        items = self._repository.list_notifications(
            user_id=caller.user_id,
            notification_type=notification_type,
            is_read=is_read,
            limit=limit,
            offset=offset,
        )
        total_count = self._repository.count_notifications(
            user_id=caller.user_id, notification_type=notification_type, is_read=is_read
        )
        unread_count = self._repository.count_notifications(
            user_id=caller.user_id, notification_type=None, is_read=False
        )
        return NotificationListResponse(
            items=items,
            total_count=total_count,
            unread_count=unread_count,
            has_more=offset + limit < total_count,
        )

    def _deliver(self, notification: NotificationRecord) -> bool:
        retrying = self._retrying.copy()
        try:
            retrying(self._repository.create_notification, notification)
        except TRANSIENT_WRITE_ERRORS:
            logger.error(
                "notification.parked",
                exc_info=True,
                extra={"extra_fields": _notification_fields(notification)},
            )
            return False
        return True

    def _log_failed_attempt(self, retry_state: RetryCallState) -> None:
        notification = retry_state.args[0]
        logger.warning(
            "notification.write_failed",
            exc_info=retry_state.outcome.exception(),
            extra={
                "extra_fields": {
                    **_notification_fields(notification),
                    "attempt": retry_state.attempt_number,
                    "max_attempts": self._max_attempts,
                }
            },
        )


def _notification_fields(notification: NotificationRecord) -> dict[str, object]:
    return {
        "notification_id": notification.notification_id,
        "notification_type": notification.type,
        "proposal_id": notification.proposal_id,
    }


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)
