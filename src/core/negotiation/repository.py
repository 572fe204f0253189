from datetime import datetime
from typing import Optional, Protocol

from src.core.negotiation.models import (
    NotificationRecord,
    NotificationType,
    PartyRole,
    ProposalMessageRecord,
    ProposalRecord,
    ProposalSort,
    ProposalStatus,
)


class NegotiationRepository(Protocol):
    def create_proposal(self, proposal: ProposalRecord) -> None: ...

    def get_proposal(self, *, proposal_id: str) -> Optional[ProposalRecord]: ...

    def compare_and_set_proposal(
        self, *, proposal: ProposalRecord, expected_version: int
    ) -> bool:
        """Write ``proposal`` only if the stored row is still at ``expected_version``
        and is not removed. Returns False when the condition no longer holds."""
        ...

    def list_proposals(
        self,
        *,
        user_id: str,
        role: PartyRole,
        status: Optional[ProposalStatus],
        search: Optional[str],
        sort: ProposalSort,
        limit: Optional[int],
        offset: int,
    ) -> list[ProposalRecord]: ...

    def count_proposals(
        self,
        *,
        user_id: str,
        role: PartyRole,
        status: Optional[ProposalStatus],
        search: Optional[str],
    ) -> int: ...

    def create_message(self, message: ProposalMessageRecord) -> None: ...

    def list_messages(
        self, *, proposal_id: str, limit: int, offset: int
    ) -> list[ProposalMessageRecord]: ...

    def count_messages(self, *, proposal_id: str) -> int: ...

    def count_unread_messages(self, *, proposal_id: str, viewer_id: str) -> int: ...

    def count_unread_messages_by_proposal(
        self, *, proposal_ids: list[str], viewer_id: str
    ) -> dict[str, int]:
        """Unread counts for ``viewer_id`` keyed by proposal; proposals with none are omitted."""
        ...

    def mark_messages_read(self, *, proposal_id: str, viewer_id: str) -> int: ...

    def create_notification(self, notification: NotificationRecord) -> None: ...

    def get_notification(self, *, notification_id: str) -> Optional[NotificationRecord]: ...

    def mark_notification_read(
        self, *, notification_id: str, read_at: datetime
    ) -> Optional[NotificationRecord]: ...

    def list_notifications(
        self,
        *,
        user_id: str,
        notification_type: Optional[NotificationType],
        is_read: Optional[bool],
        limit: int,
        offset: int,
    ) -> list[NotificationRecord]: ...

    def count_notifications(
        self,
        *,
        user_id: str,
        notification_type: Optional[NotificationType],
        is_read: Optional[bool],
    ) -> int: ...
