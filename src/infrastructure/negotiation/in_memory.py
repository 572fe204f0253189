from copy import deepcopy
from datetime import datetime
from threading import Lock
from typing import Optional

from src.core.negotiation.listing import matches_search
from src.core.negotiation.models import (
    NotificationRecord,
    NotificationType,
    PartyRole,
    ProposalMessageRecord,
    ProposalRecord,
    ProposalSort,
    ProposalStatus,
)
from src.core.negotiation.repository import NegotiationRepository


class InMemoryNegotiationRepository(NegotiationRepository):
    def __init__(self) -> None:
        self._lock = Lock()
        self._proposals: dict[str, ProposalRecord] = {}
        self._messages: dict[str, list[ProposalMessageRecord]] = {}
        self._notifications: dict[str, NotificationRecord] = {}

    def create_proposal(self, proposal: ProposalRecord) -> None:
        with self._lock:
            self._proposals[proposal.proposal_id] = deepcopy(proposal)

    def get_proposal(self, *, proposal_id: str) -> Optional[ProposalRecord]:
        with self._lock:
            proposal = self._proposals.get(proposal_id)
            return deepcopy(proposal) if proposal is not None else None

    def compare_and_set_proposal(
        self, *, proposal: ProposalRecord, expected_version: int
    ) -> bool:
        with self._lock:
            stored = self._proposals.get(proposal.proposal_id)
            if stored is None or stored.removed_at is not None:
                return False
            if stored.version != expected_version:
                return False
            self._proposals[proposal.proposal_id] = deepcopy(proposal)
            return True

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
    ) -> list[ProposalRecord]:
        rows = self._filter_proposals(user_id=user_id, role=role, status=status, search=search)
        if sort == "oldest":
            rows = sorted(rows, key=lambda x: (x.created_at, x.proposal_id))
        elif sort == "updated":
            rows = sorted(rows, key=lambda x: (x.updated_at, x.proposal_id), reverse=True)
        else:
            rows = sorted(rows, key=lambda x: (x.created_at, x.proposal_id), reverse=True)
        page = rows[offset:] if limit is None else rows[offset : offset + limit]
        return [deepcopy(row) for row in page]

    def count_proposals(
        self,
        *,
        user_id: str,
        role: PartyRole,
        status: Optional[ProposalStatus],
        search: Optional[str],
    ) -> int:
        return len(self._filter_proposals(user_id=user_id, role=role, status=status, search=search))

    def create_message(self, message: ProposalMessageRecord) -> None:
        with self._lock:
            self._messages.setdefault(message.proposal_id, []).append(deepcopy(message))

    def list_messages(
        self, *, proposal_id: str, limit: int, offset: int
    ) -> list[ProposalMessageRecord]:
        with self._lock:
            rows = list(self._messages.get(proposal_id, []))
        rows = sorted(rows, key=lambda x: (x.created_at, x.message_id), reverse=True)
        return [deepcopy(row) for row in rows[offset : offset + limit]]

    def count_messages(self, *, proposal_id: str) -> int:
        with self._lock:
            return len(self._messages.get(proposal_id, []))

    def count_unread_messages(self, *, proposal_id: str, viewer_id: str) -> int:
        with self._lock:
            return sum(
                1
                for message in self._messages.get(proposal_id, [])
                if message.sender_id != viewer_id and not message.is_read
            )

    def count_unread_messages_by_proposal(
        self, *, proposal_ids: list[str], viewer_id: str
    ) -> dict[str, int]:
        counts = {
            proposal_id: self.count_unread_messages(proposal_id=proposal_id, viewer_id=viewer_id)
            for proposal_id in proposal_ids
        }
        return {proposal_id: count for proposal_id, count in counts.items() if count}

    def mark_messages_read(self, *, proposal_id: str, viewer_id: str) -> int:
        updated = 0
        with self._lock:
            for message in self._messages.get(proposal_id, []):
                if message.sender_id != viewer_id and not message.is_read:
                    message.is_read = True
                    updated += 1
        return updated

    def create_notification(self, notification: NotificationRecord) -> None:
        with self._lock:
            self._notifications[notification.notification_id] = deepcopy(notification)

    def get_notification(self, *, notification_id: str) -> Optional[NotificationRecord]:
        with self._lock:
            notification = self._notifications.get(notification_id)
            return deepcopy(notification) if notification is not None else None

    def mark_notification_read(
        self, *, notification_id: str, read_at: datetime
    ) -> Optional[NotificationRecord]:
        with self._lock:
            notification = self._notifications.get(notification_id)
            if notification is None:
                return None
            if not notification.is_read:
                notification.is_read = True
                notification.read_at = read_at
            return deepcopy(notification)

    def list_notifications(
        self,
        *,
        user_id: str,
        notification_type: Optional[NotificationType],
        is_read: Optional[bool],
        limit: int,
        offset: int,
    ) -> list[NotificationRecord]:
        rows = self._filter_notifications(
            user_id=user_id, notification_type=notification_type, is_read=is_read
        )
        rows = sorted(rows, key=lambda x: (x.created_at, x.notification_id), reverse=True)
        return [deepcopy(row) for row in rows[offset : offset + limit]]

    def count_notifications(
        self,
        *,
        user_id: str,
        notification_type: Optional[NotificationType],
        is_read: Optional[bool],
    ) -> int:
        return len(
            self._filter_notifications(
                user_id=user_id, notification_type=notification_type, is_read=is_read
            )
        )

    def _filter_proposals(
        self,
        *,
        user_id: str,
        role: PartyRole,
        status: Optional[ProposalStatus],
        search: Optional[str],
    ) -> list[ProposalRecord]:
        with self._lock:
            rows = [row for row in self._proposals.values() if row.removed_at is None]

        if role == "SPONSOR":
            rows = [row for row in rows if row.sponsor_id == user_id]
        else:
            rows = [row for row in rows if row.creator_id == user_id]
        if status is not None:
            rows = [row for row in rows if row.status == status]
        if search:
            rows = [
                row
                for row in rows
                if matches_search(row.subject, search) or matches_search(row.message, search)
            ]
        return rows

    def _filter_notifications(
        self,
        *,
        user_id: str,
        notification_type: Optional[NotificationType],
        is_read: Optional[bool],
    ) -> list[NotificationRecord]:
        with self._lock:
            rows = [row for row in self._notifications.values() if row.user_id == user_id]
        if notification_type is not None:
            rows = [row for row in rows if row.type == notification_type]
        if is_read is not None:
            rows = [row for row in rows if row.is_read == is_read]
        return rows
