import uuid
from datetime import datetime, timezone
from typing import Callable, Optional

from src.core.negotiation.errors import ProposalAuthorizationError
from src.core.negotiation.listing import summarize
from src.core.negotiation.models import (
    CallerContext,
    MessageAttachment,
    MessageListResponse,
    MessagePostedEvent,
    MessagePostResult,
    ProposalMessageRecord,
    ProposalRecord,
)
from src.core.negotiation.notifications import NotificationFanout
from src.core.negotiation.permissions import can_message, counterparty_id, party_role
from src.core.negotiation.repository import NegotiationRepository
from src.core.negotiation.service import load_active_proposal
from src.core.negotiation.validation import (
    clean_attachment,
    sanitize_text,
    validate_thread_message,
)

MESSAGE_EXCERPT_LENGTH = 60


def new_message(
    *,
    message_id: str,
    proposal: ProposalRecord,
    sender_id: Optional[str],
    content: str,
    attachment: Optional[MessageAttachment],
    now: datetime,
) -> MessagePostResult:
    role = party_role(proposal, sender_id)
    if role is None or not can_message(proposal, sender_id):
        raise ProposalAuthorizationError(
            "only a party to this proposal can post messages", code="PARTY_REQUIRED"
        )
    cleaned = sanitize_text(content)
    validate_thread_message(cleaned)
    cleaned_attachment = clean_attachment(attachment)

    message = ProposalMessageRecord(
        message_id=message_id,
        proposal_id=proposal.proposal_id,
        sender_id=sender_id,
        content=cleaned,
        attachment=cleaned_attachment,
        is_read=False,
        created_at=now,
    )
    event = MessagePostedEvent(
        proposal_id=proposal.proposal_id,
        actor_id=sender_id,
        recipient_id=counterparty_id(proposal, role),
        content_id=proposal.content_id,
        message_excerpt=summarize(cleaned, MESSAGE_EXCERPT_LENGTH),
        occurred_at=now,
    )
    return MessagePostResult(message=message, events=[event])


class ProposalThreadService:
    def __init__(
        self,
        *,
        repository: NegotiationRepository,
        fanout: NotificationFanout,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._repository = repository
        self._fanout = fanout
        self._clock = clock or _utc_now

    def post_message(
        self,
        *,
        proposal_id: str,
        caller: CallerContext,
        content: str,
        attachment: Optional[MessageAttachment] = None,
    ) -> ProposalMessageRecord:
        proposal = load_active_proposal(self._repository, proposal_id)
        result = new_message(
            message_id=f"pmsg_{uuid.uuid4().hex[:12]}",
            proposal=proposal,
            sender_id=caller.user_id,
            content=content,
            attachment=attachment,
            now=self._clock(),
        )
        self._repository.create_message(result.message)
        self._fanout.emit_all(result.events)
        return result.message

    def list_messages(
        self,
        *,
        proposal_id: str,
        caller: CallerContext,
        limit: int = 20,
        offset: int = 0,
        mark_as_read: bool = False,
    ) -> MessageListResponse:
        proposal = self._load_thread(proposal_id=proposal_id, caller=caller)
        if mark_as_read:
            self._repository.mark_messages_read(
                proposal_id=proposal.proposal_id, viewer_id=caller.user_id
            )
        items = self._repository.list_messages(
            proposal_id=proposal.proposal_id, limit=limit, offset=offset
        )
        total_count = self._repository.count_messages(proposal_id=proposal.proposal_id)
        return MessageListResponse(
            items=items,
            total_count=total_count,
            unread_count=self._repository.count_unread_messages(
                proposal_id=proposal.proposal_id, viewer_id=caller.user_id
            ),
            has_more=offset + limit < total_count,
        )

    def unread_count(self, *, proposal_id: str, caller: CallerContext) -> int:
        proposal = self._load_thread(proposal_id=proposal_id, caller=caller)
        return self._repository.count_unread_messages(
            proposal_id=proposal.proposal_id, viewer_id=caller.user_id
        )

    def _load_thread(self, *, proposal_id: str, caller: CallerContext) -> ProposalRecord:
        proposal = load_active_proposal(self._repository, proposal_id)
        if not can_message(proposal, caller.user_id):
            raise ProposalAuthorizationError(
                "only a party to this proposal can read its thread", code="PARTY_REQUIRED"
            )
        return proposal


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)
