from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from src.core.negotiation.models import (
    PartyRole,
    ProposalListResponse,
    ProposalRecord,
    ProposalSort,
    ProposalStats,
    ProposalStatus,
    ProposalSummary,
)
from src.core.negotiation.repository import NegotiationRepository
from src.core.negotiation.validation import sanitize_text

STATUS_PRIORITY: dict[ProposalStatus, int] = {
    "PENDING": 100,
    "ACCEPTED": 50,
    "REJECTED": 10,
    "ARCHIVED": 1,
}
UNREAD_PRIORITY_BONUS = 200
UPDATED_WITHIN_DAY_BONUS = 50
UPDATED_WITHIN_WEEK_BONUS = 20
SUMMARY_MAX_LENGTH = 100
NEGOTIABLE_BUDGET_LABEL = "Negotiable"


def summarize(text: str, max_len: int = SUMMARY_MAX_LENGTH) -> str:
    content = sanitize_text(text)
    if len(content) <= max_len:
        return content
    return content[:max_len] + "..."


def format_budget_range(budget_range: Optional[str]) -> str:
    if not budget_range or not budget_range.strip():
        return NEGOTIABLE_BUDGET_LABEL
    return budget_range


def proposal_priority(proposal: ProposalRecord, unread_count: int, *, now: datetime) -> int:
    priority = STATUS_PRIORITY[proposal.status]
    if unread_count > 0:
        priority += UNREAD_PRIORITY_BONUS

    days_since_update = (now - proposal.updated_at) // timedelta(days=1)
    if days_since_update <= 1:
        priority += UPDATED_WITHIN_DAY_BONUS
    elif days_since_update <= 7:
        priority += UPDATED_WITHIN_WEEK_BONUS
    return priority


def search_text(
    proposal: ProposalRecord,
    *,
    sponsor_name: Optional[str] = None,
    creator_name: Optional[str] = None,
    content_title: Optional[str] = None,
) -> str:
    parts = [
        proposal.subject,
        proposal.message,
        sponsor_name,
        creator_name,
        content_title,
        proposal.budget_range,
        proposal.timeline,
    ]
    return " ".join(part for part in parts if part).lower()


def matches_search(text: str, query: Optional[str]) -> bool:
    if query is None or not query.strip():
        return True
    return query.strip().lower() in text.lower()


class ProposalListingService:
    def __init__(
        self,
        *,
        repository: NegotiationRepository,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._repository = repository
        self._clock = clock or _utc_now

    def list_proposals(
        self,
        *,
        user_id: str,
        role: PartyRole,
        status: Optional[ProposalStatus] = None,
        search: Optional[str] = None,
        sort: ProposalSort = "newest",
        limit: int = 10,
        offset: int = 0,
    ) -> ProposalListResponse:
        normalized_search = search.strip() if search and search.strip() else None
        rows = self._repository.list_proposals(
            user_id=user_id,
            role=role,
            status=status,
            search=normalized_search,
            sort=sort,
            limit=limit,
            offset=offset,
        )
        total_count = self._repository.count_proposals(
            user_id=user_id,
            role=role,
            status=status,
            search=normalized_search,
        )
        return ProposalListResponse(
            items=self._summaries(rows, viewer_id=user_id),
            total_count=total_count,
            has_more=offset + limit < total_count,
        )

    def attention_queue(
        self, *, user_id: str, role: PartyRole, limit: int = 10
    ) -> list[ProposalSummary]:
        rows = self._repository.list_proposals(
            user_id=user_id,
            role=role,
            status=None,
            search=None,
            sort="updated",
            limit=None,
            offset=0,
        )
        summaries = self._summaries(rows, viewer_id=user_id)
        summaries.sort(key=lambda item: (item.priority, item.updated_at), reverse=True)
        return summaries[:limit]

    def proposal_stats(self, *, user_id: str) -> ProposalStats:
        sent = self._count_by_status(user_id=user_id, role="SPONSOR")
        received = self._count_by_status(user_id=user_id, role="CREATOR")
        total_sent = sum(sent.values())
        total_received = sum(received.values())
        answered_received = received["ACCEPTED"] + received["REJECTED"]
        response_rate = (
            round(answered_received / total_received * 100) if total_received > 0 else 0
        )
        return ProposalStats(
            total_sent=total_sent,
            total_received=total_received,
            pending_sent=sent["PENDING"],
            pending_received=received["PENDING"],
            accepted=sent["ACCEPTED"] + received["ACCEPTED"],
            rejected=sent["REJECTED"] + received["REJECTED"],
            response_rate=response_rate,
        )

    def _count_by_status(self, *, user_id: str, role: PartyRole) -> dict[ProposalStatus, int]:
        return {
            status: self._repository.count_proposals(
                user_id=user_id, role=role, status=status, search=None
            )
            for status in STATUS_PRIORITY
        }

    def _summaries(
        self, rows: list[ProposalRecord], *, viewer_id: str
    ) -> list[ProposalSummary]:
        unread = self._repository.count_unread_messages_by_proposal(
            proposal_ids=[row.proposal_id for row in rows], viewer_id=viewer_id
        )
        now = self._clock()
        return [
            ProposalSummary(
                **row.model_dump(),
                unread_messages_count=unread.get(row.proposal_id, 0),
                priority=proposal_priority(row, unread.get(row.proposal_id, 0), now=now),
                summary=summarize(row.message),
                budget_range_display=format_budget_range(row.budget_range),
            )
            for row in rows
        ]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)
