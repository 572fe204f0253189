import logging
import uuid
from datetime import datetime, timezone
from typing import Callable, Optional

from src.core.negotiation.errors import (
    ProposalAuthorizationError,
    ProposalNotFoundError,
    ProposalStateConflictError,
)
from src.core.negotiation.models import (
    CallerContext,
    ProposalCreateRequest,
    ProposalEditRequest,
    ProposalMutationResult,
    ProposalRecord,
    ProposalRespondRequest,
)
from src.core.negotiation.notifications import NotificationFanout
from src.core.negotiation.permissions import party_role
from src.core.negotiation.repository import NegotiationRepository
from src.core.negotiation.workflow import (
    apply_archive,
    apply_edit,
    apply_removal,
    apply_response,
    new_proposal,
)

logger = logging.getLogger(__name__)


def load_active_proposal(repository: NegotiationRepository, proposal_id: str) -> ProposalRecord:
    proposal = repository.get_proposal(proposal_id=proposal_id)
    if proposal is None or proposal.removed_at is not None:
        raise ProposalNotFoundError("proposal not found", code="PROPOSAL_NOT_FOUND")
    return proposal


class ProposalWorkflowService:
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

    def create_proposal(
        self, *, caller: CallerContext, payload: ProposalCreateRequest
    ) -> ProposalRecord:
        result = new_proposal(
            proposal_id=f"prp_{uuid.uuid4().hex[:12]}",
            caller=caller,
            request=payload,
            now=self._clock(),
        )
        self._repository.create_proposal(result.proposal)
        logger.info(
            "proposal.created",
            extra={
                "extra_fields": {
                    "proposal_id": result.proposal.proposal_id,
                    "actor_id": caller.user_id,
                }
            },
        )
        self._fanout.emit_all(result.events)
        return result.proposal

    def get_proposal(self, *, proposal_id: str, caller: CallerContext) -> ProposalRecord:
        proposal = load_active_proposal(self._repository, proposal_id)
        if party_role(proposal, caller.user_id) is None:
            raise ProposalAuthorizationError(
                "only a party to this proposal can view it", code="PARTY_REQUIRED"
            )
        return proposal

    def edit_proposal(
        self, *, proposal_id: str, caller: CallerContext, patch: ProposalEditRequest
    ) -> ProposalRecord:
        return self._transition(
            proposal_id=proposal_id,
            action="edited",
            transition=lambda current: apply_edit(
                proposal=current, caller_id=caller.user_id, patch=patch, now=self._clock()
            ),
        )

    def respond_to_proposal(
        self, *, proposal_id: str, caller: CallerContext, payload: ProposalRespondRequest
    ) -> ProposalRecord:
        return self._transition(
            proposal_id=proposal_id,
            action="responded",
            transition=lambda current: apply_response(
                proposal=current,
                caller_id=caller.user_id,
                decision=payload.decision,
                response_message=payload.response_message,
                now=self._clock(),
            ),
        )

    def archive_proposal(self, *, proposal_id: str, caller: CallerContext) -> ProposalRecord:
        return self._transition(
            proposal_id=proposal_id,
            action="archived",
            transition=lambda current: apply_archive(
                proposal=current, caller_id=caller.user_id, now=self._clock()
            ),
        )

    def delete_proposal(self, *, proposal_id: str, caller: CallerContext) -> ProposalRecord:
        return self._transition(
            proposal_id=proposal_id,
            action="removed",
            transition=lambda current: apply_removal(
                proposal=current, caller_id=caller.user_id, now=self._clock()
            ),
        )

    def _transition(
        self,
        *,
        proposal_id: str,
        action: str,
        transition: Callable[[ProposalRecord], ProposalMutationResult],
    ) -> ProposalRecord:
        proposal = load_active_proposal(self._repository, proposal_id)
        result = transition(proposal)
        if result.proposal == proposal:
            return result.proposal

        updated = result.proposal.model_copy(update={"version": proposal.version + 1})
        written = self._repository.compare_and_set_proposal(
            proposal=updated, expected_version=proposal.version
        )
        if not written:
            # Guards re-run against the winning write; any other stale write is a conflict.
            current = load_active_proposal(self._repository, proposal_id)
            if transition(current).proposal == current:
                return current
            raise ProposalStateConflictError(
                "proposal changed concurrently; reload it and retry",
                code="STATE_CONFLICT",
            )

        logger.info(
            f"proposal.{action}",
            extra={
                "extra_fields": {
                    "proposal_id": updated.proposal_id,
                    "from_status": proposal.status,
                    "to_status": updated.status,
                }
            },
        )
        self._fanout.emit_all(result.events)
        return updated


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)
