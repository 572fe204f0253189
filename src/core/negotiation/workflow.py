"""Pure proposal transitions.

Every function here takes the current proposal and the caller, checks the
permission and state guards, and returns the proposal as it should be
persisted together with the notification events the change produces.
Nothing here touches the repository.
"""

from datetime import datetime
from typing import Optional

from src.core.negotiation.errors import (
    ProposalAuthorizationError,
    ProposalInvalidStateError,
    ProposalValidationError,
)
from src.core.negotiation.listing import summarize
from src.core.negotiation.models import (
    CallerContext,
    ProposalAction,
    ProposalCreateRequest,
    ProposalCreatedEvent,
    ProposalDecision,
    ProposalEditRequest,
    ProposalMutationResult,
    ProposalRecord,
    ProposalRespondedEvent,
    ProposalStatus,
)
from src.core.negotiation.permissions import (
    can_archive,
    can_create,
    can_delete,
    can_edit,
    can_respond,
    party_role,
)
from src.core.negotiation.validation import (
    sanitize_optional,
    sanitize_text,
    validate_proposal_fields,
    validate_response_message,
)

EVENT_EXCERPT_LENGTH = 60

TRANSITION_MAP: dict[tuple[ProposalStatus, ProposalAction], ProposalStatus] = {
    ("PENDING", "EDIT"): "PENDING",
    ("PENDING", "RESPOND_ACCEPT"): "ACCEPTED",
    ("PENDING", "RESPOND_REJECT"): "REJECTED",
    ("ACCEPTED", "ARCHIVE"): "ARCHIVED",
    ("REJECTED", "ARCHIVE"): "ARCHIVED",
}

_DECISION_ACTIONS: dict[ProposalDecision, ProposalAction] = {
    "ACCEPTED": "RESPOND_ACCEPT",
    "REJECTED": "RESPOND_REJECT",
}


def resolve_transition(
    *, current_status: ProposalStatus, action: ProposalAction
) -> Optional[ProposalStatus]:
    return TRANSITION_MAP.get((current_status, action))


def new_proposal(
    *,
    proposal_id: str,
    caller: CallerContext,
    request: ProposalCreateRequest,
    now: datetime,
) -> ProposalMutationResult:
    if not caller.user_id or not can_create(caller.role):
        raise ProposalAuthorizationError(
            "only sponsors can create proposals", code="SPONSOR_ROLE_REQUIRED"
        )
    creator_id = request.creator_id.strip()
    if not creator_id:
        raise ProposalValidationError(
            "creator_id", "creator_id is required", code="CREATOR_REQUIRED"
        )
    if creator_id == caller.user_id:
        raise ProposalValidationError(
            "creator_id",
            "a proposal cannot be addressed to its own sponsor",
            code="CREATOR_IS_SPONSOR",
        )

    subject = sanitize_text(request.subject)
    message = sanitize_text(request.message)
    budget_range = sanitize_optional(request.budget_range)
    timeline = sanitize_optional(request.timeline)
    validate_proposal_fields(
        subject=subject, message=message, budget_range=budget_range, timeline=timeline
    )

    proposal = ProposalRecord(
        proposal_id=proposal_id,
        sponsor_id=caller.user_id,
        creator_id=creator_id,
        content_id=request.content_id,
        subject=subject,
        message=message,
        budget_range=budget_range,
        timeline=timeline,
        status="PENDING",
        created_at=now,
        updated_at=now,
    )
    event = ProposalCreatedEvent(
        proposal_id=proposal_id,
        actor_id=proposal.sponsor_id,
        recipient_id=proposal.creator_id,
        content_id=proposal.content_id,
        subject_excerpt=summarize(subject, EVENT_EXCERPT_LENGTH),
        occurred_at=now,
    )
    return ProposalMutationResult(proposal=proposal, events=[event])


def apply_edit(
    *,
    proposal: ProposalRecord,
    caller_id: Optional[str],
    patch: ProposalEditRequest,
    now: datetime,
) -> ProposalMutationResult:
    if not can_edit(proposal, caller_id):
        if party_role(proposal, caller_id) == "SPONSOR":
            raise ProposalInvalidStateError(
                f"proposal can no longer be edited in status {proposal.status}",
                code="PROPOSAL_NOT_PENDING",
            )
        raise ProposalAuthorizationError(
            "only the sponsor of this proposal can edit it", code="SPONSOR_REQUIRED"
        )
    _require_transition(proposal.status, "EDIT")

    changes = patch.model_dump(exclude_unset=True)
    updated = proposal.model_copy(deep=True)
    if "subject" in changes:
        updated.subject = sanitize_text(changes["subject"] or "")
    if "message" in changes:
        updated.message = sanitize_text(changes["message"] or "")
    if "budget_range" in changes:
        updated.budget_range = sanitize_optional(changes["budget_range"])
    if "timeline" in changes:
        updated.timeline = sanitize_optional(changes["timeline"])
    validate_proposal_fields(
        subject=updated.subject,
        message=updated.message,
        budget_range=updated.budget_range,
        timeline=updated.timeline,
    )
    updated.updated_at = now
    return ProposalMutationResult(proposal=updated, events=[])


def apply_response(
    *,
    proposal: ProposalRecord,
    caller_id: Optional[str],
    decision: ProposalDecision,
    response_message: Optional[str],
    now: datetime,
) -> ProposalMutationResult:
    if not can_respond(proposal, caller_id):
        if party_role(proposal, caller_id) == "CREATOR":
            raise ProposalInvalidStateError(
                "this proposal has already been answered",
                code="PROPOSAL_ALREADY_ANSWERED",
            )
        raise ProposalAuthorizationError(
            "only the creator of this proposal can respond to it", code="CREATOR_REQUIRED"
        )
    to_status = _require_transition(proposal.status, _DECISION_ACTIONS[decision])

    cleaned_response = sanitize_optional(response_message)
    validate_response_message(cleaned_response)

    updated = proposal.model_copy(deep=True)
    updated.status = to_status
    updated.responded_at = now
    updated.response_message = cleaned_response
    updated.updated_at = now
    event = ProposalRespondedEvent(
        proposal_id=proposal.proposal_id,
        actor_id=proposal.creator_id,
        recipient_id=proposal.sponsor_id,
        content_id=proposal.content_id,
        decision=decision,
        subject_excerpt=summarize(proposal.subject, EVENT_EXCERPT_LENGTH),
        occurred_at=now,
    )
    return ProposalMutationResult(proposal=updated, events=[event])


def apply_archive(
    *,
    proposal: ProposalRecord,
    caller_id: Optional[str],
    now: datetime,
) -> ProposalMutationResult:
    role = party_role(proposal, caller_id)
    if role is None:
        raise ProposalAuthorizationError(
            "only a party to this proposal can archive it", code="PARTY_REQUIRED"
        )
    if proposal.status == "ARCHIVED":
        return ProposalMutationResult(proposal=proposal.model_copy(deep=True), events=[])
    if not can_archive(proposal, caller_id):
        raise ProposalInvalidStateError(
            "only answered proposals can be archived", code="PROPOSAL_NOT_ANSWERED"
        )
    to_status = _require_transition(proposal.status, "ARCHIVE")

    updated = proposal.model_copy(deep=True)
    updated.status = to_status
    updated.updated_at = now
    return ProposalMutationResult(proposal=updated, events=[])


def apply_removal(
    *,
    proposal: ProposalRecord,
    caller_id: Optional[str],
    now: datetime,
) -> ProposalMutationResult:
    if not can_delete(proposal, caller_id):
        raise ProposalAuthorizationError(
            "only the sponsor of this proposal can delete it", code="SPONSOR_REQUIRED"
        )
    updated = proposal.model_copy(deep=True)
    updated.removed_at = now
    updated.updated_at = now
    return ProposalMutationResult(proposal=updated, events=[])


def _require_transition(current_status: ProposalStatus, action: ProposalAction) -> ProposalStatus:
    to_status = resolve_transition(current_status=current_status, action=action)
    if to_status is None:
        raise ProposalInvalidStateError(
            f"{action} is not allowed from status {current_status}",
            code="INVALID_TRANSITION",
        )
    return to_status
