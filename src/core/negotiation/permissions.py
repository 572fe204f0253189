from typing import Optional

from src.core.negotiation.models import PartyRole, ProposalRecord, ProposalStatus

RESPONDED_STATUSES: frozenset[ProposalStatus] = frozenset({"ACCEPTED", "REJECTED"})


def party_role(proposal: ProposalRecord, caller_id: Optional[str]) -> Optional[PartyRole]:
    if not caller_id:
        return None
    if proposal.sponsor_id == caller_id:
        return "SPONSOR"
    if proposal.creator_id == caller_id:
        return "CREATOR"
    return None


def can_create(role: Optional[PartyRole]) -> bool:
    return role == "SPONSOR"


def can_edit(proposal: ProposalRecord, caller_id: Optional[str]) -> bool:
    return party_role(proposal, caller_id) == "SPONSOR" and proposal.status == "PENDING"


def can_respond(proposal: ProposalRecord, caller_id: Optional[str]) -> bool:
    return party_role(proposal, caller_id) == "CREATOR" and proposal.status == "PENDING"


def can_delete(proposal: ProposalRecord, caller_id: Optional[str]) -> bool:
    return party_role(proposal, caller_id) == "SPONSOR"


def can_message(proposal: ProposalRecord, caller_id: Optional[str]) -> bool:
    return party_role(proposal, caller_id) is not None


def can_archive(proposal: ProposalRecord, caller_id: Optional[str]) -> bool:
    return party_role(proposal, caller_id) is not None and proposal.status in RESPONDED_STATUSES


def counterparty_id(proposal: ProposalRecord, role: PartyRole) -> str:
    if role == "SPONSOR":
        return proposal.creator_id
    if role == "CREATOR":
        return proposal.sponsor_id
    raise ValueError(f"unknown party role: {role}")
