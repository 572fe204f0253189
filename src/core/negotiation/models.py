from datetime import datetime
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field

PartyRole = Literal["SPONSOR", "CREATOR"]

ProposalStatus = Literal["PENDING", "ACCEPTED", "REJECTED", "ARCHIVED"]

ProposalDecision = Literal["ACCEPTED", "REJECTED"]

ProposalAction = Literal["EDIT", "RESPOND_ACCEPT", "RESPOND_REJECT", "ARCHIVE"]

NotificationType = Literal[
    "NEW_PROPOSAL",
    "PROPOSAL_RESPONSE",
    "NEW_MESSAGE",
    "PROPOSAL_ACCEPTED",
    "PROPOSAL_REJECTED",
]

ProposalSort = Literal["newest", "oldest", "updated"]

PARTY_ROLES: tuple[PartyRole, ...] = ("SPONSOR", "CREATOR")


class CallerContext(BaseModel):
    user_id: Optional[str] = Field(
        default=None,
        description="Resolved caller identity. None means unauthenticated.",
        examples=["usr_sponsor_01"],
    )
    role: Optional[PartyRole] = Field(
        default=None,
        description="Resolved caller role as issued by the identity collaborator.",
        examples=["SPONSOR"],
    )


class MessageAttachment(BaseModel):
    url: str = Field(
        description="Absolute http(s) URL of the attachment.",
        examples=["https://cdn.example.com/files/brief.pdf"],
    )
    name: str = Field(description="Attachment display name.", examples=["brief.pdf"])


class ProposalRecord(BaseModel):
    proposal_id: str
    sponsor_id: str
    creator_id: str
    content_id: Optional[str] = None
    subject: str
    message: str
    budget_range: Optional[str] = None
    timeline: Optional[str] = None
    status: ProposalStatus = "PENDING"
    responded_at: Optional[datetime] = None
    response_message: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    removed_at: Optional[datetime] = None
    version: int = 1


class ProposalMessageRecord(BaseModel):
    message_id: str
    proposal_id: str
    sender_id: str
    content: str
    attachment: Optional[MessageAttachment] = None
    is_read: bool = False
    created_at: datetime


class NotificationRecord(BaseModel):
    notification_id: str
    user_id: str
    type: NotificationType
    title: str
    content: str
    proposal_id: Optional[str] = None
    content_id: Optional[str] = None
    is_read: bool = False
    read_at: Optional[datetime] = None
    created_at: datetime


class ProposalCreatedEvent(BaseModel):
    event_type: Literal["PROPOSAL_CREATED"] = "PROPOSAL_CREATED"
    proposal_id: str
    actor_id: str
    recipient_id: str
    content_id: Optional[str] = None
    subject_excerpt: str
    occurred_at: datetime


class ProposalRespondedEvent(BaseModel):
    event_type: Literal["PROPOSAL_RESPONDED"] = "PROPOSAL_RESPONDED"
    proposal_id: str
    actor_id: str
    recipient_id: str
    content_id: Optional[str] = None
    decision: ProposalDecision
    subject_excerpt: str
    occurred_at: datetime


class MessagePostedEvent(BaseModel):
    event_type: Literal["MESSAGE_POSTED"] = "MESSAGE_POSTED"
    proposal_id: str
    actor_id: str
    recipient_id: str
    content_id: Optional[str] = None
    message_excerpt: str
    occurred_at: datetime


NotificationEvent = Annotated[
    Union[ProposalCreatedEvent, ProposalRespondedEvent, MessagePostedEvent],
    Field(discriminator="event_type"),
]


class ProposalMutationResult(BaseModel):
    proposal: ProposalRecord
    events: List[NotificationEvent] = Field(default_factory=list)


class MessagePostResult(BaseModel):
    message: ProposalMessageRecord
    events: List[NotificationEvent] = Field(default_factory=list)


class ProposalCreateRequest(BaseModel):
    creator_id: str = Field(
        description="Creator receiving the proposal.",
        examples=["usr_creator_01"],
    )
    content_id: Optional[str] = Field(
        default=None,
        description="Optional content item the proposal refers to.",
        examples=["vid_001"],
    )
    subject: str = Field(
        description="Proposal subject, 5-200 characters after trimming.",
        examples=["Sponsorship for spring series"],
    )
    message: str = Field(
        description="Proposal body, 10-5000 characters after trimming.",
        examples=["We would like to sponsor three episodes of your spring series."],
    )
    budget_range: Optional[str] = Field(
        default=None,
        description="Optional budget range, up to 100 characters.",
        examples=["$1,000 - $3,000"],
    )
    timeline: Optional[str] = Field(
        default=None,
        description="Optional timeline, up to 500 characters.",
        examples=["Episodes published between March and May."],
    )


class ProposalEditRequest(BaseModel):
    subject: Optional[str] = Field(default=None, description="Replacement subject.")
    message: Optional[str] = Field(default=None, description="Replacement message body.")
    budget_range: Optional[str] = Field(default=None, description="Replacement budget range.")
    timeline: Optional[str] = Field(default=None, description="Replacement timeline.")


class ProposalRespondRequest(BaseModel):
    decision: ProposalDecision = Field(
        description="Creator decision on the pending proposal.",
        examples=["ACCEPTED"],
    )
    response_message: Optional[str] = Field(
        default=None,
        description="Optional response note, up to 2000 characters.",
        examples=["Happy to work together."],
    )


class MessagePostRequest(BaseModel):
    content: str = Field(
        description="Message body, 1-2000 characters after trimming.",
        examples=["Can we move the first episode to April?"],
    )
    attachment: Optional[MessageAttachment] = Field(
        default=None,
        description="Optional single attachment reference.",
    )


class ProposalSummary(ProposalRecord):
    unread_messages_count: int = Field(
        default=0,
        description="Unread messages in the thread for the requesting party.",
        examples=[2],
    )
    priority: int = Field(
        default=0,
        description="Display-ordering score for needs-attention views.",
        examples=[350],
    )
    summary: str = Field(
        default="",
        description="Sanitized, truncated message preview.",
        examples=["We would like to sponsor three episodes..."],
    )
    budget_range_display: str = Field(
        default="",
        description="Budget range or a negotiable placeholder when empty.",
        examples=["Negotiable"],
    )


class ProposalListResponse(BaseModel):
    items: List[ProposalSummary] = Field(default_factory=list)
    total_count: int = Field(default=0, examples=[12])
    has_more: bool = Field(default=False, examples=[True])


class MessageListResponse(BaseModel):
    items: List[ProposalMessageRecord] = Field(default_factory=list)
    total_count: int = Field(default=0, examples=[7])
    unread_count: int = Field(
        default=0,
        description="Unread messages for the requesting party after this call.",
        examples=[0],
    )
    has_more: bool = Field(default=False, examples=[False])


class NotificationListResponse(BaseModel):
    items: List[NotificationRecord] = Field(default_factory=list)
    total_count: int = Field(default=0, examples=[4])
    unread_count: int = Field(
        default=0,
        description="All unread notifications of the user, regardless of filters.",
        examples=[1],
    )
    has_more: bool = Field(default=False, examples=[False])


class ProposalStats(BaseModel):
    total_sent: int = Field(default=0, description="Proposals sent as sponsor.")
    total_received: int = Field(default=0, description="Proposals received as creator.")
    pending_sent: int = Field(default=0)
    pending_received: int = Field(default=0)
    accepted: int = Field(default=0, description="Accepted proposals across both roles.")
    rejected: int = Field(default=0, description="Rejected proposals across both roles.")
    response_rate: int = Field(
        default=0,
        description="Percentage of received proposals that were answered.",
        examples=[75],
    )
