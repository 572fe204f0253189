from src.core.negotiation.errors import (
    ProposalAuthorizationError,
    ProposalInvalidStateError,
    ProposalLifecycleError,
    ProposalNotFoundError,
    ProposalPersistenceError,
    ProposalStateConflictError,
    ProposalValidationError,
)
from src.core.negotiation.listing import ProposalListingService
from src.core.negotiation.models import (
    CallerContext,
    MessageAttachment,
    MessageListResponse,
    MessagePostRequest,
    NotificationListResponse,
    NotificationRecord,
    ProposalCreateRequest,
    ProposalEditRequest,
    ProposalListResponse,
    ProposalMessageRecord,
    ProposalRecord,
    ProposalRespondRequest,
    ProposalStats,
    ProposalSummary,
)
from src.core.negotiation.notifications import NotificationFanout
from src.core.negotiation.repository import NegotiationRepository
from src.core.negotiation.service import ProposalWorkflowService
from src.core.negotiation.threads import ProposalThreadService

__all__ = [
    "CallerContext",
    "MessageAttachment",
    "MessageListResponse",
    "MessagePostRequest",
    "NegotiationRepository",
    "NotificationFanout",
    "NotificationListResponse",
    "NotificationRecord",
    "ProposalAuthorizationError",
    "ProposalCreateRequest",
    "ProposalEditRequest",
    "ProposalInvalidStateError",
    "ProposalLifecycleError",
    "ProposalListResponse",
    "ProposalListingService",
    "ProposalMessageRecord",
    "ProposalNotFoundError",
    "ProposalPersistenceError",
    "ProposalRecord",
    "ProposalRespondRequest",
    "ProposalStateConflictError",
    "ProposalStats",
    "ProposalSummary",
    "ProposalThreadService",
    "ProposalValidationError",
    "ProposalWorkflowService",
]
