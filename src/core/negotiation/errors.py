from typing import Optional


class ProposalLifecycleError(Exception):
    default_code = "PROPOSAL_LIFECYCLE_ERROR"

    def __init__(self, message: str, *, code: Optional[str] = None) -> None:
        self.code = code or self.default_code
        self.message = message
        super().__init__(f"{self.code}: {message}")


class ProposalValidationError(ProposalLifecycleError):
    """Input failed a length, shape or required-field rule for one field."""

    default_code = "VALIDATION_FAILED"

    def __init__(self, field: str, message: str, *, code: Optional[str] = None) -> None:
        self.field = field
        super().__init__(message, code=code)


class ProposalAuthorizationError(ProposalLifecycleError):
    default_code = "NOT_PERMITTED"


class ProposalInvalidStateError(ProposalAuthorizationError):
    """The caller is a party, but the proposal's current state forbids the action."""

    default_code = "INVALID_STATE"


class ProposalNotFoundError(ProposalLifecycleError):
    default_code = "NOT_FOUND"


class ProposalStateConflictError(ProposalLifecycleError):
    """A conditional write lost a race against a concurrent transition."""

    default_code = "STATE_CONFLICT"


class ProposalPersistenceError(ProposalLifecycleError):
    default_code = "PERSISTENCE_FAILED"
