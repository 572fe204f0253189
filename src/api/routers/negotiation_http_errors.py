from typing import NoReturn

from fastapi import HTTPException, status

from src.core.negotiation import (
    ProposalAuthorizationError,
    ProposalLifecycleError,
    ProposalNotFoundError,
    ProposalPersistenceError,
    ProposalStateConflictError,
    ProposalValidationError,
)

HTTP_422_UNPROCESSABLE = getattr(
    status,
    "HTTP_422_UNPROCESSABLE_CONTENT",
    status.HTTP_422_UNPROCESSABLE_ENTITY,
)


def error_detail(exc: ProposalLifecycleError) -> dict[str, str]:
    detail = {"code": exc.code, "message": exc.message}
    if isinstance(exc, ProposalValidationError):
        detail["field"] = exc.field
    return detail


def raise_negotiation_http_exception(exc: Exception) -> NoReturn:
    if isinstance(exc, ProposalValidationError):
        raise HTTPException(status_code=HTTP_422_UNPROCESSABLE, detail=error_detail(exc)) from exc
    if isinstance(exc, ProposalAuthorizationError):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail=error_detail(exc)
        ) from exc
    if isinstance(exc, ProposalNotFoundError):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail=error_detail(exc)
        ) from exc
    if isinstance(exc, ProposalStateConflictError):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=error_detail(exc)) from exc
    if isinstance(exc, ProposalPersistenceError):
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=error_detail(exc)
        ) from exc
    raise exc
