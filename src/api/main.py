"""
FILE: src/api/main.py
"""

import logging
from contextlib import asynccontextmanager

from fastapi import APIRouter, FastAPI, Request, status
from fastapi.responses import JSONResponse

import src.api.routers.proposals_thread_routes  # noqa: F401
from src.api.observability import setup_observability
from src.api.persistence_profile import validate_persistence_profile_guardrails
from src.api.routers.notifications import router as notification_router
from src.api.routers.proposals import drain_notification_outbox
from src.api.routers.proposals import router as proposal_router


@asynccontextmanager
async def _app_lifespan(_app: FastAPI):
    validate_persistence_profile_guardrails()
    yield
    drain_notification_outbox()


app = FastAPI(
    title="Proposal Negotiation API",
    version="0.1.0",
    description=(
        "Sponsor/creator proposal negotiation service.\n\n"
        "Proposals move `PENDING` -> `ACCEPTED` | `REJECTED` -> `ARCHIVED`; every transition "
        "and thread message is fanned out as a recipient notification."
    ),
    openapi_tags=[
        {
            "name": "Proposal Negotiation",
            "description": "Proposal lifecycle, thread, listing and statistics endpoints.",
        },
        {
            "name": "Proposal Notifications",
            "description": "Recipient notification inbox endpoints.",
        },
        {
            "name": "Health",
            "description": "Liveness and readiness probes.",
        },
    ],
    lifespan=_app_lifespan,
)

logger = logging.getLogger(__name__)

health_router = APIRouter(tags=["Health"])


@health_router.get("/health", summary="Health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@health_router.get("/health/live", summary="Liveness")
def health_live() -> dict[str, str]:
    return {"status": "live"}


@health_router.get("/health/ready", summary="Readiness")
def health_ready() -> dict[str, str]:
    return {"status": "ready"}


app.include_router(health_router)
app.include_router(health_router, prefix="/api/v1")
app.include_router(proposal_router)
app.include_router(notification_router)

setup_observability(app)


@app.exception_handler(Exception)
async def unhandled_exception_to_problem_details(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception while serving request", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        media_type="application/problem+json",
        content={
            "type": "about:blank",
            "title": "Internal Server Error",
            "status": 500,
            "detail": "An unexpected error occurred.",
            "instance": str(request.url.path),
        },
    )
