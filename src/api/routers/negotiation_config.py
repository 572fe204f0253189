import os
import warnings
from typing import cast

from src.core.negotiation.notifications import DEFAULT_MAX_DELIVERY_ATTEMPTS
from src.core.negotiation.repository import NegotiationRepository
from src.infrastructure.negotiation import (
    InMemoryNegotiationRepository,
    PostgresNegotiationRepository,
)


def env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value.strip())
    except ValueError:
        return default


def negotiation_store_backend_name() -> str:
    backend = os.getenv("NEGOTIATION_STORE_BACKEND", "IN_MEMORY").strip().upper()
    if backend == "POSTGRES":
        return "POSTGRES"
    if backend != "IN_MEMORY":
        warnings.warn(
            f"NEGOTIATION_STORE_BACKEND={backend} is not recognised; using IN_MEMORY.",
            RuntimeWarning,
            stacklevel=2,
        )
    return "IN_MEMORY"


def negotiation_postgres_dsn() -> str:
    return os.getenv("NEGOTIATION_POSTGRES_DSN", "").strip()


def notification_max_delivery_attempts() -> int:
    return max(1, env_int("NOTIFICATION_MAX_DELIVERY_ATTEMPTS", DEFAULT_MAX_DELIVERY_ATTEMPTS))


def lifecycle_enabled() -> bool:
    return env_flag("NEGOTIATION_LIFECYCLE_ENABLED", True)


def _postgres_connection_exception_types() -> tuple[type[BaseException], ...]:
    types: list[type[BaseException]] = [
        ConnectionError,
        OSError,
        TimeoutError,
        TypeError,
        ValueError,
    ]
    try:
        import psycopg
    except ImportError:
        pass
    else:
        types.append(psycopg.Error)
    return tuple(types)


def build_repository() -> NegotiationRepository:
    backend = negotiation_store_backend_name()
    if backend == "POSTGRES":
        dsn = negotiation_postgres_dsn()
        if not dsn:
            raise RuntimeError("NEGOTIATION_POSTGRES_DSN_REQUIRED")
        try:
            return cast(NegotiationRepository, PostgresNegotiationRepository(dsn=dsn))
        except RuntimeError:
            raise
        except _postgres_connection_exception_types() as exc:
            raise RuntimeError("NEGOTIATION_POSTGRES_CONNECTION_FAILED") from exc
    return cast(NegotiationRepository, InMemoryNegotiationRepository())
