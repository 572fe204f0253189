from src.infrastructure.negotiation.in_memory import InMemoryNegotiationRepository
from src.infrastructure.negotiation.postgres import PostgresNegotiationRepository

__all__ = ["InMemoryNegotiationRepository", "PostgresNegotiationRepository"]
