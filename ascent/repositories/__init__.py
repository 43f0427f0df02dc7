"""Repository layer for database operations.

Repositories return ORM rows or flat records; services compose them inside a
``UnitOfWork`` (``ascent.repositories.unit_of_work``).
"""

from ascent.repositories.base import BaseRepository
from ascent.repositories.exceptions import (
    ConcurrencyError,
    DuplicateEntityError,
    EntityNotFoundError,
    LedgerError,
    PermissionDeniedError,
    RateLimitError,
    RepositoryError,
    TransactionError,
    ValidationError,
)

__all__ = [
    # Base
    "BaseRepository",
    # Exceptions
    "RepositoryError",
    "EntityNotFoundError",
    "DuplicateEntityError",
    "ValidationError",
    "ConcurrencyError",
    "RateLimitError",
    "PermissionDeniedError",
    "LedgerError",
    "TransactionError",
]
