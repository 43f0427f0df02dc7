"""Database infrastructure package."""

from ascent.infrastructure.database.models import Base
from ascent.infrastructure.database.session import (
    close_db,
    get_session_factory,
    init_db,
)

__all__ = [
    "Base",
    "close_db",
    "get_session_factory",
    "init_db",
]
