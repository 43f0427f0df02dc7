"""Unit of Work pattern implementation.

Every engine operation runs inside exactly one unit of work: row locks,
ledger writes and state changes commit together or not at all.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Callable

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ascent.repositories.exceptions import TransactionError
from ascent.repositories.grading_repository import (
    AthleteRepository,
    ChallengeRepository,
    DivisionRepository,
    GradeRepository,
)
from ascent.repositories.progression_repository import (
    AthleteRankRepository,
    DomainProgressRepository,
    RankRequirementRepository,
    XPTransactionRepository,
)
from ascent.repositories.submission_repository import (
    SubmissionHistoryRepository,
    SubmissionRepository,
)
from ascent.shared.utils.logging import get_logger

logger = get_logger(__name__)

SessionFactory = async_sessionmaker[AsyncSession] | Callable[[], AsyncSession]

_REPOSITORIES: dict[str, type] = {
    "athletes": AthleteRepository,
    "divisions": DivisionRepository,
    "challenges": ChallengeRepository,
    "grades": GradeRepository,
    "submissions": SubmissionRepository,
    "submission_history": SubmissionHistoryRepository,
    "progress": DomainProgressRepository,
    "transactions": XPTransactionRepository,
    "rank_requirements": RankRequirementRepository,
    "athlete_ranks": AthleteRankRepository,
}


class UnitOfWork:
    """Single transaction boundary across the engine's repositories.

    Usage:
        async with UnitOfWork(session_factory) as uow:
            submission = await uow.submissions.get_for_update(submission_id)
            ...
            await uow.commit()

    Leaving the block without ``commit()`` rolls everything back.
    """

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory
        self._session: AsyncSession | None = None
        self._repositories: dict[str, Any] = {}

    @property
    def session(self) -> AsyncSession:
        """Get the current database session.

        Raises:
            RuntimeError: If the Unit of Work has not been entered
        """
        if self._session is None:
            raise RuntimeError("Unit of Work not started. Use 'async with' context manager.")
        return self._session

    # ===========================================
    # REPOSITORY ACCESSORS (Lazy Loading)
    # ===========================================

    def _repository(self, name: str) -> Any:
        repository = self._repositories.get(name)
        if repository is None:
            repository = _REPOSITORIES[name](self.session)
            self._repositories[name] = repository
        return repository

    @property
    def athletes(self) -> AthleteRepository:
        return self._repository("athletes")

    @property
    def divisions(self) -> DivisionRepository:
        return self._repository("divisions")

    @property
    def challenges(self) -> ChallengeRepository:
        return self._repository("challenges")

    @property
    def grades(self) -> GradeRepository:
        return self._repository("grades")

    @property
    def submissions(self) -> SubmissionRepository:
        return self._repository("submissions")

    @property
    def submission_history(self) -> SubmissionHistoryRepository:
        return self._repository("submission_history")

    @property
    def progress(self) -> DomainProgressRepository:
        return self._repository("progress")

    @property
    def transactions(self) -> XPTransactionRepository:
        return self._repository("transactions")

    @property
    def rank_requirements(self) -> RankRequirementRepository:
        return self._repository("rank_requirements")

    @property
    def athlete_ranks(self) -> AthleteRankRepository:
        return self._repository("athlete_ranks")

    # ===========================================
    # TRANSACTION MANAGEMENT
    # ===========================================

    async def __aenter__(self) -> UnitOfWork:
        self._session = self._session_factory()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        """Roll back whatever was not committed, then release the session."""
        if self._session is None:
            return

        try:
            await self.rollback()
            if exc_type is not None:
                logger.debug("transaction_rolled_back", exception_type=exc_type.__name__)
        finally:
            await self._session.close()
            self._session = None
            self._repositories.clear()

    async def commit(self) -> None:
        """Commit the current transaction.

        Raises:
            TransactionError: If the commit fails
        """
        if self._session is None:
            raise RuntimeError("Unit of Work not started")

        try:
            await self._session.commit()
            logger.debug("transaction_committed")
        except Exception as e:
            await self.rollback()
            raise TransactionError("Failed to commit transaction", original_error=e) from e

    async def rollback(self) -> None:
        if self._session is not None:
            await self._session.rollback()

    async def flush(self) -> None:
        if self._session is not None:
            await self._session.flush()


@asynccontextmanager
async def create_unit_of_work(session_factory: SessionFactory) -> AsyncGenerator[UnitOfWork, None]:
    """Open a Unit of Work; the caller must still commit explicitly."""
    uow = UnitOfWork(session_factory)
    async with uow:
        yield uow


__all__ = [
    "UnitOfWork",
    "create_unit_of_work",
]
