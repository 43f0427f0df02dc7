"""Unit tests for the SQLAlchemy repositories and the unit of work."""

from unittest.mock import MagicMock
from uuid import uuid4

import pytest
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import IntegrityError, OperationalError

from ascent.grading.types import Rank
from ascent.infrastructure.database.models import ChallengeSubmission
from ascent.repositories.base import parse_uuid
from ascent.repositories.exceptions import DuplicateEntityError, TransactionError
from ascent.repositories.grading_repository import AthleteRepository
from ascent.repositories.progression_repository import (
    AthleteRankRepository,
    DomainProgressRepository,
    XPTransactionRepository,
)
from ascent.repositories.submission_repository import SubmissionHistoryRepository, SubmissionRepository
from ascent.repositories.unit_of_work import UnitOfWork, create_unit_of_work


def _result(rows=None, scalar=None):
    result = MagicMock()
    result.all.return_value = rows or []
    result.scalar_one_or_none.return_value = scalar
    result.scalar_one.return_value = scalar
    return result


def _sql(call) -> str:
    return str(call.args[0].compile(dialect=postgresql.dialect()))


class TestParseUuid:
    def test_accepts_uuid_and_string(self):
        value = uuid4()
        assert parse_uuid(value) is value
        assert parse_uuid(str(value)) == value

    def test_malformed_is_none(self):
        assert parse_uuid("not-a-uuid") is None


class TestBaseRepository:
    @pytest.mark.asyncio
    async def test_malformed_id_skips_query(self, mock_session):
        repo = AthleteRepository(mock_session)

        assert await repo.get_by_id("bogus") is None
        assert await repo.get_for_update("bogus") is None
        mock_session.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_get_by_id_returns_row(self, mock_session):
        row = MagicMock()
        mock_session.execute.return_value = _result(scalar=row)

        assert await AthleteRepository(mock_session).get_by_id(uuid4()) is row

    @pytest.mark.asyncio
    async def test_delete_reports_rowcount(self, mock_session):
        result = MagicMock()
        result.rowcount = 0
        mock_session.execute.return_value = result

        assert await AthleteRepository(mock_session).delete(uuid4()) is False


class TestSubmissionRepository:
    @pytest.mark.asyncio
    async def test_unique_violation_is_a_duplicate(self, mock_session):
        mock_session.flush.side_effect = IntegrityError("INSERT", {}, Exception("duplicate key"))
        submission = ChallengeSubmission(id=uuid4(), athlete_id=uuid4(), challenge_id=uuid4())

        with pytest.raises(DuplicateEntityError):
            await SubmissionRepository(mock_session).create(submission)

    @pytest.mark.asyncio
    async def test_approved_tiers_parses_ranks(self, mock_session):
        graded, ungraded = uuid4(), uuid4()
        mock_session.execute.return_value = _result(rows=[(graded, "E"), (ungraded, None)])

        tiers = await SubmissionRepository(mock_session).list_approved_tiers(uuid4(), [graded, ungraded])

        assert tiers == [(graded, Rank.E), (ungraded, None)]

    @pytest.mark.asyncio
    async def test_no_challenges_no_query(self, mock_session):
        assert await SubmissionRepository(mock_session).list_approved_tiers(uuid4(), []) == []
        mock_session.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_history_versions_increment(self, mock_session):
        mock_session.execute.return_value = _result(scalar=2)

        assert await SubmissionHistoryRepository(mock_session).next_version(uuid4()) == 3


class TestXPTransactionRepository:
    @pytest.mark.asyncio
    async def test_credited_for_submission(self, mock_session):
        domain = uuid4()
        mock_session.execute.return_value = _result(rows=[(domain, 75)])

        assert await XPTransactionRepository(mock_session).credited_for_submission(uuid4()) == {domain: 75}


class TestDomainProgressRepository:
    @pytest.mark.asyncio
    async def test_existing_row_is_locked_without_insert(self, mock_session, now):
        row = MagicMock()
        mock_session.execute.return_value = _result(scalar=row)

        progress = await DomainProgressRepository(mock_session).lock_or_create(uuid4(), uuid4(), now)

        assert progress is row
        assert mock_session.execute.await_count == 1
        assert "FOR UPDATE" in _sql(mock_session.execute.await_args_list[0])

    @pytest.mark.asyncio
    async def test_missing_row_inserted_on_conflict_then_locked(self, mock_session, now):
        row = MagicMock()
        mock_session.execute.side_effect = [_result(scalar=None), MagicMock(), _result(scalar=row)]

        progress = await DomainProgressRepository(mock_session).lock_or_create(uuid4(), uuid4(), now)

        assert progress is row
        select_sql, insert_sql, relock_sql = (_sql(c) for c in mock_session.execute.await_args_list)
        assert "ON CONFLICT ON CONSTRAINT uq_progress_athlete_domain DO NOTHING" in insert_sql
        assert "FOR UPDATE" in select_sql and "FOR UPDATE" in relock_sql
        mock_session.add.assert_not_called()


class TestAthleteRankRepository:
    @pytest.mark.asyncio
    async def test_held_ranks_carry_unlock_division(self, mock_session):
        requirement, division = uuid4(), uuid4()
        mock_session.execute.return_value = _result(rows=[(requirement, division)])

        assert await AthleteRankRepository(mock_session).list_held(uuid4(), uuid4()) == {requirement: division}


class TestUnitOfWork:
    @pytest.mark.asyncio
    async def test_repositories_share_the_session(self, mock_session):
        async with UnitOfWork(lambda: mock_session) as uow:
            assert uow.submissions.session is mock_session
            assert uow.submissions is uow.submissions

    @pytest.mark.asyncio
    async def test_exit_without_commit_rolls_back(self, mock_session):
        async with UnitOfWork(lambda: mock_session):
            pass

        mock_session.rollback.assert_awaited()
        mock_session.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_commit_failure_is_transaction_error(self, mock_session):
        mock_session.commit.side_effect = OperationalError("COMMIT", {}, Exception("connection lost"))

        with pytest.raises(TransactionError) as exc_info:
            async with create_unit_of_work(lambda: mock_session) as uow:
                await uow.commit()

        assert exc_info.value.details["error_type"] == "OperationalError"
        mock_session.close.assert_awaited_once()

    def test_session_requires_context(self):
        with pytest.raises(RuntimeError):
            UnitOfWork(MagicMock()).session
