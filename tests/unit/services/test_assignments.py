"""Tests for rater to university binding."""

import pytest

from api.services import assignments, evaluations
from api.services.memory_store import InMemoryEvaluationStore, InMemoryStoreSession
from core.exceptions import ErrorCode


class LockRecordingSession(InMemoryStoreSession):
    locked_reads: list = []

    async def get_assignment(self, rater_id, for_update=False):
        self.locked_reads.append((rater_id, for_update))
        return await super().get_assignment(rater_id, for_update=for_update)


class LockRecordingStore(InMemoryEvaluationStore):
    session_class = LockRecordingSession


class TestBindOrganization:
    """bind_organization."""

    @pytest.mark.asyncio
    async def test_first_bind_creates_assignment(self, store):
        async with store.transaction() as session:
            result = await assignments.bind_organization(session, "rater-1", 1)
            assigned = await assignments.get_assigned_organization(session, "rater-1")

        assert result.success
        assert result.value.assigned_organization_id == 1
        assert assigned == 1

    @pytest.mark.asyncio
    async def test_same_organization_is_idempotent(self, store):
        async with store.transaction() as session:
            await assignments.bind_organization(session, "rater-1", 1)
            result = await assignments.bind_organization(session, "rater-1", 1)

        assert result.success
        assert result.value.assigned_organization_id == 1

    @pytest.mark.asyncio
    async def test_different_organization_is_rejected(self, store):
        async with store.transaction() as session:
            await assignments.bind_organization(session, "rater-1", 1)
            result = await assignments.bind_organization(session, "rater-1", 2)
            assigned = await assignments.get_assigned_organization(session, "rater-1")

        assert result.error.code == ErrorCode.ORGANIZATION_MISMATCH
        assert result.error.field == "organization_id"
        assert assigned == 1

    @pytest.mark.asyncio
    async def test_cleared_assignment_can_be_rebound(self, store):
        async with store.transaction() as session:
            await session.save_assignment("rater-1", None)
            result = await assignments.bind_organization(session, "rater-1", 2)

        assert result.success
        assert result.value.assigned_organization_id == 2


class TestClearIfNoEvaluationsRemain:
    """Assignment reconciliation."""

    @pytest.mark.asyncio
    async def test_clears_without_evaluations(self, store):
        async with store.transaction() as session:
            await session.save_assignment("rater-1", 1)
            cleared = await assignments.clear_if_no_evaluations_remain(session, "rater-1")
            assigned = await assignments.get_assigned_organization(session, "rater-1")

        assert cleared is True
        assert assigned is None

    @pytest.mark.asyncio
    async def test_keeps_with_evaluations(self, store, answers):
        await evaluations.create_or_update_evaluation(store, "rater-1", 1, 1, answers(1, 4))

        async with store.transaction() as session:
            cleared = await assignments.clear_if_no_evaluations_remain(session, "rater-1")
            assigned = await assignments.get_assigned_organization(session, "rater-1")

        assert cleared is False
        assert assigned == 1

    @pytest.mark.asyncio
    async def test_no_assignment_is_noop(self, store):
        async with store.transaction() as session:
            cleared = await assignments.clear_if_no_evaluations_remain(session, "ghost")
            assignment = await session.get_assignment("ghost")

        assert cleared is False
        assert assignment is None


class TestAssignmentSummary:
    """get_assignment_summary."""

    @pytest.mark.asyncio
    async def test_unassigned(self, store):
        result = await assignments.get_assignment_summary(store, "rater-1")

        assert result.success
        assert result.value.rater_id == "rater-1"
        assert result.value.organization is None

    @pytest.mark.asyncio
    async def test_assigned(self, store):
        async with store.transaction() as session:
            await session.save_assignment("rater-1", 2)

        result = await assignments.get_assignment_summary(store, "rater-1")

        assert result.value.organization.name == "Universidad de Antioquia"
        assert result.value.organization.city == "Medellín"


class TestAssignmentRowLock:
    """Binding and clearing read the assignment row with a lock."""

    @pytest.fixture
    def recording_store(self, seeded):
        LockRecordingSession.locked_reads = []
        return seeded(LockRecordingStore)

    @pytest.mark.asyncio
    async def test_bind_locks_assignment(self, recording_store):
        async with recording_store.transaction() as session:
            await assignments.bind_organization(session, "rater-1", 1)

        assert LockRecordingSession.locked_reads == [("rater-1", True)]

    @pytest.mark.asyncio
    async def test_clear_locks_assignment(self, recording_store):
        async with recording_store.transaction() as session:
            await session.save_assignment("rater-1", 1)
            await assignments.clear_if_no_evaluations_remain(session, "rater-1")

        assert LockRecordingSession.locked_reads == [("rater-1", True)]
