"""
Tests for the SQLAlchemy evaluation store against a SQLite file database.

Tests:
- Catalog reads, search and scale label normalization
- Unique and foreign key violations
- Commit, explicit rollback and rollback on error
- Response replacement, cascade on delete and aggregation scans
- Locked assignment reads
- The evaluation services end to end on the SQL backend
"""

from datetime import datetime, timezone

import pytest
import pytest_asyncio
from sqlalchemy.dialects import postgresql
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from api.services import catalog, evaluations, statistics
from api.services.sql_store import SQLAlchemyEvaluationStore, assignment_query
from api.services.store import ResponseRecord
from core.exceptions import ErrorCode, StoreError, UniqueViolation
from database.engine import build_engine, init_db
from database.models.dimensions import Dimension, Question
from database.models.evaluations import EvaluationStatus
from database.models.universities import Organization

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


@pytest_asyncio.fixture
async def sql_store(tmp_path):
    """SQL store over a fresh SQLite file with two universities and one dimension."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'evaluations.db'}")
    await init_db(engine)
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with session_factory() as session:
        session.add_all([
            Organization(id=1, name="Universidad Nacional", city="Bogotá"),
            Organization(id=2, name="Universidad de Antioquia", city="Medellín"),
            Dimension(id=1, name="Governance", code="governance"),
            Dimension(id=2, name="Social", code="social"),
        ])
        await session.flush()
        session.add_all([
            Question(id=2, dimension_id=1, text="Board independence", order_index=2,
                     scale_labels={"1": "None", "5": "Full"}),
            Question(id=1, dimension_id=1, text="Published statutes", order_index=1),
            Question(id=3, dimension_id=2, text="Scholarships", order_index=1),
        ])
        await session.commit()

    yield SQLAlchemyEvaluationStore(session_factory)
    await engine.dispose()


async def insert(store, rater_id="rater-1", organization_id=1, dimension_id=1):
    async with store.transaction() as session:
        return await session.insert_evaluation(rater_id, organization_id, dimension_id, None, NOW)


class TestCatalogReads:
    """Reference data."""

    @pytest.mark.asyncio
    async def test_questions_ordered_with_int_scale_keys(self, sql_store):
        async with sql_store.transaction() as session:
            questions = await session.list_questions(1)
            found = await session.get_questions([3, 99])

        assert [q.id for q in questions] == [1, 2]
        assert questions[1].scale_labels == {1: "None", 5: "Full"}
        assert list(found) == [3]

    @pytest.mark.asyncio
    async def test_missing_rows(self, sql_store):
        async with sql_store.transaction() as session:
            assert await session.get_organization(99) is None
            assert await session.get_dimension(99) is None
            assert await session.get_assignment("nobody") is None


class TestOrganizationSearch:
    """Search runs as an ILIKE query."""

    @pytest.mark.asyncio
    async def test_name_case_insensitive(self, sql_store):
        async with sql_store.transaction() as session:
            matches = await session.search_organizations("NACIONAL", 20)

        assert [o.id for o in matches] == [1]

    @pytest.mark.asyncio
    async def test_city_match(self, sql_store):
        async with sql_store.transaction() as session:
            matches = await session.search_organizations("medellín", 20)

        assert [o.id for o in matches] == [2]

    @pytest.mark.asyncio
    async def test_ordered_by_name_and_limited(self, sql_store):
        async with sql_store.transaction() as session:
            both = await session.search_organizations("universidad", 20)
            first = await session.search_organizations("universidad", 1)

        assert [o.name for o in both] == ["Universidad de Antioquia", "Universidad Nacional"]
        assert [o.id for o in first] == [2]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("needle", ["%", "_"])
    async def test_wildcards_match_literally(self, sql_store, needle):
        async with sql_store.transaction() as session:
            assert await session.search_organizations(needle, 20) == []

    @pytest.mark.asyncio
    async def test_catalog_search_on_sql(self, sql_store):
        result = await catalog.search_organizations(sql_store, "  antioquia ")

        assert [o.name for o in result.value] == ["Universidad de Antioquia"]


class TestTransactions:
    """Commit and rollback semantics."""

    @pytest.mark.asyncio
    async def test_commit_on_clean_exit(self, sql_store):
        created = await insert(sql_store)

        async with sql_store.transaction() as session:
            loaded = await session.get_evaluation(created.id, "rater-1")

        assert loaded.status == EvaluationStatus.DRAFT
        assert loaded.organization_id == 1

    @pytest.mark.asyncio
    async def test_explicit_rollback(self, sql_store):
        async with sql_store.transaction() as session:
            await session.insert_evaluation("rater-1", 1, 1, None, NOW)
            session.rollback()

        async with sql_store.transaction() as session:
            assert await session.count_evaluations("rater-1") == 0

    @pytest.mark.asyncio
    async def test_rollback_on_error(self, sql_store):
        with pytest.raises(RuntimeError):
            async with sql_store.transaction() as session:
                await session.save_assignment("rater-1", 1)
                raise RuntimeError("boom")

        async with sql_store.transaction() as session:
            assert await session.get_assignment("rater-1") is None

    @pytest.mark.asyncio
    async def test_unique_violation(self, sql_store):
        await insert(sql_store)

        with pytest.raises(UniqueViolation):
            await insert(sql_store)

        async with sql_store.transaction() as session:
            assert await session.count_evaluations("rater-1") == 1

    @pytest.mark.asyncio
    async def test_foreign_key_violation(self, sql_store):
        with pytest.raises(StoreError) as excinfo:
            async with sql_store.transaction() as session:
                await session.save_assignment("rater-1", 42)

        assert not isinstance(excinfo.value, UniqueViolation)


class TestResponses:
    """Response replacement, deletion and scans."""

    @pytest.mark.asyncio
    async def test_replace_responses(self, sql_store):
        created = await insert(sql_store)

        async with sql_store.transaction() as session:
            await session.replace_responses(created.id, [
                ResponseRecord(created.id, 1, 2),
                ResponseRecord(created.id, 2, 3),
            ])
        async with sql_store.transaction() as session:
            await session.replace_responses(created.id, [ResponseRecord(created.id, 2, 5)])
            responses = await session.list_responses(created.id)

        assert [(r.question_id, r.score) for r in responses] == [(2, 5)]

    @pytest.mark.asyncio
    async def test_score_check_constraint(self, sql_store):
        created = await insert(sql_store)

        with pytest.raises(StoreError):
            async with sql_store.transaction() as session:
                await session.replace_responses(created.id, [ResponseRecord(created.id, 1, 9)])

    @pytest.mark.asyncio
    async def test_delete_removes_responses(self, sql_store):
        created = await insert(sql_store)
        async with sql_store.transaction() as session:
            await session.replace_responses(created.id, [ResponseRecord(created.id, 1, 4)])

        async with sql_store.transaction() as session:
            await session.delete_evaluation(created.id)

        async with sql_store.transaction() as session:
            assert await session.get_evaluation(created.id, "rater-1") is None
            assert await session.count_responses(created.id) == 0
            assert await session.scan_scored_responses() == []

    @pytest.mark.asyncio
    async def test_scan_filters(self, sql_store):
        first = await insert(sql_store, "rater-1", 1, 1)
        second = await insert(sql_store, "rater-2", 2, 2)
        async with sql_store.transaction() as session:
            await session.replace_responses(first.id, [ResponseRecord(first.id, 1, 4)])
            await session.replace_responses(second.id, [ResponseRecord(second.id, 3, 2)])
            await session.update_evaluation(
                second.id,
                updated_at=NOW,
                status=EvaluationStatus.SUBMITTED,
                submitted_at=NOW,
            )

        async with sql_store.transaction() as session:
            everything = await session.scan_scored_responses()
            submitted = await session.scan_scored_responses(submitted_only=True)
            by_dimension = await session.scan_scored_responses(dimension_id=1)
            by_organization = await session.scan_scored_responses(organization_id=2)

        assert [row.score for row in everything] == [4, 2]
        assert [row.evaluation_id for row in submitted] == [second.id]
        assert [row.organization_id for row in by_dimension] == [1]
        assert [row.dimension_id for row in by_organization] == [2]


class TestServicesOnSql:
    """Evaluation services on the SQL backend."""

    @pytest.mark.asyncio
    async def test_lifecycle(self, sql_store):
        created = await evaluations.create_or_update_evaluation(
            sql_store, "rater-1", 1, 1, [{"question_id": 1, "score": 5}, {"question_id": 2, "score": 3}]
        )
        assert created.success
        assert created.value.created is True

        updated = await evaluations.create_or_update_evaluation(
            sql_store, "rater-1", 1, 1, [{"question_id": 1, "score": 4}], comments="Revised"
        )
        assert updated.value.created is False
        assert updated.value.evaluation.id == created.value.evaluation.id
        assert [r.score for r in updated.value.evaluation.responses] == [4]

        mismatch = await evaluations.create_or_update_evaluation(
            sql_store, "rater-1", 2, 1, [{"question_id": 1, "score": 4}]
        )
        assert mismatch.error.code == ErrorCode.ORGANIZATION_MISMATCH

        submitted = await evaluations.submit_evaluation(
            sql_store, "rater-1", created.value.evaluation.id
        )
        assert submitted.value.status == EvaluationStatus.SUBMITTED

        averages = await statistics.global_dimension_averages(sql_store, submitted_only=True)
        assert [(a.dimension_code, a.average_score) for a in averages.value] == [
            ("governance", 4.0),
            ("social", None),
        ]

    @pytest.mark.asyncio
    async def test_delete_clears_assignment(self, sql_store):
        created = await evaluations.create_or_update_evaluation(
            sql_store, "rater-1", 1, 2, [{"question_id": 3, "score": 2}]
        )

        deleted = await evaluations.delete_evaluation(sql_store, "rater-1", created.value.evaluation.id)

        assert deleted.success
        async with sql_store.transaction() as session:
            assignment = await session.get_assignment("rater-1")
        assert assignment.assigned_organization_id is None


class TestAssignmentLock:
    """Locked assignment reads."""

    def test_locked_query_is_select_for_update(self):
        sql = str(assignment_query("rater-1", for_update=True).compile(dialect=postgresql.dialect()))

        assert sql.rstrip().endswith("FOR UPDATE")

    def test_plain_query_has_no_lock(self):
        sql = str(assignment_query("rater-1").compile(dialect=postgresql.dialect()))

        assert "FOR UPDATE" not in sql

    @pytest.mark.asyncio
    async def test_locked_read_sees_latest_value(self, sql_store):
        async with sql_store.transaction() as session:
            await session.save_assignment("rater-1", 1)
            await session.get_assignment("rater-1")
            await session.save_assignment("rater-1", None)
            assignment = await session.get_assignment("rater-1", for_update=True)

        assert assignment.assigned_organization_id is None

    @pytest.mark.asyncio
    async def test_locked_read_of_missing_row(self, sql_store):
        async with sql_store.transaction() as session:
            assert await session.get_assignment("nobody", for_update=True) is None
