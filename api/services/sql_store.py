"""SQLAlchemy implementation of the evaluation store."""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Iterable, Optional, Sequence

from sqlalchemy import Select, delete, func, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from api.services.store import (
    UNSET,
    AssignmentRecord,
    DimensionRecord,
    EvaluationRecord,
    EvaluationStore,
    OrganizationRecord,
    QuestionRecord,
    ResponseRecord,
    ScoredResponse,
    StoreSession,
    normalize_scale_labels,
)
from core.exceptions import StoreError, UniqueViolation
from database.models.dimensions import Dimension, Question
from database.models.evaluations import Evaluation, EvaluationResponse, EvaluationStatus
from database.models.rater_assignments import RaterAssignment
from database.models.universities import Organization

logger = logging.getLogger(__name__)


def _organization_record(row: Organization) -> OrganizationRecord:
    return OrganizationRecord(id=row.id, name=row.name, city=row.city, region=row.region)


def _dimension_record(row: Dimension) -> DimensionRecord:
    return DimensionRecord(id=row.id, name=row.name, code=row.code)


def _question_record(row: Question) -> QuestionRecord:
    return QuestionRecord(
        id=row.id,
        dimension_id=row.dimension_id,
        text=row.text,
        order_index=row.order_index,
        scale_labels=normalize_scale_labels(row.scale_labels),
    )


def _evaluation_record(row: Evaluation) -> EvaluationRecord:
    return EvaluationRecord(
        id=row.id,
        rater_id=row.rater_id,
        organization_id=row.organization_id,
        dimension_id=row.dimension_id,
        status=EvaluationStatus(row.status),
        comments=row.comments,
        submitted_at=row.submitted_at,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def escape_like(text: str) -> str:
    """Escape LIKE wildcards so user input matches literally."""
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _translate_integrity_error(exc: IntegrityError) -> StoreError:
    """Unique-key collisions become ``UniqueViolation``, anything else ``StoreError``."""
    message = str(exc.orig)
    if "unique" in message.lower():
        return UniqueViolation(message)
    return StoreError(message)


def assignment_query(rater_id: str, for_update: bool = False) -> Select:
    """SELECT of a rater's assignment row, locked with FOR UPDATE when asked."""
    query = select(RaterAssignment).where(RaterAssignment.rater_id == rater_id)
    if for_update:
        query = query.with_for_update().execution_options(populate_existing=True)
    return query


class SQLAlchemyStoreSession(StoreSession):
    """Store session bound to one ``AsyncSession`` transaction."""

    def __init__(self, session: AsyncSession):
        super().__init__()
        self.session = session

    # Reference catalog
    async def list_organizations(self) -> list[OrganizationRecord]:
        result = await self.session.execute(select(Organization).order_by(Organization.id))
        return [_organization_record(row) for row in result.scalars().all()]

    async def get_organization(self, organization_id: int) -> Optional[OrganizationRecord]:
        row = await self.session.get(Organization, organization_id)
        return _organization_record(row) if row else None

    async def search_organizations(self, needle: str, limit: int) -> list[OrganizationRecord]:
        pattern = f"%{escape_like(needle)}%"
        result = await self.session.execute(
            select(Organization)
            .where(or_(
                Organization.name.ilike(pattern, escape="\\"),
                Organization.city.ilike(pattern, escape="\\"),
            ))
            .order_by(func.lower(Organization.name), Organization.id)
            .limit(limit)
        )
        return [_organization_record(row) for row in result.scalars().all()]

    async def list_dimensions(self) -> list[DimensionRecord]:
        result = await self.session.execute(select(Dimension).order_by(Dimension.id))
        return [_dimension_record(row) for row in result.scalars().all()]

    async def get_dimension(self, dimension_id: int) -> Optional[DimensionRecord]:
        row = await self.session.get(Dimension, dimension_id)
        return _dimension_record(row) if row else None

    async def list_questions(self, dimension_id: int) -> list[QuestionRecord]:
        result = await self.session.execute(
            select(Question)
            .where(Question.dimension_id == dimension_id)
            .order_by(Question.order_index, Question.id)
        )
        return [_question_record(row) for row in result.scalars().all()]

    async def get_questions(self, question_ids: Iterable[int]) -> dict[int, QuestionRecord]:
        ids = set(question_ids)
        if not ids:
            return {}
        result = await self.session.execute(select(Question).where(Question.id.in_(ids)))
        return {row.id: _question_record(row) for row in result.scalars().all()}

    # Assignments
    async def get_assignment(
        self, rater_id: str, for_update: bool = False
    ) -> Optional[AssignmentRecord]:
        result = await self.session.execute(assignment_query(rater_id, for_update=for_update))
        row = result.scalar_one_or_none()
        if row is None:
            return None
        return AssignmentRecord(
            rater_id=row.rater_id, assigned_organization_id=row.assigned_organization_id
        )

    async def save_assignment(
        self, rater_id: str, organization_id: Optional[int]
    ) -> AssignmentRecord:
        row = await self.session.get(RaterAssignment, rater_id)
        if row is None:
            row = RaterAssignment(rater_id=rater_id, assigned_organization_id=organization_id)
            self.session.add(row)
        else:
            row.assigned_organization_id = organization_id
        await self._flush()
        return AssignmentRecord(rater_id=rater_id, assigned_organization_id=organization_id)

    # Evaluations
    async def find_evaluation(
        self, rater_id: str, organization_id: int, dimension_id: int
    ) -> Optional[EvaluationRecord]:
        result = await self.session.execute(
            select(Evaluation).where(
                Evaluation.rater_id == rater_id,
                Evaluation.organization_id == organization_id,
                Evaluation.dimension_id == dimension_id,
            )
        )
        row = result.scalar_one_or_none()
        return _evaluation_record(row) if row else None

    async def get_evaluation(
        self, evaluation_id: int, rater_id: str
    ) -> Optional[EvaluationRecord]:
        result = await self.session.execute(
            select(Evaluation).where(
                Evaluation.id == evaluation_id,
                Evaluation.rater_id == rater_id,
            )
        )
        row = result.scalar_one_or_none()
        return _evaluation_record(row) if row else None

    async def list_evaluations(self, rater_id: str) -> list[EvaluationRecord]:
        result = await self.session.execute(
            select(Evaluation)
            .where(Evaluation.rater_id == rater_id)
            .order_by(Evaluation.created_at.desc(), Evaluation.id.desc())
        )
        return [_evaluation_record(row) for row in result.scalars().all()]

    async def count_evaluations(self, rater_id: str) -> int:
        result = await self.session.execute(
            select(func.count(Evaluation.id)).where(Evaluation.rater_id == rater_id)
        )
        return int(result.scalar_one())

    async def insert_evaluation(
        self,
        rater_id: str,
        organization_id: int,
        dimension_id: int,
        comments: Optional[str],
        now: datetime,
    ) -> EvaluationRecord:
        row = Evaluation(
            rater_id=rater_id,
            organization_id=organization_id,
            dimension_id=dimension_id,
            status=EvaluationStatus.DRAFT,
            comments=comments,
            created_at=now,
            updated_at=now,
        )
        self.session.add(row)
        await self._flush()
        return _evaluation_record(row)

    async def update_evaluation(
        self,
        evaluation_id: int,
        *,
        updated_at: datetime,
        comments: Any = UNSET,
        status: Optional[EvaluationStatus] = None,
        submitted_at: Optional[datetime] = None,
    ) -> EvaluationRecord:
        row = await self.session.get(Evaluation, evaluation_id)
        if row is None:
            raise StoreError(f"evaluation {evaluation_id} vanished during update")
        row.updated_at = updated_at
        if comments is not UNSET:
            row.comments = comments
        if status is not None:
            row.status = status
        if submitted_at is not None:
            row.submitted_at = submitted_at
        await self._flush()
        return _evaluation_record(row)

    async def delete_evaluation(self, evaluation_id: int) -> None:
        # Explicit child delete keeps the cascade independent of FK support
        await self.session.execute(
            delete(EvaluationResponse).where(EvaluationResponse.evaluation_id == evaluation_id)
        )
        await self.session.execute(delete(Evaluation).where(Evaluation.id == evaluation_id))

    # Responses
    async def replace_responses(
        self, evaluation_id: int, responses: Sequence[ResponseRecord]
    ) -> None:
        await self.session.execute(
            delete(EvaluationResponse).where(EvaluationResponse.evaluation_id == evaluation_id)
        )
        self.session.add_all(
            EvaluationResponse(
                evaluation_id=evaluation_id,
                question_id=response.question_id,
                score=response.score,
            )
            for response in responses
        )
        await self._flush()

    async def list_responses(self, evaluation_id: int) -> list[ResponseRecord]:
        result = await self.session.execute(
            select(EvaluationResponse)
            .where(EvaluationResponse.evaluation_id == evaluation_id)
            .order_by(EvaluationResponse.id)
        )
        return [
            ResponseRecord(
                evaluation_id=row.evaluation_id, question_id=row.question_id, score=row.score
            )
            for row in result.scalars().all()
        ]

    async def count_responses(self, evaluation_id: int) -> int:
        result = await self.session.execute(
            select(func.count(EvaluationResponse.id)).where(
                EvaluationResponse.evaluation_id == evaluation_id
            )
        )
        return int(result.scalar_one())

    # Aggregation scans
    async def scan_scored_responses(
        self,
        *,
        submitted_only: bool = False,
        dimension_id: Optional[int] = None,
        organization_id: Optional[int] = None,
    ) -> list[ScoredResponse]:
        query = select(
            Evaluation.id,
            Evaluation.organization_id,
            Evaluation.dimension_id,
            EvaluationResponse.score,
        ).join(EvaluationResponse, EvaluationResponse.evaluation_id == Evaluation.id)

        if submitted_only:
            query = query.where(Evaluation.status == EvaluationStatus.SUBMITTED)
        if dimension_id is not None:
            query = query.where(Evaluation.dimension_id == dimension_id)
        if organization_id is not None:
            query = query.where(Evaluation.organization_id == organization_id)

        query = query.order_by(Evaluation.id, EvaluationResponse.id)
        result = await self.session.execute(query)
        return [
            ScoredResponse(
                evaluation_id=row[0],
                organization_id=row[1],
                dimension_id=row[2],
                score=row[3],
            )
            for row in result.all()
        ]

    async def _flush(self) -> None:
        try:
            await self.session.flush()
        except IntegrityError as exc:
            raise _translate_integrity_error(exc) from exc


class SQLAlchemyEvaluationStore(EvaluationStore):
    """Evaluation store backed by a relational database through SQLAlchemy."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[StoreSession]:
        session = self.session_factory()
        store_session = SQLAlchemyStoreSession(session)
        try:
            yield store_session
            if store_session.rollback_only:
                await session.rollback()
            else:
                await session.commit()
        except IntegrityError as exc:
            await session.rollback()
            raise _translate_integrity_error(exc) from exc
        except SQLAlchemyError as exc:
            await session.rollback()
            logger.error(f"Store transaction failed: {type(exc).__name__}", exc_info=True)
            raise StoreError(str(exc)) from exc
        except BaseException:
            await session.rollback()
            raise
        finally:
            await session.close()
