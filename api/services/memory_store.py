"""In-memory evaluation store used by the test suite and ``STORE_BACKEND=memory``."""

import asyncio
import copy
from contextlib import asynccontextmanager
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, AsyncIterator, Iterable, Optional, Sequence

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
)
from core.exceptions import StoreError, UniqueViolation
from database.models.evaluations import EvaluationStatus


@dataclass
class _State:
    organizations: dict[int, OrganizationRecord] = field(default_factory=dict)
    dimensions: dict[int, DimensionRecord] = field(default_factory=dict)
    questions: dict[int, QuestionRecord] = field(default_factory=dict)
    assignments: dict[str, AssignmentRecord] = field(default_factory=dict)
    evaluations: dict[int, EvaluationRecord] = field(default_factory=dict)
    responses: dict[int, list[ResponseRecord]] = field(default_factory=dict)
    next_evaluation_id: int = 1


class InMemoryStoreSession(StoreSession):
    """Store session operating on the state of an ``InMemoryEvaluationStore``."""

    def __init__(self, store: "InMemoryEvaluationStore"):
        super().__init__()
        self._store = store

    @property
    def _state(self) -> _State:
        return self._store._state

    # Reference catalog
    async def list_organizations(self) -> list[OrganizationRecord]:
        return sorted(self._state.organizations.values(), key=lambda o: o.id)

    async def get_organization(self, organization_id: int) -> Optional[OrganizationRecord]:
        return self._state.organizations.get(organization_id)

    async def search_organizations(self, needle: str, limit: int) -> list[OrganizationRecord]:
        needle = needle.casefold()
        matches = [
            o
            for o in self._state.organizations.values()
            if needle in o.name.casefold() or (o.city and needle in o.city.casefold())
        ]
        matches.sort(key=lambda o: (o.name.casefold(), o.id))
        return matches[:limit]

    async def list_dimensions(self) -> list[DimensionRecord]:
        return sorted(self._state.dimensions.values(), key=lambda d: d.id)

    async def get_dimension(self, dimension_id: int) -> Optional[DimensionRecord]:
        return self._state.dimensions.get(dimension_id)

    async def list_questions(self, dimension_id: int) -> list[QuestionRecord]:
        questions = [q for q in self._state.questions.values() if q.dimension_id == dimension_id]
        return sorted(questions, key=lambda q: (q.order_index, q.id))

    async def get_questions(self, question_ids: Iterable[int]) -> dict[int, QuestionRecord]:
        return {
            qid: self._state.questions[qid]
            for qid in set(question_ids)
            if qid in self._state.questions
        }

    # Assignments
    async def get_assignment(
        self, rater_id: str, for_update: bool = False
    ) -> Optional[AssignmentRecord]:
        # Transactions already run one at a time under the store lock
        return self._state.assignments.get(rater_id)

    async def save_assignment(
        self, rater_id: str, organization_id: Optional[int]
    ) -> AssignmentRecord:
        if organization_id is not None and organization_id not in self._state.organizations:
            raise StoreError(f"foreign key violation: universities.id={organization_id}")
        record = AssignmentRecord(rater_id=rater_id, assigned_organization_id=organization_id)
        self._state.assignments[rater_id] = record
        return record

    # Evaluations
    async def find_evaluation(
        self, rater_id: str, organization_id: int, dimension_id: int
    ) -> Optional[EvaluationRecord]:
        for evaluation in self._state.evaluations.values():
            if (
                evaluation.rater_id == rater_id
                and evaluation.organization_id == organization_id
                and evaluation.dimension_id == dimension_id
            ):
                return evaluation
        return None

    async def get_evaluation(
        self, evaluation_id: int, rater_id: str
    ) -> Optional[EvaluationRecord]:
        evaluation = self._state.evaluations.get(evaluation_id)
        if evaluation is None or evaluation.rater_id != rater_id:
            return None
        return evaluation

    async def list_evaluations(self, rater_id: str) -> list[EvaluationRecord]:
        mine = [e for e in self._state.evaluations.values() if e.rater_id == rater_id]
        return sorted(mine, key=lambda e: (e.created_at, e.id), reverse=True)

    async def count_evaluations(self, rater_id: str) -> int:
        return sum(1 for e in self._state.evaluations.values() if e.rater_id == rater_id)

    async def insert_evaluation(
        self,
        rater_id: str,
        organization_id: int,
        dimension_id: int,
        comments: Optional[str],
        now: datetime,
    ) -> EvaluationRecord:
        # Same guarantee as the unique constraint of the SQL schema
        for evaluation in self._state.evaluations.values():
            if (evaluation.rater_id, evaluation.organization_id, evaluation.dimension_id) == (
                rater_id,
                organization_id,
                dimension_id,
            ):
                raise UniqueViolation(
                    "duplicate key value violates unique constraint "
                    "uq_evaluations_rater_organization_dimension"
                )
        if organization_id not in self._state.organizations:
            raise StoreError(f"foreign key violation: universities.id={organization_id}")
        if dimension_id not in self._state.dimensions:
            raise StoreError(f"foreign key violation: dimensions.id={dimension_id}")

        record = EvaluationRecord(
            id=self._state.next_evaluation_id,
            rater_id=rater_id,
            organization_id=organization_id,
            dimension_id=dimension_id,
            status=EvaluationStatus.DRAFT,
            comments=comments,
            submitted_at=None,
            created_at=now,
            updated_at=now,
        )
        self._state.next_evaluation_id += 1
        self._state.evaluations[record.id] = record
        self._state.responses[record.id] = []
        return record

    async def update_evaluation(
        self,
        evaluation_id: int,
        *,
        updated_at: datetime,
        comments: Any = UNSET,
        status: Optional[EvaluationStatus] = None,
        submitted_at: Optional[datetime] = None,
    ) -> EvaluationRecord:
        current = self._state.evaluations.get(evaluation_id)
        if current is None:
            raise StoreError(f"evaluation {evaluation_id} vanished during update")
        changes: dict[str, Any] = {"updated_at": updated_at}
        if comments is not UNSET:
            changes["comments"] = comments
        if status is not None:
            changes["status"] = status
        if submitted_at is not None:
            changes["submitted_at"] = submitted_at
        updated = replace(current, **changes)
        self._state.evaluations[evaluation_id] = updated
        return updated

    async def delete_evaluation(self, evaluation_id: int) -> None:
        self._state.evaluations.pop(evaluation_id, None)
        self._state.responses.pop(evaluation_id, None)

    # Responses
    async def replace_responses(
        self, evaluation_id: int, responses: Sequence[ResponseRecord]
    ) -> None:
        if evaluation_id not in self._state.evaluations:
            raise StoreError(f"foreign key violation: evaluations.id={evaluation_id}")
        seen: set[int] = set()
        for response in responses:
            if response.question_id in seen:
                raise UniqueViolation(
                    "duplicate key value violates unique constraint "
                    "uq_evaluation_responses_question"
                )
            if response.question_id not in self._state.questions:
                raise StoreError(f"foreign key violation: questions.id={response.question_id}")
            if not 1 <= response.score <= 5:
                raise StoreError("check constraint ck_evaluation_responses_score violated")
            seen.add(response.question_id)
        self._state.responses[evaluation_id] = list(responses)

    async def list_responses(self, evaluation_id: int) -> list[ResponseRecord]:
        return list(self._state.responses.get(evaluation_id, []))

    async def count_responses(self, evaluation_id: int) -> int:
        return len(self._state.responses.get(evaluation_id, []))

    # Aggregation scans
    async def scan_scored_responses(
        self,
        *,
        submitted_only: bool = False,
        dimension_id: Optional[int] = None,
        organization_id: Optional[int] = None,
    ) -> list[ScoredResponse]:
        rows: list[ScoredResponse] = []
        for evaluation_id in sorted(self._state.evaluations):
            evaluation = self._state.evaluations[evaluation_id]
            if submitted_only and evaluation.status != EvaluationStatus.SUBMITTED:
                continue
            if dimension_id is not None and evaluation.dimension_id != dimension_id:
                continue
            if organization_id is not None and evaluation.organization_id != organization_id:
                continue
            for response in self._state.responses.get(evaluation_id, []):
                rows.append(
                    ScoredResponse(
                        evaluation_id=evaluation.id,
                        organization_id=evaluation.organization_id,
                        dimension_id=evaluation.dimension_id,
                        score=response.score,
                    )
                )
        return rows


class InMemoryEvaluationStore(EvaluationStore):
    """
    Process-local store. Transactions are serialized with a lock and rolled
    back by restoring a snapshot of the whole state.
    """

    session_class = InMemoryStoreSession

    def __init__(self):
        self._state = _State()
        self._lock = asyncio.Lock()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[StoreSession]:
        async with self._lock:
            snapshot = copy.deepcopy(self._state)
            session = self.session_class(self)
            try:
                yield session
            except BaseException:
                self._state = snapshot
                raise
            if session.rollback_only:
                self._state = snapshot

    # Reference data seeding (the catalog is read-only to the services)
    def add_organization(
        self, name: str, city: Optional[str] = None, region: Optional[str] = None,
        organization_id: Optional[int] = None,
    ) -> OrganizationRecord:
        record = OrganizationRecord(
            id=organization_id or self._next_id(self._state.organizations),
            name=name,
            city=city,
            region=region,
        )
        self._state.organizations[record.id] = record
        return record

    def add_dimension(
        self, name: str, code: str, dimension_id: Optional[int] = None
    ) -> DimensionRecord:
        record = DimensionRecord(
            id=dimension_id or self._next_id(self._state.dimensions), name=name, code=code
        )
        self._state.dimensions[record.id] = record
        return record

    def add_question(
        self,
        dimension_id: int,
        text: str,
        order_index: int,
        scale_labels: Optional[dict[int, str]] = None,
        question_id: Optional[int] = None,
    ) -> QuestionRecord:
        record = QuestionRecord(
            id=question_id or self._next_id(self._state.questions),
            dimension_id=dimension_id,
            text=text,
            order_index=order_index,
            scale_labels=dict(scale_labels or {}),
        )
        self._state.questions[record.id] = record
        return record

    @staticmethod
    def _next_id(table: dict[int, Any]) -> int:
        return max(table, default=0) + 1
