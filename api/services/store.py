"""
Evaluation store interface.

The lifecycle, assignment and statistics services never talk to a database
directly. They receive an ``EvaluationStore`` and run every operation inside
``store.transaction()``, which commits on a clean exit and rolls back when the
block raises or calls ``rollback()``.

Implementations:
- ``api.services.sql_store.SQLAlchemyEvaluationStore`` (production)
- ``api.services.memory_store.InMemoryEvaluationStore`` (tests, local runs)
"""

import functools
import logging
from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Iterable, Optional, Sequence

from core.exceptions import ServiceError, ServiceResult, StoreError
from database.models.evaluations import EvaluationStatus

logger = logging.getLogger(__name__)

# Marks an optional update argument that was not passed
UNSET: Any = object()

# ==================== Records ===================== #
@dataclass(frozen=True)
class OrganizationRecord:
    id: int
    name: str
    city: Optional[str] = None
    region: Optional[str] = None


@dataclass(frozen=True)
class DimensionRecord:
    id: int
    name: str
    code: str


@dataclass(frozen=True)
class QuestionRecord:
    id: int
    dimension_id: int
    text: str
    order_index: int
    scale_labels: dict[int, str] = field(default_factory=dict)


@dataclass(frozen=True)
class AssignmentRecord:
    rater_id: str
    assigned_organization_id: Optional[int]


@dataclass(frozen=True)
class EvaluationRecord:
    id: int
    rater_id: str
    organization_id: int
    dimension_id: int
    status: EvaluationStatus
    comments: Optional[str]
    submitted_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class ResponseRecord:
    evaluation_id: int
    question_id: int
    score: int


@dataclass(frozen=True)
class ScoredResponse:
    """A response joined with the key columns of its parent evaluation."""

    evaluation_id: int
    organization_id: int
    dimension_id: int
    score: int


def normalize_scale_labels(raw: Optional[dict]) -> dict[int, str]:
    """JSON columns come back with string keys; the domain uses ints."""
    if not raw:
        return {}
    return {int(level): str(label) for level, label in raw.items()}


# ==================== Interface ===================== #
class StoreSession(ABC):
    """Operations available inside one store transaction."""

    def __init__(self):
        self.rollback_only = False

    def rollback(self) -> None:
        """Discard every write of this transaction when the block exits."""
        self.rollback_only = True

    # Reference catalog
    @abstractmethod
    async def list_organizations(self) -> list[OrganizationRecord]: ...

    @abstractmethod
    async def get_organization(self, organization_id: int) -> Optional[OrganizationRecord]: ...

    @abstractmethod
    async def search_organizations(self, needle: str, limit: int) -> list[OrganizationRecord]:
        """Universities whose name or city contains ``needle`` in any case, ordered by name."""

    @abstractmethod
    async def list_dimensions(self) -> list[DimensionRecord]: ...

    @abstractmethod
    async def get_dimension(self, dimension_id: int) -> Optional[DimensionRecord]: ...

    @abstractmethod
    async def list_questions(self, dimension_id: int) -> list[QuestionRecord]:
        """Questions of a dimension ordered by ``order_index``."""

    @abstractmethod
    async def get_questions(self, question_ids: Iterable[int]) -> dict[int, QuestionRecord]: ...

    # Assignments
    @abstractmethod
    async def get_assignment(
        self, rater_id: str, for_update: bool = False
    ) -> Optional[AssignmentRecord]:
        """
        Return the assignment row of a rater.

        With ``for_update`` the row stays locked until the transaction ends, so
        binding and clearing for the same rater never interleave.
        """

    @abstractmethod
    async def save_assignment(
        self, rater_id: str, organization_id: Optional[int]
    ) -> AssignmentRecord:
        """Create or update the assignment row of a rater."""

    # Evaluations
    @abstractmethod
    async def find_evaluation(
        self, rater_id: str, organization_id: int, dimension_id: int
    ) -> Optional[EvaluationRecord]: ...

    @abstractmethod
    async def get_evaluation(
        self, evaluation_id: int, rater_id: str
    ) -> Optional[EvaluationRecord]:
        """Return the evaluation only if it belongs to ``rater_id``."""

    @abstractmethod
    async def list_evaluations(self, rater_id: str) -> list[EvaluationRecord]:
        """Evaluations of a rater, newest first."""

    @abstractmethod
    async def count_evaluations(self, rater_id: str) -> int: ...

    @abstractmethod
    async def insert_evaluation(
        self,
        rater_id: str,
        organization_id: int,
        dimension_id: int,
        comments: Optional[str],
        now: datetime,
    ) -> EvaluationRecord:
        """Insert a draft. Raises ``UniqueViolation`` if the key already exists."""

    @abstractmethod
    async def update_evaluation(
        self,
        evaluation_id: int,
        *,
        updated_at: datetime,
        comments: Any = UNSET,
        status: Optional[EvaluationStatus] = None,
        submitted_at: Optional[datetime] = None,
    ) -> EvaluationRecord:
        """Update the given fields; ``comments`` is only written when passed."""

    @abstractmethod
    async def delete_evaluation(self, evaluation_id: int) -> None:
        """Delete an evaluation together with its responses."""

    # Responses
    @abstractmethod
    async def replace_responses(
        self, evaluation_id: int, responses: Sequence[ResponseRecord]
    ) -> None:
        """Atomically swap the full response set of an evaluation."""

    @abstractmethod
    async def list_responses(self, evaluation_id: int) -> list[ResponseRecord]: ...

    @abstractmethod
    async def count_responses(self, evaluation_id: int) -> int: ...

    # Aggregation scans
    @abstractmethod
    async def scan_scored_responses(
        self,
        *,
        submitted_only: bool = False,
        dimension_id: Optional[int] = None,
        organization_id: Optional[int] = None,
    ) -> list[ScoredResponse]:
        """Every response joined with its evaluation key, in a stable order."""


class EvaluationStore(ABC):
    """Factory of transactional ``StoreSession`` objects."""

    @abstractmethod
    def transaction(self) -> AbstractAsyncContextManager[StoreSession]:
        """
        Open a transaction.

        Commits when the block exits normally unless ``rollback()`` was called.
        Rolls back and re-raises on exceptions; driver failures surface as
        ``core.exceptions.StoreError``.
        """

    async def close(self) -> None:
        """Release resources held by the store."""
        return None


def guard_store_errors(func: Callable[..., Awaitable[ServiceResult]]):
    """
    Turn a ``StoreError`` escaping a service function into a ``STORE_ERROR``
    result. The driver message is logged, never returned to the caller.
    """

    @functools.wraps(func)
    async def wrapper(*args, **kwargs) -> ServiceResult:
        try:
            return await func(*args, **kwargs)
        except StoreError as exc:
            logger.error(
                f"Store failure in {func.__module__}.{func.__name__}: {type(exc).__name__}",
                exc_info=True,
            )
            return ServiceResult.fail(ServiceError.store_failure())

    return wrapper
