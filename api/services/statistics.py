"""
Aggregate statistics over evaluation responses.

Nothing is cached: every call scans the matching responses and recomputes.
Sums are accumulated unrounded and only the displayed averages are rounded to
two decimals.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

from api.schemas.statistics import DimensionAverage, OrganizationScorecard, RankingEntry
from api.services.catalog import organization_summary
from api.services.store import (
    DimensionRecord,
    EvaluationStore,
    OrganizationRecord,
    ScoredResponse,
    guard_store_errors,
)
from core.config import settings
from core.exceptions import ServiceError, ServiceResult

logger = logging.getLogger(__name__)

AVERAGE_PRECISION = 2


@dataclass
class ScoreAccumulator:
    """Running sum of scores and the distinct evaluations they came from."""

    total: int = 0
    count: int = 0
    evaluations: set[int] = field(default_factory=set)

    def add(self, row: ScoredResponse) -> None:
        self.total += row.score
        self.count += 1
        self.evaluations.add(row.evaluation_id)

    @property
    def mean(self) -> Optional[float]:
        if self.count == 0:
            return None
        return self.total / self.count

    @property
    def average(self) -> Optional[float]:
        mean = self.mean
        return round(mean, AVERAGE_PRECISION) if mean is not None else None

    @property
    def total_evaluations(self) -> int:
        return len(self.evaluations)


def _resolve_submitted_only(submitted_only: Optional[bool]) -> bool:
    if submitted_only is None:
        return settings.statistics_submitted_only
    return submitted_only


def _dimension_averages(
    dimensions: Iterable[DimensionRecord], rows: Iterable[ScoredResponse]
) -> list[DimensionAverage]:
    """One entry per dimension, in catalog order, including dimensions without data."""
    accumulators: dict[int, ScoreAccumulator] = {}
    for row in rows:
        accumulators.setdefault(row.dimension_id, ScoreAccumulator()).add(row)

    averages = []
    for dimension in dimensions:
        acc = accumulators.get(dimension.id, ScoreAccumulator())
        averages.append(
            DimensionAverage(
                dimension_id=dimension.id,
                dimension_name=dimension.name,
                dimension_code=dimension.code,
                average_score=acc.average,
                total_evaluations=acc.total_evaluations,
            )
        )
    return averages


def _scorecard(
    organization: OrganizationRecord,
    dimensions: list[DimensionRecord],
    rows: Iterable[ScoredResponse],
) -> OrganizationScorecard:
    return OrganizationScorecard(
        organization=organization_summary(organization),
        dimensions=_dimension_averages(dimensions, rows),
    )


@guard_store_errors
async def global_dimension_averages(
    store: EvaluationStore, submitted_only: Optional[bool] = None
) -> ServiceResult[list[DimensionAverage]]:
    """
    Average score of every dimension across all universities.

    Args:
        store: Evaluation store
        submitted_only: Ignore drafts; defaults to ``STATISTICS_SUBMITTED_ONLY``

    Returns:
        One entry per dimension ordered by dimension id
    """
    submitted_only = _resolve_submitted_only(submitted_only)
    async with store.transaction() as session:
        dimensions = await session.list_dimensions()
        rows = await session.scan_scored_responses(submitted_only=submitted_only)
    return ServiceResult.ok(_dimension_averages(dimensions, rows))


@guard_store_errors
async def university_ranking(
    store: EvaluationStore,
    dimension_id: Optional[int] = None,
    submitted_only: Optional[bool] = None,
    limit: Optional[int] = None,
) -> ServiceResult[list[RankingEntry]]:
    """
    Top universities by mean score.

    Without ``dimension_id`` the mean is taken over the responses of every
    dimension pooled together, not as an average of per-dimension averages.
    Ties keep the order in which universities first appear in the scan.

    Args:
        store: Evaluation store
        dimension_id: Restrict the ranking to one dimension
        submitted_only: Ignore drafts; defaults to ``STATISTICS_SUBMITTED_ONLY``
        limit: Maximum number of entries; defaults to ``RANKING_LIMIT``

    Returns:
        Ranking entries with ranks 1..N
    """
    submitted_only = _resolve_submitted_only(submitted_only)
    limit = settings.ranking_limit if limit is None else limit

    async with store.transaction() as session:
        dimension = None
        if dimension_id is not None:
            dimension = await session.get_dimension(dimension_id)
            if dimension is None:
                logger.info(f"Ranking requested for unknown dimension {dimension_id}")
                return ServiceResult.ok([])
        rows = await session.scan_scored_responses(
            submitted_only=submitted_only, dimension_id=dimension_id
        )
        organizations = {o.id: o for o in await session.list_organizations()}

    # dicts keep insertion order, so ties stay in first-seen order
    accumulators: dict[int, ScoreAccumulator] = {}
    for row in rows:
        accumulators.setdefault(row.organization_id, ScoreAccumulator()).add(row)

    ordered = sorted(accumulators.items(), key=lambda item: item[1].mean, reverse=True)

    ranking = []
    for position, (organization_id, acc) in enumerate(ordered[:limit], start=1):
        organization = organizations.get(organization_id)
        ranking.append(
            RankingEntry(
                rank=position,
                organization_id=organization_id,
                organization_name=organization.name if organization else str(organization_id),
                city=organization.city if organization else None,
                region=organization.region if organization else None,
                average_score=acc.average,
                total_evaluations=acc.total_evaluations,
                dimension_name=dimension.name if dimension else None,
            )
        )
    return ServiceResult.ok(ranking)


@guard_store_errors
async def organization_scorecard(
    store: EvaluationStore, organization_id: int, submitted_only: Optional[bool] = None
) -> ServiceResult[OrganizationScorecard]:
    """Per-dimension averages of one university; NOT_FOUND if it does not exist."""
    submitted_only = _resolve_submitted_only(submitted_only)
    async with store.transaction() as session:
        organization = await session.get_organization(organization_id)
        if organization is None:
            return ServiceResult.fail(
                ServiceError.not_found(f"University {organization_id} not found")
            )
        dimensions = await session.list_dimensions()
        rows = await session.scan_scored_responses(
            submitted_only=submitted_only, organization_id=organization_id
        )
    return ServiceResult.ok(_scorecard(organization, dimensions, rows))


@guard_store_errors
async def organizations_with_scores(
    store: EvaluationStore, submitted_only: Optional[bool] = None
) -> ServiceResult[list[OrganizationScorecard]]:
    """Every university with every dimension, pairs without data as null/0."""
    submitted_only = _resolve_submitted_only(submitted_only)
    async with store.transaction() as session:
        organizations = await session.list_organizations()
        dimensions = await session.list_dimensions()
        rows = await session.scan_scored_responses(submitted_only=submitted_only)

    by_organization: dict[int, list[ScoredResponse]] = {}
    for row in rows:
        by_organization.setdefault(row.organization_id, []).append(row)

    return ServiceResult.ok(
        [
            _scorecard(organization, dimensions, by_organization.get(organization.id, []))
            for organization in organizations
        ]
    )
