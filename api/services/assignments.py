"""
Rater to university binding.

A rater evaluates exactly one university at a time. The binding is created by
the first evaluation and cleared once the rater has no evaluation left, which
lets them move on to another university.

The session-level functions run inside a caller's transaction so the binding
commits or rolls back together with the evaluation write that caused it.
"""

import logging
from typing import Optional

from api.schemas.statistics import AssignmentView
from api.services.catalog import organization_summary
from api.services.store import (
    AssignmentRecord,
    EvaluationStore,
    StoreSession,
    guard_store_errors,
)
from core.exceptions import ErrorCode, ServiceError, ServiceResult, StoreError

logger = logging.getLogger(__name__)


async def get_assigned_organization(session: StoreSession, rater_id: str) -> Optional[int]:
    """Return the id of the university the rater is bound to, if any."""
    assignment = await session.get_assignment(rater_id)
    if assignment is None:
        return None
    return assignment.assigned_organization_id


async def bind_organization(
    session: StoreSession, rater_id: str, organization_id: int
) -> ServiceResult[AssignmentRecord]:
    """
    Bind a rater to a university.

    Creates the binding when the rater has none, succeeds without writing when
    it already points at ``organization_id`` and fails with
    ``ORGANIZATION_MISMATCH`` when it points elsewhere.

    Args:
        session: Open store session
        rater_id: Verified rater identifier
        organization_id: University the rater wants to evaluate

    Returns:
        The current assignment, or an ``ORGANIZATION_MISMATCH`` error
    """
    assignment = await session.get_assignment(rater_id, for_update=True)
    current = assignment.assigned_organization_id if assignment else None

    if current == organization_id:
        return ServiceResult.ok(assignment)

    if current is not None:
        logger.info(
            f"Rater {rater_id} is bound to university {current}, "
            f"refused university {organization_id}"
        )
        return ServiceResult.fail(
            ServiceError(
                ErrorCode.ORGANIZATION_MISMATCH,
                f"Rater is assigned to university {current} and cannot evaluate "
                f"university {organization_id}",
                field="organization_id",
            )
        )

    record = await session.save_assignment(rater_id, organization_id)
    logger.info(f"Rater {rater_id} bound to university {organization_id}")
    return ServiceResult.ok(record)


async def clear_if_no_evaluations_remain(session: StoreSession, rater_id: str) -> bool:
    """
    Drop the rater's binding when they own no evaluation anymore.

    Returns:
        True when a binding was cleared
    """
    assignment = await session.get_assignment(rater_id, for_update=True)
    if assignment is None or assignment.assigned_organization_id is None:
        return False
    if await session.count_evaluations(rater_id) > 0:
        return False

    await session.save_assignment(rater_id, None)
    logger.info(
        f"Cleared assignment of rater {rater_id} "
        f"(university {assignment.assigned_organization_id})"
    )
    return True


async def reconcile_assignment(store: EvaluationStore, rater_id: str) -> None:
    """
    Run ``clear_if_no_evaluations_remain`` in its own transaction.

    Failures are logged and swallowed: the caller's primary write already
    committed and must not be reported as failed.
    """
    try:
        async with store.transaction() as session:
            await clear_if_no_evaluations_remain(session, rater_id)
    except StoreError as e:
        logger.warning(f"Assignment reconciliation failed for rater {rater_id}: {e}")


@guard_store_errors
async def get_assignment_summary(store: EvaluationStore, rater_id: str) -> ServiceResult[AssignmentView]:
    """Return the university the rater is currently evaluating, if any."""
    async with store.transaction() as session:
        organization_id = await get_assigned_organization(session, rater_id)
        organization = (
            await session.get_organization(organization_id)
            if organization_id is not None
            else None
        )
    return ServiceResult.ok(
        AssignmentView(rater_id=rater_id, organization=organization_summary(organization))
    )
