"""
Reference data seeding.

Run with ``python -m database.seed`` after the migrations to load the three
evaluation dimensions. Universities and questions are loaded by the data team.
"""

import asyncio
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from database.engine import AsyncSessionLocal, close_db
from database.models.dimensions import Dimension

logger = logging.getLogger(__name__)

# (name, code) in id order
DIMENSIONS = [
    ("Governance", "governance"),
    ("Social", "social"),
    ("Environmental", "environmental"),
]


async def seed_dimensions(session: AsyncSession) -> int:
    """
    Insert the dimensions that are missing, matched by code.

    Returns:
        Number of dimensions inserted
    """
    result = await session.execute(select(Dimension.code))
    existing = set(result.scalars().all())

    missing = [Dimension(name=name, code=code) for name, code in DIMENSIONS if code not in existing]
    session.add_all(missing)
    await session.commit()

    logger.info(f"Seeded {len(missing)} dimensions ({len(existing)} already present)")
    return len(missing)


def seed_memory_store(store) -> None:
    """Load the dimensions into an ``InMemoryEvaluationStore``."""
    for dimension_id, (name, code) in enumerate(DIMENSIONS, start=1):
        store.add_dimension(name, code, dimension_id=dimension_id)


async def main():
    try:
        async with AsyncSessionLocal() as session:
            await seed_dimensions(session)
    finally:
        await close_db()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(main())
