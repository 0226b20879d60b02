"""FastAPI dependencies for dependency injection."""

import logging
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from api.services.memory_store import InMemoryEvaluationStore
from api.services.sql_store import SQLAlchemyEvaluationStore
from api.services.store import EvaluationStore
from core.config import settings
from core.identity import TokenExpiredError, TokenInvalidError, verify_rater_token
from database.engine import AsyncSessionLocal
from database.seed import seed_memory_store

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)

_store: Optional[EvaluationStore] = None


def build_store(backend: Optional[str] = None) -> EvaluationStore:
    """
    Create the evaluation store for the configured backend.

    The memory backend starts with the dimensions seeded and no universities.
    """
    backend = backend or settings.store_backend
    if backend == "memory":
        store = InMemoryEvaluationStore()
        seed_memory_store(store)
        return store
    return SQLAlchemyEvaluationStore(AsyncSessionLocal)


def get_store() -> EvaluationStore:
    """Process-wide evaluation store; override in tests via ``dependency_overrides``."""
    global _store
    if _store is None:
        _store = build_store()
        logger.info(f"Evaluation store initialized ({type(_store).__name__})")
    return _store


async def close_store() -> None:
    global _store
    if _store is not None:
        await _store.close()
        _store = None


async def require_rater(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> str:
    """
    Require a verified rater.

    Returns:
        The rater id carried by the bearer token
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        rater_id = verify_rater_token(credentials.credentials)
    except TokenExpiredError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication token has expired",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except TokenInvalidError as e:
        logger.warning(f"Rejected bearer token: {e}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    request.state.rater_id = rater_id
    return rater_id
