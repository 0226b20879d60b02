"""
API Services Layer.

Evaluation lifecycle, assignment, statistics and catalog operations. Every
function takes the injected ``EvaluationStore`` and returns a
``ServiceResult``.
"""

from api.services import assignments, catalog, evaluations, statistics
from api.services.store import EvaluationStore, StoreSession

__all__ = [
    "assignments",
    "catalog",
    "evaluations",
    "statistics",
    "EvaluationStore",
    "StoreSession",
]
