"""
FastAPI application initialization and configuration.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.dependencies import close_store, get_store
from api.routes import health
from api.routes.v1 import dimensions, evaluations, questions, raters, universities
from core.config import settings
from core.middleware import (
    ErrorHandlingMiddleware,
    StructuredLoggingMiddleware,
    setup_error_handlers,
    setup_logging,
)
from database.engine import close_db, init_db

# Setup structured logging (do this first, before anything else)
setup_logging(
    log_level=settings.log_level,
    json_logs=settings.json_logs,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifespan events."""
    logger.info(
        f"Starting {settings.app_name} in {settings.app_env} environment "
        f"(store backend: {settings.store_backend})"
    )
    if settings.store_backend == "sql":
        await init_db()
    get_store()

    yield

    logger.info(f"Shutting down {settings.app_name}")
    await close_store()
    if settings.store_backend == "sql":
        await close_db()


app = FastAPI(
    title=settings.app_name,
    description="University ESG evaluations: rater workflow and aggregate statistics",
    version="0.1.0",
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
    lifespan=lifespan,
)

# Setup error handlers (before middleware)
setup_error_handlers(app)

# Middleware added last runs first
# 1. CORS (innermost)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# 2. Structured logging middleware (logs all requests/responses)
app.add_middleware(
    StructuredLoggingMiddleware,
    log_request_body=settings.log_request_body,
    log_response_body=settings.log_response_body,
    max_body_size=settings.log_max_body_size,
)

# 3. Error handling middleware (outermost - catches all errors)
app.add_middleware(
    ErrorHandlingMiddleware,
    debug=settings.debug,
)

# Health check routes
app.include_router(health.router, tags=["Health"])

# API v1 routes
app.include_router(evaluations.router, prefix=settings.api_v1_prefix)
app.include_router(universities.router, prefix=settings.api_v1_prefix)
app.include_router(dimensions.router, prefix=settings.api_v1_prefix)
app.include_router(questions.router, prefix=settings.api_v1_prefix)
app.include_router(raters.router, prefix=settings.api_v1_prefix)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
