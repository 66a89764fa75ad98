"""
ASGI application: the dataset search API mounted under /api/v1.

Run with ``dataset-search-api`` or ``uvicorn dataset_search.api.main:app``.
"""

import logging
import logging.config
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded

from .rate_limit import limiter, rate_limit_exceeded_handler
from .routes import router, init_search_engine, shutdown_search_engine
from ..config.search_config import (
    API_CONFIG,
    DATABASE_PATH,
    DEBUG,
    ENVIRONMENT,
    LOG_CONFIG,
    RATE_LIMIT_CONFIG,
    VECTOR_INDEX_PATH,
)

logging.config.dictConfig(LOG_CONFIG)
logger = logging.getLogger("api")

API_VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the catalog and vector index for the life of the process."""
    logger.info(f"Starting dataset search API ({ENVIRONMENT}, debug={DEBUG})")
    logger.info(f"Catalog: {DATABASE_PATH}; vector index: {VECTOR_INDEX_PATH}")

    try:
        init_search_engine(db_path=DATABASE_PATH, index_path=VECTOR_INDEX_PATH)
    except Exception as e:
        logger.error(f"Could not open the catalog or vector index: {e}")
        raise

    if RATE_LIMIT_CONFIG["enabled"]:
        logger.info(f"Rate limit: {RATE_LIMIT_CONFIG['limit']} per client")

    yield

    shutdown_search_engine()
    logger.info("Dataset search API stopped")


app = FastAPI(
    title="Dataset Search API",
    description="Hybrid lexical/semantic search over a scientific dataset catalog",
    version=API_VERSION,
    lifespan=lifespan,
    docs_url="/docs" if DEBUG else None,
    redoc_url="/redoc" if DEBUG else None
)

# Browser clients only read from the API
app.add_middleware(
    CORSMiddleware,
    allow_origins=API_CONFIG["cors_origins"],
    allow_credentials=True,
    allow_methods=["GET", "OPTIONS"],
    allow_headers=["*"],
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

app.include_router(router)


@app.get("/")
async def root():
    """Service index: where each endpoint lives and what it takes."""
    return {
        "name": "Dataset Search API",
        "version": API_VERSION,
        "endpoints": {
            "search": {
                "path": "/api/v1/search",
                "params": "q, bbox, polygon, time_start, time_end, variables, format, publisher, "
                          "service, license, platform, page, size, sort, include, output",
            },
            "dataset": {"path": "/api/v1/datasets/{id}"},
            "suggest": {"path": "/api/v1/suggest", "params": "type=variable|publisher|platform, prefix"},
            "facets": {"path": "/api/v1/stats/facets", "params": "limit"},
            "health": {"path": "/api/v1/health"},
        },
        "rate_limit": RATE_LIMIT_CONFIG["limit"] if RATE_LIMIT_CONFIG["enabled"] else None,
        "documentation": "/docs" if DEBUG else None
    }


@app.exception_handler(404)
async def not_found_handler(request, exc):
    """Unknown paths and missing datasets, in the API error format."""
    detail = getattr(exc, "detail", None)
    if isinstance(detail, dict):
        return JSONResponse(status_code=404, content=detail)

    return JSONResponse(
        status_code=404,
        content={
            "error": "Resource not found",
            "code": "NOT_FOUND",
            "details": {"path": str(request.url.path)}
        }
    )


@app.exception_handler(500)
async def internal_error_handler(request, exc):
    logger.error(f"Unhandled error on {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "code": "INTERNAL_ERROR",
            "details": {"message": str(exc) if DEBUG else "An unexpected error occurred"}
        }
    )


def run():
    """Serve the API with uvicorn using API_CONFIG."""
    import uvicorn

    uvicorn.run(
        "dataset_search.api.main:app",
        host=API_CONFIG["host"],
        port=API_CONFIG["port"],
        reload=API_CONFIG["reload"],
        log_level=API_CONFIG["log_level"]
    )


if __name__ == "__main__":
    run()
