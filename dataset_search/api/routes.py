"""
FastAPI route handlers for the dataset search API.
"""

import asyncio
import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import Response

from .csv_export import csv_filename, results_to_csv
from .models import DatasetDetail, FacetsResponse, HealthResponse, SearchResponse, SuggestResponse
from .rate_limit import endpoint_limit, limiter
from ..common.errors import StorageUnavailableError
from ..config.search_config import CONCURRENCY_CONFIG
from ..search.query_parser import QueryParser
from ..search.search_engine import SearchEngine

logger = logging.getLogger("api")

# Global search engine instance (created on startup)
search_engine: Optional[SearchEngine] = None

# Track service start time
service_start_time = datetime.now()

query_parser = QueryParser()


# ============================================================================
# Dependency Injection
# ============================================================================

def get_search_engine() -> SearchEngine:
    """Get the global search engine instance."""
    if search_engine is None:
        raise HTTPException(
            status_code=503,
            detail="Search engine not initialized"
        )
    return search_engine


# ============================================================================
# API Router
# ============================================================================

router = APIRouter(prefix="/api/v1", tags=["search"])


def wants_csv(request: Request) -> bool:
    output = (request.query_params.get("output") or request.query_params.get("out") or "").lower()
    if output:
        return output == "csv"
    return "text/csv" in request.headers.get("accept", "")


# ============================================================================
# Search Endpoints
# ============================================================================

@router.get("/search", response_model=SearchResponse, response_model_exclude_unset=True)
@limiter.limit(endpoint_limit)
async def search_datasets(
    request: Request,
    engine: SearchEngine = Depends(get_search_engine)
):
    """
    Hybrid dataset search.

    Accepts q, bbox, polygon, time_start, time_end, variables, format,
    publisher, service, license, platform, page, size, sort and include
    as query parameters. Add output=csv (or Accept: text/csv) for a CSV
    attachment instead of JSON.
    """
    try:
        query = query_parser.parse(request.query_params)
    except ValueError as e:
        logger.warning(f"Rejected search parameters: {e}")
        raise HTTPException(
            status_code=400,
            detail={
                "error": "Invalid search parameters",
                "code": "BAD_REQUEST",
                "details": {"message": str(e)}
            }
        )

    logger.info(f"Search request: q='{query.q}', page={query.page}, size={query.size}")

    try:
        result = await asyncio.wait_for(
            engine.search(query),
            timeout=CONCURRENCY_CONFIG["search_timeout_seconds"],
        )
    except StorageUnavailableError as e:
        logger.error(f"Catalog unavailable: {e}")
        raise HTTPException(
            status_code=503,
            detail={
                "error": "Catalog unavailable",
                "code": "STORAGE_UNAVAILABLE",
                "details": {"message": str(e)}
            }
        )
    except asyncio.TimeoutError:
        logger.error(f"Search timed out for q='{query.q}'")
        raise HTTPException(
            status_code=504,
            detail={
                "error": "Search timed out",
                "code": "SEARCH_TIMEOUT",
                "details": {"timeout_seconds": CONCURRENCY_CONFIG["search_timeout_seconds"]}
            }
        )
    except Exception as e:
        logger.error(f"Search failed: {e}", exc_info=True)
        raise HTTPException(
            status_code=500,
            detail={
                "error": "Search execution failed",
                "code": "SEARCH_FAILED",
                "details": {"message": str(e)}
            }
        )

    logger.info(f"Search completed: {result['total']} total, {len(result['results'])} returned")

    if wants_csv(request):
        return Response(
            content=results_to_csv(result["results"]),
            media_type="text/csv; charset=utf-8",
            headers={"Content-Disposition": f'attachment; filename="{csv_filename()}"'},
        )

    return result


@router.get("/datasets/{dataset_id}", response_model=DatasetDetail)
async def get_dataset(
    dataset_id: str,
    engine: SearchEngine = Depends(get_search_engine)
):
    """Full canonical record for one dataset."""
    try:
        loop = asyncio.get_running_loop()
        record = await loop.run_in_executor(engine.executor, engine.get_dataset, dataset_id)
    except StorageUnavailableError as e:
        raise HTTPException(
            status_code=503,
            detail={
                "error": "Catalog unavailable",
                "code": "STORAGE_UNAVAILABLE",
                "details": {"message": str(e)}
            }
        )

    if record is None:
        raise HTTPException(
            status_code=404,
            detail={
                "error": "Dataset not found",
                "code": "NOT_FOUND",
                "details": {"id": dataset_id}
            }
        )
    return record


@router.get("/suggest", response_model=SuggestResponse)
async def suggest(
    type: str = Query("variable", description="variable, publisher or platform"),
    prefix: str = Query("", max_length=200, description="Case-insensitive prefix"),
    engine: SearchEngine = Depends(get_search_engine)
):
    """Autocomplete values for the search form."""
    try:
        loop = asyncio.get_running_loop()
        items = await loop.run_in_executor(engine.executor, engine.suggest, type, prefix)
    except ValueError as e:
        raise HTTPException(
            status_code=400,
            detail={
                "error": "Invalid suggestion type",
                "code": "BAD_REQUEST",
                "details": {"message": str(e)}
            }
        )
    except StorageUnavailableError as e:
        raise HTTPException(
            status_code=503,
            detail={
                "error": "Catalog unavailable",
                "code": "STORAGE_UNAVAILABLE",
                "details": {"message": str(e)}
            }
        )

    return {"type": type, "items": items}


# ============================================================================
# Statistics Endpoints
# ============================================================================

@router.get("/stats/facets", response_model=FacetsResponse)
@limiter.limit(endpoint_limit)
async def get_facets(
    request: Request,
    limit: int = Query(20, ge=1, le=100, description="Maximum values per facet"),
    engine: SearchEngine = Depends(get_search_engine)
):
    """Dataset counts by publisher, format, service, variable and decade."""
    try:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(engine.executor, engine.get_facets, limit)

    except StorageUnavailableError as e:
        raise HTTPException(
            status_code=503,
            detail={
                "error": "Catalog unavailable",
                "code": "STORAGE_UNAVAILABLE",
                "details": {"message": str(e)}
            }
        )
    except Exception as e:
        logger.error(f"Failed to fetch facets: {e}", exc_info=True)
        raise HTTPException(
            status_code=500,
            detail={
                "error": "Failed to fetch facets",
                "code": "FACETS_FAILED",
                "details": {"message": str(e)}
            }
        )


# ============================================================================
# Health Check Endpoint
# ============================================================================

@router.get("/health", response_model=HealthResponse)
async def health_check(
    engine: SearchEngine = Depends(get_search_engine)
):
    """Service status and component checks."""
    loop = asyncio.get_running_loop()
    components = await loop.run_in_executor(engine.executor, engine.health)
    uptime = (datetime.now() - service_start_time).total_seconds()

    status = "healthy"
    if components["database"] != "ok":
        status = "unhealthy"
    elif components["embedder_degraded"]:
        status = "degraded"

    return {
        "status": status,
        "uptime_seconds": int(uptime),
        **components,
    }


# ============================================================================
# Initialization
# ============================================================================

def init_search_engine(db_path: str = None, index_path: str = None):
    """
    Open the catalog and vector index behind the API.

    Called once from the application lifespan.
    """
    global search_engine

    logger.info("Initializing search engine...")
    search_engine = SearchEngine(db_path=db_path, index_path=index_path)
    logger.info("Search engine initialized successfully")


def shutdown_search_engine():
    """
    Cleanup search engine on shutdown.

    This should be called during application shutdown.
    """
    global search_engine

    if search_engine:
        logger.info("Shutting down search engine...")
        search_engine.close()
        search_engine = None
