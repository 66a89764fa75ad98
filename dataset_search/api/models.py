"""
Pydantic models for API responses.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


# ============================================================================
# Search Models
# ============================================================================

class TimeRange(BaseModel):
    start: Optional[str] = Field(None, description="Temporal extent start (ISO-8601)")
    end: Optional[str] = Field(None, description="Temporal extent end (ISO-8601)")


class Spatial(BaseModel):
    bbox: Optional[List[float]] = Field(None, description="[minLon, minLat, maxLon, maxLat]")


class DistributionSummary(BaseModel):
    url: str = Field(..., description="Access URL")
    format: str = Field("", description="Data format")
    service: str = Field(..., description="Access service")


class SearchResult(BaseModel):
    """One dataset in a result page."""

    id: str = Field(..., description="Dataset ID")
    doi: Optional[str] = Field(None, description="DOI")
    license: Optional[str] = Field(None, description="License")
    sourceSystem: Optional[str] = Field(None, description="Harvest source")
    title: str = Field(..., description="Dataset title")
    publisher: Optional[str] = Field(None, description="Publisher")
    abstract: Optional[str] = Field(None, description="Abstract")
    time: TimeRange = Field(default_factory=TimeRange, description="Temporal extent")
    spatial: Spatial = Field(default_factory=Spatial, description="Spatial extent")
    variables: List[str] = Field(default_factory=list, description="Variable names")
    distributions: List[DistributionSummary] = Field(default_factory=list, description="Access points")
    variablesDetailed: Optional[List[Dict[str, Any]]] = Field(None, description="Variables (include=vars|full)")
    distributionsDetailed: Optional[List[Dict[str, Any]]] = Field(None, description="Distributions (include=vars|full)")


class SearchResponse(BaseModel):
    """Search response."""

    total: int = Field(..., description="Fused candidate count")
    page: int = Field(..., description="Current page number")
    size: int = Field(..., description="Results per page")
    results: List[SearchResult] = Field(..., description="Search results")


class VariableDetail(BaseModel):
    name: str
    standard_name: Optional[str] = None
    units: Optional[str] = None
    long_name: Optional[str] = None


class DistributionDetail(BaseModel):
    url: str
    access_service: str
    format: Optional[str] = None


class DatasetDetail(BaseModel):
    """Canonical catalog record."""

    id: str = Field(..., description="Dataset ID")
    doi: Optional[str] = None
    title: str = Field(..., description="Dataset title")
    abstract: Optional[str] = None
    publisher: Optional[str] = None
    license: Optional[str] = None
    temporal_extent: TimeRange = Field(default_factory=TimeRange)
    spatial_extent: Spatial = Field(default_factory=Spatial)
    variables: List[VariableDetail] = Field(default_factory=list)
    distributions: List[DistributionDetail] = Field(default_factory=list)
    platforms: List[str] = Field(default_factory=list)
    keywords: List[str] = Field(default_factory=list)
    source_system: Optional[str] = None
    updated_at: Optional[str] = None


class SuggestResponse(BaseModel):
    """Autocomplete values."""

    type: str = Field(..., description="Suggestion type")
    items: List[str] = Field(default_factory=list, description="Matching values, priority first")


# ============================================================================
# Stats Models
# ============================================================================

class FacetValue(BaseModel):
    value: Any = Field(..., description="Facet value")
    count: int = Field(..., description="Number of datasets")


class FacetsResponse(BaseModel):
    """Catalog facet counts."""

    publishers: List[FacetValue] = Field(default_factory=list)
    formats: List[FacetValue] = Field(default_factory=list)
    services: List[FacetValue] = Field(default_factory=list)
    variables: List[FacetValue] = Field(default_factory=list)
    decades: List[FacetValue] = Field(default_factory=list)


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(..., description="Service status")
    database: str = Field(..., description="Database status")
    embedder: str = Field(..., description="Active embedding function")
    embedder_degraded: bool = Field(..., description="Model failed to load; synthetic vectors in use")
    indexed_records: Optional[int] = Field(None, description="Records in the vector index")
    enrichment_configured: bool = Field(..., description="Generative enrichment available")
    uptime_seconds: Optional[int] = Field(None, description="Service uptime in seconds")


# ============================================================================
# Error Models
# ============================================================================

class ErrorResponse(BaseModel):
    """Error response."""

    error: str = Field(..., description="Error message")
    code: str = Field(..., description="Error code")
    details: Optional[Dict[str, Any]] = Field(None, description="Additional error details")
