"""
Domain model for catalog records and search queries.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .text_utils import format_datetime, parse_datetime

BBox = Tuple[float, float, float, float]


class AccessService(str, Enum):
    """How a distribution can be reached."""

    HTTP = "HTTP"          # plain HTTP download
    OPENDAP = "OPeNDAP"    # remote data access protocol
    THREDDS = "THREDDS"    # catalog service
    ERDDAP = "ERDDAP"      # gridded/tabular data service
    FTP = "FTP"
    S3 = "S3"              # object storage

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["AccessService"]:
        """Case-insensitive lookup; None when the value names no known service."""
        if value is None:
            return None
        if isinstance(value, cls):
            return value
        wanted = str(value).strip().lower()
        for member in cls:
            if member.value.lower() == wanted:
                return member
        return None

    @classmethod
    def coerce(cls, value: Optional[str]) -> "AccessService":
        """Like parse(), but unknown strings read back as plain HTTP."""
        return cls.parse(value) or cls.HTTP


@dataclass
class Variable:
    name: str
    standard_name: Optional[str] = None
    units: Optional[str] = None
    long_name: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Variable":
        return cls(
            name=str(data.get("name") or ""),
            standard_name=data.get("standard_name") or data.get("standardName"),
            units=data.get("units"),
            long_name=data.get("long_name") or data.get("longName"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "standardName": self.standard_name,
            "units": self.units,
            "longName": self.long_name,
        }


@dataclass
class Distribution:
    url: str
    access_service: AccessService = AccessService.HTTP
    format: str = ""
    size: Optional[int] = None
    checksum: Optional[str] = None
    access_rights: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Distribution":
        size = data.get("size")
        return cls(
            url=str(data.get("url") or ""),
            access_service=AccessService.coerce(
                data.get("access_service") or data.get("accessService")
            ),
            format=str(data.get("format") or ""),
            size=int(size) if size is not None else None,
            checksum=data.get("checksum"),
            access_rights=data.get("access_rights") or data.get("accessRights"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "accessService": self.access_service.value,
            "format": self.format,
            "size": self.size,
            "checksum": self.checksum,
            "accessRights": self.access_rights,
        }


def bbox_from_polygon(polygon: Sequence[Sequence[float]]) -> Optional[BBox]:
    """Bounding box of a lon/lat ring; None for fewer than four points."""
    points = [p for p in polygon or [] if p is not None and len(p) >= 2]
    if len(points) < 4:
        return None
    lons = [float(p[0]) for p in points]
    lats = [float(p[1]) for p in points]
    return (min(lons), min(lats), max(lons), max(lats))


def validate_bbox(values: Optional[Sequence[float]]) -> Optional[BBox]:
    """Check a four-number box; raises ValueError when it is malformed or inverted."""
    if values is None:
        return None
    if len(values) != 4:
        raise ValueError(f"bbox needs 4 numbers, got {len(values)}")
    min_x, min_y, max_x, max_y = (float(v) for v in values)
    if min_x > max_x or min_y > max_y:
        raise ValueError(f"bbox minimums exceed maximums: {values}")
    return (min_x, min_y, max_x, max_y)


@dataclass
class Record:
    """One catalog entry describing a dataset."""

    id: str
    title: str
    abstract: Optional[str] = None
    publisher: Optional[str] = None
    license: Optional[str] = None
    doi: Optional[str] = None
    source_system: Optional[str] = None
    time_start: Optional[datetime] = None
    time_end: Optional[datetime] = None
    bbox: Optional[BBox] = None
    variables: List[Variable] = field(default_factory=list)
    distributions: List[Distribution] = field(default_factory=list)
    platforms: List[str] = field(default_factory=list)
    keywords: List[str] = field(default_factory=list)
    updated_at: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Record":
        """
        Build a record from catalog JSON.

        Accepts nested ``temporal_extent``/``spatial_extent`` objects as well
        as flat ``time_start``/``time_end``/``bbox`` keys. A polygon without a
        bbox is reduced to its bounding box.
        """
        if not data.get("id"):
            raise ValueError("record is missing an id")
        if not data.get("title"):
            raise ValueError(f"record {data['id']} is missing a title")

        temporal = data.get("temporal_extent") or {}
        spatial = data.get("spatial_extent") or {}

        bbox = spatial.get("bbox", data.get("bbox"))
        if bbox is None:
            bbox = bbox_from_polygon(spatial.get("polygon") or data.get("polygon") or [])

        return cls(
            id=str(data["id"]),
            title=str(data["title"]),
            abstract=data.get("abstract"),
            publisher=data.get("publisher"),
            license=data.get("license"),
            doi=data.get("doi"),
            source_system=data.get("source_system") or data.get("sourceSystem"),
            time_start=parse_datetime(temporal.get("start", data.get("time_start"))),
            time_end=parse_datetime(temporal.get("end", data.get("time_end"))),
            bbox=validate_bbox(bbox),
            variables=[Variable.from_dict(v) for v in data.get("variables") or []],
            distributions=[Distribution.from_dict(d) for d in data.get("distributions") or []],
            platforms=[str(p) for p in data.get("platforms") or []],
            keywords=[str(k) for k in data.get("keywords") or []],
            updated_at=parse_datetime(data.get("updated_at") or data.get("updatedAt")),
        )

    def variable_names(self) -> List[str]:
        return [v.name for v in self.variables if v.name]

    def to_result(self, include: Optional[str] = None) -> Dict[str, Any]:
        """Wire form of a search hit; ``include`` of vars/full adds nested details."""
        result = {
            "id": self.id,
            "doi": self.doi,
            "license": self.license,
            "sourceSystem": self.source_system,
            "title": self.title,
            "publisher": self.publisher,
            "abstract": self.abstract,
            "time": {
                "start": format_datetime(self.time_start),
                "end": format_datetime(self.time_end),
            },
            "spatial": {"bbox": list(self.bbox) if self.bbox else None},
            "variables": self.variable_names(),
            "distributions": [
                {"url": d.url, "format": d.format, "service": d.access_service.value}
                for d in self.distributions
            ],
        }

        if include in ("vars", "full"):
            result["variablesDetailed"] = [v.to_dict() for v in self.variables]
            result["distributionsDetailed"] = [d.to_dict() for d in self.distributions]

        return result

    def to_canonical(self) -> Dict[str, Any]:
        """Catalog JSON form of the record, as accepted by from_dict()."""
        return {
            "id": self.id,
            "doi": self.doi,
            "title": self.title,
            "abstract": self.abstract,
            "publisher": self.publisher,
            "license": self.license,
            "temporal_extent": {
                "start": format_datetime(self.time_start),
                "end": format_datetime(self.time_end),
            },
            "spatial_extent": {"bbox": list(self.bbox) if self.bbox else None},
            "variables": [
                {
                    "name": v.name,
                    "standard_name": v.standard_name,
                    "units": v.units,
                    "long_name": v.long_name,
                }
                for v in self.variables
            ],
            "distributions": [
                {"url": d.url, "access_service": d.access_service.value, "format": d.format}
                for d in self.distributions
            ],
            "platforms": list(self.platforms),
            "keywords": list(self.keywords),
            "source_system": self.source_system,
            "updated_at": format_datetime(self.updated_at),
        }


@dataclass
class SearchQuery:
    """Caller-supplied search request. Built per call, never stored."""

    q: str = ""
    bbox: Optional[BBox] = None
    polygon: Optional[List[Tuple[float, float]]] = None
    time_start: Optional[str] = None
    time_end: Optional[str] = None
    variables: List[str] = field(default_factory=list)
    format: Optional[str] = None
    publisher: Optional[str] = None
    service: Optional[str] = None
    license: Optional[str] = None
    platform: Optional[str] = None
    page: int = 1
    size: int = 20
    sort: str = "relevance"
    include: Optional[str] = None

    def spatial_bbox(self) -> Optional[BBox]:
        """Spatial filter box; a polygon is reduced to its bounding box."""
        if self.bbox is not None:
            return tuple(float(v) for v in self.bbox)
        if self.polygon:
            return bbox_from_polygon(self.polygon)
        return None

    def has_text(self) -> bool:
        return bool(self.q and self.q.strip())

    def normalized(self, max_size: int = 100) -> "SearchQuery":
        """Copy with page >= 1, size in [1, max_size] and a known sort mode."""
        return replace(
            self,
            q=(self.q or "").strip(),
            page=max(1, int(self.page or 1)),
            size=max(1, min(max_size, int(self.size or 20))),
            sort=self.sort if self.sort in ("relevance", "recency") else "relevance",
            variables=[v for v in (self.variables or []) if v and v.strip()],
        )


@dataclass
class RankedCandidate:
    """A record id carrying its fused score and, after re-ranking, signal contributions."""

    id: str
    score: float
    lexical_rank: Optional[int] = None
    semantic_rank: Optional[int] = None
    signals: Dict[str, float] = field(default_factory=dict)
