"""
Parser for search request parameters arriving as strings.

Handles the boundary formats:
- bbox: "minLon,minLat,maxLon,maxLat"
- polygon: JSON [[lon, lat], ...] or "lon lat; lon lat; ..." (at least 4 points)
- variables: JSON array or comma-separated list
- dates: YYYY, YYYY-MM, YYYY-MM-DD or ISO-8601 timestamps

Anything malformed raises ValueError, which the API turns into HTTP 400.
"""

import json
import re
from typing import Any, Dict, List, Mapping, Optional, Tuple
import logging

from ..common.models import BBox, SearchQuery, bbox_from_polygon, validate_bbox
from ..common.text_utils import parse_datetime
from ..config.search_config import PAGINATION_CONFIG

logger = logging.getLogger("search")


class QueryParser:
    """Turns raw request parameters into a SearchQuery."""

    MAX_QUERY_LENGTH = 1000

    SORT_MODES = {"relevance", "recency"}
    INCLUDE_MODES = {"vars", "full"}

    POINT_SEPARATOR = re.compile(r"\s*;\s*")

    def parse(self, params: Mapping[str, Any]) -> SearchQuery:
        """
        Build a SearchQuery from request parameters.

        Args:
            params: Mapping of parameter name to raw (usually string) value

        Returns:
            SearchQuery with validated fields

        Raises:
            ValueError: If any parameter is malformed
        """
        q = self._sanitize(params.get("q"))
        if len(q) > self.MAX_QUERY_LENGTH:
            raise ValueError(f"Query too long (max {self.MAX_QUERY_LENGTH} characters)")

        time_start = self._sanitize(params.get("time_start") or params.get("start")) or None
        time_end = self._sanitize(params.get("time_end") or params.get("end")) or None
        for name, value in (("start", time_start), ("end", time_end)):
            if value:
                try:
                    parse_datetime(value)
                except ValueError:
                    raise ValueError(f"Invalid {name} date: '{value}'")

        sort = self._sanitize(params.get("sort")) or "relevance"
        if sort not in self.SORT_MODES:
            raise ValueError(f"sort must be one of {sorted(self.SORT_MODES)}")

        include = self._sanitize(params.get("include")) or None
        if include is not None and include not in self.INCLUDE_MODES:
            raise ValueError(f"include must be one of {sorted(self.INCLUDE_MODES)}")

        query = SearchQuery(
            q=q,
            bbox=self.parse_bbox(params.get("bbox")),
            polygon=self.parse_polygon(params.get("polygon")),
            time_start=time_start,
            time_end=time_end,
            variables=self.parse_variables(params.get("variables")),
            format=self._sanitize(params.get("format")) or None,
            publisher=self._sanitize(params.get("publisher")) or None,
            service=self._sanitize(params.get("service")) or None,
            license=self._sanitize(params.get("license")) or None,
            platform=self._sanitize(params.get("platform")) or None,
            page=self._parse_int(params.get("page"), "page", 1),
            size=self._parse_int(params.get("size"), "size", PAGINATION_CONFIG["default_size"]),
            sort=sort,
            include=include,
        )

        logger.debug(f"Parsed search parameters: {query}")
        return query.normalized(PAGINATION_CONFIG["max_size"])

    def parse_bbox(self, value: Any) -> Optional[BBox]:
        if value is None or value == "":
            return None
        if isinstance(value, str):
            parts = [p.strip() for p in value.split(",")]
        else:
            parts = list(value)
        try:
            numbers = [float(p) for p in parts]
        except (TypeError, ValueError):
            raise ValueError(f"bbox must be four numbers: '{value}'")
        return validate_bbox(numbers)

    def parse_polygon(self, value: Any) -> Optional[List[Tuple[float, float]]]:
        """Ring of lon/lat points; a spatial filter uses its bounding box."""
        if value is None or value == "":
            return None

        if isinstance(value, str):
            text = value.strip()
            if text.startswith("["):
                try:
                    raw = json.loads(text)
                except json.JSONDecodeError as e:
                    raise ValueError(f"polygon is not valid JSON: {e}")
            else:
                raw = [p.split() for p in self.POINT_SEPARATOR.split(text) if p.strip()]
        else:
            raw = value

        try:
            points = [(float(p[0]), float(p[1])) for p in raw]
        except (TypeError, ValueError, IndexError):
            raise ValueError("polygon points must be lon/lat number pairs")

        if bbox_from_polygon(points) is None:
            raise ValueError("polygon needs at least 4 points")
        return points

    def parse_variables(self, value: Any) -> List[str]:
        if value is None or value == "":
            return []
        if isinstance(value, (list, tuple)):
            items = value
        else:
            text = str(value).strip()
            if text.startswith("["):
                try:
                    items = json.loads(text)
                except json.JSONDecodeError as e:
                    raise ValueError(f"variables is not valid JSON: {e}")
                if not isinstance(items, list):
                    raise ValueError("variables must be a list")
            else:
                items = text.split(",")
        return [self._sanitize(str(v)) for v in items if v is not None and str(v).strip()]

    def _parse_int(self, value: Any, name: str, default: int) -> int:
        if value is None or value == "":
            return default
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ValueError(f"{name} must be an integer: '{value}'")

    def _sanitize(self, value: Any) -> str:
        if value is None:
            return ""
        return str(value).replace("\x00", "").strip()


def parse_search_params(params: Mapping[str, Any]) -> SearchQuery:
    return QueryParser().parse(params)
