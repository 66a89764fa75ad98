"""
Filter builder for catalog SQL WHERE clauses.

Every clause is written against the ``datasets`` table aliased as ``d`` and
uses ``?`` placeholders; values never end up in the SQL text.
"""

from typing import Any, List, Optional, Tuple
import logging

from ..common.models import AccessService, SearchQuery
from ..common.text_utils import format_datetime, parse_datetime, word_tokens

logger = logging.getLogger("search")

# Text columns searched by the relational tier
TEXT_COLUMNS = ("d.title", "d.abstract", "d.publisher", "d.doi", "d.license", "d.source_system", "d.keywords_json")


def _like_pattern(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


class SearchFilters:
    """Builds parameterized WHERE clauses from a SearchQuery."""

    @staticmethod
    def build_where_clause(query: SearchQuery) -> Tuple[str, List[Any]]:
        """
        Structured filters shared by every retrieval path.

        Covers publisher/license equality, bounding-box intersection,
        temporal overlap and distribution format/service membership. Free
        text and platform are handled elsewhere.

        Returns:
            (clause, params); clause is "1=1" when nothing is filtered
        """
        conditions: List[str] = []
        params: List[Any] = []

        if query.publisher:
            conditions.append("d.publisher = ? COLLATE NOCASE")
            params.append(query.publisher)

        if query.license:
            conditions.append("d.license = ? COLLATE NOCASE")
            params.append(query.license)

        spatial = SearchFilters._build_bbox_filter(query)
        if spatial:
            conditions.append(spatial[0])
            params.extend(spatial[1])

        temporal = SearchFilters._build_time_filter(query)
        if temporal:
            conditions.append(temporal[0])
            params.extend(temporal[1])

        if query.format:
            conditions.append(
                "EXISTS (SELECT 1 FROM distributions f "
                "WHERE f.dataset_id = d.id AND lower(f.format) = lower(?))"
            )
            params.append(query.format)

        if query.service:
            service = AccessService.parse(query.service)
            conditions.append(
                "EXISTS (SELECT 1 FROM distributions s "
                "WHERE s.dataset_id = d.id AND s.access_service = ?)"
            )
            params.append(service.value if service else query.service)

        if not conditions:
            return "1=1", []

        where_clause = " AND ".join(conditions)
        logger.debug(f"Built WHERE clause: {where_clause}")
        return where_clause, params

    @staticmethod
    def _build_bbox_filter(query: SearchQuery) -> Optional[Tuple[str, List[Any]]]:
        """
        Box intersection; a polygon arrives here already reduced to its box.

        Records without a bounding box never pass a spatial filter.
        """
        bbox = query.spatial_bbox()
        if bbox is None:
            return None
        min_x, min_y, max_x, max_y = bbox
        return (
            "(d.min_x IS NOT NULL AND d.max_x >= ? AND d.min_x <= ? AND d.max_y >= ? AND d.min_y <= ?)",
            [min_x, max_x, min_y, max_y],
        )

    @staticmethod
    def _build_time_filter(query: SearchQuery) -> Optional[Tuple[str, List[Any]]]:
        """Overlap test with open-ended (null) record bounds."""
        conditions = []
        params: List[Any] = []

        for value, clause in (
            (query.time_start, "(d.time_end IS NULL OR d.time_end >= ?)"),
            (query.time_end, "(d.time_start IS NULL OR d.time_start <= ?)"),
        ):
            if not value:
                continue
            try:
                parsed = parse_datetime(value)
            except ValueError:
                logger.warning(f"Ignoring unparseable time bound '{value}'")
                continue
            conditions.append(clause)
            params.append(format_datetime(parsed))

        if not conditions:
            return None
        return " AND ".join(conditions), params

    @staticmethod
    def build_text_clause(text: Optional[str]) -> Optional[Tuple[str, List[Any]]]:
        """
        Substring match for the relational tier.

        Each query word must occur in one of the record's text columns or
        in a variable/distribution field (case-insensitive LIKE).
        """
        words = word_tokens(text)
        if not words:
            return None

        conditions = []
        params: List[Any] = []
        for word in words:
            pattern = _like_pattern(word)
            alternatives = [f"{column} LIKE ? ESCAPE '\\'" for column in TEXT_COLUMNS]
            alternatives.append(
                "EXISTS (SELECT 1 FROM variables v WHERE v.dataset_id = d.id AND ("
                "v.name LIKE ? ESCAPE '\\' OR v.long_name LIKE ? ESCAPE '\\' "
                "OR v.standard_name LIKE ? ESCAPE '\\'))"
            )
            alternatives.append(
                "EXISTS (SELECT 1 FROM distributions x WHERE x.dataset_id = d.id AND ("
                "x.format LIKE ? ESCAPE '\\' OR x.access_service LIKE ? ESCAPE '\\'))"
            )
            conditions.append("(" + " OR ".join(alternatives) + ")")
            params.extend([pattern] * (len(TEXT_COLUMNS) + 5))

        return " AND ".join(conditions), params
