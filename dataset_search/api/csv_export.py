"""
CSV rendering of search results.
"""

import csv
import io
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List

CSV_COLUMNS = ["id", "title", "publisher", "start", "end", "variables", "formats", "services", "doi", "bbox"]

LIST_SEPARATOR = "; "


def result_to_row(result: Dict[str, Any]) -> Dict[str, Any]:
    """Flatten one result dict (as produced by Record.to_result) into CSV columns."""
    time_range = result.get("time") or {}
    bbox = (result.get("spatial") or {}).get("bbox")
    distributions = result.get("distributions") or []

    return {
        "id": result.get("id"),
        "title": result.get("title"),
        "publisher": result.get("publisher") or "",
        "start": time_range.get("start") or "",
        "end": time_range.get("end") or "",
        "variables": LIST_SEPARATOR.join(result.get("variables") or []),
        "formats": LIST_SEPARATOR.join(_unique(d.get("format") for d in distributions)),
        "services": LIST_SEPARATOR.join(_unique(d.get("service") for d in distributions)),
        "doi": result.get("doi") or "",
        "bbox": ",".join(str(v) for v in bbox) if bbox else "",
    }


def results_to_csv(results: Iterable[Dict[str, Any]]) -> str:
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=CSV_COLUMNS, extrasaction="ignore", lineterminator="\r\n")
    writer.writeheader()
    for result in results:
        writer.writerow(result_to_row(result))
    return buffer.getvalue()


def csv_filename(now: datetime = None) -> str:
    now = now or datetime.now(timezone.utc)
    return f"dataset-search-{now.strftime('%Y-%m-%d-%H-%M')}.csv"


def _unique(values: Iterable[Any]) -> List[str]:
    return list(dict.fromkeys(str(v) for v in values if v))
