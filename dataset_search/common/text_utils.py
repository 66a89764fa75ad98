"""
Text helpers shared by storage, retrieval and ranking.

Covers query tokenizing, FTS5 query construction, fuzzy similarity and
lenient date parsing for catalog timestamps.
"""

import re
from datetime import date, datetime, timezone
from typing import List, Optional, Union

from rapidfuzz import fuzz, utils

# Query words split on whitespace, commas, hyphens, underscores and light punctuation
QUERY_SPLIT_PATTERN = re.compile(r"[\s,\-_.;:!?()\"']+")

# Word characters as FTS5's unicode61 tokenizer sees them (underscore is a separator)
WORD_PATTERN = re.compile(r"[^\W_]+", re.UNICODE)

SEPARATOR_PATTERN = re.compile(r"[\s_\-]+")

DATETIME_FORMAT = "%Y-%m-%dT%H:%M:%S"


def split_query_words(text: Optional[str]) -> List[str]:
    """Lowercase a query and split it into words."""
    if not text:
        return []
    return [w for w in QUERY_SPLIT_PATTERN.split(text.lower()) if w]


def word_tokens(text: Optional[str]) -> List[str]:
    """Alphanumeric tokens of ``text``, lowercased, in order."""
    if not text:
        return []
    return WORD_PATTERN.findall(text.lower())


def normalize_separators(text: str) -> str:
    """Collapse underscores, hyphens and whitespace runs into single spaces."""
    return SEPARATOR_PATTERN.sub(" ", text.lower()).strip()


def _quote_fts(token: str) -> str:
    return '"' + token.replace('"', '""') + '"'


def fts_phrase_query(text: Optional[str]) -> Optional[str]:
    """
    Build an FTS5 phrase query ("sea surface temperature").

    Returns None when the text has no searchable tokens.
    """
    tokens = word_tokens(text)
    if not tokens:
        return None
    return _quote_fts(" ".join(tokens))


def fts_plain_query(text: Optional[str]) -> Optional[str]:
    """
    Build an FTS5 all-terms query ("sea" "surface" "temperature").

    Every token is quoted so user input can never be read as FTS5 syntax.
    """
    tokens = word_tokens(text)
    if not tokens:
        return None
    return " ".join(_quote_fts(t) for t in tokens)


def text_similarity(query: Optional[str], text: Optional[str]) -> float:
    """
    Fuzzy similarity in [0, 1] of ``query`` against ``text``.

    Best partial alignment of the shorter string inside the longer one,
    after lowercasing and stripping punctuation; tolerant of typos and of
    short queries against long titles. 0.0 when either side is empty.
    """
    if not query or not text:
        return 0.0
    return fuzz.partial_ratio(query, text, processor=utils.default_process) / 100.0


def parse_datetime(value: Union[str, date, datetime, None]) -> Optional[datetime]:
    """
    Parse a catalog timestamp into a naive UTC datetime.

    Accepts datetime/date objects and strings such as ``2020``,
    ``2020-06``, ``2020-06-01``, ``2020-06-01T12:00:00Z`` and offsets.
    Returns None for empty input; raises ValueError for garbage.
    """
    if value is None:
        return None

    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value

    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)

    text = str(value).strip()
    if not text:
        return None

    if re.fullmatch(r"\d{4}", text):
        return datetime(int(text), 1, 1)
    if re.fullmatch(r"\d{4}-\d{2}", text):
        year, month = text.split("-")
        return datetime(int(year), int(month), 1)

    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"

    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def format_datetime(value: Optional[datetime]) -> Optional[str]:
    """Storage/wire form of a timestamp (sortable ISO-8601, second precision)."""
    if value is None:
        return None
    return value.strftime(DATETIME_FORMAT)
