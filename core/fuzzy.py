# ============================================================
# pgsheet - PostgreSQL Spreadsheet Client
# core/fuzzy.py — Row / Table / Database Filter Predicate
# ============================================================

import re
from functools import lru_cache
from typing import Optional, Pattern


@lru_cache(maxsize=64)
def _compile(query: str) -> Optional[Pattern]:
    try:
        return re.compile(query, re.IGNORECASE)
    except re.error:
        return None


def fuzzy_match(candidate: str, query: str) -> bool:
    """
    True when `candidate` should stay visible for the typed `query`.

    An empty query matches everything. A case-insensitive substring hit
    always matches; otherwise the query is tried as a case-insensitive
    regular expression. Half-typed patterns such as "user(" are not valid
    regexes and simply fall back to the substring test.
    """
    if not query:
        return True
    if query.lower() in candidate.lower():
        return True
    pattern = _compile(query)
    if pattern is None:
        return False
    return pattern.search(candidate) is not None
