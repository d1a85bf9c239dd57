import re
from typing import List

_ROW_RETURNING = ("SELECT", "WITH", "EXPLAIN")
_DDL_VERBS = ("CREATE", "DROP", "ALTER")
_CREATE_TABLE_RE = re.compile(
    r"^\s*CREATE\s+(?:(?:TEMP|TEMPORARY|UNLOGGED)\s+)?TABLE\b", re.IGNORECASE
)
_NAME_TRIM = "\"'`"


def truncate_string(s: str, max_len: int = 80, suffix: str = "…") -> str:
    if max_len <= 0:
        return ""
    if len(s) <= max_len:
        return s
    if max_len <= len(suffix):
        return s[:max_len]
    return s[: max_len - len(suffix)] + suffix


def format_duration(milliseconds: int) -> str:
    if milliseconds < 1000:
        return f"{milliseconds}ms"
    elif milliseconds < 60000:
        return f"{milliseconds / 1000:.2f}s"
    else:
        minutes = milliseconds // 60000
        seconds = (milliseconds % 60000) / 1000
        return f"{minutes}m {seconds:.1f}s"


def word_wrap(s: str, width: int) -> str:
    """Hard-wrap every line of `s` at `width` characters."""
    if width <= 0 or not s:
        return s
    wrapped: List[str] = []
    for line in s.split("\n"):
        while len(line) > width:
            wrapped.append(line[:width])
            line = line[width:]
        wrapped.append(line)
    return "\n".join(wrapped)


def sanitize_cell(s: str) -> str:
    """Single-line rendering of a cell value."""
    return s.replace("\r\n", "↵").replace("\n", "↵").replace("\t", " ")


# ── Statement Classification ──────────────────────────────────

def first_keyword(sql: str) -> str:
    words = sql.strip().split()
    return words[0].upper() if words else ""


def detect_query_type(sql: str) -> str:
    """Detect the type of SQL statement from its leading keyword."""
    type_map = {
        "SELECT": "SELECT",
        "WITH": "SELECT",
        "EXPLAIN": "EXPLAIN",
        "INSERT": "INSERT",
        "UPDATE": "UPDATE",
        "DELETE": "DELETE",
        "CREATE": "CREATE",
        "DROP": "DROP",
        "ALTER": "ALTER",
        "TRUNCATE": "TRUNCATE",
        "SET": "SET",
        "BEGIN": "TRANSACTION",
        "COMMIT": "TRANSACTION",
        "ROLLBACK": "TRANSACTION",
        "CALL": "PROCEDURE",
        "GRANT": "PRIVILEGE",
        "REVOKE": "PRIVILEGE",
    }
    return type_map.get(first_keyword(sql), "UNKNOWN")


def is_row_returning(sql: str) -> bool:
    """SELECT, WITH and EXPLAIN statements return rows."""
    return sql.strip().upper().startswith(_ROW_RETURNING)


def _clean_name(token: str) -> str:
    name = token.strip(_NAME_TRIM).rstrip("(;,")
    if "." in name:
        name = name.split(".")[-1]
    return name.strip(_NAME_TRIM)


def extract_table_name(sql: str) -> str:
    """
    Best-effort table referenced by a statement: the first word after
    FROM, INTO or UPDATE. Empty when nothing matches.
    """
    tokens = sql.split()
    for i, token in enumerate(tokens[:-1]):
        if token.upper() in ("FROM", "INTO", "UPDATE"):
            name = _clean_name(tokens[i + 1])
            if name:
                return name
    return ""


def extract_ddl_table_name(sql: str) -> str:
    """
    Table named by CREATE / ALTER / DROP TABLE, skipping IF [NOT] EXISTS.
    Empty for any other statement.
    """
    tokens = sql.split()
    upper = [t.upper() for t in tokens]
    for i, token in enumerate(upper):
        if token != "TABLE" or i == 0:
            continue
        verb_pos = i - 1
        if upper[verb_pos] in ("TEMP", "TEMPORARY", "UNLOGGED") and verb_pos > 0:
            verb_pos -= 1
        if upper[verb_pos] not in _DDL_VERBS:
            continue
        idx = i + 1
        while idx < len(upper) and upper[idx] in ("IF", "NOT", "EXISTS"):
            idx += 1
        if idx < len(tokens):
            name = _clean_name(tokens[idx])
            if name:
                return name
    return ""


def is_create_table(sql: str) -> bool:
    return bool(_CREATE_TABLE_RE.match(sql))


def statement_at_cursor(text: str, cursor: int) -> str:
    """
    The ;-separated statement containing `cursor` (a character offset),
    falling back to the last non-empty statement.
    """
    if not text.strip():
        return ""
    segments = text.split(";")
    pos = 0
    for segment in segments:
        end = pos + len(segment)
        if cursor <= end and segment.strip():
            return segment.strip()
        pos = end + 1
    for segment in reversed(segments):
        if segment.strip():
            return segment.strip()
    return ""

