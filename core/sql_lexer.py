# ============================================================
# pgsheet - PostgreSQL Spreadsheet Client
# core/sql_lexer.py — SQL Tokenizer, Vocabulary & Formatter
# ============================================================

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional


# ════════════════════════════════════════════════════════════
# VOCABULARY
# ════════════════════════════════════════════════════════════
# Order matters: ghost completion offers the first prefix match,
# scanning SQL_KEYWORDS first and SQL_FUNCTIONS second.

SQL_KEYWORDS = (
    "SELECT", "FROM", "WHERE", "INSERT", "INTO", "VALUES", "UPDATE", "SET",
    "DELETE", "CREATE", "TABLE", "DROP", "ALTER", "ADD", "COLUMN",
    "PRIMARY", "KEY", "FOREIGN", "REFERENCES", "INDEX", "UNIQUE",
    "NOT", "NULL", "DEFAULT", "AUTO_INCREMENT", "CONSTRAINT",
    "JOIN", "INNER", "LEFT", "RIGHT", "OUTER", "FULL", "CROSS", "ON",
    "AND", "OR", "IN", "BETWEEN", "LIKE", "IS", "AS", "DISTINCT",
    "ORDER", "BY", "GROUP", "HAVING", "LIMIT", "OFFSET",
    "UNION", "ALL", "INTERSECT", "EXCEPT",
    "CASE", "WHEN", "THEN", "ELSE", "END",
    "BEGIN", "COMMIT", "ROLLBACK", "TRANSACTION",
    "GRANT", "REVOKE", "PRIVILEGE",
    "VIEW", "TRIGGER", "PROCEDURE", "FUNCTION",
    "EXECUTE", "EXEC", "CALL",
    "IF", "EXISTS",
    "SERIAL", "BIGSERIAL", "SMALLSERIAL",
    "INT", "INTEGER", "BIGINT", "SMALLINT", "TINYINT",
    "DECIMAL", "NUMERIC", "FLOAT", "DOUBLE", "REAL",
    "CHAR", "VARCHAR", "TEXT", "BLOB",
    "DATE", "TIME", "TIMESTAMP", "DATETIME",
    "BOOLEAN", "BOOL",
    "ARRAY", "JSON", "JSONB", "UUID",
    "CASCADE", "RESTRICT", "NO", "ACTION",
    "ASC", "DESC",
    "TRUE", "FALSE",
    "WITH", "RECURSIVE",
    "RETURNING",
    "TEMP", "TEMPORARY", "UNLOGGED",
    "PARTITION", "PARTITIONED",
    "ANALYZE", "EXPLAIN", "VACUUM",
)

SQL_FUNCTIONS = (
    "COUNT", "SUM", "AVG", "MIN", "MAX",
    "CONCAT", "SUBSTRING", "LENGTH", "UPPER", "LOWER", "TRIM",
    "COALESCE", "NULLIF", "CAST",
    "NOW", "CURRENT_DATE", "CURRENT_TIME", "CURRENT_TIMESTAMP",
    "EXTRACT", "DATE_PART", "TO_CHAR",
    "ROW_NUMBER", "RANK", "DENSE_RANK", "LAG", "LEAD",
    "FIRST_VALUE", "LAST_VALUE",
    "STRING_AGG", "ARRAY_AGG",
)

KEYWORD_SET = frozenset(SQL_KEYWORDS)
FUNCTION_SET = frozenset(SQL_FUNCTIONS)

PUNCTUATION = frozenset("(),;.*")

# Clause keywords that start a new line (except at the very beginning).
MAJOR_CLAUSES = frozenset({
    "SELECT", "FROM", "WHERE", "SET", "HAVING", "RETURNING",
    "VALUES", "UNION", "INTERSECT", "EXCEPT",
})
# Always on a new line.
TRAILING_CLAUSES = frozenset({"ORDER", "GROUP", "LIMIT", "OFFSET"})
JOIN_MODIFIERS = frozenset({"INNER", "LEFT", "RIGHT", "FULL", "CROSS", "OUTER"})
# Clauses under which AND / OR continuations are indented.
INDENTING_CLAUSES = frozenset({"SELECT", "FROM", "WHERE", "SET", "HAVING"})
BOOLEAN_CONTINUATIONS = frozenset({"AND", "OR"})

INDENT = "  "


# ════════════════════════════════════════════════════════════
# TOKENS
# ════════════════════════════════════════════════════════════

class TokenKind(Enum):
    KEYWORD = "keyword"
    FUNCTION = "function"
    IDENTIFIER = "identifier"
    STRING = "string"
    NUMBER = "number"
    COMMENT = "comment"
    OPERATOR = "operator"
    PUNCTUATION = "punctuation"
    WHITESPACE = "whitespace"


@dataclass(frozen=True)
class Token:
    """One lexical run. `start`/`end` index into the original source."""
    kind: TokenKind
    text: str
    start: int
    end: int


def _is_word_start(ch: str) -> bool:
    return ch == "_" or ("a" <= ch <= "z") or ("A" <= ch <= "Z")


def _is_word_char(ch: str) -> bool:
    return _is_word_start(ch) or ch.isdigit()


def _is_operator_char(sql: str, i: int) -> bool:
    ch = sql[i]
    if ch.isspace() or _is_word_char(ch) or ch in PUNCTUATION or ch in "'\"":
        return False
    return not sql.startswith("--", i)


def tokenize(sql: str) -> List[Token]:
    """
    Split `sql` into tokens, left to right.

    Whitespace runs become a single-space token. Recognised keywords and
    functions are upper-cased; any other word keeps its original case.
    Unterminated strings and quoted identifiers run to the end of input.
    """
    tokens: List[Token] = []
    i, n = 0, len(sql)

    while i < n:
        ch = sql[i]
        start = i

        if sql.startswith("--", i):
            end = sql.find("\n", i)
            i = n if end == -1 else end
            tokens.append(Token(TokenKind.COMMENT, sql[start:i], start, i))

        elif ch == "'":
            i += 1
            while i < n and sql[i] != "'":
                i += 2 if sql[i] == "\\" else 1
            i = min(i + 1, n)
            tokens.append(Token(TokenKind.STRING, sql[start:i], start, i))

        elif ch == '"':
            end = sql.find('"', i + 1)
            i = n if end == -1 else end + 1
            tokens.append(Token(TokenKind.IDENTIFIER, sql[start:i], start, i))

        elif ch.isspace():
            while i < n and sql[i].isspace():
                i += 1
            tokens.append(Token(TokenKind.WHITESPACE, " ", start, i))

        elif _is_word_start(ch):
            while i < n and _is_word_char(sql[i]):
                i += 1
            word = sql[start:i]
            upper = word.upper()
            if upper in KEYWORD_SET:
                tokens.append(Token(TokenKind.KEYWORD, upper, start, i))
            elif upper in FUNCTION_SET:
                tokens.append(Token(TokenKind.FUNCTION, upper, start, i))
            else:
                tokens.append(Token(TokenKind.IDENTIFIER, word, start, i))

        elif ch.isdigit():
            while i < n and sql[i].isdigit():
                i += 1
            if i + 1 < n and sql[i] == "." and sql[i + 1].isdigit():
                i += 1
                while i < n and sql[i].isdigit():
                    i += 1
            tokens.append(Token(TokenKind.NUMBER, sql[start:i], start, i))

        elif ch in PUNCTUATION:
            i += 1
            tokens.append(Token(TokenKind.PUNCTUATION, ch, start, i))

        else:
            i += 1
            while i < n and _is_operator_char(sql, i):
                i += 1
            tokens.append(Token(TokenKind.OPERATOR, sql[start:i], start, i))

    return tokens


# ════════════════════════════════════════════════════════════
# FORMATTER
# ════════════════════════════════════════════════════════════

def _next_significant(tokens: List[Token], index: int) -> Optional[Token]:
    for tok in tokens[index + 1:]:
        if tok.kind != TokenKind.WHITESPACE:
            return tok
    return None


def _line_break(
        tok: Token,
        nxt: Optional[Token],
        prev: Optional[Token],
        indenting: bool,
) -> Optional[str]:
    """Return "\\n", "\\n" + INDENT or None for the break before `tok`."""
    if tok.kind != TokenKind.KEYWORD:
        return None
    word = tok.text
    prev_word = prev.text if prev is not None and prev.kind == TokenKind.KEYWORD else ""

    if word in MAJOR_CLAUSES or word in TRAILING_CLAUSES:
        return "\n"
    if word in JOIN_MODIFIERS or word == "JOIN":
        # "LEFT OUTER JOIN" breaks once, before LEFT.
        if prev_word in JOIN_MODIFIERS:
            return None
        if word == "JOIN":
            return "\n"
        if nxt is not None and nxt.kind == TokenKind.KEYWORD and nxt.text in ("JOIN", "OUTER"):
            return "\n"
        return None
    if word in BOOLEAN_CONTINUATIONS and indenting:
        return "\n" + INDENT
    return None


def format_sql(sql: str) -> str:
    """
    Re-indent one statement: one clause per line, AND / OR continuations
    indented under SELECT, FROM, WHERE, SET and HAVING. Formatting an
    already formatted statement returns it unchanged.
    """
    tokens = tokenize(sql)
    out: List[str] = []
    pending_space = False
    after_comment = False
    indenting = False
    prev: Optional[Token] = None

    for index, tok in enumerate(tokens):
        if tok.kind == TokenKind.WHITESPACE:
            pending_space = True
            continue

        brk = _line_break(tok, _next_significant(tokens, index), prev, indenting)
        if tok.kind == TokenKind.KEYWORD:
            if tok.text in MAJOR_CLAUSES:
                indenting = tok.text in INDENTING_CLAUSES
            elif tok.text in TRAILING_CLAUSES:
                indenting = False

        if not out:
            pass
        elif brk is not None:
            out.append(brk)
        elif after_comment:
            out.append("\n")
        elif pending_space:
            out.append(" ")

        out.append(tok.text)
        pending_space = False
        after_comment = tok.kind == TokenKind.COMMENT
        prev = tok

    lines = "".join(out).split("\n")
    return "\n".join(line.rstrip() for line in lines).strip()
