# ============================================================
# pgsheet - PostgreSQL Spreadsheet Client
# core/highlight.py — Editor Syntax Highlighting & Ghost Completion
# ============================================================

import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

from rich.style import Style
from rich.text import Text

from core.sql_lexer import FUNCTION_SET, KEYWORD_SET, SQL_FUNCTIONS, SQL_KEYWORDS


KEYWORD_STYLE = Style(color="#c678dd")
FUNCTION_STYLE = Style(color="#61afef")
STRING_STYLE = Style(color="#98c379")
NUMBER_STYLE = Style(color="#d19a66")
COMMENT_STYLE = Style(color="#5c6370", italic=True)
OPERATOR_STYLE = Style(color="#56b6c2")
GHOST_STYLE = Style(color="#555555")

_COMMENT_RE = re.compile(r"--[^\n]*")
_STRING_RE = re.compile(r"'(?:[^'\\]|\\.)*'")
_NUMBER_RE = re.compile(r"\b\d+(?:\.\d+)?\b")
_OPERATOR_RE = re.compile(r"[=<>!]+|[+\-*/]")
_WORD_RE = re.compile(r"\b[A-Za-z_][A-Za-z0-9_]*\b")

COMPLETION_VOCABULARY = SQL_KEYWORDS + SQL_FUNCTIONS


@dataclass(frozen=True)
class Span:
    start: int
    end: int
    kind: str
    style: Style


def _collect_spans(sql: str) -> List[Span]:
    spans: List[Span] = []
    for pattern, kind, style in (
        (_COMMENT_RE, "comment", COMMENT_STYLE),
        (_STRING_RE, "string", STRING_STYLE),
        (_NUMBER_RE, "number", NUMBER_STYLE),
        (_OPERATOR_RE, "operator", OPERATOR_STYLE),
    ):
        for match in pattern.finditer(sql):
            spans.append(Span(match.start(), match.end(), kind, style))

    for match in _WORD_RE.finditer(sql):
        upper = match.group(0).upper()
        if upper in KEYWORD_SET:
            spans.append(Span(match.start(), match.end(), "keyword", KEYWORD_STYLE))
        elif upper in FUNCTION_SET:
            spans.append(Span(match.start(), match.end(), "function", FUNCTION_STYLE))
    return spans


def resolve_overlaps(spans: List[Span]) -> List[Span]:
    """
    Drop spans that lose an overlap and return survivors sorted by start.

    For every overlapping pair the span starting earlier wins; on equal
    starts the longer one wins.
    """
    dropped = [False] * len(spans)
    for i in range(len(spans)):
        a = spans[i]
        for j in range(i + 1, len(spans)):
            b = spans[j]
            if a.start < b.end and b.start < a.end:
                if b.start < a.start or (b.start == a.start and b.end > a.end):
                    dropped[i] = True
                else:
                    dropped[j] = True
    survivors = [span for span, lost in zip(spans, dropped) if not lost]
    return sorted(survivors, key=lambda s: s.start)


def highlight_spans(sql: str) -> List[Span]:
    """Non-overlapping styled spans for `sql`, ordered by offset."""
    if not sql.strip():
        return []
    return resolve_overlaps(_collect_spans(sql))


def render_highlighted(sql: str) -> Text:
    """Rich Text with unstyled source interleaved between styled spans."""
    text = Text()
    pos = 0
    for span in highlight_spans(sql):
        if span.start > pos:
            text.append(sql[pos:span.start])
        text.append(sql[span.start:span.end], style=span.style)
        pos = span.end
    if pos < len(sql):
        text.append(sql[pos:])
    return text


# ── Ghost Completion ──────────────────────────────────────────

@dataclass(frozen=True)
class Completion:
    """Suggested completion of the partial word ending at the cursor."""
    word: str
    partial_start: int
    partial_end: int

    @property
    def ghost(self) -> str:
        """The not-yet-typed remainder shown after the cursor."""
        return self.word[self.partial_end - self.partial_start:]


def _is_word_letter(ch: str) -> bool:
    return ch.isalpha() or ch == "_"


def suggest_completion(text: str, cursor: int) -> Optional[Completion]:
    """
    Keyword or function completion for the word being typed at `cursor`.

    No suggestion mid-word, for partials shorter than two characters, or
    when the partial already is a full vocabulary word.
    """
    if cursor <= 0 or cursor > len(text):
        return None

    start = cursor
    while start > 0 and _is_word_letter(text[start - 1]):
        start -= 1
    if start == cursor:
        return None
    if cursor < len(text) and _is_word_letter(text[cursor]):
        return None

    partial = text[start:cursor].upper()
    if len(partial) < 2:
        return None

    for word in COMPLETION_VOCABULARY:
        if word.startswith(partial) and word != partial:
            return Completion(word=word, partial_start=start, partial_end=cursor)
    return None


def apply_completion(text: str, completion: Completion) -> Tuple[str, int]:
    """Replace the partial with the full word. Returns (text, new cursor)."""
    new_text = text[:completion.partial_start] + completion.word + text[completion.partial_end:]
    return new_text, completion.partial_start + len(completion.word)
