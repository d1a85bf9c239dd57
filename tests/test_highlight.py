from core.highlight import (
    Span,
    apply_completion,
    highlight_spans,
    render_highlighted,
    resolve_overlaps,
    suggest_completion,
)
from core.highlight import COMMENT_STYLE, KEYWORD_STYLE


def test_comment_wins_over_operators_inside_it():
    spans = highlight_spans("SELECT --comment\n1")
    assert [(s.kind, s.start, s.end) for s in spans] == [
        ("keyword", 0, 6),
        ("comment", 7, 16),
        ("number", 17, 18),
    ]


def test_number_inside_string_is_part_of_the_string():
    spans = highlight_spans("WHERE a = 'abc 12'")
    assert [s.kind for s in spans] == ["keyword", "operator", "string"]


def test_blank_input_has_no_spans():
    assert highlight_spans("   \n") == []


def test_overlap_ties_keep_the_longer_span():
    short = Span(0, 2, "operator", KEYWORD_STYLE)
    long = Span(0, 5, "comment", COMMENT_STYLE)
    other = Span(6, 8, "number", KEYWORD_STYLE)
    assert resolve_overlaps([other, short, long]) == [long, other]


def test_render_keeps_source_text():
    sql = "select count(*) from t where x = 'y' -- done"
    assert render_highlighted(sql).plain == sql


def test_completion_of_partial_keyword():
    completion = suggest_completion("sel", 3)
    assert completion.word == "SELECT"
    assert completion.ghost == "ECT"


def test_completion_reaches_functions():
    completion = suggest_completion("select cou", 10)
    assert completion.word == "COUNT"
    assert apply_completion("select cou", completion) == ("select COUNT", 12)


def test_no_completion_for_short_mid_word_or_complete_words():
    assert suggest_completion("s", 1) is None
    assert suggest_completion("selxyz", 3) is None
    assert suggest_completion("SELECT", 6) is None
    assert suggest_completion("select ", 7) is None
