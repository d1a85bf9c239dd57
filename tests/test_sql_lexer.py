import pytest

from core.sql_lexer import TokenKind, format_sql, tokenize


def test_tokenize_kinds_and_case():
    tokens = [t for t in tokenize("select count(*) from Users where name = 'o''k' -- note")
              if t.kind != TokenKind.WHITESPACE]

    assert [(t.kind, t.text) for t in tokens] == [
        (TokenKind.KEYWORD, "SELECT"),
        (TokenKind.FUNCTION, "COUNT"),
        (TokenKind.PUNCTUATION, "("),
        (TokenKind.PUNCTUATION, "*"),
        (TokenKind.PUNCTUATION, ")"),
        (TokenKind.KEYWORD, "FROM"),
        (TokenKind.IDENTIFIER, "Users"),
        (TokenKind.KEYWORD, "WHERE"),
        (TokenKind.IDENTIFIER, "name"),
        (TokenKind.OPERATOR, "="),
        (TokenKind.STRING, "'o'"),
        (TokenKind.STRING, "'k'"),
        (TokenKind.COMMENT, "-- note"),
    ]


def test_whitespace_runs_collapse_to_one_token():
    tokens = tokenize("a  \n\t b")
    assert [t.text for t in tokens] == ["a", " ", "b"]


def test_numbers_with_decimal_part():
    tokens = tokenize("1.50 + 2")
    assert [(t.kind, t.text) for t in tokens if t.kind == TokenKind.NUMBER] == [
        (TokenKind.NUMBER, "1.50"),
        (TokenKind.NUMBER, "2"),
    ]


def test_format_breaks_clauses_and_indents_conditions():
    sql = "select * from users where a = 1 and b = 2 order by a"
    assert format_sql(sql) == (
        "SELECT *\n"
        "FROM users\n"
        "WHERE a = 1\n"
        "  AND b = 2\n"
        "ORDER BY a"
    )


def test_format_joins_break_once():
    sql = "select a from t left join u on t.id = u.id"
    assert format_sql(sql) == "SELECT a\nFROM t\nLEFT JOIN u ON t.id = u.id"


def test_comment_is_followed_by_newline():
    assert format_sql("select a -- first\nb") == "SELECT a -- first\nb"


@pytest.mark.parametrize("sql", [
    "select * from users where a = 1 and b = 2 order by a",
    "update t set a = 1, b = 2 where id = 3 returning *",
    "select a from t left outer join u on t.id = u.id group by a limit 5",
    "-- header\nselect 1",
])
def test_format_is_idempotent(sql):
    once = format_sql(sql)
    assert format_sql(once) == once
