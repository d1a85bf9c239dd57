import pytest

from utils.helpers import (
    detect_query_type,
    extract_ddl_table_name,
    extract_table_name,
    format_duration,
    is_create_table,
    is_row_returning,
    sanitize_cell,
    statement_at_cursor,
    truncate_string,
)


def test_truncate_string():
    assert truncate_string("abcdef", 10) == "abcdef"
    assert truncate_string("abcdef", 4) == "abc…"
    assert truncate_string("abcdef", 0) == ""


def test_format_duration():
    assert format_duration(45) == "45ms"
    assert format_duration(1500) == "1.50s"
    assert format_duration(61000) == "1m 1.0s"


def test_sanitize_cell_flattens_newlines_and_tabs():
    assert sanitize_cell("a\nb\r\nc\td") == "a↵b↵c d"


@pytest.mark.parametrize("sql, expected", [
    ("  select 1", True),
    ("WITH x AS (SELECT 1) SELECT * FROM x", True),
    ("explain select 1", True),
    ("update t set a = 1", False),
])
def test_is_row_returning(sql, expected):
    assert is_row_returning(sql) is expected


def test_detect_query_type():
    assert detect_query_type("with x as (select 1) select * from x") == "SELECT"
    assert detect_query_type("begin") == "TRANSACTION"
    assert detect_query_type("vacuum") == "UNKNOWN"


@pytest.mark.parametrize("sql, expected", [
    ("SELECT * FROM users WHERE id = 1", "users"),
    ('select * from public."Orders";', "Orders"),
    ("INSERT INTO items (id) VALUES (1)", "items"),
    ("update accounts set x = 1", "accounts"),
    ("SELECT 1", ""),
])
def test_extract_table_name(sql, expected):
    assert extract_table_name(sql) == expected


@pytest.mark.parametrize("sql, expected", [
    ("CREATE TABLE IF NOT EXISTS public.orders (id int)", "orders"),
    ('DROP TABLE IF EXISTS "Items";', "Items"),
    ("alter table users add column age int", "users"),
    ("CREATE TEMP TABLE scratch (x int)", "scratch"),
    ("CREATE UNLOGGED TABLE fast (x int)", "fast"),
    ("CREATE INDEX idx ON users (name)", ""),
    ("SELECT * FROM users", ""),
])
def test_extract_ddl_table_name(sql, expected):
    assert extract_ddl_table_name(sql) == expected


def test_is_create_table():
    assert is_create_table("create temporary table t (x int)")
    assert not is_create_table("drop table t")


def test_statement_at_cursor():
    text = "select 1;\nselect 2;\n"
    assert statement_at_cursor(text, 3) == "select 1"
    assert statement_at_cursor(text, 12) == "select 2"
    assert statement_at_cursor(text, len(text)) == "select 2"
    assert statement_at_cursor("   ", 1) == ""
