from core.fuzzy import fuzzy_match


def test_empty_query_matches_everything():
    assert fuzzy_match("anything", "")


def test_substring_is_case_insensitive():
    assert fuzzy_match("Order_Items", "items")
    assert not fuzzy_match("users", "orders")


def test_valid_regex_is_used_when_substring_misses():
    assert fuzzy_match("users", "^us.*s$")
    assert not fuzzy_match("orders", "^us")


def test_invalid_regex_falls_back_to_substring():
    assert not fuzzy_match("users", "user(")
    assert fuzzy_match("count_user(x)", "user(")
