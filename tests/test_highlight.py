import pytest

from services.relevance import highlight_search_terms


def as_pairs(segments):
    return [(segment.is_match, segment.text) for segment in segments]


def test_case_insensitive_match_keeps_original_casing():
    assert as_pairs(highlight_search_terms("Login Failed", "login")) == [
        (True, "Login"),
        (False, " Failed"),
    ]


@pytest.mark.parametrize("query", ["", "   ", "the of and"])
def test_query_without_tokens_returns_whole_text(query):
    assert as_pairs(highlight_search_terms("Login Failed", query)) == [(False, "Login Failed")]


def test_empty_text_has_no_segments():
    assert highlight_search_terms("", "login") == []


def test_full_phrase_is_one_segment():
    assert as_pairs(highlight_search_terms("Click the Login Form now", "login form")) == [
        (False, "Click the "),
        (True, "Login Form"),
        (False, " now"),
    ]


def test_tokens_respect_word_boundaries():
    assert as_pairs(highlight_search_terms("blogin login", "login x")) == [
        (False, "blogin "),
        (True, "login"),
    ]


def test_regex_characters_in_query_are_escaped():
    segments = highlight_search_terms("Fatal (error) in c++ (error)", "c++ (error)")
    assert as_pairs(segments) == [
        (False, "Fatal ("),
        (True, "error"),
        (False, ") in "),
        (True, "c++ (error)"),
    ]


def test_segments_rebuild_the_original_text():
    text = "Error: password incorrect. Reset your password?"
    segments = highlight_search_terms(text, "password reset")
    assert "".join(segment.text for segment in segments) == text
    assert [s.text for s in segments if s.is_match] == ["password", "Reset", "password"]
