"""Tests for taskmark.ids.resolve_id."""

from __future__ import annotations

import pytest

from taskmark.errors import AmbiguousIdError, NotFoundError
from taskmark.ids import resolve_id

IDS = ["3f2a9c", "3f2b10", "a17e00"]


def test_exact_match():
    assert resolve_id(IDS, "a17e00") == "a17e00"


def test_unique_prefix():
    assert resolve_id(IDS, "a1") == "a17e00"
    assert resolve_id(IDS, "3f2a") == "3f2a9c"


def test_query_is_trimmed():
    assert resolve_id(IDS, "  a17  ") == "a17e00"


def test_exact_match_wins_over_longer_candidates():
    assert resolve_id(["ab", "abc"], "ab") == "ab"


def test_ambiguous_prefix():
    with pytest.raises(AmbiguousIdError) as excinfo:
        resolve_id(IDS, "3f2", kind="run")
    assert excinfo.value.matches == ["3f2a9c", "3f2b10"]
    assert "2 runs" in str(excinfo.value)


def test_ambiguous_is_a_not_found():
    """Callers that only catch NotFoundError still see ambiguity."""
    with pytest.raises(NotFoundError):
        resolve_id(IDS, "3")


def test_duplicate_candidates_collapse():
    assert resolve_id(["abc", "abc"], "a") == "abc"


def test_no_match():
    with pytest.raises(NotFoundError, match="Template not found: zz"):
        resolve_id(IDS, "zz", kind="template")


@pytest.mark.parametrize("query", ["", "   ", None])
def test_blank_query(query):
    with pytest.raises(NotFoundError, match="cannot be blank"):
        resolve_id(IDS, query)
