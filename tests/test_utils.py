"""
Tests for core utility functions
"""

import pytest
from core.utils import ascii_fold, matches_pattern, slugify


class TestSlugify:
    """Tests for slugify, used to derive display names"""

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("My Report", "my-report"),
            ("already-a-slug", "already-a-slug"),
            ("  spaced   out  ", "spaced-out"),
            ("snake_case_name", "snake-case-name"),
            ("Crème Brûlée", "creme-brulee"),
            ("---", ""),
            ("", ""),
        ],
    )
    def test_slugify(self, value, expected):
        assert slugify(value) == expected

    def test_custom_separator(self):
        assert slugify("My Report 2024", separator="_") == "my_report_2024"


def test_ascii_fold():
    """Test accents are stripped and unmappable characters dropped"""
    assert ascii_fold("naïve café") == "naive cafe"
    assert ascii_fold("日本語.txt") == ".txt"
    assert ascii_fold("plain") == "plain"


class TestMatchesPattern:
    """Tests for the mimetype pattern matching"""

    def test_exact_match(self):
        assert matches_pattern("image/png", "image/png")
        assert not matches_pattern("image/png", "image/jpeg")

    def test_wildcards(self):
        assert matches_pattern("image/*", "image/png")
        assert matches_pattern("*/*", "application/pdf")
        assert matches_pattern("*", "text/plain")
        assert matches_pattern("application/*+json", "application/ld+json")
        assert not matches_pattern("image/*", "text/plain")

    def test_other_characters_are_literal(self):
        assert not matches_pattern("image/?ng", "image/png")
        assert not matches_pattern("text/.*", "text/html")
        assert matches_pattern("text/x-c++", "text/x-c++")

    def test_case_sensitive(self):
        assert not matches_pattern("IMAGE/*", "image/png")

    def test_none_never_matches(self):
        assert not matches_pattern("*", None)
        assert not matches_pattern("image/*", None)
