"""
Tests for range rewriting.
"""

import pytest

from dep_bumper.rewriter import update_range


@pytest.mark.parametrize(
    "range_,version,expected",
    [
        ("^1.2.3", "2.0.0", "^2.0.0"),
        ("~6.0.0", "7.7.6", "~7.7.6"),
        ("1.0.0", "1.17.1", "1.17.1"),
        ("^3.0.0", "3.0.0-2", "^3.0.0-2"),
        ("4.0.0-alpha.2", "4.0.0-beta.11", "4.0.0-beta.11"),
        (">=1.0.0", "1.4.0", ">=1.4.0"),
    ],
)
def test_update_range(range_, version, expected):
    assert update_range(range_, version) == expected


def test_every_full_version_is_replaced():
    assert update_range(">=1.0.0 <2.0.0", "3.1.0") == ">=3.1.0 <3.1.0"


@pytest.mark.parametrize("range_", ["*", "~6", "1.x", "latest"])
def test_partial_ranges_unchanged(range_):
    assert update_range(range_, "9.9.9") == range_


def test_version_with_backslash_sequences_is_literal():
    assert update_range("^1.0.0", "2.0.0-\\1") == "^2.0.0-\\1"
