"""
Tests for the semver helpers.
"""

import pytest
import semantic_version

from dep_bumper.semver_utils import (
    coerce,
    diff_class,
    is_range_prerelease,
    is_valid_range,
    is_valid_version,
    is_version_prerelease,
    normalize_range,
    parse_version,
)


def v(value):
    return semantic_version.Version(value)


class TestParsing:
    def test_parse_valid_version(self):
        assert parse_version("1.2.3") == v("1.2.3")

    def test_parse_drops_build_metadata(self):
        assert parse_version("1.2.3+build.7") == v("1.2.3")

    @pytest.mark.parametrize("value", ["", None, "1.2", "latest", "v1.2.3x", 42])
    def test_parse_invalid(self, value):
        assert parse_version(value) is None

    def test_is_valid_version(self):
        assert is_valid_version("2.0.0-rc.1")
        assert not is_valid_version("^2.0.0")


class TestRanges:
    @pytest.mark.parametrize(
        "value",
        ["^1.2.3", "~6.0.0", "1.0.0", ">=1.0.0 <2.0.0", "*", "", "1.x", "4.0.0-alpha.2"],
    )
    def test_valid_ranges(self, value):
        assert is_valid_range(value)

    @pytest.mark.parametrize(
        "value",
        [
            "github:user/repo#v1.0.0",
            "git+https://github.com/user/repo.git#abc1234",
            "file:../local",
        ],
    )
    def test_invalid_ranges(self, value):
        assert not is_valid_range(value)

    @pytest.mark.parametrize(
        "value", [">= 1.2.3", ">= 1.2.3 < 2.0.0", "~ 1.2.3", "^ 2.0.0", "1.2.3 - 1.4.5", "1.2.*"]
    )
    def test_loose_npm_syntax(self, value):
        assert is_valid_range(value)

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("1.2.3 - 1.4.5", ">=1.2.3,<=1.4.5"),
            ("1.2.x", ">=1.2.0,<1.3.0"),
            ("1.*", ">=1.0.0,<2.0.0"),
            ("2", ">=2.0.0,<3.0.0"),
            (">= 1.2.3", ">=1.2.3"),
        ],
    )
    def test_normalize_range(self, value, expected):
        assert normalize_range(value) == expected
        semantic_version.SimpleSpec(expected)

    def test_range_prerelease(self):
        assert is_range_prerelease("^3.0.0-2")
        assert is_range_prerelease("4.0.0-alpha.2")
        assert not is_range_prerelease("^3.0.0")

    def test_version_prerelease(self):
        assert is_version_prerelease("3.2.0-beta")
        assert not is_version_prerelease("3.2.0")
        assert not is_version_prerelease("not-a-version")


class TestCoerce:
    @pytest.mark.parametrize(
        "value,expected",
        [
            ("^1.2.3", "1.2.3"),
            ("~6", "6.0.0"),
            (">=2.1", "2.1.0"),
            ("4.0.0-alpha.2", "4.0.0"),
            ("v3.4.5", "3.4.5"),
        ],
    )
    def test_coerce(self, value, expected):
        assert coerce(value) == v(expected)

    def test_coerce_without_number(self):
        assert coerce("latest") is None
        assert coerce("") is None


class TestDiffClass:
    @pytest.mark.parametrize(
        "old,new,expected",
        [
            ("1.0.0", "1.0.1", "patch"),
            ("1.0.0", "1.1.0", "minor"),
            ("1.0.0", "2.0.0", "major"),
            ("3.1.0", "3.2.0-beta", "preminor"),
            ("2.5.0", "5.0.0-rc.2", "premajor"),
            ("3.0.0", "3.0.0-2", "prerelease"),
            ("4.0.0-alpha.2", "4.0.0-beta.11", "prerelease"),
            ("3.0.0", "2.0.3", "major"),
        ],
    )
    def test_diff(self, old, new, expected):
        assert diff_class(v(old), v(new)) == expected

    def test_equal_versions(self):
        assert diff_class(v("1.2.3"), v("1.2.3")) is None
