"""Tests for pawnpack.versions."""

from __future__ import annotations

import pytest
import semver

from pawnpack.versions import is_constraint, parse_constraint, parse_tag_version, parse_version


class TestParseVersion:
    def test_full_version(self) -> None:
        assert parse_version("1.2.3") == semver.Version(1, 2, 3)

    def test_v_prefix(self) -> None:
        assert parse_version("v1.2.3") == semver.Version(1, 2, 3)

    def test_pads_missing_parts(self) -> None:
        assert parse_version("1") == semver.Version(1, 0, 0)
        assert parse_version("v1.2") == semver.Version(1, 2, 0)

    def test_prerelease(self) -> None:
        v = parse_version("2.0.0-rc.1")
        assert v.prerelease == "rc.1"

    def test_invalid(self) -> None:
        with pytest.raises(ValueError):
            parse_version("release-1")

    def test_tag_version(self) -> None:
        assert parse_tag_version("v3.1.0") == semver.Version(3, 1, 0)
        assert parse_tag_version("latest") is None


class TestConstraint:
    @pytest.mark.parametrize(
        ("constraint", "allowed", "rejected"),
        [
            ("1.2.3", ["1.2.3", "v1.2.3"], ["1.2.4", "1.2.2"]),
            ("=1.2", ["1.2.0", "1.2.9"], ["1.3.0"]),
            ("1.2.x", ["1.2.0", "1.2.7"], ["1.3.0", "1.1.9"]),
            ("*", ["0.0.1", "9.9.9"], []),
            ("^1.2.3", ["1.2.3", "1.9.0"], ["2.0.0", "1.2.2"]),
            ("^0.2.3", ["0.2.3", "0.2.9"], ["0.3.0"]),
            ("^0.0.3", ["0.0.3"], ["0.0.4"]),
            ("~1.2.3", ["1.2.3", "1.2.9"], ["1.3.0"]),
            ("~2.x", ["2.0.0", "2.5.1"], ["3.0.0", "1.9.9"]),
            ("~>1.4", ["1.4.0", "1.4.8"], ["1.5.0"]),
            (">=1.0, <2", ["1.0.0", "1.99.0"], ["2.0.0", "0.9.0"]),
            (">1.0 <=1.4.0", ["1.1.0", "1.4.0"], ["1.0.5", "1.4.1"]),
            ("<=1.4", ["1.4.9"], ["1.5.0"]),
            ("!=1.2.3", ["1.2.4"], ["1.2.3"]),
            ("1.2 - 1.4.5", ["1.2.0", "1.4.5"], ["1.4.6", "1.1.0"]),
            ("^1 || ^3", ["1.5.0", "3.0.0"], ["2.0.0"]),
        ],
    )
    def test_allows(self, constraint: str, allowed: list[str], rejected: list[str]) -> None:
        c = parse_constraint(constraint)
        for version in allowed:
            assert c.allows(parse_version(version)), f"{constraint} should allow {version}"
        for version in rejected:
            assert not c.allows(parse_version(version)), f"{constraint} should reject {version}"

    def test_prerelease_needs_opt_in(self) -> None:
        assert not parse_constraint("^1.0.0").allows(parse_version("1.1.0-beta"))
        assert parse_constraint(">=1.1.0-alpha").allows(parse_version("1.1.0-beta"))

    @pytest.mark.parametrize("text", ["", "master", "release-4.19", "1.2.3.4", "^", ">=", "v1.0 latest"])
    def test_not_a_constraint(self, text: str) -> None:
        assert not is_constraint(text)
        with pytest.raises(ValueError):
            parse_constraint(text)

    def test_best_picks_highest_matching_tag(self) -> None:
        tags = ["v1.0.0", "v1.4.2", "v2.0.0", "v1.4.10", "not-a-version"]
        assert parse_constraint("^1.0").best(tags) == "v1.4.10"
        assert parse_constraint("^3").best(tags) is None
