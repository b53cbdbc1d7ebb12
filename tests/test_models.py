"""Tests for pawnpack.models."""

from __future__ import annotations

from pathlib import Path

import pytest

from pawnpack.errors import ExtractionFailed
from pawnpack.models import (
    BuildConfig,
    BuildProblem,
    BuildSummary,
    CompilerOptions,
    DependencyReference,
    PackageDescriptor,
    ProblemSeverity,
    Resource,
    Runtime,
    SelectorKind,
)


class TestDependencyReference:
    def test_key_ignores_selector_and_subpath(self) -> None:
        a = DependencyReference(owner="o", repo="r", selector="1.0.0", kind=SelectorKind.CONSTRAINT)
        b = DependencyReference(owner="o", repo="r", subpath="inc")
        assert a.key == b.key == "o/r"

    def test_https_url(self) -> None:
        ref = DependencyReference(site="gitlab.com", owner="o", repo="r")
        assert ref.url == "https://gitlab.com/o/r"

    def test_ssh_url(self) -> None:
        ref = DependencyReference(owner="o", repo="r", ssh_user="git")
        assert ref.url == "git@github.com:o/r"

    def test_tag_only_for_colon_selectors(self) -> None:
        assert DependencyReference(owner="o", repo="r", selector="v1", kind=SelectorKind.REF).tag == "v1"
        assert DependencyReference(owner="o", repo="r", selector="dev", kind=SelectorKind.BRANCH).tag == ""

    def test_with_selector(self) -> None:
        ref = DependencyReference(owner="o", repo="r")
        pinned = ref.with_selector("abc1234", SelectorKind.COMMIT)
        assert str(pinned) == "o/r#abc1234"
        assert ref.kind is SelectorKind.NONE


class TestResource:
    def test_empty_platform_matches_everything(self) -> None:
        res = Resource(name="x")
        assert res.matches("linux")
        assert res.matches("windows")

    def test_platform_must_match(self) -> None:
        res = Resource(name="x", platform="windows")
        assert not res.matches("linux")

    def test_path_is_stable_and_name_dependent(self) -> None:
        a = Resource(name="^plugin-linux.tar.gz$")
        b = Resource(name="^plugin-win.zip$")
        assert a.path("plugin") == a.path("plugin")
        assert a.path("plugin") != b.path("plugin")
        assert a.path("plugin").parent == Path(".resources")
        assert a.path("plugin").name.startswith("plugin-")
        assert len(a.path("plugin").name) == len("plugin-") + 6

    def test_invalid_name_pattern(self) -> None:
        with pytest.raises(ExtractionFailed, match=r"plugin\["):
            Resource(name="plugin[").asset_pattern()


class TestCompilerOptions:
    def test_default_profile_flags(self) -> None:
        opts = CompilerOptions(
            debug_level=3,
            require_semicolons=True,
            require_parentheses=True,
            require_escape_sequences=True,
            compatibility_mode=True,
        )
        assert opts.to_args() == ["-d3", "-;+", "-(+", "-\\+", "-Z+"]

    def test_disabled_switches(self) -> None:
        opts = CompilerOptions(require_semicolons=False, show_warnings=False, optimization_level=1)
        assert opts.to_args() == ["-;-", "-O1", "-w-"]

    def test_empty(self) -> None:
        assert CompilerOptions().to_args() == []


class TestPackageDescriptor:
    def test_profiles_put_single_build_first(self) -> None:
        pkg = PackageDescriptor(
            build=BuildConfig(name="main"),
            builds=[BuildConfig(name="debug"), BuildConfig(name="release")],
        )
        assert [p.name for p in pkg.profiles()] == ["main", "debug", "release"]

    def test_plugins_from_runtime(self) -> None:
        assert PackageDescriptor().plugins == []
        pkg = PackageDescriptor(runtime=Runtime(plugins=["o/plugin"]))
        assert pkg.plugins == ["o/plugin"]

    def test_build_config_aliases(self) -> None:
        config = BuildConfig.model_validate({"workingDir": "gm", "compilerPath": "/bin/pawncc"})
        assert config.working_dir == "gm"
        assert config.compiler_path == "/bin/pawncc"

    def test_local_fields_not_serialized(self, tmp_path: Path) -> None:
        pkg = PackageDescriptor(user="u", repo="r", local_path=tmp_path, vendor=tmp_path / "dependencies")
        dumped = pkg.model_dump()
        assert "local_path" not in dumped
        assert "vendor" not in dumped


class TestBuildSummary:
    def _problem(self, severity: ProblemSeverity) -> BuildProblem:
        return BuildProblem(file="main.pwn", line=3, severity=severity, description="x")

    def test_warnings_are_ok(self) -> None:
        assert BuildSummary(problems=[self._problem(ProblemSeverity.WARNING)]).ok

    def test_errors_are_not_ok(self) -> None:
        assert not BuildSummary(problems=[self._problem(ProblemSeverity.ERROR)]).ok
        assert not BuildSummary(error="compiler crashed").ok

    def test_problem_str(self) -> None:
        assert str(self._problem(ProblemSeverity.FATAL)) == "main.pwn:3 (fatal) x"
