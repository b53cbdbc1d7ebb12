"""Tests for pawnpack.build."""

from __future__ import annotations

import threading
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from pawnpack.build import (
    BuildGeneration,
    build_args,
    default_build_config,
    format_constants,
    prepare,
    select_build_config,
    warn_include_collisions,
)
from pawnpack.config import Context
from pawnpack.errors import BuildFileError, DependencyError
from pawnpack.models import BuildConfig, CompilerOptions, PackageDescriptor, ResolvedDependencySet, Resource
from pawnpack.sync import EnsureReport

from conftest import write_manifest


class TestSelectBuildConfig:
    def test_default_when_none_declared(self) -> None:
        config = select_build_config(PackageDescriptor())
        assert config == default_build_config()
        assert config.version == "3.10.10"
        assert config.options is not None
        assert config.options.to_args() == ["-d3", "-;+", "-(+", "-\\+", "-Z+"]

    def test_first_profile_when_unnamed(self) -> None:
        pkg = PackageDescriptor(builds=[BuildConfig(name="debug"), BuildConfig(name="release")])
        assert select_build_config(pkg).name == "debug"

    def test_by_name(self) -> None:
        pkg = PackageDescriptor(builds=[BuildConfig(name="debug"), BuildConfig(name="release")])
        assert select_build_config(pkg, "release").name == "release"

    def test_unknown_name_warns_and_uses_default(self, capsys: pytest.CaptureFixture[str]) -> None:
        pkg = PackageDescriptor(builds=[BuildConfig(name="debug")])
        assert select_build_config(pkg, "nope").name == "default"
        assert "no build profile named 'nope'" in capsys.readouterr().err

    def test_returns_copy(self) -> None:
        pkg = PackageDescriptor(builds=[BuildConfig(name="debug", includes=["inc"])])
        select_build_config(pkg).includes.append("other")
        assert pkg.builds[0].includes == ["inc"]


class TestPrepare:
    def test_paths_made_absolute(self, ctx: Context, project: PackageDescriptor) -> None:
        project.entry = "gamemodes/main.pwn"
        project.output = "gamemodes/main.amx"
        config = prepare(ctx, project, do_ensure=False)

        assert config.input == str(project.local_path / "gamemodes" / "main.pwn")
        assert config.output == str(project.local_path / "gamemodes" / "main.amx")
        assert config.working_dir == str(project.local_path / "gamemodes")
        assert config.compiler_path == "pawncc"

    def test_profile_overrides(self, ctx: Context, project: PackageDescriptor) -> None:
        project.builds = [
            BuildConfig(
                name="test",
                input="test/main.pwn",
                output="/tmp/test.amx",
                working_dir="test",
                compiler_path="/opt/pawncc",
            )
        ]
        config = prepare(ctx, project, "test", do_ensure=False)

        assert config.input == str(project.local_path / "test" / "main.pwn")
        assert config.output == "/tmp/test.amx"
        assert config.working_dir == str(project.local_path / "test")
        assert config.compiler_path == "/opt/pawncc"

    def test_compiler_installed_for_profile_version(self, ctx: Context, project: PackageDescriptor) -> None:
        ctx.compiler_path = ""
        binary = ctx.cache_dir / "pawn" / "3.10.4" / "pawncc"
        binary.parent.mkdir(parents=True)
        binary.write_text("")
        project.builds = [BuildConfig(name="legacy", version="3.10.4")]

        config = prepare(ctx, project, "legacy", do_ensure=False)

        assert config.compiler_path == str(binary)

    def test_include_order(self, ctx: Context, project: PackageDescriptor) -> None:
        vendor = project.vendor
        write_manifest(vendor / "a", {"user": "o", "repo": "a", "include_path": "include"})
        (vendor / "b").mkdir(parents=True)
        (vendor / "c").mkdir(parents=True)
        bundle = Resource(name="linux", platform="linux", archive=True, includes=[r"\.inc$"])
        write_manifest(vendor / "res", {"user": "o", "repo": "res", "resources": [bundle.model_dump()]})
        project.dependencies = ["o/a", "o/b/sub", "o/c", "o/res"]
        project.builds = [BuildConfig(name="main", includes=["extra-inc"])]

        config = prepare(ctx, project, do_ensure=False, extra_includes=["/opt/pawn/include"])

        assert config.includes == [
            str(project.local_path / "extra-inc"),
            str(project.local_path),
            str(vendor / "a" / "include"),
            str(vendor / "b" / "sub"),
            str(vendor / "c"),
            str(vendor / bundle.path("res")),
            "/opt/pawn/include",
        ]

    def test_duplicate_includes_removed(self, ctx: Context, project: PackageDescriptor) -> None:
        config = prepare(ctx, project, do_ensure=False, extra_includes=[str(project.local_path)])
        assert config.includes == [str(project.local_path)]

    @patch("pawnpack.build.ensure_dependencies")
    def test_ensure_failure(self, mock_ensure: MagicMock, ctx: Context, project: PackageDescriptor) -> None:
        mock_ensure.return_value = EnsureReport(resolved=ResolvedDependencySet(), failed={"o/a": "offline"})
        with pytest.raises(DependencyError, match="o/a"):
            prepare(ctx, project)

    @patch("pawnpack.build.ensure_dependencies")
    def test_ensure_passes_force(self, mock_ensure: MagicMock, ctx: Context, project: PackageDescriptor) -> None:
        mock_ensure.return_value = EnsureReport(resolved=ResolvedDependencySet())
        prepare(ctx, project, force=True)
        mock_ensure.assert_called_once_with(ctx, project, force=True)


class TestBuildArgs:
    def test_order(self) -> None:
        config = BuildConfig(
            input="/p/main.pwn",
            output="/p/main.amx",
            working_dir="/p",
            args=["-d3"],
            includes=["/p", "/p/dependencies/a"],
            constants={"MAX_PLAYERS": "50"},
        )
        assert build_args(config) == [
            "/p/main.pwn",
            "-D/p",
            "-o/p/main.amx",
            "-d3",
            "-i/p",
            "-i/p/dependencies/a",
            "MAX_PLAYERS=50",
        ]

    def test_options_replace_args(self) -> None:
        config = BuildConfig(args=["-d0"], options=CompilerOptions(debug_level=2))
        args = build_args(config)
        assert "-d2" in args
        assert "-d0" not in args


class TestFormatConstants:
    def test_numbers_and_empty_are_bare(self) -> None:
        assert format_constants({"A": "1", "B": "-2.5", "C": ""}) == ["A=1", "B=-2.5", "C="]

    def test_strings_are_quoted(self) -> None:
        assert format_constants({"NAME": 'my "mode"'}) == ['NAME="my \\"mode\\""']

    def test_environment_values(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("BUILD_ID", "42")
        assert format_constants({"BUILD": "$BUILD_ID"}) == ["BUILD=42"]

    def test_unset_environment_value(
        self, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
    ) -> None:
        monkeypatch.delenv("NOT_SET_ANYWHERE", raising=False)
        assert format_constants({"X": "$NOT_SET_ANYWHERE"}) == ["X="]
        assert "NOT_SET_ANYWHERE" in capsys.readouterr().err


class TestIncludeCollisions:
    def test_reports_collisions(self, tmp_path: Path) -> None:
        first, second = tmp_path / "first", tmp_path / "second"
        for d in (first, second):
            d.mkdir()
            (d / "shared.inc").write_text("")
        (first / "only.inc").write_text("")

        collisions = warn_include_collisions([str(first), str(second), str(tmp_path / "missing")])

        assert collisions == {"shared.inc": [str(first), str(second)]}


class TestBuildGeneration:
    def test_missing_file_created(self, tmp_path: Path) -> None:
        path = tmp_path / "build-number"
        assert BuildGeneration(path).read() == 0
        assert path.read_text() == "0"

    def test_increment_persists(self, tmp_path: Path) -> None:
        path = tmp_path / "build-number"
        path.write_text("41\n")
        gen = BuildGeneration(path)
        assert gen.increment() == 42
        assert BuildGeneration(path).read() == 42

    @pytest.mark.parametrize("content", ["forty", "-3"])
    def test_bad_content(self, tmp_path: Path, content: str) -> None:
        path = tmp_path / "build-number"
        path.write_text(content)
        gen = BuildGeneration(path)
        with pytest.raises(BuildFileError):
            gen.read()
        assert gen.increment() is None
        assert path.read_text() == content

    def test_in_memory(self) -> None:
        gen = BuildGeneration()
        assert [gen.increment(), gen.increment()] == [1, 2]
        assert gen.read() == 2

    def test_concurrent_increments(self, tmp_path: Path) -> None:
        gen = BuildGeneration(tmp_path / "build-number")
        threads = [threading.Thread(target=gen.increment) for _ in range(20)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert gen.read() == 20
