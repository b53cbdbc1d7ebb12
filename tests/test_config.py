"""Tests for pawnpack.config."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from pawnpack.config import Context
from pawnpack.models import DependencyReference


@pytest.fixture
def settings_file(tmp_path: Path) -> Path:
    path = tmp_path / "config.toml"
    path.write_text(
        'cache_dir = "/var/cache/pawn"\n'
        'platform = "windows"\n'
        "http_timeout = 3.5\n"
        "\n"
        "[mirrors]\n"
        '"pawn-lang/samp-stdlib" = "https://git.example.com/samp-stdlib.git"\n'
    )
    return path


class TestContextLoad:
    def test_missing_file_uses_defaults(self, tmp_path: Path) -> None:
        ctx = Context.load(tmp_path / "nope.toml", env={})
        assert ctx.http_timeout == 10.0
        assert ctx.compiler_path == ""
        assert ctx.mirrors == {}

    def test_reads_settings_file(self, settings_file: Path) -> None:
        ctx = Context.load(settings_file, env={})
        assert ctx.cache_dir == Path("/var/cache/pawn")
        assert ctx.platform == "windows"
        assert ctx.http_timeout == 3.5
        assert "pawn-lang/samp-stdlib" in ctx.mirrors

    def test_environment_overrides_file(self, settings_file: Path, tmp_path: Path) -> None:
        env = {
            "PAWNPACK_CACHE": str(tmp_path / "cache"),
            "PAWNPACK_PLATFORM": "linux",
            "GITHUB_TOKEN": "secret",
        }
        ctx = Context.load(settings_file, env=env)
        assert ctx.cache_dir == tmp_path / "cache"
        assert ctx.platform == "linux"
        assert ctx.github_token == "secret"

    def test_config_path_from_environment(self, settings_file: Path) -> None:
        ctx = Context.load(env={"PAWNPACK_CONFIG": str(settings_file)})
        assert ctx.platform == "windows"

    def test_expands_home(self, tmp_path: Path) -> None:
        ctx = Context.load(tmp_path / "nope.toml", env={"PAWNPACK_CACHE": "~/pawn-cache"})
        assert ctx.cache_dir == Path.home() / "pawn-cache"

    def test_invalid_value(self, tmp_path: Path) -> None:
        path = tmp_path / "config.toml"
        path.write_text('http_timeout = "soon"\n')
        with pytest.raises(ValidationError):
            Context.load(path, env={})


class TestContext:
    def test_clone_url_prefers_mirror(self) -> None:
        ctx = Context(mirrors={"o/r": "https://mirror/o-r.git"})
        assert ctx.clone_url(DependencyReference(owner="o", repo="r")) == "https://mirror/o-r.git"
        assert ctx.clone_url(DependencyReference(owner="o", repo="other")) == "https://github.com/o/other"

    def test_github_headers(self) -> None:
        assert "Authorization" not in Context(github_token="").github_headers()
        headers = Context(github_token="abc").github_headers()
        assert headers["Authorization"] == "Bearer abc"
