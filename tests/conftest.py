"""Shared test fixtures."""

from __future__ import annotations

import json
import os
import shutil
import subprocess
from pathlib import Path

import pytest

from pawnpack.config import Context
from pawnpack.models import PackageDescriptor

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")

_GIT_ENV = {
    **os.environ,
    "GIT_AUTHOR_NAME": "Test",
    "GIT_AUTHOR_EMAIL": "test@example.com",
    "GIT_COMMITTER_NAME": "Test",
    "GIT_COMMITTER_EMAIL": "test@example.com",
    "GIT_CONFIG_NOSYSTEM": "1",
}


class Upstream:
    """A throwaway repository standing in for a remote package."""

    def __init__(self, path: Path) -> None:
        self.path = path
        path.mkdir(parents=True)
        self.git("init", "--quiet")
        self.git("symbolic-ref", "HEAD", "refs/heads/main")

    @property
    def url(self) -> str:
        return str(self.path)

    def git(self, *args: str) -> str:
        result = subprocess.run(
            ["git", *args], cwd=self.path, env=_GIT_ENV, capture_output=True, text=True, check=True
        )
        return result.stdout.strip()

    def commit(self, files: dict[str, str], message: str = "change") -> str:
        for name, content in files.items():
            target = self.path / name
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content)
        self.git("add", "--all")
        self.git("commit", "--quiet", "-m", message)
        return self.git("rev-parse", "HEAD")

    def tag(self, name: str, rev: str = "HEAD") -> None:
        self.git("tag", name, rev)

    def branch(self, name: str, rev: str = "HEAD") -> None:
        self.git("branch", name, rev)


@pytest.fixture
def upstream_factory(tmp_path: Path):
    """Create upstream repositories under tmp_path/remotes/<name>."""

    def make(name: str) -> Upstream:
        return Upstream(tmp_path / "remotes" / name)

    return make


@pytest.fixture
def ctx(tmp_path: Path) -> Context:
    """A Context with an isolated cache and a fixed platform."""
    return Context(cache_dir=tmp_path / "cache", platform="linux", github_token="", compiler_path="pawncc")


@pytest.fixture
def project(tmp_path: Path) -> PackageDescriptor:
    """An empty root package in tmp_path/project."""
    root = tmp_path / "project"
    root.mkdir()
    return PackageDescriptor(
        user="me",
        repo="gamemode",
        entry="main.pwn",
        output="main.amx",
        local_path=root,
        vendor=root / "dependencies",
    )


def write_manifest(directory: Path, data: dict) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / "pawn.json"
    path.write_text(json.dumps(data))
    return path
