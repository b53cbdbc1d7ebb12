"""Runtime configuration.

All settings that the resolver, synchronizer and build steps need are held by
one Context object created at startup and passed to every call. Settings come
from an optional TOML file, then environment variables:

    PAWNPACK_CONFIG    settings file (default ~/.config/pawnpack/config.toml)
    PAWNPACK_CACHE     cache directory
    PAWNPACK_PLATFORM  platform name used to select resources
    GITHUB_TOKEN       token for GitHub API requests and release downloads
"""

from __future__ import annotations

import os
import sys
from collections.abc import Mapping
from pathlib import Path

import tomlkit
from pydantic import BaseModel, Field

from .models import DependencyReference


def default_platform() -> str:
    """Platform name in the form manifests use ("linux", "windows", "darwin")."""
    if sys.platform.startswith("win"):
        return "windows"
    if sys.platform.startswith("linux"):
        return "linux"
    return sys.platform


def default_config_path() -> Path:
    return Path.home() / ".config" / "pawnpack" / "config.toml"


def default_cache_dir() -> Path:
    return Path.home() / ".cache" / "pawnpack"


class Context(BaseModel):
    """Explicit settings shared by every operation.

    Attributes:
        cache_dir: Root of the shared package and asset cache.
        platform: Platform used to select resource bundles.
        github_token: Optional token sent with GitHub API requests.
        http_timeout: Seconds allowed for a single HTTP request.
        git_timeout: Seconds allowed for a single git network operation.
        ensure_timeout: Seconds allowed for a whole ensure pass.
        compiler_path: Compiler executable used when a profile doesn't set one.
                       Empty installs the version the profile asks for.
        mirrors: "owner/repo" → clone URL replacing the reference's own URL.
    """

    cache_dir: Path = Field(default_factory=default_cache_dir)
    platform: str = Field(default_factory=default_platform)
    github_token: str = ""
    http_timeout: float = 10.0
    git_timeout: float = 900.0
    ensure_timeout: float = 3600.0
    compiler_path: str = ""
    mirrors: dict[str, str] = Field(default_factory=dict)

    @classmethod
    def load(cls, path: Path | None = None, env: Mapping[str, str] | None = None) -> Context:
        """Build a Context from the settings file and environment.

        Args:
            path: Settings file to read. Defaults to $PAWNPACK_CONFIG or
                  ~/.config/pawnpack/config.toml. A missing file is not an error.
            env: Environment to read overrides from (defaults to os.environ).
        """
        env = os.environ if env is None else env
        if path is None:
            path = Path(env["PAWNPACK_CONFIG"]) if env.get("PAWNPACK_CONFIG") else default_config_path()

        values: dict[str, object] = {}
        if path.exists():
            doc = tomlkit.parse(path.read_text())
            values = doc.unwrap()

        if env.get("PAWNPACK_CACHE"):
            values["cache_dir"] = env["PAWNPACK_CACHE"]
        if env.get("PAWNPACK_PLATFORM"):
            values["platform"] = env["PAWNPACK_PLATFORM"]
        if env.get("GITHUB_TOKEN"):
            values["github_token"] = env["GITHUB_TOKEN"]

        ctx = cls.model_validate(values)
        ctx.cache_dir = ctx.cache_dir.expanduser()
        return ctx

    def clone_url(self, ref: DependencyReference) -> str:
        """URL to clone ``ref`` from, honouring mirrors."""
        return self.mirrors.get(ref.key, ref.url)

    def github_headers(self) -> dict[str, str]:
        headers = {"Accept": "application/vnd.github+json"}
        if self.github_token:
            headers["Authorization"] = f"Bearer {self.github_token}"
        return headers
