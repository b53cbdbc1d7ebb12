"""Compiler installation.

A build profile names the compiler version it wants. Unless an executable is
configured explicitly, that version is installed from the compiler's GitHub
releases into ``<cache>/pawn/<version>/`` once and reused by later builds.
"""

from __future__ import annotations

import stat
from pathlib import Path

from .config import Context
from .errors import CompilerUnavailable, ExtractionFailed, FetchFailed
from .models import BuildConfig, DependencyReference, Resource
from .resources import install_resource
from .shell import info, verb
from .versions import parse_tag_version

DEFAULT_COMPILER_VERSION = "3.10.10"
COMPILER_REPO = DependencyReference(owner="pawn-lang", repo="compiler")

# release asset name per platform
ASSET_PATTERNS = {
    "linux": r"linux\.tar\.gz$",
    "darwin": r"macos\.zip$",
    "windows": r"windows\.zip$",
}
# archive entries needed to run the compiler, all placed side by side
COMPILER_FILES = {
    r"(^|/)pawncc(\.exe)?$": "",
    r"(^|/)(libpawnc\.so|libpawnc\.dylib|pawnc\.dll)$": "",
}


def compiler_binary(platform: str) -> str:
    return "pawncc.exe" if platform == "windows" else "pawncc"


def compiler_dir(ctx: Context, version: str) -> Path:
    return ctx.cache_dir / "pawn" / version


def resolve_compiler(ctx: Context, config: BuildConfig) -> str:
    """Path of the compiler executable ``config`` should run.

    The profile's own ``compiler_path`` wins, then ``ctx.compiler_path``.
    Otherwise the profile's ``version`` (or the default version when the
    profile names none) is installed into the cache if it isn't there yet.

    Raises:
        CompilerUnavailable: If the version is not a release version, the
            platform has no compiler release, or installation fails.
    """
    if config.compiler_path:
        return config.compiler_path
    if ctx.compiler_path:
        return ctx.compiler_path

    requested = config.version or DEFAULT_COMPILER_VERSION
    version = parse_tag_version(requested)
    if version is None:
        raise CompilerUnavailable(f"build profile {config.name!r}: {requested!r} is not a compiler version")

    directory = compiler_dir(ctx, str(version))
    binary = directory / compiler_binary(ctx.platform)
    if binary.is_file():
        verb("using cached compiler", version, "from", directory)
        return str(binary)

    pattern = ASSET_PATTERNS.get(ctx.platform)
    if pattern is None:
        raise CompilerUnavailable(f"no compiler release is published for platform {ctx.platform!r}")

    info("installing compiler", version)
    resource = Resource(name=pattern, version=f"v{version}", archive=True, files=dict(COMPILER_FILES))
    try:
        installed = install_resource(ctx, COMPILER_REPO, resource, directory)
    except (ExtractionFailed, FetchFailed) as err:
        raise CompilerUnavailable(f"compiler {version}: {err}") from err
    if not binary.is_file():
        raise CompilerUnavailable(f"compiler {version}: release archive has no {binary.name}")

    if ctx.platform != "windows":
        for name in installed.values():
            path = Path(name)
            path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return str(binary)
