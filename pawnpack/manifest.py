"""Package manifest loading.

A package directory holds one of pawn.json, pawn.yaml or pawn.toml. JSON and
YAML are the common formats; TOML is read with tomlkit the same way the
settings file is.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import requests
import tomlkit
from tomlkit.exceptions import TOMLKitError
import yaml
from pydantic import ValidationError

from .config import Context
from .errors import FetchFailed, ManifestError
from .models import DependencyReference, PackageDescriptor
from .shell import verb

MANIFEST_NAMES = ("pawn.json", "pawn.yaml", "pawn.toml")
VENDOR_DIR = "dependencies"


def find_manifest(directory: Path) -> Path | None:
    """Return the first manifest file present in ``directory``."""
    for name in MANIFEST_NAMES:
        candidate = directory / name
        if candidate.is_file():
            return candidate
    return None


def parse_manifest(text: str, name: str) -> PackageDescriptor:
    """Parse manifest text; the format is chosen from the file name.

    Raises:
        ManifestError: If the text is not valid for its format or does not
            describe a package.
    """
    try:
        data = _decode(text, name)
    except (ValueError, yaml.YAMLError, TOMLKitError) as err:
        raise ManifestError(f"{name}: {err}") from err
    if not isinstance(data, dict):
        raise ManifestError(f"{name}: expected a mapping at the top level")
    try:
        return PackageDescriptor.model_validate(data)
    except ValidationError as err:
        raise ManifestError(f"{name}: {err}") from err


def _decode(text: str, name: str) -> Any:
    if name.endswith(".json"):
        return json.loads(text)
    if name.endswith((".yaml", ".yml")):
        return yaml.safe_load(text)
    return tomlkit.parse(text).unwrap()


def load_package(directory: Path) -> PackageDescriptor | None:
    """Load the package in ``directory``.

    Returns:
        The descriptor with ``local_path`` and ``vendor`` filled in, or None
        when the directory holds no manifest (e.g. a repository that predates
        packaging support).

    Raises:
        ManifestError: If a manifest exists but cannot be read or parsed.
    """
    path = find_manifest(directory)
    if path is None:
        return None
    try:
        text = path.read_bytes().decode("utf-8")
    except (OSError, UnicodeDecodeError) as err:
        raise ManifestError(f"{path.name}: {err}") from err
    pkg = parse_manifest(text, path.name)
    pkg.local_path = directory
    pkg.vendor = directory / VENDOR_DIR
    return pkg


def fetch_remote_package(ctx: Context, ref: DependencyReference) -> PackageDescriptor | None:
    """Fetch a package's manifest straight from its GitHub repository.

    Only github.com references are supported. Each request is bounded by
    ``ctx.http_timeout``.

    Raises:
        FetchFailed: On a network error.
    """
    if ref.site != "github.com":
        return None
    for name in MANIFEST_NAMES:
        url = f"https://raw.githubusercontent.com/{ref.owner}/{ref.repo}/HEAD/{name}"
        try:
            resp = requests.get(url, headers=ctx.github_headers(), timeout=ctx.http_timeout)
        except requests.exceptions.RequestException as exc:
            raise FetchFailed(f"{ref}: {exc}") from exc
        if resp.status_code == 404:
            continue
        if resp.status_code != 200:
            raise FetchFailed(f"{ref}: {url} returned {resp.status_code}")
        verb(ref, "using remote package definition", name)
        return parse_manifest(resp.text, name)
    return None
