"""Resource bundle installation.

Packages that ship binaries or pre-built include trees publish them as GitHub
release assets and describe them in their manifest's ``resources`` list.
Assets are downloaded once into ``<cache>/assets/<owner>/<repo>/<tag>/`` and
then extracted into the consuming package's vendor directory.
"""

from __future__ import annotations

import shutil
from pathlib import Path

import requests

from .config import Context
from .errors import ExtractionFailed, FetchFailed
from .extract import extract
from .models import DependencyReference, Resource
from .shell import info, verb

API_ROOT = "https://api.github.com"


def install_resource(ctx: Context, ref: DependencyReference, resource: Resource, dest: Path) -> dict[str, str]:
    """Download ``resource`` for dependency ``ref`` and unpack it into ``dest``.

    Archive includes are flattened into ``dest``; plugins go to
    ``dest/plugins``; ``files`` entries go wherever they say.

    Returns:
        Map of archive entry (or asset file) → installed path.

    Raises:
        ExtractionFailed: If no asset matches or nothing could be extracted.
        FetchFailed: If the release can't be retrieved.
    """
    asset = fetch_asset(ctx, ref, resource)
    dest.mkdir(parents=True, exist_ok=True)
    verb(ref, "installing resource", resource.name, "to", dest)

    if not resource.archive:
        plugins = dest / "plugins"
        plugins.mkdir(exist_ok=True)
        target = plugins / asset.name
        shutil.copyfile(asset, target)
        return {asset.name: str(target)}

    path_map: dict[str, str] = {}
    for plugin in resource.plugins:
        path_map[plugin] = "plugins/"
    for include in resource.includes:
        path_map[include] = ""
    path_map.update(resource.files)

    files = extract(asset, dest, path_map)
    if not files:
        raise ExtractionFailed(
            f"no files extracted from {asset.name} for {ref}: "
            "check the package definition against the release assets"
        )
    verb(ref, "extracted", len(files), "files to", dest)
    return files


def fetch_asset(ctx: Context, ref: DependencyReference, resource: Resource) -> Path:
    """Return a local copy of the release asset matching ``resource.name``.

    The release is ``resource.version`` if set, else the reference's tag,
    else the latest release. Pinned releases are served from the cache when
    already downloaded.
    """
    tag = resource.version or ref.tag
    pattern = resource.asset_pattern()

    if tag:
        cached = _cached_asset(ctx, ref, tag, resource)
        if cached is not None:
            verb(ref, "using cached asset", cached)
            return cached
    else:
        info(ref, "no version specified, downloading the latest release of", resource.name)

    release = _get_release(ctx, ref, tag)
    if release is None and tag and not resource.version:
        verb(ref, "no release tagged", tag, "falling back to latest")
        tag = ""
        release = _get_release(ctx, ref, tag)
    if release is None:
        raise ExtractionFailed(f"{ref}: no release found for tag {tag or 'latest'!r}")

    for asset in release.get("assets", []):
        if pattern.search(asset["name"]):
            dest = asset_dir(ctx, ref, release.get("tag_name") or tag or "latest") / asset["name"]
            _download(ctx, asset["browser_download_url"], dest)
            return dest

    raise ExtractionFailed(f"{ref}: no release asset matches {resource.name!r}")


def asset_dir(ctx: Context, ref: DependencyReference, tag: str) -> Path:
    return ctx.cache_dir / "assets" / ref.owner / ref.repo / tag


def _cached_asset(ctx: Context, ref: DependencyReference, tag: str, resource: Resource) -> Path | None:
    directory = asset_dir(ctx, ref, tag)
    if not directory.is_dir():
        return None
    pattern = resource.asset_pattern()
    for path in sorted(directory.iterdir()):
        if path.is_file() and not path.name.endswith(".part") and pattern.search(path.name):
            return path
    return None


def _get_release(ctx: Context, ref: DependencyReference, tag: str) -> dict | None:
    suffix = f"tags/{tag}" if tag else "latest"
    url = f"{API_ROOT}/repos/{ref.owner}/{ref.repo}/releases/{suffix}"
    try:
        resp = requests.get(url, headers=ctx.github_headers(), timeout=ctx.http_timeout)
    except requests.exceptions.RequestException as exc:
        raise FetchFailed(f"{ref}: {exc}") from exc
    if resp.status_code == 404:
        return None
    if resp.status_code != 200:
        raise FetchFailed(f"{ref}: GitHub API returned {resp.status_code} for {url}")
    return resp.json()


def _download(ctx: Context, url: str, dest: Path) -> None:
    dest.parent.mkdir(parents=True, exist_ok=True)
    partial = dest.with_name(dest.name + ".part")
    try:
        with requests.get(url, headers=ctx.github_headers(), timeout=ctx.http_timeout, stream=True) as resp:
            resp.raise_for_status()
            with open(partial, "wb") as out:
                for chunk in resp.iter_content(chunk_size=64 * 1024):
                    out.write(chunk)
    except requests.exceptions.RequestException as exc:
        partial.unlink(missing_ok=True)
        raise FetchFailed(f"failed to download {url}: {exc}") from exc
    partial.replace(dest)
    verb("downloaded", url, "to", dest)
