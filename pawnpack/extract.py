"""Archive extraction.

Resources ship as .zip or .tar.gz release assets. Extraction is driven by a
path map: each key is a regular expression (or, if it doesn't compile, a
literal path or directory prefix) matched against archive entry names, and
each value says where a matching entry goes:

    ""          the entry's base name, directly in the destination
    "plugins/"  the entry's base name, inside that directory
    "a/b.txt"   exactly that path

Relative targets are resolved against the destination directory. Entries
that match no key are skipped.
"""

from __future__ import annotations

import re
import shutil
import tarfile
import zipfile
from enum import Enum
from pathlib import Path, PurePosixPath

from .errors import ExtractionFailed


class ExtractMethod(Enum):
    ZIP = "zip"
    TAR_GZ = "tar.gz"

    @classmethod
    def for_path(cls, archive: Path) -> ExtractMethod:
        """Pick the method from the archive's file name.

        Raises:
            ExtractionFailed: For any other kind of file.
        """
        name = archive.name.lower()
        if name.endswith(".zip"):
            return cls.ZIP
        if name.endswith((".tar.gz", ".tgz", ".gz")):
            return cls.TAR_GZ
        raise ExtractionFailed(f"unsupported archive format: {archive.name}")


def extract(archive: Path, dest: Path, path_map: dict[str, str]) -> dict[str, str]:
    """Extract the entries of ``archive`` selected by ``path_map`` into ``dest``.

    Returns:
        Map of archive entry name → extracted file path.

    Raises:
        ExtractionFailed: If the archive can't be read or an entry would be
            written outside ``dest``.
    """
    method = ExtractMethod.for_path(archive)
    try:
        if method is ExtractMethod.ZIP:
            return _unzip(archive, dest, path_map)
        elif method is ExtractMethod.TAR_GZ:
            return _untar(archive, dest, path_map)
        else:
            raise AssertionError(f"unhandled extract method {method}")
    except (OSError, zipfile.BadZipFile, tarfile.TarError) as err:
        raise ExtractionFailed(f"failed to extract {archive.name}: {err}") from err


def _unzip(archive: Path, dest: Path, path_map: dict[str, str]) -> dict[str, str]:
    files: dict[str, str] = {}
    with zipfile.ZipFile(archive) as zf:
        for info in zf.infolist():
            if info.is_dir():
                continue
            target = target_for(info.filename, path_map, dest)
            if target is None:
                continue
            target.parent.mkdir(parents=True, exist_ok=True)
            with zf.open(info) as src, open(target, "wb") as out:
                shutil.copyfileobj(src, out)
            files[info.filename] = str(target)
    return files


def _untar(archive: Path, dest: Path, path_map: dict[str, str]) -> dict[str, str]:
    files: dict[str, str] = {}
    with tarfile.open(archive, "r:*") as tf:
        for member in tf:
            if not member.isreg() or not member.name:
                continue
            target = target_for(member.name, path_map, dest)
            if target is None:
                continue
            src = tf.extractfile(member)
            if src is None:
                continue
            target.parent.mkdir(parents=True, exist_ok=True)
            with src, open(target, "wb") as out:
                shutil.copyfileobj(src, out)
            files[member.name] = str(target)
    return files


def target_for(name: str, path_map: dict[str, str], dest: Path) -> Path | None:
    """Where entry ``name`` should be written, or None if no key selects it."""
    for source, target in path_map.items():
        if _matches(name, source):
            break
    else:
        return None

    base = PurePosixPath(name).name
    if target == "":
        out = Path(base)
    elif target.endswith("/"):
        out = Path(target) / base
    else:
        out = Path(target)
    if not out.is_absolute():
        out = dest / out

    root = dest.resolve()
    resolved = out.resolve()
    if out.is_relative_to(dest) and not resolved.is_relative_to(root):
        raise ExtractionFailed(f"archive entry {name!r} escapes {dest}")
    return out


def _matches(name: str, source: str) -> bool:
    try:
        pattern = re.compile(source)
    except re.error:
        return name == source or name.startswith(source.rstrip("/") + "/")
    return pattern.search(name) is not None
