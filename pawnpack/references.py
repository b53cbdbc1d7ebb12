"""Dependency reference parsing.

A dependency reference is the compact string form used in manifests and on
the command line:

    [https://][site/]owner/repo[/subpath][:tag-or-constraint]
    [site/]owner/repo[/subpath]@branch
    [site/]owner/repo[/subpath]#commit
    user@host:owner/repo[/subpath][:selector]

The site defaults to github.com. Parsing has no side effects; callers decide
whether to warn about non-semantic selectors.
"""

from __future__ import annotations

import re

from .errors import MalformedReference
from .models import DEFAULT_SITE, DependencyReference, SelectorKind
from .versions import is_constraint

_SCHEME_RE = re.compile(r"^https?://", re.IGNORECASE)
_SSH_RE = re.compile(r"^(?P<user>[A-Za-z0-9_.-]+)@(?P<host>[A-Za-z0-9_.-]+):(?P<rest>.+)$")
_OWNER_RE = re.compile(r"^[A-Za-z0-9-]+$")
_REPO_RE = re.compile(r"^[A-Za-z0-9_-]+$")
_COMMIT_RE = re.compile(r"^[0-9a-fA-F]{7,40}$")
_SIGIL_KINDS = {"@": SelectorKind.BRANCH, "#": SelectorKind.COMMIT}


def parse_reference(text: str) -> DependencyReference:
    """Parse a dependency string into a DependencyReference.

    Args:
        text: The reference, e.g. "pawn-lang/YSI-Includes:^5.4".

    Returns:
        The structured reference. A ":" selector that is not a semver
        constraint is kept as an opaque tag/branch name and the reference
        reports ``non_semantic``.

    Raises:
        MalformedReference: If owner or repo are missing or invalid, or a
            "#" selector is not a commit hash.

    Examples:
        >>> parse_reference("Southclaws/samp-stdlib:0.3.7-R2-2-1").kind
        <SelectorKind.CONSTRAINT: 'constraint'>
        >>> str(parse_reference("https://github.com/a/b.git@dev"))
        'a/b@dev'
    """
    raw = text.strip()
    if not raw:
        raise MalformedReference(text, "empty reference")

    ssh_user = ""
    site = ""
    ssh = _SSH_RE.match(raw)
    if ssh:
        ssh_user, site, body = ssh["user"], ssh["host"], ssh["rest"]
    else:
        body = _SCHEME_RE.sub("", raw)

    body, sigil, selector = _split_selector(body)
    if _has_space(body) or (_has_space(selector) and not (sigil == ":" and is_constraint(selector))):
        raise MalformedReference(text, "contains whitespace")

    segments = body.split("/")
    if not site and "." in segments[0]:
        site = segments.pop(0)
    if len(segments) < 2:
        raise MalformedReference(text, "expected owner/repo")

    owner, repo, *rest = segments
    if repo.endswith(".git"):
        repo = repo[: -len(".git")]
    if not _OWNER_RE.match(owner):
        raise MalformedReference(text, f"invalid owner {owner!r}")
    if not _REPO_RE.match(repo):
        raise MalformedReference(text, f"invalid repository {repo!r}")
    subpath = "/".join(rest).strip("/")

    kind = SelectorKind.NONE
    if selector:
        if sigil == ":":
            kind = SelectorKind.CONSTRAINT if is_constraint(selector) else SelectorKind.REF
        else:
            kind = _SIGIL_KINDS[sigil]
        if kind is SelectorKind.COMMIT and not _COMMIT_RE.match(selector):
            raise MalformedReference(text, f"invalid commit hash {selector!r}")

    return DependencyReference(
        site=site or DEFAULT_SITE,
        owner=owner,
        repo=repo,
        subpath=subpath,
        selector=selector,
        kind=kind,
        ssh_user=ssh_user,
    )


def try_parse_reference(text: str) -> DependencyReference | None:
    """Parse a reference, returning None instead of raising."""
    try:
        return parse_reference(text)
    except MalformedReference:
        return None


def _split_selector(body: str) -> tuple[str, str, str]:
    """Split "owner/repo/sub:sel" at the first selector sigil."""
    positions = [i for i in (body.find(s) for s in ":@#") if i >= 0]
    if not positions:
        return body, "", ""
    i = min(positions)
    return body[:i], body[i], body[i + 1 :]


def _has_space(s: str) -> bool:
    return any(c.isspace() for c in s)
