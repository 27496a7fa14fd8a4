"""Resolution of branch, tag and revision specifiers to full commit SHAs."""

import logging
from typing import Any, List, Optional

from dulwich import porcelain
from dulwich.errors import NotGitRepository
from dulwich.objects import Commit, Tag

from gitpin.exceptions import RevisionNotFoundError
from gitpin.git.cache import CacheStore, CloneHandle
from gitpin.model.source import (
    DEFAULT_REF,
    ResolvedRevision,
    is_full_sha,
    looks_like_sha,
    normalize_ref,
)

logger = logging.getLogger(__name__)


class RevisionResolver:
    """
    Turns ref specifiers into :class:`ResolvedRevision` values.

    A full SHA already present in the cache is returned without contacting
    the remote. Everything else fetches first, so branches always reflect the
    current state of the remote, including rewritten history.
    """

    def __init__(self, store: CacheStore):
        self.store = store

    def resolve(
        self, handle: CloneHandle, ref_specifier: Any = None, force_fetch: bool = False
    ) -> ResolvedRevision:
        """
        Resolve ``ref_specifier`` in the repository behind ``handle``.

        Args:
            handle: Cached clone of the repository
            ref_specifier: Branch, tag, "HEAD", full or abbreviated SHA.
                           Text, bytes and enum members are treated alike.
            force_fetch: Fetch even when a full SHA is available locally

        Raises:
            RevisionNotFoundError: If the specifier does not name a commit
        """
        specifier = normalize_ref(ref_specifier) or DEFAULT_REF

        if is_full_sha(specifier.lower()) and not force_fetch:
            sha = specifier.lower()
            if self.store.has_revision(handle, sha):
                logger.info(f"Using cached copy of {handle.uri} at {sha[:7]}")
                return ResolvedRevision(handle.uri, sha)

        self.store.fetch(handle)
        sha = self.lookup(handle, specifier)
        if sha is None:
            raise RevisionNotFoundError(handle.uri, specifier)

        logger.debug(f"Resolved {handle.uri}@{specifier} to {sha}")
        return ResolvedRevision(handle.uri, sha)

    def resolve_locked(self, handle: CloneHandle, sha: str) -> ResolvedRevision:
        """
        Return a locked revision, fetching only if the commit is missing.

        Raises:
            RevisionNotFoundError: If the commit is not in the remote either
        """
        sha = sha.lower()
        if self.store.has_revision(handle, sha):
            logger.info(f"Using cached copy of {handle.uri} at {sha[:7]}")
            return ResolvedRevision(handle.uri, sha)

        logger.info(f"Revision {sha[:7]} of {handle.uri} is not cached")
        self.store.fetch(handle)
        if not self.store.has_revision(handle, sha):
            raise RevisionNotFoundError(
                handle.uri, sha, "the locked revision is not available from the remote"
            )
        return ResolvedRevision(handle.uri, sha)

    def lookup(self, handle: CloneHandle, specifier: str) -> Optional[str]:
        """
        Resolve ``specifier`` against the cached clone only.

        Returns:
            The full SHA, or None if nothing matches

        Raises:
            RevisionNotFoundError: If an abbreviated SHA is ambiguous
        """
        try:
            with porcelain.open_repo_closing(str(handle.path)) as repo:
                return _lookup_in_repo(repo, specifier, handle.uri)
        except NotGitRepository:
            return None


def _lookup_in_repo(repo, specifier: str, uri: str) -> Optional[str]:
    """Resolve ``specifier`` in an open dulwich repository."""
    if specifier == DEFAULT_REF:
        candidates = [b"HEAD"]
    else:
        name = specifier.encode("utf-8")
        candidates = [b"refs/heads/" + name, b"refs/tags/" + name]
        if name.startswith(b"refs/"):
            candidates.insert(0, name)

    for ref in candidates:
        if ref not in repo.refs:
            continue
        peeled = _peel(repo, repo.refs[ref])
        if peeled is not None:
            return peeled.decode("ascii")

    if not looks_like_sha(specifier):
        return None

    prefix = specifier.lower()
    if is_full_sha(prefix):
        return prefix if _is_commit(repo, prefix.encode("ascii")) else None

    # Abbreviated SHA: expand if the prefix is unique among commits
    matching: List[str] = []
    for obj_id in repo.object_store:
        obj_hex = obj_id.decode("ascii") if isinstance(obj_id, bytes) else obj_id.hex()
        if obj_hex.startswith(prefix) and _is_commit(repo, obj_hex.encode("ascii")):
            matching.append(obj_hex)

    if len(matching) > 1:
        raise RevisionNotFoundError(
            uri,
            specifier,
            f"the abbreviated revision is ambiguous (matches {len(matching)} commits)",
        )
    if matching:
        logger.debug(f"Expanded short hash {specifier} to {matching[0]}")
        return matching[0]
    return None


def _peel(repo, sha: bytes) -> Optional[bytes]:
    """Follow annotated tags down to the commit they point at."""
    try:
        obj = repo.object_store[sha]
        while isinstance(obj, Tag):
            sha = obj.object[1]
            obj = repo.object_store[sha]
    except KeyError:
        return None
    return sha if isinstance(obj, Commit) else None


def _is_commit(repo, sha: bytes) -> bool:
    try:
        return isinstance(repo.object_store[sha], Commit)
    except KeyError:
        return False
