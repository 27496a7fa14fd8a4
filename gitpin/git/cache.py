"""
Bare clone cache and per-revision worktrees.

Layout:
    <git_cache>/
    ├── github.com/org/repo-1a2b3c4d5e6f/     # bare clone, one per repository
    ├── local/foo-1.0-9f8e7d6c5b4a/           # bare clone of a local repository
    └── github.com/org/repo-1a2b3c4d5e6f.lock # per-repository lock

    <worktrees>/
    ├── repo-1a2b3c4d5e6f-0123456789ab/       # checkout of one revision
    └── repo-1a2b3c4d5e6f-ba9876543210/

One bare clone is shared by every revision of a repository. A worktree is
created the first time a revision is used and reused afterwards, across
processes. Nothing here is deleted implicitly except half-written directories
left behind by an interrupted run.

Network access happens only in :meth:`CacheStore.ensure_clone` (when the clone
is missing) and :meth:`CacheStore.fetch`.
"""

import logging
import os
import shutil
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from dulwich import porcelain
from dulwich.errors import NotGitRepository
from dulwich.objects import Commit

from gitpin.git.lock import uri_lock
from gitpin.git.process import GitRunner
from gitpin.model.source import ResolvedRevision, cache_key, normalize_uri

logger = logging.getLogger(__name__)

SUBMODULES_MARKER = "gitpin-submodules"


@dataclass(frozen=True)
class CloneHandle:
    """A bare clone in the cache."""

    uri: str
    fetch_uri: str
    path: Path


@dataclass
class CacheEntry:
    """On-disk state of one repository: its bare clone and worktrees."""

    uri: str
    clone_path: Path
    worktrees: Dict[str, Path] = field(default_factory=dict)


def head_sha(repo) -> str:
    """Hex SHA of a dulwich repository's HEAD."""
    head_bytes = repo.head()
    if len(head_bytes) == 20:
        return head_bytes.hex()
    return head_bytes.decode("ascii")


def _scratch_path(path: Path) -> Path:
    return path.with_name(f".{path.name}.tmp-{os.getpid()}-{threading.get_ident()}")


class CacheStore:
    """
    Owner of the bare clones and worktrees on disk.

    Usage:
        store = CacheStore(cache_dir, worktree_dir)
        handle = store.ensure_clone("https://github.com/user/repo")
        path = store.materialize(handle, revision, submodules=False)
    """

    def __init__(
        self,
        cache_dir: Path,
        worktree_dir: Path,
        git: Optional[GitRunner] = None,
        lock_timeout: Optional[float] = None,
    ):
        self.cache_dir = Path(cache_dir).expanduser().resolve()
        self.worktree_dir = Path(worktree_dir).expanduser().resolve()
        self.git = git or GitRunner()
        self.lock_timeout = lock_timeout

    def lock(self, uri: str):
        return uri_lock(self.cache_dir, uri, self.lock_timeout)

    def clone_path(self, uri: str) -> Path:
        return self.cache_dir / cache_key(uri)

    def worktree_path(self, uri: str, sha: str) -> Path:
        return self.worktree_dir / f"{Path(cache_key(uri)).name}-{sha[:12]}"

    def handle(self, uri: str, fetch_uri: Optional[str] = None) -> CloneHandle:
        normalized = normalize_uri(uri)
        return CloneHandle(normalized, fetch_uri or uri, self.clone_path(normalized))

    def is_cloned(self, uri: str) -> bool:
        return self._is_bare_clone(self.clone_path(uri))

    def is_materialized(self, uri: str, sha: str) -> bool:
        return self._worktree_at(self.worktree_path(uri, sha), sha)

    def has_submodules(self, uri: str, sha: str) -> bool:
        """True once the submodules of the worktree for ``sha`` were initialized."""
        return self._submodules_ready(self.worktree_path(uri, sha))

    def ensure_clone(self, uri: str, fetch_uri: Optional[str] = None) -> CloneHandle:
        """
        Return the bare clone for ``uri``, cloning it on first use.

        Args:
            uri: Repository URI (any spelling, it is normalized)
            fetch_uri: Location git clones from, defaults to ``uri``

        Returns:
            Handle of the cached bare clone
        """
        handle = self.handle(uri, fetch_uri)

        with self.lock(handle.uri):
            if self._is_bare_clone(handle.path):
                logger.debug(f"Using cached clone of {handle.uri} at {handle.path}")
                return handle

            if handle.path.exists():
                logger.warning(
                    f"Cached clone at {handle.path} is not a usable repository. Re-cloning."
                )
                shutil.rmtree(handle.path, ignore_errors=True)

            logger.info(f"Fetching {handle.fetch_uri}")
            handle.path.parent.mkdir(parents=True, exist_ok=True)
            scratch = _scratch_path(handle.path)
            shutil.rmtree(scratch, ignore_errors=True)
            try:
                self.git.run(
                    "clone",
                    "--bare",
                    "--no-hardlinks",
                    "--quiet",
                    handle.fetch_uri,
                    scratch,
                    cwd=handle.path.parent,
                    uri=handle.uri,
                )
                scratch.rename(handle.path)
            finally:
                shutil.rmtree(scratch, ignore_errors=True)

        return handle

    def fetch(self, handle: CloneHandle) -> None:
        """
        Mirror the remote's branches and tags into the bare clone.

        Branches and tags deleted on the remote are pruned. Their commits stay
        in the object store, so revisions locked from them remain usable.
        """
        with self.lock(handle.uri):
            logger.info(f"Fetching {handle.fetch_uri}")
            self.git.run(
                "fetch",
                "--force",
                "--prune",
                "--quiet",
                handle.fetch_uri,
                "+refs/heads/*:refs/heads/*",
                "+refs/tags/*:refs/tags/*",
                cwd=handle.path,
                uri=handle.uri,
            )

    def has_revision(self, handle: CloneHandle, sha: str) -> bool:
        """Check for a commit in the bare clone without running git."""
        try:
            with porcelain.open_repo_closing(str(handle.path)) as repo:
                key = sha.encode("ascii")
                if key not in repo.object_store:
                    return False
                return isinstance(repo.object_store[key], Commit)
        except (NotGitRepository, KeyError, ValueError):
            return False

    def materialize(
        self, handle: CloneHandle, revision: ResolvedRevision, submodules: bool = False
    ) -> Path:
        """
        Check out ``revision`` into its worktree directory.

        A worktree already at ``revision`` is returned as is. With
        ``submodules`` the submodules are initialized recursively, otherwise
        they are left empty.

        Returns:
            Path of the worktree
        """
        sha = revision.sha
        worktree = self.worktree_path(handle.uri, sha)

        with self.lock(handle.uri):
            if self._worktree_at(worktree, sha):
                if submodules and not self._submodules_ready(worktree):
                    self._update_submodules(handle, worktree)
                logger.debug(f"Worktree for {handle.uri}@{sha[:7]} is up to date")
                return worktree

            if worktree.exists():
                logger.warning(f"Removing incomplete worktree at {worktree}")
                shutil.rmtree(worktree, ignore_errors=True)

            logger.info(f"Checking out {handle.uri}@{sha[:7]} to {worktree}")
            worktree.parent.mkdir(parents=True, exist_ok=True)
            scratch = _scratch_path(worktree)
            shutil.rmtree(scratch, ignore_errors=True)
            try:
                self.git.run(
                    "clone",
                    "--no-checkout",
                    "--quiet",
                    handle.path,
                    scratch,
                    cwd=worktree.parent,
                    uri=handle.uri,
                )
                # Relative submodule URLs resolve against the real remote
                self.git.run(
                    "remote", "set-url", "origin", handle.fetch_uri, cwd=scratch, uri=handle.uri
                )
                self.git.run("reset", "--hard", "--quiet", sha, cwd=scratch, uri=handle.uri)
                if submodules:
                    self._update_submodules(handle, scratch)
                scratch.rename(worktree)
            finally:
                shutil.rmtree(scratch, ignore_errors=True)

        return worktree

    def entry(self, uri: str) -> CacheEntry:
        """Describe the clone and the worktrees present for ``uri``."""
        normalized = normalize_uri(uri)
        entry = CacheEntry(uri=normalized, clone_path=self.clone_path(normalized))
        prefix = f"{Path(cache_key(normalized)).name}-"
        if self.worktree_dir.exists():
            for path in sorted(self.worktree_dir.glob(f"{prefix}*")):
                if not path.is_dir():
                    continue
                try:
                    with porcelain.open_repo_closing(str(path)) as repo:
                        entry.worktrees[head_sha(repo)] = path
                except (NotGitRepository, KeyError):
                    continue
        return entry

    def describe(self) -> List[dict]:
        """
        Describe the cached repositories.

        Returns:
            List of dictionaries with repo information:
            - repo_path: Relative path in cache (e.g., "github.com/user/repo-<digest>")
            - url: Repository URL the clone was made from
            - branches: Number of branches in the clone
            - worktrees: Revisions with a materialized worktree
        """
        if not self.cache_dir.exists():
            return []

        results = []
        for head_file in sorted(self.cache_dir.rglob("HEAD")):
            repo_path = head_file.parent
            if not self._is_bare_clone(repo_path) or repo_path.name.startswith("."):
                continue

            try:
                with porcelain.open_repo_closing(str(repo_path)) as repo:
                    config = repo.get_config()
                    try:
                        url = config.get((b"remote", b"origin"), b"url").decode("utf-8")
                    except KeyError:
                        url = "unknown"
                    branches = [
                        ref for ref in repo.get_refs() if ref.startswith(b"refs/heads/")
                    ]
            except (NotGitRepository, KeyError) as e:
                logger.debug(f"Failed to read repo at {repo_path}: {e}")
                continue

            worktrees = []
            if url != "unknown":
                worktrees = sorted(self.entry(url).worktrees)

            results.append(
                {
                    "repo_path": str(repo_path.relative_to(self.cache_dir)),
                    "url": url,
                    "branches": len(branches),
                    "worktrees": worktrees,
                }
            )

        return results

    def _update_submodules(self, handle: CloneHandle, worktree: Path) -> None:
        logger.info(f"Updating submodules of {handle.uri}")
        self.git.run(
            "submodule", "update", "--init", "--recursive", "--quiet", cwd=worktree, uri=handle.uri
        )
        (worktree / ".git" / SUBMODULES_MARKER).touch()

    @staticmethod
    def _submodules_ready(worktree: Path) -> bool:
        return (worktree / ".git" / SUBMODULES_MARKER).exists()

    @staticmethod
    def _is_bare_clone(path: Path) -> bool:
        if not (path / "HEAD").is_file() or not (path / "objects").is_dir():
            return False
        try:
            with porcelain.open_repo_closing(str(path)) as repo:
                return repo.bare
        except NotGitRepository:
            return False

    @staticmethod
    def _worktree_at(worktree: Path, sha: str) -> bool:
        if not (worktree / ".git").is_dir():
            return False
        try:
            with porcelain.open_repo_closing(str(worktree)) as repo:
                return head_sha(repo) == sha
        except (NotGitRepository, KeyError):
            return False


__all__ = ["CacheEntry", "CacheStore", "CloneHandle", "head_sha"]
