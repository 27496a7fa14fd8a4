"""
Git operations for package sources.

Architecture:
    - Process layer: every git command runs with git's repository
      redirecting environment variables removed (process.py)
    - Cache layer: one bare clone per repository in ~/.cache/gitpin/git/
      and one worktree per revision in use (cache.py)
    - Resolution: ref specifiers to full SHAs, cache first (revision.py)
    - Local overrides: user working copies standing in for a source (override.py)
"""

from .cache import CacheEntry, CacheStore, CloneHandle
from .lock import uri_lock
from .override import LocalOverrideValidator
from .process import GitRunner, ProcessResult, ProcessRunner, clean_git_env
from .revision import RevisionResolver

__all__ = [
    "CacheEntry",
    "CacheStore",
    "CloneHandle",
    "GitRunner",
    "LocalOverrideValidator",
    "ProcessResult",
    "ProcessRunner",
    "RevisionResolver",
    "clean_git_env",
    "uri_lock",
]
