"""Per-repository locking for clone, fetch and checkout."""

import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, Optional

from filelock import FileLock

from gitpin.model.source import cache_key, normalize_uri

# Each repo URI gets its own lock to prevent concurrent clone/fetch/checkout
# conflicts between threads of this process
_repo_locks: Dict[str, threading.RLock] = {}
_repo_locks_lock = threading.Lock()

# URIs whose file lock is held by the current thread
_held = threading.local()


def _get_repo_lock(uri: str) -> threading.RLock:
    """
    Get or create the in-process lock for a normalized repository URI.

    Args:
        uri: Normalized repository URI

    Returns:
        Re-entrant thread lock for this repository
    """
    with _repo_locks_lock:
        if uri not in _repo_locks:
            _repo_locks[uri] = threading.RLock()
        return _repo_locks[uri]


def lock_path(cache_dir: Path, uri: str) -> Path:
    return cache_dir / f"{cache_key(uri)}.lock"


@contextmanager
def uri_lock(
    cache_dir: Path, uri: str, timeout: Optional[float] = None
) -> Iterator[None]:
    """
    Serialize all cache work on one repository.

    The thread lock covers workers of this process, the file lock covers other
    processes sharing the same cache directory. Nested use from the same
    thread only takes the file lock once.
    """
    normalized = normalize_uri(uri)
    held = getattr(_held, "uris", None)
    if held is None:
        held = _held.uris = set()

    with _get_repo_lock(normalized):
        if normalized in held:
            yield
            return

        path = lock_path(cache_dir, normalized)
        path.parent.mkdir(parents=True, exist_ok=True)
        with FileLock(str(path), timeout=-1 if timeout is None else timeout):
            held.add(normalized)
            try:
                yield
            finally:
                held.discard(normalized)
