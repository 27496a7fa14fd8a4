import io

import pytest
import logging

from pathlib import Path

from gitpin.git.cache import CacheStore
from gitpin.git.process import GitRunner, ProcessRunner

from .git_repo import ALLOW_FILE_PROTOCOL, GitRepo


@pytest.fixture
def capture_logs():
    """Fixture to capture log output during tests."""
    log_stream = io.StringIO()
    handler = logging.StreamHandler(log_stream)
    logger = logging.getLogger("gitpin")
    previous_level = logger.level
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG)

    yield log_stream  # Yield the stream to the test function

    # Cleanup after the test
    logger.removeHandler(handler)
    logger.setLevel(previous_level)
    log_stream.close()


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Point gitpin at an empty config file and strip git redirect variables."""
    config_file = tmp_path / "config" / "gitpin.cfg"
    monkeypatch.setenv("GITPIN_CONFIG", str(config_file))
    for name in ("GIT_DIR", "GIT_WORK_TREE", "GIT_INDEX_FILE"):
        monkeypatch.delenv(name, raising=False)
    return config_file


@pytest.fixture
def allow_file_submodules(monkeypatch):
    """Let git clone submodules from local paths."""
    for name, value in ALLOW_FILE_PROTOCOL.items():
        monkeypatch.setenv(name, value)


# git fixtures


@pytest.fixture
def repos_dir(tmp_path) -> Path:
    """Directory holding the upstream repositories of a test."""
    path = tmp_path / "repos"
    path.mkdir()
    return path


@pytest.fixture
def make_repo(repos_dir):
    """Factory creating upstream repositories under ``repos_dir``."""

    def _make(name: str = "foo-1.0", branch: str = "main") -> GitRepo:
        return GitRepo(repos_dir / name, branch=branch)

    return _make


@pytest.fixture
def foo_repo(make_repo) -> GitRepo:
    """A repository providing package foo 1.0 with a single commit."""
    repo = make_repo("foo-1.0")
    repo.write_package("foo", "1.0", summary="the foo package")
    repo.write("lib/foo.py", "VALUE = 1\n")
    repo.commit("initial")
    return repo


@pytest.fixture
def cache_dir(tmp_path) -> Path:
    return tmp_path / "cache"


@pytest.fixture
def worktree_dir(tmp_path) -> Path:
    return tmp_path / "worktrees"


@pytest.fixture
def store(cache_dir, worktree_dir) -> CacheStore:
    return CacheStore(cache_dir, worktree_dir, git=GitRunner(ProcessRunner(timeout=120)))
