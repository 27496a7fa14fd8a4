"""Tests for the bare clone cache and worktrees."""

import shutil
from unittest.mock import patch

import pytest

from gitpin.exceptions import ToolExecutionError
from gitpin.git.cache import CacheStore
from gitpin.model.source import ResolvedRevision, cache_key


class TestEnsureClone:
    def test_clones_into_go_style_path(self, store, foo_repo):
        handle = store.ensure_clone(foo_repo.uri)
        assert handle.path == store.cache_dir / cache_key(foo_repo.uri)
        assert handle.path.relative_to(store.cache_dir).as_posix().startswith("local/foo-1.0-")
        assert store.is_cloned(foo_repo.uri)
        assert (handle.path / "HEAD").is_file()
        assert not (handle.path / ".git").exists()

    def test_second_call_does_not_run_git(self, store, foo_repo):
        store.ensure_clone(foo_repo.uri)
        with patch.object(store.git, "run") as run:
            store.ensure_clone(foo_repo.uri)
        run.assert_not_called()

    def test_logs_fetching(self, store, foo_repo, capture_logs):
        store.ensure_clone(foo_repo.uri)
        assert f"Fetching {foo_repo.uri}" in capture_logs.getvalue()

    def test_path_with_spaces(self, store, make_repo):
        repo = make_repo("with spaces")
        repo.commit("initial", files={"README": "hi\n"})
        handle = store.ensure_clone(repo.uri)
        assert store.has_revision(handle, repo.head)

    def test_corrupt_clone_is_replaced(self, store, foo_repo):
        handle = store.ensure_clone(foo_repo.uri)
        shutil.rmtree(handle.path / "objects")
        handle = store.ensure_clone(foo_repo.uri)
        assert store.has_revision(handle, foo_repo.head)

    def test_failed_clone_leaves_nothing(self, store, tmp_path):
        missing = str(tmp_path / "no-such-repo")
        with pytest.raises(ToolExecutionError) as exc_info:
            store.ensure_clone(missing)
        assert exc_info.value.uri == missing
        assert not store.is_cloned(missing)
        leftovers = [p for p in store.clone_path(missing).parent.iterdir() if p.name.startswith(".")]
        assert leftovers == []


class TestFetch:
    def test_fetch_picks_up_new_commits(self, store, foo_repo):
        handle = store.ensure_clone(foo_repo.uri)
        new_sha = foo_repo.commit("second", files={"lib/foo.py": "VALUE = 2\n"})
        assert not store.has_revision(handle, new_sha)
        store.fetch(handle)
        assert store.has_revision(handle, new_sha)

    def test_fetch_follows_force_push(self, store, foo_repo):
        first = foo_repo.head
        handle = store.ensure_clone(foo_repo.uri)
        foo_repo.commit("second")
        store.fetch(handle)
        foo_repo.force_reset(first)
        rewritten = foo_repo.commit("rewritten")
        store.fetch(handle)
        assert store.has_revision(handle, rewritten)

    def test_has_revision_only_for_commits(self, store, foo_repo):
        handle = store.ensure_clone(foo_repo.uri)
        tree = foo_repo.git("rev-parse", "HEAD^{tree}")
        assert not store.has_revision(handle, tree)
        assert not store.has_revision(handle, "f" * 40)


class TestMaterialize:
    def test_checks_out_revision(self, store, foo_repo):
        handle = store.ensure_clone(foo_repo.uri)
        revision = ResolvedRevision(handle.uri, foo_repo.head)
        worktree = store.materialize(handle, revision)
        assert worktree == store.worktree_path(handle.uri, revision.sha)
        assert (worktree / "lib" / "foo.py").read_text() == "VALUE = 1\n"
        assert store.is_materialized(handle.uri, revision.sha)

    def test_each_revision_gets_its_own_worktree(self, store, foo_repo):
        first = foo_repo.head
        second = foo_repo.commit("second", files={"lib/foo.py": "VALUE = 2\n"})
        handle = store.ensure_clone(foo_repo.uri)
        first_tree = store.materialize(handle, ResolvedRevision(handle.uri, first))
        second_tree = store.materialize(handle, ResolvedRevision(handle.uri, second))
        assert first_tree != second_tree
        assert (first_tree / "lib" / "foo.py").read_text() == "VALUE = 1\n"
        assert (second_tree / "lib" / "foo.py").read_text() == "VALUE = 2\n"

    def test_idempotent(self, store, foo_repo):
        handle = store.ensure_clone(foo_repo.uri)
        revision = ResolvedRevision(handle.uri, foo_repo.head)
        store.materialize(handle, revision)
        with patch.object(store.git, "run") as run:
            store.materialize(handle, revision)
        run.assert_not_called()

    def test_incomplete_worktree_is_rebuilt(self, store, foo_repo):
        handle = store.ensure_clone(foo_repo.uri)
        revision = ResolvedRevision(handle.uri, foo_repo.head)
        worktree = store.worktree_path(handle.uri, revision.sha)
        worktree.mkdir(parents=True)
        (worktree / "junk").write_text("left by an interrupted run")
        store.materialize(handle, revision)
        assert not (worktree / "junk").exists()
        assert (worktree / "foo.pkg.yaml").exists()

    def test_submodules_only_when_requested(
        self, store, foo_repo, make_repo, allow_file_submodules
    ):
        vendored = make_repo("vendored")
        vendored.commit("vendored", files={"vendored.txt": "inside\n"})
        sha = foo_repo.add_submodule(vendored, "vendor/lib")

        handle = store.ensure_clone(foo_repo.uri)
        revision = ResolvedRevision(handle.uri, sha)

        worktree = store.materialize(handle, revision, submodules=False)
        assert not (worktree / "vendor" / "lib" / "vendored.txt").exists()

        worktree = store.materialize(handle, revision, submodules=True)
        assert (worktree / "vendor" / "lib" / "vendored.txt").read_text() == "inside\n"


class TestDescribe:
    def test_empty_cache(self, tmp_path):
        assert CacheStore(tmp_path / "nothing", tmp_path / "wt").describe() == []

    def test_lists_clones_and_worktrees(self, store, foo_repo):
        handle = store.ensure_clone(foo_repo.uri)
        store.materialize(handle, ResolvedRevision(handle.uri, foo_repo.head))
        (description,) = store.describe()
        assert description["repo_path"] == cache_key(foo_repo.uri)
        assert description["url"] == foo_repo.uri
        assert description["branches"] == 1
        assert description["worktrees"] == [foo_repo.head]

    def test_entry(self, store, foo_repo):
        handle = store.ensure_clone(foo_repo.uri)
        store.materialize(handle, ResolvedRevision(handle.uri, foo_repo.head))
        entry = store.entry(foo_repo.uri)
        assert entry.clone_path == handle.path
        assert list(entry.worktrees) == [foo_repo.head]
