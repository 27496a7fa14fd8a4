"""Tests for local override validation."""

import warnings

import pytest

from gitpin.exceptions import (
    GitSourceError,
    OverrideBranchMismatchError,
    OverrideBranchRequiredError,
    OverridePathMissingError,
    OverrideRevisionMismatchWarning,
    RevisionNotFoundError,
)
from gitpin.git.override import LocalOverrideValidator
from gitpin.model.source import RepositorySpec

URI = "https://github.com/org/foo"


class TestLocalOverrideValidator:
    def test_valid_override(self, foo_repo, capture_logs):
        spec = RepositorySpec(URI, branch="main")
        revision = LocalOverrideValidator().validate(spec, foo_repo.path)
        assert revision.sha == foo_repo.head
        assert revision.uri == URI
        assert f"Using local override for {URI}" in capture_logs.getvalue()

    def test_missing_path(self, tmp_path):
        with pytest.raises(OverridePathMissingError, match="does not exist"):
            LocalOverrideValidator().validate(
                RepositorySpec(URI, branch="main"), tmp_path / "missing"
            )

    def test_branch_required(self, foo_repo):
        with pytest.raises(OverrideBranchRequiredError, match="no branch was specified"):
            LocalOverrideValidator().validate(RepositorySpec(URI), foo_repo.path)

    def test_branch_check_can_be_disabled(self, foo_repo):
        validator = LocalOverrideValidator(disable_branch_check=True)
        assert validator.validate(RepositorySpec(URI), foo_repo.path).sha == foo_repo.head

    def test_other_branch(self, foo_repo):
        foo_repo.branch("dev")
        foo_repo.checkout("dev")
        with pytest.raises(OverrideBranchMismatchError) as exc_info:
            LocalOverrideValidator().validate(RepositorySpec(URI, branch="main"), foo_repo.path)
        assert "is using branch dev but the git source declares branch main" in str(
            exc_info.value
        )

    def test_detached_head(self, foo_repo):
        foo_repo.checkout(foo_repo.head)
        with pytest.raises(OverrideBranchMismatchError, match="detached HEAD"):
            LocalOverrideValidator().validate(RepositorySpec(URI, branch="main"), foo_repo.path)

    def test_branch_is_checked_even_when_check_disabled(self, foo_repo):
        foo_repo.branch("dev")
        foo_repo.checkout("dev")
        validator = LocalOverrideValidator(disable_branch_check=True)
        with pytest.raises(OverrideBranchMismatchError):
            validator.validate(RepositorySpec(URI, branch="main"), foo_repo.path)

    def test_declared_ref_differs_from_head(self, foo_repo):
        old = foo_repo.head
        foo_repo.commit("local work")
        spec = RepositorySpec(URI, branch="main", ref=old[:7])
        with pytest.warns(OverrideRevisionMismatchWarning, match="Using the local override"):
            revision = LocalOverrideValidator().validate(spec, foo_repo.path)
        assert revision.sha == foo_repo.head

    def test_declared_ref_matches_head(self, foo_repo):
        spec = RepositorySpec(URI, branch="main", ref=foo_repo.head)
        with warnings.catch_warnings():
            warnings.simplefilter("error")
            LocalOverrideValidator().validate(spec, foo_repo.path)

    def test_declared_ref_unknown(self, foo_repo):
        spec = RepositorySpec(URI, branch="main", ref="f" * 40)
        with pytest.raises(RevisionNotFoundError, match="not known to the local override"):
            LocalOverrideValidator().validate(spec, foo_repo.path)

    def test_not_a_repository(self, tmp_path):
        with pytest.raises(GitSourceError, match="is not a git repository"):
            LocalOverrideValidator().validate(RepositorySpec(URI, branch="main"), tmp_path)

    def test_locked_revision_in_override(self, foo_repo):
        locked = foo_repo.head
        foo_repo.commit("local work")
        spec = RepositorySpec(URI, branch="main")
        revision = LocalOverrideValidator().validate(spec, foo_repo.path, locked)
        assert revision.sha == foo_repo.head

    def test_locked_revision_missing_from_override(self, foo_repo, make_repo):
        """An override that does not contain the locked commit is rejected."""
        other = make_repo("local-foo")
        other.commit("unrelated history")
        spec = RepositorySpec(URI, branch="main")
        with pytest.raises(RevisionNotFoundError) as exc_info:
            LocalOverrideValidator().validate(spec, other.path, foo_repo.head)
        assert exc_info.value.uri == URI
        assert foo_repo.head in str(exc_info.value)
        assert "the lockfile points to a revision" in str(exc_info.value)

    def test_ambient_git_dir_is_ignored(self, foo_repo, make_repo, monkeypatch):
        other = make_repo("elsewhere")
        other.commit("elsewhere")
        monkeypatch.setenv("GIT_DIR", str(other.path / ".git"))
        spec = RepositorySpec(URI, branch="main", ref=foo_repo.head)
        with warnings.catch_warnings():
            warnings.simplefilter("error")
            revision = LocalOverrideValidator().validate(spec, foo_repo.path, foo_repo.head)
        assert revision.sha == foo_repo.head
