"""
Validation of local overrides.

A local override replaces the cached checkout of a git source with a
directory the user works in. The directory is used in place: edits there are
picked up by the next run without any fetch.
"""

import logging
import warnings
from pathlib import Path
from typing import Optional, Union

from git import Repo
from git.exc import BadName, BadObject, InvalidGitRepositoryError, NoSuchPathError

from gitpin.exceptions import (
    GitSourceError,
    OverrideBranchMismatchError,
    OverrideBranchRequiredError,
    OverridePathMissingError,
    OverrideRevisionMismatchWarning,
    RevisionNotFoundError,
)
from gitpin.model.source import RepositorySpec, ResolvedRevision

logger = logging.getLogger(__name__)


class LocalOverrideValidator:
    """
    Enforces the consistency rules between a git source and its local override.

    Rules, checked in order:
    1. the override path exists
    2. the source declares a branch (unless the branch check is disabled)
    3. the override is checked out on the declared branch
    4. a revision pinned by the lockfile exists in the override
    5. a declared revision that differs from the override's HEAD is reported
       as a warning; one that does not exist there at all is an error
    """

    def __init__(self, disable_branch_check: bool = False):
        self.disable_branch_check = disable_branch_check

    def validate(
        self,
        spec: RepositorySpec,
        path: Union[str, Path],
        locked_revision: Optional[str] = None,
    ) -> ResolvedRevision:
        """
        Check ``path`` against ``spec`` and return the override's HEAD commit.

        Args:
            spec: The declared git source
            path: Directory of the local override
            locked_revision: Revision the lockfile pins the source to, if any.
                             The override must contain it.

        Raises:
            OverridePathMissingError: The directory does not exist
            OverrideBranchRequiredError: No branch declared and the check is enabled
            OverrideBranchMismatchError: The override is on another branch
            RevisionNotFoundError: The declared or locked revision is unknown
                                   to the override
        """
        uri = spec.normalized_uri
        path = Path(path).expanduser()

        if not path.exists():
            raise OverridePathMissingError(uri, str(path))

        if not spec.branch and not self.disable_branch_check:
            raise OverrideBranchRequiredError(uri)

        repo = _open_repo(uri, path)
        try:
            if spec.branch:
                current = _current_branch(repo)
                if current != spec.branch:
                    raise OverrideBranchMismatchError(uri, spec.branch, current, str(path))

            try:
                head = repo.head.commit.hexsha
            except ValueError as e:
                raise GitSourceError(
                    f"Local override for {uri} at {path} has no commits: {e}", uri
                ) from e

            if locked_revision and not _has_commit(repo, locked_revision):
                raise RevisionNotFoundError(
                    uri,
                    locked_revision,
                    f"the lockfile points to a revision that is not in the "
                    f"local override at {path}",
                )

            declared_rev = spec.ref or spec.tag
            if declared_rev:
                self._check_revision(repo, declared_rev, uri, path, head)
        finally:
            repo.close()

        logger.info(f"Using local override for {uri} at {path}")
        return ResolvedRevision(uri, head)

    def _check_revision(
        self, repo: Repo, declared_rev: str, uri: str, path: Path, head: str
    ) -> None:
        try:
            declared = repo.rev_parse(f"{declared_rev}^{{commit}}").hexsha
        except (BadName, BadObject, ValueError) as e:
            raise RevisionNotFoundError(
                uri, declared_rev, f"it is not known to the local override at {path}"
            ) from e

        if declared != head:
            message = (
                f"Local override for {uri} at {path} is at revision {head[:7]}, "
                f"not at the declared revision {declared_rev} ({declared[:7]}). "
                "Using the local override."
            )
            logger.warning(message)
            warnings.warn(message, OverrideRevisionMismatchWarning, stacklevel=3)


def _open_repo(uri: str, path: Path) -> Repo:
    try:
        repo = Repo(str(path))
    except (InvalidGitRepositoryError, NoSuchPathError) as e:
        raise GitSourceError(
            f"Local override for {uri} at {path} is not a git repository", uri
        ) from e

    # GitPython copies os.environ into its git processes; pin every
    # redirecting variable to this repository instead
    git_dir = Path(repo.git_dir)
    common_dir = Path(repo.common_dir)
    repo.git.update_environment(
        GIT_DIR=str(git_dir),
        GIT_WORK_TREE=str(repo.working_tree_dir or path),
        GIT_INDEX_FILE=str(git_dir / "index"),
        GIT_OBJECT_DIRECTORY=str(common_dir / "objects"),
        GIT_COMMON_DIR=str(common_dir),
        GIT_ALTERNATE_OBJECT_DIRECTORIES="",
        GIT_NAMESPACE="",
    )
    return repo


def _has_commit(repo: Repo, sha: str) -> bool:
    try:
        repo.rev_parse(f"{sha}^{{commit}}")
    except (BadName, BadObject, ValueError):
        return False
    return True


def _current_branch(repo: Repo) -> Optional[str]:
    if repo.head.is_detached:
        return None
    return repo.active_branch.name
