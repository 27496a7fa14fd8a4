"""
Exception classes for git source resolution.

Every error carries the repository URI it concerns and, where it applies, the
offending revision or ref specifier. ``category`` and ``remediation`` are read
by the CLI to print a short error class and a hint.
"""

from typing import Iterable, Optional, Sequence

GIT_INSTALL_HINT = (
    "You need to install git to be able to use packages from git repositories. "
    "For help installing git, please refer to GitHub's tutorial at "
    "https://help.github.com/articles/set-up-git"
)


class GitSourceError(Exception):
    """Base exception for all git source errors."""

    category = "Git source error"
    remediation: Optional[str] = None

    def __init__(
        self,
        message: str,
        uri: Optional[str] = None,
        revision: Optional[str] = None,
    ):
        self.uri = uri
        self.revision = revision
        super().__init__(message)


class ToolMissingError(GitSourceError):
    """Raised when the git executable cannot be found."""

    category = "Git missing"
    remediation = GIT_INSTALL_HINT

    def __init__(self, executable: str = "git", uri: Optional[str] = None):
        self.executable = executable
        super().__init__(f"`{executable}` could not be found. {GIT_INSTALL_HINT}", uri)


class ToolExecutionError(GitSourceError):
    """Raised when a git invocation exits with a nonzero status."""

    category = "Git error"

    def __init__(
        self,
        command: Sequence[str],
        exit_code: Optional[int],
        stdout: str = "",
        stderr: str = "",
        cwd: Optional[str] = None,
        uri: Optional[str] = None,
    ):
        self.command = list(command)
        self.exit_code = exit_code
        self.stdout = stdout
        self.stderr = stderr
        self.cwd = cwd

        if exit_code is None:
            status = "timed out"
        else:
            status = f"exited with status {exit_code}"
        message = f"Git error: command `{' '.join(self.command)}` {status}"
        if cwd:
            message += f" in directory {cwd}"
        if uri:
            message += f" (repository {uri})"
        if stderr:
            message += f"\n{stderr.rstrip()}"
        super().__init__(message, uri)


class RevisionNotFoundError(GitSourceError):
    """Raised when a ref specifier or SHA cannot be resolved to a commit."""

    category = "Revision not found"
    remediation = "Check that the branch, tag or revision exists in the repository."

    def __init__(self, uri: str, specifier: str, reason: str = ""):
        self.specifier = specifier
        message = f"Revision '{specifier}' does not exist in the repository {uri}"
        if reason:
            message += f": {reason}"
        super().__init__(message, uri, specifier)


class OverridePathMissingError(GitSourceError):
    """Raised when a local override points at a directory that does not exist."""

    category = "Local override error"
    remediation = "Fix the path of the local override or remove the binding."

    def __init__(self, uri: str, path: str):
        self.path = path
        super().__init__(
            f"Cannot use local override for {uri} because {path} does not exist",
            uri,
        )


class OverrideBranchRequiredError(GitSourceError):
    """Raised when a local override is used for a source without a branch."""

    category = "Local override error"
    remediation = (
        "Declare a branch for the git source, or set "
        "`disable_local_branch_check` in the [git] configuration section."
    )

    def __init__(self, uri: str):
        super().__init__(
            f"Cannot use local override for {uri} at the declared revision "
            "because no branch was specified for the git source",
            uri,
        )


class OverrideBranchMismatchError(GitSourceError):
    """Raised when the local override is checked out on another branch."""

    category = "Local override error"
    remediation = "Check out the declared branch in the local override directory."

    def __init__(self, uri: str, expected: str, actual: Optional[str], path: str):
        self.expected = expected
        self.actual = actual
        self.path = path
        actual_text = actual if actual else "a detached HEAD"
        super().__init__(
            f"Local override for {uri} at {path} is using branch {actual_text} "
            f"but the git source declares branch {expected}",
            uri,
        )


class OverrideRevisionMismatchWarning(UserWarning):
    """Issued when a local override's HEAD differs from the declared revision."""


class PackageNotFoundInSourceError(GitSourceError):
    """Raised when a requested package or version is absent from a source."""

    category = "Package not found"

    def __init__(
        self,
        uri: str,
        name: str,
        requirement: Optional[str] = None,
        available: Iterable[str] = (),
        revision: Optional[str] = None,
    ):
        self.name = name
        self.requirement = requirement
        self.available = sorted(available)
        wanted = f"'{name}'" + (f" ({requirement})" if requirement else "")
        message = f"Could not find {wanted} in the git source {uri}"
        if revision:
            message += f" at revision {revision[:12]}"
        message += "."
        if self.available:
            message += f"\nSource contains {', '.join(self.available)}"
        else:
            message += "\nSource does not contain any packages"
        super().__init__(message, uri, revision)


class HookFailureError(GitSourceError):
    """Raised when a pre- or post-install hook fails."""

    category = "Install hook failed"

    def __init__(self, phase: str, hook: str, full_name: str, reason: str = ""):
        self.phase = phase
        self.hook = hook
        self.full_name = full_name
        message = f"{phase}-install hook at {hook} failed for {full_name}"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class ExtensionBuildFailureError(GitSourceError):
    """Raised when a native extension of a git package fails to build."""

    category = "Extension build failed"
    remediation = "Inspect the build output above and fix the extension build."

    def __init__(
        self,
        name: str,
        version: str,
        command: str,
        output: str = "",
        uri: Optional[str] = None,
        revision: Optional[str] = None,
    ):
        self.name = name
        self.version = version
        self.command = command
        self.output = output
        message = (
            f"An error occurred while installing {name} ({version}), "
            f"and the build of its extension failed running `{command}`"
        )
        if output:
            message += f"\n{output.rstrip()}"
        super().__init__(message, uri, revision)


class ManifestError(GitSourceError):
    """Raised for invalid manifest files."""

    category = "Manifest error"


class LockfileParseError(GitSourceError):
    """Raised when a lockfile cannot be parsed."""

    category = "Lockfile error"
    remediation = "Delete the lockfile and run `gitpin install` to recreate it."

    def __init__(self, message: str, line_number: Optional[int] = None):
        self.line_number = line_number
        if line_number is not None:
            message = f"{message} (line {line_number})"
        super().__init__(message)


class FrozenLockfileError(GitSourceError):
    """Raised when a frozen install would need to change the lockfile."""

    category = "Frozen lockfile"
    remediation = "Run `gitpin install` without --frozen and commit the updated lockfile."

    def __init__(self, path: str, reason: str):
        self.path = path
        super().__init__(f"Cannot install with a frozen lockfile {path}: {reason}")


class MetadataError(GitSourceError):
    """Raised when a package metadata file is invalid."""

    category = "Invalid package metadata"

    def __init__(self, path: str, reason: str, uri: Optional[str] = None):
        self.path = path
        super().__init__(f"Invalid package metadata in {path}: {reason}", uri)
