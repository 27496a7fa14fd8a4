"""Tests for CLI error formatting."""

import pytest

from gitpin.cli.error_formatting import format_error
from gitpin.exceptions import (
    ManifestError,
    OverrideBranchRequiredError,
    RevisionNotFoundError,
    ToolExecutionError,
    ToolMissingError,
)


@pytest.mark.short
class TestFormatError:
    def test_category_and_hint(self):
        error = RevisionNotFoundError("https://github.com/org/foo", "v9")
        assert format_error(error).splitlines() == [
            "Revision not found: Revision 'v9' does not exist in the repository "
            "https://github.com/org/foo",
            "  Hint: Check that the branch, tag or revision exists in the repository.",
        ]

    def test_category_not_repeated(self):
        error = ToolExecutionError(["git", "fetch"], 128, stderr="fatal: no route")
        formatted = format_error(error)
        assert formatted.startswith("Git error: command `git fetch` exited with status 128")
        assert "Git error: Git error" not in formatted
        assert formatted.endswith("fatal: no route")

    def test_hint_inside_message_is_not_repeated(self):
        formatted = format_error(ToolMissingError())
        assert formatted.count("install git") == 1

    def test_without_remediation(self):
        assert format_error(ManifestError("bad")) == "Manifest error: bad"

    def test_override_hint(self):
        formatted = format_error(OverrideBranchRequiredError("https://github.com/org/foo"))
        assert "Hint: Declare a branch" in formatted
