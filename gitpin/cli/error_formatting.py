"""Error formatting for CLI output."""

from gitpin.exceptions import GitSourceError


def format_error(error: GitSourceError) -> str:
    """Format a GitSourceError to present useful information to the user.

    The first line names the error class, the message follows verbatim
    (git's own stderr included), and a remediation hint closes it when the
    error carries one.

    Example output:
        Revision not found: Revision 'v9' does not exist in the repository ...
          Hint: Check that the branch, tag or revision exists in the repository.
    """
    message = str(error)
    if not message.startswith(f"{error.category}:"):
        message = f"{error.category}: {message}"

    parts = [message]
    if error.remediation and error.remediation not in message:
        parts.append(f"  Hint: {error.remediation}")
    return "\n".join(parts)
