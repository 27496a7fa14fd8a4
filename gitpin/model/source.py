"""
Value types describing git sources.

A :class:`RepositorySpec` is what a manifest declares, a
:class:`ResolvedRevision` is what it resolves to. Both are immutable.
"""

import hashlib
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Optional, Tuple
from urllib.parse import urlparse, urlunparse

FULL_SHA_RE = re.compile(r"^(?:[0-9a-f]{40}|[0-9a-f]{64})$")
ABBREV_SHA_RE = re.compile(r"^[0-9a-f]{4,63}$", re.IGNORECASE)
SSH_URL_RE = re.compile(r"^([\w.-]+@)?([\w.-]+):(?!//)(.+)$")

DEFAULT_REF = "HEAD"


def is_full_sha(value: str) -> bool:
    return bool(FULL_SHA_RE.match(value))


def looks_like_sha(value: str) -> bool:
    return bool(ABBREV_SHA_RE.match(value))


def normalize_ref(value: Any) -> Optional[str]:
    """
    Return the textual form of a ref specifier.

    Strings, bytes, enum members and arbitrary objects with the same text
    normalize to the same value, so the way a specifier was typed in never
    changes what it resolves to. A leading ``:`` symbol marker is dropped.
    """
    if value is None:
        return None
    if isinstance(value, Enum):
        value = value.value
    if isinstance(value, bytes):
        value = value.decode("utf-8")
    text = str(value).strip()
    if text.startswith(":") and len(text) > 1:
        text = text[1:]
    if not text:
        return None
    return text


def is_local_path(url: str) -> bool:
    """
    Check if a repository URL is a local filesystem path rather than a remote URL.

    Local paths include ".", "..", absolute paths, and file:// URLs.
    """
    url = url.strip()
    if url in (".", "..") or url.startswith("./") or url.startswith("../"):
        return True
    if url.startswith("/") or url.startswith("~"):
        return True
    if url.startswith("file://"):
        return True
    return False


def normalize_uri(uri: str, base_dir: Optional[Path] = None) -> str:
    """
    Fold equivalent spellings of a repository URI into one identity.

    Examples:
        https://GitHub.com/user/repo.git/ -> https://github.com/user/repo
        git+https://github.com/user/repo  -> https://github.com/user/repo
        file:///tmp/repo/                 -> /tmp/repo
        ./repo                            -> /abs/cwd/repo

    Local paths are made absolute so the identity does not depend on the
    working directory a later run happens to use.
    """
    uri = uri.strip()
    if not uri:
        raise ValueError("Repository URI must be a non-empty string")

    if is_local_path(uri):
        if uri.startswith("file://"):
            uri = uri[len("file://") :]
        path = Path(uri).expanduser()
        if not path.is_absolute():
            path = (base_dir or Path.cwd()) / path
        return str(path.resolve())

    if uri.startswith("git+"):
        uri = uri[len("git+") :]

    uri = uri.rstrip("/")
    if uri.endswith(".git"):
        uri = uri[:-4]

    parsed = urlparse(uri)
    if parsed.scheme and parsed.netloc:
        path = parsed.path.rstrip("/")
        return urlunparse(
            (parsed.scheme.lower(), parsed.netloc.lower(), path, "", parsed.query, "")
        )

    ssh_match = SSH_URL_RE.match(uri)
    if ssh_match:
        user, host, path = ssh_match.groups()
        return f"{user or ''}{host.lower()}:{path}"

    return uri


def parse_repo_url(url: str) -> str:
    """
    Parse a git repository URL into a Go-style cache path.

    Examples:
        https://github.com/user/repo.git -> github.com/user/repo
        git@github.com:user/repo.git -> github.com/user/repo
        https://gitlab.com/group/subgroup/project -> gitlab.com/group/subgroup/project
        /srv/repos/foo-1.0 -> local/foo-1.0

    Args:
        url: Git repository URL

    Returns:
        Path-like string (e.g., "github.com/user/repo")
    """
    url = normalize_uri(url)

    if url.startswith("/"):
        return f"local/{Path(url).name}"

    ssh_match = SSH_URL_RE.match(url)
    if ssh_match and "://" not in url:
        _, host, path = ssh_match.groups()
        return f"{host}/{path}"

    parsed = urlparse(url)
    if parsed.netloc and parsed.path:
        host = parsed.netloc.rsplit("@", 1)[-1].replace(":", "_")
        return f"{host}/{parsed.path.lstrip('/')}"

    # Fallback: treat as is
    return url.replace(":", "/").lstrip("/")


def cache_key(uri: str) -> str:
    """
    Deterministic cache-relative directory for a repository.

    The Go-style path keeps the cache readable, the digest of the normalized
    URI keeps two repositories with the same name apart.
    """
    normalized = normalize_uri(uri)
    digest = hashlib.sha1(normalized.encode("utf-8")).hexdigest()[:12]
    return f"{parse_repo_url(normalized)}-{digest}"


@dataclass(frozen=True)
class RepositorySpec:
    """A git source as declared in the manifest."""

    uri: str
    branch: Optional[str] = None
    tag: Optional[str] = None
    ref: Optional[str] = None
    submodules: bool = False
    local_override: Optional[Path] = None

    def __post_init__(self):
        if not self.uri or not str(self.uri).strip():
            raise ValueError("Repository URI must be a non-empty string")
        # Frozen dataclass, so normalize through object.__setattr__
        for name in ("branch", "tag", "ref"):
            object.__setattr__(self, name, normalize_ref(getattr(self, name)))
        object.__setattr__(self, "uri", str(self.uri).strip())
        object.__setattr__(self, "submodules", bool(self.submodules))
        if self.local_override is not None:
            object.__setattr__(self, "local_override", Path(self.local_override))

    @property
    def normalized_uri(self) -> str:
        return normalize_uri(self.uri)

    @property
    def fetch_uri(self) -> str:
        """The URI git is pointed at; local paths are made absolute."""
        if is_local_path(self.uri):
            return self.normalized_uri
        return self.uri

    @property
    def declared_ref(self) -> Optional[str]:
        """The most specific ref declared, or None if nothing was declared."""
        return self.ref or self.tag or self.branch

    @property
    def ref_specifier(self) -> str:
        return self.declared_ref or DEFAULT_REF

    @property
    def shape(self) -> Tuple[str, Optional[str], Optional[str], Optional[str]]:
        """Everything about the declaration that pins a revision."""
        return (self.normalized_uri, self.branch, self.tag, self.ref)

    def __str__(self) -> str:
        ref = self.declared_ref
        return f"{self.uri}" + (f" (at {ref})" if ref else "")


@dataclass(frozen=True)
class ResolvedRevision:
    """A repository paired with the full commit SHA a ref resolved to."""

    uri: str
    sha: str = field()

    def __post_init__(self):
        sha = self.sha.strip().lower() if isinstance(self.sha, str) else self.sha
        if not isinstance(sha, str) or not is_full_sha(sha):
            raise ValueError(
                f"Resolved revision for {self.uri} must be a full commit SHA, got {self.sha!r}"
            )
        object.__setattr__(self, "sha", sha)

    @property
    def short_sha(self) -> str:
        return self.sha[:12]

    def __str__(self) -> str:
        return f"{self.uri}@{self.sha[:7]}"
