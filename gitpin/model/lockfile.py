"""
Lockfile model and text format.

Example::

    GIT
      remote: https://github.com/org/foo
      revision: 0123456789abcdef0123456789abcdef01234567
      branch: main
      submodules: true
      specs:
        foo (1.0)

    REGISTRY
      specs:
        rack (1.0)

Sections are sorted by remote and specs by name, so serializing an unchanged
resolution always gives the same bytes.
"""

import logging
import re
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from gitpin.exceptions import LockfileParseError
from gitpin.model.source import RepositorySpec, is_full_sha, normalize_uri

logger = logging.getLogger(__name__)

GIT_SECTION = "GIT"
REGISTRY_SECTION = "REGISTRY"

_SPEC_RE = re.compile(r"^    (?P<name>\S+) \((?P<version>[^)]+)\)$")
_OPTION_RE = re.compile(r"^  (?P<key>[a-z_]+):(?: (?P<value>.*))?$")

_GIT_KEYS = ("remote", "revision", "branch", "tag", "ref", "submodules")


@dataclass(frozen=True)
class LockedPackage:
    """A package pinned in the lockfile."""

    name: str
    version: str
    source: Optional[str] = None

    @property
    def full_name(self) -> str:
        return f"{self.name}-{self.version}"

    def sort_key(self) -> Tuple[str, str, str]:
        return (self.name, self.version, self.source or "")

    def __str__(self) -> str:
        return f"{self.name} ({self.version})"


@dataclass(frozen=True)
class LockEntry:
    """The pinned state of one git source."""

    remote: str
    revision: str
    branch: Optional[str] = None
    tag: Optional[str] = None
    ref: Optional[str] = None
    submodules: bool = False
    packages: Tuple[LockedPackage, ...] = ()

    def __post_init__(self):
        if not is_full_sha(self.revision):
            raise ValueError(
                f"Lock entry for {self.remote} needs a full revision, got {self.revision!r}"
            )
        object.__setattr__(
            self,
            "packages",
            tuple(
                sorted(
                    (replace(p, source=self.remote) for p in self.packages),
                    key=LockedPackage.sort_key,
                )
            ),
        )

    @property
    def declared_ref(self) -> Optional[str]:
        return self.ref or self.tag or self.branch

    def matches(self, spec: RepositorySpec) -> bool:
        """True if ``spec`` declares the same source this entry was locked from."""
        return (self.remote, self.branch, self.tag, self.ref) == spec.shape

    def with_packages(self, packages: Iterable[LockedPackage]) -> "LockEntry":
        return replace(self, packages=tuple(packages))

    @classmethod
    def from_spec(
        cls, spec: RepositorySpec, revision: str, packages: Iterable[LockedPackage] = ()
    ) -> "LockEntry":
        return cls(
            remote=spec.normalized_uri,
            revision=revision,
            branch=spec.branch,
            tag=spec.tag,
            ref=spec.ref,
            submodules=spec.submodules,
            packages=tuple(packages),
        )


@dataclass
class Lockfile:
    """All git sources and registry packages of one project."""

    git_sources: List[LockEntry] = field(default_factory=list)
    registry_packages: List[LockedPackage] = field(default_factory=list)

    def entry_for(self, uri: str) -> Optional[LockEntry]:
        normalized = normalize_uri(uri)
        for entry in self.git_sources:
            if entry.remote == normalized:
                return entry
        return None

    @property
    def packages(self) -> List[LockedPackage]:
        packages = list(self.registry_packages)
        for entry in self.git_sources:
            packages.extend(entry.packages)
        return sorted(packages, key=LockedPackage.sort_key)

    def package(self, name: str) -> Optional[LockedPackage]:
        for package in self.packages:
            if package.name == name:
                return package
        return None

    def dumps(self) -> str:
        """Serialize to the lockfile text format."""
        sections = []
        for entry in sorted(self.git_sources, key=lambda e: e.remote):
            lines = [GIT_SECTION, f"  remote: {entry.remote}", f"  revision: {entry.revision}"]
            for key in ("branch", "tag", "ref"):
                value = getattr(entry, key)
                if value:
                    lines.append(f"  {key}: {value}")
            if entry.submodules:
                lines.append("  submodules: true")
            lines.append("  specs:")
            lines.extend(f"    {package}" for package in entry.packages)
            sections.append("\n".join(lines) + "\n")

        if self.registry_packages:
            lines = [REGISTRY_SECTION, "  specs:"]
            registry = sorted(self.registry_packages, key=LockedPackage.sort_key)
            lines.extend(f"    {package}" for package in registry)
            sections.append("\n".join(lines) + "\n")

        return "\n".join(sections)

    @classmethod
    def parse(cls, text: str) -> "Lockfile":
        """
        Parse lockfile text.

        Raises:
            LockfileParseError: On unknown sections, keys or malformed lines
        """
        lockfile = cls()
        section: Optional[str] = None
        options: Dict[str, str] = {}
        specs: List[LockedPackage] = []
        section_line = 0
        in_specs = False

        def close_section():
            if section == GIT_SECTION:
                for required in ("remote", "revision"):
                    if required not in options:
                        raise LockfileParseError(
                            f"GIT section is missing '{required}'", section_line
                        )
                try:
                    entry = LockEntry(
                        remote=options["remote"],
                        revision=options["revision"],
                        branch=options.get("branch"),
                        tag=options.get("tag"),
                        ref=options.get("ref"),
                        submodules=options.get("submodules") == "true",
                        packages=tuple(specs),
                    )
                except ValueError as e:
                    raise LockfileParseError(str(e), section_line) from e
                lockfile.git_sources.append(entry)
            elif section == REGISTRY_SECTION:
                lockfile.registry_packages.extend(specs)

        for number, line in enumerate(text.splitlines(), start=1):
            if not line.strip():
                continue

            if not line.startswith(" "):
                close_section()
                if line not in (GIT_SECTION, REGISTRY_SECTION):
                    raise LockfileParseError(f"Unknown section '{line}'", number)
                section, options, specs = line, {}, []
                section_line, in_specs = number, False
                continue

            if section is None:
                raise LockfileParseError("Entry outside of a section", number)

            spec_match = _SPEC_RE.match(line)
            if spec_match and in_specs:
                specs.append(LockedPackage(spec_match["name"], spec_match["version"]))
                continue

            option_match = _OPTION_RE.match(line)
            if not option_match:
                raise LockfileParseError(f"Malformed line '{line.strip()}'", number)

            key, value = option_match["key"], option_match["value"]
            if key == "specs" and value is None:
                in_specs = True
                continue
            if section != GIT_SECTION or key not in _GIT_KEYS or value is None:
                raise LockfileParseError(f"Unexpected '{key}' in {section} section", number)
            options[key] = value

        close_section()
        return lockfile

    @classmethod
    def read(cls, path: Path) -> "Lockfile":
        """Read a lockfile, an absent file is an empty lockfile."""
        if not path.exists():
            return cls()
        return cls.parse(path.read_text(encoding="utf-8"))

    def write(self, path: Path) -> bool:
        """
        Write the lockfile if its content changed.

        Returns:
            True if the file was written
        """
        text = self.dumps()
        if path.exists() and path.read_text(encoding="utf-8") == text:
            logger.debug(f"Lockfile {path} is up to date")
            return False
        path.write_text(text, encoding="utf-8")
        logger.info(f"Wrote lockfile {path}")
        return True
