"""Semantic version parsing and the branch policies derived from it."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional

from .models import RepositoryStatus

_SEMVER_PATTERN = re.compile(
    r"^v?(?P<major>0|[1-9]\d*)\.(?P<minor>0|[1-9]\d*)\.(?P<patch>0|[1-9]\d*)"
    r"(?:-(?P<prerelease>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?"
    r"(?:\+(?P<build>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?$"
)

# Exact versions without a range operator ("1.2.3", "1.2.3-beta.1").
PINNED_VERSION_PATTERN = re.compile(r"^\d+\.\d+\.\d+(-\w+(\.\d+)?)?$")

STABLE_BRANCHES = ("master", "develop")


@dataclass(frozen=True)
class SemanticVersion:
    major: int
    minor: int
    patch: int
    prerelease: Optional[str] = None
    build: Optional[str] = None

    @property
    def series(self) -> str:
        """Release-series branch name, e.g. ``v1.2``."""
        return f"v{self.major}.{self.minor}"

    def __str__(self) -> str:
        text = f"{self.major}.{self.minor}.{self.patch}"
        if self.prerelease:
            text += f"-{self.prerelease}"
        if self.build:
            text += f"+{self.build}"
        return text


def parse_version(value: str) -> Optional[SemanticVersion]:
    """Parse ``value`` (optionally ``v``-prefixed) or return None."""
    match = _SEMVER_PATTERN.match(value.strip()) if value else None
    if match is None:
        return None
    return SemanticVersion(
        major=int(match.group("major")),
        minor=int(match.group("minor")),
        patch=int(match.group("patch")),
        prerelease=match.group("prerelease"),
        build=match.group("build"),
    )


def is_pinned(version: str) -> bool:
    return bool(PINNED_VERSION_PATTERN.match(version.strip()))


def branches(ref: str) -> List[str]:
    """Return the clone candidates for ``ref``, most specific first."""
    if ref in STABLE_BRANCHES:
        return [ref]

    # Release
    version = parse_version(ref)
    if version is not None:
        return [ref, version.series]

    # Feature
    return [ref, "develop"]


def target_branches(tag: str) -> List[str]:
    """Return the branches a release ``tag`` is pushed to."""
    version = parse_version(tag)
    if version is None:
        raise ValueError(f"Invalid release tag: {tag}")

    result: List[str] = []
    if version.patch == 0:
        result.append("develop")
    result.append(version.series)
    if version.prerelease is None:
        result.append("master")
    return result


def resolve_module_version(package_version: Optional[str], repository: RepositoryStatus) -> str:
    """Return the module version implied by its repository state.

    An exact tag is the released version. Otherwise a pre-release version is
    derived from the latest tag (or the manifest version), the number of
    commits since that tag, the short commit hash and the dirty flag.
    """
    if repository.tag:
        tagged = parse_version(repository.tag)
        if tagged is not None:
            return str(tagged)

    base = parse_version(repository.latest_tag or "") or parse_version(package_version or "")
    if base is None:
        base = SemanticVersion(0, 0, 0)

    prerelease = f"dev.{repository.ahead}"
    if repository.dirty:
        prerelease += ".dirty"

    version = SemanticVersion(
        major=base.major,
        minor=base.minor,
        patch=base.patch,
        prerelease=prerelease,
        build=repository.commit[:7] if repository.commit else None,
    )
    return str(version)


__all__ = [
    "PINNED_VERSION_PATTERN",
    "SemanticVersion",
    "branches",
    "is_pinned",
    "parse_version",
    "resolve_module_version",
    "target_branches",
]
