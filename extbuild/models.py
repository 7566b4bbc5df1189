"""Core data models shared across extbuild components."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional


@dataclass
class RepositoryStatus:
    """Live state of a module repository."""

    branch: Optional[str] = None
    commit: Optional[str] = None
    tag: Optional[str] = None
    latest_tag: Optional[str] = None
    ahead: int = 0
    dirty: bool = False

    @classmethod
    def unknown(cls) -> "RepositoryStatus":
        """Return the clean, unknown status used when git cannot be queried."""
        return cls()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RepositoryStatus":
        return cls(
            branch=data.get("branch"),
            commit=data.get("commit"),
            tag=data.get("tag"),
            latest_tag=data.get("latestTag", data.get("latest_tag")),
            ahead=int(data.get("ahead") or 0),
            dirty=bool(data.get("dirty", False)),
        )

    @property
    def is_consistent(self) -> bool:
        return self.commit is not None or self.dirty


@dataclass
class CIContext:
    """Identity of the CI build the tool is running under."""

    branch: Optional[str] = None
    commit: Optional[str] = None
    tag: Optional[str] = None
    build_number: Optional[str] = None

    @classmethod
    def from_environ(cls, environ: Mapping[str, str] | None = None) -> "CIContext":
        env = os.environ if environ is None else environ
        return cls(
            branch=env.get("TRAVIS_BRANCH") or None,
            commit=env.get("TRAVIS_COMMIT") or None,
            tag=env.get("TRAVIS_TAG") or None,
            build_number=env.get("TRAVIS_BUILD_NUMBER") or None,
        )


@dataclass
class Module:
    """Fully resolved unit of the product line."""

    key: str
    type: str
    path: Path
    name: str
    version: Optional[str] = None
    description: Optional[str] = None
    dependencies: Dict[str, str] = field(default_factory=dict)
    dev_dependencies: Dict[str, str] = field(default_factory=dict)
    peer_dependencies: Dict[str, str] = field(default_factory=dict)
    package: Dict[str, Any] = field(default_factory=dict)
    manifest: Dict[str, Any] = field(default_factory=dict)
    repository: RepositoryStatus = field(default_factory=RepositoryStatus)
    contributors: List[Dict[str, Any]] = field(default_factory=list)
    branch: Optional[str] = None
    commit: Optional[str] = None
    tag: Optional[str] = None
    ci: Optional[CIContext] = None
    version_name: Optional[str] = None


@dataclass(frozen=True)
class DependencySpec:
    """A parsed dependency request."""

    name: str
    path: Optional[Path]


@dataclass
class ExtensionContext:
    """The top-level package being built or released."""

    name: str
    path: Path
    package: Dict[str, Any]
    repository: RepositoryStatus = field(default_factory=RepositoryStatus)
    build: Dict[str, Any] = field(default_factory=dict)
    features: Dict[str, Any] = field(default_factory=dict)
    modules: Dict[str, List[str]] = field(default_factory=dict)
    ci: CIContext = field(default_factory=CIContext)


@dataclass
class Environment:
    """Build environment (development, production, ...)."""

    name: str
    build_path: Path
    output_path: Path


@dataclass
class BrowserContext:
    """Browser target with its resolved module graph."""

    name: str
    package_name: str
    package_path: Path
    extension: ExtensionContext
    modules: Dict[str, Module] = field(default_factory=dict)
