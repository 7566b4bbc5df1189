"""Validation data structures and dependency path helpers."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from ..logging import get_logger
from ..models import DependencySpec, Module

NODE_MODULES = "node_modules"

_BARE_SPECIFIER = re.compile(r"^(?P<name>(?:@[\w][\w.~-]*/)?[\w][\w.~-]*)(?:/.*)?$")

logger = get_logger("validation")


class ValidationError(RuntimeError):
    """Raised when a validation run fails."""


class DependencyParseError(ValueError):
    """Raised when a request cannot be mapped onto a package."""


@dataclass(frozen=True)
class UnusedDependency:
    """Declared dependency that no compiled file required."""

    module: str
    dependency: str


@dataclass
class ValidationState:
    """Edge memo, used-dependency index and the sticky error flag of one run."""

    checked: Dict[str, Dict[str, bool]] = field(default_factory=dict)
    dependencies: Dict[str, Dict[str, Dict[str, Dict[str, bool]]]] = field(default_factory=dict)
    has_error: bool = False

    def is_checked(self, source: str, request: str) -> bool:
        return self.checked.get(source, {}).get(request, False)

    def mark_checked(self, source: str, request: str) -> None:
        self.checked.setdefault(source, {})[request] = True

    def record(self, browser: str, environment: str, module: str, dependency: str) -> None:
        (
            self.dependencies.setdefault(browser, {})
            .setdefault(environment, {})
            .setdefault(module, {})
        )[dependency] = True

    def matched(self, browser: str, environment: str, module: str) -> Dict[str, bool]:
        return self.dependencies.get(browser, {}).get(environment, {}).get(module, {})


class OwnershipIndex:
    """Maps file paths onto modules by longest path prefix."""

    def __init__(self, modules: Iterable[Module]) -> None:
        entries: List[Tuple[str, Module]] = [(str(module.path), module) for module in modules]
        self._entries = sorted(entries, key=lambda item: len(item[0]), reverse=True)

    def owner(
        self,
        path: str,
        *,
        include_packages: bool = True,
        include_dependencies: bool = True,
    ) -> Optional[Module]:
        for prefix, module in self._entries:
            if not _has_prefix(path, prefix):
                continue
            if not include_packages and module.type == "package":
                continue
            if not include_dependencies and _has_prefix(path, str(Path(prefix) / NODE_MODULES)):
                continue
            return module
        return None


def dependency_name_from_path(path: Path) -> Optional[str]:
    """Return the package name implied by the last ``node_modules`` segment of ``path``."""
    parts = list(Path(path).parts)
    if NODE_MODULES not in parts:
        return None
    index = len(parts) - 1 - parts[::-1].index(NODE_MODULES)
    remainder = parts[index + 1:]
    if not remainder:
        return None
    if remainder[0].startswith("@") and len(remainder) > 1:
        return f"{remainder[0]}/{remainder[1]}"
    return remainder[0]


def parse_dependency(request: str) -> DependencySpec:
    """Resolve ``request`` to the package that provides it.

    Paths on disk are walked up to the nearest ``package.json`` that defines
    a ``name``. Requests that do not exist on disk must be bare package
    specifiers.
    """
    if not request:
        raise DependencyParseError("Empty request")

    path = Path(request)
    if not path.exists():
        match = _BARE_SPECIFIER.match(request)
        if path.is_absolute() or match is None:
            raise DependencyParseError(f'Unable to resolve "{request}"')
        return DependencySpec(name=match.group("name"), path=None)

    directory = path.parent if path.is_file() else path
    for candidate in (directory, *directory.parents):
        manifest = candidate / "package.json"
        if not manifest.is_file():
            continue

        try:
            data = json.loads(manifest.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise DependencyParseError(f"Unable to read {manifest}: {exc}") from exc
        name = data.get("name") if isinstance(data, dict) else None
        if not isinstance(name, str) or not name:
            # Nested manifests such as ``helpers/esm/package.json`` only set options.
            logger.warning("%s does not define a package name, checking parent directories", manifest)
            continue

        expected = dependency_name_from_path(manifest)
        if expected is not None and expected != name:
            logger.warning('Package "%s" doesn\'t match path "%s"', name, expected)

        return DependencySpec(name=name, path=candidate)

    raise DependencyParseError(f'No named package.json found for "{request}"')



def _has_prefix(path: str, prefix: str) -> bool:
    prefix = prefix.rstrip("/\\")
    return path == prefix or path.startswith(prefix + "/") or path.startswith(prefix + "\\")


__all__ = [
    "DependencyParseError",
    "OwnershipIndex",
    "UnusedDependency",
    "ValidationError",
    "ValidationState",
    "dependency_name_from_path",
    "parse_dependency",
]
