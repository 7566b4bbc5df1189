"""Loads the extension, browser and environment contexts of a build."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Mapping

from .git.repository import Git
from .logging import get_logger
from .manifest import ManifestError, read_json, read_package_details
from .models import BrowserContext, CIContext, Environment, ExtensionContext, RepositoryStatus
from .process import CommandError

EXTENSION_FILENAME = "extension.json"
BUILD_FILENAME = "build.json"
BUILD_DIRECTORY = "Build"

DEFAULT_BROWSER = "chrome"
DEFAULT_ENVIRONMENT = "development"

logger = get_logger("extension")


async def load_extension(
    path: Path,
    git: Git | None = None,
    environ: Mapping[str, str] | None = None,
) -> ExtensionContext:
    """Read the extension package at ``path`` together with its repository state."""
    path = Path(path).resolve()
    package = read_package_details(path)

    declaration = _read_optional(path / EXTENSION_FILENAME)
    features = declaration.get("features") or {}
    modules = _module_groups(declaration.get("modules") or {})

    build = _read_optional(path / BUILD_FILENAME)

    git = git or Git()
    try:
        repository = await git.status(path)
    except (CommandError, OSError) as exc:
        logger.warning("Unable to retrieve repository status for %s: %s", path, exc)
        repository = RepositoryStatus.unknown()

    return ExtensionContext(
        name=package.get("name") or path.name,
        path=path,
        package=package,
        repository=repository,
        build=build,
        features=dict(features),
        modules=modules,
        ci=CIContext.from_environ(environ),
    )


def create_browser(extension: ExtensionContext, name: str = DEFAULT_BROWSER) -> BrowserContext:
    """Browser target built from the extension package itself."""
    return BrowserContext(
        name=name,
        package_name=extension.name,
        package_path=Path(extension.path),
        extension=extension,
    )


def create_environment(
    extension: ExtensionContext, browser: BrowserContext, name: str = DEFAULT_ENVIRONMENT
) -> Environment:
    build_path = Path(extension.path) / BUILD_DIRECTORY / browser.name / name
    return Environment(name=name, build_path=build_path, output_path=build_path / "unpacked")


def _read_optional(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    try:
        data = read_json(path)
    except json.JSONDecodeError as exc:
        raise ManifestError(f"Unable to parse {path.name}: {exc}") from exc
    if not isinstance(data, dict):
        raise ManifestError(f"Expected {path.name} to be an object")
    return data


def _module_groups(value: Any) -> Dict[str, List[str]]:
    if not isinstance(value, dict):
        raise ManifestError(f'Expected "modules" in {EXTENSION_FILENAME} to be an object')
    groups: Dict[str, List[str]] = {}
    for group, names in value.items():
        if isinstance(names, str):
            names = [names]
        groups[str(group)] = [str(name) for name in names or []]
    return groups


__all__ = [
    "BUILD_DIRECTORY",
    "DEFAULT_BROWSER",
    "DEFAULT_ENVIRONMENT",
    "create_browser",
    "create_environment",
    "load_extension",
]
