"""Bintray release descriptors for built extensions."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Optional

from .config import ConfigError, ExtBuildConfig
from .logging import get_logger
from .models import BrowserContext, Environment
from .version import resolve_module_version

DESCRIPTOR_FILENAME = "bintray.json"


class DeployError(RuntimeError):
    """Raised when a release descriptor cannot be created."""


def is_dirty(browser: BrowserContext) -> bool:
    """Return True when the extension or any resolved module has local changes."""
    if browser.extension.repository.dirty:
        return True
    return any(module.repository.dirty for module in browser.modules.values())


def version_name(browser: BrowserContext) -> str:
    module = browser.modules.get(browser.package_name)
    if module is not None and module.version_name:
        return module.version_name
    extension = browser.extension
    return resolve_module_version(extension.package.get("version"), extension.repository)


def create_descriptor(
    config: ExtBuildConfig, browser: BrowserContext, environment: Environment
) -> Dict[str, Any]:
    """Build the bintray descriptor for the extension built into ``environment``."""
    if is_dirty(browser):
        raise DeployError("Unable to create bintray descriptor, environment is dirty")

    extension = browser.extension
    repository = extension.repository
    name = extension.package.get("name") or extension.name
    version = version_name(browser)
    build_path = _relative(environment.build_path, extension.path)

    return {
        "package": {
            "name": name,
            "licenses": list(config.deploy.licenses),
            "subject": config.deploy.subject,
            "repo": config.deploy.repository,
            "vcs_url": f"https://github.com/{config.owner}/{_repository_name(config, name)}.git",
        },
        "version": {
            "name": version,
            "vcs_tag": repository.tag,
            "attributes": [
                {"name": "branch", "type": "string", "values": [repository.branch or extension.ci.branch]},
                {"name": "commit", "type": "string", "values": [repository.commit]},
                {"name": "version", "type": "string", "values": [extension.package.get("version")]},
                {"name": "build_number", "type": "number", "values": [_build_number(extension.ci.build_number)]},
            ],
        },
        "files": [
            {"includePattern": f"{build_path}/(.*\\.zip)", "uploadPattern": "$1"},
            {
                "includePattern": f"{build_path}/(MD5SUMS|webpack.*)",
                "uploadPattern": f"{config.deploy.archive_prefix}-{version}/$1",
            },
        ],
        "publish": True,
    }


def write_descriptor(config: ExtBuildConfig, browser: BrowserContext, environment: Environment) -> Path:
    """Write ``bintray.json`` into the environment build directory and return its path."""
    descriptor = create_descriptor(config, browser, environment)
    path = Path(environment.build_path) / DESCRIPTOR_FILENAME
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(descriptor, indent=2) + "\n", encoding="utf-8")
    get_logger("deploy").info('Wrote bintray descriptor to "%s"', path)
    return path


def _repository_name(config: ExtBuildConfig, name: str) -> str:
    try:
        return config.repository_name(name)
    except ConfigError:
        return name


def _build_number(value: Optional[str]) -> Optional[int]:
    if not value:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def _relative(path: Path, root: Path) -> str:
    try:
        return Path(path).relative_to(root).as_posix()
    except ValueError:
        return Path(path).as_posix()


__all__ = ["DESCRIPTOR_FILENAME", "DeployError", "create_descriptor", "is_dirty", "version_name", "write_descriptor"]
