"""Resolves module names to fully populated :class:`Module` records."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

from ..config import ConfigError
from ..context import BuildContext
from ..git.repository import Git
from ..logging import get_logger, module_prefix
from ..manifest import (
    overlay_module_declaration,
    parse_module_declaration,
    read_contributors,
    read_module_declaration,
    read_package_details,
)
from ..models import BrowserContext, ExtensionContext, Module, RepositoryStatus
from ..process import CommandError
from ..version import resolve_module_version

MODULE_DECLARATION_FILES = ("module.json", "extension.json")
MODULES_DIRECTORY = ".modules"


class ModuleError(RuntimeError):
    """Raised when a module name or type cannot be resolved."""


class MissingModuleError(ModuleError):
    """Raised when no directory exists for a module."""


@dataclass(frozen=True)
class ModuleType:
    name: str
    directory: Optional[str] = None


MODULE_TYPES: Dict[str, ModuleType] = {
    "core": ModuleType("core"),
    "tool": ModuleType("tool", "Tools"),
    "packages": ModuleType("package", "Packages"),
    "destinations": ModuleType("destination", "Destinations"),
    "sources": ModuleType("source", "Sources"),
}


def module_key(name: str) -> str:
    """Derive the short module key (``@scope/destination-lastfm`` -> ``lastfm``)."""
    unscoped = name.rsplit("/", 1)[-1]
    key = unscoped[unscoped.rfind("-") + 1:]
    if not key:
        raise ModuleError(f'Invalid module name: "{name}"')
    return key


def module_path(base_path: Path, name: str, module_type: ModuleType) -> Path:
    """Locate the directory of ``name``; raise :class:`MissingModuleError` when missing."""
    base_path = Path(base_path)

    # Development module type directory
    path = base_path / module_type.directory / name if module_type.directory else base_path / name
    if path.exists():
        return path.resolve()

    # Browser package
    if module_type.name == "package" and any((base_path / item).exists() for item in MODULE_DECLARATION_FILES):
        return base_path.resolve()

    # Installed module
    path = base_path / "node_modules" / name
    if path.exists():
        return path.resolve()

    raise MissingModuleError(f'Unable to find "{name}" module')


class ModuleResolver:
    """Builds module records from manifests, repository state and declarations."""

    def __init__(self, context: BuildContext, git: Git | None = None) -> None:
        self.context = context
        self.git = git or Git()
        self.logger = get_logger("modules")

    async def resolve(
        self,
        browser: BrowserContext,
        extension: ExtensionContext,
        base_path: Path,
        module_type: str,
        name: str,
    ) -> Module:
        kind = MODULE_TYPES.get(module_type)
        if kind is None:
            raise ModuleError(f'Unknown module type: "{module_type}"')

        key = module_key(name)
        path = module_path(base_path, name, kind)

        package = read_package_details(path)
        package.pop("repository", None)

        module = Module(
            key=key,
            type=kind.name,
            path=path,
            name=package.get("name") or name,
            version=package.get("version"),
            description=package.get("description"),
            dependencies=dict(package.get("dependencies") or {}),
            dev_dependencies=dict(package.get("devDependencies") or {}),
            peer_dependencies=dict(package.get("peerDependencies") or {}),
            package=package,
        )

        repository = await self._resolve_repository(module, extension)
        self.logger.debug("%s Repository: %r", module_prefix(module.name), repository)
        if not repository.is_consistent:
            self.context.flag_error(f"{module_prefix(module.name)} Invalid repository status (no commit defined)")
        module.repository = repository
        module.branch = repository.branch
        module.commit = repository.commit
        module.tag = repository.tag

        if module.type == "package":
            ci = extension.ci
            module.ci = ci
            module.branch = ci.branch or module.branch
            module.commit = ci.commit or module.commit
            module.tag = ci.tag or module.tag

        module.contributors = read_contributors(path)

        content_scripts = (extension.features or {}).get("contentScripts")
        manifest = parse_module_declaration(read_module_declaration(path), content_scripts)
        module.version_name = resolve_module_version(module.version, repository)
        module.manifest = overlay_module_declaration(manifest, read_module_declaration(path, browser.name))
        return module

    async def _resolve_repository(self, module: Module, extension: ExtensionContext) -> RepositoryStatus:
        if module.type == "package":
            return extension.repository

        # Status recorded in the build manifest
        recorded = extension.build.get(module.name)
        if isinstance(recorded, dict):
            status = recorded.get("repository")
            if isinstance(status, dict):
                return RepositoryStatus.from_dict(status)
            self.logger.warning(
                "%s No repository status available in the build manifest", module_prefix(module.name)
            )

        path = self._repository_path(module, extension)
        try:
            return await self.git.status(path)
        except (CommandError, OSError) as exc:
            self.logger.warning("%s Unable to retrieve repository status: %s", module_prefix(module.name), exc)
            return RepositoryStatus.unknown()

    def _repository_path(self, module: Module, extension: ExtensionContext) -> Path:
        try:
            name = self.context.config.repository_name(module.name)
        except ConfigError:
            return module.path
        path = Path(extension.path) / MODULES_DIRECTORY / name
        return path if path.exists() else module.path


__all__ = [
    "MODULE_TYPES",
    "ModuleError",
    "MissingModuleError",
    "ModuleResolver",
    "module_key",
    "module_path",
]
