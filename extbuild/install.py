"""Clones, links and packs module repositories into a working tree."""

from __future__ import annotations

import os
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Sequence

from .config import ConfigError, ExtBuildConfig
from .context import BuildContext
from .git.repository import Git
from .logging import get_logger
from .manifest import get_package_modules, read_json, write_package, write_package_locks
from .npm import Npm
from .version import branches

MODULES_DIRECTORY = ".modules"
NODE_MODULES = "node_modules"


class CloneError(RuntimeError):
    """Raised when no candidate branch of a repository can be cloned."""


class InstallError(RuntimeError):
    """Raised when a working tree cannot be installed or linked."""


@dataclass
class ClonedRepository:
    branch: str
    path: Path


def is_browser(name: str, scope: str) -> bool:
    """Browser packages are named ``<scope>browser-<name>``."""
    return bool(name) and name.startswith(f"{scope}browser-")


def create_link(link_path: Path, target_path: Path, allowed_roots: Iterable[Path]) -> None:
    """Replace ``link_path`` with a symlink to ``target_path``.

    Both paths must sit inside one of ``allowed_roots``; nothing outside them
    is ever removed or created.
    """
    link_path = Path(os.path.abspath(link_path))
    target_path = Path(os.path.abspath(target_path))
    roots = [Path(os.path.abspath(root)) for root in allowed_roots]

    for path in (link_path, target_path):
        if not any(_is_within(path, root) for root in roots):
            raise InstallError(f'Path "{path}" is outside the allowed roots')

    if link_path.is_symlink() or link_path.is_file():
        link_path.unlink()
    elif link_path.is_dir():
        shutil.rmtree(link_path)

    link_path.parent.mkdir(parents=True, exist_ok=True)
    link_path.symlink_to(target_path, target_is_directory=True)


def _is_within(path: Path, root: Path) -> bool:
    return root in path.parents


class InstallOrchestrator:
    """Installs a target package together with its internal modules."""

    def __init__(
        self,
        context: BuildContext,
        git: Git | None = None,
        npm: Npm | None = None,
        config: ExtBuildConfig | None = None,
    ) -> None:
        self.context = context
        self.config = config or context.config
        self.git = git or Git()
        self.npm = npm or Npm()
        self.logger = get_logger("install")

    # ------------------------------------------------------------------
    # Repositories

    def branches(self, ref: str) -> List[str]:
        return branches(ref)

    def repository_url(self, name: str) -> str:
        return f"https://github.com/{self.config.owner}/{name}.git"

    async def clone(self, target: Path, branch: str, name: str) -> ClonedRepository:
        """Clone repository ``name`` into ``<target>/.modules``, trying each fallback branch."""
        if not name.startswith(self.config.repository_prefix):
            raise CloneError(f"Invalid repository name: {name}")

        modules_path = Path(target) / MODULES_DIRECTORY
        local_path = modules_path / name
        if local_path.exists():
            return ClonedRepository(branch=branch, path=local_path)

        url = self.repository_url(name)
        for candidate in self.branches(branch):
            if not await self.git.remote_branch_exists(url, candidate, cwd=Path(target)):
                self.logger.debug("[%s/%s] No branch named %s", self.config.owner, name, candidate)
                continue
            self.logger.info('[%s/%s#%s] Cloning to "%s"...', self.config.owner, name, candidate, local_path)
            await self.git.clone(modules_path, url, local_path, branch=candidate)
            return ClonedRepository(branch=candidate, path=local_path)

        raise CloneError(f"Unable to find a branch of {name} matching: {', '.join(self.branches(branch))}")

    # ------------------------------------------------------------------
    # Linking

    async def link(self, target: Path, branch: str, module: str) -> Path:
        """Clone ``module``, install its dependencies and link it into ``target``."""
        target = Path(target)
        repository = self._repository_name(module)
        cloned = await self.clone(target, branch, repository)
        prefix = self._prefix(repository, cloned.branch)

        self.logger.info("%s Installing dependencies...", prefix)
        await self.npm.install(cloned.path)

        link_path = target / NODE_MODULES / module
        self.logger.info('%s "%s" -> "%s"', prefix, link_path, cloned.path)
        create_link(link_path, cloned.path, [target / MODULES_DIRECTORY, target / NODE_MODULES])
        return link_path

    async def link_module_dependencies(self, target: Path, branch: str, modules: Sequence[str]) -> None:
        """Link the internal peer dependencies of every cloned module to their clones."""
        target = Path(target)
        for module in modules:
            repository = self._repository_name(module)
            module_path = target / MODULES_DIRECTORY / repository
            if not module_path.exists():
                raise InstallError(f"Unable to find module: {repository}")

            prefix = self._prefix(repository, branch)
            self.logger.info("%s Linking module dependencies...", prefix)

            package = read_json(module_path / "package.json")
            peers: Dict[str, Any] = (package or {}).get("peerDependencies") or {}
            for name in peers:
                if not self.config.is_internal(name):
                    continue
                dependency_path = target / MODULES_DIRECTORY / self._repository_name(name)
                if not dependency_path.exists():
                    raise InstallError(f"Unable to find module: {dependency_path.name}")

                link_path = module_path / NODE_MODULES / name
                self.logger.info('%s "%s" -> "%s"', prefix, link_path, dependency_path)
                create_link(link_path, dependency_path, [module_path / NODE_MODULES, target / MODULES_DIRECTORY])

    # ------------------------------------------------------------------
    # Packing

    async def pack(self, target: Path, branch: str, module: str) -> Dict[str, str]:
        """Pack ``module`` from its clone and return ``{module: "file:<archive>"}``."""
        target = Path(target)
        repository = self._repository_name(module)
        cloned = await self.clone(target, branch, repository)
        prefix = self._prefix(repository, cloned.branch)

        self.logger.info("%s Installing dependencies...", prefix)
        await self.npm.install(cloned.path)

        await self.git.stage_all(cloned.path)
        changed = await self.git.changed_files(cloned.path)
        if changed:
            self.logger.warning("%s Repository is dirty", prefix)
            for path in changed:
                self.logger.warning("%s - %s", prefix, path)

        self.logger.info("%s Packing module...", prefix)
        archive = await self.npm.pack(target, cloned.path)
        if not archive.startswith(self.config.repository_prefix):
            raise InstallError(f"Invalid file: {archive}")

        self.logger.info("%s %s", prefix, archive)
        return {module: f"file:{archive}"}

    # ------------------------------------------------------------------
    # Install

    async def install(self, target: Path, branch: str, reuse: bool = False) -> List[str]:
        """Install ``target`` and return the internal modules it was installed with."""
        target = Path(target).resolve()
        modules_path = target / MODULES_DIRECTORY

        if not reuse and modules_path.exists():
            self.logger.info("Removing existing modules...")
            shutil.rmtree(modules_path)
        modules_path.mkdir(parents=True, exist_ok=True)

        package = read_json(target / "package.json")
        modules = get_package_modules(package, self.config.scope, self.config.core_modules)
        self.logger.info('Installing %d module(s) to "%s"...', len(modules), target)

        if is_browser(package.get("name") or "", self.config.scope):
            await self._install_browser(target, branch, modules)
        else:
            await self._install_module(target, branch, modules)

        self.logger.info("Cleaning package...")
        write_package_locks(target, scope=self.config.scope)
        return modules

    async def _install_browser(self, target: Path, branch: str, modules: Sequence[str]) -> None:
        versions: Dict[str, str] = {}
        for module in modules:
            versions.update(await self.pack(target, branch, module))

        self.logger.info("Updating %d package version(s)...", len(versions))
        write_package(target, versions)
        write_package_locks(target, versions, scope=self.config.scope)

        self.logger.info("Linking module dependencies...")
        await self.link_module_dependencies(target, branch, modules)

        self.logger.info("Installing package...")
        await self.npm.install(target)

    async def _install_module(self, target: Path, branch: str, modules: Sequence[str]) -> None:
        self.logger.info("Installing dependencies...")
        await self.npm.install(target)

        self.logger.info("Linking modules...")
        for module in modules:
            await self.link(target, branch, module)

        self.logger.info("Linking module dependencies...")
        await self.link_module_dependencies(target, branch, modules)

    # ------------------------------------------------------------------
    # Helpers

    def _repository_name(self, module: str) -> str:
        try:
            return self.config.repository_name(module)
        except ConfigError as exc:
            raise InstallError(str(exc)) from exc

    def _prefix(self, repository: str, branch: str) -> str:
        return f"[{self.config.owner}/{repository}#{branch}]"


__all__ = [
    "CloneError",
    "ClonedRepository",
    "InstallError",
    "InstallOrchestrator",
    "create_link",
    "is_browser",
]
