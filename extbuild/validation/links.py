"""Registry of symlinks created while linking modules into a working tree."""

from __future__ import annotations

import asyncio
import os
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from ..logging import get_logger

NODE_MODULES = "node_modules"

_Scope = Tuple[str, str]


class LinkRegistry:
    """Maps linked paths onto their targets, per (browser, environment).

    Entries are keyed by target so that one link is kept per target; a link
    that lives in the browser package's own ``node_modules`` is never replaced
    by a nested one.
    """

    def __init__(self) -> None:
        self._links: Dict[_Scope, Dict[str, str]] = {}
        self._package_paths: Dict[str, Path] = {}
        self.logger = get_logger("links")

    def set_package_path(self, browser: str, path: Path) -> None:
        """Record the browser package root used for precedence checks."""
        self._package_paths[browser] = Path(path)

    def register_link(self, browser: str, environment: str, link_path: str, target_path: str) -> bool:
        """Register ``link_path`` as a link to ``target_path``; return False when ignored."""
        link = _normalise(link_path)
        target = _normalise(target_path)
        entries = self._links.setdefault((browser, environment), {})

        current = entries.get(target)
        if current is not None and current != link and self._is_package_link(browser, current):
            self.logger.debug('Ignored link "%s" -> "%s" (package link "%s" registered)', link, target, current)
            return False

        entries[target] = link
        self.logger.info('Registered link: "%s" -> "%s"', link, target)
        return True

    def resolve_link(self, browser: str, environment: str, path: Optional[str]) -> Optional[str]:
        """Rewrite the longest registered link prefix of ``path`` onto its target."""
        if path is None:
            return path

        match: Optional[Tuple[str, str]] = None
        for target, link in self._links.get((browser, environment), {}).items():
            if not _has_prefix(path, link):
                continue
            if match is None or len(link) > len(match[0]):
                match = (link, target)

        if match is None:
            return path
        link, target = match
        return target + path[len(link):]

    def links(self, browser: str, environment: str) -> Dict[str, str]:
        """Return a copy of the ``link -> target`` mapping for a scope."""
        return {link: target for target, link in self._links.get((browser, environment), {}).items()}

    async def register_links(self, browser: str, environment: str, root: Path) -> int:
        """Register every symlink found in the ``node_modules`` directory ``root``."""
        root = Path(root)
        if not root.is_dir():
            return 0

        count = 0
        for entry in sorted(root.iterdir()):
            if entry.name.startswith("@") and entry.is_dir() and not entry.is_symlink():
                count += await self.register_links(browser, environment, entry)
                continue
            if not entry.is_symlink():
                continue
            target = await asyncio.to_thread(os.path.realpath, entry)
            if self.register_link(browser, environment, str(entry), target):
                count += 1
        return count

    def _is_package_link(self, browser: str, link: str) -> bool:
        package_path = self._package_paths.get(browser)
        if package_path is None:
            return False
        owner = _link_owner(link)
        return owner is not None and _normalise(str(owner)) == _normalise(str(package_path))


def _normalise(path: str) -> str:
    return os.path.normpath(path)


def _has_prefix(path: str, prefix: str) -> bool:
    return path == prefix or path.startswith(prefix.rstrip(os.sep) + os.sep)


def _link_owner(link: str) -> Optional[Path]:
    """Return the directory owning the last ``node_modules`` segment of ``link``."""
    parts: List[str] = list(Path(link).parts)
    if NODE_MODULES not in parts:
        return None
    index = len(parts) - 1 - parts[::-1].index(NODE_MODULES)
    return Path(*parts[:index]) if index > 0 else None


__all__ = ["LinkRegistry"]
