"""Resolves the complete module set of a browser target."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Sequence, Tuple

from ..logging import get_logger
from ..manifest import order_modules
from ..models import BrowserContext, ExtensionContext, Module
from .resolver import ModuleResolver

MODULE_GROUPS = ("tool", "core", "packages", "destinations", "sources")

logger = get_logger("modules")


def declared_modules(extension: ExtensionContext, build_tool: str) -> List[Tuple[str, str]]:
    """Return ``(type, name)`` pairs: the build tool, then each declared group in order."""
    result: List[Tuple[str, str]] = [("tool", build_tool)]
    for group, names in (extension.modules or {}).items():
        for name in names or []:
            if (group, name) not in result:
                result.append((group, name))
    return result


async def resolve_all(
    resolver: ModuleResolver,
    base_path: Path,
    browser: BrowserContext,
    extension: ExtensionContext,
) -> Dict[str, Module]:
    """Resolve every module one after the other, keyed by name in priority order."""
    config = resolver.context.config
    resolved: Dict[str, Module] = {}

    for module_type, name in declared_modules(extension, config.build_tool):
        logger.debug("Resolving %s module %s", module_type, name)
        module = await resolver.resolve(browser, extension, base_path, module_type, name)
        resolved[module.name] = module

    ordered = order_modules(list(resolved), _priority(config.core_modules, config.build_tool))
    return {name: resolved[name] for name in ordered}


def _priority(core_modules: Sequence[str], build_tool: str) -> List[str]:
    return [build_tool] + [name for name in core_modules if name != build_tool]


__all__ = ["MODULE_GROUPS", "declared_modules", "resolve_all"]
