"""Copies module locale namespaces into the build output."""

from __future__ import annotations

import asyncio
import shutil
from pathlib import Path
from typing import List

from .logging import get_logger, module_prefix
from .models import BrowserContext, Environment, Module

LOCALES_DIRECTORY = "Locales"

logger = get_logger("locales")


def copy_namespaces(module: Module, language: str, destination: Path) -> List[Path]:
    """Copy ``Locales/<language>/**/*.json`` of ``module`` to ``<destination>/<language>/<key>``."""
    source = Path(module.path) / LOCALES_DIRECTORY / language
    if not source.is_dir():
        return []

    target = Path(destination) / language / module.key
    copied: List[Path] = []
    for path in sorted(source.rglob("*.json")):
        if not path.is_file():
            continue
        output = target / path.relative_to(source)
        output.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(path, output)
        copied.append(output)

    logger.info("%s(%s) Copied %d namespace(s)", module_prefix(module.name), language, len(copied))
    return copied


async def copy_module_locales(module: Module, destination: Path) -> List[Path]:
    locales = Path(module.path) / LOCALES_DIRECTORY
    if not locales.is_dir():
        return []

    languages = sorted(entry.name for entry in locales.iterdir() if entry.is_dir())
    results = await asyncio.gather(
        *(asyncio.to_thread(copy_namespaces, module, language, destination) for language in languages)
    )
    return [path for paths in results for path in paths]


async def build_locales(browser: BrowserContext, environment: Environment) -> List[Path]:
    """Copy the locales of every module in parallel; return the written files."""
    destination = Path(environment.output_path) / LOCALES_DIRECTORY
    destination.mkdir(parents=True, exist_ok=True)

    results = await asyncio.gather(
        *(copy_module_locales(module, destination) for module in browser.modules.values())
    )
    return [path for paths in results for path in paths]


__all__ = ["LOCALES_DIRECTORY", "build_locales", "copy_module_locales", "copy_namespaces"]
