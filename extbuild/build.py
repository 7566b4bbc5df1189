"""Build pipeline: link registration, compilation and dependency validation."""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from .bundler import Bundler, BuildError, CompilationStats, WebpackBundler
from .context import BuildContext
from .logging import get_logger
from .models import BrowserContext, Environment
from .validation import DependencyValidator, UnusedDependency

BUNDLER_CONFIG_FILENAME = "webpack.config.js"
STATS_FILENAME = "webpack.stats.json"
NODE_MODULES = "node_modules"


@dataclass
class BuildResult:
    stats: CompilationStats
    unused: List[UnusedDependency] = field(default_factory=list)


class ExtensionBuilder:
    """Compiles one (browser, environment) pair and validates what was bundled."""

    def __init__(
        self,
        context: BuildContext,
        browser: BrowserContext,
        environment: Environment,
        bundler: Bundler | None = None,
        bundler_config: Optional[Path] = None,
    ) -> None:
        self.context = context
        self.browser = browser
        self.environment = environment
        self.bundler = bundler or WebpackBundler()
        self.bundler_config = bundler_config or Path(browser.package_path) / BUNDLER_CONFIG_FILENAME
        self.logger = get_logger("build")

    async def register_links(self) -> int:
        """Register the symlinks in every module's ``node_modules`` concurrently."""
        links = self.context.links
        links.set_package_path(self.browser.name, self.browser.package_path)
        counts = await asyncio.gather(
            *(
                links.register_links(self.browser.name, self.environment.name, Path(module.path) / NODE_MODULES)
                for module in self.browser.modules.values()
            )
        )
        return sum(counts)

    async def build(self) -> BuildResult:
        Path(self.environment.output_path).mkdir(parents=True, exist_ok=True)

        registered = await self.register_links()
        self.logger.debug("Registered %d link(s)", registered)

        stats = await self.bundler.compile(self.bundler_config)
        self.write_stats(stats)
        for warning in stats.warnings:
            self.logger.warning(warning)
        if stats.has_errors:
            for error in stats.errors:
                self.logger.error(error)
            raise BuildError("Build failed")

        return BuildResult(stats=stats, unused=self.validate(stats))

    def validate(self, stats: CompilationStats) -> List[UnusedDependency]:
        validator = DependencyValidator(self.context, self.browser, self.environment)
        for module in stats.modules:
            validator.validate(module)
        return validator.finish()

    def write_stats(self, stats: CompilationStats) -> Path:
        path = Path(self.environment.build_path) / STATS_FILENAME
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(stats.raw, indent=2), encoding="utf-8")
        return path


__all__ = ["BuildResult", "ExtensionBuilder"]
