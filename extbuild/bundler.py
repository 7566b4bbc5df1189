"""Bundler collaborator and the compiled-module reason graph it reports."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Protocol

from .process import CommandRunner, run_command


class BuildError(RuntimeError):
    """Raised when the bundler fails or reports compilation errors."""


@dataclass(eq=False)
class CompiledModule:
    """A file included in the compiled output, with the reasons it was pulled in."""

    identifier: str
    user_request: Optional[str]
    reasons: List["Reason"] = field(default_factory=list)


@dataclass(eq=False)
class Reason:
    """Edge of the reason graph: ``module`` requested the owning compiled module."""

    module: Optional[CompiledModule]
    request: Optional[str] = None


@dataclass
class CompilationStats:
    modules: List[CompiledModule]
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    raw: Dict[str, Any] = field(default_factory=dict)

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)


class Bundler(Protocol):
    """Compiles a bundler configuration into stats."""

    async def compile(self, config: Path) -> CompilationStats:
        """Run the bundler and return its stats."""


class WebpackBundler:
    """Runs webpack through npx and parses its JSON stats."""

    def __init__(self, runner: CommandRunner | None = None, executable: str = "npx") -> None:
        self._runner = runner or run_command
        self.executable = executable

    async def compile(self, config: Path) -> CompilationStats:
        config = Path(config)
        output = await self._runner(
            [self.executable, "webpack", "--config", str(config), "--json"],
            cwd=config.parent,
            env=None,
            capture_output=True,
        )
        try:
            payload = json.loads(output)
        except json.JSONDecodeError as exc:
            raise BuildError(f"Unable to parse webpack stats: {exc}") from exc
        return parse_stats(payload)


def parse_stats(payload: Mapping[str, Any]) -> CompilationStats:
    """Build the reason graph from a webpack stats document."""
    entries = [entry for entry in payload.get("modules") or [] if isinstance(entry, dict)]

    modules: Dict[str, CompiledModule] = {}
    for entry in entries:
        identifier = str(entry.get("identifier") or entry.get("name") or "")
        if not identifier or identifier in modules:
            continue
        modules[identifier] = CompiledModule(identifier=identifier, user_request=user_request(identifier))

    for entry in entries:
        identifier = str(entry.get("identifier") or entry.get("name") or "")
        module = modules.get(identifier)
        if module is None or module.reasons:
            continue
        for reason in entry.get("reasons") or []:
            if not isinstance(reason, dict):
                continue
            origin_id = reason.get("moduleIdentifier")
            origin = modules.get(origin_id) if origin_id else None
            if origin is None and origin_id:
                origin = CompiledModule(identifier=origin_id, user_request=user_request(origin_id))
            module.reasons.append(Reason(module=origin, request=reason.get("userRequest")))

    return CompilationStats(
        modules=list(modules.values()),
        errors=[_message(item) for item in payload.get("errors") or []],
        warnings=[_message(item) for item in payload.get("warnings") or []],
        raw=dict(payload),
    )


def user_request(identifier: str) -> Optional[str]:
    """Return the resource path of a module identifier, without loaders or query."""
    resource = identifier.rsplit("!", 1)[-1]
    resource = resource.split("?", 1)[0].strip()
    if not resource or not os.path.isabs(resource):
        return None
    return resource


def _message(item: Any) -> str:
    if isinstance(item, dict):
        return str(item.get("message") or item)
    return str(item)


__all__ = [
    "BuildError",
    "Bundler",
    "CompilationStats",
    "CompiledModule",
    "Reason",
    "WebpackBundler",
    "parse_stats",
    "user_request",
]
