"""npm adapter for installing and packing modules."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable

from .logging import get_logger
from .process import CommandRunner, run_command


class PackError(RuntimeError):
    """Raised when ``npm pack`` does not report an archive."""


class Npm:
    """Runs npm commands through an injectable async runner."""

    def __init__(self, runner: CommandRunner | None = None, executable: str = "npm") -> None:
        self._runner = runner or run_command
        self.executable = executable
        self.logger = get_logger("npm")

    async def install(self, path: Path) -> None:
        await self._run([self.executable, "install"], cwd=Path(path))

    async def pack(self, target: Path, path: Path) -> str:
        """Pack the module at ``path`` into ``target`` and return the archive name."""
        output = await self._run(
            [self.executable, "pack", str(path)], cwd=Path(target), capture_output=True
        )
        lines = [line.strip() for line in output.splitlines() if line.strip()]
        if not lines:
            raise PackError(f"npm pack produced no archive for {path}")
        return lines[-1]

    async def _run(self, args: Iterable[str], *, cwd: Path, capture_output: bool = False) -> str:
        return await self._runner(args, cwd=cwd, env=None, capture_output=capture_output)


__all__ = ["Npm", "PackError"]
