"""Async subprocess helpers shared by the git, npm and bundler adapters."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Awaitable, Callable, Iterable, Mapping

CommandRunner = Callable[..., Awaitable[str]]


class CommandError(RuntimeError):
    """Raised when an external command exits with a non-zero status."""

    def __init__(self, args: Iterable[str], returncode: int, stderr: str = "") -> None:
        self.args_list = list(args)
        self.returncode = returncode
        self.stderr = stderr.strip()
        message = f"{' '.join(self.args_list)} failed with exit code {returncode}"
        if self.stderr:
            message += f": {self.stderr}"
        super().__init__(message)


async def run_command(
    args: Iterable[str],
    *,
    cwd: Path,
    env: Mapping[str, str] | None = None,
    capture_output: bool = False,
) -> str:
    """Run ``args`` in ``cwd`` and return stdout when captured."""
    command = list(args)
    process = await asyncio.create_subprocess_exec(
        *command,
        cwd=str(cwd),
        env=dict(env) if env is not None else None,
        stdout=asyncio.subprocess.PIPE if capture_output else None,
        stderr=asyncio.subprocess.PIPE,
    )
    stdout, stderr = await process.communicate()
    if process.returncode != 0:
        raise CommandError(
            command,
            process.returncode if process.returncode is not None else -1,
            stderr.decode("utf-8", errors="replace") if stderr else "",
        )
    if capture_output and stdout is not None:
        return stdout.decode("utf-8", errors="replace")
    return ""


__all__ = ["CommandError", "CommandRunner", "run_command"]
