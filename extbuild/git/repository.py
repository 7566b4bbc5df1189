"""Git adapter used for module status, cloning and release pushes."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from ..logging import get_logger
from ..models import RepositoryStatus
from ..process import CommandError, CommandRunner, run_command

_TAG_PATTERN = "--match=v*"


@dataclass
class Commit:
    """Single entry of ``git log``."""

    sha: str
    author_name: str
    author_email: str
    subject: str


class Git:
    """Runs git commands through an injectable async runner."""

    def __init__(self, runner: CommandRunner | None = None) -> None:
        self._runner = runner or run_command
        self.logger = get_logger("git")

    async def clone(self, cwd: Path, url: str, local_path: Path, *, branch: str) -> None:
        """Clone ``url`` at ``branch`` into ``local_path``."""
        Path(cwd).mkdir(parents=True, exist_ok=True)
        await self._run(["git", "clone", "-b", branch, url, str(local_path)], cwd=Path(cwd))

    async def remote_branch_exists(self, url: str, branch: str, *, cwd: Path) -> bool:
        """Return True when ``url`` has a branch or tag named ``branch``."""
        try:
            output = await self._run(
                ["git", "ls-remote", url, f"refs/heads/{branch}", f"refs/tags/{branch}"],
                cwd=cwd,
                capture_output=True,
            )
        except CommandError as exc:
            self.logger.debug("Unable to query %s for %s: %s", url, branch, exc)
            return False
        return bool(output.strip())

    async def status(self, path: Path) -> RepositoryStatus:
        """Return the repository status, degrading each field on failure."""
        path = Path(path)
        if not (path / ".git").exists():
            self.logger.warning("No repository available at: %s", path)
            return RepositoryStatus.unknown()

        status = RepositoryStatus()
        status.tag = await self._optional(self.describe_tag(path, exact=True))
        status.latest_tag = await self._optional(self.describe_tag(path, exact=False))

        try:
            status.ahead = len(await self.log(path, start=status.latest_tag))
        except CommandError:
            status.ahead = 0

        status.commit = await self._optional(self.revparse(path, "HEAD"))

        try:
            status.branch = await self.current_branch(path)
            status.dirty = bool(await self.changed_files(path))
        except CommandError:
            status.branch = None
            status.dirty = False
        return status

    async def describe_tag(self, path: Path, *, exact: bool = True, ref: Optional[str] = None) -> Optional[str]:
        args = ["git", "describe", "--abbrev=0", _TAG_PATTERN, "--tags"]
        if exact:
            args.append("--exact-match")
        if ref:
            args.append(ref)
        output = await self._run(args, cwd=Path(path), capture_output=True)
        return output.strip() or None

    async def revparse(self, path: Path, ref: str) -> Optional[str]:
        output = await self._run(["git", "rev-parse", ref], cwd=Path(path), capture_output=True)
        return output.strip() or None

    async def current_branch(self, path: Path) -> Optional[str]:
        output = await self._run(
            ["git", "rev-parse", "--abbrev-ref", "HEAD"], cwd=Path(path), capture_output=True
        )
        branch = output.strip()
        return branch if branch and branch != "HEAD" else None

    async def changed_files(self, path: Path) -> List[str]:
        """Return the paths reported by ``git status --porcelain``."""
        output = await self._run(["git", "status", "--porcelain"], cwd=Path(path), capture_output=True)
        return [line[3:] for line in output.splitlines() if line.strip()]

    async def stage_all(self, path: Path) -> None:
        await self._run(["git", "add", "--all"], cwd=Path(path))

    async def push(self, path: Path, remote: str, refspec: str) -> None:
        await self._run(["git", "push", remote, refspec], cwd=Path(path))

    async def log(self, path: Path, *, start: Optional[str] = None, end: str = "HEAD") -> List[Commit]:
        """Return commits reachable from ``end`` but not from ``start``."""
        revision = f"{start}..{end}" if start else end
        output = await self._run(
            ["git", "log", "--pretty=format:%H%x1f%an%x1f%ae%x1f%s", revision],
            cwd=Path(path),
            capture_output=True,
        )
        commits: List[Commit] = []
        for line in output.splitlines():
            fields = line.split("\x1f")
            if len(fields) != 4:
                continue
            commits.append(Commit(*fields))
        return commits

    async def contributors(self, path: Path) -> List[Dict[str, object]]:
        """Return contributors ordered from fewest to most commits."""
        counts: Dict[str, Dict[str, object]] = {}
        for commit in await self.log(path):
            entry = counts.setdefault(
                commit.author_email,
                {"name": commit.author_name, "email": commit.author_email, "commits": 0},
            )
            entry["commits"] = int(entry["commits"]) + 1  # type: ignore[call-overload]
        return sorted(counts.values(), key=lambda item: item["commits"])  # type: ignore[arg-type, return-value]

    # ------------------------------------------------------------------
    # Helpers

    async def _optional(self, pending) -> Optional[str]:  # type: ignore[no-untyped-def]
        try:
            return await pending
        except CommandError:
            return None

    async def _run(
        self,
        args: Iterable[str],
        *,
        cwd: Path,
        capture_output: bool = False,
    ) -> str:
        return await self._runner(args, cwd=cwd, env=None, capture_output=capture_output)


__all__ = ["Commit", "Git"]
