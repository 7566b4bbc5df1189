"""Pushes tagged module releases to their branches and waits for CI."""

from __future__ import annotations

import asyncio
import re
import time
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from .ci.client import CIClient, CIError
from .config import ConfigError, ExtBuildConfig
from .git.repository import Git
from .logging import get_logger, module_prefix
from .models import ExtensionContext, Module
from .process import CommandError
from .retry import RetryPending, RetryPolicy, RetryTimeoutError, Sleeper, retry_async
from .version import parse_version, target_branches

PASSED = "passed"
FAILED = "failed"
PENDING_STATES = ("created", "started", "queued", "received")

_BUILD_ID_PATTERN = re.compile(r"/builds/(\d+)")


class ReleaseError(RuntimeError):
    """Raised when a release cannot be pushed or its build did not pass."""


@dataclass
class ReleaseModule:
    """A module whose exact tag matches the release being pushed."""

    key: str
    type: str
    name: str
    path: Path
    commit: str


@dataclass
class ReleaseResult:
    tag: str
    modules: Dict[str, str] = field(default_factory=dict)

    @property
    def passed(self) -> bool:
        return all(state == PASSED for state in self.modules.values())

    @property
    def failed(self) -> List[str]:
        return [name for name, state in self.modules.items() if state != PASSED]


class ReleasePusher:
    """Pushes every module tagged with the extension's release."""

    def __init__(
        self,
        git: Git,
        ci: CIClient,
        config: ExtBuildConfig,
        dry_run: bool = False,
        *,
        sleep: Sleeper = asyncio.sleep,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.git = git
        self.ci = ci
        self.config = config
        self.dry_run = dry_run
        self._sleep = sleep
        self._clock = clock
        self.logger = get_logger("release")

    def target_branches(self, tag: str) -> List[str]:
        return target_branches(tag)

    async def push_release(
        self,
        extension: ExtensionContext,
        modules: Iterable[Module],
        remotes: Sequence[str] | str | None = None,
    ) -> ReleaseResult:
        remotes = self._remotes(remotes)
        tag = await self._release_tag(extension)
        result = ReleaseResult(tag=tag)

        releases = await self._tagged_modules(modules, tag)
        for release in releases:
            result.modules[release.name] = PASSED

        for branch in self.target_branches(tag):
            for release in releases:
                if result.modules[release.name] != PASSED:
                    continue
                await self._attempt(result, release, self.push_branch(release, remotes, tag, branch), branch)

        for release in releases:
            if result.modules[release.name] != PASSED:
                continue
            await self._attempt(result, release, self.push_tag(release, remotes, tag), tag)

        if result.modules.get(extension.name) != PASSED:
            self.logger.debug("%s No release pushed for the extension", module_prefix(extension.name))
        return result

    async def push_branch(self, module: ReleaseModule, remotes: Sequence[str], tag: str, branch: str) -> None:
        """Force ``branch`` to the release commit on every remote, then wait for CI."""
        prefix = module_prefix(module.name)
        started_at: Optional[float] = None

        for remote in remotes:
            try:
                current = await self.git.revparse(module.path, f"{remote}/{branch}")
            except CommandError:
                current = None
            if current is not None and current.strip() == module.commit:
                self.logger.debug('%s %s has already been pushed to "%s" on "%s"', prefix, tag, branch, remote)
                continue

            if remote == self.config.primary_remote:
                started_at = self._clock()

            if self.dry_run:
                self.logger.debug('%s Pushing %s to "%s" on "%s" (skipped, dry run)', prefix, tag, branch, remote)
                continue

            self.logger.debug('%s Pushing %s to "%s" on "%s"', prefix, tag, branch, remote)
            await self.git.push(module.path, remote, f"+{tag}~0:refs/heads/{branch}")

        if started_at is None or self.config.primary_remote not in remotes:
            return

        state = await self.wait_for_build(
            module, branch, sha=module.commit, created_after=started_at, delay=self.config.ci.branch_delay
        )
        if state != PASSED:
            raise ReleaseError(f"Build failed for {module.name}#{branch}")
        self.logger.info("%s Pushed %s (%s) -> %s", prefix, tag, module.commit, branch)

    async def push_tag(self, module: ReleaseModule, remotes: Sequence[str], tag: str) -> None:
        """Push ``tag`` to every remote, wait for CI, then publish the release."""
        prefix = module_prefix(module.name)

        for remote in remotes:
            if self.dry_run:
                self.logger.debug('%s Pushing %s tag to "%s" (skipped, dry run)', prefix, tag, remote)
                continue
            self.logger.debug('%s Pushing %s tag to "%s"', prefix, tag, remote)
            await self.git.push(module.path, remote, f"refs/tags/{tag}")

        if self.config.primary_remote not in remotes:
            return

        state = await self.wait_for_build(module, tag, sha=module.commit, delay=self.config.ci.tag_delay)
        if state != PASSED:
            raise ReleaseError(f"Build failed for {module.name}#{tag}")

        if module.type != "package":
            await self.create_release(module, tag)
        self.logger.info("%s Pushed %s (%s) -> %s", prefix, tag, module.commit, tag)

    async def create_release(self, module: ReleaseModule, tag: str) -> None:
        prefix = module_prefix(module.name)
        if self.dry_run:
            self.logger.info("%s Creating release %s (skipped, dry run)", prefix, tag)
            return

        notes = await self.release_notes(module, tag)
        version = parse_version(tag)
        self.logger.info("%s Creating release %s...", prefix, tag)
        await self.ci.create_release(
            self.config.owner,
            self._repository(module),
            tag,
            body=notes,
            prerelease=version is not None and version.prerelease is not None,
        )

    async def release_notes(self, module: ReleaseModule, tag: str) -> str:
        """List the commits between the previous tag and ``tag``."""
        try:
            previous = await self.git.describe_tag(module.path, exact=False, ref=f"{tag}~1")
        except CommandError:
            previous = None
        commits = await self.git.log(module.path, start=previous, end=tag)
        return "\n".join(f"- {commit.subject} ({commit.sha[:7]})" for commit in commits)

    # ------------------------------------------------------------------
    # CI

    async def wait_for_build(
        self,
        module: ReleaseModule,
        ref: str,
        *,
        sha: Optional[str] = None,
        created_after: Optional[float] = None,
        delay: float = 0.0,
    ) -> str:
        """Wait for the CI build of ``ref`` and return its final state."""
        prefix = module_prefix(module.name)
        if self.dry_run:
            self.logger.info('%s Waiting for "%s" to finish building (skipped, dry run)', prefix, ref)
            return PASSED

        self.logger.debug("%s Waiting %d seconds...", prefix, round(delay))
        await self._sleep(delay)

        repository = self._repository(module)
        ci = self.config.ci
        status = await retry_async(
            lambda: self._find_status(repository, ref, sha, created_after),
            RetryPolicy(ci.status_attempts, ci.status_interval),
            description=f'CI status of "{ref}" on {module.name}',
            sleep=self._sleep,
        )

        match = _BUILD_ID_PATTERN.search(str(status.get("target_url") or ""))
        if match is None:
            raise CIError(f'Unknown status "target_url": "{status.get("target_url")}"')

        self.logger.info('%s Building "%s" on CI...', prefix, ref)
        return await self.await_build(module, ref, match.group(1))

    async def await_build(self, module: ReleaseModule, ref: str, build_id: str) -> str:
        prefix = module_prefix(module.name)
        ci = self.config.ci

        async def poll() -> str:
            try:
                build = await self.ci.build(build_id)
            except CIError as exc:
                self.logger.warning("%s (CI) Error: %s", prefix, exc)
                raise RetryPending(str(exc)) from exc

            if build.get("branch") != ref:
                raise CIError(f"Incorrect build selected (expected: {ref}, found: {build.get('branch')})")

            state = str(build.get("state"))
            self.logger.debug("%s (CI) State: %s", prefix, state)
            if state in PENDING_STATES:
                raise RetryPending(state)
            return state

        return await retry_async(
            poll,
            RetryPolicy(ci.build_attempts, ci.build_interval, ci.build_growth, ci.build_max_interval),
            description=f'Build "{build_id}"',
            sleep=self._sleep,
        )

    async def _find_status(
        self, repository: str, ref: str, sha: Optional[str], created_after: Optional[float]
    ) -> Dict[str, Any]:
        try:
            data = await self.ci.combined_status(self.config.owner, repository, ref)
        except CIError as exc:
            self.logger.warning("(CI) Status of %s#%s unavailable: %s", repository, ref, exc)
            raise RetryPending(str(exc)) from exc
        if sha is not None and data.get("sha") != sha:
            raise RetryPending(f"status sha {data.get('sha')} does not match {sha}")

        status = next(
            (item for item in data.get("statuses") or [] if item.get("context") == self.config.ci.status_context),
            None,
        )
        if status is None:
            raise RetryPending("no CI status reported")

        if created_after is not None and _timestamp(status.get("created_at")) < created_after:
            raise RetryPending("CI status predates the push")
        return status


    # ------------------------------------------------------------------
    # Helpers

    async def _release_tag(self, extension: ExtensionContext) -> str:
        try:
            tag = await self.git.describe_tag(extension.path, exact=True)
        except CommandError as exc:
            raise ReleaseError("No release available to push") from exc

        tag = (tag or "").strip()
        if not tag.startswith("v") or parse_version(tag) is None:
            raise ReleaseError(f"Unable to push release, {extension.name} has an invalid version tag: {tag}")
        return tag

    async def _tagged_modules(self, modules: Iterable[Module], tag: str) -> List[ReleaseModule]:
        releases: List[ReleaseModule] = []
        for module in modules:
            try:
                module_tag = await self.git.describe_tag(module.path, exact=True)
            except CommandError:
                self.logger.warning("%s No release available to push", module_prefix(module.name))
                continue
            if (module_tag or "").strip() != tag:
                continue

            commit = await self.git.revparse(module.path, f"{tag}~0")
            releases.append(
                ReleaseModule(
                    key=module.key,
                    type=module.type,
                    name=module.name,
                    path=Path(module.path),
                    commit=(commit or "").strip(),
                )
            )
        return releases

    async def _attempt(self, result: ReleaseResult, module: ReleaseModule, pending, ref: str) -> None:  # type: ignore[no-untyped-def]
        try:
            await pending
        except (ReleaseError, CIError, CommandError, RetryTimeoutError) as exc:
            self.logger.error("%s Unable to push %s: %s", module_prefix(module.name), ref, exc)
            result.modules[module.name] = FAILED

    def _remotes(self, remotes: Sequence[str] | str | None) -> List[str]:
        if remotes is None:
            return list(self.config.remotes)
        if isinstance(remotes, str):
            return [remotes]
        return list(remotes)

    def _repository(self, module: ReleaseModule) -> str:
        try:
            return self.config.repository_name(module.name)
        except ConfigError:
            return self.config.repository_prefix + module.key


def _timestamp(value: Any) -> float:
    if not value:
        return 0.0
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00")).timestamp()
    except ValueError as exc:
        raise CIError(f'Invalid status "created_at": "{value}"') from exc


__all__ = [
    "FAILED",
    "PASSED",
    "ReleaseError",
    "ReleaseModule",
    "ReleasePusher",
    "ReleaseResult",
]
