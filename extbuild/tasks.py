"""Named build tasks with declared prerequisites."""

from __future__ import annotations

import json
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from .build import ExtensionBuilder
from .bundler import Bundler
from .context import BuildContext
from .deploy import DeployError, write_descriptor
from .git.repository import Git
from .locales import build_locales
from .logging import get_logger
from .models import BrowserContext, Environment
from .modules.graph import resolve_all
from .modules.resolver import ModuleResolver

CONTRIBUTORS_FILENAME = "contributors.json"

TaskAction = Callable[["TaskRun"], Awaitable[Any]]


class TaskError(RuntimeError):
    """Raised for unknown tasks, prerequisite cycles and failed task checks."""


@dataclass(frozen=True)
class Task:
    name: str
    description: str
    action: TaskAction
    required: Tuple[str, ...] = ()


@dataclass
class TaskRun:
    """State shared by the tasks of one pipeline invocation."""

    context: BuildContext
    browser: BrowserContext
    environment: Environment
    git: Git = field(default_factory=Git)
    bundler: Optional[Bundler] = None
    results: Dict[str, Any] = field(default_factory=dict)


async def clean(run: TaskRun) -> Path:
    output = Path(run.environment.output_path)
    if output.exists():
        get_logger("tasks").info('Removing "%s"...', output)
        shutil.rmtree(output)
    return output


async def validate_modules(run: TaskRun) -> List[str]:
    """Resolve the module graph and fail when any module reported an error."""
    resolver = ModuleResolver(run.context, run.git)
    run.browser.modules = await resolve_all(
        resolver, run.browser.package_path, run.browser, run.browser.extension
    )
    if run.context.has_errors:
        raise TaskError(f"{len(run.context.errors)} module error(s) reported")
    return list(run.browser.modules)


async def locales(run: TaskRun) -> List[Path]:
    return await build_locales(run.browser, run.environment)


async def extension(run: TaskRun) -> Any:
    builder = ExtensionBuilder(run.context, run.browser, run.environment, bundler=run.bundler)
    return await builder.build()


async def build_all(run: TaskRun) -> Dict[str, Any]:
    return {name: run.results.get(name) for name in ("build:locales", "build:extension")}


async def deploy_bintray(run: TaskRun) -> Path:
    try:
        return write_descriptor(run.context.config, run.browser, run.environment)
    except DeployError as exc:
        raise TaskError(str(exc)) from exc


async def contributors(run: TaskRun) -> Path:
    """Write ``contributors.json`` for the extension package from its git history."""
    entries = await run.git.contributors(run.browser.package_path)
    path = Path(run.browser.package_path) / CONTRIBUTORS_FILENAME
    path.write_text(json.dumps(entries, indent=2) + "\n", encoding="utf-8")
    get_logger("tasks").info('Wrote %d contributor(s) to "%s"', len(entries), path)
    return path


TASKS: Dict[str, Task] = {
    task.name: task
    for task in (
        Task("clean", "Remove the build output.", clean),
        Task("module:validate", "Resolve and validate extension modules.", validate_modules),
        Task("build:locales", "Build extension locales.", locales, ("clean", "module:validate")),
        Task("build:extension", "Build extension modules.", extension, ("clean", "module:validate")),
        Task("build", "Build the extension and its locales.", build_all, ("build:locales", "build:extension")),
        Task("deploy:bintray", "Create the bintray descriptor for the built extension.", deploy_bintray, ("build",)),
        Task("contributors", "Write contributors.json from the git history.", contributors),
    )
}

DEFAULT_TASK = "build"


def plan(name: str, tasks: Dict[str, Task] | None = None) -> List[Task]:
    """Return ``name`` and its prerequisites in execution order, each once."""
    tasks = TASKS if tasks is None else tasks
    ordered: List[Task] = []
    visiting: List[str] = []

    def visit(current: str) -> None:
        if any(task.name == current for task in ordered):
            return
        if current in visiting:
            raise TaskError(f"Circular task prerequisites: {' -> '.join(visiting + [current])}")
        task = tasks.get(current)
        if task is None:
            raise TaskError(f"Unknown task: {current}")
        visiting.append(current)
        for required in task.required:
            visit(required)
        visiting.pop()
        ordered.append(task)

    visit(name)
    return ordered


async def run_task(name: str, run: TaskRun, tasks: Dict[str, Task] | None = None) -> Any:
    """Run ``name`` after its prerequisites; return the task's result."""
    logger = get_logger("tasks")
    for task in plan(name, tasks):
        logger.info("Running %s...", task.name)
        run.results[task.name] = await task.action(run)
    return run.results[name]


def task_names(tasks: Dict[str, Task] | None = None) -> Sequence[str]:
    return sorted(TASKS if tasks is None else tasks)


__all__ = [
    "DEFAULT_TASK",
    "TASKS",
    "Task",
    "TaskError",
    "TaskRun",
    "plan",
    "run_task",
    "task_names",
]
