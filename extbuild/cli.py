"""CLI entrypoints for extbuild commands."""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

from .ci.client import CIClient
from .config import load_config
from .context import BuildContext
from .extension import DEFAULT_BROWSER, DEFAULT_ENVIRONMENT, create_browser, create_environment, load_extension
from .git.repository import Git
from .install import InstallOrchestrator
from .logging import configure_logging, get_logger
from .modules.graph import resolve_all
from .modules.resolver import ModuleResolver
from .npm import Npm
from .release import ReleasePusher, ReleaseResult
from .tasks import DEFAULT_TASK, TaskRun, run_task, task_names


def _add_verbose_option(
    parser: argparse.ArgumentParser, *, suppress_default: bool = False
) -> None:
    kwargs: dict[str, object] = {
        "action": "store_true",
        "help": "Increase log verbosity for troubleshooting.",
    }
    if suppress_default:
        kwargs["default"] = argparse.SUPPRESS
    else:
        kwargs["default"] = False
    parser.add_argument(
        "-v",
        "--verbose",
        **kwargs,
    )


def _add_target_option(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--target",
        default=".",
        help="Target package (defaults to current directory).",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="extbuild",
        description="Build, link and release modular browser extensions.",
    )
    _add_verbose_option(parser)
    parser.add_argument(
        "--log-file",
        type=Path,
        default=None,
        help="Also write detailed logs to this file.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    install_parser = subparsers.add_parser(
        "install",
        help="Clone, link and install the modules of a package.",
    )
    _add_verbose_option(install_parser, suppress_default=True)
    install_parser.add_argument("branch", help="Branch or release tag to install modules from.")
    install_parser.add_argument(
        "--reuse",
        action="store_true",
        help="Re-use existing module clones.",
    )
    _add_target_option(install_parser)

    release_parser = subparsers.add_parser(
        "release",
        help="Release management commands.",
    )
    _add_verbose_option(release_parser, suppress_default=True)
    release_subparsers = release_parser.add_subparsers(dest="release_command", required=True)
    push_parser = release_subparsers.add_parser(
        "push",
        help="Push the current release to the remote(s).",
    )
    _add_verbose_option(push_parser, suppress_default=True)
    push_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Don't push or poll anything.",
    )
    push_parser.add_argument(
        "--remote",
        action="append",
        default=None,
        help="Remote to push to (repeatable, defaults to all configured remotes).",
    )
    _add_target_option(push_parser)

    build_parser = subparsers.add_parser(
        "build",
        help="Run a build task and its prerequisites.",
    )
    _add_verbose_option(build_parser, suppress_default=True)
    build_parser.add_argument(
        "task",
        nargs="?",
        default=DEFAULT_TASK,
        choices=list(task_names()),
        help=f"Task to run (defaults to {DEFAULT_TASK}).",
    )
    build_parser.add_argument("--browser", default=DEFAULT_BROWSER, help="Browser to build for.")
    build_parser.add_argument("--environment", default=DEFAULT_ENVIRONMENT, help="Build environment.")
    _add_target_option(build_parser)

    return parser


async def _install(args: argparse.Namespace) -> None:
    target = Path(args.target).resolve()
    context = BuildContext(config=load_config(target))
    orchestrator = InstallOrchestrator(context, Git(), Npm())
    await orchestrator.install(target, args.branch, reuse=bool(args.reuse))


async def _release_push(args: argparse.Namespace) -> ReleaseResult:
    target = Path(args.target).resolve()
    config = load_config(target)
    context = BuildContext(config=config)
    git = Git()

    extension = await load_extension(target, git)
    browser = create_browser(extension)
    browser.modules = await resolve_all(ModuleResolver(context, git), target, browser, extension)

    async with CIClient(config.ci) as ci:
        pusher = ReleasePusher(git, ci, config, dry_run=bool(args.dry_run))
        return await pusher.push_release(extension, browser.modules.values(), args.remote)


async def _build(args: argparse.Namespace) -> None:
    target = Path(args.target).resolve()
    context = BuildContext(config=load_config(target))
    git = Git()

    extension = await load_extension(target, git)
    browser = create_browser(extension, args.browser)
    environment = create_environment(extension, browser, args.environment)
    await run_task(args.task, TaskRun(context=context, browser=browser, environment=environment, git=git))


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint for extbuild commands."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    configure_logging(verbose=bool(args.verbose), log_file=args.log_file)
    logger = get_logger("cli")

    try:
        if args.command == "install":
            asyncio.run(_install(args))
        elif args.command == "release":
            result = asyncio.run(_release_push(args))
            if not result.passed:
                parser.exit(1, f"extbuild release failed for: {', '.join(result.failed)}\n")
            print(f"Release {result.tag} pushed ({len(result.modules)} module(s))")
        elif args.command == "build":
            asyncio.run(_build(args))
        else:  # pragma: no cover - argparse enforces choices
            parser.exit(1, "Unknown command\n")
    except (RuntimeError, TimeoutError, ValueError, OSError) as exc:
        logger.debug("Command failed", exc_info=True)
        parser.exit(1, f"extbuild {args.command} failed: {exc}\nRun with --verbose for more details.\n")


if __name__ == "__main__":
    main(sys.argv[1:])
