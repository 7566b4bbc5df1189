"""CLI parser behaviour tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from extbuild import cli
from extbuild.cli import _build_parser
from extbuild.release import ReleaseResult


def test_cli_accepts_verbose_before_command() -> None:
    parser = _build_parser()
    args = parser.parse_args(["--verbose", "install", "develop"])
    assert args.verbose is True
    assert args.command == "install"
    assert args.branch == "develop"


def test_cli_accepts_verbose_after_command() -> None:
    parser = _build_parser()
    args = parser.parse_args(["build", "--verbose"])
    assert args.verbose is True
    assert args.command == "build"
    assert args.task == "build"


def test_cli_install_options() -> None:
    parser = _build_parser()
    args = parser.parse_args(["install", "v1.2.3", "--reuse", "--target", "pkg"])
    assert args.reuse is True
    assert args.target == "pkg"


def test_cli_release_push_options() -> None:
    parser = _build_parser()
    args = parser.parse_args(["release", "push", "--dry-run", "--remote", "origin"])
    assert args.command == "release"
    assert args.release_command == "push"
    assert args.dry_run is True
    assert args.remote == ["origin"]


def test_cli_release_push_defaults_to_all_remotes() -> None:
    parser = _build_parser()
    args = parser.parse_args(["release", "push"])
    assert args.remote is None
    assert args.dry_run is False


def test_cli_build_task_choices() -> None:
    parser = _build_parser()
    args = parser.parse_args(["build", "module:validate", "--browser", "firefox", "--environment", "production"])
    assert args.task == "module:validate"
    assert args.browser == "firefox"
    assert args.environment == "production"
    with pytest.raises(SystemExit):
        parser.parse_args(["build", "deploy"])


def test_main_exits_with_status_one_on_failure(monkeypatch, tmp_path: Path) -> None:  # type: ignore[no-untyped-def]
    monkeypatch.setattr(cli, "configure_logging", lambda **kwargs: None)

    with pytest.raises(SystemExit) as excinfo:
        cli.main(["install", "develop", "--target", str(tmp_path)])

    assert excinfo.value.code == 1


def test_main_exits_when_release_fails(monkeypatch, capsys) -> None:  # type: ignore[no-untyped-def]
    monkeypatch.setattr(cli, "configure_logging", lambda **kwargs: None)

    async def fake_release(args):  # type: ignore[no-untyped-def]
        return ReleaseResult(tag="v1.0.0", modules={"@radon-extension/core": "failed"})

    monkeypatch.setattr(cli, "_release_push", fake_release)

    with pytest.raises(SystemExit) as excinfo:
        cli.main(["release", "push"])

    assert excinfo.value.code == 1
    assert "@radon-extension/core" in capsys.readouterr().err


def test_main_reports_pushed_release(monkeypatch, capsys) -> None:  # type: ignore[no-untyped-def]
    monkeypatch.setattr(cli, "configure_logging", lambda **kwargs: None)

    async def fake_release(args):  # type: ignore[no-untyped-def]
        return ReleaseResult(tag="v1.0.0", modules={"@radon-extension/core": "passed"})

    monkeypatch.setattr(cli, "_release_push", fake_release)

    cli.main(["release", "push", "--dry-run"])

    assert "Release v1.0.0 pushed (1 module(s))" in capsys.readouterr().out
