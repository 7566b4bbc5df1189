"""Tests for the git adapter."""

from __future__ import annotations

from pathlib import Path

from extbuild.git.repository import Commit, Git
from extbuild.models import RepositoryStatus
from tests._fixtures.runners import RecordingRunner

DESCRIBE_EXACT = "git describe --abbrev=0 --match=v* --tags --exact-match"
DESCRIBE_LATEST = "git describe --abbrev=0 --match=v* --tags"


async def test_status_without_repository_is_unknown(tmp_path: Path) -> None:
    runner = RecordingRunner()

    status = await Git(runner=runner).status(tmp_path)

    assert status == RepositoryStatus.unknown()
    assert runner.calls == []


async def test_status_collects_fields(tmp_path: Path) -> None:
    (tmp_path / ".git").mkdir()
    runner = RecordingRunner(
        responses={
            DESCRIBE_LATEST: "v1.2.0\n",
            "git log --pretty=format:%H%x1f%an%x1f%ae%x1f%s v1.2.0..HEAD": "a\x1fA\x1fa@x\x1fone\nb\x1fB\x1fb@x\x1ftwo\n",
            "git rev-parse HEAD": "abcdef1234\n",
            "git rev-parse --abbrev-ref HEAD": "develop\n",
            "git status --porcelain": " M package.json\n",
        },
        failures=[DESCRIBE_EXACT],
    )

    status = await Git(runner=runner).status(tmp_path)

    assert status == RepositoryStatus(
        branch="develop", commit="abcdef1234", tag=None, latest_tag="v1.2.0", ahead=2, dirty=True
    )


async def test_status_degrades_failed_fields(tmp_path: Path) -> None:
    (tmp_path / ".git").mkdir()
    runner = RecordingRunner(
        responses={"git rev-parse HEAD": "abcdef1234\n"},
        failures=[
            DESCRIBE_EXACT,
            DESCRIBE_LATEST,
            "git log --pretty=format:%H%x1f%an%x1f%ae%x1f%s HEAD",
            "git rev-parse --abbrev-ref HEAD",
        ],
    )

    status = await Git(runner=runner).status(tmp_path)

    assert status.commit == "abcdef1234"
    assert status.latest_tag is None
    assert status.ahead == 0
    assert status.branch is None
    assert status.dirty is False
    assert status.is_consistent


async def test_remote_branch_exists(tmp_path: Path) -> None:
    url = "https://github.com/RadonApp/radon-extension-core.git"
    runner = RecordingRunner(
        responses={f"git ls-remote {url} refs/heads/develop refs/tags/develop": "abc\trefs/heads/develop\n"},
        failures=[f"git ls-remote {url} refs/heads/v1.2 refs/tags/v1.2"],
    )
    git = Git(runner=runner)

    assert await git.remote_branch_exists(url, "develop", cwd=tmp_path) is True
    assert await git.remote_branch_exists(url, "feature", cwd=tmp_path) is False
    assert await git.remote_branch_exists(url, "v1.2", cwd=tmp_path) is False


async def test_clone_and_push_commands(tmp_path: Path) -> None:
    runner = RecordingRunner()
    git = Git(runner=runner)

    await git.clone(tmp_path / ".modules", "https://x/repo.git", tmp_path / ".modules" / "repo", branch="develop")
    await git.push(tmp_path, "origin", "+v1.0.0~0:refs/heads/master")

    assert runner.calls[0][0] == ["git", "clone", "-b", "develop", "https://x/repo.git", str(tmp_path / ".modules" / "repo")]
    assert runner.calls[0][1] == tmp_path / ".modules"
    assert runner.calls[1][0] == ["git", "push", "origin", "+v1.0.0~0:refs/heads/master"]


async def test_log_and_contributors(tmp_path: Path) -> None:
    output = "1\x1fAda\x1fada@x\x1fone\n2\x1fBob\x1fbob@x\x1ftwo\n3\x1fBob\x1fbob@x\x1fthree\nbroken line\n"
    runner = RecordingRunner(responses={"git log --pretty=format:%H%x1f%an%x1f%ae%x1f%s HEAD": output})
    git = Git(runner=runner)

    commits = await git.log(tmp_path)
    contributors = await git.contributors(tmp_path)

    assert commits[0] == Commit("1", "Ada", "ada@x", "one")
    assert len(commits) == 3
    assert contributors == [
        {"name": "Ada", "email": "ada@x", "commits": 1},
        {"name": "Bob", "email": "bob@x", "commits": 2},
    ]


async def test_describe_tag_with_ref(tmp_path: Path) -> None:
    runner = RecordingRunner(responses={f"{DESCRIBE_LATEST} v1.2.0~1": "v1.1.0\n"})

    assert await Git(runner=runner).describe_tag(tmp_path, exact=False, ref="v1.2.0~1") == "v1.1.0"
