from pathlib import Path
from unittest.mock import Mock, patch

import pytest
from git import Repo

from metacommit.config import Config
from metacommit.core import GitCommitter, GitStatusService, _truncate, parse_porcelain
from metacommit.exceptions import ScanError
from metacommit.scanner import RepositoryScanner


def test_parse_porcelain():
    output = "\n".join([
        " M src/app.py",
        "M  staged.py",
        "A  new.py",
        " D gone.py",
        "R  old.py -> renamed.py",
        "?? scratch.txt",
        " m packages/a",
        '?? "with space.txt"',
    ])

    files = parse_porcelain(output)

    assert files == [
        {"path": "src/app.py", "status": "M", "staged": False},
        {"path": "staged.py", "status": "M", "staged": True},
        {"path": "new.py", "status": "A", "staged": True},
        {"path": "gone.py", "status": "D", "staged": False},
        {"path": "renamed.py", "status": "R", "staged": True},
        {"path": "scratch.txt", "status": "??", "staged": False},
        {"path": "packages/a", "status": "M", "staged": False},
        {"path": "with space.txt", "status": "??", "staged": False},
    ]


def test_parse_porcelain_ignores_short_lines():
    assert parse_porcelain("\n??\n") == []


def test_truncate():
    assert _truncate("abc", limit=5) == "abc"
    assert _truncate("abcdefgh", limit=5) == "abcde\n... [diff truncated]"


@pytest.mark.asyncio
async def test_scan_all_reports_meta_repository(temp_git_repo):
    (Path(temp_git_repo) / "test.txt").write_text("Modified content")
    (Path(temp_git_repo) / "notes.md").write_text("# Notes\n")
    config = Config(workspace_root=temp_git_repo, meta_repository_name="root")

    records = await GitStatusService(config).scan_all()

    record, = records
    assert record["name"] == "root"
    assert record["path"] == str(Path(temp_git_repo).resolve())
    assert record["is_submodule"] is False
    assert {"path": "test.txt", "status": "M", "staged": False} in record["files"]
    assert {"path": "notes.md", "status": "??", "staged": False} in record["files"]
    assert "Modified content" in record["unstaged_diff"]
    assert record["staged_diff"] == ""
    assert record["recent_commits"][0]["message"] == "Initial commit"
    assert record["branch"]["ahead"] == 0


@pytest.mark.asyncio
async def test_scan_all_feeds_the_scanner(temp_git_repo):
    (Path(temp_git_repo) / "test.txt").write_text("Modified content")
    config = Config(workspace_root=temp_git_repo, meta_repository_name="root")
    service = GitStatusService(config)

    repo, = await RepositoryScanner(service, config).scan()

    assert repo.repository.is_meta
    assert repo.statistics.modifications == 1
    assert repo.recent_commits[0].message == "Initial commit"


@pytest.mark.asyncio
async def test_scan_all_requires_git_repository(tmp_path):
    with pytest.raises(ScanError):
        await GitStatusService(Config(workspace_root=str(tmp_path))).scan_all()


@pytest.mark.asyncio
async def test_scan_all_reports_uninitialized_submodule(temp_git_repo):
    config = Config(workspace_root=temp_git_repo, meta_repository_name="root")
    service = GitStatusService(config)
    submodule = Mock()
    submodule.module_exists.return_value = False

    with patch.object(GitStatusService, "_iter_submodules", return_value=iter([("packages/a", submodule)])):
        records = await service.scan_all()

    assert records[1]["name"] == "packages/a"
    assert records[1]["is_submodule"] is True
    assert records[1]["error"] == "Submodule is not initialized"


@pytest.mark.asyncio
async def test_scan_one_names_meta_repository(temp_git_repo):
    config = Config(workspace_root=temp_git_repo, meta_repository_name="root")

    record = await GitStatusService(config).scan_one(temp_git_repo)

    assert record["name"] == "root"
    assert record["files"] == []


@pytest.mark.asyncio
async def test_list_submodules_empty(temp_git_repo):
    config = Config(workspace_root=temp_git_repo)
    assert await GitStatusService(config).list_submodules() == []


@pytest.mark.asyncio
async def test_committer_commit_and_hash(temp_git_repo):
    committer = GitCommitter(Config(workspace_root=temp_git_repo))
    before = await committer.latest_commit_hash(temp_git_repo)
    (Path(temp_git_repo) / "test.txt").write_text("Modified content")

    outcome = await committer.commit(temp_git_repo, "fix: update test content")

    assert outcome.success
    after = await committer.latest_commit_hash(temp_git_repo)
    assert after == outcome.hash != before


@pytest.mark.asyncio
async def test_committer_latest_hash_unborn(tmp_path):
    Repo.init(tmp_path)
    assert await GitCommitter().latest_commit_hash(str(tmp_path)) is None


@pytest.mark.asyncio
async def test_committer_push(temp_git_repo_with_remote):
    committer = GitCommitter(Config(workspace_root=temp_git_repo_with_remote, remote_name="origin"))

    outcome = await committer.push(temp_git_repo_with_remote)

    assert outcome.success
    repo = Repo(temp_git_repo_with_remote)
    assert repo.active_branch.tracking_branch() is not None


@pytest.mark.asyncio
async def test_committer_push_unknown_remote(temp_git_repo_with_remote):
    committer = GitCommitter(Config(workspace_root=temp_git_repo_with_remote, remote_name="upstream"))

    outcome = await committer.push(temp_git_repo_with_remote)

    assert not outcome.success


@pytest.mark.asyncio
async def test_committer_is_clean(temp_git_repo):
    committer = GitCommitter(Config(workspace_root=temp_git_repo))
    assert await committer.is_clean(temp_git_repo)

    (Path(temp_git_repo) / "scratch.txt").write_text("untracked")
    assert not await committer.is_clean(temp_git_repo)

    await committer.commit(temp_git_repo, "chore: add scratch file")
    assert await committer.is_clean(temp_git_repo)
