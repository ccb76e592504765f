"""Tests for repository scanning and normalization."""
import pytest
from unittest.mock import AsyncMock, Mock

from metacommit.exceptions import ScanError
from metacommit.models import FileStatus, SubmoduleRef
from metacommit.observers import EventSink
from metacommit.scanner import RepositoryScanner, normalize_status
from metacommit.services import RepositoryStatusService


@pytest.fixture
def status_service():
    service = Mock(spec=RepositoryStatusService)
    service.scan_all = AsyncMock(return_value=[])
    service.scan_one = AsyncMock()
    service.list_submodules = AsyncMock(return_value=[])
    return service


def _meta_record(**overrides):
    record = {
        "name": "root",
        "path": "/workspace",
        "branch": {"current": "main", "tracking": "origin/main", "ahead": 1, "behind": 0},
        "files": [
            {"path": "packages/a", "status": "M"},
            {"path": "README.md", "status": "modified", "staged": True},
        ],
        "staged_diff": "diff --git a/README.md b/README.md",
        "unstaged_diff": None,
        "is_submodule": False,
    }
    record.update(overrides)
    return record


@pytest.mark.parametrize("value,expected", [
    ("M", FileStatus.MODIFIED),
    ("A", FileStatus.ADDED),
    ("D", FileStatus.DELETED),
    ("R", FileStatus.RENAMED),
    ("??", FileStatus.UNTRACKED),
    ("untracked", FileStatus.UNTRACKED),
    ("Deleted", FileStatus.DELETED),
    ("X", FileStatus.MODIFIED),
    (FileStatus.ADDED, FileStatus.ADDED),
])
def test_normalize_status(value, expected):
    assert normalize_status(value) == expected


@pytest.mark.asyncio
async def test_scan_splits_submodule_pointer_bumps(status_service, config):
    status_service.scan_all.return_value = [
        _meta_record(),
        {"name": "packages/a", "path": "/workspace/packages/a",
         "files": [{"path": "src/index.ts", "status": "M"}]},
    ]
    status_service.list_submodules.return_value = [
        SubmoduleRef(name="a", path="/workspace/packages/a", relative_path="packages/a"),
    ]

    repos = await RepositoryScanner(status_service, config).scan()

    root, sub = repos
    assert root.repository.is_meta
    assert [c.path for c in root.changes] == ["README.md"]
    assert [c.path for c in root.hidden_submodule_changes] == ["packages/a"]
    assert root.statistics.total_files == 1
    assert root.statistics.hidden_submodule_changes == 1
    assert root.repository.ahead_count == 1
    assert root.repository.tracking_branch == "origin/main"
    assert root.diff.unstaged == ""

    assert sub.repository.is_submodule
    assert sub.has_changes


@pytest.mark.asyncio
async def test_scan_normalizes_missing_fields(status_service, config):
    status_service.scan_all.return_value = [{"path": "/workspace/packages/bare"}]

    repo, = await RepositoryScanner(status_service, config).scan()

    assert repo.name == "bare"
    assert repo.repository.branch_name == "unknown"
    assert repo.repository.ahead_count == 0
    assert repo.changes == []
    assert repo.diff.staged == "" and repo.diff.unstaged == ""
    assert repo.recent_commits == []
    assert not repo.has_changes


@pytest.mark.asyncio
async def test_scan_flat_branch_fields_and_recent_commits(status_service, config):
    status_service.scan_all.return_value = [{
        "name": "lib",
        "path": "/workspace/packages/lib",
        "branch": "develop",
        "ahead": "2",
        "behind": None,
        "recent_commits": [{"hash": str(i), "message": f"subject {i}\n\nbody"} for i in range(8)],
    }]

    repo, = await RepositoryScanner(status_service, config).scan()

    assert repo.repository.branch_name == "develop"
    assert repo.repository.ahead_count == 2
    assert repo.repository.behind_count == 0
    assert len(repo.recent_commits) == 5
    assert repo.recent_commits[0].message == "subject 0"


@pytest.mark.asyncio
async def test_scan_drops_duplicate_paths(status_service, config):
    status_service.scan_all.return_value = [
        {"name": "a", "path": "/workspace/packages/a"},
        {"name": "a-again", "path": "/workspace/packages/a"},
    ]
    sink = EventSink()

    repos = await RepositoryScanner(status_service, config, sink=sink).scan()

    assert [r.name for r in repos] == ["a"]
    assert any("duplicate" in e.message for e in sink.entries)


@pytest.mark.asyncio
async def test_scan_wraps_service_failure(status_service, config):
    status_service.scan_all.side_effect = ConnectionError("connection refused")

    with pytest.raises(ScanError) as exc_info:
        await RepositoryScanner(status_service, config).scan()

    assert isinstance(exc_info.value.__cause__, ConnectionError)


@pytest.mark.asyncio
async def test_scan_keeps_per_repository_errors(status_service, config):
    status_service.scan_all.return_value = [
        {"name": "broken", "path": "/workspace/packages/broken", "error": "Submodule is not initialized"},
    ]

    repo, = await RepositoryScanner(status_service, config).scan()

    assert repo.error == "Submodule is not initialized"


@pytest.mark.asyncio
async def test_scan_falls_back_to_configured_prefixes(status_service, config):
    status_service.list_submodules.side_effect = RuntimeError("no .gitmodules")
    status_service.scan_all.return_value = [_meta_record()]

    root, = await RepositoryScanner(status_service, config).scan()

    assert [c.path for c in root.hidden_submodule_changes] == ["packages/a"]


@pytest.mark.asyncio
async def test_scan_reports_progress(status_service, config):
    status_service.scan_all.return_value = [
        {"name": "a", "path": "/workspace/packages/a"},
        {"name": "b", "path": "/workspace/packages/b"},
    ]
    progress = []
    sink = EventSink()
    sink.progress = AsyncMock(side_effect=progress.append)

    await RepositoryScanner(status_service, config, sink=sink).scan()

    assert [(p.stage, p.current, p.total) for p in progress] == [("scanning", 1, 2), ("scanning", 2, 2)]


@pytest.mark.asyncio
async def test_scan_one(status_service, config):
    status_service.scan_one.return_value = {"name": "a", "path": "/workspace/packages/a",
                                            "files": [{"path": "x.py", "status": "??"}]}

    repo = await RepositoryScanner(status_service, config).scan_one("/workspace/packages/a")

    assert repo.statistics.additions == 1
    status_service.scan_one.assert_awaited_once_with("/workspace/packages/a")
