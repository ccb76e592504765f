import asyncio

import pytest
from unittest.mock import AsyncMock, Mock

from metacommit.exceptions import ScanError
from metacommit.models import STAGE_ORDER, ReviewState, SubmoduleRef
from metacommit.orchestrator import ReviewOrchestrator, ReviewSession
from metacommit.services import RepositoryStatusService

from conftest import FakeCommitter, FakeGenerationService


def _records(ahead=0):
    return [
        {
            "name": "root",
            "path": "/workspace",
            "branch": {"current": "main", "ahead": ahead},
            "files": [{"path": "packages/a", "status": "M"}],
            "is_submodule": False,
        },
        {
            "name": "packages/a",
            "path": "/workspace/packages/a",
            "branch": {"current": "main", "ahead": ahead},
            "files": [{"path": "src/index.ts", "status": "M"}],
            "unstaged_diff": "@@ -1 +1 @@\n-old\n+new",
            "is_submodule": True,
        },
        {
            "name": "packages/b",
            "path": "/workspace/packages/b",
            "branch": {"current": "main"},
            "is_submodule": True,
        },
    ]


@pytest.fixture
def status_service():
    service = Mock(spec=RepositoryStatusService)
    service.scan_all = AsyncMock(return_value=_records())
    service.scan_one = AsyncMock()
    service.list_submodules = AsyncMock(return_value=[
        SubmoduleRef(name="a", path="/workspace/packages/a", relative_path="packages/a"),
        SubmoduleRef(name="b", path="/workspace/packages/b", relative_path="packages/b"),
    ])
    return service


@pytest.fixture
def committer():
    return FakeCommitter()


@pytest.fixture
def orchestrator(config, status_service, committer):
    return ReviewOrchestrator.create(config, status_service, committer, FakeGenerationService())


def test_session_transitions():
    session = ReviewSession()
    session.advance(ReviewState.SCANNING)
    session.advance(ReviewState.ERROR)
    with pytest.raises(ValueError):
        session.advance(ReviewState.COMPLETE)


@pytest.mark.asyncio
async def test_review_produces_report(orchestrator):
    report = await orchestrator.perform_comprehensive_review()

    root = report.find("root")
    sub = report.find("packages/a")
    assert not root.has_changes
    assert [c.path for c in root.hidden_submodule_changes] == ["packages/a"]
    assert sub.generated_commit_message == "feat(packages/a): update 1 files"
    assert report.find("packages/b").generated_commit_message is None
    assert report.aggregate_statistics.affected_packages == ["packages/a"]
    assert report.executive_summary.startswith("## Executive Summary")
    assert orchestrator.report is report
    assert not orchestrator.review_in_progress


@pytest.mark.asyncio
async def test_progress_stages_never_go_backwards(orchestrator):
    stages = []
    entries = []

    await orchestrator.perform_comprehensive_review(
        on_progress=lambda p: stages.append(p.stage),
        on_log=entries.append,
    )

    assert stages[0] == "scanning"
    assert stages[-1] == "complete"
    ranks = [STAGE_ORDER[s] for s in stages]
    assert ranks == sorted(ranks)
    assert {"analyzing", "generating", "summarizing"} <= set(stages)
    assert entries
    # callbacks are detached once the review finishes
    assert len(orchestrator.sink.observers) == 0


@pytest.mark.asyncio
async def test_async_callbacks_are_awaited(orchestrator):
    stages = []

    async def on_progress(progress):
        stages.append(progress.stage)

    await orchestrator.perform_comprehensive_review(on_progress=on_progress)

    assert stages[-1] == "complete"


@pytest.mark.asyncio
async def test_overlapping_review_is_rejected(orchestrator, status_service):
    started = asyncio.Event()
    release = asyncio.Event()

    async def blocked_scan():
        started.set()
        await release.wait()
        return _records()

    status_service.scan_all.side_effect = blocked_scan

    first = asyncio.create_task(orchestrator.perform_comprehensive_review())
    await started.wait()
    assert orchestrator.review_in_progress

    second = await orchestrator.perform_comprehensive_review()
    release.set()
    report = await first

    assert second.repositories == []
    assert len(report.repositories) == 3
    assert status_service.scan_all.await_count == 1
    assert any("already in progress" in e.message for e in orchestrator.sink.entries)


@pytest.mark.asyncio
async def test_scan_failure_enters_error_state(orchestrator, status_service):
    status_service.scan_all.side_effect = ConnectionError("status service down")
    progress = []

    with pytest.raises(ScanError):
        await orchestrator.perform_comprehensive_review(on_progress=progress.append)

    assert [p.stage for p in progress] == ["scanning", "error"]
    assert "status service down" in progress[-1].error
    assert not orchestrator.review_in_progress
    assert orchestrator.report is None

    # a later review can run again
    status_service.scan_all.side_effect = None
    report = await orchestrator.perform_comprehensive_review()
    assert len(report.repositories) == 3


@pytest.mark.asyncio
async def test_commit_all_requires_review(orchestrator):
    with pytest.raises(ValueError):
        await orchestrator.commit_all()


@pytest.mark.asyncio
async def test_commit_all_after_review(orchestrator, committer):
    await orchestrator.perform_comprehensive_review()

    result = await orchestrator.commit_all(push=True)

    assert result.success
    assert committer.calls == [
        ("commit", "/workspace/packages/a", "feat(packages/a): update 1 files"),
        ("commit", "/workspace", "chore: update submodules (packages/a)"),
        ("push", "/workspace/packages/a"),
        ("push", "/workspace"),
    ]


def test_update_commit_message_requires_review(orchestrator):
    with pytest.raises(ValueError):
        orchestrator.update_commit_message("packages/a", "fix: better message")


@pytest.mark.asyncio
async def test_update_commit_message(orchestrator, committer):
    original = await orchestrator.perform_comprehensive_review()

    updated = orchestrator.update_commit_message("packages/a", "fix(a): better message")

    assert updated.find("packages/a").generated_commit_message == "fix(a): better message"
    assert original.find("packages/a").generated_commit_message == "feat(packages/a): update 1 files"
    with pytest.raises(ValueError):
        orchestrator.update_commit_message("missing", "fix: nothing")

    await orchestrator.commit_all()
    assert ("commit", "/workspace/packages/a", "fix(a): better message") in committer.calls


@pytest.mark.asyncio
async def test_commit_repository_uses_report_name(orchestrator, committer):
    await orchestrator.perform_comprehensive_review()

    assert await orchestrator.commit_repository("/workspace/packages/a", "fix: a")

    assert committer.calls == [("commit", "/workspace/packages/a", "fix: a")]


@pytest.mark.asyncio
async def test_push_all_rescans(orchestrator, status_service, committer):
    status_service.scan_all.return_value = _records(ahead=1)

    results = await orchestrator.push_all()

    assert [r.repository_name for r in results] == ["packages/a", "root"]
    assert status_service.scan_all.await_count == 1
    assert [c[0] for c in committer.calls] == ["push", "push"]


@pytest.mark.asyncio
async def test_reset_review_state(orchestrator):
    await orchestrator.perform_comprehensive_review()
    orchestrator.session = ReviewSession()

    orchestrator.reset_review_state()

    assert not orchestrator.review_in_progress
    assert orchestrator.sink.entries == []
    assert orchestrator.report is not None
