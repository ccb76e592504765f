import os
import pytest
import tempfile
from pathlib import Path
from typing import Dict, List, Optional
from git import Repo

from metacommit.config import Config
from metacommit.models import (
    CommitMessageBatchResult,
    CommitOutcome,
    DiffText,
    ExecutiveSummaryResult,
    FileChange,
    FileStatus,
    GeneratedCommitMessage,
    PushOutcome,
    Repository,
    RepositoryChangeData,
)
from metacommit.analyzer import ChangeAnalyzer
from metacommit.services import CommitMutationService, GenerationService

pytest_plugins = ('pytest_asyncio',)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep METACOMMIT_* variables of the host out of the tests."""
    for key in list(os.environ):
        if key.startswith("METACOMMIT_"):
            monkeypatch.delenv(key)


class FakeCommitter(CommitMutationService):
    """In-memory committer: every successful commit moves HEAD to a new hash."""

    def __init__(self, fail_commit=(), fail_push=(), stale=(), dirty=(), flaky=None):
        self.fail_commit = set(fail_commit)
        self.fail_push = set(fail_push)
        self.stale = set(stale)
        # paths that keep uncommitted changes after a commit
        self.dirty = set(dirty)
        # path -> number of commit attempts that fail before one succeeds
        self.flaky = dict(flaky or {})
        self.heads: Dict[str, str] = {}
        self.calls: List[tuple] = []

    async def latest_commit_hash(self, path: str) -> Optional[str]:
        return self.heads.setdefault(path, f"{path}@0")

    async def commit(self, path: str, message: str) -> CommitOutcome:
        self.calls.append(("commit", path, message))
        previous = await self.latest_commit_hash(path)
        if path in self.fail_commit:
            return CommitOutcome(success=False, error=f"pre-commit hook failed in {path}")
        if self.flaky.get(path, 0) > 0:
            self.flaky[path] -= 1
            return CommitOutcome(success=False, error=f"index.lock exists in {path}")
        if path in self.stale:
            return CommitOutcome(success=True, hash=previous)
        count = int(previous.rsplit("@", 1)[1]) + 1
        self.heads[path] = f"{path}@{count}"
        return CommitOutcome(success=True, hash=self.heads[path])

    async def push(self, path: str) -> PushOutcome:
        self.calls.append(("push", path))
        if path in self.fail_push:
            return PushOutcome(success=False, error="rejected")
        return PushOutcome(success=True, branch="main")

    async def is_clean(self, path: str) -> bool:
        return path not in self.dirty


class FakeGenerationService(GenerationService):
    """Records batches and answers with a message per repository."""

    def __init__(self, fail=False, summary="## Executive Summary\n\nAll good.", fail_summary=False):
        self.fail = fail
        self.fail_summary = fail_summary
        self.summary = summary
        self.batches = []
        self.summary_inputs = []

    async def generate_commit_messages(self, batch):
        self.batches.append(batch)
        if self.fail:
            raise ConnectionError("generation service unavailable")
        return CommitMessageBatchResult(results=[
            GeneratedCommitMessage(
                repository_name=repo.name,
                repository_path=repo.path,
                message=f"feat({repo.name}): update {len(repo.files_changed)} files",
            )
            for repo in batch.repositories
        ])

    async def generate_executive_summary(self, summary_input):
        self.summary_inputs.append(summary_input)
        if self.fail_summary:
            raise ConnectionError("summary service unavailable")
        return ExecutiveSummaryResult(success=True, summary=self.summary)


def build_repo(
    name: str,
    files=(),
    *,
    path: Optional[str] = None,
    is_meta: bool = False,
    is_submodule: Optional[bool] = None,
    hidden=(),
    ahead: int = 0,
    behind: int = 0,
    diff: str = "",
    message: Optional[str] = None,
) -> RepositoryChangeData:
    """Build RepositoryChangeData from ``(path, status)`` pairs."""
    changes = [FileChange(path=p, status=FileStatus(s)) for p, s in files]
    hidden_changes = [FileChange(path=p, status=FileStatus.MODIFIED) for p in hidden]
    return RepositoryChangeData(
        repository=Repository(
            name=name,
            path=path or f"/workspace/{name}",
            branch_name="main",
            ahead_count=ahead,
            behind_count=behind,
            is_meta=is_meta,
            is_submodule=(not is_meta) if is_submodule is None else is_submodule,
        ),
        changes=changes,
        hidden_submodule_changes=hidden_changes,
        diff=DiffText(unstaged=diff),
        statistics=ChangeAnalyzer().analyze(changes, hidden_submodule_changes=len(hidden_changes)),
        generated_commit_message=message,
    )


@pytest.fixture
def make_repo():
    """Factory for RepositoryChangeData instances."""
    return build_repo


@pytest.fixture
def fake_committer():
    return FakeCommitter


@pytest.fixture
def fake_generation_service():
    return FakeGenerationService


@pytest.fixture
def config():
    """Configuration with default retry counts and no retry delays."""
    return Config(workspace_root="/workspace", meta_repository_name="root", retry_delay=0.0)


@pytest.fixture
def temp_git_repo():
    """Create a temporary git repository for testing."""
    with tempfile.TemporaryDirectory() as tmp_dir:
        # Initialize git repo
        repo = Repo.init(tmp_dir)

        # Create a test file
        test_file = Path(tmp_dir) / "test.txt"
        test_file.write_text("Initial content")

        # Initial commit
        repo.index.add(["test.txt"])
        repo.index.commit("Initial commit")

        yield tmp_dir


@pytest.fixture
def temp_git_repo_with_remote():
    """Create a repository cloned from a bare remote."""
    with tempfile.TemporaryDirectory() as tmp_dir:
        remote_path = Path(tmp_dir) / "remote.git"
        Repo.init(remote_path, bare=True)

        work_path = Path(tmp_dir) / "work"
        repo = Repo.init(work_path)
        (work_path / "README.md").write_text("# Project\n")
        repo.index.add(["README.md"])
        repo.index.commit("Initial commit")
        repo.create_remote("origin", str(remote_path))

        yield str(work_path)
