"""Submodule-first, parent-last commit and push planning."""
import os
from functools import partial
from pathlib import PurePath
from typing import Iterable, List, Optional, Sequence

from .config import Config
from .executor import SequentialOperationExecutor
from .models import (
    HierarchicalCommitResult,
    LogSeverity,
    Operation,
    OperationKind,
    OperationResult,
    RepositoryChangeData,
)
from .observers import EventSink
from .services import CommitMutationService


def _depth(path: str) -> int:
    return len(PurePath(path).parts)


def meta_default_message(repositories: Iterable[RepositoryChangeData]) -> str:
    """Commit message for a meta repository whose only changes are submodule refs."""
    names = [r.name for r in repositories if r.repository.is_submodule and r.has_uncommitted_work]
    if names:
        return f"chore: update submodules ({', '.join(names)})"
    return "chore: update repository"


class HierarchicalCommitCoordinator:
    """Builds ordered operation lists and runs them in two phases.

    Phase 1 commits every repository that has a message, nested submodules
    first and the meta repository last. Phase 2 pushes, and only runs when
    every commit of phase 1 succeeded.
    """

    def __init__(
        self,
        committer: CommitMutationService,
        executor: Optional[SequentialOperationExecutor] = None,
        config: Optional[Config] = None,
        sink: Optional[EventSink] = None,
    ):
        self.committer = committer
        self.config = config or Config()
        self.sink = sink or EventSink()
        self.executor = executor or SequentialOperationExecutor(
            config=self.config,
            sink=self.sink,
            hash_reader=committer.latest_commit_hash,
            clean_reader=committer.is_clean,
        )

    @staticmethod
    def order(repositories: Sequence[RepositoryChangeData]) -> List[RepositoryChangeData]:
        """Deepest submodules first, then other repositories, the meta repository last."""
        def key(item):
            index, repo = item
            if repo.repository.is_meta:
                group = 2
            elif repo.repository.is_submodule:
                group = 0
            else:
                group = 1
            return group, -_depth(repo.path), index

        return [repo for _, repo in sorted(enumerate(repositories), key=key)]

    def with_default_meta_message(self, repositories: Sequence[RepositoryChangeData]) -> List[RepositoryChangeData]:
        updated = []
        for repo in repositories:
            if repo.repository.is_meta and repo.has_uncommitted_work and not repo.generated_commit_message:
                message = meta_default_message(repositories)
                updated.append(repo.with_message(message))
            else:
                updated.append(repo)
        return updated

    async def _previous_hash(self, repo_name: str, path: str) -> Optional[str]:
        try:
            return await self.committer.latest_commit_hash(path)
        except Exception as e:
            await self.sink.log(f"Could not read HEAD of {repo_name}: {e}", LogSeverity.WARNING)
            return None

    def _commit_operation(self, name: str, path: str, message: str, previous_hash: Optional[str]) -> Operation:
        return Operation(
            id=f"commit-{name}",
            repository_name=name,
            repository_path=path,
            kind=OperationKind.COMMIT,
            execute=partial(self.committer.commit, path, message),
            previous_hash=previous_hash,
            max_retries=self.config.commit_retries,
        )

    def _push_operation(self, name: str, path: str) -> Operation:
        return Operation(
            id=f"push-{name}",
            repository_name=name,
            repository_path=path,
            kind=OperationKind.PUSH,
            execute=partial(self.committer.push, path),
            max_retries=self.config.push_retries,
        )

    async def plan_commit(self, repositories: Sequence[RepositoryChangeData]) -> List[Operation]:
        """Commit operations in hierarchical order.

        The HEAD hash of every repository is read before its operation is
        queued so that the executor can verify that the commit happened.
        """
        operations = []
        for repo in self.order(self.with_default_meta_message(repositories)):
            if not repo.has_uncommitted_work:
                continue
            if not repo.generated_commit_message:
                await self.sink.log(f"Skipping {repo.name}: no commit message", LogSeverity.WARNING)
                continue
            previous_hash = await self._previous_hash(repo.name, repo.path)
            operations.append(
                self._commit_operation(repo.name, repo.path, repo.generated_commit_message, previous_hash)
            )
        return operations

    def plan_push(
        self, repositories: Sequence[RepositoryChangeData], committed: Iterable[str] = ()
    ) -> List[Operation]:
        """Push operations for diverged or freshly committed repositories."""
        committed = set(committed)
        return [
            self._push_operation(repo.name, repo.path)
            for repo in self.order(repositories)
            if repo.has_divergence or repo.name in committed
        ]

    async def commit_and_push(
        self, repositories: Sequence[RepositoryChangeData], push: bool = False
    ) -> HierarchicalCommitResult:
        result = HierarchicalCommitResult()
        operations = await self.plan_commit(repositories)
        if not operations:
            await self.sink.log("No repositories with commit messages to commit", LogSeverity.WARNING)
            return result

        await self.sink.log(f"Committing {len(operations)} repositories sequentially")
        result.commit_results = await self.executor.execute(operations)

        failed = result.failed_commits
        if failed:
            await self.sink.log(
                f"{len(failed)} repositories failed to commit: {', '.join(r.repository_name for r in failed)}",
                LogSeverity.ERROR,
            )
            if push:
                await self.sink.log("Skipping push due to commit failures", LogSeverity.WARNING)
                result.push_skipped = True
            return result

        await self.sink.log(f"All {len(operations)} repositories committed successfully", LogSeverity.SUCCESS)
        if push:
            committed = [r.repository_name for r in result.commit_results]
            push_operations = self.plan_push(repositories, committed)
            await self.sink.log(f"Pushing {len(push_operations)} repositories sequentially")
            result.push_results = await self.executor.execute(push_operations)
            if result.failed_pushes:
                await self.sink.log(
                    f"{len(result.push_results) - len(result.failed_pushes)} repositories pushed, "
                    f"{len(result.failed_pushes)} failed",
                    LogSeverity.WARNING,
                )
        return result

    async def push_all(self, repositories: Sequence[RepositoryChangeData]) -> List[OperationResult]:
        """Push every repository that has unpushed commits."""
        operations = [
            self._push_operation(repo.name, repo.path)
            for repo in self.order(repositories)
            if repo.needs_push
        ]
        if not operations:
            await self.sink.log("No repositories need to be pushed")
            return []
        return await self.executor.execute(operations)

    async def commit_repository(
        self, path: str, message: str, push: bool = False, name: Optional[str] = None
    ) -> HierarchicalCommitResult:
        """Commit a single repository and push it if the commit succeeded."""
        name = name or os.path.basename(os.path.normpath(path))
        result = HierarchicalCommitResult()
        previous_hash = await self._previous_hash(name, path)
        result.commit_results = await self.executor.execute(
            [self._commit_operation(name, path, message, previous_hash)]
        )
        if push:
            if result.failed_commits:
                result.push_skipped = True
            else:
                result.push_results = await self.executor.execute([self._push_operation(name, path)])
        return result
