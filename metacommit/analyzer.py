"""Statistics and report assembly for scanned repositories.

Everything here is pure: no I/O, no clock reads other than the report
timestamp, and running any function twice on the same input yields the
same result.
"""
from typing import Iterable, List, Optional, Sequence, Tuple

from .models import (
    AggregateStatistics,
    ChangeReviewReport,
    FileChange,
    FileStatus,
    RepositoryChangeData,
    ScanStatistics,
)

ADDITION_STATUSES = (FileStatus.ADDED, FileStatus.UNTRACKED)
MODIFICATION_STATUSES = (FileStatus.MODIFIED, FileStatus.RENAMED)


class ChangeAnalyzer:
    """Derives per-repository and aggregate statistics."""

    def analyze(self, changes: Sequence[FileChange], hidden_submodule_changes: int = 0) -> ScanStatistics:
        """Compute statistics for one repository's file changes.

        Untracked and added files count as additions, modified and renamed
        files as modifications, deleted files as deletions.
        """
        additions = sum(1 for c in changes if c.status in ADDITION_STATUSES)
        modifications = sum(1 for c in changes if c.status in MODIFICATION_STATUSES)
        deletions = sum(1 for c in changes if c.status == FileStatus.DELETED)
        staged = sum(1 for c in changes if c.staged)

        return ScanStatistics(
            total_files=len(changes),
            additions=additions,
            modifications=modifications,
            deletions=deletions,
            hidden_submodule_changes=hidden_submodule_changes,
            staged_files=staged,
            unstaged_files=len(changes) - staged,
        )

    @staticmethod
    def is_under_prefix(path: str, prefixes: Iterable[str]) -> bool:
        normalized = path.replace("\\", "/")
        for prefix in prefixes:
            prefix = prefix.replace("\\", "/").rstrip("/")
            if not prefix:
                continue
            if normalized == prefix or normalized.startswith(prefix + "/"):
                return True
        return False

    def partition_submodule_changes(
        self, changes: Sequence[FileChange], prefixes: Iterable[str]
    ) -> Tuple[List[FileChange], List[FileChange]]:
        """Split submodule pointer bumps out of a meta repository's changes.

        Returns ``(regular, hidden)`` where ``hidden`` holds modified entries
        located at or under one of ``prefixes``.
        """
        prefixes = list(prefixes)
        regular: List[FileChange] = []
        hidden: List[FileChange] = []
        for change in changes:
            if change.status == FileStatus.MODIFIED and self.is_under_prefix(change.path, prefixes):
                hidden.append(change)
            else:
                regular.append(change)
        return regular, hidden

    def affected_packages(self, repositories: Iterable[RepositoryChangeData]) -> List[str]:
        packages: List[str] = []
        for repo in repositories:
            if repo.has_changes and repo.name not in packages:
                packages.append(repo.name)
        return packages

    def aggregate(self, repositories: Sequence[RepositoryChangeData]) -> AggregateStatistics:
        """Element-wise sum of statistics over repositories with changes."""
        changed = [r for r in repositories if r.has_changes]
        return AggregateStatistics(
            total_files=sum(r.statistics.total_files for r in changed),
            additions=sum(r.statistics.additions for r in changed),
            modifications=sum(r.statistics.modifications for r in changed),
            deletions=sum(r.statistics.deletions for r in changed),
            hidden_submodule_changes=sum(r.statistics.hidden_submodule_changes for r in changed),
            staged_files=sum(r.statistics.staged_files for r in changed),
            unstaged_files=sum(r.statistics.unstaged_files for r in changed),
            affected_packages=self.affected_packages(repositories),
        )

    def build_report(
        self,
        repositories: Sequence[RepositoryChangeData],
        executive_summary: Optional[str] = None,
    ) -> ChangeReviewReport:
        return ChangeReviewReport(
            repositories=list(repositories),
            aggregate_statistics=self.aggregate(repositories),
            executive_summary=executive_summary,
        )
