"""Repository scanning and status normalization."""
import os
from typing import Any, Iterable, List, Mapping, Optional, Set

from .analyzer import ChangeAnalyzer
from .config import Config
from .exceptions import ScanError
from .models import (
    DiffText,
    FileChange,
    FileStatus,
    LogSeverity,
    RecentCommit,
    Repository,
    RepositoryChangeData,
    ScanningProgress,
    SubmoduleRef,
)
from .observers import EventSink
from .services import RawRepositoryStatus, RepositoryStatusService

# Porcelain v1 codes and spelled-out statuses both map onto FileStatus
_STATUS_ALIASES = {
    "m": FileStatus.MODIFIED,
    "mm": FileStatus.MODIFIED,
    "am": FileStatus.ADDED,
    "t": FileStatus.MODIFIED,
    "u": FileStatus.MODIFIED,
    "uu": FileStatus.MODIFIED,
    "a": FileStatus.ADDED,
    "d": FileStatus.DELETED,
    "r": FileStatus.RENAMED,
    "c": FileStatus.ADDED,
    "??": FileStatus.UNTRACKED,
    "?": FileStatus.UNTRACKED,
    "modified": FileStatus.MODIFIED,
    "added": FileStatus.ADDED,
    "new": FileStatus.ADDED,
    "deleted": FileStatus.DELETED,
    "removed": FileStatus.DELETED,
    "untracked": FileStatus.UNTRACKED,
    "renamed": FileStatus.RENAMED,
    "copied": FileStatus.ADDED,
    "typechange": FileStatus.MODIFIED,
}

MAX_RECENT_COMMITS = 5


def normalize_status(value: Any) -> FileStatus:
    """Map a porcelain code or status word to a FileStatus.

    Unknown values are treated as modifications.
    """
    if isinstance(value, FileStatus):
        return value
    text = str(value or "").strip().lower()
    if not text:
        return FileStatus.UNTRACKED
    if text in _STATUS_ALIASES:
        return _STATUS_ALIASES[text]
    return _STATUS_ALIASES.get(text[0], FileStatus.MODIFIED)


def _as_int(value: Any) -> int:
    try:
        return max(int(value or 0), 0)
    except (TypeError, ValueError):
        return 0


def _as_str(value: Any, default: str = "") -> str:
    if value is None:
        return default
    return str(value)


class RepositoryScanner:
    """Enumerates workspace repositories and normalizes their status."""

    def __init__(
        self,
        status_service: RepositoryStatusService,
        config: Optional[Config] = None,
        analyzer: Optional[ChangeAnalyzer] = None,
        sink: Optional[EventSink] = None,
    ):
        self.status_service = status_service
        self.config = config or Config()
        self.analyzer = analyzer or ChangeAnalyzer()
        self.sink = sink or EventSink()

    async def _submodule_prefixes(self) -> List[str]:
        prefixes = list(self.config.submodule_prefixes)
        try:
            submodules: Iterable[SubmoduleRef] = await self.status_service.list_submodules()
        except Exception as e:
            await self.sink.log(f"Could not list submodules, using configured prefixes: {e}", LogSeverity.WARNING)
            submodules = []
        for submodule in submodules:
            if submodule.relative_path and submodule.relative_path not in prefixes:
                prefixes.append(submodule.relative_path)
        return prefixes

    async def scan(self) -> List[RepositoryChangeData]:
        """Scan the meta repository and all submodules.

        Raises:
            ScanError: if the status service cannot be reached
        """
        try:
            raw_repositories = await self.status_service.scan_all()
        except ScanError:
            raise
        except Exception as e:
            await self.sink.log(f"Repository scan failed: {e}", LogSeverity.ERROR)
            raise ScanError(f"Repository status service is unreachable: {e}") from e

        if raw_repositories is None:
            raise ScanError("Repository status service returned no data")

        prefixes = await self._submodule_prefixes()
        total = len(raw_repositories)
        await self.sink.log(f"Discovered {total} repositories in the workspace")

        repositories: List[RepositoryChangeData] = []
        seen_paths: Set[str] = set()
        for index, raw in enumerate(raw_repositories, start=1):
            repo = self.normalize(raw, prefixes)
            if repo.path in seen_paths:
                await self.sink.log(
                    f"Skipping duplicate repository path {repo.path} ({repo.name})", LogSeverity.WARNING
                )
                continue
            seen_paths.add(repo.path)
            repositories.append(repo)

            if repo.error:
                await self.sink.log(f"{repo.name}: {repo.error}", LogSeverity.ERROR)
            elif repo.has_uncommitted_work:
                detail = f"{repo.statistics.total_files} files changed"
                if repo.has_hidden_submodule_changes:
                    detail += f" (+{repo.statistics.hidden_submodule_changes} submodule refs)"
                await self.sink.log(f"{repo.name}: {detail}")

            await self.sink.progress(ScanningProgress(
                message=f"Analyzed {repo.name} ({index}/{total})",
                current=index,
                total=total,
            ))

        return repositories

    async def scan_one(self, path: str) -> RepositoryChangeData:
        try:
            raw = await self.status_service.scan_one(path)
        except Exception as e:
            raise ScanError(f"Could not scan {path}: {e}") from e
        return self.normalize(raw, await self._submodule_prefixes())

    def _is_meta(self, name: str, path: str) -> bool:
        if self.config.meta_repository_name and name == self.config.meta_repository_name:
            return True
        try:
            return os.path.realpath(path) == os.path.realpath(self.config.workspace_root)
        except (OSError, ValueError):
            return False

    def normalize(self, raw: RawRepositoryStatus, submodule_prefixes: Iterable[str] = ()) -> RepositoryChangeData:
        """Turn a loosely shaped status record into RepositoryChangeData.

        Missing branch information, diffs, counters and lists are replaced by
        defaults so that downstream code never has to check for None.
        """
        raw = raw or {}
        path = _as_str(raw.get("path"))
        name = _as_str(raw.get("name")) or os.path.basename(path.rstrip("/\\")) or "unknown"

        branch = raw.get("branch")
        if isinstance(branch, Mapping):
            branch_name = _as_str(branch.get("current")) or "unknown"
            tracking = _as_str(branch.get("tracking"))
            ahead = _as_int(branch.get("ahead", raw.get("ahead")))
            behind = _as_int(branch.get("behind", raw.get("behind")))
        else:
            branch_name = _as_str(branch) or "unknown"
            tracking = _as_str(raw.get("tracking"))
            ahead = _as_int(raw.get("ahead"))
            behind = _as_int(raw.get("behind"))

        is_meta = self._is_meta(name, path)
        is_submodule = bool(raw.get("is_submodule", not is_meta)) and not is_meta

        repository = Repository(
            name=name,
            path=path,
            branch_name=branch_name,
            tracking_branch=tracking,
            ahead_count=ahead,
            behind_count=behind,
            is_submodule=is_submodule,
            is_meta=is_meta,
        )

        changes = [
            FileChange(
                path=_as_str(entry.get("path") or entry.get("file")),
                status=normalize_status(entry.get("status")),
                staged=bool(entry.get("staged", False)),
            )
            for entry in (raw.get("files") or [])
            if entry and (entry.get("path") or entry.get("file"))
        ]

        hidden: List[FileChange] = []
        if is_meta:
            changes, hidden = self.analyzer.partition_submodule_changes(changes, submodule_prefixes)

        recent_commits = [
            RecentCommit(
                hash=_as_str(commit.get("hash")),
                message=_as_str(commit.get("message")).split("\n")[0],
                author=_as_str(commit.get("author")),
                date=_as_str(commit.get("date")),
            )
            for commit in (raw.get("recent_commits") or [])[:MAX_RECENT_COMMITS]
            if commit
        ]

        return RepositoryChangeData(
            repository=repository,
            changes=changes,
            hidden_submodule_changes=hidden,
            diff=DiffText(
                staged=_as_str(raw.get("staged_diff")),
                unstaged=_as_str(raw.get("unstaged_diff")),
            ),
            recent_commits=recent_commits,
            statistics=self.analyzer.analyze(changes, hidden_submodule_changes=len(hidden)),
            error=raw.get("error") or None,
        )
