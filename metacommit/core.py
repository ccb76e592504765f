"""GitPython backed implementations of the repository services."""
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple

from git import InvalidGitRepositoryError, NoSuchPathError, Repo
from rich.console import Console

from .commands import CommitCommand, PushCommand
from .config import Config
from .exceptions import ScanError
from .models import CommitOutcome, PushOutcome, SubmoduleRef
from .services import CommitMutationService, RawRepositoryStatus, RepositoryStatusService

MAX_DIFF_CHARS = 100_000
RECENT_COMMIT_COUNT = 5


def _truncate(text: str, limit: int = MAX_DIFF_CHARS) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + "\n... [diff truncated]"


def _unquote(path: str) -> str:
    if len(path) >= 2 and path.startswith('"') and path.endswith('"'):
        return path[1:-1]
    return path


def parse_porcelain(output: str) -> List[Dict[str, Any]]:
    """Parse ``git status --porcelain=v1`` output into file entries."""
    files = []
    for line in output.splitlines():
        if len(line) < 4:
            continue
        code, path = line[:2], line[3:]
        if " -> " in path:
            # Renames list "old -> new"
            path = path.split(" -> ", 1)[1]
        if code == "??":
            status, staged = "??", False
        else:
            index_code, worktree_code = code[0], code[1]
            staged = index_code not in (" ", "?")
            status = index_code if staged else worktree_code
            if status in ("m", "?"):
                # Submodule with modified or untracked content
                status = "M"
        files.append({"path": _unquote(path), "status": status, "staged": staged})
    return files


class GitStatusService(RepositoryStatusService):
    """Reads status of the meta repository and its submodules with GitPython."""

    def __init__(self, config: Optional[Config] = None, console: Optional[Console] = None):
        self.config = config or Config()
        self.console = console or Console()
        self.workspace_root = Path(self.config.workspace_root).resolve()

    def _open_root(self) -> Repo:
        try:
            return Repo(self.workspace_root)
        except (InvalidGitRepositoryError, NoSuchPathError) as e:
            raise ScanError(f"{self.workspace_root} is not a git repository") from e

    def _iter_submodules(self, repo: Repo, prefix: str = "") -> Iterator[Tuple[str, Any]]:
        """Yield ``(relative_path, submodule)`` pairs, recursing into nested submodules."""
        for submodule in repo.submodules:
            relative = f"{prefix}{submodule.path}"
            yield relative, submodule
            if submodule.module_exists():
                yield from self._iter_submodules(submodule.module(), prefix=f"{relative}/")

    @staticmethod
    def _branch_info(repo: Repo) -> Dict[str, Any]:
        try:
            branch = repo.active_branch
        except TypeError:
            return {"current": "HEAD (detached)", "tracking": "", "ahead": 0, "behind": 0}

        tracking = branch.tracking_branch()
        ahead = behind = 0
        if tracking is not None and repo.head.is_valid():
            try:
                counts = repo.git.rev_list("--left-right", "--count", f"{branch.name}...{tracking.name}")
                ahead, behind = (int(n) for n in counts.split())
            except Exception as e:
                print(f"Warning: Could not compare {branch.name} with {tracking.name}: {e}")
        return {
            "current": branch.name,
            "tracking": tracking.name if tracking is not None else "",
            "ahead": ahead,
            "behind": behind,
        }

    @staticmethod
    def _recent_commits(repo: Repo) -> List[Dict[str, str]]:
        if not repo.head.is_valid():
            return []
        return [
            {
                "hash": commit.hexsha,
                "message": commit.summary,
                "author": str(commit.author),
                "date": commit.committed_datetime.isoformat(),
            }
            for commit in repo.iter_commits(max_count=RECENT_COMMIT_COUNT)
        ]

    def _status(self, repo: Repo, name: str, is_submodule: bool, exclude: Tuple[str, ...] = ()) -> Dict[str, Any]:
        path = str(Path(repo.working_tree_dir).resolve())
        try:
            pathspec = ["--", "."] + [f":(exclude){p}" for p in exclude] if exclude else []
            return {
                "name": name,
                "path": path,
                "branch": self._branch_info(repo),
                "files": parse_porcelain(repo.git.status("--porcelain=v1", "-uall")),
                "staged_diff": _truncate(repo.git.diff("--cached", *pathspec)),
                "unstaged_diff": _truncate(repo.git.diff(*pathspec)),
                "recent_commits": self._recent_commits(repo),
                "is_submodule": is_submodule,
            }
        except Exception as e:
            return {"name": name, "path": path, "is_submodule": is_submodule, "error": str(e)}

    async def scan_all(self) -> List[RawRepositoryStatus]:
        root = self._open_root()
        submodules = list(self._iter_submodules(root))
        direct = tuple(sm.path for sm in root.submodules)

        records: List[RawRepositoryStatus] = [
            self._status(root, self.config.meta_name, is_submodule=False, exclude=direct)
        ]
        for relative, submodule in submodules:
            if not submodule.module_exists():
                records.append({
                    "name": relative,
                    "path": str(self.workspace_root / relative),
                    "is_submodule": True,
                    "error": "Submodule is not initialized",
                })
                continue
            module = submodule.module()
            nested = tuple(sm.path for sm in module.submodules)
            records.append(self._status(module, relative, is_submodule=True, exclude=nested))
        return records

    async def scan_one(self, path: str) -> RawRepositoryStatus:
        repo = Repo(path)
        resolved = Path(repo.working_tree_dir).resolve()
        if resolved == self.workspace_root:
            name, is_submodule = self.config.meta_name, False
        else:
            try:
                name = resolved.relative_to(self.workspace_root).as_posix()
            except ValueError:
                name = resolved.name
            is_submodule = True
        nested = tuple(sm.path for sm in repo.submodules)
        return self._status(repo, name, is_submodule=is_submodule, exclude=nested)

    async def list_submodules(self) -> List[SubmoduleRef]:
        root = self._open_root()
        return [
            SubmoduleRef(
                name=submodule.name,
                path=str(self.workspace_root / relative),
                relative_path=relative,
                hexsha=submodule.hexsha,
            )
            for relative, submodule in self._iter_submodules(root)
        ]


class GitCommitter(CommitMutationService):
    """Commits and pushes repositories through the git commands."""

    def __init__(self, config: Optional[Config] = None, console: Optional[Console] = None):
        self.config = config or Config()
        self.console = console or Console()

    async def commit(self, path: str, message: str) -> CommitOutcome:
        return await CommitCommand(Repo(path), message, self.console).execute()

    async def push(self, path: str) -> PushOutcome:
        return await PushCommand(Repo(path), self.config.remote_name, self.console).execute()

    async def latest_commit_hash(self, path: str) -> Optional[str]:
        repo = Repo(path)
        if not repo.head.is_valid():
            return None
        return repo.head.commit.hexsha

    async def is_clean(self, path: str) -> bool:
        # Submodule content is committed in its own repository
        return not Repo(path).is_dirty(untracked_files=True, submodules=False)
