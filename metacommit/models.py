"""Shared models for metacommit."""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Awaitable, Callable, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class CommitType(str, Enum):
    FEAT = "feat"
    FIX = "fix"
    DOCS = "docs"
    STYLE = "style"
    REFACTOR = "refactor"
    TEST = "test"
    CHORE = "chore"


class FileStatus(str, Enum):
    MODIFIED = "modified"
    ADDED = "added"
    DELETED = "deleted"
    UNTRACKED = "untracked"
    RENAMED = "renamed"

    @property
    def code(self) -> str:
        """Porcelain v1 short code for the status."""
        return _STATUS_CODES[self]


_STATUS_CODES = {
    FileStatus.MODIFIED: "M",
    FileStatus.ADDED: "A",
    FileStatus.DELETED: "D",
    FileStatus.UNTRACKED: "??",
    FileStatus.RENAMED: "R",
}


class ReviewState(str, Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    ANALYZING = "analyzing"
    GENERATING = "generating"
    SUMMARIZING = "summarizing"
    COMPLETE = "complete"
    ERROR = "error"


class LogSeverity(str, Enum):
    INFO = "info"
    PROGRESS = "progress"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class OperationKind(str, Enum):
    COMMIT = "commit"
    PUSH = "push"


class Repository(BaseModel):
    """One git working tree, either the meta repository or a submodule."""

    model_config = ConfigDict(frozen=True)

    name: str
    path: str
    branch_name: str = "unknown"
    tracking_branch: str = ""
    ahead_count: int = 0
    behind_count: int = 0
    is_submodule: bool = False
    is_meta: bool = False


class FileChange(BaseModel):
    model_config = ConfigDict(frozen=True)

    path: str
    status: FileStatus
    staged: bool = False


class RecentCommit(BaseModel):
    model_config = ConfigDict(frozen=True)

    hash: str
    message: str
    author: str = ""
    date: str = ""


class DiffText(BaseModel):
    model_config = ConfigDict(frozen=True)

    staged: str = ""
    unstaged: str = ""

    def __len__(self) -> int:
        return len(self.staged) + len(self.unstaged)


class ScanStatistics(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_files: int = 0
    additions: int = 0
    modifications: int = 0
    deletions: int = 0
    hidden_submodule_changes: int = 0
    staged_files: int = 0
    unstaged_files: int = 0


class AggregateStatistics(ScanStatistics):
    affected_packages: List[str] = Field(default_factory=list)


class SubmoduleRef(BaseModel):
    name: str
    path: str
    relative_path: str
    hexsha: str = ""


class RepositoryChangeData(BaseModel):
    """Scan result for one repository."""

    model_config = ConfigDict(frozen=True)

    repository: Repository
    changes: List[FileChange] = Field(default_factory=list)
    hidden_submodule_changes: List[FileChange] = Field(default_factory=list)
    diff: DiffText = Field(default_factory=DiffText)
    recent_commits: List[RecentCommit] = Field(default_factory=list)
    statistics: ScanStatistics = Field(default_factory=ScanStatistics)
    generated_commit_message: Optional[str] = None
    error: Optional[str] = None

    @property
    def name(self) -> str:
        return self.repository.name

    @property
    def path(self) -> str:
        return self.repository.path

    @property
    def has_changes(self) -> bool:
        return len(self.changes) > 0

    @property
    def has_hidden_submodule_changes(self) -> bool:
        return len(self.hidden_submodule_changes) > 0

    @property
    def has_uncommitted_work(self) -> bool:
        """True when the working tree is dirty, submodule pointer bumps included."""
        return self.has_changes or self.has_hidden_submodule_changes

    @property
    def needs_push(self) -> bool:
        return self.repository.ahead_count > 0

    @property
    def has_divergence(self) -> bool:
        return self.repository.ahead_count > 0 or self.repository.behind_count > 0

    def with_message(self, message: Optional[str]) -> "RepositoryChangeData":
        return self.model_copy(update={"generated_commit_message": message})


class ChangeReviewReport(BaseModel):
    """Top-level, immutable output of one review cycle."""

    model_config = ConfigDict(frozen=True)

    generated_at: datetime = Field(default_factory=datetime.now)
    repositories: List[RepositoryChangeData] = Field(default_factory=list)
    aggregate_statistics: AggregateStatistics = Field(default_factory=AggregateStatistics)
    executive_summary: Optional[str] = None

    @classmethod
    def empty(cls) -> "ChangeReviewReport":
        return cls()

    def find(self, name: str) -> Optional[RepositoryChangeData]:
        for repo in self.repositories:
            if repo.name == name:
                return repo
        return None

    def with_commit_message(self, name: str, message: str) -> "ChangeReviewReport":
        """Return a new report with the commit message of ``name`` replaced."""
        if self.find(name) is None:
            raise ValueError(f"Repository {name!r} is not part of this report")
        repositories = [
            repo.with_message(message) if repo.name == name else repo
            for repo in self.repositories
        ]
        return self.model_copy(update={"repositories": repositories})


class LogEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    timestamp: datetime = Field(default_factory=datetime.now)
    severity: LogSeverity = LogSeverity.INFO
    message: str


class ScanningProgress(BaseModel):
    stage: Literal["scanning"] = "scanning"
    message: str
    current: int = 0
    total: int = 0


class AnalyzingProgress(BaseModel):
    stage: Literal["analyzing"] = "analyzing"
    message: str
    repositories_with_changes: int = 0


class GeneratingProgress(BaseModel):
    stage: Literal["generating"] = "generating"
    message: str
    current: int = 0
    total: int = 0
    repository: Optional[str] = None


class SummarizingProgress(BaseModel):
    stage: Literal["summarizing"] = "summarizing"
    message: str


class CompleteProgress(BaseModel):
    stage: Literal["complete"] = "complete"
    message: str
    repositories_with_changes: int = 0


class ErrorProgress(BaseModel):
    stage: Literal["error"] = "error"
    message: str
    error: str = ""


ScanProgress = Annotated[
    Union[
        ScanningProgress,
        AnalyzingProgress,
        GeneratingProgress,
        SummarizingProgress,
        CompleteProgress,
        ErrorProgress,
    ],
    Field(discriminator="stage"),
]

STAGE_ORDER = {
    "scanning": 1,
    "analyzing": 2,
    "generating": 3,
    "summarizing": 4,
    "complete": 5,
    "error": 5,
}


class CommitOutcome(BaseModel):
    success: bool
    hash: Optional[str] = None
    output: str = ""
    error: Optional[str] = None


class PushOutcome(BaseModel):
    success: bool
    branch: Optional[str] = None
    output: str = ""
    error: Optional[str] = None


@dataclass
class Operation:
    """One git side-effecting action queued for sequential execution."""

    id: str
    repository_name: str
    repository_path: str
    kind: OperationKind
    execute: Callable[[], Awaitable[Any]]
    previous_hash: Optional[str] = None
    max_retries: int = 0


@dataclass
class OperationResult:
    id: str
    repository_name: str
    kind: OperationKind
    success: bool
    result: Any = None
    error: Optional[Exception] = None
    previous_hash: Optional[str] = None
    verified_hash: Optional[str] = None
    attempts: int = 1
    duration: float = 0.0


@dataclass
class HierarchicalCommitResult:
    commit_results: List[OperationResult] = field(default_factory=list)
    push_results: List[OperationResult] = field(default_factory=list)
    push_skipped: bool = False

    @property
    def failed_commits(self) -> List[OperationResult]:
        return [r for r in self.commit_results if not r.success]

    @property
    def failed_pushes(self) -> List[OperationResult]:
        return [r for r in self.push_results if not r.success]

    @property
    def success(self) -> bool:
        return not self.failed_commits and not self.failed_pushes and not self.push_skipped


class StyleGuide(BaseModel):
    format: str = "conventional"
    max_length: int = 72
    include_scope: bool = True
    include_body: bool = True


class RepositoryGenerationInput(BaseModel):
    path: str
    name: str
    diff: str
    files_changed: List[str] = Field(default_factory=list)
    recent_commits: List[str] = Field(default_factory=list)
    context: str = ""


class CommitMessageBatch(BaseModel):
    repositories: List[RepositoryGenerationInput]
    style_guide: StyleGuide = Field(default_factory=StyleGuide)
    global_context: str = ""
    analyze_relationships: bool = True


class GeneratedCommitMessage(BaseModel):
    repository_name: str
    repository_path: Optional[str] = None
    success: bool = True
    message: Optional[str] = None
    commit_type: Optional[str] = None
    confidence: Optional[float] = None
    error: Optional[str] = None


class TokenUsage(BaseModel):
    input_tokens: int = 0
    output_tokens: int = 0
    estimated_cost: Optional[float] = None


class CommitMessageBatchResult(BaseModel):
    results: List[GeneratedCommitMessage] = Field(default_factory=list)
    token_usage: Optional[TokenUsage] = None


class CommitStats(BaseModel):
    files_changed: int = 0
    additions: int = 0
    deletions: int = 0


class CommitMessageSummaryInput(BaseModel):
    repository: str
    message: str
    stats: CommitStats = Field(default_factory=CommitStats)


class ExecutiveSummaryInput(BaseModel):
    commit_messages: List[CommitMessageSummaryInput]
    audience: str = "technical team"
    max_length: int = 500
    focus_areas: List[str] = Field(default_factory=list)
    include_risk_assessment: bool = True
    include_recommendations: bool = True


class SummaryTheme(BaseModel):
    name: str
    description: str = ""
    affected_repositories: List[str] = Field(default_factory=list)
    impact: str = ""


class SummaryMetadata(BaseModel):
    repository_count: int = 0
    total_changes: int = 0
    themes: List[SummaryTheme] = Field(default_factory=list)
    risk_level: Optional[str] = None
    suggested_actions: List[str] = Field(default_factory=list)


class ExecutiveSummaryResult(BaseModel):
    success: bool = True
    summary: str = ""
    error: Optional[str] = None
    metadata: Optional[SummaryMetadata] = None
