"""Review cycle state machine and the user-facing operations."""
import os
import uuid
from datetime import datetime
from typing import Callable, List, Optional

from .analyzer import ChangeAnalyzer
from .commit_message import CommitMessageGenerator
from .config import Config
from .coordinator import HierarchicalCommitCoordinator
from .exceptions import ScanError
from .models import (
    AnalyzingProgress,
    ChangeReviewReport,
    CompleteProgress,
    ErrorProgress,
    GeneratingProgress,
    HierarchicalCommitResult,
    LogSeverity,
    OperationResult,
    ReviewState,
    ScanningProgress,
    SummarizingProgress,
)
from .observers import CallbackObserver, EventSink
from .scanner import RepositoryScanner
from .services import CommitMutationService, GenerationService, RepositoryStatusService
from .summary import ExecutiveSummaryGenerator

TRANSITIONS = {
    ReviewState.IDLE: {ReviewState.SCANNING},
    ReviewState.SCANNING: {ReviewState.ANALYZING, ReviewState.ERROR},
    ReviewState.ANALYZING: {ReviewState.GENERATING, ReviewState.ERROR},
    ReviewState.GENERATING: {ReviewState.SUMMARIZING, ReviewState.ERROR},
    ReviewState.SUMMARIZING: {ReviewState.COMPLETE, ReviewState.ERROR},
    ReviewState.COMPLETE: set(),
    ReviewState.ERROR: set(),
}


class ReviewSession:
    """One in-flight review cycle."""

    def __init__(self):
        self.id = uuid.uuid4().hex
        self.started_at = datetime.now()
        self.state = ReviewState.IDLE

    def advance(self, state: ReviewState) -> None:
        if state not in TRANSITIONS[self.state]:
            raise ValueError(f"Invalid review transition {self.state.value} -> {state.value}")
        self.state = state


class ReviewOrchestrator:
    """Drives scan, analysis, generation and summary, then commits on request.

    Only one review may run per orchestrator at a time. A call made while a
    review is in flight returns an empty report without scanning.
    """

    def __init__(
        self,
        scanner: RepositoryScanner,
        generator: CommitMessageGenerator,
        summarizer: ExecutiveSummaryGenerator,
        coordinator: HierarchicalCommitCoordinator,
        analyzer: Optional[ChangeAnalyzer] = None,
        sink: Optional[EventSink] = None,
    ):
        self.scanner = scanner
        self.generator = generator
        self.summarizer = summarizer
        self.coordinator = coordinator
        self.analyzer = analyzer or ChangeAnalyzer()
        self.sink = sink or EventSink()
        self.session: Optional[ReviewSession] = None
        self.report: Optional[ChangeReviewReport] = None

    @classmethod
    def create(
        cls,
        config: Config,
        status_service: RepositoryStatusService,
        committer: CommitMutationService,
        generation_service: Optional[GenerationService] = None,
        sink: Optional[EventSink] = None,
    ) -> "ReviewOrchestrator":
        """Wire all components around one shared event sink."""
        sink = sink or EventSink()
        analyzer = ChangeAnalyzer()
        return cls(
            scanner=RepositoryScanner(status_service, config, analyzer=analyzer, sink=sink),
            generator=CommitMessageGenerator(generation_service, config, sink=sink),
            summarizer=ExecutiveSummaryGenerator(generation_service, config, sink=sink),
            coordinator=HierarchicalCommitCoordinator(committer, config=config, sink=sink),
            analyzer=analyzer,
            sink=sink,
        )

    @property
    def review_in_progress(self) -> bool:
        return self.session is not None

    async def _enter(self, session: ReviewSession, state: ReviewState, progress) -> None:
        session.advance(state)
        await self.sink.progress(progress)
        severity = LogSeverity.ERROR if state == ReviewState.ERROR else LogSeverity.PROGRESS
        await self.sink.log(progress.message, severity)

    async def perform_comprehensive_review(
        self,
        on_progress: Optional[Callable] = None,
        on_log: Optional[Callable] = None,
    ) -> ChangeReviewReport:
        """Run a full review cycle and return the resulting report.

        Raises:
            ScanError: if the repositories could not be scanned
        """
        if self.session is not None:
            await self.sink.log("Review already in progress, skipping duplicate call")
            return ChangeReviewReport.empty()

        # Claimed before the first await so an overlapping call sees it
        session = ReviewSession()
        self.session = session

        observer = None
        if on_progress is not None or on_log is not None:
            observer = CallbackObserver(on_progress=on_progress, on_log=on_log)
            self.sink.add_observer(observer)

        try:
            await self._enter(session, ReviewState.SCANNING, ScanningProgress(message="Scanning repositories..."))
            try:
                repositories = await self.scanner.scan()
            except ScanError as e:
                await self._enter(session, ReviewState.ERROR, ErrorProgress(
                    message=f"Failed to scan repositories: {e}",
                    error=str(e),
                ))
                raise

            changed = [r for r in repositories if r.has_changes]
            await self._enter(session, ReviewState.ANALYZING, AnalyzingProgress(
                message=f"Found {len(changed)} repositories with changes",
                repositories_with_changes=len(changed),
            ))

            await self._enter(session, ReviewState.GENERATING, GeneratingProgress(
                message="Generating commit messages...",
                total=len(changed),
            ))
            repositories = await self.generator.generate(repositories)

            await self._enter(session, ReviewState.SUMMARIZING, SummarizingProgress(
                message="Creating executive summary..."
            ))
            summary = await self.summarizer.summarize(repositories)

            report = self.analyzer.build_report(repositories, summary)
            self.report = report

            await self._enter(session, ReviewState.COMPLETE, CompleteProgress(
                message=f"Review complete: {len(changed)} repositories with changes",
                repositories_with_changes=len(changed),
            ))
            return report
        finally:
            if observer is not None:
                self.sink.remove_observer(observer)
            if self.session is session:
                self.session = None

    def _name_for_path(self, path: str) -> str:
        if self.report is not None:
            for repo in self.report.repositories:
                if repo.path == path:
                    return repo.name
        return os.path.basename(os.path.normpath(path))

    async def commit_repository(self, path: str, message: str, push: bool = False) -> bool:
        """Commit one repository (and push it when asked). Returns overall success."""
        result = await self.coordinator.commit_repository(
            path, message, push=push, name=self._name_for_path(path)
        )
        return result.success

    async def commit_all(self, push: bool = False) -> HierarchicalCommitResult:
        if self.report is None:
            raise ValueError("No review report available, run a review first")
        return await self.coordinator.commit_and_push(self.report.repositories, push=push)

    async def push_all(self) -> List[OperationResult]:
        """Push every repository that is ahead of its remote.

        Ahead counts change after committing, so the workspace is rescanned.
        """
        repositories = await self.scanner.scan()
        return await self.coordinator.push_all(repositories)

    def reset_review_state(self) -> None:
        self.session = None
        self.sink.entries.clear()

    def update_commit_message(self, name: str, message: str) -> ChangeReviewReport:
        """Replace the commit message of one repository in the current report."""
        if self.report is None:
            raise ValueError("No review report available, run a review first")
        self.report = self.report.with_commit_message(name, message)
        return self.report
