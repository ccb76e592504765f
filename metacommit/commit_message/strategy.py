"""Commit message generation strategies."""

import asyncio
from abc import ABC, abstractmethod
from enum import Enum
from typing import Dict, List, Optional, Sequence

from ..exceptions import GenerationError, GenerationTimeout
from ..models import (
    CommitMessageBatch,
    RepositoryChangeData,
    RepositoryGenerationInput,
    StyleGuide,
)
from ..services import GenerationService
from .fallback import generate_fallback_message

MAX_RECENT_COMMIT_SUBJECTS = 5
GLOBAL_CONTEXT = (
    "These repositories belong to one workspace: a parent repository and its "
    "git submodules. Changes across them are often related and will be "
    "committed together, submodules first."
)


class GenerationMode(str, Enum):
    FULL_DIFF = "full-diff"
    FILE_LIST = "file-list"


def estimate_tokens(repositories: Sequence[RepositoryChangeData]) -> int:
    """Rough token cost of sending every diff: a quarter of the characters."""
    return sum((len(r.diff.staged) + len(r.diff.unstaged)) // 4 for r in repositories)


def format_file_list(repo: RepositoryChangeData) -> str:
    lines = [f"Files changed ({len(repo.changes)}):"]
    lines.extend(f"{change.status.code} {change.path}" for change in repo.changes)
    return "\n".join(lines)


def build_generation_input(repo: RepositoryChangeData, mode: GenerationMode) -> RepositoryGenerationInput:
    """Payload for one repository in the given mode."""
    context = (
        f"Repository: {repo.name}, Branch: {repo.repository.branch_name}, "
        f"{len(repo.changes)} files changed"
    )
    if mode == GenerationMode.FILE_LIST:
        diff = format_file_list(repo)
        context += " (using file list mode due to large diff size)"
    else:
        diff = "\n".join(part for part in (repo.diff.staged, repo.diff.unstaged) if part)

    return RepositoryGenerationInput(
        path=repo.path,
        name=repo.name,
        diff=diff,
        files_changed=[change.path for change in repo.changes],
        recent_commits=[c.message for c in repo.recent_commits[:MAX_RECENT_COMMIT_SUBJECTS]],
        context=context,
    )


class GenerationStrategy(ABC):
    """One tier of commit message generation."""

    name: str = "strategy"

    def applies(self, token_estimate: int, token_threshold: int) -> bool:
        """Whether this tier should be attempted for the given token estimate."""
        return True

    @abstractmethod
    async def generate(self, repositories: Sequence[RepositoryChangeData]) -> Dict[str, str]:
        """Return commit messages keyed by repository name.

        Raises:
            GenerationError: if this tier could not produce an answer
        """
        pass


class RemoteStrategy(GenerationStrategy):
    """Batched request to an AI generation service."""

    def __init__(
        self,
        service: GenerationService,
        mode: GenerationMode = GenerationMode.FULL_DIFF,
        timeout: Optional[float] = None,
        style_guide: Optional[StyleGuide] = None,
        global_context: str = GLOBAL_CONTEXT,
    ):
        self.service = service
        self.mode = mode
        self.timeout = timeout
        self.style_guide = style_guide or StyleGuide()
        self.global_context = global_context
        self.name = f"ai ({mode.value})"

    def applies(self, token_estimate: int, token_threshold: int) -> bool:
        if self.mode == GenerationMode.FULL_DIFF:
            return token_estimate <= token_threshold
        return True

    def build_batch(self, repositories: Sequence[RepositoryChangeData]) -> CommitMessageBatch:
        return CommitMessageBatch(
            repositories=[build_generation_input(r, self.mode) for r in repositories],
            style_guide=self.style_guide,
            global_context=self.global_context,
            analyze_relationships=True,
        )

    async def generate(self, repositories: Sequence[RepositoryChangeData]) -> Dict[str, str]:
        batch = self.build_batch(repositories)
        try:
            result = await asyncio.wait_for(
                self.service.generate_commit_messages(batch), timeout=self.timeout
            )
        except asyncio.TimeoutError as e:
            raise GenerationTimeout(
                f"Commit message generation timed out after {self.timeout:.0f} seconds"
            ) from e
        except GenerationError:
            raise
        except Exception as e:
            raise GenerationError(f"Commit message generation failed: {e}") from e

        if result is None or not hasattr(result, "results"):
            raise GenerationError("Commit message generation returned a malformed response")

        by_name = {r.name: r for r in repositories}
        by_path = {r.path: r for r in repositories}
        messages: Dict[str, str] = {}
        for entry in result.results:
            if not entry.success or not entry.message or not entry.message.strip():
                continue
            repo = by_name.get(entry.repository_name) or by_path.get(entry.repository_path or "")
            if repo is None:
                repo = by_path.get(entry.repository_name)
            if repo is not None and repo.name not in messages:
                messages[repo.name] = entry.message.strip()
        return messages


class HeuristicStrategy(GenerationStrategy):
    """Local, pattern based messages. Never fails."""

    name = "heuristic"

    async def generate(self, repositories: Sequence[RepositoryChangeData]) -> Dict[str, str]:
        return {r.name: generate_fallback_message(r) for r in repositories}


def default_strategies(
    service: Optional[GenerationService],
    timeout: Optional[float] = None,
    style_guide: Optional[StyleGuide] = None,
) -> List[GenerationStrategy]:
    """Full diff request, then file list request, then local heuristic."""
    strategies: List[GenerationStrategy] = []
    if service is not None:
        strategies.append(RemoteStrategy(service, GenerationMode.FULL_DIFF, timeout, style_guide))
        strategies.append(RemoteStrategy(service, GenerationMode.FILE_LIST, timeout, style_guide))
    strategies.append(HeuristicStrategy())
    return strategies
