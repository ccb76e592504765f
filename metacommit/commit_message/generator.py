"""Token-budgeted commit message generation across repositories."""
from typing import Dict, List, Optional, Sequence

from ..config import Config
from ..exceptions import GenerationError
from ..models import GeneratingProgress, LogSeverity, RepositoryChangeData
from ..observers import EventSink
from ..services import GenerationService
from .strategy import GenerationStrategy, HeuristicStrategy, default_strategies, estimate_tokens


class CommitMessageGenerator:
    """Runs the generation strategies in order until one of them answers.

    The default chain is a full-diff AI request, a file-list AI request and a
    local heuristic. The full-diff tier is skipped when the estimated token
    count of all diffs exceeds ``Config.token_threshold``.
    """

    def __init__(
        self,
        service: Optional[GenerationService] = None,
        config: Optional[Config] = None,
        strategies: Optional[List[GenerationStrategy]] = None,
        sink: Optional[EventSink] = None,
    ):
        self.config = config or Config()
        self.sink = sink or EventSink()
        if strategies is None:
            strategies = default_strategies(service, timeout=self.config.generation_timeout)
        self.strategies = strategies

    async def _run_strategies(self, changed: Sequence[RepositoryChangeData], token_estimate: int) -> Dict[str, str]:
        threshold = self.config.token_threshold
        for strategy in self.strategies:
            if not strategy.applies(token_estimate, threshold):
                await self.sink.log(
                    f"Skipping {strategy.name}: ~{token_estimate:,} tokens exceeds the {threshold:,} token budget",
                    LogSeverity.WARNING,
                )
                continue
            try:
                await self.sink.log(f"Generating commit messages with {strategy.name}", LogSeverity.PROGRESS)
                messages = await strategy.generate(changed)
            except GenerationError as e:
                await self.sink.log(f"{strategy.name} failed: {e}", LogSeverity.WARNING)
                continue
            except Exception as e:
                await self.sink.log(f"{strategy.name} failed unexpectedly: {e}", LogSeverity.WARNING)
                continue
            await self.sink.log(
                f"{strategy.name} produced {len(messages)}/{len(changed)} commit messages",
                LogSeverity.SUCCESS,
            )
            return messages

        # Every configured tier failed
        return await HeuristicStrategy().generate(changed)

    async def generate(self, repositories: Sequence[RepositoryChangeData]) -> List[RepositoryChangeData]:
        """Attach a generated commit message to every repository with changes.

        Repositories without changes are returned unchanged. Never raises for
        well formed input.
        """
        changed = [r for r in repositories if r.has_changes]
        if not changed:
            return list(repositories)

        token_estimate = estimate_tokens(changed)
        await self.sink.log(f"Estimated ~{token_estimate:,} tokens of diff across {len(changed)} repositories")
        await self.sink.progress(GeneratingProgress(
            message=f"Generating commit messages for {len(changed)} repositories",
            current=0,
            total=len(changed),
        ))

        messages = await self._run_strategies(changed, token_estimate)

        updated: List[RepositoryChangeData] = []
        current = 0
        for repo in repositories:
            if not repo.has_changes:
                updated.append(repo)
                continue
            current += 1
            message = messages.get(repo.name)
            if message:
                await self.sink.log(f"✓ {repo.name}: {message.splitlines()[0]}")
            else:
                await self.sink.log(f"{repo.name}: no commit message generated", LogSeverity.WARNING)
            await self.sink.progress(GeneratingProgress(
                message=f"Generated: {repo.name}",
                current=current,
                total=len(changed),
                repository=repo.name,
            ))
            updated.append(repo.with_message(message))
        return updated
