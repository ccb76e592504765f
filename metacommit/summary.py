"""Cross-repository executive summary."""
import asyncio
import re
from typing import Dict, List, Optional, Sequence

from .config import Config
from .exceptions import SummaryError, SummaryTimeout
from .models import (
    CommitMessageSummaryInput,
    CommitStats,
    ExecutiveSummaryInput,
    ExecutiveSummaryResult,
    LogSeverity,
    RepositoryChangeData,
    SummarizingProgress,
    SummaryMetadata,
)
from .observers import EventSink
from .services import GenerationService

FOCUS_AREAS = ['breaking-changes', 'new-features', 'performance', 'dependencies', 'architecture']
NO_CHANGES_SUMMARY = "No changes detected across any repositories."

_COMMIT_TYPE_RE = re.compile(r'^(\w+)(\([^)]*\))?!?:')

# Conventional commit type -> theme heading
THEMES = {
    'feat': 'New Features',
    'fix': 'Bug Fixes',
    'refactor': 'Code Improvements',
    'docs': 'Documentation',
}

RISK_RATIONALES = {
    'HIGH': 'Large number of changes across multiple packages may require extensive testing',
    'MEDIUM': 'Moderate changes that should be reviewed carefully before deployment',
    'LOW': 'Limited changes with minimal risk to system stability',
}


def risk_level(total_files: int) -> str:
    if total_files > 50:
        return 'HIGH'
    if total_files > 20:
        return 'MEDIUM'
    return 'LOW'


def commit_type_of(message: Optional[str]) -> Optional[str]:
    if not message:
        return None
    match = _COMMIT_TYPE_RE.match(message)
    return match.group(1) if match else None


def build_fallback_summary(repositories: Sequence[RepositoryChangeData]) -> str:
    """Deterministic markdown summary built from statistics and messages."""
    changed = [r for r in repositories if r.has_changes]
    if not changed:
        return NO_CHANGES_SUMMARY

    total_files = sum(r.statistics.total_files for r in changed)
    additions = sum(r.statistics.additions for r in changed)
    modifications = sum(r.statistics.modifications for r in changed)
    deletions = sum(r.statistics.deletions for r in changed)

    by_type: Dict[str, int] = {}
    themes: Dict[str, List[str]] = {}
    for repo in changed:
        commit_type = commit_type_of(repo.generated_commit_message)
        if commit_type is None:
            continue
        by_type[commit_type] = by_type.get(commit_type, 0) + 1
        theme = THEMES.get(commit_type)
        if theme:
            themes.setdefault(theme, []).append(repo.name)

    distribution = ', '.join(f"{t} ({n})" for t, n in by_type.items()) or 'n/a'
    lines = [
        "## Executive Summary\n",
        f"This change set encompasses {len(changed)} repositories with a total of {total_files} files modified.\n",
        "### Impact Overview",
        f"- **Total Changes**: {total_files} files ({additions} additions, "
        f"{modifications} modifications, {deletions} deletions)",
        f"- **Affected Packages**: {', '.join(r.name for r in changed)}",
        f"- **Change Distribution**: {distribution}\n",
    ]

    if themes:
        lines.append("### Key Themes")
        for theme, names in themes.items():
            lines.append(f"\n**{theme}**")
            lines.append(f"Affecting: {', '.join(names)}")
        lines.append("")

    level = risk_level(total_files)
    lines.append("### Risk Assessment")
    lines.append(f"- **Overall Risk Level**: {level}")
    lines.append(f"- **Rationale**: {RISK_RATIONALES[level]}\n")

    recommendations = ["Review all changes carefully, especially in critical packages"]
    if total_files > 10:
        recommendations.append("Consider breaking changes into smaller, focused commits")
    if 'New Features' in themes:
        recommendations.append("Ensure new features have adequate test coverage")
    if 'Bug Fixes' in themes:
        recommendations.append("Verify bug fixes with regression testing")
    recommendations.append("Update documentation for any API or interface changes")

    lines.append("### Recommendations")
    lines.extend(f"{i}. {text}" for i, text in enumerate(recommendations, start=1))
    return "\n".join(lines)


class ExecutiveSummaryGenerator:
    """Asks the generation service for a summary and falls back to a local one."""

    def __init__(
        self,
        service: Optional[GenerationService] = None,
        config: Optional[Config] = None,
        sink: Optional[EventSink] = None,
    ):
        self.service = service
        self.config = config or Config()
        self.sink = sink or EventSink()

    @staticmethod
    def summarizable(repositories: Sequence[RepositoryChangeData]) -> List[RepositoryChangeData]:
        """Changed repositories that already carry a commit message."""
        return [r for r in repositories if r.has_changes and r.generated_commit_message]

    def build_input(self, repositories: Sequence[RepositoryChangeData]) -> ExecutiveSummaryInput:
        return ExecutiveSummaryInput(
            commit_messages=[
                CommitMessageSummaryInput(
                    repository=repo.name,
                    message=repo.generated_commit_message,
                    stats=CommitStats(
                        files_changed=repo.statistics.total_files,
                        additions=repo.statistics.additions,
                        deletions=repo.statistics.deletions,
                    ),
                )
                for repo in self.summarizable(repositories)
            ],
            audience="technical team",
            max_length=500,
            focus_areas=list(FOCUS_AREAS),
            include_risk_assessment=True,
            include_recommendations=True,
        )

    async def _request(self, repositories: Sequence[RepositoryChangeData]) -> ExecutiveSummaryResult:
        if self.service is None:
            raise SummaryError("No generation service configured")

        timeout = self.config.summary_timeout
        try:
            result = await asyncio.wait_for(
                self.service.generate_executive_summary(self.build_input(repositories)),
                timeout=timeout,
            )
        except asyncio.TimeoutError as e:
            raise SummaryTimeout(f"Executive summary timed out after {timeout:.0f} seconds") from e
        except SummaryError:
            raise
        except Exception as e:
            raise SummaryError(f"Executive summary failed: {e}") from e

        if result is None or not result.success or not (result.summary or "").strip():
            error = getattr(result, "error", None) or "empty response"
            raise SummaryError(f"Executive summary was not generated: {error}")
        return result

    async def _log_metadata(self, metadata: Optional[SummaryMetadata]) -> None:
        if metadata is None:
            return
        if metadata.themes:
            names = ", ".join(theme.name for theme in metadata.themes[:3])
            await self.sink.log(f"Key themes: {names}")
        if metadata.risk_level:
            await self.sink.log(f"Risk level: {metadata.risk_level}")
        for action in metadata.suggested_actions:
            await self.sink.log(f"Suggested action: {action}")

    async def summarize(self, repositories: Sequence[RepositoryChangeData]) -> str:
        """Return a markdown summary of the repositories that have commit messages.

        Repositories without changes or without a message are left out. Never raises.
        """
        ready = self.summarizable(repositories)
        await self.sink.progress(SummarizingProgress(
            message=f"Summarizing changes across {len(ready)} repositories"
        ))
        if not ready:
            return NO_CHANGES_SUMMARY

        try:
            result = await self._request(ready)
            await self.sink.log("Executive summary generated", LogSeverity.SUCCESS)
            await self._log_metadata(result.metadata)
            return result.summary.strip()
        except SummaryError as e:
            await self.sink.log(f"{e}; using local summary", LogSeverity.WARNING)
        except Exception as e:
            await self.sink.log(f"Executive summary failed unexpectedly: {e}; using local summary", LogSeverity.WARNING)
        return build_fallback_summary(ready)
