"""Command for creating git commits."""

from typing import Optional

from git import Repo
from rich.console import Console

from ..models import CommitOutcome
from .base import GitCommand


class CommitCommand(GitCommand):
    """Command for committing everything in a working tree.

    This command handles:
    1. Staging all changes, including deletions and submodule pointers
    2. Refusing to create an empty commit
    3. Creating the commit with the given message

    Attributes:
        message (str): The full commit message
        commit_hash (Optional[str]): The hash of the created commit
    """

    def __init__(self, repo: Repo, message: str, console: Optional[Console] = None):
        """Initialize the commit command.

        Args:
            repo: The git repository to operate on
            message: The commit message (subject, blank line, body)
            console: Optional Rich console for output
        """
        super().__init__(repo, console)
        self.message = message
        self.commit_hash: Optional[str] = None

    def _has_staged_changes(self) -> bool:
        if self.repo.head.is_valid():
            return bool(self.repo.index.diff("HEAD"))
        # Unborn branch: anything in the index is new
        return bool(self.repo.index.entries)

    async def execute(self) -> CommitOutcome:
        """Stage all changes and commit them.

        Returns:
            CommitOutcome: carries the new commit hash on success
        """
        if not self.message or not self.message.strip():
            return CommitOutcome(success=False, error="Commit message is empty")

        try:
            if not self.repo.is_dirty(untracked_files=True):
                self.console.print(f"[yellow]No changes to commit in {self.repo_name}, skipping...[/yellow]")
                return CommitOutcome(success=False, error="No changes to commit")

            self.repo.git.add(all=True)

            if not self._has_staged_changes():
                return CommitOutcome(success=False, error="No staged changes to commit")

            commit = self.repo.index.commit(self.message.strip())
            self.commit_hash = commit.hexsha
            return CommitOutcome(
                success=True,
                hash=commit.hexsha,
                output=f"[{commit.hexsha[:7]}] {commit.summary}",
            )
        except Exception as e:
            self.console.print(f"[red]Failed to create commit: {str(e)}[/red]")
            return CommitOutcome(success=False, error=str(e))
