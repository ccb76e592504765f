"""Command for pushing changes to remote repository."""

from typing import Optional

from git import GitCommandError, Repo
from rich.console import Console

from ..models import PushOutcome
from .base import GitCommand


class PushCommand(GitCommand):
    """Command for pushing the current branch to a remote repository.

    This command handles:
    1. Checking for the remote repository
    2. Setting up tracking for branches without an upstream
    3. Pushing changes and checking the per-ref push results
    """

    def __init__(self, repo: Repo, remote_name: str = "origin", console: Optional[Console] = None):
        """Initialize the push command.

        Args:
            repo: The git repository to operate on
            remote_name: Name of the remote to push to
            console: Optional Rich console for output
        """
        super().__init__(repo, console)
        self.remote_name = remote_name

    async def execute(self) -> PushOutcome:
        """Push the active branch.

        Returns:
            PushOutcome: carries the pushed branch name on success
        """
        if not self.repo.remotes:
            return PushOutcome(success=False, error="No remote repository configured")

        try:
            remote = self.repo.remote(self.remote_name)
        except ValueError:
            return PushOutcome(success=False, error=f"Remote '{self.remote_name}' does not exist")

        try:
            current_branch = self.repo.active_branch
        except TypeError:
            return PushOutcome(success=False, error="HEAD is detached, nothing to push")

        try:
            if current_branch.tracking_branch() is None:
                self.console.print(
                    f"[yellow]Setting up tracking for branch {current_branch.name}[/yellow]"
                )
                push_infos = remote.push(
                    f"{current_branch.name}:refs/heads/{current_branch.name}",
                    set_upstream=True,
                )
            else:
                push_infos = remote.push(current_branch.name)

            push_infos.raise_if_error()
            summary = "; ".join(info.summary.strip() for info in push_infos)
            return PushOutcome(success=True, branch=current_branch.name, output=summary)
        except GitCommandError as e:
            self.console.print(f"[red]Failed to push changes: {str(e)}[/red]")
            return PushOutcome(success=False, branch=current_branch.name, error=str(e))
