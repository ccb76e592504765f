"""Shared base for the commands that write to a repository."""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from git import Repo
from pydantic import BaseModel
from rich.console import Console


class GitCommand(ABC):
    """A single mutating git operation against one repository.

    ``execute()`` never raises for git failures; it returns an outcome
    model so the caller can record the failure against the repository
    and carry on with the rest of the workspace.
    """

    def __init__(self, repo: Repo, console: Optional[Console] = None):
        self.repo = repo
        self.console = console or Console()

    @property
    def repo_name(self) -> str:
        return Path(self.repo.working_tree_dir or self.repo.git_dir).name

    @abstractmethod
    async def execute(self) -> BaseModel:
        """Run the command and return its outcome (with a ``success`` flag)."""
