"""Contracts of the collaborators the review core depends on.

The core never talks to git or to a language model directly. It goes through
these abstract services so that the GitPython and pydantic-ai backed
implementations (see :mod:`metacommit.core` and :mod:`metacommit.factories`)
can be swapped for mocks in tests or for remote services in other front ends.
"""

from abc import ABC, abstractmethod
from typing import Any, List, Mapping, Optional

from .models import (
    CommitMessageBatch,
    CommitMessageBatchResult,
    CommitOutcome,
    ExecutiveSummaryInput,
    ExecutiveSummaryResult,
    PushOutcome,
    SubmoduleRef,
)

RawRepositoryStatus = Mapping[str, Any]
"""Loosely shaped status record for one repository.

Recognized keys: ``name``, ``path``, ``branch`` (str or mapping with
``current``/``tracking``/``ahead``/``behind``), ``tracking``, ``ahead``,
``behind``, ``files`` (mappings with ``path``, ``status``, ``staged``),
``staged_diff``, ``unstaged_diff``, ``recent_commits``, ``is_submodule``,
``error``. Any of them may be missing or ``None``.
"""


class RepositoryStatusService(ABC):
    """Reads the state of the workspace repositories."""

    @abstractmethod
    async def scan_all(self) -> List[RawRepositoryStatus]:
        """Return status records for the meta repository and every submodule."""
        pass

    @abstractmethod
    async def scan_one(self, path: str) -> RawRepositoryStatus:
        """Return the status record of a single repository."""
        pass

    @abstractmethod
    async def list_submodules(self) -> List[SubmoduleRef]:
        """Return the submodules registered in the meta repository."""
        pass


class CommitMutationService(ABC):
    """Performs git side effects on a single repository."""

    @abstractmethod
    async def commit(self, path: str, message: str) -> CommitOutcome:
        """Stage everything in ``path`` and commit it with ``message``."""
        pass

    @abstractmethod
    async def push(self, path: str) -> PushOutcome:
        """Push the current branch of ``path`` to its remote."""
        pass

    @abstractmethod
    async def latest_commit_hash(self, path: str) -> Optional[str]:
        """Return the HEAD commit hash of ``path`` or None for an unborn branch."""
        pass

    @abstractmethod
    async def is_clean(self, path: str) -> bool:
        """Return True when ``path`` has no staged, unstaged or untracked changes."""
        pass


class GenerationService(ABC):
    """AI backend for commit messages and the executive summary."""

    @abstractmethod
    async def generate_commit_messages(self, batch: CommitMessageBatch) -> CommitMessageBatchResult:
        """Generate one commit message per repository in ``batch``."""
        pass

    @abstractmethod
    async def generate_executive_summary(self, summary_input: ExecutiveSummaryInput) -> ExecutiveSummaryResult:
        """Synthesize a cross-repository summary."""
        pass
