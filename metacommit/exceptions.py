"""Exception hierarchy for metacommit."""


class MetaCommitError(Exception):
    """Base class for all metacommit errors."""


class ScanError(MetaCommitError):
    """The repository status service could not be reached.

    Fatal: aborts the whole review cycle and propagates to the caller.
    """


class GenerationError(MetaCommitError):
    """A remote commit message generation attempt failed."""


class GenerationTimeout(GenerationError, TimeoutError):
    """Commit message generation did not finish within the configured timeout."""


class SummaryError(MetaCommitError):
    """A remote executive summary attempt failed."""


class SummaryTimeout(SummaryError, TimeoutError):
    """Executive summary generation did not finish within the configured timeout."""


class OperationError(MetaCommitError):
    """A git side-effecting operation failed."""

    def __init__(self, message: str, repository: str = ""):
        super().__init__(message)
        self.repository = repository


class CommitError(OperationError):
    """A commit operation failed."""


class PushError(OperationError):
    """A push operation failed. Prior commits are not rolled back."""


class VerificationMismatch(CommitError):
    """The commit call reported success but HEAD did not move."""

    def __init__(self, repository: str, previous_hash, current_hash):
        super().__init__(
            f"Commit in {repository} reported success but HEAD is still "
            f"{current_hash or 'unset'} (was {previous_hash or 'unset'})",
            repository,
        )
        self.previous_hash = previous_hash
        self.current_hash = current_hash


class UncleanCommit(VerificationMismatch):
    """HEAD moved but the working tree still has uncommitted changes."""

    def __init__(self, repository: str, previous_hash, current_hash):
        OperationError.__init__(
            self,
            f"Commit in {repository} created {current_hash or 'unset'} "
            f"but the working tree is still dirty",
            repository,
        )
        self.previous_hash = previous_hash
        self.current_hash = current_hash
