"""Sequential execution of git commit and push operations."""
import asyncio
import time
from typing import Any, Awaitable, Callable, List, Optional, Sequence

from .config import Config
from .exceptions import CommitError, OperationError, PushError, UncleanCommit, VerificationMismatch
from .models import LogSeverity, Operation, OperationKind, OperationResult
from .observers import EventSink

HashReader = Callable[[str], Awaitable[Optional[str]]]
CleanReader = Callable[[str], Awaitable[bool]]


class SequentialOperationExecutor:
    """Runs operations one at a time, in the order they are given.

    A failing operation never stops the batch; its error is recorded in the
    corresponding ``OperationResult``. Commit results are verified: a commit
    only counts as successful if HEAD moved away from ``previous_hash`` and,
    when a ``clean_reader`` is given, the working tree is left clean.
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        sink: Optional[EventSink] = None,
        hash_reader: Optional[HashReader] = None,
        clean_reader: Optional[CleanReader] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.config = config or Config()
        self.sink = sink or EventSink()
        self.hash_reader = hash_reader
        self.clean_reader = clean_reader
        self._sleep = sleep

    async def execute(self, operations: Sequence[Operation]) -> List[OperationResult]:
        results: List[OperationResult] = []
        for operation in operations:
            results.append(await self.execute_one(operation))
        return results

    @staticmethod
    def _error_type(kind: OperationKind):
        return CommitError if kind == OperationKind.COMMIT else PushError

    def _check_outcome(self, operation: Operation, outcome: Any) -> None:
        if outcome is False or getattr(outcome, "success", True) is False:
            error = getattr(outcome, "error", None) or f"{operation.kind.value} reported failure"
            raise self._error_type(operation.kind)(error, operation.repository_name)

    async def _verify_commit(self, operation: Operation, outcome: Any) -> str:
        current = getattr(outcome, "hash", None)
        if not current and self.hash_reader is not None:
            current = await self.hash_reader(operation.repository_path)
        if not current or current == operation.previous_hash:
            raise VerificationMismatch(operation.repository_name, operation.previous_hash, current)
        if self.clean_reader is not None and not await self.clean_reader(operation.repository_path):
            raise UncleanCommit(operation.repository_name, operation.previous_hash, current)
        return current

    async def execute_one(self, operation: Operation) -> OperationResult:
        """Run a single operation, retrying up to ``operation.max_retries`` times."""
        verb = "Committing" if operation.kind == OperationKind.COMMIT else "Pushing"
        await self.sink.log(f"{verb} {operation.repository_name}...", LogSeverity.PROGRESS)

        started = time.monotonic()
        attempts = 0
        outcome: Any = None
        verified_hash: Optional[str] = None
        error: Optional[Exception] = None

        while True:
            attempts += 1
            error = None
            try:
                outcome = await operation.execute()
                self._check_outcome(operation, outcome)
                if operation.kind == OperationKind.COMMIT:
                    verified_hash = await self._verify_commit(operation, outcome)
                break
            except VerificationMismatch as e:
                # HEAD already reflects this attempt
                error = e
                break
            except Exception as e:
                if not isinstance(e, OperationError):
                    wrapped = self._error_type(operation.kind)(str(e), operation.repository_name)
                    wrapped.__cause__ = e
                    e = wrapped
                error = e
                if attempts > operation.max_retries:
                    break
                delay = self.config.retry_delay * (2 ** (attempts - 1))
                await self.sink.log(
                    f"{operation.kind.value} {operation.repository_name} failed (attempt {attempts}), "
                    f"retrying in {delay:.1f}s: {e}",
                    LogSeverity.WARNING,
                )
                await self._sleep(delay)

        result = OperationResult(
            id=operation.id,
            repository_name=operation.repository_name,
            kind=operation.kind,
            success=error is None,
            result=outcome,
            error=error,
            previous_hash=operation.previous_hash,
            verified_hash=verified_hash,
            attempts=attempts,
            duration=time.monotonic() - started,
        )

        if result.success:
            detail = f" ({verified_hash[:7]})" if verified_hash else ""
            await self.sink.log(
                f"✓ {operation.kind.value} {operation.repository_name}{detail}", LogSeverity.SUCCESS
            )
        else:
            await self.sink.log(
                f"✗ {operation.kind.value} {operation.repository_name}: {error}", LogSeverity.ERROR
            )
        await self.sink.operation_completed(result)
        return result
