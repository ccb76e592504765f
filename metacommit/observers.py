"""Observer pattern for review progress, log entries and git operations."""

import inspect
from datetime import datetime
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, List, Optional

from rich.console import Console

from .models import LogEntry, LogSeverity, OperationResult, ScanProgress


class ReviewObserver(ABC):
    """Abstract base class for review observers."""

    @abstractmethod
    async def on_progress(self, progress: ScanProgress) -> None:
        """Called on every stage transition or progress update."""
        pass

    @abstractmethod
    async def on_log(self, entry: LogEntry) -> None:
        """Called for every human readable log entry."""
        pass

    async def on_operation_completed(self, result: OperationResult) -> None:
        """Called after each commit or push operation has finished."""
        pass


_SEVERITY_STYLES = {
    LogSeverity.INFO: "white",
    LogSeverity.PROGRESS: "blue",
    LogSeverity.SUCCESS: "green",
    LogSeverity.WARNING: "yellow",
    LogSeverity.ERROR: "red",
}


class ConsoleLogObserver(ReviewObserver):
    """Observer that logs review activity to the console."""

    def __init__(self, console: Optional[Console] = None, show_progress: bool = True):
        self.console = console or Console()
        self.show_progress = show_progress

    async def on_progress(self, progress: ScanProgress) -> None:
        if self.show_progress:
            self.console.print(f"[dim]\\[{progress.stage}] {progress.message}[/dim]")

    async def on_log(self, entry: LogEntry) -> None:
        style = _SEVERITY_STYLES.get(entry.severity, "white")
        self.console.print(f"[{style}]{entry.message}[/{style}]")

    async def on_operation_completed(self, result: OperationResult) -> None:
        if result.success:
            self.console.print(
                f"[green]✓ {result.kind.value} {result.repository_name}[/green]"
            )
        else:
            self.console.print(
                f"[red]✗ {result.kind.value} {result.repository_name}: {result.error}[/red]"
            )


class FileLogObserver(ReviewObserver):
    """Observer that logs review activity to a file."""

    def __init__(self, log_file: str):
        self.log_file = Path(log_file)
        self.log_file.parent.mkdir(parents=True, exist_ok=True)

    async def _log(self, message: str, severity: LogSeverity = LogSeverity.INFO, timestamp=None) -> None:
        stamp = (timestamp or datetime.now()).strftime("%Y-%m-%d %H:%M:%S")
        with self.log_file.open("a") as f:
            f.write(f"{stamp} - [{severity.value.upper()}] {message}\n")

    async def on_progress(self, progress: ScanProgress) -> None:
        await self._log(f"stage {progress.stage}: {progress.message}", LogSeverity.PROGRESS)

    async def on_log(self, entry: LogEntry) -> None:
        await self._log(entry.message, entry.severity, entry.timestamp)

    async def on_operation_completed(self, result: OperationResult) -> None:
        status = "Successfully completed" if result.success else "Failed"
        severity = LogSeverity.SUCCESS if result.success else LogSeverity.ERROR
        message = f"{status} {result.kind.value} in {result.repository_name}"
        if result.verified_hash:
            message += f" ({result.verified_hash[:7]})"
        if result.error:
            message += f": {result.error}"
        await self._log(message, severity)


class CallbackObserver(ReviewObserver):
    """Adapts plain ``on_progress``/``on_log`` callables (sync or async)."""

    def __init__(self, on_progress: Optional[Callable] = None, on_log: Optional[Callable] = None):
        self._on_progress = on_progress
        self._on_log = on_log

    @staticmethod
    async def _call(callback: Optional[Callable], payload) -> None:
        if callback is None:
            return
        result = callback(payload)
        if inspect.isawaitable(result):
            await result

    async def on_progress(self, progress: ScanProgress) -> None:
        await self._call(self._on_progress, progress)

    async def on_log(self, entry: LogEntry) -> None:
        await self._call(self._on_log, entry)


class EventSink:
    """Fans progress and log events out to a list of observers.

    A failing observer is reported on the console and skipped; it never
    interrupts the review or commit flow that is emitting the event.
    """

    def __init__(self, observers: Optional[List[ReviewObserver]] = None, console: Optional[Console] = None):
        self.observers: List[ReviewObserver] = list(observers or [])
        self.entries: List[LogEntry] = []
        self.console = console or Console(stderr=True)

    def add_observer(self, observer: ReviewObserver) -> None:
        self.observers.append(observer)

    def remove_observer(self, observer: ReviewObserver) -> None:
        self.observers.remove(observer)

    async def _notify(self, method: str, payload) -> None:
        for observer in list(self.observers):
            try:
                await getattr(observer, method)(payload)
            except Exception as e:
                self.console.print(
                    f"[yellow]Warning: observer {type(observer).__name__} failed: {e}[/yellow]"
                )

    async def progress(self, progress: ScanProgress) -> None:
        await self._notify("on_progress", progress)

    async def log(self, message: str, severity: LogSeverity = LogSeverity.INFO) -> LogEntry:
        entry = LogEntry(message=message, severity=severity)
        self.entries.append(entry)
        await self._notify("on_log", entry)
        return entry

    async def operation_completed(self, result: OperationResult) -> None:
        await self._notify("on_operation_completed", result)
