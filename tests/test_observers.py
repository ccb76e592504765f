import pytest
from unittest.mock import AsyncMock, Mock

from rich.console import Console

from metacommit.models import (
    LogEntry,
    LogSeverity,
    OperationKind,
    OperationResult,
    ScanningProgress,
)
from metacommit.observers import (
    CallbackObserver,
    ConsoleLogObserver,
    EventSink,
    FileLogObserver,
    ReviewObserver,
)


@pytest.fixture
def mock_console():
    console = Mock(spec=Console)
    console.print = Mock()
    return console


@pytest.mark.asyncio
async def test_event_sink_fans_out(mock_console):
    first = Mock(spec=ReviewObserver)
    first.on_log = AsyncMock()
    first.on_progress = AsyncMock()
    second = Mock(spec=ReviewObserver)
    second.on_log = AsyncMock()
    second.on_progress = AsyncMock()
    sink = EventSink([first, second], mock_console)

    entry = await sink.log("Scanning", LogSeverity.PROGRESS)
    progress = ScanningProgress(message="1/2", current=1, total=2)
    await sink.progress(progress)

    assert sink.entries == [entry]
    first.on_log.assert_awaited_once_with(entry)
    second.on_progress.assert_awaited_once_with(progress)


@pytest.mark.asyncio
async def test_failing_observer_is_skipped(mock_console):
    broken = Mock(spec=ReviewObserver)
    broken.on_log = AsyncMock(side_effect=RuntimeError("display closed"))
    healthy = Mock(spec=ReviewObserver)
    healthy.on_log = AsyncMock()
    sink = EventSink([broken, healthy], mock_console)

    await sink.log("still delivered")

    healthy.on_log.assert_awaited_once()
    assert "display closed" in mock_console.print.call_args.args[0]


@pytest.mark.asyncio
async def test_remove_observer(mock_console):
    observer = CallbackObserver(on_log=Mock())
    sink = EventSink(console=mock_console)
    sink.add_observer(observer)
    sink.remove_observer(observer)

    await sink.log("nobody listens")

    assert sink.observers == []


@pytest.mark.asyncio
async def test_callback_observer_sync_and_async():
    seen = []

    async def on_progress(progress):
        seen.append(progress.stage)

    observer = CallbackObserver(on_progress=on_progress, on_log=lambda entry: seen.append(entry.message))

    await observer.on_progress(ScanningProgress(message="go"))
    await observer.on_log(LogEntry(message="hello"))
    await CallbackObserver().on_log(LogEntry(message="ignored"))

    assert seen == ["scanning", "hello"]


@pytest.mark.asyncio
async def test_console_observer(mock_console):
    observer = ConsoleLogObserver(mock_console, show_progress=False)

    await observer.on_progress(ScanningProgress(message="hidden"))
    mock_console.print.assert_not_called()

    await observer.on_log(LogEntry(message="careful", severity=LogSeverity.WARNING))
    assert mock_console.print.call_args.args[0] == "[yellow]careful[/yellow]"

    await observer.on_operation_completed(OperationResult(
        id="push-a", repository_name="a", kind=OperationKind.PUSH, success=True
    ))
    assert "✓ push a" in mock_console.print.call_args.args[0]


@pytest.mark.asyncio
async def test_file_log_observer(tmp_path):
    log_file = tmp_path / "logs" / "review.log"
    observer = FileLogObserver(str(log_file))

    await observer.on_log(LogEntry(message="Scanning repositories...", severity=LogSeverity.PROGRESS))
    await observer.on_progress(ScanningProgress(message="Analyzed a (1/1)", current=1, total=1))
    await observer.on_operation_completed(OperationResult(
        id="commit-a", repository_name="a", kind=OperationKind.COMMIT, success=True,
        verified_hash="0123456789abcdef",
    ))
    await observer.on_operation_completed(OperationResult(
        id="push-a", repository_name="a", kind=OperationKind.PUSH, success=False,
        error=RuntimeError("rejected"),
    ))

    lines = log_file.read_text().splitlines()
    assert len(lines) == 4
    assert lines[0].endswith("[PROGRESS] Scanning repositories...")
    assert lines[1].endswith("stage scanning: Analyzed a (1/1)")
    assert lines[2].endswith("[SUCCESS] Successfully completed commit in a (0123456)")
    assert lines[3].endswith("[ERROR] Failed push in a: rejected")
