#!/usr/bin/env python3
import asyncio
import os
from pathlib import Path
from typing import Optional

import click
import pyperclip
from rich.console import Console
from rich.markdown import Markdown

from . import __version__
from .config import DEFAULT_CONFIG_FILENAME, Config
from .core import GitCommitter, GitStatusService
from .factories import get_agent_factory
from .models import ChangeReviewReport, HierarchicalCommitResult
from .observers import ConsoleLogObserver, EventSink, FileLogObserver
from .orchestrator import ReviewOrchestrator

console = Console()


def run_async(coro):
    """Run an async coroutine to completion from synchronous code."""
    return asyncio.run(coro)


def print_report(report: ChangeReviewReport) -> None:
    stats = report.aggregate_statistics
    console.print(
        f"\n[bold]{len(stats.affected_packages)} repositories with changes[/bold] "
        f"({stats.total_files} files: +{stats.additions} ~{stats.modifications} -{stats.deletions})"
    )
    for repo in report.repositories:
        if not repo.has_uncommitted_work and not repo.error:
            continue
        console.print(f"\n[bold cyan]{repo.name}[/bold cyan] [dim]({repo.repository.branch_name})[/dim]")
        if repo.error:
            console.print(f"[red]{repo.error}[/red]")
            continue
        for change in repo.changes:
            console.print(f"  [dim]{change.status.code:>2}[/dim] {change.path}")
        if repo.has_hidden_submodule_changes:
            refs = ", ".join(c.path for c in repo.hidden_submodule_changes)
            console.print(f"  [dim]submodule refs: {refs}[/dim]")
        if repo.generated_commit_message:
            console.print(f"[green]{repo.generated_commit_message}[/green]")
    if report.executive_summary:
        console.print()
        console.print(Markdown(report.executive_summary))


def print_commit_result(result: HierarchicalCommitResult) -> None:
    committed = len(result.commit_results) - len(result.failed_commits)
    console.print(f"\n[bold]Committed {committed}/{len(result.commit_results)} repositories[/bold]")
    if result.push_skipped:
        console.print("[yellow]Push skipped because not every commit succeeded[/yellow]")
    elif result.push_results:
        pushed = len(result.push_results) - len(result.failed_pushes)
        console.print(f"[bold]Pushed {pushed}/{len(result.push_results)} repositories[/bold]")


def print_config(config: Config, workspace: Path) -> None:
    config_path = workspace / DEFAULT_CONFIG_FILENAME
    source = "config" if config_path.exists() else "default"

    console.print("\n[bold]Current Configuration Settings:[/bold]")
    if config_path.exists():
        console.print(f"[dim]Config file: {str(config_path).replace(os.sep, '/')}[/dim]")
    else:
        console.print("[dim]Using default values (no config file found)[/dim]")

    console.print(f"\n{'Setting':<22} {'Value':<30} {'Source':<10}")
    console.print("-" * 62)
    for name, value in config.model_dump().items():
        if name == "workspace_root":
            continue
        if isinstance(value, list):
            value = ", ".join(value)
        console.print(f"{name:<22} {str(value if value is not None else 'None'):<30} {source:<10}")

    console.print(
        f"\nTo modify these settings, create or edit {DEFAULT_CONFIG_FILENAME} in your workspace root"
    )


def review_and_commit(orchestrator: ReviewOrchestrator, config: Config, dry_run: bool, repo_name: Optional[str]) -> bool:
    """Run a review, print it, then commit one or all repositories."""
    report = run_async(orchestrator.perform_comprehensive_review())
    print_report(report)

    if dry_run:
        return True

    if repo_name:
        repo = report.find(repo_name)
        if repo is None:
            raise click.BadParameter(f"Unknown repository '{repo_name}'", param_hint="--repo")
        if not repo.generated_commit_message:
            console.print(f"[yellow]No commit message for {repo_name}, nothing to commit[/yellow]")
            return True
        return run_async(orchestrator.commit_repository(
            repo.path, repo.generated_commit_message, push=config.auto_push
        ))

    result = run_async(orchestrator.commit_all(push=config.auto_push))
    print_commit_result(result)
    return result.success


@click.command()
@click.option(
    "--config-dir",
    is_flag=True,
    help="Display the config file location and copy it to clipboard",
)
@click.option(
    "--config-list", is_flag=True, help="Display current configuration settings"
)
@click.option(
    "-p",
    "--path",
    default=".",
    help="Path to the meta repository (defaults to current directory)",
    type=click.Path(exists=True, file_okay=False, dir_okay=True, path_type=Path),
)
@click.option(
    "-d", "--dry-run", is_flag=True, help="Review changes and show proposed commits without committing"
)
@click.option(
    "-a",
    "--auto-push",
    is_flag=True,
    help="Push all repositories after every commit succeeded (overrides config setting)",
)
@click.option(
    "--push-only",
    is_flag=True,
    help="Skip the review and push every repository that is ahead of its remote",
)
@click.option(
    "-r",
    "--repo",
    "repo_name",
    help="Only commit the named repository from the review",
)
@click.option(
    "-l",
    "--log-file",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Optional file to log review and git operations (overrides config setting)",
)
@click.option(
    "--model",
    default=None,
    help="AI model to use (e.g. claude-3-5-sonnet-latest, gemini-1.5-pro, ollama:qwen2.5-coder:7b)",
)
@click.option(
    "--api-key",
    envvar=[
        "GEMINI_API_KEY",
        "GOOGLE_API_KEY",
        "ANTHROPIC_API_KEY",
    ],
    help="API key for the selected model. Can also be set via GEMINI_API_KEY, GOOGLE_API_KEY or ANTHROPIC_API_KEY. Not needed for Ollama models.",
)
@click.option("--version", is_flag=True, help="Display version information and exit")
def main(
    config_dir: bool,
    config_list: bool,
    path: Path,
    dry_run: bool,
    auto_push: bool,
    push_only: bool,
    repo_name: Optional[str],
    log_file: Optional[Path],
    model: Optional[str],
    api_key: Optional[str],
    version: bool,
):
    """
    Review uncommitted work across a meta repository and its submodules.

    This tool will:
    1. Scan the meta repository and every submodule for changes
    2. Generate a commit message per repository and an executive summary
    3. Commit submodules first and the meta repository last
    4. Optionally push everything once all commits succeeded

    Configuration can be set in .metacommit.toml in the workspace root.
    Command line options override configuration file settings.
    """
    success = True
    try:
        if version:
            console.print(f"metacommit {__version__}")
            return

        workspace = path.absolute()

        if config_list:
            print_config(Config.load(workspace), workspace)
            return

        if config_dir:
            config_path = workspace / DEFAULT_CONFIG_FILENAME

            # Create default config file if it doesn't exist
            if not config_path.exists():
                Config(workspace_root=str(workspace)).save(workspace)
                console.print("[yellow]Created new config file with default values[/yellow]")

            pyperclip.copy(str(config_path))
            console.print(f"[green]Config file location:[/green] {config_path}")
            console.print("[green]Path copied to clipboard![/green]")
            return

        config = Config.load(workspace)
        if auto_push:
            config.auto_push = True
        if log_file is not None:
            config.log_file = str(log_file)
        if model is not None:
            config.model = model

        sink = EventSink([ConsoleLogObserver(console, show_progress=False)], console)
        log_file_path = log_file or config.get_log_file()
        if log_file_path:
            sink.add_observer(FileLogObserver(str(log_file_path)))

        generation_service = get_agent_factory(config.model, api_key).create_generation_service()
        orchestrator = ReviewOrchestrator.create(
            config,
            GitStatusService(config, console),
            GitCommitter(config, console),
            generation_service,
            sink,
        )

        if push_only:
            results = run_async(orchestrator.push_all())
            success = all(r.success for r in results)
        else:
            success = review_and_commit(orchestrator, config, dry_run, repo_name)
    except click.BadParameter:
        raise
    except KeyboardInterrupt:
        console.print("\n[yellow]Operation cancelled by user[/yellow]")
    except Exception as e:
        console.print(f"[red]Error: {str(e)}[/red]")
        raise click.Abort()

    if not success:
        raise click.exceptions.Exit(1)


if __name__ == "__main__":
    main()
