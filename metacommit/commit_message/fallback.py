"""Local, pattern based commit messages used when no AI backend answers."""
import posixpath
from pathlib import PurePosixPath
from typing import List, Sequence

from ..models import CommitType, FileChange, RepositoryChangeData

DOC_EXTENSIONS = {".md", ".rst", ".txt", ".adoc"}
CONFIG_EXTENSIONS = {".json", ".yaml", ".yml", ".toml", ".ini", ".cfg", ".lock", ".env"}
CONFIG_NAMES = {
    "package.json", "pyproject.toml", "setup.cfg", "dockerfile", "makefile",
    ".gitignore", ".gitmodules", ".editorconfig",
}
TEST_MARKERS = ("test", "spec", "__tests__")

_DESCRIPTIONS = {
    CommitType.DOCS: "update documentation",
    CommitType.TEST: "update test suite",
    CommitType.CHORE: "update configuration",
    CommitType.FEAT: "add new functionality",
    CommitType.FIX: "fix issues and improve stability",
    CommitType.REFACTOR: "restructure and clean up code",
}


def _is_doc(path: str) -> bool:
    p = PurePosixPath(path)
    return p.suffix.lower() in DOC_EXTENSIONS or "docs" in p.parts[:-1] or p.name.lower().startswith("readme")


def _is_test(path: str) -> bool:
    p = PurePosixPath(path)
    name = p.name.lower()
    if any(part.lower() in ("tests", "test", "__tests__", "spec") for part in p.parts[:-1]):
        return True
    stem = name.split(".")[0]
    return (
        stem.startswith("test_")
        or stem.endswith("_test")
        or any(f".{marker}." in name for marker in TEST_MARKERS)
    )


def _is_config(path: str) -> bool:
    p = PurePosixPath(path)
    return p.suffix.lower() in CONFIG_EXTENSIONS or p.name.lower() in CONFIG_NAMES


def choose_commit_type(changes: Sequence[FileChange], additions: int, modifications: int, deletions: int) -> CommitType:
    """Pick a conventional commit type from file kinds and change counts."""
    paths = [c.path for c in changes]
    if paths and all(_is_doc(p) for p in paths):
        return CommitType.DOCS
    if paths and all(_is_test(p) for p in paths):
        return CommitType.TEST
    if paths and all(_is_config(p) for p in paths):
        return CommitType.CHORE
    if additions > modifications + deletions:
        return CommitType.FEAT
    if deletions > additions + modifications:
        return CommitType.REFACTOR
    if modifications and not additions and not deletions:
        return CommitType.FIX
    return CommitType.REFACTOR


def choose_scope(changes: Sequence[FileChange], repository_name: str) -> str:
    """Longest common directory of the changed paths, else the repository name."""
    directories = [posixpath.dirname(c.path.replace("\\", "/")) for c in changes]
    if directories and all(directories):
        common = posixpath.commonpath(directories)
        if common and common != ".":
            return common.split("/")[-1]
    return repository_name.split("/")[-1] or repository_name


def _plural(count: int, word: str) -> str:
    return f"{count} {word}{'' if count == 1 else 's'}"


def _primary_extensions(changes: Sequence[FileChange], limit: int = 3) -> List[str]:
    seen: List[str] = []
    for change in changes:
        ext = PurePosixPath(change.path).suffix.lstrip(".").lower() or "none"
        if ext not in seen:
            seen.append(ext)
    return seen[:limit]


def generate_fallback_message(repo: RepositoryChangeData) -> str:
    """Compose a conventional commit message for ``repo`` without any I/O.

    The result always has a subject line, a blank line and a body listing the
    change counts and the main file types.
    """
    stats = repo.statistics
    commit_type = choose_commit_type(repo.changes, stats.additions, stats.modifications, stats.deletions)
    scope = choose_scope(repo.changes, repo.name)

    counts = []
    if stats.additions:
        counts.append(_plural(stats.additions, "addition"))
    if stats.modifications:
        counts.append(_plural(stats.modifications, "modification"))
    if stats.deletions:
        counts.append(_plural(stats.deletions, "deletion"))

    body = [f"- {_plural(stats.total_files, 'file')} changed" + (f" with {', '.join(counts)}" if counts else "")]
    extensions = _primary_extensions(repo.changes)
    if extensions:
        body.append(f"- Primary file types: {', '.join(extensions)}")
    if repo.has_hidden_submodule_changes:
        body.append(f"- {_plural(len(repo.hidden_submodule_changes), 'submodule reference')} updated")

    return f"{commit_type.value}({scope}): {_DESCRIPTIONS[commit_type]}\n\n" + "\n".join(body)
