"""Configuration management for metacommit."""
from pathlib import Path
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field
import tomli
import tomli_w
import os
import re

DEFAULT_CONFIG_FILENAME = ".metacommit.toml"
CONFIG_SECTION = "metacommit"

STRING_FIELDS = ['workspace_root', 'meta_repository_name', 'model', 'remote_name', 'log_file']
BOOL_FIELDS = ['auto_push', 'always_log']
INT_FIELDS = ['token_threshold', 'commit_retries', 'push_retries']
FLOAT_FIELDS = ['generation_timeout', 'summary_timeout', 'retry_delay']


_CONTROL_CHARS = re.compile(r'[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]')
_SHELL_META = re.compile(r'[;&|`$()]')
_SYSTEM_DIRS = re.compile(
    r'/(etc|var|usr|bin|sbin)/|C:\\(Windows|System|Program)', re.IGNORECASE
)
MAX_VALUE_LENGTH = 1000


def clean_value(value: str) -> str:
    """Strip control characters and anything past a shell metacharacter."""
    if not value:
        return value
    head = _SHELL_META.split(_CONTROL_CHARS.sub('', value), maxsplit=1)[0]
    return head[:MAX_VALUE_LENGTH].strip()


def is_relative_log_path(path: Optional[str]) -> bool:
    """True for a relative path that stays inside the working directory."""
    if not path or os.path.isabs(path):
        return False
    if path.startswith('/') or '\\' in path or '..' in path:
        return False
    return _SYSTEM_DIRS.search(path) is None


class Config(BaseModel):
    """Configuration settings for metacommit.

    Values come from (in increasing priority) the defaults below,
    ``METACOMMIT_*`` environment variables, the ``[metacommit]`` table of
    ``.metacommit.toml`` in the workspace root, and explicit keyword arguments.
    """

    workspace_root: str = Field(
        default=".",
        description="Path of the parent (meta) repository that owns the submodules"
    )

    meta_repository_name: Optional[str] = Field(
        default=None,
        description="Display name of the meta repository (defaults to the workspace directory name)"
    )

    submodule_prefixes: List[str] = Field(
        default_factory=lambda: ["packages/"],
        description="Path prefixes that hold submodules in the meta repository"
    )

    model: str = Field(
        default="claude-3-5-sonnet-latest",
        description="AI model used for commit messages and the executive summary"
    )

    remote_name: str = Field(
        default="origin",
        description="Name of the remote repository (e.g., origin, upstream)"
    )

    auto_push: bool = Field(
        default=False,
        description="Whether to push all repositories after a successful commit phase"
    )

    token_threshold: int = Field(
        default=150_000,
        description="Estimated token count above which file lists replace full diffs"
    )

    generation_timeout: float = Field(
        default=25 * 60,
        description="Seconds to wait for commit message generation"
    )

    summary_timeout: float = Field(
        default=5 * 60,
        description="Seconds to wait for the executive summary"
    )

    commit_retries: int = Field(
        default=3,
        description="Retries for a failing commit operation"
    )

    push_retries: int = Field(
        default=2,
        description="Retries for a failing push operation"
    )

    retry_delay: float = Field(
        default=1.0,
        description="Base delay in seconds for exponential retry backoff"
    )

    always_log: bool = Field(
        default=False,
        description="Whether to always generate log files"
    )

    log_file: Optional[str] = Field(
        default=None,
        description="Path to log file (if not using automatic log file generation)"
    )

    @property
    def meta_name(self) -> str:
        return self.meta_repository_name or Path(self.workspace_root).resolve().name

    @classmethod
    def load(cls, workspace_root: Path) -> 'Config':
        """Read ``.metacommit.toml`` from the workspace root.

        A missing or unreadable file yields the defaults; string values are
        cleaned and an unsafe ``log_file`` is dropped with a warning.
        """
        config_path = workspace_root / DEFAULT_CONFIG_FILENAME
        if not config_path.exists():
            return cls(workspace_root=str(workspace_root))

        try:
            with config_path.open('rb') as f:
                section = dict(tomli.load(f).get(CONFIG_SECTION, {}))
        except (OSError, tomli.TOMLDecodeError) as e:
            print(f"Warning: could not read {config_path.name}: {e}")
            return cls(workspace_root=str(workspace_root))

        section = {
            key: clean_value(value) if key in STRING_FIELDS and isinstance(value, str) else value
            for key, value in section.items()
        }
        log_file = section.get('log_file')
        if log_file and not is_relative_log_path(log_file):
            print(f"Warning: ignoring log file outside the workspace: '{log_file}'")
            section['log_file'] = None
        section.setdefault('workspace_root', str(workspace_root))

        try:
            return cls(**section)
        except ValueError as e:
            print(f"Warning: invalid settings in {config_path.name}: {e}")
            return cls(workspace_root=str(workspace_root))

    def save(self, workspace_root: Path) -> None:
        """Write the settings to ``.metacommit.toml`` in the workspace root."""
        # workspace_root is implied by where the file lives
        settings = self.model_dump(exclude={'workspace_root'}, exclude_none=True)
        if 'log_file' in settings and not is_relative_log_path(settings['log_file']):
            print(f"Warning: not saving log file outside the workspace: '{settings['log_file']}'")
            del settings['log_file']

        try:
            with (workspace_root / DEFAULT_CONFIG_FILENAME).open('wb') as f:
                tomli_w.dump({CONFIG_SECTION: settings}, f)
        except OSError as e:
            print(f"Error writing config file: {e}")

    def get_log_file(self) -> Optional[Path]:
        """Where the review log should go, or None when logging is off.

        ``always_log`` wins over ``log_file`` and produces a timestamped name.
        """
        if self.always_log:
            return Path(f"metacommit_log-{datetime.now():%Y-%m-%d_%H-%M-%S}.log")
        if not self.log_file:
            return None
        if not is_relative_log_path(self.log_file):
            print(f"Warning: ignoring log file outside the workspace: '{self.log_file}'")
            return None
        return Path(self.log_file)

    def __init__(self, **data):
        super().__init__(**{**_settings_from_env(), **data})


def _settings_from_env() -> dict:
    """Collect ``METACOMMIT_<FIELD>`` overrides from the environment."""
    found = {}
    for field_name in STRING_FIELDS + BOOL_FIELDS + INT_FIELDS + FLOAT_FIELDS:
        raw = os.environ.get(f"METACOMMIT_{field_name.upper()}")
        if raw is None:
            continue
        if field_name in STRING_FIELDS:
            found[field_name] = clean_value(raw)
        elif field_name in BOOL_FIELDS:
            found[field_name] = raw.strip().lower() in ('true', '1', 'yes', 'on')
        else:
            found[field_name] = raw

    prefixes = os.environ.get('METACOMMIT_SUBMODULE_PREFIXES')
    if prefixes is not None:
        found['submodule_prefixes'] = [p.strip() for p in prefixes.split(',') if p.strip()]
    return found
