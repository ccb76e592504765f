"""Git operation commands using the Command Pattern.

Example:
    ```python
    from metacommit.commands import CommitCommand

    outcome = await CommitCommand(repo, "fix(api): handle empty payloads").execute()
    if outcome.success:
        print(outcome.hash)
    ```
"""

from .base import GitCommand
from .commit import CommitCommand
from .push import PushCommand

__all__ = [
    "GitCommand",
    "CommitCommand",
    "PushCommand",
]
