"""Commit message generation package."""

from .fallback import generate_fallback_message
from .generator import CommitMessageGenerator
from .strategy import (
    GenerationMode,
    GenerationStrategy,
    HeuristicStrategy,
    RemoteStrategy,
    default_strategies,
    estimate_tokens,
)

__all__ = [
    'CommitMessageGenerator',
    'GenerationMode',
    'GenerationStrategy',
    'HeuristicStrategy',
    'RemoteStrategy',
    'default_strategies',
    'estimate_tokens',
    'generate_fallback_message',
]
