"""Multi-repository change review and hierarchical commit orchestration."""

__version__ = "0.1.0"
