"""CLI command modules."""

from ember.cli.commands import config, memory

__all__ = ["config", "memory"]
