"""Command-line interface for gpg-env."""

from .cli import cli
from .entry_points import main

__all__ = ["cli", "main"]
