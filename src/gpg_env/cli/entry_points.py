"""CLI entry points for gpg-env."""

from .cli import PROGRAM_NAME, cli


def main() -> None:
    """Entry point for the ``gpg-env`` console script."""
    cli(prog_name=PROGRAM_NAME)
