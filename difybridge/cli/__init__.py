"""CLI application setup using Typer.

Provides the command-line interface for difybridge operations.
"""

from difybridge.cli.main import app

__all__ = ["app"]
