"""CLI application setup using Typer.

Provides the command-line interface for sending NDC messages.
"""

from ndc_client.cli.main import app

__all__ = ["app"]
