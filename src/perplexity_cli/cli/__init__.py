"""
CLI interface package for Perplexity CLI.

This package contains the Typer application and its command handlers.
"""

__all__ = ["app"]
