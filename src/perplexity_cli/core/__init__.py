"""
Core components for Perplexity CLI.

This package provides the API client, the query executor, history recording
and the error types shared by the command handlers.
"""

__all__ = ["client", "errors", "history", "models", "query"]
