"""
Configuration package for Perplexity CLI.

This package contains runtime settings and the on-disk config store that
holds the API key and query history.
"""

__all__ = ["settings", "store"]
