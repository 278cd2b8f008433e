"""
Perplexity CLI - ask questions of the Perplexity API from the terminal.

This package provides a small command-line client that stores an API key and
a short query history locally, and relays questions to Perplexity's
OpenAI-compatible chat-completion endpoint.
"""

__version__ = "1.0.0"
__author__ = "Perplexity CLI Team"
__license__ = "Apache-2.0"

from typing import Final

# Package metadata
VERSION: Final[str] = __version__
PACKAGE_NAME: Final[str] = "perplexity-cli"
USER_AGENT: Final[str] = f"{PACKAGE_NAME}/{VERSION}"

__all__ = [
    "__version__",
    "VERSION",
    "PACKAGE_NAME",
    "USER_AGENT",
]
