"""
Entry point for running Perplexity CLI as a module.

This allows users to run the CLI using:
    python -m perplexity_cli [command] [options]
"""

from perplexity_cli.cli.app import main

if __name__ == "__main__":
    main()
