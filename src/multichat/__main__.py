"""
Entry point for running Multi Chat as a module.

This allows users to run: python -m multichat
"""

from multichat.cli.main import app

if __name__ == "__main__":
    app()
