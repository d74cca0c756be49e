"""Gale CLI entry point."""

from gale.cli import app

if __name__ == "__main__":
    app()
