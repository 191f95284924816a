"""Entry point for running apkg_builder as a module.

Usage:
    python -m apkg_builder <command> [options]
"""
from .cli import main

if __name__ == "__main__":
    raise SystemExit(main())
