"""Command-line entry point for the kulgen pipeline."""

from __future__ import annotations

from kulgen.cli import main

if __name__ == "__main__":
    raise SystemExit(main())
