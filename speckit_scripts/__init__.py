"""Speck-It scripts - spec-driven development workflow helpers."""

# No imports at package level to keep the CLI import light;
# import modules directly where needed.

__version__ = "0.3.0"
