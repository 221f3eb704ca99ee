"""Conventional-commit driven release publishing."""

__version__ = "0.1.0"
