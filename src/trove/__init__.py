"""Trove - capture product links into collections."""

__version__ = "0.1.0"
