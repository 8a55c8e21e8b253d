"""Taleweave: a story graph engine for visual novels."""

__version__ = "0.1.0"

__all__ = ["__version__"]
