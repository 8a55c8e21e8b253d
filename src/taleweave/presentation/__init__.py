"""Presentation layer for taleweave."""
