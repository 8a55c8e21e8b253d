"""Command-line player."""
