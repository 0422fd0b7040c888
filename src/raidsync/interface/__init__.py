"""Command-line interface for raidsync."""
