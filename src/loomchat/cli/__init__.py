"""Command-line interface for loomchat."""
