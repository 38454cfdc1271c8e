"""Command line interface for notetree."""
