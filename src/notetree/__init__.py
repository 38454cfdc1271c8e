"""notetree - browse, organize and sync a directory of Markdown notes."""

__version__ = "0.1.0"
