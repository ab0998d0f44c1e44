"""Dump a git repository into a single Markdown or plain text document."""

__version__ = "0.1.0"
