"""Marginalia: inline AI assistance for a rich-text note editor."""

__version__ = "0.3.0"
