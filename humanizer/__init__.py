"""Humanizer backend: queued text humanization with background workers."""

__version__ = "1.0.0"
