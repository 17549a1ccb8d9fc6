"""Recurring HTTP job runner."""

__version__ = "0.3.0"
