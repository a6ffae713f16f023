"""Taskhook - due-task completion and webhook dispatch service."""

__version__ = "0.1.0"
