"""Taskhook REST API."""

from taskhook.api.router import router

__all__ = ["router"]
