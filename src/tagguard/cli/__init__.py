"""Command-line interface for TagGuard."""

from .main import app

__all__ = ["app"]
