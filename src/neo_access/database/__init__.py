"""Database access for neo-access."""

from .connection import DatabaseManager

__all__ = ["DatabaseManager"]
