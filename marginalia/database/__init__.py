"""Record storage for Marginalia."""

from .manager import DatabaseManager

__all__ = ["DatabaseManager"]
