"""Merging imported annotations into the store."""

from .engine import MergeEngine

__all__ = ["MergeEngine"]
