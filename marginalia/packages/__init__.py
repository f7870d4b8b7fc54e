"""Portable annotation packages."""

from .codec import PackageCodec

__all__ = ["PackageCodec"]
