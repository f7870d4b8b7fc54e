"""
Error types for Marginalia.

Every failure raised by the store, the package codec, the merge engine and the
migration engine is a subclass of MarginaliaError, so callers can branch on the
kind of failure and only flatten it to text at the outermost boundary.
"""


class MarginaliaError(Exception):
    """Base class for all Marginalia errors."""


class NotFoundError(MarginaliaError):
    """A document, annotation or user does not exist."""


class VersionMismatchError(MarginaliaError):
    """An annotation package carries an unsupported version."""

    def __init__(self, version: str, expected: str):
        self.version = version
        self.expected = expected
        super().__init__(f"Unsupported package version: {version!r} (expected {expected!r})")


class MalformedInputError(MarginaliaError):
    """JSON input does not match any accepted shape."""


class IoFailureError(MarginaliaError):
    """Filesystem or storage access failed."""


class ConstraintViolationError(MarginaliaError):
    """A write would break a storage constraint (duplicate key, bad reference)."""
