"""
Content checksums for Marginalia documents.

The checksum is both the change-detection signal for stored documents and the
provenance fingerprint embedded in exported annotation packages.
"""

import hashlib


def checksum(content: str) -> str:
    """
    Calculate the SHA-256 hash of a document's raw content.

    Args:
        content: The document text

    Returns:
        The SHA-256 hash as a hex string
    """
    return hashlib.sha256(content.encode('utf-8')).hexdigest()
