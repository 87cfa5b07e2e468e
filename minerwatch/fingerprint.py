"""Opaque cache identifiers for device keys."""

from __future__ import annotations

import hashlib


def fingerprint(key: str) -> str:
    """Return the SHA-256 hex digest of *key*.

    Snapshots are indexed by this value so the store never holds raw keys.
    """
    return hashlib.sha256(key.encode("utf-8")).hexdigest()
