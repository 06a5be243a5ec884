"""Caches shared by the checkers of one check cycle."""

from .cask_index import CaskIndex, CaskIndexCache
from .etag import ETagCache, ETagEntry
from .fingerprint import FingerprintChecker, FingerprintVerdict

__all__ = [
    "CaskIndex",
    "CaskIndexCache",
    "ETagCache",
    "ETagEntry",
    "FingerprintChecker",
    "FingerprintVerdict",
]
