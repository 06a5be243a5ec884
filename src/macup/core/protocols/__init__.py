"""Protocols the update engine depends on.

Available protocols:
    ProgressReporter: Fire-and-forget progress observer for executors
    AppRegistry: Persistence port for apps, pending updates and history
    FingerprintStore: Persistence port for cask content hashes
    BundleReader: On-disk installed version lookup

"""

from .ports import AppRegistry, BundleReader, FingerprintStore
from .progress import (
    ByteCounts,
    NullProgressReporter,
    ProgressEvent,
    ProgressReporter,
    QueueProgressReporter,
)

__all__ = [
    "AppRegistry",
    "BundleReader",
    "ByteCounts",
    "FingerprintStore",
    "NullProgressReporter",
    "ProgressEvent",
    "ProgressReporter",
    "QueueProgressReporter",
]
