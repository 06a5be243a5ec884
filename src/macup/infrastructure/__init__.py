"""Storage adapters for the app registry."""

from macup.infrastructure.store import JsonAppStore

__all__ = ["JsonAppStore"]
