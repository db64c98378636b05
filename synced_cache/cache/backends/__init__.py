"""
Synced Cache — Key-Value Media

Exports available key-value medium implementations.

Redis medium is lazy-loaded via factory.py to avoid import overhead.
"""

from .memory import MemoryKeyValueStore

__all__ = [
    "MemoryKeyValueStore",
]
