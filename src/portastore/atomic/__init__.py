"""Atom-typed views over the typed facades' providers."""

from .bucket import AtomicBucket, AtomicObject
from .database import AtomicTable
from .index import AtomicIndex, AtomicVector
from .store import AtomicStore

__all__ = [
    "AtomicBucket",
    "AtomicIndex",
    "AtomicObject",
    "AtomicStore",
    "AtomicTable",
    "AtomicVector",
]
