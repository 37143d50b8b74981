"""
Adapters layer - Persistence collaborators (in-memory and Firestore).
"""

from .firestore_store import FirestoreClient, FirestoreStore
from .memory_store import MemoryStore

__all__ = ["FirestoreClient", "FirestoreStore", "MemoryStore"]
