"""
Key store backends for keystore.
"""

from .memory_keystore import InMemoryKeyStore
from .mongodb_keystore import MongoKeyStore

__all__ = [
    "InMemoryKeyStore",
    "MongoKeyStore",
]
