"""
Key store interface and error types for keystore.
"""

from .errors import (
    KeyStoreError,
    StoreConnectionError,
    StoreUnavailableError,
    StoreIOError,
    OperationCancelledError,
    KeyExistsError,
    KeyNotFoundError,
)
from .keystore import KeyStore, KeyStoreState, ListResult

__all__ = [
    "KeyStore",
    "KeyStoreState",
    "ListResult",
    "KeyStoreError",
    "StoreConnectionError",
    "StoreUnavailableError",
    "StoreIOError",
    "OperationCancelledError",
    "KeyExistsError",
    "KeyNotFoundError",
]
