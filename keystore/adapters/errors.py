"""
Key store error taxonomy.

Every backend translates its own failures into these kinds so that callers
never see driver-specific exception types.
"""

from typing import Optional


class KeyStoreError(Exception):
    """Base class for all key store errors."""


class StoreConnectionError(KeyStoreError):
    """The backend connection could not be established or torn down."""


class StoreUnavailableError(KeyStoreError):
    """The liveness probe did not succeed in time."""


class StoreIOError(KeyStoreError):
    """Any other backend failure (network, query, cursor or decode error)."""


class OperationCancelledError(KeyStoreError):
    """The caller's deadline expired before the operation completed."""


class NamedKeyError(KeyStoreError):
    """Base for errors that concern a single named key."""

    default_message = "key error"

    def __init__(self, name: str, message: Optional[str] = None):
        self.name = name
        super().__init__(message or f"{self.default_message}: '{name}'")


class KeyExistsError(NamedKeyError):
    """A key with the given name already exists."""

    default_message = "key already exists"


class KeyNotFoundError(NamedKeyError):
    """No key with the given name exists."""

    default_message = "key does not exist"
