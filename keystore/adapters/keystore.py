"""
Key store interface and shared behaviour.
"""

import asyncio
import time
from abc import ABC, abstractmethod
from contextlib import aclosing
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, AsyncIterator, Awaitable, List, NamedTuple, Optional, TYPE_CHECKING

from keystore.adapters.errors import (
    KeyExistsError,
    KeyNotFoundError,
    KeyStoreError,
    OperationCancelledError,
)

if TYPE_CHECKING:
    from keystore.observability.metrics import KeyStoreMetrics


@dataclass
class KeyStoreState:
    """Result of a liveness probe."""
    latency: timedelta


class ListResult(NamedTuple):
    """Names returned by a prefix scan and the continuation cursor."""
    names: List[str]
    last_name: str


def check_name(name: str) -> str:
    """Validate a key name before it reaches the backend."""
    if not isinstance(name, str) or not name:
        raise ValueError("key name must be a non-empty string")
    return name


def check_value(value: Any) -> bytes:
    """Validate a key value and return it as bytes."""
    if not isinstance(value, (bytes, bytearray, memoryview)):
        raise TypeError(f"key value must be bytes, not {type(value).__name__}")
    return bytes(value)


class KeyStore(ABC):
    """
    Abstract base class for key storage backends.

    All operations accept an optional ``timeout`` (seconds). When it expires
    the in-flight backend call is aborted and OperationCancelledError is
    raised. ``None`` falls back to the store's ``operation_timeout``.
    """

    backend = "abstract"

    def __init__(
        self,
        operation_timeout: Optional[float] = None,
        metrics: Optional["KeyStoreMetrics"] = None,
    ):
        self.operation_timeout = operation_timeout
        self.metrics = metrics

    async def __aenter__(self) -> "KeyStore":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    @abstractmethod
    async def close(self) -> None:
        """
        Release the backend connection.

        Must be called at most once, after in-flight operations finished.

        Raises:
            StoreConnectionError: If the connection cannot be torn down
        """
        pass

    @abstractmethod
    async def status(self, timeout: Optional[float] = None) -> KeyStoreState:
        """
        Probe the backend.

        Returns:
            KeyStoreState with the round-trip latency

        Raises:
            StoreUnavailableError: If the probe fails or the deadline expires
        """
        pass

    @abstractmethod
    async def create(self, name: str, value: bytes, timeout: Optional[float] = None) -> None:
        """
        Store a new key.

        Raises:
            KeyExistsError: If a key with this name already exists
            StoreIOError: For other backend failures
        """
        pass

    @abstractmethod
    async def get(self, name: str, timeout: Optional[float] = None) -> bytes:
        """
        Fetch the value of a key.

        Raises:
            KeyNotFoundError: If no key with this name exists
            StoreIOError: For other backend failures
        """
        pass

    @abstractmethod
    async def delete(self, name: str, timeout: Optional[float] = None) -> None:
        """
        Remove a key.

        Raises:
            KeyNotFoundError: If no key with this name exists
            StoreIOError: For other backend failures
        """
        pass

    @abstractmethod
    def iter_names(self, prefix: str = "", limit: int = 0) -> AsyncIterator[str]:
        """
        Lazily yield key names starting with ``prefix``.

        Stops after ``limit`` names when ``limit > 0``. Backend resources are
        released when the iterator is exhausted or closed, so callers that
        stop early should wrap it in ``contextlib.aclosing``.
        """
        pass

    async def list(
        self,
        prefix: str = "",
        limit: int = 0,
        timeout: Optional[float] = None,
    ) -> ListResult:
        """
        List key names starting with ``prefix``.

        Args:
            prefix: Name prefix, empty matches every key
            limit: Maximum number of names, ``<= 0`` for all
            timeout: Deadline in seconds

        Returns:
            ListResult whose ``last_name`` is the last returned name, or ""
            when nothing matched. Callers paginate by deriving the next
            prefix from it.

        Raises:
            StoreIOError: On backend or cursor failures
        """
        return await self._call("list", self._collect_names(prefix, limit), timeout)

    async def _collect_names(self, prefix: str, limit: int) -> ListResult:
        names: List[str] = []
        async with aclosing(self.iter_names(prefix, limit)) as names_iter:
            async for name in names_iter:
                names.append(name)
                if 0 < limit <= len(names):
                    break
        return ListResult(names, names[-1] if names else "")

    async def _call(self, operation: str, coro: Awaitable[Any], timeout: Optional[float]) -> Any:
        """Await a backend call under the caller's deadline and record metrics."""
        if timeout is None:
            timeout = self.operation_timeout

        start = time.monotonic()
        try:
            if timeout is None:
                result = await coro
            else:
                result = await asyncio.wait_for(coro, timeout)
        except asyncio.TimeoutError as e:
            self._record(operation, "cancelled", start)
            raise OperationCancelledError(
                f"{operation} did not complete within {timeout}s"
            ) from e
        except KeyNotFoundError:
            self._record(operation, "not_found", start)
            raise
        except KeyExistsError:
            self._record(operation, "exists", start)
            raise
        except KeyStoreError:
            self._record(operation, "error", start)
            raise

        self._record(operation, "success", start)
        return result

    def _record(self, operation: str, status: str, start: float) -> None:
        if self.metrics is not None:
            self.metrics.record_operation(
                self.backend, operation, status, time.monotonic() - start
            )
