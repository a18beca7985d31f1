"""
In-memory key store.
"""

import asyncio
from datetime import timedelta
from typing import AsyncIterator, Dict, Optional, TYPE_CHECKING

from keystore.adapters.errors import (
    KeyExistsError,
    KeyNotFoundError,
    StoreConnectionError,
    StoreUnavailableError,
)
from keystore.adapters.keystore import KeyStore, KeyStoreState, check_name, check_value
from keystore.models.schemas import KeyRecord
from keystore.observability.logging import get_logger

if TYPE_CHECKING:
    from keystore.observability.metrics import KeyStoreMetrics

logger = get_logger("keystore.memory")


class InMemoryKeyStore(KeyStore):
    """Process-local key store. Keys are lost when the process exits."""

    backend = "memory"

    def __init__(
        self,
        operation_timeout: Optional[float] = None,
        metrics: Optional["KeyStoreMetrics"] = None,
    ):
        super().__init__(operation_timeout=operation_timeout, metrics=metrics)
        self.records: Dict[str, KeyRecord] = {}
        self._lock = asyncio.Lock()
        self._closed = False

    def _ensure_open(self) -> None:
        if self._closed:
            raise StoreConnectionError("in-memory key store is closed")

    async def close(self) -> None:
        self._ensure_open()
        self._closed = True
        logger.info("In-memory key store closed")

    async def status(self, timeout: Optional[float] = None) -> KeyStoreState:
        if self._closed:
            if self.metrics is not None:
                self.metrics.set_backend_status(self.backend, False)
            raise StoreUnavailableError("in-memory key store is closed")
        if self.metrics is not None:
            self.metrics.set_backend_status(self.backend, True, 0.0)
        return KeyStoreState(latency=timedelta(0))

    async def create(self, name: str, value: bytes, timeout: Optional[float] = None) -> None:
        record = KeyRecord(name=check_name(name), value=check_value(value))
        await self._call("create", self._insert(record), timeout)

    async def _insert(self, record: KeyRecord) -> None:
        self._ensure_open()
        async with self._lock:
            if record.name in self.records:
                raise KeyExistsError(record.name)
            self.records[record.name] = record
        logger.debug("Created key", extra={"key": record.name})

    async def get(self, name: str, timeout: Optional[float] = None) -> bytes:
        return await self._call("get", self._find(check_name(name)), timeout)

    async def _find(self, name: str) -> bytes:
        self._ensure_open()
        record = self.records.get(name)
        if record is None:
            raise KeyNotFoundError(name)
        return record.value

    async def delete(self, name: str, timeout: Optional[float] = None) -> None:
        await self._call("delete", self._delete(check_name(name)), timeout)

    async def _delete(self, name: str) -> None:
        self._ensure_open()
        async with self._lock:
            if self.records.pop(name, None) is None:
                raise KeyNotFoundError(name)
        logger.debug("Deleted key", extra={"key": name})

    async def iter_names(self, prefix: str = "", limit: int = 0) -> AsyncIterator[str]:
        if not isinstance(prefix, str):
            raise TypeError("prefix must be a string")
        self._ensure_open()

        count = 0
        # Snapshot so concurrent creates and deletes don't break iteration
        for name in list(self.records):
            if not name.startswith(prefix):
                continue
            yield name
            count += 1
            if 0 < limit <= count:
                break
