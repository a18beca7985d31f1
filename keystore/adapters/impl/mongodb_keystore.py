"""
MongoDB key store implementation.
"""

import asyncio
import re
import time
from datetime import timedelta
from typing import Any, AsyncIterator, Dict, Optional, TYPE_CHECKING

from bson.errors import BSONError
from pymongo import AsyncMongoClient
from pymongo.asynchronous.collection import AsyncCollection
from pymongo.errors import DuplicateKeyError, PyMongoError

from keystore.adapters.errors import (
    KeyExistsError,
    KeyNotFoundError,
    KeyStoreError,
    StoreConnectionError,
    StoreIOError,
    StoreUnavailableError,
)
from keystore.adapters.keystore import KeyStore, KeyStoreState, check_name, check_value
from keystore.models.schemas import KeyRecord, MongoDBConfig
from keystore.observability.logging import get_logger

if TYPE_CHECKING:
    from keystore.observability.metrics import KeyStoreMetrics

logger = get_logger("keystore.mongodb")

# Driver failures that are translated at the store boundary
DRIVER_ERRORS = (PyMongoError, BSONError)


def translate_error(error: Exception, name: Optional[str] = None) -> KeyStoreError:
    """
    Map a driver exception to a key store error.

    Args:
        error: Exception raised by pymongo or bson
        name: Key the failed operation targeted, if any

    Returns:
        The KeyStoreError to raise in its place
    """
    if isinstance(error, DuplicateKeyError) and name is not None:
        return KeyExistsError(name)
    if name is not None:
        return StoreIOError(f"mongodb operation on '{name}' failed: {error}")
    return StoreIOError(f"mongodb operation failed: {error}")


def prefix_filter(prefix: str) -> Dict[str, Any]:
    """Build the query matching every id that starts with ``prefix``."""
    if not prefix:
        return {}
    return {"_id": {"$regex": f"^{re.escape(prefix)}"}}


class MongoKeyStore(KeyStore):
    """
    Key store backed by a single MongoDB collection.

    Each key is one document ``{_id: name, value: <binary>, created: <date>}``.
    The unique ``_id`` index makes creation exclusive per name without any
    application-level locking.
    """

    backend = "mongodb"

    def __init__(
        self,
        collection: AsyncCollection,
        client: Optional[AsyncMongoClient] = None,
        operation_timeout: Optional[float] = None,
        metrics: Optional["KeyStoreMetrics"] = None,
    ):
        """
        Initialize the store around an existing collection handle.

        Args:
            collection: Target collection
            client: Client owning the connection pool; closed by ``close()``
            operation_timeout: Default deadline in seconds for each operation
            metrics: Optional metrics collector
        """
        super().__init__(operation_timeout=operation_timeout, metrics=metrics)
        self.collection = collection
        self.client = client if client is not None else collection.database.client

    @classmethod
    async def connect(
        cls,
        config: MongoDBConfig,
        metrics: Optional["KeyStoreMetrics"] = None,
    ) -> "MongoKeyStore":
        """
        Connect to MongoDB and return a store for the configured collection.

        The collection itself is not checked; MongoDB creates it on the
        first insert.

        Raises:
            StoreConnectionError: If the configuration is malformed or the
                server cannot be reached
        """
        try:
            client = AsyncMongoClient(
                config.connection_string,
                connectTimeoutMS=config.connect_timeout_ms,
                serverSelectionTimeoutMS=config.server_selection_timeout_ms,
            )
        except (PyMongoError, ValueError, TypeError) as e:
            raise StoreConnectionError(f"invalid mongodb configuration: {e}") from e

        if config.ping_on_connect:
            try:
                await client.admin.command("ping")
            except PyMongoError as e:
                await client.close()
                raise StoreConnectionError(f"failed to connect to mongodb: {e}") from e

        collection = client[config.database][config.collection]
        logger.info(
            "Connected to mongodb",
            extra={"database": config.database, "collection": config.collection}
        )
        return cls(
            collection,
            client=client,
            operation_timeout=config.operation_timeout,
            metrics=metrics,
        )

    async def close(self) -> None:
        try:
            await self.client.close()
        except PyMongoError as e:
            raise StoreConnectionError(f"failed to disconnect from mongodb: {e}") from e
        logger.info("Disconnected from mongodb")

    async def status(self, timeout: Optional[float] = None) -> KeyStoreState:
        if timeout is None:
            timeout = self.operation_timeout

        start = time.monotonic()
        try:
            ping = self.client.admin.command("ping")
            if timeout is None:
                await ping
            else:
                await asyncio.wait_for(ping, timeout)
        except asyncio.TimeoutError as e:
            self._mark_down(start)
            raise StoreUnavailableError(f"mongodb did not answer within {timeout}s") from e
        except PyMongoError as e:
            self._mark_down(start)
            raise StoreUnavailableError(f"mongodb is not reachable: {e}") from e

        latency = time.monotonic() - start
        self._record("status", "success", start)
        if self.metrics is not None:
            self.metrics.set_backend_status(self.backend, True, latency)
        return KeyStoreState(latency=timedelta(seconds=latency))

    def _mark_down(self, start: float) -> None:
        logger.warning("mongodb liveness probe failed")
        self._record("status", "unavailable", start)
        if self.metrics is not None:
            self.metrics.set_backend_status(self.backend, False)

    async def create(self, name: str, value: bytes, timeout: Optional[float] = None) -> None:
        record = KeyRecord(name=check_name(name), value=check_value(value))
        await self._call("create", self._insert(record), timeout)

    async def _insert(self, record: KeyRecord) -> None:
        try:
            await self.collection.insert_one(record.to_document())
        except DRIVER_ERRORS as e:
            error = translate_error(e, record.name)
            if isinstance(error, KeyExistsError):
                logger.debug("Key already exists", extra={"key": record.name})
            else:
                logger.error("Failed to create key", extra={"key": record.name, "error": str(e)})
            raise error from e
        logger.debug("Created key", extra={"key": record.name})

    async def get(self, name: str, timeout: Optional[float] = None) -> bytes:
        return await self._call("get", self._find(check_name(name)), timeout)

    async def _find(self, name: str) -> bytes:
        try:
            document = await self.collection.find_one({"_id": name})
        except DRIVER_ERRORS as e:
            logger.error("Failed to read key", extra={"key": name, "error": str(e)})
            raise translate_error(e, name) from e

        if document is None:
            raise KeyNotFoundError(name)

        try:
            return KeyRecord.from_document(document).value
        except ValueError as e:
            logger.error("Failed to decode key", extra={"key": name, "error": str(e)})
            raise StoreIOError(f"failed to decode key '{name}': {e}") from e

    async def delete(self, name: str, timeout: Optional[float] = None) -> None:
        await self._call("delete", self._delete(check_name(name)), timeout)

    async def _delete(self, name: str) -> None:
        try:
            result = await self.collection.delete_one({"_id": name})
        except DRIVER_ERRORS as e:
            logger.error("Failed to delete key", extra={"key": name, "error": str(e)})
            raise translate_error(e, name) from e

        if result.deleted_count == 0:
            raise KeyNotFoundError(name)
        logger.debug("Deleted key", extra={"key": name})

    async def iter_names(self, prefix: str = "", limit: int = 0) -> AsyncIterator[str]:
        if not isinstance(prefix, str):
            raise TypeError("prefix must be a string")

        limit = max(limit, 0)
        cursor = self.collection.find(prefix_filter(prefix), projection={"_id": True}, limit=limit)
        count = 0
        try:
            async for document in cursor:
                name = document.get("_id")
                if not isinstance(name, str):
                    raise StoreIOError(f"key document has a non-string id: {name!r}")
                yield name
                count += 1
                if limit and count >= limit:
                    break
        except DRIVER_ERRORS as e:
            logger.error("Failed to list keys", extra={"prefix": prefix, "error": str(e)})
            raise translate_error(e) from e
        finally:
            await cursor.close()
