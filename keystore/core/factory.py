"""
Key store construction from settings.
"""

import logging
from typing import Optional
from pydantic import ValidationError

from keystore.adapters.errors import StoreConnectionError
from keystore.adapters.keystore import KeyStore
from keystore.adapters.impl.memory_keystore import InMemoryKeyStore
from keystore.adapters.impl.mongodb_keystore import MongoKeyStore
from keystore.core.config import Settings, create_mongodb_config, get_settings
from keystore.observability.metrics import get_metrics_collector

logger = logging.getLogger("keystore.factory")

SUPPORTED_BACKENDS = ("mongodb", "memory")


async def connect_keystore(settings: Optional[Settings] = None) -> KeyStore:
    """
    Connect the key store backend selected by ``settings.backend``.

    Args:
        settings: Settings to use, defaults to the merged configuration

    Returns:
        A connected KeyStore; the caller closes it on shutdown

    Raises:
        ValueError: If the backend is not supported
        StoreConnectionError: If the backend configuration is invalid or the
            backend cannot be reached
    """
    if settings is None:
        settings = get_settings()

    metrics = get_metrics_collector() if settings.enable_metrics else None

    if settings.backend == "mongodb":
        try:
            config = create_mongodb_config(settings)
        except ValidationError as e:
            raise StoreConnectionError(f"invalid mongodb configuration: {e}") from e
        store: KeyStore = await MongoKeyStore.connect(config, metrics=metrics)
    elif settings.backend == "memory":
        store = InMemoryKeyStore(operation_timeout=settings.operation_timeout, metrics=metrics)
    else:
        raise ValueError(
            f"Unsupported key store backend: {settings.backend} "
            f"(expected one of {', '.join(SUPPORTED_BACKENDS)})"
        )

    logger.info(f"Using key store backend: {settings.backend}")
    return store
