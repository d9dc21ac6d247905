"""Selects the storage coordinator once at process start."""

from typing import Optional

from loguru import logger

from .adapters import LocalProcessStore, RemoteCoordinatedStore
from .ports import StorageCoordinator
from ..config import Settings, get_settings


def build_coordinator(settings: Optional[Settings] = None) -> StorageCoordinator:
    """
    Build the storage coordinator for this process.

    Redis is used whenever host and port are configured; otherwise claims are
    coordinated in process memory only.

    Args:
        settings: Settings to read. Defaults to the cached settings.

    Returns:
        The coordinator to inject into the claim protocols.
    """
    settings = settings or get_settings()

    if settings.redis_configured:
        store = RemoteCoordinatedStore(
            host=settings.REDIS_HOST,
            port=settings.REDIS_PORT,
            db=settings.REDIS_DB,
            password=settings.REDIS_PASSWORD,
            connect_timeout=settings.REDIS_CONNECT_TIMEOUT_SECONDS,
            operation_timeout=settings.REDIS_OPERATION_TIMEOUT_SECONDS,
            optimistic_attempts=settings.CLAIM_OPTIMISTIC_ATTEMPTS,
        )
    else:
        logger.warning(
            "REDIS_HOST/REDIS_PORT not configured, ticket claims are only "
            "exclusive within this process"
        )
        store = LocalProcessStore()

    logger.info(f"Ticket claim storage: {store.describe()}")
    return store
