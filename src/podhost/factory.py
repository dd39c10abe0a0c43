"""
Factory functions for wiring the podcast host together.

This module provides simple factory functions that wire up dependencies
clearly.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from .cloud_storage import S3BlobStore
from .config import Settings
from .index import FeedIndex
from .metadata import AudioMetadataReader
from .repository import FeedRepository
from .storage import BlobStore, LocalBlobStore
from .sync import BackgroundSync, SyncEngine


@dataclass
class Services:
    """Everything the HTTP layer needs."""

    settings: Settings
    store: BlobStore
    index: FeedIndex
    sync_engine: SyncEngine


def create_store(settings: Settings) -> BlobStore:
    """Create the configured blob store."""
    if settings.storage_backend == "s3":
        return S3BlobStore(
            bucket_name=settings.bucket_name or "",
            endpoint_url=settings.bucket_endpoint,
            key_id=settings.bucket_key_id,
            access_key=settings.bucket_access_key,
            region_name=settings.bucket_region,
        )
    return LocalBlobStore(settings.data_dir)


def create_services(
    settings: Settings, store: Optional[BlobStore] = None
) -> Services:
    """Create the index, load it and run the startup sync."""
    logger = logging.getLogger(__name__)
    store = store or create_store(settings)
    logger.info("Using %s storage", type(store).__name__)

    index = FeedIndex(
        store,
        FeedRepository(store),
        AudioMetadataReader(timeout=settings.metadata_timeout),
    )
    index.load()

    default_feed = settings.default_feed()
    if default_feed is not None and not index.list_feeds():
        index.create_feed(default_feed)
        logger.info("Created default feed '%s'", default_feed.id)

    sync_engine = SyncEngine(index)
    sync_engine.sync_all()

    return Services(settings, store, index, sync_engine)


def start_background_sync(services: Services) -> BackgroundSync:
    """Start the periodic sync thread."""
    worker = BackgroundSync(
        services.sync_engine,
        interval=services.settings.sync_interval,
        initial_delay=services.settings.sync_initial_delay,
    )
    worker.start()
    return worker
