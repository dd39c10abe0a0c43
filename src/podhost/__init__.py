"""
Podcast host package - Serves RSS feeds for audio files kept in an
object store and keeps the feed index in sync with that store.

This package provides a modular approach with separate components for
data models, storage, metadata extraction, synchronization and the HTTP
surface.
"""

from .exceptions import ConflictError, PodhostError, StorageError, ValidationError
from .factory import create_services, start_background_sync
from .index import FeedIndex
from .models import Episode, Feed, derive_episode_id
from .rss import generate_feed

__all__ = [
    "create_services",
    "start_background_sync",
    "FeedIndex",
    "Episode",
    "Feed",
    "derive_episode_id",
    "generate_feed",
    "PodhostError",
    "ConflictError",
    "ValidationError",
    "StorageError",
]
