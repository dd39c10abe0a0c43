"""
Domain-specific repository for feed and episode persistence.

This module handles the feed list and per-feed episode documents using a
BlobStore. Documents are always rewritten whole.
"""

import json
import logging
from typing import Any, Generic, List, Type, TypeVar

from .models import BlobPaths, Episode, Feed
from .storage import BlobStore

T = TypeVar("T", Feed, Episode)


class Repository(Generic[T]):
    """Generic load-all/save-all repository for JSON array documents."""

    def __init__(self, store: BlobStore):
        """Initialize with store instance."""
        self.store = store
        self.logger = logging.getLogger(__name__)

    def save(self, entities: List[T], path: str) -> None:
        """Save entities as one JSON array document."""
        data = [entity.to_json() for entity in entities]
        payload = json.dumps(data, indent=2, ensure_ascii=False)
        self.store.put_object(path, payload.encode("utf-8"))

    def load(self, path: str, entity_class: Type[T]) -> List[T]:
        """Load entities from a JSON array document.

        A missing or unparseable document yields an empty list; individual
        malformed records are skipped.
        """
        if not self.store.exists(path):
            return []

        try:
            data: Any = json.loads(self.store.get_object(path).decode("utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            self.logger.error("Could not parse %s, starting fresh: %s", path, e)
            return []

        if not isinstance(data, list):
            self.logger.error("Expected a JSON array in %s", path)
            return []

        entities: List[T] = []
        for item in data:
            try:
                entities.append(entity_class.from_dict(item))
            except (KeyError, TypeError, ValueError) as e:
                self.logger.warning(
                    "Skipping malformed %s record in %s: %s",
                    entity_class.__name__, path, e,
                )
        return entities


class FeedRepository:
    """Repository for the feed list and each feed's episode list."""

    def __init__(self, store: BlobStore):
        """Initialize with store instance."""
        self.store = store
        self.feed_repository = Repository[Feed](store)
        self.episode_repository = Repository[Episode](store)

    def load_feeds(self) -> List[Feed]:
        """Load the feed list."""
        return self.feed_repository.load(BlobPaths.FEEDS, Feed)

    def save_feeds(self, feeds: List[Feed]) -> None:
        """Rewrite the feed list."""
        self.feed_repository.save(feeds, BlobPaths.FEEDS)

    def load_episodes(self, feed_id: str) -> List[Episode]:
        """Load all episodes of a feed."""
        return self.episode_repository.load(BlobPaths.episodes(feed_id), Episode)

    def save_episodes(self, feed_id: str, episodes: List[Episode]) -> None:
        """Rewrite a feed's episode list."""
        self.episode_repository.save(episodes, BlobPaths.episodes(feed_id))
