"""
In-memory feed and episode index backed by the object store.

Every public method runs under one process-wide lock, including its
object-store I/O, so the in-memory view and the persisted documents never
diverge mid-operation. Lists are replaced, never mutated in place.
"""

import logging
import os
import threading
from dataclasses import replace
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from .exceptions import ConflictError, ValidationError
from .metadata import AudioMetadataReader, get_default_reader, resolve_publish_date
from .models import (
    BlobPaths,
    Episode,
    Feed,
    derive_episode_id,
    parse_title_from_filename,
)
from .repository import FeedRepository
from .storage import BlobStore


def _find(episodes: List[Episode], episode_id: str) -> Optional[Episode]:
    return next((e for e in episodes if e.id == episode_id), None)


def _newest_first(episodes: List[Episode]) -> List[Episode]:
    return sorted(episodes, key=lambda e: e.published_date, reverse=True)


class FeedIndex:
    """
    Multi-feed episode index guarded by a single lock.

    ``feeds`` (in feed-list order) and ``episodes`` may only be read or
    replaced while holding ``lock``.
    """

    def __init__(
        self,
        store: BlobStore,
        repository: Optional[FeedRepository] = None,
        metadata_reader: Optional[AudioMetadataReader] = None,
    ):
        """Initialize with dependencies."""
        self.logger = logging.getLogger(__name__)
        self.store = store
        self.repository = repository or FeedRepository(store)
        self.metadata_reader = metadata_reader or get_default_reader()
        self.lock = threading.Lock()
        self.feeds: Dict[str, Feed] = {}
        self.episodes: Dict[str, List[Episode]] = {}

    # Persistence helpers; the caller holds the lock.

    def _persist_feeds(self, feeds: Dict[str, Feed]) -> None:
        self.repository.save_feeds(list(feeds.values()))
        self.feeds = feeds

    def commit_episodes(self, feed_id: str, episodes: List[Episode]) -> None:
        """Persist a feed's episode list, then make it current.

        The caller must hold ``lock``.
        """
        self.repository.save_episodes(feed_id, episodes)
        self.episodes[feed_id] = episodes

    def _require_feed(self, feed_id: str, role: str = "Feed") -> Feed:
        feed = self.feeds.get(feed_id)
        if feed is None:
            raise ConflictError(f"{role} '{feed_id}' not found")
        return feed

    # Loading

    def load(self) -> None:
        """Hydrate the index from the persisted feed list and episode lists."""
        with self.lock:
            feeds = self.repository.load_feeds()
            self.feeds = {feed.id: feed for feed in feeds}
            self.episodes = {
                feed.id: self.repository.load_episodes(feed.id) for feed in feeds
            }
            self.logger.info(
                "Loaded %d feeds with %d episodes",
                len(self.feeds),
                sum(len(items) for items in self.episodes.values()),
            )

    # Feed reads

    def list_feeds(self) -> List[Feed]:
        """All feeds in feed-list order."""
        with self.lock:
            return list(self.feeds.values())

    def get_feed(self, feed_id: str) -> Optional[Feed]:
        """Get one feed, or None."""
        with self.lock:
            return self.feeds.get(feed_id)

    def snapshot(self, feed_id: str) -> Optional[Tuple[Feed, List[Episode]]]:
        """A feed and its episodes (newest first) read under one lock."""
        with self.lock:
            feed = self.feeds.get(feed_id)
            if feed is None:
                return None
            return feed, _newest_first(self.episodes.get(feed_id, []))

    # Feed lifecycle

    def create_feed(self, feed: Feed) -> Feed:
        """Add a new feed; its id must not exist yet."""
        with self.lock:
            if feed.id in self.feeds:
                raise ConflictError(f"Feed '{feed.id}' already exists")
            feeds = dict(self.feeds)
            feeds[feed.id] = feed
            self._persist_feeds(feeds)
            self.episodes.setdefault(feed.id, [])
            self.logger.info("Created feed '%s' (%s)", feed.id, feed.title)
            return feed

    def update_feed(self, feed_id: str, feed: Feed) -> Feed:
        """Replace a feed's configuration; the id cannot change here."""
        with self.lock:
            if feed_id not in self.feeds:
                raise ConflictError(f"Feed '{feed_id}' not found")
            if feed.id != feed_id:
                raise ConflictError(
                    "Feed id cannot be changed by an update; rename the feed instead"
                )
            feeds = dict(self.feeds)
            feeds[feed_id] = feed
            self._persist_feeds(feeds)
            self.logger.info("Updated feed '%s'", feed_id)
            return feed

    def rename_feed(self, old_id: str, new_id: str) -> Feed:
        """Give a feed a new id, relocating its blobs and episodes."""
        with self.lock:
            feed = self.feeds.get(old_id)
            if feed is None:
                raise ConflictError(f"Feed '{old_id}' not found")
            if new_id in self.feeds:
                raise ConflictError(f"Feed '{new_id}' already exists")

            renamed = replace(feed, id=new_id)
            if feed.image_url == BlobPaths.icon(old_id):
                renamed = replace(renamed, image_url=BlobPaths.icon(new_id))

            old_prefix = BlobPaths.feed_prefix(old_id)
            new_prefix = BlobPaths.feed_prefix(new_id)
            keys = self.store.list_by_prefix(old_prefix)
            for key in keys:
                self.store.copy(key, new_prefix + key[len(old_prefix):])
            self.store.delete_by_prefix(old_prefix)

            episodes = [
                replace(e, feed_id=new_id) for e in self.episodes.get(old_id, [])
            ]
            self.repository.save_episodes(new_id, episodes)
            feeds = {
                (new_id if key == old_id else key): (renamed if key == old_id else value)
                for key, value in self.feeds.items()
            }
            self._persist_feeds(feeds)
            self.episodes.pop(old_id, None)
            self.episodes[new_id] = episodes

            self.logger.info(
                "Renamed feed '%s' to '%s' (%d blobs moved)", old_id, new_id, len(keys)
            )
            return renamed

    def delete_feed(self, feed_id: str) -> bool:
        """Delete a feed with all its episodes and blobs."""
        with self.lock:
            if feed_id not in self.feeds:
                return False
            removed = self.store.delete_by_prefix(BlobPaths.feed_prefix(feed_id))
            feeds = {key: value for key, value in self.feeds.items() if key != feed_id}
            self._persist_feeds(feeds)
            self.episodes.pop(feed_id, None)
            self.logger.info("Deleted feed '%s' (%d blobs removed)", feed_id, removed)
            return True

    def set_feed_icon(self, feed_id: str, image: bytes) -> Feed:
        """Store a feed's cover art and bump its cache-busting version."""
        with self.lock:
            feed = self._require_feed(feed_id)
            path = BlobPaths.icon(feed_id)
            self.store.put_object(path, image)
            version = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
            updated = replace(feed, image_url=path, image_version=version)
            feeds = dict(self.feeds)
            feeds[feed_id] = updated
            self._persist_feeds(feeds)
            self.logger.info("Updated icon of feed '%s' (version %s)", feed_id, version)
            return updated

    # Episode reads

    def list_episodes(self, feed_id: str) -> List[Episode]:
        """Episodes of a feed, newest first; empty for an unknown feed."""
        with self.lock:
            return _newest_first(self.episodes.get(feed_id, []))

    def get_episode(self, feed_id: str, episode_id: str) -> Optional[Episode]:
        """Get an episode by id within a feed, or None."""
        with self.lock:
            return _find(self.episodes.get(feed_id, []), episode_id)

    # Episode mutation

    def add_episode(  # pylint: disable=too-many-arguments
        self,
        feed_id: str,
        file_path: str,
        title: Optional[str] = None,
        description: Optional[str] = None,
        published_date: Optional[datetime] = None,
        use_metadata: Optional[bool] = None,
    ) -> Episode:
        """Upload an audio file as a new episode of a feed.

        Re-adding the same file name and size returns the existing episode
        unchanged.
        """
        if not os.path.isfile(file_path):
            raise ValidationError(f"Audio file not found: {file_path}")

        file_name = os.path.basename(file_path)
        file_size = os.path.getsize(file_path)
        episode_id = derive_episode_id(feed_id, file_name, file_size)

        with self.lock:
            feed = self._require_feed(feed_id)
            current = self.episodes.get(feed_id, [])

            existing = _find(current, episode_id)
            if existing is not None:
                self.logger.info(
                    "Episode %s already exists in '%s', skipping", episode_id, feed_id
                )
                return existing

            properties = self.metadata_reader.read_audio_properties(file_path)
            published = resolve_publish_date(
                file_path,
                explicit_date=published_date,
                use_metadata=use_metadata,
                feed_prefers_metadata=feed.use_file_metadata_for_publish_date,
                reader=self.metadata_reader,
                properties=properties,
            )
            episode = Episode(
                id=episode_id,
                feed_id=feed_id,
                title=title.strip() if title and title.strip()
                else parse_title_from_filename(file_name),
                description=description or "",
                file_name=file_name,
                file_size=file_size,
                duration_seconds=properties.duration_seconds,
                published_date=published,
            )

            self.store.upload_file(BlobPaths.audio(feed_id, file_name), file_path)

            replaced = [e for e in current if e.file_name == file_name]
            if replaced:
                self.logger.info(
                    "Replacing episode %s: %s was overwritten", replaced[0].id, file_name
                )
            episodes = [e for e in current if e.file_name != file_name]
            self.commit_episodes(feed_id, episodes + [episode])

            self.logger.info(
                "Added episode to '%s': %s (%s)", feed_id, episode.title, episode.id
            )
            return episode

    def delete_episode(self, feed_id: str, episode_id: str) -> bool:
        """Delete an episode and its audio file; False when not found."""
        with self.lock:
            current = self.episodes.get(feed_id, [])
            episode = _find(current, episode_id)
            if episode is None:
                return False

            self.store.delete(BlobPaths.audio(feed_id, episode.file_name))
            self.commit_episodes(feed_id, [e for e in current if e.id != episode_id])

            self.logger.info(
                "Deleted episode from '%s': %s (%s)", feed_id, episode.title, episode.id
            )
            return True

    def move_episode(
        self, episode_id: str, source_feed_id: str, target_feed_id: str
    ) -> Optional[Episode]:
        """Move an episode to another feed; it gets a new id there."""
        return self._transfer(episode_id, source_feed_id, target_feed_id, move=True)

    def copy_episode(
        self, episode_id: str, source_feed_id: str, target_feed_id: str
    ) -> Optional[Episode]:
        """Copy an episode into another feed under a new id."""
        return self._transfer(episode_id, source_feed_id, target_feed_id, move=False)

    def _transfer(
        self, episode_id: str, source_feed_id: str, target_feed_id: str, move: bool
    ) -> Optional[Episode]:
        action = "move" if move else "copy"
        with self.lock:
            if source_feed_id == target_feed_id:
                raise ConflictError(f"Cannot {action} an episode onto its own feed")
            self._require_feed(source_feed_id, "Source feed")
            self._require_feed(target_feed_id, "Target feed")

            source = self.episodes.get(source_feed_id, [])
            episode = _find(source, episode_id)
            if episode is None:
                return None

            target = self.episodes.get(target_feed_id, [])
            new_id = derive_episode_id(
                target_feed_id, episode.file_name, episode.file_size
            )
            result = _find(target, new_id)
            if result is None:
                self.store.copy(
                    BlobPaths.audio(source_feed_id, episode.file_name),
                    BlobPaths.audio(target_feed_id, episode.file_name),
                )
                result = replace(episode, id=new_id, feed_id=target_feed_id)
                target = [e for e in target if e.file_name != episode.file_name]
                self.commit_episodes(target_feed_id, target + [result])
            else:
                self.logger.info(
                    "Episode %s already present in '%s'", new_id, target_feed_id
                )

            if move:
                self.store.delete(BlobPaths.audio(source_feed_id, episode.file_name))
                self.commit_episodes(
                    source_feed_id, [e for e in source if e.id != episode_id]
                )

            self.logger.info(
                "%s episode %s from '%s' to '%s' as %s",
                "Moved" if move else "Copied",
                episode_id, source_feed_id, target_feed_id, result.id,
            )
            return result
