"""
Reconciles the feed index with what is actually in the object store.

Audio deleted out-of-band is pruned from the index and audio uploaded
out-of-band is imported. A background thread repeats this periodically.
"""

import logging
import os
import shutil
import tempfile
import threading
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from .index import FeedIndex
from .metadata import resolve_publish_date
from .models import (
    BlobPaths,
    Episode,
    Feed,
    derive_episode_id,
    is_audio_file,
    parse_title_from_filename,
)

DEFAULT_SYNC_INTERVAL = 3600.0
DEFAULT_INITIAL_DELAY = 300.0


@dataclass
class SyncResult:
    """Outcome of synchronizing one feed."""

    feed_id: str
    pruned: List[str] = field(default_factory=list)
    imported: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        """Whether the feed's episode list was rewritten."""
        return bool(self.pruned or self.imported)


class SyncEngine:
    """Per-feed reconciliation of index entries against stored audio."""

    def __init__(self, index: FeedIndex, scratch_dir: Optional[str] = None):
        """Initialize with the index to reconcile."""
        self.index = index
        self.store = index.store
        self.scratch_dir = scratch_dir
        self.logger = logging.getLogger(__name__)

    def sync_feed(self, feed_id: str) -> SyncResult:
        """Prune missing files and import untracked ones for one feed."""
        result = SyncResult(feed_id)
        with self.index.lock:
            feed = self.index.feeds.get(feed_id)
            if feed is None:
                self.logger.debug("Feed '%s' no longer exists, skipping sync", feed_id)
                return result

            stored = set(self.store.list_names(BlobPaths.audio_prefix(feed_id)))
            current = self.index.episodes.get(feed_id, [])

            episodes: List[Episode] = []
            for episode in current:
                if episode.file_name in stored:
                    episodes.append(episode)
                else:
                    result.pruned.append(episode.id)
                    self.logger.info(
                        "Removed episode %s from '%s': %s no longer in storage",
                        episode.id, feed_id, episode.file_name,
                    )

            known_names = {e.file_name for e in episodes}
            known_ids = {e.id for e in episodes}
            for file_name in sorted(stored):
                if file_name in known_names or not is_audio_file(file_name):
                    continue
                try:
                    episode = self._import_file(feed, file_name, known_ids)
                except Exception:  # pylint: disable=broad-except
                    self.logger.exception(
                        "Error auto-importing %s into '%s'", file_name, feed_id
                    )
                    result.failed.append(file_name)
                    continue
                if episode is None:
                    continue
                episodes.append(episode)
                known_ids.add(episode.id)
                result.imported.append(episode.id)
                self.logger.info(
                    "Auto-imported episode into '%s': %s (%s)",
                    feed_id, episode.title, episode.id,
                )

            if result.changed:
                self.index.commit_episodes(feed_id, episodes)

        self.logger.info(
            "Sync of '%s' complete: %d active, %d pruned, %d imported, %d failed",
            feed_id, len(episodes), len(result.pruned),
            len(result.imported), len(result.failed),
        )
        return result

    def _import_file(
        self, feed: Feed, file_name: str, known_ids: set
    ) -> Optional[Episode]:
        """Build an episode for a stored file not yet in the index."""
        path = BlobPaths.audio(feed.id, file_name)
        file_size = self.store.size(path)
        episode_id = derive_episode_id(feed.id, file_name, file_size)
        if episode_id in known_ids:
            self.logger.warning(
                "Episode id %s for %s collides with an existing episode in '%s', skipping",
                episode_id, file_name, feed.id,
            )
            return None

        reader = self.index.metadata_reader
        scratch = tempfile.mkdtemp(prefix="podhost_import_", dir=self.scratch_dir)
        try:
            local_path = os.path.join(scratch, file_name)
            self.store.download_file(path, local_path)
            properties = reader.read_audio_properties(local_path)
            published = resolve_publish_date(
                local_path,
                feed_prefers_metadata=feed.use_file_metadata_for_publish_date,
                reader=reader,
                properties=properties,
            )
        finally:
            shutil.rmtree(scratch, ignore_errors=True)

        return Episode(
            id=episode_id,
            feed_id=feed.id,
            title=parse_title_from_filename(file_name),
            description="",
            file_name=file_name,
            file_size=file_size,
            duration_seconds=properties.duration_seconds,
            published_date=published,
        )

    def sync_all(
        self, should_stop: Optional[Callable[[], bool]] = None
    ) -> List[SyncResult]:
        """Synchronize every known feed in turn, one lock hold per feed."""
        with self.index.lock:
            feed_ids = list(self.index.feeds)

        results: List[SyncResult] = []
        for feed_id in feed_ids:
            if should_stop is not None and should_stop():
                self.logger.info("Sync sweep interrupted")
                break
            try:
                results.append(self.sync_feed(feed_id))
            except Exception:  # pylint: disable=broad-except
                self.logger.exception("Error synchronizing feed '%s'", feed_id)
        return results


class BackgroundSync(threading.Thread):
    """Daemon thread running a sync sweep on a fixed interval."""

    def __init__(
        self,
        engine: SyncEngine,
        interval: float = DEFAULT_SYNC_INTERVAL,
        initial_delay: float = DEFAULT_INITIAL_DELAY,
    ):
        super().__init__(name="podhost-sync", daemon=True)
        self.engine = engine
        self.interval = interval
        self.initial_delay = initial_delay
        self.sweeps = 0
        self._stop_event = threading.Event()
        self.logger = logging.getLogger(__name__)

    def run(self) -> None:
        self.logger.info(
            "Background sync started (interval %.0fs, first sweep in %.0fs)",
            self.interval, self.initial_delay,
        )
        delay = self.initial_delay
        while not self._stop_event.wait(delay):
            self.logger.info("Starting storage sync sweep")
            try:
                self.engine.sync_all(should_stop=self._stop_event.is_set)
            except Exception:  # pylint: disable=broad-except
                self.logger.exception("Error during storage sync sweep")
            self.sweeps += 1
            delay = self.interval
        self.logger.info("Background sync stopped")

    def stop(self, timeout: Optional[float] = None) -> None:
        """Ask the thread to finish and wait for it."""
        self._stop_event.set()
        if self.is_alive():
            self.join(timeout)
