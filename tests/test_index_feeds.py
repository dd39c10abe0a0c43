"""
Tests for FeedIndex feed lifecycle operations.
"""

from dataclasses import replace
from unittest.mock import patch

from podhost.exceptions import ConflictError, StorageError
from podhost.models import BlobPaths

from tests.base import PodhostTestBase
from tests.utils import create_test_feed


class TestFeedLifecycle(PodhostTestBase):
    """Test creating, updating, renaming and deleting feeds."""

    def test_create_and_list(self) -> None:
        """Test feeds are listed in creation order and persisted."""
        self.create_feed("tech")
        self.create_feed("news", title="News")

        self.assertEqual([f.id for f in self.index.list_feeds()], ["tech", "news"])
        self.assertEqual(
            [f.id for f in self.repository.load_feeds()], ["tech", "news"]
        )

    def test_create_duplicate(self) -> None:
        """Test duplicate ids are rejected."""
        self.create_feed("tech")
        with self.assertRaises(ConflictError):
            self.create_feed("tech")

    def test_update(self) -> None:
        """Test updates replace the configuration."""
        feed = self.create_feed("tech")
        updated = self.index.update_feed("tech", replace(feed, title="Tech Weekly"))
        self.assertEqual(updated.title, "Tech Weekly")
        self.assertEqual(self.index.get_feed("tech").title, "Tech Weekly")
        self.assertEqual(self.reload_index().get_feed("tech").title, "Tech Weekly")

    def test_update_unknown_or_changed_id(self) -> None:
        """Test updates cannot target unknown feeds or change ids."""
        self.create_feed("tech")
        with self.assertRaises(ConflictError):
            self.index.update_feed("news", create_test_feed("news"))
        with self.assertRaises(ConflictError):
            self.index.update_feed("tech", create_test_feed("other"))

    def test_rename(self) -> None:
        """Test renaming relocates blobs and rewrites episodes."""
        self.create_feed("tech")
        self.create_feed("news", title="News")
        episode = self.index.add_episode("tech", self.make_upload("ep1.mp3"))
        self.index.set_feed_icon("tech", b"\x89PNG")

        renamed = self.index.rename_feed("tech", "technology")

        self.assertEqual(renamed.id, "technology")
        self.assertEqual(renamed.image_url, BlobPaths.icon("technology"))
        self.assertEqual(
            [f.id for f in self.index.list_feeds()], ["technology", "news"]
        )
        self.assertIsNone(self.index.get_feed("tech"))
        self.assertEqual(self.store.list_by_prefix("tech/"), [])
        self.assertTrue(self.store.exists("technology/audio/ep1.mp3"))
        self.assertTrue(self.store.exists("technology/icon.png"))

        episodes = self.index.list_episodes("technology")
        self.assertEqual(len(episodes), 1)
        self.assertEqual(episodes[0].id, episode.id)
        self.assertEqual(episodes[0].feed_id, "technology")

        reloaded = self.reload_index()
        self.assertEqual(
            [e.feed_id for e in reloaded.list_episodes("technology")], ["technology"]
        )

    def test_rename_conflicts(self) -> None:
        """Test renames need an existing source and a free target."""
        self.create_feed("tech")
        self.create_feed("news")
        with self.assertRaises(ConflictError):
            self.index.rename_feed("missing", "other")
        with self.assertRaises(ConflictError):
            self.index.rename_feed("tech", "news")

    def test_delete(self) -> None:
        """Test deleting a feed removes its namespace."""
        self.create_feed("tech")
        self.create_feed("news")
        self.index.add_episode("tech", self.make_upload("ep1.mp3"))
        self.index.add_episode("news", self.make_upload("ep2.mp3"))

        self.assertTrue(self.index.delete_feed("tech"))

        self.assertEqual([f.id for f in self.index.list_feeds()], ["news"])
        self.assertEqual(self.store.list_by_prefix("tech/"), [])
        self.assertTrue(self.store.exists("news/audio/ep2.mp3"))
        self.assertEqual(self.index.list_episodes("tech"), [])

    def test_delete_unknown(self) -> None:
        """Test deleting an unknown feed reports not found."""
        self.assertFalse(self.index.delete_feed("missing"))

    def test_set_feed_icon(self) -> None:
        """Test the icon is stored and versioned."""
        self.create_feed("tech")
        feed = self.index.set_feed_icon("tech", b"\x89PNG")

        self.assertEqual(self.store.get_object("tech/icon.png"), b"\x89PNG")
        self.assertEqual(feed.image_url, "tech/icon.png")
        self.assertRegex(feed.image_version, r"^\d{14}$")
        self.assertEqual(self.reload_index().get_feed("tech"), feed)

    def test_set_icon_unknown_feed(self) -> None:
        """Test icons need an existing feed."""
        with self.assertRaises(ConflictError):
            self.index.set_feed_icon("missing", b"\x89PNG")

    def test_snapshot(self) -> None:
        """Test snapshot returns the feed with its episodes."""
        feed = self.create_feed("tech")
        episode = self.index.add_episode("tech", self.make_upload("ep1.mp3"))
        self.assertEqual(self.index.snapshot("tech"), (feed, [episode]))
        self.assertIsNone(self.index.snapshot("missing"))


class TestFeedStorageFailures(PodhostTestBase):
    """Test failed feed list writes propagate and change nothing."""

    def setUp(self) -> None:
        """Create one feed."""
        super().setUp()
        self.feed = self.create_feed("tech")

    def test_create_when_save_fails(self) -> None:
        """Test a failed create leaves the feed list as it was."""
        with patch.object(
            self.repository, "save_feeds", side_effect=StorageError("denied", "x")
        ):
            with self.assertRaises(StorageError):
                self.index.create_feed(create_test_feed("news"))

        self.assertFalse(self.index.lock.locked())
        self.assertEqual(self.index.list_feeds(), [self.feed])
        self.assertEqual(self.index.create_feed(create_test_feed("news")).id, "news")

    def test_update_when_save_fails(self) -> None:
        """Test a failed update keeps the current configuration."""
        with patch.object(
            self.repository, "save_feeds", side_effect=StorageError("denied", "x")
        ):
            with self.assertRaises(StorageError):
                self.index.update_feed("tech", replace(self.feed, title="Changed"))

        self.assertFalse(self.index.lock.locked())
        self.assertEqual(self.index.get_feed("tech"), self.feed)
