"""
Base test class with a temporary local blob store and feed index.
"""

import os
import shutil
import tempfile
import unittest
from typing import Any
from unittest.mock import Mock

from podhost.index import FeedIndex
from podhost.metadata import AudioMetadataReader, AudioProperties
from podhost.models import BlobPaths, Feed
from podhost.repository import FeedRepository
from podhost.storage import LocalBlobStore

from tests.utils import create_test_feed, write_audio_file


class PodhostTestBase(unittest.TestCase):
    """Base class providing a temp directory, store, index and helpers."""

    def setUp(self) -> None:
        """Set up a fresh store and index for each test."""
        self.test_dir = tempfile.mkdtemp()
        self.store_dir = os.path.join(self.test_dir, "store")
        self.upload_dir = os.path.join(self.test_dir, "uploads")
        os.makedirs(self.upload_dir)

        self.store = LocalBlobStore(self.store_dir)
        self.reader = Mock(spec=AudioMetadataReader)
        self.reader.read_audio_properties.return_value = AudioProperties()
        self.reader.read_creation_time.return_value = None
        self.repository = FeedRepository(self.store)
        self.index = FeedIndex(self.store, self.repository, self.reader)

    def tearDown(self) -> None:
        """Clean up the temp directory."""
        if os.path.exists(self.test_dir):
            shutil.rmtree(self.test_dir)

    def create_feed(self, feed_id: str = "tech", **kwargs: Any) -> Feed:
        """Create and register a feed in the index."""
        return self.index.create_feed(create_test_feed(feed_id, **kwargs))

    def make_upload(self, file_name: str, size: int = 3000) -> str:
        """Write a local file ready to be added as an episode."""
        return write_audio_file(self.upload_dir, file_name, size)

    def put_audio(self, feed_id: str, file_name: str, size: int = 3000) -> str:
        """Place an audio blob directly in the store, bypassing the index."""
        path = BlobPaths.audio(feed_id, file_name)
        self.store.put_object(path, b"\x00" * size)
        return path

    def reload_index(self) -> FeedIndex:
        """Build a second index from what was persisted."""
        index = FeedIndex(self.store, FeedRepository(self.store), self.reader)
        index.load()
        return index
