"""
Factories shared by the test suite.
"""

import os
from datetime import datetime, timezone
from typing import Any, Optional

from podhost.models import Episode, Feed, derive_episode_id


def create_test_feed(feed_id: str = "tech", **kwargs: Any) -> Feed:
    """Create a feed with sensible defaults."""
    defaults = {
        "title": "Tech Talk",
        "author": "Jane Host",
        "description": "A show about technology",
    }
    defaults.update(kwargs)
    return Feed(id=feed_id, **defaults)


def create_test_episode(
    feed_id: str = "tech",
    file_name: str = "ep1.mp3",
    file_size: int = 3000,
    published_date: Optional[datetime] = None,
    **kwargs: Any,
) -> Episode:
    """Create an episode whose id matches its feed, name and size."""
    defaults = {
        "title": os.path.splitext(file_name)[0],
        "description": "",
        "duration_seconds": 0,
    }
    defaults.update(kwargs)
    return Episode(
        id=defaults.pop("id", derive_episode_id(feed_id, file_name, file_size)),
        feed_id=feed_id,
        file_name=file_name,
        file_size=file_size,
        published_date=published_date
        or datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc),
        **defaults,
    )


def write_audio_file(directory: str, file_name: str, size: int = 3000) -> str:
    """Write a dummy file of the given size and return its path."""
    path = os.path.join(directory, file_name)
    with open(path, "wb") as f:
        f.write(b"\x00" * size)
    return path
