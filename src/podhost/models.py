"""
Data models for podcast feeds and episodes.
"""

from __future__ import annotations

import hashlib
import logging
import os
import re
from dataclasses import asdict, dataclass, fields
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from urllib.parse import quote

ID_LENGTH = 12

FEED_ID_PATTERN = re.compile(r"[A-Za-z0-9._-]+")

AUDIO_MIME_TYPES = {
    ".mp3": "audio/mpeg",
    ".m4a": "audio/mp4",
    ".wav": "audio/wav",
    ".ogg": "audio/ogg",
    ".flac": "audio/flac",
    ".aac": "audio/aac",
}
DEFAULT_MIME_TYPE = "audio/mpeg"

CONTAINER_EXTENSIONS = (".m4a", ".mp4")


def derive_episode_id(feed_id: str, file_name: str, file_size: int) -> str:
    """Derive the stable episode identifier for a file within a feed.

    The same feed, file name and byte size always yield the same
    12-character lowercase hex identifier.
    """
    digest = hashlib.sha256(
        f"{feed_id}:{file_name}:{file_size}".encode("utf-8")
    ).hexdigest()
    return digest[:ID_LENGTH]


def get_mime_type(file_name: str) -> str:
    """Map a file name to its audio MIME type, defaulting to MP3."""
    extension = os.path.splitext(file_name)[1].lower()
    return AUDIO_MIME_TYPES.get(extension, DEFAULT_MIME_TYPE)


def is_audio_file(file_name: str) -> bool:
    """Check whether a file name has a recognised audio extension."""
    return os.path.splitext(file_name)[1].lower() in AUDIO_MIME_TYPES


def is_valid_feed_id(feed_id: str) -> bool:
    """Check a feed id is usable as a blob namespace.

    Letters, digits, dots, dashes and underscores only, and not made of
    dots alone.
    """
    return bool(FEED_ID_PATTERN.fullmatch(feed_id)) and feed_id.strip(".") != ""


def parse_title_from_filename(file_name: str) -> str:
    """Turn 'My_GreatEpisode2.mp3' into 'My Great Episode2'."""
    name = os.path.splitext(os.path.basename(file_name))[0]
    name = name.replace("_", " ")
    name = re.sub(r"(?<=[a-z0-9])(?=[A-Z])", " ", name)
    return re.sub(r"\s+", " ", name).strip()


def to_utc(value: datetime) -> datetime:
    """Normalise a datetime to aware UTC; naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_iso_datetime(value: str) -> datetime:
    """Parse an ISO-8601 timestamp (a trailing 'Z' is accepted)."""
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    return to_utc(datetime.fromisoformat(text))


class BlobPaths:
    """Blob path layout inside the object store."""

    FEEDS = "feeds.json"
    EPISODES = "episodes.json"
    ICON = "icon.png"
    AUDIO_DIR = "audio"

    @staticmethod
    def feed_prefix(feed_id: str) -> str:
        """Namespace holding everything that belongs to a feed."""
        return f"{feed_id}/"

    @staticmethod
    def audio_prefix(feed_id: str) -> str:
        """Namespace holding a feed's audio files."""
        return f"{feed_id}/{BlobPaths.AUDIO_DIR}/"

    @staticmethod
    def audio(feed_id: str, file_name: str) -> str:
        """Path of one audio file."""
        return f"{BlobPaths.audio_prefix(feed_id)}{file_name}"

    @staticmethod
    def episodes(feed_id: str) -> str:
        """Path of a feed's episode list document."""
        return f"{feed_id}/{BlobPaths.EPISODES}"

    @staticmethod
    def icon(feed_id: str) -> str:
        """Path of a feed's cover art."""
        return f"{feed_id}/{BlobPaths.ICON}"


def _known_fields(cls: type, data: Dict[str, Any]) -> Dict[str, Any]:
    """Drop keys the dataclass does not declare."""
    names = {f.name for f in fields(cls)}
    unknown = set(data) - names
    if unknown:
        logging.getLogger(__name__).debug(
            "Ignoring unknown %s fields: %s", cls.__name__, sorted(unknown)
        )
    return {key: value for key, value in data.items() if key in names}


@dataclass(frozen=True)
class Feed:  # pylint: disable=too-many-instance-attributes
    """Configuration of one podcast feed.

    The id doubles as the feed's blob namespace and only changes through
    an explicit rename.
    """

    id: str
    title: str
    author: str
    description: Optional[str] = None
    email: Optional[str] = None
    language: str = "en"
    category: Optional[str] = None
    image_url: Optional[str] = None
    image_version: Optional[str] = None
    use_file_metadata_for_publish_date: bool = False

    def __post_init__(self) -> None:
        if not is_valid_feed_id(self.id):
            raise ValueError(f"Invalid feed id: {self.id!r}")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Feed":
        """Create Feed from dictionary."""
        return cls(**_known_fields(cls, data))

    def to_json(self) -> Dict[str, Any]:
        """Convert feed to JSON-serializable dictionary."""
        return asdict(self)


@dataclass(frozen=True)
class Episode:  # pylint: disable=too-many-instance-attributes
    """One audio item belonging to exactly one feed."""

    id: str
    feed_id: str
    title: str
    file_name: str
    file_size: int
    published_date: datetime
    description: Optional[str] = None
    duration_seconds: int = 0
    url: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Episode":
        """Create Episode from dictionary."""
        data = _known_fields(cls, data)
        published = data.get("published_date")
        if isinstance(published, str):
            data["published_date"] = parse_iso_datetime(published)
        elif isinstance(published, datetime):
            data["published_date"] = to_utc(published)
        data["file_size"] = int(data["file_size"])
        data["duration_seconds"] = int(data.get("duration_seconds") or 0)
        return cls(**data)

    def to_json(self) -> Dict[str, Any]:
        """Convert episode to JSON-serializable dictionary."""
        data = asdict(self)
        data["published_date"] = to_utc(self.published_date).isoformat()
        return data

    def get_audio_url(self, base_url: str) -> str:
        """Public URL of the episode's audio file."""
        if self.url:
            return self.url
        return (
            f"{base_url.rstrip('/')}/{self.feed_id}/audio/"
            f"{quote(self.file_name, safe='')}"
        )
