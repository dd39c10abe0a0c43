"""
Best-effort audio metadata extraction and publish-date resolution.

Everything that reads tags or container boxes goes through
AudioMetadataReader, which never raises and gives up on a file after a
short timeout. Callers only ever see "absent" values.
"""

import logging
import os
import threading
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, List, Optional, TypeVar

import mutagen

from .models import CONTAINER_EXTENSIONS, parse_iso_datetime, to_utc
from .mp4 import MP4_EPOCH, extract_creation_time

DEFAULT_TIMEOUT = 10.0

R = TypeVar("R")

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AudioProperties:
    """What could be read from an audio file's tags."""

    duration_seconds: int = 0
    tag_date: Optional[datetime] = None


def parse_tag_date(text: str) -> Optional[datetime]:
    """Parse a tag timestamp such as '2024-01-15T10:30:00' or '2024-01'."""
    text = text.strip()
    if not text:
        return None
    try:
        value = parse_iso_datetime(text.replace(" ", "T", 1))
    except ValueError:
        value = None
        for fmt in ("%Y-%m", "%Y"):
            try:
                value = to_utc(datetime.strptime(text, fmt))
                break
            except ValueError:
                continue
    if value is None or value.year <= 1:
        return None
    return value


def _tag_values(tags: Any) -> List[str]:
    """Collect 'date tagged' values from ID3, Vorbis or APE style tags."""
    if tags is None:
        return []
    if hasattr(tags, "getall"):  # ID3
        return [str(text) for frame in tags.getall("TDTG") for text in frame.text]
    try:
        values = tags.get("DATETAGGED") or tags.get("datetagged")
    except (KeyError, ValueError, TypeError):
        return []
    if values is None:
        return []
    if not isinstance(values, (list, tuple)):
        values = [values]
    return [str(value) for value in values]


def read_tags(file_path: str) -> AudioProperties:
    """Read duration and 'date tagged' with mutagen (may raise)."""
    audio = mutagen.File(file_path)
    if audio is None:
        return AudioProperties()

    length = getattr(audio.info, "length", 0) or 0
    tag_date = None
    for value in _tag_values(audio.tags):
        tag_date = parse_tag_date(value)
        if tag_date is not None:
            break
    return AudioProperties(duration_seconds=int(length), tag_date=tag_date)


class AudioMetadataReader:
    """Reads audio properties and container timestamps with a time bound."""

    def __init__(self, timeout: float = DEFAULT_TIMEOUT, max_workers: int = 2):
        self.timeout = timeout
        self.logger = logging.getLogger(__name__)
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="podhost-metadata"
        )

    def _bounded(self, func: Callable[[str], R], file_path: str, default: R) -> R:
        future = self._executor.submit(func, file_path)
        try:
            return future.result(timeout=self.timeout)
        except FutureTimeoutError:
            future.cancel()
            self.logger.warning(
                "Metadata read of %s timed out after %.1fs", file_path, self.timeout
            )
        except Exception as e:  # pylint: disable=broad-except
            self.logger.warning("Could not read metadata from %s: %s", file_path, e)
        return default

    def read_audio_properties(self, file_path: str) -> AudioProperties:
        """Duration and tag date; empty properties when unreadable."""
        return self._bounded(read_tags, file_path, AudioProperties())

    def read_creation_time(self, file_path: str) -> Optional[datetime]:
        """Container creation time of an MP4/M4A file, or None."""
        return self._bounded(extract_creation_time, file_path, None)

    def close(self) -> None:
        """Stop the worker threads without waiting for stuck reads."""
        self._executor.shutdown(wait=False)


_default_reader: Optional[AudioMetadataReader] = None
_default_reader_lock = threading.Lock()


def get_default_reader() -> AudioMetadataReader:
    """Shared reader used when callers do not supply one."""
    global _default_reader  # pylint: disable=global-statement
    with _default_reader_lock:
        if _default_reader is None:
            _default_reader = AudioMetadataReader()
        return _default_reader


def resolve_publish_date(  # pylint: disable=too-many-arguments
    file_path: str,
    explicit_date: Optional[datetime] = None,
    use_metadata: Optional[bool] = None,
    feed_prefers_metadata: bool = False,
    reader: Optional[AudioMetadataReader] = None,
    properties: Optional[AudioProperties] = None,
) -> datetime:
    """Choose an episode's publication timestamp (UTC).

    Priority:
    1. explicit_date, when given
    2. the audio tag's 'date tagged', when use_metadata is true or the
       feed prefers file metadata
    3. for MP4/M4A files, the container creation time (only when step 2
       applied and found no tag date)
    4. the current time

    Args:
        file_path: Local audio file.
        explicit_date: Caller-supplied date.
        use_metadata: Per-request override to read file metadata.
        feed_prefers_metadata: The feed's default for reading metadata.
        reader: Metadata reader; the shared default when omitted.
        properties: Already-read audio properties, to avoid a second read.
    """
    file_name = os.path.basename(file_path)

    if explicit_date is not None:
        logger.debug("Using explicit published date for %s", file_name)
        return to_utc(explicit_date)

    if use_metadata or feed_prefers_metadata:
        reader = reader or get_default_reader()
        if properties is None:
            properties = reader.read_audio_properties(file_path)
        if properties.tag_date is not None:
            logger.debug("Using tagged date for %s: %s", file_name, properties.tag_date)
            return to_utc(properties.tag_date)

        if os.path.splitext(file_path)[1].lower() in CONTAINER_EXTENSIONS:
            created = reader.read_creation_time(file_path)
            # a zero creation time means the encoder never set it
            if created is not None and created > MP4_EPOCH:
                logger.debug("Using container creation time for %s: %s", file_name, created)
                return created

    logger.debug("Using current time as published date for %s", file_name)
    return datetime.now(timezone.utc)
