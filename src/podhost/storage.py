"""
Object storage layer for feed data and audio blobs.

This module provides the blob store interface and a local filesystem
implementation. Paths are '/'-separated keys such as 'tech/audio/ep1.mp3'.
"""

import logging
import os
import shutil
from abc import ABC, abstractmethod
from typing import Iterator, List, Optional

from .exceptions import StorageError

CHUNK_SIZE = 64 * 1024


class BlobStore(ABC):
    """
    Abstract base class for object storage.

    Implementations raise StorageError when an operation cannot complete.
    Reading a missing object raises StorageError as well; use exists()
    first when absence is expected.
    """

    @abstractmethod
    def put_object(self, path: str, data: bytes) -> None:
        """Store bytes at path, replacing any existing object.

        Args:
            path (str): Object key.
            data (bytes): Content to store.

        Raises:
            StorageError: If the object could not be written.
        """

    @abstractmethod
    def upload_file(self, path: str, local_path: str) -> None:
        """Store the contents of a local file at path.

        Args:
            path (str): Object key.
            local_path (str): File to read from.

        Raises:
            StorageError: If the upload fails.
        """

    @abstractmethod
    def get_object(self, path: str) -> bytes:
        """Read a whole object into memory."""

    @abstractmethod
    def get_object_stream(
        self, path: str, start: int = 0, end: Optional[int] = None
    ) -> Iterator[bytes]:
        """Stream an object, optionally restricted to a byte range.

        Args:
            path (str): Object key.
            start (int): First byte to return.
            end (Optional[int]): Byte offset to stop at (exclusive), or
                None for the end of the object.

        Returns:
            Iterator[bytes]: Chunks of the requested range.
        """

    @abstractmethod
    def download_file(self, path: str, local_path: str) -> None:
        """Copy an object into a local file."""

    @abstractmethod
    def exists(self, path: str) -> bool:
        """Check if an object exists."""

    @abstractmethod
    def delete(self, path: str) -> None:
        """Delete an object; deleting a missing object is not an error."""

    @abstractmethod
    def list_by_prefix(self, prefix: str) -> List[str]:
        """List the full keys of all objects starting with prefix."""

    @abstractmethod
    def size(self, path: str) -> int:
        """Size of an object in bytes."""

    @abstractmethod
    def copy(self, src_path: str, dst_path: str) -> None:
        """Copy an object, replacing the destination if present."""

    def delete_by_prefix(self, prefix: str) -> int:
        """Delete every object under prefix and return how many were removed."""
        keys = self.list_by_prefix(prefix)
        for key in keys:
            self.delete(key)
        return len(keys)

    def list_names(self, prefix: str) -> List[str]:
        """List object names directly under prefix, without the prefix."""
        names = []
        for key in self.list_by_prefix(prefix):
            name = key[len(prefix):]
            if name and "/" not in name:
                names.append(name)
        return names


class LocalBlobStore(BlobStore):
    """Blob store backed by a directory on the local filesystem."""

    def __init__(self, base_dir: str = "./data"):
        """Initialize with base directory."""
        self.base_dir = os.path.abspath(base_dir)
        self.logger = logging.getLogger(__name__)
        os.makedirs(self.base_dir, exist_ok=True)

    def _full_path(self, path: str) -> str:
        """Resolve a key to a filesystem path inside base_dir."""
        full_path = os.path.abspath(
            os.path.join(self.base_dir, *path.split("/"))
        )
        if os.path.commonpath([self.base_dir, full_path]) != self.base_dir:
            raise StorageError(f"Path escapes storage root: {path}", path)
        return full_path

    def _ensure_parent(self, full_path: str) -> None:
        directory = os.path.dirname(full_path)
        if directory:
            os.makedirs(directory, exist_ok=True)

    def put_object(self, path: str, data: bytes) -> None:
        full_path = self._full_path(path)
        try:
            self._ensure_parent(full_path)
            with open(full_path, "wb") as f:
                f.write(data)
        except OSError as e:
            raise StorageError(f"Failed to write {path}: {e}", path) from e

    def upload_file(self, path: str, local_path: str) -> None:
        full_path = self._full_path(path)
        try:
            self._ensure_parent(full_path)
            shutil.copyfile(local_path, full_path)
        except OSError as e:
            raise StorageError(f"Failed to upload {path}: {e}", path) from e
        self.logger.debug("Stored %s (%s)", path, local_path)

    def get_object(self, path: str) -> bytes:
        try:
            with open(self._full_path(path), "rb") as f:
                return f.read()
        except OSError as e:
            raise StorageError(f"Failed to read {path}: {e}", path) from e

    def get_object_stream(
        self, path: str, start: int = 0, end: Optional[int] = None
    ) -> Iterator[bytes]:
        full_path = self._full_path(path)
        if not os.path.isfile(full_path):
            raise StorageError(f"Failed to open {path}: no such object", path)
        return self._iter_file(path, full_path, start, end)

    @staticmethod
    def _iter_file(
        path: str, full_path: str, start: int, end: Optional[int]
    ) -> Iterator[bytes]:
        try:
            handle = open(full_path, "rb")  # pylint: disable=consider-using-with
        except OSError as e:
            raise StorageError(f"Failed to open {path}: {e}", path) from e
        with handle:
            handle.seek(start)
            remaining = None if end is None else max(end - start, 0)
            while remaining is None or remaining > 0:
                size = CHUNK_SIZE if remaining is None else min(
                    CHUNK_SIZE, remaining
                )
                chunk = handle.read(size)
                if not chunk:
                    break
                if remaining is not None:
                    remaining -= len(chunk)
                yield chunk

    def download_file(self, path: str, local_path: str) -> None:
        try:
            shutil.copyfile(self._full_path(path), local_path)
        except OSError as e:
            raise StorageError(f"Failed to download {path}: {e}", path) from e

    def exists(self, path: str) -> bool:
        return os.path.isfile(self._full_path(path))

    def delete(self, path: str) -> None:
        full_path = self._full_path(path)
        try:
            if os.path.isfile(full_path):
                os.remove(full_path)
        except OSError as e:
            raise StorageError(f"Failed to delete {path}: {e}", path) from e

    def list_by_prefix(self, prefix: str) -> List[str]:
        keys: List[str] = []
        for root, _dirs, files in os.walk(self.base_dir):
            for name in files:
                relative = os.path.relpath(
                    os.path.join(root, name), self.base_dir
                )
                key = relative.replace(os.sep, "/")
                if key.startswith(prefix):
                    keys.append(key)
        return sorted(keys)

    def size(self, path: str) -> int:
        try:
            return os.path.getsize(self._full_path(path))
        except OSError as e:
            raise StorageError(f"Failed to stat {path}: {e}", path) from e

    def copy(self, src_path: str, dst_path: str) -> None:
        dst_full = self._full_path(dst_path)
        try:
            self._ensure_parent(dst_full)
            shutil.copyfile(self._full_path(src_path), dst_full)
        except OSError as e:
            raise StorageError(
                f"Failed to copy {src_path} to {dst_path}: {e}", src_path
            ) from e

    def delete_by_prefix(self, prefix: str) -> int:
        removed = super().delete_by_prefix(prefix)
        self._prune_empty_dirs()
        return removed

    def _prune_empty_dirs(self) -> None:
        """Remove directories left empty after deletes."""
        for root, _dirs, _files in os.walk(self.base_dir, topdown=False):
            if root != self.base_dir and not os.listdir(root):
                try:
                    os.rmdir(root)
                except OSError:
                    self.logger.debug("Could not remove directory %s", root)
