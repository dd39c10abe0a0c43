"""
Client for the podcast host management API.

This module provides a small requests-based client used by the CLI to
push audio files, list episodes and delete them.
"""

import glob
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

import requests
from tqdm import tqdm

from .models import get_mime_type, to_utc

API_KEY_HEADER = "X-API-Key"
DEFAULT_TIMEOUT = 30
UPLOAD_TIMEOUT = 600


@dataclass
class UploadResult:
    """Result of uploading one file."""

    file_path: str
    success: bool
    episode: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


@dataclass
class UploadSummary:
    """Summary of multiple upload operations."""

    successful: int
    failed: int
    results: List[UploadResult] = field(default_factory=list)

    @classmethod
    def from_results(cls, results: List[UploadResult]) -> "UploadSummary":
        """Create summary from list of results."""
        successful = sum(1 for r in results if r.success)
        return cls(
            successful=successful,
            failed=len(results) - successful,
            results=results,
        )


def expand_file_patterns(patterns: List[str]) -> List[str]:
    """Expand comma-separated lists and glob patterns into existing files.

    Plain paths that do not exist and patterns matching nothing are
    dropped. Duplicates are removed while keeping the first occurrence.
    """
    files: List[str] = []
    for argument in patterns:
        for pattern in (p.strip() for p in argument.split(",")):
            if not pattern:
                continue
            if any(c in pattern for c in "*?["):
                matches = sorted(m for m in glob.glob(pattern) if os.path.isfile(m))
            elif os.path.isfile(pattern):
                matches = [pattern]
            else:
                matches = []
            for match in matches:
                if match not in files:
                    files.append(match)
    return files


class PodhostClient:
    """Thin wrapper over the management HTTP API."""

    def __init__(self, base_url: str, api_key: Optional[str] = None):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.logger = logging.getLogger(__name__)

    def _headers(self) -> Dict[str, str]:
        if not self.api_key:
            return {}
        return {API_KEY_HEADER: self.api_key}

    def _episodes_url(self, feed_id: Optional[str]) -> str:
        if feed_id:
            return f"{self.base_url}/api/feeds/{feed_id}/episodes"
        return f"{self.base_url}/api/episodes"

    def list_feeds(self) -> List[Dict[str, Any]]:
        """Fetch all feed configurations."""
        response = requests.get(
            f"{self.base_url}/api/feeds", timeout=DEFAULT_TIMEOUT
        )
        response.raise_for_status()
        return response.json()

    def list_episodes(self, feed_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """Fetch the episodes of a feed (the default feed when omitted)."""
        response = requests.get(self._episodes_url(feed_id), timeout=DEFAULT_TIMEOUT)
        response.raise_for_status()
        return response.json()

    def delete_episode(self, episode_id: str, feed_id: Optional[str] = None) -> bool:
        """Delete an episode. Returns False if the server did not know it."""
        response = requests.delete(
            f"{self._episodes_url(feed_id)}/{episode_id}",
            headers=self._headers(),
            timeout=DEFAULT_TIMEOUT,
        )
        if response.status_code == 404:
            return False
        response.raise_for_status()
        return True

    def upload_episode(  # pylint: disable=too-many-arguments
        self,
        file_path: str,
        feed_id: Optional[str] = None,
        title: Optional[str] = None,
        description: Optional[str] = None,
        published_date: Optional[datetime] = None,
        use_metadata: Optional[bool] = None,
    ) -> Dict[str, Any]:
        """Upload one audio file and return the created episode."""
        file_name = os.path.basename(file_path)
        data: Dict[str, str] = {}
        if title:
            data["title"] = title
        if description:
            data["description"] = description
        if published_date is not None:
            data["publishedDate"] = to_utc(published_date).isoformat()
        if use_metadata is not None:
            data["useMetadataForPublishedDate"] = "true" if use_metadata else "false"

        self.logger.info("Uploading %s", file_name)
        with open(file_path, "rb") as audio_file:
            response = requests.post(
                self._episodes_url(feed_id),
                files={"file": (file_name, audio_file, get_mime_type(file_name))},
                data=data,
                headers=self._headers(),
                timeout=UPLOAD_TIMEOUT,
            )
        response.raise_for_status()
        return response.json()

    def upload_episodes(  # pylint: disable=too-many-arguments
        self,
        file_paths: List[str],
        feed_id: Optional[str] = None,
        title: Optional[str] = None,
        description: Optional[str] = None,
        published_date: Optional[datetime] = None,
        use_metadata: Optional[bool] = None,
        show_progress: bool = True,
    ) -> UploadSummary:
        """Upload several files, continuing past individual failures.

        Args:
            file_paths: Local audio files to upload
            feed_id: Target feed, or None for the server's default feed
            title: Title applied to every file (usually only for one file)
            description: Description applied to every file
            published_date: Explicit publish date applied to every file
            use_metadata: Ask the server to prefer the file's tagged date
            show_progress: Whether to show a progress bar

        Returns:
            UploadSummary with per-file results.
        """
        if not file_paths:
            self.logger.info("No files to upload")
            return UploadSummary.from_results([])

        sizes = [os.path.getsize(p) for p in file_paths]
        total_bytes = sum(sizes)
        self.logger.info(
            "Starting upload of %d files (%d bytes)", len(file_paths), total_bytes
        )

        results: List[UploadResult] = []
        with tqdm(
            total=total_bytes,
            unit="B",
            unit_scale=True,
            desc="Uploading Episodes",
            disable=not show_progress,
        ) as progress_bar:
            for i, (file_path, size) in enumerate(zip(file_paths, sizes), 1):
                file_name = os.path.basename(file_path)
                progress_bar.set_description(
                    f"File {i}/{len(file_paths)}: {file_name[:30]}"
                )
                try:
                    episode = self.upload_episode(
                        file_path,
                        feed_id=feed_id,
                        title=title,
                        description=description,
                        published_date=published_date,
                        use_metadata=use_metadata,
                    )
                    results.append(UploadResult(file_path, True, episode=episode))
                except (requests.exceptions.RequestException, OSError) as e:
                    self.logger.error("Upload failed for %s: %s", file_name, e)
                    results.append(UploadResult(file_path, False, error=str(e)))
                progress_bar.update(size)
            progress_bar.set_description("Upload Complete!")

        summary = UploadSummary.from_results(results)
        self.logger.info(
            "Upload completed: %d successful, %d failed",
            summary.successful, summary.failed,
        )
        return summary
