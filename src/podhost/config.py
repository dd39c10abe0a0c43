"""
Runtime configuration read from the environment (and a .env file).
"""

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from dotenv import load_dotenv

from .models import Feed


def _get_float(env: Mapping[str, str], name: str, default: float) -> float:
    value = env.get(name)
    if value is None or value == "":
        return default
    try:
        return float(value)
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got {value!r}") from e


@dataclass
class Settings:  # pylint: disable=too-many-instance-attributes
    """Server settings."""

    storage_backend: str = "local"
    data_dir: str = "./data"
    bucket_endpoint: Optional[str] = None
    bucket_key_id: Optional[str] = None
    bucket_access_key: Optional[str] = None
    bucket_name: Optional[str] = None
    bucket_region: Optional[str] = None
    base_url: str = "http://localhost:8080"
    api_key: Optional[str] = None
    sync_interval: float = 3600.0
    sync_initial_delay: float = 300.0
    metadata_timeout: float = 10.0
    default_feed_id: Optional[str] = None
    default_feed_title: Optional[str] = None
    default_feed_author: Optional[str] = None
    host: str = "0.0.0.0"
    port: int = 8080

    @classmethod
    def from_env(
        cls, env: Optional[Mapping[str, str]] = None, dotenv: bool = True
    ) -> "Settings":
        """Build settings from environment variables."""
        if env is None:
            if dotenv:
                load_dotenv()
            env = os.environ

        backend = env.get("PODHOST_STORAGE", "local").lower()
        if backend not in ("local", "s3"):
            raise ValueError(f"PODHOST_STORAGE must be 'local' or 's3', got {backend!r}")

        return cls(
            storage_backend=backend,
            data_dir=env.get("PODHOST_DATA_DIRECTORY", "./data"),
            bucket_endpoint=env.get("BUCKET_ENDPOINT") or None,
            bucket_key_id=env.get("BUCKET_KEY_ID") or None,
            bucket_access_key=env.get("BUCKET_ACCESS_KEY") or None,
            bucket_name=env.get("BUCKET_NAME") or None,
            bucket_region=env.get("BUCKET_REGION") or None,
            base_url=env.get("PODHOST_BASE_URL", "http://localhost:8080").rstrip("/"),
            api_key=env.get("PODHOST_API_KEY") or None,
            sync_interval=_get_float(env, "PODHOST_SYNC_INTERVAL", 3600.0),
            sync_initial_delay=_get_float(env, "PODHOST_SYNC_INITIAL_DELAY", 300.0),
            metadata_timeout=_get_float(env, "PODHOST_METADATA_TIMEOUT", 10.0),
            default_feed_id=env.get("PODHOST_DEFAULT_FEED_ID") or None,
            default_feed_title=env.get("PODHOST_DEFAULT_FEED_TITLE") or None,
            default_feed_author=env.get("PODHOST_DEFAULT_FEED_AUTHOR") or None,
            host=env.get("HOST", "0.0.0.0"),
            port=int(_get_float(env, "PORT", 8080)),
        )

    def default_feed(self) -> Optional[Feed]:
        """The feed to create when none exist yet, if configured."""
        if not self.default_feed_id:
            return None
        return Feed(
            id=self.default_feed_id,
            title=self.default_feed_title or self.default_feed_id,
            author=self.default_feed_author or "",
        )
